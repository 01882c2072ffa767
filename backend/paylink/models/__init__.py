"""Database models package."""

from paylink.models.payment_link import PaymentLink, LinkStatus, Network
from paylink.models.buyer import Buyer
from paylink.models.payment import Payment, PaymentStatus

__all__ = [
    "PaymentLink",
    "LinkStatus",
    "Network",
    "Buyer",
    "Payment",
    "PaymentStatus",
]
