"""Pydantic schemas package."""

from paylink.schemas.payment_link import (
    PaymentLinkCreate,
    PaymentLinkResponse,
    BuyerInfo,
    PaymentResponse,
    VerificationResponse,
)

__all__ = [
    "PaymentLinkCreate",
    "PaymentLinkResponse",
    "BuyerInfo",
    "PaymentResponse",
    "VerificationResponse",
]
