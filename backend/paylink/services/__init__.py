"""Business logic services package."""

from paylink.services.payment_link_service import (
    create_payment_link,
    get_payment_link,
    mark_pending_verification,
    deactivate_payment_link,
    get_confirmed_payment,
    transition_link_status,
)
from paylink.services.matcher_service import CandidateMatcher
from paylink.services.claim_ledger import ClaimLedger, PersistenceFailure
from paylink.services.payment_verification_service import (
    PaymentVerificationService,
    ReconcileOutcome,
    VerificationResult,
)

__all__ = [
    # Payment link lifecycle
    "create_payment_link",
    "get_payment_link",
    "mark_pending_verification",
    "deactivate_payment_link",
    "get_confirmed_payment",
    "transition_link_status",
    # Matching
    "CandidateMatcher",
    # Claims
    "ClaimLedger",
    "PersistenceFailure",
    # Reconciliation
    "PaymentVerificationService",
    "ReconcileOutcome",
    "VerificationResult",
]
