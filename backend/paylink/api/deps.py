"""API dependencies for service access."""

from paylink.services.chain_service import ChainService, chain_service
from paylink.services.payment_verification_service import (
    PaymentVerificationService,
    payment_verification_service,
)


def get_verification_service() -> PaymentVerificationService:
    """
    Dependency returning the reconciliation service.

    Tests override this to inject chain adapters backed by mock transports.
    """
    return payment_verification_service


def get_chain_service() -> ChainService:
    """Dependency returning the chain adapter registry."""
    return chain_service
