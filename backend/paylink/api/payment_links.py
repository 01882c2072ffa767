"""Payment links API router: link lifecycle and payment verification."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.api.deps import get_verification_service
from paylink.database import get_db
from paylink.schemas.payment_link import (
    BuyerInfo,
    PaymentLinkCreate,
    PaymentLinkResponse,
    PaymentResponse,
    VerificationResponse,
)
from paylink.services.payment_link_service import (
    InvalidStatusTransition,
    PaymentLinkNotFound,
    create_payment_link,
    deactivate_payment_link,
    get_confirmed_payment,
    get_payment_link,
    mark_pending_verification,
)
from paylink.services.payment_verification_service import (
    PaymentVerificationService,
    ReconcileOutcome,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _not_found(link_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "code": "PAYMENT_LINK_NOT_FOUND",
            "message": f"Payment link {link_id} not found"
        }
    )


@router.post("", response_model=PaymentLinkResponse, status_code=status.HTTP_201_CREATED)
async def create_link(
    link_data: PaymentLinkCreate,
    db: AsyncSession = Depends(get_db)
):
    """
    Publish a payment link (seller action).

    The wallet address is validated for the selected network.
    """
    link = await create_payment_link(db, link_data)
    return PaymentLinkResponse.model_validate(link)


@router.get("/{link_id}", response_model=PaymentLinkResponse)
async def get_link(
    link_id: str,
    db: AsyncSession = Depends(get_db)
):
    """Get public details of a payment link."""
    link = await get_payment_link(db, link_id)
    if not link:
        raise _not_found(link_id)
    return PaymentLinkResponse.model_validate(link)


@router.post("/{link_id}/buyer", response_model=PaymentLinkResponse)
async def submit_buyer_signal(
    link_id: str,
    buyer_info: BuyerInfo,
    db: AsyncSession = Depends(get_db)
):
    """
    Buyer signals "I paid" and leaves their details.

    Moves the link to pending_verification; safe to repeat.
    """
    try:
        link = await mark_pending_verification(db, link_id, buyer_info)
    except PaymentLinkNotFound:
        raise _not_found(link_id)
    except InvalidStatusTransition as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "INVALID_STATUS_TRANSITION", "message": str(e)}
        )

    return PaymentLinkResponse.model_validate(link)


@router.post("/{link_id}/verify", response_model=VerificationResponse)
async def verify_link_payment(
    link_id: str,
    db: AsyncSession = Depends(get_db),
    verifier: PaymentVerificationService = Depends(get_verification_service)
):
    """
    Look for a matching on-chain transfer and confirm the link.

    Always resolves to either a confirmed payment or a retryable
    "not yet found" answer; upstream and storage errors are not exposed.
    """
    result = await verifier.reconcile(db, link_id)

    if result.outcome == ReconcileOutcome.NOT_FOUND:
        raise _not_found(link_id)

    logger.info(f"Verification for link {link_id}: outcome={result.outcome.value}")

    return VerificationResponse(
        verified=result.verified,
        status=result.link_status,
        message=result.message,
        payment=PaymentResponse.model_validate(result.payment) if result.payment else None
    )


@router.post("/{link_id}/deactivate", response_model=PaymentLinkResponse)
async def deactivate_link(
    link_id: str,
    db: AsyncSession = Depends(get_db)
):
    """Stop accepting payments on a link (links are never deleted)."""
    try:
        link = await deactivate_payment_link(db, link_id)
    except PaymentLinkNotFound:
        raise _not_found(link_id)
    except InvalidStatusTransition as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "INVALID_STATUS_TRANSITION", "message": str(e)}
        )

    return PaymentLinkResponse.model_validate(link)


@router.get("/{link_id}/payment", response_model=PaymentResponse)
async def get_link_payment(
    link_id: str,
    db: AsyncSession = Depends(get_db)
):
    """Get the confirmed payment backing a link."""
    try:
        payment = await get_confirmed_payment(db, link_id)
    except PaymentLinkNotFound:
        raise _not_found(link_id)

    if not payment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "code": "PAYMENT_NOT_CONFIRMED",
                "message": f"No confirmed payment for link {link_id}"
            }
        )

    return PaymentResponse.model_validate(payment)
