"""Payment link lifecycle: creation, buyer signal, confirmation and deactivation."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.core.events import event_bus
from paylink.models.buyer import Buyer
from paylink.models.payment import Payment
from paylink.models.payment_link import LinkStatus, PaymentLink
from paylink.schemas.payment_link import BuyerInfo, PaymentLinkCreate

logger = logging.getLogger(__name__)


# No transition leads out of CONFIRMED and there is no failed state: a
# non-match is always retryable.
ALLOWED_TRANSITIONS: dict[LinkStatus, frozenset[LinkStatus]] = {
    LinkStatus.ACTIVE: frozenset({LinkStatus.PENDING_VERIFICATION, LinkStatus.CONFIRMED}),
    LinkStatus.PENDING_VERIFICATION: frozenset({LinkStatus.PENDING_VERIFICATION, LinkStatus.CONFIRMED}),
    LinkStatus.CONFIRMED: frozenset({LinkStatus.CONFIRMED}),
}


class PaymentLinkNotFound(ValueError):
    """No payment link exists for the given link_id."""


class InvalidStatusTransition(ValueError):
    """The requested change is not allowed from the link's current state."""


def can_transition(current: LinkStatus, target: LinkStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


async def create_payment_link(db: AsyncSession, link_data: PaymentLinkCreate) -> PaymentLink:
    """
    Create a new active payment link.

    Args:
        db: Database session
        link_data: Validated link request (wallet already normalized)

    Returns:
        The persisted PaymentLink
    """
    link = PaymentLink(
        wallet_address=link_data.wallet_address,
        expected_amount=link_data.expected_amount,
        network=link_data.network,
        product_title=link_data.product_title,
        description=link_data.description,
        status=LinkStatus.ACTIVE,
        is_active=True,
    )

    db.add(link)
    await db.commit()
    await db.refresh(link)

    logger.info(
        f"Created payment link {link.link_id}: {link.expected_amount} USDC "
        f"on {link.network.value} to {link.wallet_address}"
    )

    await event_bus.publish("payment_link_created", {
        "link_id": link.link_id,
        "network": link.network.value,
        "expected_amount": str(link.expected_amount),
    })

    return link


async def get_payment_link(db: AsyncSession, link_id: str) -> Optional[PaymentLink]:
    """Get a payment link by its public link_id, always reloading its current state."""
    result = await db.execute(
        select(PaymentLink)
        .where(PaymentLink.link_id == link_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_payment_link_or_raise(db: AsyncSession, link_id: str) -> PaymentLink:
    link = await get_payment_link(db, link_id)
    if not link:
        raise PaymentLinkNotFound(f"Payment link {link_id} not found")
    return link


async def transition_link_status(
    db: AsyncSession,
    payment_link_id: str,
    target: LinkStatus,
    commit: bool = True
) -> bool:
    """
    Move a link to target with a guarded UPDATE.

    The WHERE clause only matches source states from which target is allowed,
    so concurrent callers can never move a confirmed link backwards.

    Args:
        db: Database session
        payment_link_id: Internal primary key of the link
        target: Desired status
        commit: Commit immediately; pass False to join a larger transaction

    Returns:
        True if the row was updated, False if the link was not in an
        eligible source state
    """
    sources = [
        status for status in LinkStatus
        if status != LinkStatus.CONFIRMED and can_transition(status, target)
    ]
    now = datetime.utcnow()
    values = {"status": target, "updated_at": now}
    if target == LinkStatus.CONFIRMED:
        values["confirmed_at"] = now

    result = await db.execute(
        update(PaymentLink)
        .where(PaymentLink.id == payment_link_id, PaymentLink.status.in_(sources))
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    if commit:
        await db.commit()

    return result.rowcount == 1


async def mark_pending_verification(
    db: AsyncSession,
    link_id: str,
    buyer_info: Optional[BuyerInfo] = None
) -> PaymentLink:
    """
    Record the buyer's "I paid" signal.

    Idempotent: repeated signals keep the link in pending_verification, and a
    confirmed link stays confirmed. The status change is committed before the
    buyer details are stored, so a storage failure for the buyer record
    (a duplicate included) never blocks it.

    Raises:
        PaymentLinkNotFound: Unknown link_id
        InvalidStatusTransition: The link has been deactivated
    """
    link = await get_payment_link_or_raise(db, link_id)

    if link.status == LinkStatus.CONFIRMED:
        logger.info(f"Buyer signal for already confirmed link {link_id}; ignoring")
        return link

    if not link.is_active:
        raise InvalidStatusTransition(f"Payment link {link_id} is no longer active")

    previous_status = link.status
    payment_link_pk = link.id
    await transition_link_status(db, payment_link_pk, LinkStatus.PENDING_VERIFICATION)

    if buyer_info is not None:
        try:
            db.add(Buyer(payment_link_id=payment_link_pk, **buyer_info.model_dump()))
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning(f"Could not store buyer details for link {link_id}: {e}")

    await db.refresh(link)

    if previous_status != link.status:
        await event_bus.publish("payment_link_status_changed", {
            "link_id": link_id,
            "from": previous_status.value,
            "to": link.status.value,
        })

    return link


async def deactivate_payment_link(db: AsyncSession, link_id: str) -> PaymentLink:
    """
    Stop accepting payments on a link. Links are never deleted.

    Raises:
        PaymentLinkNotFound: Unknown link_id
        InvalidStatusTransition: The link is already confirmed
    """
    link = await get_payment_link_or_raise(db, link_id)

    if link.status == LinkStatus.CONFIRMED:
        raise InvalidStatusTransition(f"Payment link {link_id} is already confirmed")

    if link.is_active:
        link.is_active = False
        link.updated_at = datetime.utcnow()
        await db.commit()
        await db.refresh(link)
        logger.info(f"Deactivated payment link {link_id}")

        await event_bus.publish("payment_link_deactivated", {"link_id": link_id})

    return link


async def get_confirmed_payment(db: AsyncSession, link_id: str) -> Optional[Payment]:
    """Return the Payment that confirmed a link, if any."""
    link = await get_payment_link_or_raise(db, link_id)
    result = await db.execute(
        select(Payment)
        .where(Payment.payment_link_id == link.id)
        .order_by(Payment.confirmed_at.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_links_awaiting_verification(
    db: AsyncSession,
    limit: int = 50,
    include_active: bool = False
) -> list[str]:
    """
    Public link_ids that background polling should reconcile.

    Args:
        db: Database session
        limit: Maximum links per batch
        include_active: Also poll links without a buyer signal

    Returns:
        link_ids, least recently updated first
    """
    statuses = [LinkStatus.PENDING_VERIFICATION]
    if include_active:
        statuses.append(LinkStatus.ACTIVE)

    result = await db.execute(
        select(PaymentLink.link_id)
        .where(PaymentLink.status.in_(statuses), PaymentLink.is_active.is_(True))
        .order_by(PaymentLink.updated_at.asc())
        .limit(limit)
    )
    return list(result.scalars().all())
