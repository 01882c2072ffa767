"""Reconciliation of payment links against observed on-chain USDC transfers."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.config import settings
from paylink.core.events import event_bus
from paylink.models.payment import Payment
from paylink.models.payment_link import LinkStatus
from paylink.services.chain_service import ChainService, chain_service
from paylink.services.chains import TransferCandidate, UpstreamUnavailable
from paylink.services.claim_ledger import ClaimLedger, PersistenceFailure
from paylink.services.matcher_service import CandidateMatcher, candidate_matcher
from paylink.services.payment_link_service import get_payment_link, transition_link_status

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    """Why a reconciliation ended the way it did."""
    CONFIRMED = "confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
    NO_MATCH = "no_match"
    ALREADY_PROCESSED = "already_processed"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    PERSISTENCE_FAILURE = "persistence_failure"
    LINK_INACTIVE = "link_inactive"
    NOT_FOUND = "not_found"


# Buyer-facing messages; internal adapter and storage errors are only logged.
MESSAGES = {
    ReconcileOutcome.CONFIRMED: "payment confirmed",
    ReconcileOutcome.ALREADY_CONFIRMED: "payment already confirmed",
    ReconcileOutcome.NO_MATCH: "no matching payments found",
    ReconcileOutcome.ALREADY_PROCESSED: "all matching transactions already processed",
    ReconcileOutcome.UPSTREAM_UNAVAILABLE: "payment not found yet, please wait and retry",
    ReconcileOutcome.PERSISTENCE_FAILURE: "payment verification temporarily unavailable, please retry",
    ReconcileOutcome.LINK_INACTIVE: "payment link is no longer active",
    ReconcileOutcome.NOT_FOUND: "payment link not found",
}


@dataclass
class VerificationResult:
    """
    Outcome of one reconcile() call. payment is set iff verified.

    link_status is the link's status as this call left it, or None when the
    link could not be read (unknown link or storage failure).
    """

    verified: bool
    outcome: ReconcileOutcome
    message: str
    payment: Optional[Payment] = None
    link_status: Optional[LinkStatus] = None

    @classmethod
    def of(
        cls,
        outcome: ReconcileOutcome,
        payment: Optional[Payment] = None,
        link_status: Optional[LinkStatus] = None
    ) -> "VerificationResult":
        verified = outcome in (ReconcileOutcome.CONFIRMED, ReconcileOutcome.ALREADY_CONFIRMED)
        return cls(
            verified=verified,
            outcome=outcome,
            message=MESSAGES[outcome],
            payment=payment if verified else None,
            link_status=LinkStatus.CONFIRMED if verified else link_status,
        )

    @property
    def retryable(self) -> bool:
        return self.outcome in (
            ReconcileOutcome.NO_MATCH,
            ReconcileOutcome.ALREADY_PROCESSED,
            ReconcileOutcome.UPSTREAM_UNAVAILABLE,
            ReconcileOutcome.PERSISTENCE_FAILURE,
        )


class PaymentVerificationService:
    """
    Fetch, match and claim transfers for a payment link, exactly once.

    Holds no locks: candidate selection is optimistic and the claim ledger's
    unique tx_hash insert arbitrates between concurrent reconciliations. No
    state is written before that insert, so abandoning a call at any point
    leaves nothing to undo.
    """

    def __init__(
        self,
        chains: Optional[ChainService] = None,
        matcher: Optional[CandidateMatcher] = None,
        fetch_timeout: Optional[float] = None
    ):
        self.chains = chains or chain_service
        self.matcher = matcher or candidate_matcher
        self.fetch_timeout = fetch_timeout or settings.RECONCILE_FETCH_TIMEOUT_SECONDS

    async def reconcile(
        self,
        db: AsyncSession,
        link_id: str,
        timeframe: Optional[timedelta] = None,
        now: Optional[datetime] = None
    ) -> VerificationResult:
        """
        Reconcile a payment link against recent transfers to its wallet.

        Args:
            db: Database session; this call owns its transaction
            link_id: Public payment link identifier
            timeframe: Eligibility window, defaults to the matcher's
            now: Reference time (naive UTC), defaults to the current time

        Returns:
            VerificationResult; never raises for upstream, matching or
            storage problems
        """
        try:
            return await self._reconcile(db, link_id, timeframe, now)
        except (PersistenceFailure, SQLAlchemyError) as e:
            await db.rollback()
            logger.error(f"Reconcile {link_id}: storage failure: {e}")
            return VerificationResult.of(ReconcileOutcome.PERSISTENCE_FAILURE)

    async def _reconcile(
        self,
        db: AsyncSession,
        link_id: str,
        timeframe: Optional[timedelta],
        now: Optional[datetime]
    ) -> VerificationResult:
        link = await get_payment_link(db, link_id)
        if not link:
            return VerificationResult.of(ReconcileOutcome.NOT_FOUND)

        ledger = ClaimLedger(db)

        if link.status == LinkStatus.CONFIRMED:
            return await self._already_confirmed(ledger, link.id)

        if not link.is_active:
            return VerificationResult.of(ReconcileOutcome.LINK_INACTIVE, link_status=link.status)

        # Plain values only from here on: a rollback expires ORM instances.
        payment_link_pk = link.id
        wallet_address = link.wallet_address
        expected_amount = link.expected_amount
        network = link.network
        link_status = link.status

        window_start = self.matcher.window_start(now=now, timeframe=timeframe)
        adapter = self.chains.get_adapter(network)

        try:
            transfers = await asyncio.wait_for(
                adapter.fetch_transfers(wallet_address, window_start),
                timeout=self.fetch_timeout
            )
        except UpstreamUnavailable as e:
            logger.warning(f"Reconcile {link_id}: {e}")
            return VerificationResult.of(ReconcileOutcome.UPSTREAM_UNAVAILABLE, link_status=link_status)
        except asyncio.TimeoutError:
            logger.warning(
                f"Reconcile {link_id}: {network.value} fetch exceeded {self.fetch_timeout}s"
            )
            return VerificationResult.of(ReconcileOutcome.UPSTREAM_UNAVAILABLE, link_status=link_status)

        candidates = self.matcher.match(transfers, expected_amount, window_start)
        if not candidates:
            logger.info(
                f"Reconcile {link_id}: no match among {len(transfers)} transfer(s) "
                f"for {expected_amount} USDC on {network.value}"
            )
            return VerificationResult.of(ReconcileOutcome.NO_MATCH, link_status=link_status)

        claimed = await ledger.claimed_hashes(candidate.hash for candidate in candidates)
        remaining = [candidate for candidate in candidates if candidate.hash not in claimed]
        if not remaining:
            logger.info(
                f"Reconcile {link_id}: all {len(candidates)} matching transfer(s) already claimed"
            )
            return VerificationResult.of(ReconcileOutcome.ALREADY_PROCESSED, link_status=link_status)

        return await self._claim_latest(db, ledger, link_id, payment_link_pk, link_status, remaining)

    async def _claim_latest(
        self,
        db: AsyncSession,
        ledger: ClaimLedger,
        link_id: str,
        payment_link_pk: str,
        link_status: LinkStatus,
        candidates: list[TransferCandidate]
    ) -> VerificationResult:
        """
        Claim the newest candidate, falling back to older ones on conflicts.

        The newest transfer is taken as the buyer's current action; older
        ones are presumed intended for earlier invoices.
        """
        for candidate in sorted(candidates, key=lambda c: c.recency_key, reverse=True):
            payment = await ledger.insert_payment_if_absent(payment_link_pk, candidate)
            if payment is None:
                logger.info(
                    f"Reconcile {link_id}: transfer {candidate.hash} claimed concurrently, "
                    f"trying remaining candidates"
                )
                continue

            try:
                confirmed = await transition_link_status(
                    db, payment_link_pk, LinkStatus.CONFIRMED, commit=False
                )
            except SQLAlchemyError as e:
                await ledger.release()
                raise PersistenceFailure(f"Status update failed for link {link_id}: {e}") from e

            if not confirmed:
                # A concurrent reconcile confirmed this link with another
                # transfer; leave this one unclaimed for other invoices.
                await ledger.release()
                logger.info(
                    f"Reconcile {link_id}: link confirmed concurrently, released {candidate.hash}"
                )
                return await self._already_confirmed(ledger, payment_link_pk)

            await ledger.commit()

            logger.info(
                f"Reconcile {link_id}: confirmed {candidate.amount} USDC "
                f"on {candidate.network.value} via {candidate.hash}"
            )

            await event_bus.publish("payment_confirmed", {
                "link_id": link_id,
                "tx_hash": candidate.hash,
                "amount": str(candidate.amount),
                "network": candidate.network.value,
            })
            await event_bus.publish("payment_link_status_changed", {
                "link_id": link_id,
                "to": LinkStatus.CONFIRMED.value,
            })

            return VerificationResult.of(ReconcileOutcome.CONFIRMED, payment)

        await ledger.release()
        return VerificationResult.of(ReconcileOutcome.ALREADY_PROCESSED, link_status=link_status)

    async def _already_confirmed(self, ledger: ClaimLedger, payment_link_pk: str) -> VerificationResult:
        payment = await ledger.find_payment_for_link(payment_link_pk)
        return VerificationResult.of(ReconcileOutcome.ALREADY_CONFIRMED, payment)


# Singleton instance
payment_verification_service = PaymentVerificationService()
