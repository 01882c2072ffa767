"""Background polling that reconciles links awaiting on-chain confirmation."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paylink.config import settings
from paylink.services.payment_link_service import list_links_awaiting_verification
from paylink.services.payment_verification_service import (
    PaymentVerificationService,
    ReconcileOutcome,
    payment_verification_service,
)

logger = logging.getLogger(__name__)


class ReconciliationPoller:
    """
    Periodically reconciles links in pending_verification.

    Each link is reconciled in its own session so one failure cannot affect
    the others. Running this alongside buyer-triggered verification is safe:
    reconciliation is idempotent and claims are arbitrated by the store.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        verifier: Optional[PaymentVerificationService] = None,
        interval_seconds: Optional[int] = None,
        batch_size: Optional[int] = None,
        include_active: bool = False
    ):
        self.session_factory = session_factory
        self.verifier = verifier or payment_verification_service
        self.interval_seconds = interval_seconds or settings.POLL_INTERVAL_SECONDS
        self.batch_size = batch_size or settings.POLL_BATCH_SIZE
        self.include_active = include_active

        self._task: Optional[asyncio.Task] = None
        self.stats = {
            "cycles": 0,
            "links_checked": 0,
            "payments_confirmed": 0,
            "errors": 0,
            "last_cycle_at": None,
        }

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the polling loop as a background task."""
        if self.is_running:
            logger.warning("Reconciliation poller already running")
            return

        self._task = asyncio.create_task(self._run())
        logger.info(f"Reconciliation poller started (interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        if not self._task:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reconciliation poller stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.run_cycle()
            except Exception as e:
                self.stats["errors"] += 1
                logger.error(f"Error in reconciliation polling cycle: {e}", exc_info=True)

            await asyncio.sleep(self.interval_seconds)

    async def run_cycle(self) -> int:
        """
        Reconcile one batch of waiting links.

        Returns:
            Number of links confirmed during this cycle
        """
        async with self.session_factory() as db:
            link_ids = await list_links_awaiting_verification(
                db, limit=self.batch_size, include_active=self.include_active
            )

        if not link_ids:
            logger.debug("No payment links awaiting verification")
        else:
            logger.info(f"Polling {len(link_ids)} payment link(s) awaiting verification")

        confirmed = 0
        for link_id in link_ids:
            try:
                async with self.session_factory() as db:
                    result = await self.verifier.reconcile(db, link_id)
            except Exception as e:
                self.stats["errors"] += 1
                logger.error(f"Polling reconcile failed for link {link_id}: {e}", exc_info=True)
                continue

            self.stats["links_checked"] += 1
            if result.outcome == ReconcileOutcome.CONFIRMED:
                confirmed += 1
            elif result.outcome == ReconcileOutcome.PERSISTENCE_FAILURE:
                self.stats["errors"] += 1

        self.stats["cycles"] += 1
        self.stats["payments_confirmed"] += confirmed
        self.stats["last_cycle_at"] = datetime.utcnow()
        return confirmed
