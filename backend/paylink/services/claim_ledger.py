"""Claim ledger: the durable set of transaction hashes already backing a Payment."""

import logging
import uuid
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.models.payment import Payment, PaymentStatus
from paylink.services.chains import TransferCandidate

logger = logging.getLogger(__name__)


class PersistenceFailure(Exception):
    """The payment store failed for a reason other than a tx_hash conflict."""


class ClaimLedger:
    """
    Existence checks and atomic claims against the payments table.

    The existence checks are an optimization only. insert_payment_if_absent()
    is the serialization point: the store's unique constraint on tx_hash
    decides which of several concurrent claimants wins.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_payment_by_hash(self, tx_hash: str) -> Optional[Payment]:
        """Return the Payment already backed by tx_hash, if any."""
        try:
            result = await self.db.execute(
                select(Payment).where(Payment.tx_hash == tx_hash)
            )
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Payment lookup failed for {tx_hash}: {e}") from e
        return result.scalar_one_or_none()

    async def find_payment_for_link(self, payment_link_id: str) -> Optional[Payment]:
        """Return the earliest confirmed Payment of a link, if any."""
        try:
            result = await self.db.execute(
                select(Payment)
                .where(Payment.payment_link_id == payment_link_id)
                .order_by(Payment.confirmed_at.asc())
                .limit(1)
            )
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Payment lookup failed for link {payment_link_id}: {e}") from e
        return result.scalar_one_or_none()

    async def claimed_hashes(self, tx_hashes: Iterable[str]) -> set[str]:
        """Subset of tx_hashes that already back some Payment."""
        tx_hashes = list(tx_hashes)
        if not tx_hashes:
            return set()

        try:
            result = await self.db.execute(
                select(Payment.tx_hash).where(Payment.tx_hash.in_(tx_hashes))
            )
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Claim lookup failed: {e}") from e
        return set(result.scalars().all())

    async def insert_payment_if_absent(
        self,
        payment_link_id: str,
        transfer: TransferCandidate
    ) -> Optional[Payment]:
        """
        Claim a transfer for a payment link inside the current transaction.

        Returns:
            The new Payment, or None if the hash was already claimed (possibly
            by a concurrent reconciliation that committed first)

        Raises:
            PersistenceFailure: On any other storage error; the transaction
                is rolled back
        """
        now = datetime.utcnow()
        payment_id = str(uuid.uuid4())
        values = {
            "id": payment_id,
            "tx_hash": transfer.hash,
            "payment_link_id": payment_link_id,
            "amount": transfer.amount,
            "network": transfer.network,
            "from_address": transfer.from_address,
            "to_address": transfer.to_address,
            "block_reference": transfer.block_reference,
            "block_timestamp": transfer.timestamp,
            "status": PaymentStatus.CONFIRMED,
            "confirmed_at": now,
            "created_at": now,
        }

        dialect = self._dialect_name()
        try:
            if dialect in ("postgresql", "sqlite"):
                dialect_insert = pg_insert if dialect == "postgresql" else sqlite_insert
                stmt = (
                    dialect_insert(Payment.__table__)
                    .values(**values)
                    .on_conflict_do_nothing(index_elements=["tx_hash"])
                )
                result = await self.db.execute(stmt)
                inserted = result.rowcount == 1
            else:
                # A conflict rolls back to the savepoint only
                try:
                    async with self.db.begin_nested():
                        await self.db.execute(insert(Payment.__table__).values(**values))
                    inserted = True
                except IntegrityError:
                    inserted = False
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceFailure(f"Claim insert failed for {transfer.hash}: {e}") from e

        if not inserted:
            logger.info(f"Transfer {transfer.hash} is already claimed; claim not inserted")
            return None

        return await self.db.get(Payment, payment_id)

    def _dialect_name(self) -> str:
        return self.db.get_bind().dialect.name

    async def commit(self) -> None:
        """Commit the claim transaction, surfacing failures as PersistenceFailure."""
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceFailure(f"Commit of payment claim failed: {e}") from e

    async def release(self) -> None:
        """Abandon the current claim transaction."""
        await self.db.rollback()
