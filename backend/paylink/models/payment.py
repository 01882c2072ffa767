"""Payment model: the durable claim of one on-chain transfer."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
import uuid

from sqlalchemy import String, Numeric, BigInteger, ForeignKey, TIMESTAMP, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from paylink.database import Base
from paylink.models.payment_link import Network


class PaymentStatus(str, Enum):
    """Payment status enum."""
    CONFIRMED = "confirmed"


class Payment(Base):
    """
    Append-only record binding one transaction hash to one payment link.

    The unique constraint on tx_hash is the single serialization point for
    concurrent reconciliations: a hash backs at most one Payment, ever.
    """

    __tablename__ = "payments"

    # Primary Key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    # Chain-native transaction identifier (EVM hash or Solana signature)
    tx_hash: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        nullable=False,
        index=True
    )

    payment_link_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("payment_links.id"),
        nullable=False,
        index=True
    )

    # Transfer Details
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    network: Mapped[Network] = mapped_column(SQLEnum(Network), nullable=False)
    from_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    to_address: Mapped[str] = mapped_column(String(64), nullable=False)
    block_reference: Mapped[int | None] = mapped_column(BigInteger, nullable=True)  # Block number or slot
    block_timestamp: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus),
        nullable=False,
        default=PaymentStatus.CONFIRMED
    )

    # Timestamps
    confirmed_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        index=True
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, tx_hash={self.tx_hash[:10]}..., amount={self.amount}, network={self.network})>"
