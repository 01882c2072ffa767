"""Payment link database model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List
import secrets
import uuid

from sqlalchemy import String, Text, Numeric, Boolean, TIMESTAMP, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paylink.database import Base


class Network(str, Enum):
    """Supported settlement networks."""
    POLYGON = "polygon"
    SOLANA = "solana"


class LinkStatus(str, Enum):
    """Payment link lifecycle status."""
    ACTIVE = "active"  # Shareable, awaiting buyer action
    PENDING_VERIFICATION = "pending_verification"  # Buyer signalled "I paid"
    CONFIRMED = "confirmed"  # Terminal: backed by exactly one Payment


def generate_link_id() -> str:
    """Opaque, externally shareable link identifier (16 random bytes, hex)."""
    return secrets.token_hex(16)


class PaymentLink(Base):
    """A seller's request to be paid a USDC amount on one network."""

    __tablename__ = "payment_links"

    # Primary Key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    link_id: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
        index=True,
        default=generate_link_id
    )

    # Payment Request
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    expected_amount: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    network: Mapped[Network] = mapped_column(SQLEnum(Network), nullable=False, index=True)

    # Display
    product_title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Lifecycle
    status: Mapped[LinkStatus] = mapped_column(
        SQLEnum(LinkStatus),
        nullable=False,
        default=LinkStatus.ACTIVE,
        index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    # Relationships
    buyers: Mapped[List["Buyer"]] = relationship(
        "Buyer",
        back_populates="payment_link"
    )

    def __repr__(self) -> str:
        return f"<PaymentLink(link_id={self.link_id}, network={self.network}, status={self.status})>"
