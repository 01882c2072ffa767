"""Buyer details recorded with the "I paid" signal."""

from datetime import datetime
import uuid

from sqlalchemy import String, ForeignKey, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paylink.database import Base


class Buyer(Base):
    """Buyer contact and shipping details for a payment link."""

    __tablename__ = "buyers"
    __table_args__ = (
        UniqueConstraint("payment_link_id", "email", name="uq_buyers_link_email"),
    )

    # Primary Key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    # Foreign Key
    payment_link_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("payment_links.id"),
        nullable=False,
        index=True
    )

    # Contact
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Address
    address_line_1: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address_line_2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )

    # Relationships
    payment_link: Mapped["PaymentLink"] = relationship(
        "PaymentLink",
        back_populates="buyers"
    )

    def __repr__(self) -> str:
        return f"<Buyer(id={self.id}, payment_link_id={self.payment_link_id})>"
