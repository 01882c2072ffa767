"""Payment link request and response schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

from paylink.models.payment_link import LinkStatus, Network
from paylink.core.wallets import normalize_wallet_address


class PaymentLinkCreate(BaseModel):
    """Seller request to publish a payment link."""

    wallet_address: str = Field(..., min_length=32, max_length=64, description="Receiving wallet address")
    expected_amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=6,
        description="Amount in USDC (e.g., 50.00)"
    )
    network: Network = Field(..., description="Settlement network: polygon or solana")
    product_title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def validate_wallet_for_network(self) -> "PaymentLinkCreate":
        """Wallet address must be valid on the selected network."""
        self.wallet_address = normalize_wallet_address(self.network, self.wallet_address)
        return self


class PaymentLinkResponse(BaseModel):
    """Public view of a payment link."""

    link_id: str
    wallet_address: str
    expected_amount: Decimal
    network: Network
    product_title: str
    description: Optional[str]
    status: LinkStatus
    is_active: bool
    created_at: datetime
    confirmed_at: Optional[datetime]

    class Config:
        from_attributes = True


class BuyerInfo(BaseModel):
    """Buyer details submitted with the "I paid" signal."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    address_line_1: Optional[str] = Field(default=None, max_length=255)
    address_line_2: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)


class PaymentResponse(BaseModel):
    """A confirmed on-chain payment."""

    tx_hash: str
    amount: Decimal
    network: Network
    from_address: Optional[str]
    to_address: str
    block_reference: Optional[int]
    block_timestamp: Optional[datetime]
    status: str
    confirmed_at: datetime

    class Config:
        from_attributes = True


class VerificationResponse(BaseModel):
    """Result of a reconciliation attempt, safe to show to buyers."""

    verified: bool
    status: Optional[LinkStatus]
    message: str
    payment: Optional[PaymentResponse] = None
