"""Polygon USDC transfer adapter backed by the Alchemy asset transfers API."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from paylink.config import settings
from paylink.models.payment_link import Network
from paylink.services.chains.base import (
    ChainAdapter,
    TransferCandidate,
    TransferParseError,
    UpstreamUnavailable,
    scale_amount,
)

logger = logging.getLogger(__name__)


class AlchemyRawContract(BaseModel):
    """Raw token contract data attached to an asset transfer."""

    value: Optional[str] = None  # Hex-encoded integer amount
    address: Optional[str] = None
    decimal: Optional[str] = None  # Hex-encoded token decimals


class AlchemyTransferMetadata(BaseModel):
    """Metadata returned when withMetadata is requested."""

    model_config = ConfigDict(populate_by_name=True)

    block_timestamp: datetime = Field(alias="blockTimestamp")


class AlchemyAssetTransfer(BaseModel):
    """One entry of alchemy_getAssetTransfers' result.transfers."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hash: str
    block_num: str = Field(alias="blockNum")
    from_address: Optional[str] = Field(default=None, alias="from")
    to_address: Optional[str] = Field(default=None, alias="to")
    value: Optional[Decimal] = None
    raw_contract: AlchemyRawContract = Field(default_factory=AlchemyRawContract, alias="rawContract")
    metadata: AlchemyTransferMetadata

    def amount(self) -> Decimal:
        """Amount in USDC units, preferring the exact raw integer value."""
        if self.raw_contract.value:
            decimals = (
                int(self.raw_contract.decimal, 16)
                if self.raw_contract.decimal
                else settings.USDC_DECIMALS
            )
            return scale_amount(int(self.raw_contract.value, 16), decimals)
        if self.value is not None:
            return self.value
        raise TransferParseError(f"Transfer {self.hash} carries no amount")

    def to_candidate(self) -> TransferCandidate:
        if not self.to_address:
            raise TransferParseError(f"Transfer {self.hash} has no recipient")

        timestamp = self.metadata.block_timestamp
        if timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)

        return TransferCandidate(
            hash=self.hash.lower(),
            amount=self.amount(),
            from_address=self.from_address.lower() if self.from_address else None,
            to_address=self.to_address.lower(),
            timestamp=timestamp,
            network=Network.POLYGON,
            block_reference=int(self.block_num, 16),
        )


class PolygonAdapter(ChainAdapter):
    """Fetches incoming USDC (ERC-20) transfers for a wallet on Polygon."""

    network = Network.POLYGON

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        usdc_address: Optional[str] = None,
        max_transfers: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None
    ):
        super().__init__(rpc_url or settings.POLYGON_RPC_URL, client=client, timeout=timeout)
        self.usdc_address = (usdc_address or settings.POLYGON_USDC_ADDRESS).lower()
        self.max_transfers = max_transfers or settings.POLYGON_MAX_TRANSFERS

    async def fetch_transfers(self, wallet_address: str, since: datetime) -> list[TransferCandidate]:
        """
        Fetch USDC transfers received by wallet_address at or after since.

        Args:
            wallet_address: Recipient EVM address (any case)
            since: Naive UTC lower bound on the block timestamp

        Returns:
            Normalized transfers; malformed entries are skipped

        Raises:
            UpstreamUnavailable: If the Alchemy API cannot be queried
        """
        wallet = wallet_address.lower()
        params = [{
            "fromBlock": "0x0",
            "toBlock": "latest",
            "toAddress": wallet,
            "category": ["erc20"],
            "contractAddresses": [self.usdc_address],
            "withMetadata": True,
            "excludeZeroValue": True,
            "maxCount": hex(self.max_transfers),
            "order": "desc",
        }]

        result = await self._rpc("alchemy_getAssetTransfers", params)
        if not isinstance(result, dict):
            raise UpstreamUnavailable(self.network, "alchemy_getAssetTransfers returned no result")

        raw_transfers = result.get("transfers") or []
        logger.debug(f"Polygon returned {len(raw_transfers)} raw transfers for {wallet}")

        candidates: list[TransferCandidate] = []
        for raw in raw_transfers:
            try:
                transfer = AlchemyAssetTransfer.model_validate(raw)
                if (
                    transfer.raw_contract.address
                    and transfer.raw_contract.address.lower() != self.usdc_address
                ):
                    continue
                candidate = transfer.to_candidate()
            except (ValidationError, TransferParseError, ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed Polygon transfer for {wallet}: {e}")
                continue

            if candidate.to_address != wallet:
                continue
            if candidate.timestamp < since:
                continue
            candidates.append(candidate)

        return candidates

    async def health_check(self) -> bool:
        try:
            return await self._rpc("eth_blockNumber", []) is not None
        except UpstreamUnavailable as e:
            logger.warning(f"Polygon health check failed: {e}")
            return False
