"""Shared types and JSON-RPC plumbing for chain transfer adapters."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import httpx

from paylink.config import settings
from paylink.models.payment_link import Network

logger = logging.getLogger(__name__)


class UpstreamUnavailable(Exception):
    """The chain provider could not be reached or returned an unusable response."""

    def __init__(self, network: Network, reason: str):
        super().__init__(f"{network.value} provider unavailable: {reason}")
        self.network = network
        self.reason = reason


class TransferParseError(ValueError):
    """A single provider payload could not be turned into a transfer."""


@dataclass(frozen=True)
class TransferCandidate:
    """A normalized on-chain USDC transfer, produced fresh on every fetch."""

    hash: str
    amount: Decimal  # USDC units, decimals applied
    from_address: Optional[str]
    to_address: str
    timestamp: datetime  # Naive UTC
    network: Network
    block_reference: Optional[int] = None  # Block number (Polygon) or slot (Solana)

    @property
    def recency_key(self) -> tuple[datetime, int]:
        """Sort key ordering candidates from oldest to newest."""
        return (self.timestamp, self.block_reference or 0)


def scale_amount(raw: int | str, decimals: int | None = None) -> Decimal:
    """Convert an integer token amount to USDC units."""
    if decimals is None:
        decimals = settings.USDC_DECIMALS
    return Decimal(int(raw)) / Decimal(10 ** decimals)


class ChainAdapter:
    """
    Base class for chain adapters.

    Subclasses implement fetch_transfers() and health_check(). Transport
    failures reaching the provider are raised as UpstreamUnavailable; failures
    on individual transactions are logged and skipped by the subclass.
    """

    network: Network

    def __init__(
        self,
        rpc_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None
    ):
        self.rpc_url = rpc_url
        self.client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.CHAIN_API_TIMEOUT_SECONDS
        )

    async def fetch_transfers(self, wallet_address: str, since: datetime) -> list[TransferCandidate]:
        raise NotImplementedError

    async def health_check(self) -> bool:
        raise NotImplementedError

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        """
        Perform a JSON-RPC call and return its result.

        Raises:
            UpstreamUnavailable: On timeout, transport error, HTTP error status,
                undecodable body or a JSON-RPC error object.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params,
        }

        try:
            response = await self.client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(self.network, f"{method} timed out") from e
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(
                self.network, f"{method} returned HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise UpstreamUnavailable(self.network, f"{method} request failed: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailable(self.network, f"{method} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise UpstreamUnavailable(self.network, f"{method} returned an unexpected payload")

        if data.get("error"):
            raise UpstreamUnavailable(self.network, f"{method} RPC error: {data['error']}")

        return data.get("result")
