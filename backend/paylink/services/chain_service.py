"""Chain service: one transfer adapter per supported network."""

import asyncio
import logging
from typing import Optional

from paylink.models.payment_link import Network
from paylink.services.chains import ChainAdapter, PolygonAdapter, SolanaAdapter

logger = logging.getLogger(__name__)


class ChainService:
    """Holds one adapter per supported network."""

    def __init__(self, adapters: Optional[dict[Network, ChainAdapter]] = None):
        if adapters is None:
            adapters = {
                Network.POLYGON: PolygonAdapter(),
                Network.SOLANA: SolanaAdapter(),
            }
        self.adapters = adapters

    def get_adapter(self, network: Network) -> ChainAdapter:
        try:
            return self.adapters[network]
        except KeyError:
            raise ValueError(f"No chain adapter configured for network {network}")

    async def health_check(self) -> dict[str, bool]:
        """Probe every configured provider."""
        networks = list(self.adapters)
        results = await asyncio.gather(
            *(self.adapters[network].health_check() for network in networks)
        )
        health = {network.value: healthy for network, healthy in zip(networks, results)}
        logger.info(f"Chain provider health: {health}")
        return health

    async def aclose(self) -> None:
        for adapter in self.adapters.values():
            await adapter.aclose()


# Singleton instance
chain_service = ChainService()
