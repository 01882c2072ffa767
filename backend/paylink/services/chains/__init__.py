"""Chain adapters turning provider responses into TransferCandidates."""

from paylink.services.chains.base import (
    ChainAdapter,
    TransferCandidate,
    TransferParseError,
    UpstreamUnavailable,
)
from paylink.services.chains.polygon import PolygonAdapter
from paylink.services.chains.solana import SolanaAdapter

__all__ = [
    "ChainAdapter",
    "TransferCandidate",
    "TransferParseError",
    "UpstreamUnavailable",
    "PolygonAdapter",
    "SolanaAdapter",
]
