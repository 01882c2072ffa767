"""Candidate matcher: which fetched transfers plausibly pay an invoice."""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from paylink.config import settings
from paylink.services.chains import TransferCandidate

logger = logging.getLogger(__name__)


class CandidateMatcher:
    """
    Filters transfers by absolute amount tolerance and a time window.

    The tolerance absorbs integer/decimal conversion rounding; it is a small
    absolute USDC value applied identically on every network, never a
    percentage of the invoice.
    """

    def __init__(
        self,
        tolerance: Optional[Decimal] = None,
        timeframe: Optional[timedelta] = None
    ):
        self.tolerance = tolerance if tolerance is not None else settings.AMOUNT_TOLERANCE_USDC
        self.timeframe = timeframe if timeframe is not None else timedelta(minutes=settings.MATCH_TIMEFRAME_MINUTES)

    def window_start(self, now: Optional[datetime] = None, timeframe: Optional[timedelta] = None) -> datetime:
        """Earliest eligible transfer timestamp (naive UTC)."""
        return (now or datetime.utcnow()) - (timeframe if timeframe is not None else self.timeframe)

    def amount_matches(self, amount: Decimal, expected_amount: Decimal) -> bool:
        return abs(amount - expected_amount) <= self.tolerance

    def match(
        self,
        candidates: Iterable[TransferCandidate],
        expected_amount: Decimal,
        window_start: datetime
    ) -> list[TransferCandidate]:
        """
        Return the transfers that could pay expected_amount.

        A transfer qualifies when it has a hash, its amount is within the
        tolerance of expected_amount and it happened at or after window_start.
        Result order is not significant.
        """
        expected_amount = Decimal(expected_amount)
        matches = [
            candidate
            for candidate in candidates
            if candidate.hash
            and self.amount_matches(candidate.amount, expected_amount)
            and candidate.timestamp >= window_start
        ]

        logger.debug(
            f"Matched {len(matches)} transfer(s) for amount={expected_amount} "
            f"tolerance={self.tolerance} since={window_start.isoformat()}"
        )
        return matches


# Singleton instance
candidate_matcher = CandidateMatcher()
