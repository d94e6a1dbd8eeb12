"""Short-TTL memoization of the aggregated funding snapshot.

SnapshotCache is a single in-memory slot: the whole (snapshot, produced_at)
pair is replaced at once, never partially updated. SnapshotService runs the
aggregate -> detect pipeline to completion before replacing the slot.
Concurrent refreshes are not coalesced; two callers racing past a stale slot
each run the pipeline and the last writer wins.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

from fundingarb.logging import get_logger
from fundingarb.market_data.aggregator import RateAggregator
from fundingarb.market_data.opportunity_detector import OpportunityDetector
from fundingarb.models import ExchangeId, FundingSnapshot, now_ms

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Slot:
    data: FundingSnapshot
    produced_at_ms: int


class SnapshotCache:
    """Single-slot cache with staleness detection.

    Args:
        ttl_seconds: Maximum age before the slot is considered stale.
        clock: Returns the current time in seconds (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl_ms = int(ttl_seconds * 1000)
        self._clock = clock
        self._slot: _Slot | None = None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_ms / 1000

    def age_seconds(self) -> float | None:
        """Seconds since the slot was filled, or None when empty."""
        slot = self._slot
        if slot is None:
            return None
        return (self._now_ms() - slot.produced_at_ms) / 1000

    def is_stale(self) -> bool:
        """True when the slot is empty or older than the TTL."""
        slot = self._slot
        if slot is None:
            return True
        return self._now_ms() - slot.produced_at_ms > self._ttl_ms

    def get(self) -> FundingSnapshot | None:
        """Return the cached snapshot if still fresh, else None."""
        if self.is_stale():
            return None
        return self._slot.data if self._slot is not None else None

    def put(self, data: FundingSnapshot) -> None:
        """Replace the slot with a newly produced snapshot."""
        self._slot = _Slot(data=data, produced_at_ms=self._now_ms())

    def invalidate(self) -> None:
        """Drop the cached snapshot so the next read refreshes."""
        self._slot = None


class SnapshotService:
    """Serves the aggregated snapshot, refreshing it through the pipeline when stale.

    Args:
        aggregator: Fetches and normalizes rates from all adapters.
        detector: Turns rates into ranked opportunities.
        cache: Single-slot snapshot cache (shared by reference).
        exchanges: Venues to aggregate (default: every registered adapter).
    """

    def __init__(
        self,
        aggregator: RateAggregator,
        detector: OpportunityDetector,
        cache: SnapshotCache,
        exchanges: list[ExchangeId] | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._detector = detector
        self._cache = cache
        self._exchanges = exchanges

    @property
    def cache(self) -> SnapshotCache:
        return self._cache

    async def get_snapshot(self, force_refresh: bool = False) -> FundingSnapshot:
        """Return the cached snapshot unless stale or ``force_refresh``."""
        if not force_refresh:
            cached = self._cache.get()
            if cached is not None:
                return cached

        snapshot = await self.refresh()
        return snapshot

    async def refresh(self) -> FundingSnapshot:
        """Run aggregate -> detect to completion and store the result."""
        started = time.monotonic()
        result = await self._aggregator.fetch_funding_rates(self._exchanges)
        opportunities = self._detector.detect(result.rates)

        snapshot = FundingSnapshot(
            funding_rates=result.rates,
            arbitrage_opportunities=opportunities,
            generated_at=now_ms(),
            exchange_names=result.exchanges,
            failed_exchanges={
                exchange_id.value: reason for exchange_id, reason in result.failures.items()
            },
        )
        self._cache.put(snapshot)

        logger.info(
            "snapshot_refreshed",
            rates=len(snapshot.funding_rates),
            opportunities=len(opportunities),
            policy=self._detector.policy,
            failed=list(snapshot.failed_exchanges),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return snapshot
