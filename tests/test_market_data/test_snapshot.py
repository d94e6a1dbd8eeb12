"""Tests for SnapshotCache staleness and SnapshotService refresh behaviour."""

import pytest

from fundingarb.exceptions import AdapterUnavailable
from fundingarb.market_data.aggregator import RateAggregator
from fundingarb.market_data.opportunity_detector import OpportunityDetector
from fundingarb.market_data.snapshot import SnapshotCache, SnapshotService
from fundingarb.models import ExchangeId, FundingSnapshot


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _snapshot(generated_at: int = 0) -> FundingSnapshot:
    return FundingSnapshot(funding_rates=[], arbitrage_opportunities=[], generated_at=generated_at)


# ---------------------------------------------------------------------------
# SnapshotCache
# ---------------------------------------------------------------------------


class TestSnapshotCache:
    def test_empty_is_stale(self) -> None:
        cache = SnapshotCache(ttl_seconds=60, clock=FakeClock())
        assert cache.is_stale()
        assert cache.get() is None
        assert cache.age_seconds() is None

    def test_fresh_within_ttl(self) -> None:
        clock = FakeClock()
        cache = SnapshotCache(ttl_seconds=60, clock=clock)
        snapshot = _snapshot()
        cache.put(snapshot)
        clock.now += 59.9
        assert cache.get() is snapshot
        assert cache.age_seconds() == pytest.approx(59.9, abs=0.01)

    def test_stale_after_ttl(self) -> None:
        clock = FakeClock()
        cache = SnapshotCache(ttl_seconds=60, clock=clock)
        cache.put(_snapshot())
        clock.now += 60.5
        assert cache.is_stale()
        assert cache.get() is None

    def test_put_replaces_whole_slot(self) -> None:
        clock = FakeClock()
        cache = SnapshotCache(ttl_seconds=60, clock=clock)
        cache.put(_snapshot(1))
        clock.now += 50
        second = _snapshot(2)
        cache.put(second)
        clock.now += 50
        assert cache.get() is second

    def test_invalidate(self) -> None:
        cache = SnapshotCache(ttl_seconds=60, clock=FakeClock())
        cache.put(_snapshot())
        cache.invalidate()
        assert cache.get() is None


# ---------------------------------------------------------------------------
# SnapshotService
# ---------------------------------------------------------------------------


def _raw(symbol: str, rate: float) -> dict:
    return {"symbol": symbol, "fundingRate": rate, "fundingTimestamp": 1_700_000_000_000}


@pytest.fixture
def service_parts(make_registry):
    registry, adapters = make_registry(ExchangeId.HYPERLIQUID, ExchangeId.GATE)
    adapters[ExchangeId.HYPERLIQUID].get_funding_rates.return_value = {
        "BTC/USDC:USDC": _raw("BTC/USDC:USDC", 0.0001),
    }
    adapters[ExchangeId.GATE].get_funding_rates.return_value = {
        "BTC/USDT:USDT": _raw("BTC/USDT:USDT", 0.0006),
    }
    clock = FakeClock()
    service = SnapshotService(
        RateAggregator(registry),
        OpportunityDetector(),
        SnapshotCache(ttl_seconds=60, clock=clock),
    )
    return service, adapters, clock


class TestSnapshotService:
    @pytest.mark.asyncio
    async def test_first_call_runs_pipeline(self, service_parts) -> None:
        service, _, _ = service_parts
        snapshot = await service.get_snapshot()
        assert len(snapshot.funding_rates) == 2
        assert len(snapshot.arbitrage_opportunities) == 1
        assert snapshot.exchange_names == [ExchangeId.HYPERLIQUID, ExchangeId.GATE]
        assert snapshot.failed_exchanges == {}

    @pytest.mark.asyncio
    async def test_cached_within_ttl(self, service_parts) -> None:
        service, adapters, clock = service_parts
        first = await service.get_snapshot()
        clock.now += 30
        second = await service.get_snapshot()
        assert second is first
        assert adapters[ExchangeId.GATE].get_funding_rates.await_count == 1

    @pytest.mark.asyncio
    async def test_refetch_after_ttl(self, service_parts) -> None:
        service, adapters, clock = service_parts
        first = await service.get_snapshot()
        clock.now += 61
        second = await service.get_snapshot()
        assert second is not first
        assert adapters[ExchangeId.GATE].get_funding_rates.await_count == 2

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_cache(self, service_parts) -> None:
        service, adapters, _ = service_parts
        await service.get_snapshot()
        await service.get_snapshot(force_refresh=True)
        assert adapters[ExchangeId.HYPERLIQUID].get_funding_rates.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_exchange_reported(self, service_parts) -> None:
        service, adapters, _ = service_parts
        adapters[ExchangeId.GATE].get_funding_rates.side_effect = AdapterUnavailable("timeout")
        snapshot = await service.get_snapshot()
        assert [r.exchange for r in snapshot.funding_rates] == [ExchangeId.HYPERLIQUID]
        assert snapshot.arbitrage_opportunities == []
        assert "gate" in snapshot.failed_exchanges
        assert snapshot.to_dict()["exchange_names"] == ["hyperliquid", "gate"]
