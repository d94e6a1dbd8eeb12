"""Entry point for the cross-exchange funding arbitrage engine.

Wires all components together and serves the JSON API. When the API is
enabled (default), components share a single asyncio event loop with
uvicorn via FastAPI's lifespan context manager. When disabled, one
aggregation pass runs and the ranked opportunities are logged.

Component wiring order (in _build_components):
1. ExchangeRegistry (one ccxt adapter per enabled exchange)
2. RateAggregator (concurrent funding-rate fan-out)
3. OpportunityDetector (pairwise or extremal policy)
4. SnapshotCache + SnapshotService (TTL-memoized aggregate -> detect)
5. PositionReconciler (hedge grouping)
6. HedgedExecutionEngine (dual-leg execution and close-out)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from fundingarb.config import AppSettings
from fundingarb.exchange.registry import build_registry
from fundingarb.execution.hedge_executor import HedgedExecutionEngine
from fundingarb.logging import get_logger, setup_logging
from fundingarb.market_data.aggregator import RateAggregator
from fundingarb.market_data.opportunity_detector import OpportunityDetector
from fundingarb.market_data.snapshot import SnapshotCache, SnapshotService
from fundingarb.models import ExchangeId
from fundingarb.position.reconciler import PositionReconciler


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all engine components from settings.

    Note: Does NOT connect the adapters -- that happens in the lifespan
    (API mode) or run() (one-shot mode).

    Args:
        settings: Application-wide settings.

    Returns:
        Dict mapping component names to instances.
    """
    logger = get_logger("fundingarb.main")
    arbitrage = settings.arbitrage

    registry = build_registry(settings)
    for exchange_id in registry.enabled:
        if exchange_id == ExchangeId.HYPERLIQUID:
            configured = bool(settings.hyperliquid.wallet_address)
        else:
            configured = bool(getattr(settings, exchange_id.value).api_key.get_secret_value())
        if not configured:
            logger.warning(
                "no_credentials_configured",
                exchange=exchange_id.value,
                note="Public endpoints (funding rates) will work. "
                "Private endpoints (positions, orders) will fail.",
            )

    aggregator = RateAggregator(registry)
    detector = OpportunityDetector(
        policy=arbitrage.policy,
        limit=arbitrage.opportunity_limit,
        threshold=arbitrage.threshold,
    )
    cache = SnapshotCache(ttl_seconds=arbitrage.cache_ttl_seconds)
    snapshot_service = SnapshotService(aggregator, detector, cache)
    reconciler = PositionReconciler(registry)
    engine = HedgedExecutionEngine(registry, arbitrage)

    return {
        "registry": registry,
        "aggregator": aggregator,
        "detector": detector,
        "cache": cache,
        "snapshot_service": snapshot_service,
        "reconciler": reconciler,
        "engine": engine,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: stores components on app.state and loads markets on every
    adapter. On shutdown: closes every adapter's session.
    """
    logger = get_logger("fundingarb.main")
    settings = app.state.settings
    components = app.state.components

    app.state.snapshot_service = components["snapshot_service"]
    app.state.reconciler = components["reconciler"]
    app.state.engine = components["engine"]

    registry = components["registry"]
    failures = await registry.connect_all()

    logger.info(
        "lifespan_started",
        exchanges=[exchange_id.value for exchange_id in registry.enabled],
        unavailable=[exchange_id.value for exchange_id in failures],
        policy=settings.arbitrage.policy,
    )

    yield

    await registry.close_all()
    logger.info("funding_arbitrage_stopped")


async def run() -> None:
    """Run the engine.

    When the API is enabled (DASHBOARD_ENABLED=true, the default), serves it
    with uvicorn and lets the lifespan manage startup/shutdown. Otherwise
    performs a single snapshot pass and logs the opportunities.
    """
    settings = AppSettings()

    setup_logging(settings.log_level)
    logger = get_logger("fundingarb.main")

    components = _build_components(settings)

    if settings.dashboard.enabled:
        from fundingarb.api.app import create_app

        app = create_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info(
            "starting_api",
            host=settings.dashboard.host,
            port=settings.dashboard.port,
        )

        config = uvicorn.Config(
            app,
            host=settings.dashboard.host,
            port=settings.dashboard.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        registry = components["registry"]
        try:
            await registry.connect_all()
            snapshot = await components["snapshot_service"].get_snapshot(force_refresh=True)
            for opportunity in snapshot.arbitrage_opportunities:
                logger.info(
                    "opportunity",
                    base_token=opportunity.base_token,
                    long_exchange=opportunity.long_exchange.value,
                    short_exchange=opportunity.short_exchange.value,
                    long_rate=str(opportunity.long_rate),
                    short_rate=str(opportunity.short_rate),
                    rate_difference=str(opportunity.rate_difference),
                )
        finally:
            await registry.close_all()
            logger.info("funding_arbitrage_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
