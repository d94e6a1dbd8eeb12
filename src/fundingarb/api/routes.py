"""JSON endpoints over the snapshot service, reconciler and execution engine."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from fundingarb.exceptions import InvalidTradeIntent, SymbolResolutionError
from fundingarb.models import TradeIntent

log = structlog.get_logger(__name__)

router = APIRouter()


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


@router.get("/data")
async def get_data(request: Request, refresh: bool = False) -> JSONResponse:
    """Funding rates and ranked opportunities, cached for the configured TTL."""
    service = request.app.state.snapshot_service
    settings = request.app.state.settings

    snapshot = await service.get_snapshot(force_refresh=refresh)
    content = snapshot.to_dict()
    content["cache_age_seconds"] = service.cache.age_seconds()
    if settings is not None:
        content["policy"] = settings.arbitrage.policy
        content["arbitrage_threshold"] = str(settings.arbitrage.threshold)
    return JSONResponse(content=content)


@router.get("/positions")
async def get_positions(request: Request) -> JSONResponse:
    """Flat list of open positions across every enabled exchange."""
    reconciler = request.app.state.reconciler
    positions = await reconciler.fetch_positions()
    return JSONResponse(content={
        "success": True,
        "positions": [position.to_dict() for position in positions if position.contracts > 0],
    })


@router.get("/positions/hedged")
async def get_hedged_positions(request: Request) -> JSONResponse:
    """Open positions grouped by base token with hedge status."""
    reconciler = request.app.state.reconciler
    groups = await reconciler.reconcile()
    return JSONResponse(content={
        "success": True,
        "groups": [group.to_dict() for group in groups],
    })


@router.post("/arbitrage/execute")
async def execute_arbitrage(request: Request) -> JSONResponse:
    """Open a long/short hedge; partial or failed legs come back with success=false."""
    engine = request.app.state.engine
    settings = request.app.state.settings
    payload = await _json_body(request)

    try:
        if settings is not None:
            intent = TradeIntent.from_payload(
                payload,
                default_leverage=settings.arbitrage.default_leverage,
                default_slippage=settings.arbitrage.default_slippage_percent,
            )
        else:
            intent = TradeIntent.from_payload(payload)
        report = await engine.execute(intent)
    except (InvalidTradeIntent, SymbolResolutionError) as e:
        log.warning("execute_request_rejected", error=str(e), payload=payload)
        return JSONResponse(
            content={"success": False, "error": str(e), "error_type": type(e).__name__},
            status_code=400,
        )

    log.info(
        "execute_request_completed",
        symbol=report.symbol,
        state=report.state.value,
        success=report.success,
    )
    return JSONResponse(content=report.to_dict())


@router.post("/positions/close-hedged")
async def close_hedged(request: Request) -> JSONResponse:
    """Close every open position in one base token across all exchanges."""
    engine = request.app.state.engine
    payload = await _json_body(request)

    base_symbol = payload.get("baseSymbol") or payload.get("base_symbol")
    if not base_symbol or not isinstance(base_symbol, str):
        return JSONResponse(
            content={"success": False, "error": "Missing required field: baseSymbol"},
            status_code=400,
        )

    report = await engine.close_hedge(base_symbol)
    return JSONResponse(content=report.to_dict())


@router.post("/positions/close-all")
async def close_all(request: Request) -> JSONResponse:
    """Close every non-zero position on every enabled exchange."""
    engine = request.app.state.engine
    report = await engine.close_all()
    return JSONResponse(content=report.to_dict())
