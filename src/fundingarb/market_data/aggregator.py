"""Rate aggregator -- concurrent funding-rate fan-out across all enabled venues.

Every adapter's get_funding_rates() runs concurrently. One venue failing
(network error, timeout, unsupported batch call, a row it cannot normalize) only
removes that venue's rows from the pass; the failure is logged and reported
alongside the rates, never raised.

Rows are normalized into FundingRate. Absent prices default to 0 (a market
may simply have no index price) and absent settlement timestamps default to
now; downstream ranking relies on those defaults.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fundingarb.concurrency import gather_outcomes
from fundingarb.exchange.registry import ExchangeRegistry
from fundingarb.exchange.symbols import extract_base_token
from fundingarb.logging import get_logger
from fundingarb.models import ExchangeId, FundingRate, now_ms, to_decimal

logger = get_logger(__name__)


@dataclass(frozen=True)
class AggregationResult:
    """Normalized rates from every venue that answered, plus why the others did not."""

    rates: list[FundingRate]
    failures: dict[ExchangeId, str] = field(default_factory=dict)
    exchanges: list[ExchangeId] = field(default_factory=list)  # venues queried


def _first_present(*values: object) -> object:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def normalize_funding_rate(
    exchange: ExchangeId, raw: dict, fallback_symbol: str = ""
) -> FundingRate | None:
    """Convert one ccxt funding-rate structure into a FundingRate.

    Returns None when the row carries no symbol at all.
    """
    symbol = raw.get("symbol") or fallback_symbol
    if not symbol:
        return None
    info = raw.get("info") or {}

    funding_timestamp = _first_present(raw.get("fundingTimestamp"))
    try:
        timestamp_ms = int(funding_timestamp) if funding_timestamp is not None else now_ms()
    except (TypeError, ValueError):
        timestamp_ms = now_ms()

    funding_datetime = raw.get("fundingDatetime") or ""
    if not funding_datetime:
        try:
            funding_datetime = datetime.fromtimestamp(
                timestamp_ms / 1000, tz=timezone.utc
            ).isoformat()
        except (OverflowError, OSError, ValueError):
            funding_datetime = ""

    return FundingRate(
        exchange=exchange,
        symbol=symbol,
        base_token=extract_base_token(symbol),
        funding_rate=to_decimal(
            _first_present(raw.get("fundingRate"), raw.get("rate"), info.get("funding"))
        ),
        mark_price=abs(
            to_decimal(
                _first_present(raw.get("markPrice"), info.get("markPx"), info.get("markPrice"))
            )
        ),
        index_price=abs(
            to_decimal(
                _first_present(
                    raw.get("indexPrice"), info.get("oraclePx"), info.get("indexPrice")
                )
            )
        ),
        funding_timestamp=timestamp_ms,
        funding_datetime=funding_datetime,
        interval=raw.get("interval") or "8h",
    )


def _normalize_rows(exchange: ExchangeId, raw_rates: dict | list) -> list[FundingRate]:
    """Normalize one adapter's response, keyed by symbol or as a plain list."""
    rows = raw_rates.items() if isinstance(raw_rates, dict) else enumerate(raw_rates)
    rates = []
    for key, raw in rows:
        if not isinstance(raw, dict):
            continue
        fallback = key if isinstance(key, str) else ""
        rate = normalize_funding_rate(exchange, raw, fallback_symbol=fallback)
        if rate is not None:
            rates.append(rate)
    return rates


class RateAggregator:
    """Collects and normalizes funding rates from every enabled adapter.

    Args:
        registry: Exchange registry providing the adapters.
    """

    def __init__(self, registry: ExchangeRegistry) -> None:
        self._registry = registry

    async def fetch_funding_rates(
        self, exchanges: Iterable[ExchangeId] | None = None
    ) -> AggregationResult:
        """Fetch every adapter's rates concurrently and merge the survivors.

        Returns only after every adapter call has resolved or failed. Rows are
        merged in adapter-enumeration order.

        Args:
            exchanges: Venues to query (default: every registered adapter).
        """
        pairs = self._registry.items(exchanges)
        outcomes = await gather_outcomes(
            (exchange_id, adapter.get_funding_rates()) for exchange_id, adapter in pairs
        )

        rates: list[FundingRate] = []
        failures: dict[ExchangeId, str] = {}

        for outcome in outcomes:
            exchange_id = outcome.key
            if not outcome.ok:
                failures[exchange_id] = outcome.reason
                logger.warning(
                    "funding_fetch_failed",
                    exchange=exchange_id.value,
                    error=outcome.reason,
                )
                continue

            try:
                adapter_rates = _normalize_rows(exchange_id, outcome.result or {})
            except Exception as exc:
                failures[exchange_id] = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "funding_normalize_failed",
                    exchange=exchange_id.value,
                    error=failures[exchange_id],
                )
                continue
            rates.extend(adapter_rates)
            logger.debug(
                "funding_rates_normalized", exchange=exchange_id.value, count=len(adapter_rates)
            )

        logger.info(
            "funding_rates_aggregated",
            total=len(rates),
            exchanges=[exchange_id.value for exchange_id, _ in pairs],
            failed=[exchange_id.value for exchange_id in failures],
        )
        return AggregationResult(
            rates=rates,
            failures=failures,
            exchanges=[exchange_id for exchange_id, _ in pairs],
        )
