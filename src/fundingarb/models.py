"""Shared data models for the cross-exchange funding arbitrage engine.

CRITICAL: All rates, prices and sizes use Decimal. Never use float for prices,
quantities, or funding rates. Convert external values via Decimal(str(value)).

Every model here is a value object: produced fresh by one component and
copied, never mutated, by the next.
"""

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from fundingarb.exceptions import InvalidTradeIntent, UnsupportedExchangeError


class ExchangeId(str, Enum):
    """Closed set of supported venues."""

    HYPERLIQUID = "hyperliquid"
    GATE = "gate"
    BITGET = "bitget"
    BINANCE = "binance"

    @classmethod
    def parse(cls, name: str) -> "ExchangeId":
        """Look up an exchange by name, case-insensitively.

        Raises:
            UnsupportedExchangeError: If the name is not a supported venue.
        """
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            raise UnsupportedExchangeError(f"Unsupported exchange: {name}") from None


class OrderSide(str, Enum):
    """Order direction."""

    BUY = "buy"
    SELL = "sell"


class PositionSide(str, Enum):
    """Position direction."""

    LONG = "long"
    SHORT = "short"

    @property
    def closing_side(self) -> OrderSide:
        """Order side that reduces a position on this side."""
        return OrderSide.SELL if self is PositionSide.LONG else OrderSide.BUY


class ExecutionState(str, Enum):
    """Lifecycle of a single hedged execution request."""

    REQUESTED = "requested"
    LEGS_DISPATCHED = "legs_dispatched"
    BOTH_FILLED = "both_filled"
    PARTIAL_FILLED = "partial_filled"
    BOTH_FAILED = "both_failed"
    REPORTED = "reported"


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce an external numeric value to a finite Decimal.

    None, empty strings, unparsable values and NaN/Infinity all become
    ``default``.
    """
    if value is None or value == "":
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not result.is_finite():
        return default
    return result


def _jsonable(value: Any) -> Any:
    """Recursively convert Decimal and Enum values for JSON serialization."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


@dataclass(frozen=True)
class FundingRate:
    """One exchange's funding data for one perpetual instrument."""

    exchange: ExchangeId
    symbol: str  # exchange-native, e.g. "BTC/USDC:USDC"
    base_token: str  # e.g. "BTC"
    funding_rate: Decimal  # per period, not annualized
    mark_price: Decimal = Decimal("0")
    index_price: Decimal = Decimal("0")
    funding_timestamp: int = field(default_factory=now_ms)  # next settlement, ms
    funding_datetime: str = ""
    interval: str = "8h"

    def to_dict(self) -> dict:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """Candidate hedge pair for one base token: long the low rate, short the high."""

    base_token: str
    long_exchange: ExchangeId
    short_exchange: ExchangeId
    long_rate: Decimal
    short_rate: Decimal
    rate_difference: Decimal  # short_rate - long_rate, never negative
    long_symbol: str = ""
    short_symbol: str = ""
    long_mark_price: Decimal = Decimal("0")
    long_index_price: Decimal = Decimal("0")
    short_mark_price: Decimal = Decimal("0")
    short_index_price: Decimal = Decimal("0")
    long_next_funding: int = 0
    short_next_funding: int = 0

    def to_dict(self) -> dict:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class Position:
    """One adapter's view of an open perpetual contract."""

    exchange: ExchangeId
    symbol: str
    side: PositionSide
    contracts: Decimal  # 0 means flat
    entry_price: Decimal = Decimal("0")
    unrealized_pnl: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class HedgedPositionGroup:
    """Point-in-time pairing of long/short positions sharing a base token."""

    base_token: str
    long: Position | None = None
    short: Position | None = None

    @property
    def has_hedge(self) -> bool:
        return self.long is not None and self.short is not None

    def to_dict(self) -> dict:
        return {
            "base_token": self.base_token,
            "long": self.long.to_dict() if self.long else None,
            "short": self.short.to_dict() if self.short else None,
            "has_hedge": self.has_hedge,
        }


@dataclass(frozen=True)
class TradeIntent:
    """A single request to open a hedge: long on one venue, short on another."""

    symbol: str  # base token
    long_exchange: ExchangeId
    short_exchange: ExchangeId
    position_size: Decimal  # quote-currency notional per leg
    leverage: int = 1
    slippage_percent: Decimal = Decimal("0.001")

    @classmethod
    def from_payload(
        cls,
        payload: dict,
        default_leverage: int = 1,
        default_slippage: Decimal = Decimal("0.001"),
    ) -> "TradeIntent":
        """Validate a raw request body into a TradeIntent.

        Accepts both camelCase (``longExchange``) and snake_case keys.

        Raises:
            InvalidTradeIntent: If a required field is missing or malformed.
            UnsupportedExchangeError: If an exchange name is not supported.
        """

        def _get(*keys: str) -> Any:
            for key in keys:
                if payload.get(key) not in (None, ""):
                    return payload[key]
            return None

        symbol = _get("symbol", "base_token", "baseToken")
        long_name = _get("long_exchange", "longExchange")
        short_name = _get("short_exchange", "shortExchange")
        raw_size = _get("position_size", "positionSize")

        missing = [
            name
            for name, value in (
                ("symbol", symbol),
                ("long_exchange", long_name),
                ("short_exchange", short_name),
                ("position_size", raw_size),
            )
            if value is None
        ]
        if missing:
            raise InvalidTradeIntent(f"Missing required fields: {', '.join(missing)}")

        position_size = to_decimal(raw_size)
        if position_size <= 0:
            raise InvalidTradeIntent(f"position_size must be positive, got {raw_size!r}")

        raw_leverage = _get("leverage")
        try:
            leverage = int(raw_leverage) if raw_leverage is not None else default_leverage
        except (TypeError, ValueError):
            raise InvalidTradeIntent(f"leverage must be an integer, got {raw_leverage!r}") from None
        if leverage < 1:
            raise InvalidTradeIntent(f"leverage must be >= 1, got {leverage}")

        raw_slippage = _get("slippage_percent", "slippagePercent")
        slippage = (
            to_decimal(raw_slippage, Decimal("-1"))
            if raw_slippage is not None
            else default_slippage
        )
        if slippage < 0:
            raise InvalidTradeIntent(f"slippage_percent must be >= 0, got {raw_slippage!r}")

        long_exchange = ExchangeId.parse(long_name)
        short_exchange = ExchangeId.parse(short_name)
        if long_exchange == short_exchange:
            raise InvalidTradeIntent(
                f"long and short legs must use different exchanges, got {long_exchange.value}"
            )

        return cls(
            symbol=str(symbol).strip(),
            long_exchange=long_exchange,
            short_exchange=short_exchange,
            position_size=position_size,
            leverage=leverage,
            slippage_percent=slippage,
        )

    @property
    def quantity(self) -> Decimal:
        """Margin committed per leg (informational; adapters size their own contracts)."""
        return self.position_size / Decimal(self.leverage)


@dataclass
class LegReport:
    """Outcome of one order leg: the venue's order dict, or the error that stopped it."""

    exchange: ExchangeId
    symbol: str
    side: OrderSide | None = None  # None when the leg failed before a side was known
    result: dict | list[dict] | None = None
    error: str | None = None
    error_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return _jsonable(asdict(self))


@dataclass
class ExecutionReport:
    """Result of a hedged execution request, one LegReport per leg."""

    symbol: str
    state: ExecutionState
    legs: list[LegReport]
    quantity: Decimal
    needs_manual_correction: bool = False
    partial_error: str | None = None
    unwind: LegReport | None = None
    # every state reached, REQUESTED first and REPORTED last
    history: list[ExecutionState] = field(default_factory=list)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def success(self) -> bool:
        return self.state == ExecutionState.BOTH_FILLED

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "symbol": self.symbol,
            "state": self.state.value,
            "legs": [leg.to_dict() for leg in self.legs],
            "quantity": str(self.quantity),
            "needs_manual_correction": self.needs_manual_correction,
            "partial_error": self.partial_error,
            "unwind": self.unwind.to_dict() if self.unwind else None,
            "history": [state.value for state in self.history],
            "timestamp": self.timestamp,
        }


@dataclass
class CloseReport:
    """Result of a close-out pass, one LegReport per position closed or attempted."""

    base_token: str | None
    legs: list[LegReport] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(leg.ok for leg in self.legs)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "base_token": self.base_token,
            "legs": [leg.to_dict() for leg in self.legs],
        }


@dataclass(frozen=True)
class FundingSnapshot:
    """Aggregated rates and opportunities produced by one pipeline run."""

    funding_rates: list[FundingRate]
    arbitrage_opportunities: list[ArbitrageOpportunity]
    generated_at: int  # epoch ms
    exchange_names: list[ExchangeId] = field(default_factory=list)
    failed_exchanges: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "funding_rates": [rate.to_dict() for rate in self.funding_rates],
            "arbitrage_opportunities": [
                opp.to_dict() for opp in self.arbitrage_opportunities
            ],
            "generated_at": self.generated_at,
            "exchange_names": [name.value for name in self.exchange_names],
            "failed_exchanges": dict(self.failed_exchanges),
        }
