"""Hedged execution: open a long and a short leg on two venues at once.

Execution flow:
1. Resolve the exchange-native symbol for each leg (fatal if unsupported)
2. Build both leg coroutines, then dispatch them together (gather_outcomes)
3. Classify the joint outcome: BOTH_FILLED / PARTIAL_FILLED / BOTH_FAILED
4. On PARTIAL_FILLED: log critical, flag for manual correction, and
   optionally reverse the filled order with a reduce-only order of the same size
5. Return an ExecutionReport with one LegReport per leg and the states reached

Leg failures never raise out of execute(); only request-level problems
(InvalidTradeIntent, SymbolResolutionError) do.
"""

from collections.abc import Iterable
from decimal import Decimal

from fundingarb.concurrency import Outcome, gather_outcomes
from fundingarb.config import ArbitrageSettings
from fundingarb.exceptions import (
    CloseIncomplete,
    InsufficientSize,
    InvalidTradeIntent,
    PartialHedgeError,
)
from fundingarb.exchange.client import ExchangeAdapter
from fundingarb.exchange.registry import ExchangeRegistry
from fundingarb.exchange.symbols import extract_base_token
from fundingarb.logging import get_logger
from fundingarb.models import (
    CloseReport,
    ExchangeId,
    ExecutionReport,
    ExecutionState,
    LegReport,
    OrderSide,
    Position,
    TradeIntent,
    to_decimal,
)

logger = get_logger(__name__)


def _leg_report(
    exchange: ExchangeId, symbol: str, side: OrderSide | None, outcome: Outcome
) -> LegReport:
    if outcome.ok:
        return LegReport(exchange=exchange, symbol=symbol, side=side, result=outcome.result)
    closed = outcome.error.orders if isinstance(outcome.error, CloseIncomplete) else []
    return LegReport(
        exchange=exchange,
        symbol=symbol,
        side=side,
        result=closed or None,
        error=str(outcome.error) or outcome.reason,
        error_type=type(outcome.error).__name__,
    )


def _classify(long_leg: LegReport, short_leg: LegReport) -> ExecutionState:
    if long_leg.ok and short_leg.ok:
        return ExecutionState.BOTH_FILLED
    if long_leg.ok or short_leg.ok:
        return ExecutionState.PARTIAL_FILLED
    return ExecutionState.BOTH_FAILED


class HedgedExecutionEngine:
    """Opens and closes cross-exchange hedges through the exchange registry.

    Args:
        registry: Exchange registry providing the adapters.
        settings: Arbitrage settings (unwind policy, default slippage).
    """

    def __init__(
        self,
        registry: ExchangeRegistry,
        settings: ArbitrageSettings | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings or ArbitrageSettings()

    async def execute(self, intent: TradeIntent) -> ExecutionReport:
        """Open both legs of a hedge concurrently.

        Args:
            intent: Validated trade request.

        Returns:
            ExecutionReport describing both legs and the joint outcome.

        Raises:
            InvalidTradeIntent: If both legs target the same exchange.
            SymbolResolutionError: If either exchange has no bound adapter.
        """
        history = [ExecutionState.REQUESTED]
        if intent.long_exchange == intent.short_exchange:
            raise InvalidTradeIntent(
                f"long and short legs must use different exchanges, "
                f"got {intent.long_exchange.value}"
            )

        long_adapter = self._registry.get(intent.long_exchange)
        short_adapter = self._registry.get(intent.short_exchange)
        long_symbol = long_adapter.exchange_symbol(intent.symbol)
        short_symbol = short_adapter.exchange_symbol(intent.symbol)
        quantity = intent.quantity

        logger.info(
            "hedge_legs_dispatched",
            symbol=intent.symbol,
            long_exchange=intent.long_exchange.value,
            short_exchange=intent.short_exchange.value,
            long_symbol=long_symbol,
            short_symbol=short_symbol,
            position_size=str(intent.position_size),
            leverage=intent.leverage,
            quantity=str(quantity),
        )

        history.append(ExecutionState.LEGS_DISPATCHED)
        long_outcome, short_outcome = await gather_outcomes(
            [
                (
                    OrderSide.BUY,
                    long_adapter.open_position(
                        long_symbol,
                        OrderSide.BUY,
                        intent.position_size,
                        intent.leverage,
                        intent.slippage_percent,
                    ),
                ),
                (
                    OrderSide.SELL,
                    short_adapter.open_position(
                        short_symbol,
                        OrderSide.SELL,
                        intent.position_size,
                        intent.leverage,
                        intent.slippage_percent,
                    ),
                ),
            ]
        )

        long_leg = _leg_report(intent.long_exchange, long_symbol, OrderSide.BUY, long_outcome)
        short_leg = _leg_report(
            intent.short_exchange, short_symbol, OrderSide.SELL, short_outcome
        )
        state = _classify(long_leg, short_leg)
        history.append(state)
        report = ExecutionReport(
            symbol=intent.symbol,
            state=state,
            legs=[long_leg, short_leg],
            quantity=quantity,
            history=history,
        )

        if state == ExecutionState.BOTH_FILLED:
            logger.info(
                "hedge_opened",
                symbol=intent.symbol,
                long_exchange=intent.long_exchange.value,
                short_exchange=intent.short_exchange.value,
                long_order_id=(long_leg.result or {}).get("id"),
                short_order_id=(short_leg.result or {}).get("id"),
            )
        elif state == ExecutionState.BOTH_FAILED:
            logger.error(
                "hedge_failed",
                symbol=intent.symbol,
                long_error=long_leg.error,
                short_error=short_leg.error,
            )
        else:
            filled, failed = (long_leg, short_leg) if long_leg.ok else (short_leg, long_leg)
            partial = PartialHedgeError(
                filled_exchange=filled.exchange.value,
                failed_exchange=failed.exchange.value,
                reason=failed.error or "",
            )
            report.partial_error = str(partial)
            report.needs_manual_correction = True
            logger.critical(
                "hedge_partial_fill",
                symbol=intent.symbol,
                filled_exchange=filled.exchange.value,
                filled_symbol=filled.symbol,
                failed_exchange=failed.exchange.value,
                error=failed.error,
            )

            if self._settings.auto_unwind_partial:
                adapter = long_adapter if filled is long_leg else short_adapter
                report.unwind = await self._unwind_leg(
                    adapter, filled, intent.slippage_percent
                )
                report.needs_manual_correction = not report.unwind.ok

        report.history.append(ExecutionState.REPORTED)
        return report

    async def _unwind_leg(
        self, adapter: ExchangeAdapter, leg: LegReport, slippage: Decimal
    ) -> LegReport:
        """Reverse exactly the filled order of a leg after the other leg failed.

        The reduce-only order is sized from the fill itself, so any position
        held in the symbol before this hedge is left in place.

        Args:
            adapter: Adapter holding the filled leg.
            leg: The filled leg to reverse.
            slippage: Slippage fraction for the reduce-only order.
        """
        reverse_side = OrderSide.SELL if leg.side == OrderSide.BUY else OrderSide.BUY
        filled_order = leg.result if isinstance(leg.result, dict) else {}
        amount = to_decimal(filled_order.get("filled")) or to_decimal(filled_order.get("amount"))
        try:
            if amount <= 0:
                raise InsufficientSize(
                    f"No filled amount on {leg.exchange.value} order "
                    f"{filled_order.get('id')} to unwind"
                )
            price = await adapter.calculate_slippage_price(leg.symbol, reverse_side, slippage)
            order = await adapter.create_order(
                leg.symbol, reverse_side, amount, price, reduce_only=True
            )
        except Exception as exc:
            logger.error(
                "unwind_failed",
                exchange=leg.exchange.value,
                symbol=leg.symbol,
                amount=str(amount),
                exc_info=True,
            )
            return LegReport(
                exchange=leg.exchange,
                symbol=leg.symbol,
                side=reverse_side,
                error=str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
            )

        logger.info(
            "unwind_success",
            exchange=leg.exchange.value,
            symbol=leg.symbol,
            original_order_id=filled_order.get("id"),
            unwind_order_id=order.get("id"),
            amount=str(amount),
        )
        return LegReport(
            exchange=leg.exchange, symbol=leg.symbol, side=reverse_side, result=order
        )

    async def close_hedge(
        self, base_token: str, exchanges: Iterable[ExchangeId] | None = None
    ) -> CloseReport:
        """Close every open position in ``base_token`` across all adapters.

        Args:
            base_token: Base token of the hedge, e.g. "BTC".
            exchanges: Venues to close on (default: every registered adapter).
        """
        base_token = extract_base_token(base_token.strip())
        pairs = self._registry.items(exchanges)
        targets = {
            exchange_id: adapter.exchange_symbol(base_token) for exchange_id, adapter in pairs
        }

        report = CloseReport(base_token=base_token)
        positions_by_exchange = await self._fetch_open_positions(pairs, report, targets)

        to_close = []
        for exchange_id, adapter in pairs:
            symbol = targets[exchange_id]
            held = [
                position
                for position in positions_by_exchange.get(exchange_id, [])
                if position.symbol == symbol
            ]
            if held:
                to_close.append((exchange_id, adapter, symbol, held[0]))

        await self._close_symbols(to_close, report)
        logger.info(
            "hedge_closed" if report.success else "hedge_close_incomplete",
            base_token=base_token,
            legs=len(report.legs),
            failed=[leg.exchange.value for leg in report.legs if not leg.ok],
        )
        return report

    async def close_all(self, exchanges: Iterable[ExchangeId] | None = None) -> CloseReport:
        """Close every non-zero position on every adapter, regardless of grouping."""
        pairs = self._registry.items(exchanges)
        report = CloseReport(base_token=None)
        positions_by_exchange = await self._fetch_open_positions(pairs, report)

        to_close = []
        for exchange_id, adapter in pairs:
            seen: set[str] = set()
            for position in positions_by_exchange.get(exchange_id, []):
                if position.symbol in seen:
                    continue
                seen.add(position.symbol)
                to_close.append((exchange_id, adapter, position.symbol, position))

        await self._close_symbols(to_close, report)
        logger.info(
            "all_positions_closed" if report.success else "close_all_incomplete",
            legs=len(report.legs),
            failed=[leg.exchange.value for leg in report.legs if not leg.ok],
        )
        return report

    async def _fetch_open_positions(
        self,
        pairs: list[tuple[ExchangeId, ExchangeAdapter]],
        report: CloseReport,
        targets: dict[ExchangeId, str] | None = None,
    ) -> dict[ExchangeId, list[Position]]:
        """Non-zero positions per adapter; fetch failures are recorded on ``report``."""
        outcomes = await gather_outcomes(
            (exchange_id, adapter.get_positions()) for exchange_id, adapter in pairs
        )
        positions: dict[ExchangeId, list[Position]] = {}
        for outcome in outcomes:
            if not outcome.ok:
                logger.error(
                    "positions_fetch_failed",
                    exchange=outcome.key.value,
                    error=outcome.reason,
                )
                symbol = (targets or {}).get(outcome.key, "")
                report.legs.append(_leg_report(outcome.key, symbol, None, outcome))
                continue
            positions[outcome.key] = [
                position for position in outcome.result or [] if position.contracts > 0
            ]
        return positions

    async def _close_symbols(
        self,
        to_close: list[tuple[ExchangeId, ExchangeAdapter, str, Position]],
        report: CloseReport,
    ) -> None:
        slippage = self._settings.default_slippage_percent
        outcomes = await gather_outcomes(
            (index, adapter.close_all_positions(symbol, slippage))
            for index, (_, adapter, symbol, _) in enumerate(to_close)
        )
        for outcome in outcomes:
            exchange_id, _, symbol, position = to_close[outcome.key]
            if not outcome.ok:
                logger.error(
                    "close_symbol_failed",
                    exchange=exchange_id.value,
                    symbol=symbol,
                    error=outcome.reason,
                )
            report.legs.append(
                _leg_report(exchange_id, symbol, position.side.closing_side, outcome)
            )
