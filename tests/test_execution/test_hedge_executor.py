"""Tests for HedgedExecutionEngine dual-leg execution and close-out.

Verifies:
- Both legs dispatched concurrently (neither awaited before the other starts)
- Outcome classification: BOTH_FILLED / PARTIAL_FILLED / BOTH_FAILED
- Partial fills flagged for manual correction, optional unwind of exactly the filled amount
- The report records every state reached, REQUESTED through REPORTED
- Symbol resolution failures propagate before any order is sent
- close_hedge / close_all close non-zero positions and report per-leg errors
"""

import asyncio
from decimal import Decimal

import pytest

from fundingarb.config import ArbitrageSettings
from fundingarb.exceptions import (
    AdapterUnavailable,
    CloseIncomplete,
    InsufficientSize,
    InvalidTradeIntent,
    OrderRejected,
    SymbolResolutionError,
)
from fundingarb.execution.hedge_executor import HedgedExecutionEngine
from fundingarb.models import (
    ExchangeId,
    ExecutionState,
    OrderSide,
    PositionSide,
    TradeIntent,
)

HL = ExchangeId.HYPERLIQUID
GATE = ExchangeId.GATE
BITGET = ExchangeId.BITGET


def _intent(long: ExchangeId = HL, short: ExchangeId = GATE, **overrides) -> TradeIntent:
    fields = {
        "symbol": "BTC",
        "long_exchange": long,
        "short_exchange": short,
        "position_size": Decimal("100"),
        "leverage": 2,
        "slippage_percent": Decimal("0.001"),
    }
    fields.update(overrides)
    return TradeIntent(**fields)


@pytest.fixture
def registry_and_adapters(make_registry):
    return make_registry(HL, GATE, BITGET)


@pytest.fixture
def engine(registry_and_adapters) -> HedgedExecutionEngine:
    registry, _ = registry_and_adapters
    return HedgedExecutionEngine(registry, ArbitrageSettings())


# ---------------------------------------------------------------------------
# execute
# ---------------------------------------------------------------------------


class TestExecute:
    @pytest.mark.asyncio
    async def test_both_filled(self, engine, registry_and_adapters) -> None:
        _, adapters = registry_and_adapters
        report = await engine.execute(_intent())

        assert report.state is ExecutionState.BOTH_FILLED
        assert report.success
        assert report.quantity == Decimal("50")
        assert not report.needs_manual_correction

        long_leg, short_leg = report.legs
        assert (long_leg.exchange, long_leg.symbol, long_leg.side) == (
            HL, "BTC/USDC:USDC", OrderSide.BUY,
        )
        assert (short_leg.exchange, short_leg.symbol, short_leg.side) == (
            GATE, "BTC/USDT:USDT", OrderSide.SELL,
        )
        adapters[HL].open_position.assert_awaited_once_with(
            "BTC/USDC:USDC", OrderSide.BUY, Decimal("100"), 2, Decimal("0.001")
        )
        adapters[GATE].open_position.assert_awaited_once_with(
            "BTC/USDT:USDT", OrderSide.SELL, Decimal("100"), 2, Decimal("0.001")
        )

    @pytest.mark.asyncio
    async def test_short_leg_failure_is_partial(self, engine, registry_and_adapters) -> None:
        _, adapters = registry_and_adapters
        adapters[HL].open_position.return_value = {"id": "hl-1", "status": "closed"}
        adapters[GATE].open_position.side_effect = OrderRejected("gate rejected sell")

        report = await engine.execute(_intent())

        assert report.state is ExecutionState.PARTIAL_FILLED
        assert not report.success
        assert report.needs_manual_correction
        long_leg, short_leg = report.legs
        assert long_leg.ok and long_leg.result == {"id": "hl-1", "status": "closed"}
        assert short_leg.error == "gate rejected sell"
        assert short_leg.error_type == "OrderRejected"
        assert "hyperliquid leg filled" in report.partial_error
        assert "gate leg failed" in report.partial_error
        assert report.unwind is None
        adapters[HL].close_all_positions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_long_leg_failure_is_partial(self, engine, registry_and_adapters) -> None:
        _, adapters = registry_and_adapters
        adapters[HL].open_position.side_effect = InsufficientSize("below minimum")

        report = await engine.execute(_intent())

        assert report.state is ExecutionState.PARTIAL_FILLED
        assert report.legs[0].error_type == "InsufficientSize"
        assert report.legs[1].ok
        assert "gate leg filled" in report.partial_error

    @pytest.mark.asyncio
    async def test_both_failed(self, engine, registry_and_adapters) -> None:
        _, adapters = registry_and_adapters
        adapters[HL].open_position.side_effect = AdapterUnavailable("timeout")
        adapters[GATE].open_position.side_effect = AdapterUnavailable("timeout")

        report = await engine.execute(_intent())

        assert report.state is ExecutionState.BOTH_FAILED
        assert not report.success
        assert not report.needs_manual_correction
        assert all(not leg.ok for leg in report.legs)

    @pytest.mark.asyncio
    async def test_legs_dispatched_concurrently(self, engine, registry_and_adapters) -> None:
        _, adapters = registry_and_adapters
        short_started = asyncio.Event()

        async def long_leg(*args):
            await asyncio.wait_for(short_started.wait(), timeout=1)
            return {"id": "long"}

        async def short_leg(*args):
            short_started.set()
            return {"id": "short"}

        adapters[HL].open_position.side_effect = long_leg
        adapters[GATE].open_position.side_effect = short_leg

        report = await engine.execute(_intent())
        assert report.state is ExecutionState.BOTH_FILLED

    @pytest.mark.asyncio
    async def test_unknown_exchange_raises_before_orders(self, make_registry) -> None:
        registry, adapters = make_registry(HL, GATE)
        engine = HedgedExecutionEngine(registry)
        with pytest.raises(SymbolResolutionError):
            await engine.execute(_intent(long=HL, short=BITGET))
        adapters[HL].open_position.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_history_records_every_state(self, engine, registry_and_adapters) -> None:
        _, adapters = registry_and_adapters
        report = await engine.execute(_intent())
        assert report.history == [
            ExecutionState.REQUESTED,
            ExecutionState.LEGS_DISPATCHED,
            ExecutionState.BOTH_FILLED,
            ExecutionState.REPORTED,
        ]

        adapters[GATE].open_position.side_effect = OrderRejected("rejected")
        partial = await engine.execute(_intent())
        assert partial.history[2] is ExecutionState.PARTIAL_FILLED
        assert partial.to_dict()["history"] == [
            "requested", "legs_dispatched", "partial_filled", "reported",
        ]

    @pytest.mark.asyncio
    async def test_mixed_case_token_kept(self, engine, registry_and_adapters) -> None:
        _, adapters = registry_and_adapters
        intent = TradeIntent.from_payload({
            "symbol": "kPEPE",
            "longExchange": "hyperliquid",
            "shortExchange": "bitget",
            "positionSize": 100,
        })
        report = await engine.execute(intent)

        assert report.state is ExecutionState.BOTH_FILLED
        assert adapters[HL].open_position.await_args.args[0] == "kPEPE/USDC:USDC"
        assert adapters[BITGET].open_position.await_args.args[0] == "kPEPE/USDT:USDT"

    @pytest.mark.asyncio
    async def test_same_exchange_rejected(self, engine) -> None:
        with pytest.raises(InvalidTradeIntent):
            await engine.execute(_intent(long=GATE, short=GATE))


class TestPartialUnwind:
    @pytest.mark.asyncio
    async def test_unwind_reverses_only_the_fill(self, make_registry, make_position) -> None:
        registry, adapters = make_registry(HL, GATE)
        # 5 BTC already held on hyperliquid before this hedge
        adapters[HL].get_positions.return_value = [
            make_position(HL, "BTC", PositionSide.LONG, contracts="5.5"),
        ]
        adapters[HL].open_position.return_value = {"id": "hl-1", "amount": 0.5, "filled": 0.5}
        adapters[HL].create_order.return_value = {"id": "unwind-1"}
        adapters[GATE].open_position.side_effect = OrderRejected("rejected")
        engine = HedgedExecutionEngine(registry, ArbitrageSettings(auto_unwind_partial=True))

        report = await engine.execute(_intent())

        assert report.state is ExecutionState.PARTIAL_FILLED
        adapters[HL].calculate_slippage_price.assert_awaited_once_with(
            "BTC/USDC:USDC", OrderSide.SELL, Decimal("0.001")
        )
        adapters[HL].create_order.assert_awaited_once_with(
            "BTC/USDC:USDC", OrderSide.SELL, Decimal("0.5"), Decimal("100"), reduce_only=True
        )
        adapters[HL].close_all_positions.assert_not_awaited()
        assert report.unwind.ok
        assert report.unwind.side is OrderSide.SELL
        assert report.unwind.result == {"id": "unwind-1"}
        assert not report.needs_manual_correction

    @pytest.mark.asyncio
    async def test_unwind_falls_back_to_order_amount(self, make_registry) -> None:
        registry, adapters = make_registry(HL, GATE)
        adapters[HL].open_position.side_effect = AdapterUnavailable("down")
        adapters[GATE].open_position.return_value = {"id": "g-1", "amount": 3, "filled": None}
        engine = HedgedExecutionEngine(registry, ArbitrageSettings(auto_unwind_partial=True))

        report = await engine.execute(_intent())

        adapters[GATE].create_order.assert_awaited_once_with(
            "BTC/USDT:USDT", OrderSide.BUY, Decimal("3"), Decimal("100"), reduce_only=True
        )
        assert report.unwind.ok

    @pytest.mark.asyncio
    async def test_failed_unwind_still_needs_correction(self, make_registry) -> None:
        registry, adapters = make_registry(HL, GATE)
        adapters[HL].open_position.side_effect = AdapterUnavailable("down")
        adapters[GATE].create_order.side_effect = OrderRejected("cannot close")
        engine = HedgedExecutionEngine(registry, ArbitrageSettings(auto_unwind_partial=True))

        report = await engine.execute(_intent())

        assert report.unwind is not None
        assert report.unwind.side is OrderSide.BUY
        assert report.unwind.error == "cannot close"
        assert report.needs_manual_correction

    @pytest.mark.asyncio
    async def test_no_fill_amount_is_not_unwound(self, make_registry) -> None:
        registry, adapters = make_registry(HL, GATE)
        adapters[HL].open_position.return_value = {"id": "hl-1"}
        adapters[GATE].open_position.side_effect = OrderRejected("rejected")
        engine = HedgedExecutionEngine(registry, ArbitrageSettings(auto_unwind_partial=True))

        report = await engine.execute(_intent())

        adapters[HL].create_order.assert_not_awaited()
        assert report.unwind.error_type == "InsufficientSize"
        assert report.needs_manual_correction


# ---------------------------------------------------------------------------
# close_hedge / close_all
# ---------------------------------------------------------------------------


class TestCloseHedge:
    @pytest.mark.asyncio
    async def test_closes_only_matching_symbol(
        self, engine, registry_and_adapters, make_position
    ) -> None:
        _, adapters = registry_and_adapters
        adapters[HL].get_positions.return_value = [
            make_position(HL, "BTC", PositionSide.LONG),
            make_position(HL, "ETH", PositionSide.LONG),
        ]
        adapters[GATE].get_positions.return_value = [
            make_position(GATE, "BTC", PositionSide.SHORT),
        ]
        adapters[BITGET].get_positions.return_value = [
            make_position(BITGET, "BTC", PositionSide.SHORT, contracts="0"),
        ]

        report = await engine.close_hedge(" BTC ")

        assert report.success
        assert report.base_token == "BTC"
        adapters[HL].close_all_positions.assert_awaited_once_with("BTC/USDC:USDC", Decimal("0.001"))
        adapters[GATE].close_all_positions.assert_awaited_once_with("BTC/USDT:USDT", Decimal("0.001"))
        adapters[BITGET].close_all_positions.assert_not_awaited()
        assert [(leg.exchange, leg.side) for leg in report.legs] == [
            (HL, OrderSide.SELL),
            (GATE, OrderSide.BUY),
        ]

    @pytest.mark.asyncio
    async def test_per_adapter_errors_reported(
        self, engine, registry_and_adapters, make_position
    ) -> None:
        _, adapters = registry_and_adapters
        adapters[HL].get_positions.side_effect = AdapterUnavailable("auth")
        adapters[GATE].get_positions.return_value = [
            make_position(GATE, "BTC", PositionSide.SHORT),
        ]
        adapters[GATE].close_all_positions.side_effect = OrderRejected("reduce-only rejected")

        report = await engine.close_hedge("BTC")

        assert not report.success
        errors = {leg.exchange: leg.error for leg in report.legs}
        assert "auth" in errors[HL]
        assert errors[GATE] == "reduce-only rejected"
        fetch_failure = next(leg for leg in report.legs if leg.exchange is HL)
        assert fetch_failure.symbol == "BTC/USDC:USDC"
        assert fetch_failure.side is None

    @pytest.mark.asyncio
    async def test_mixed_case_token_matches_position(
        self, engine, registry_and_adapters, make_position
    ) -> None:
        _, adapters = registry_and_adapters
        adapters[HL].get_positions.return_value = [
            make_position(HL, "kPEPE", PositionSide.LONG, contracts="1000"),
        ]

        report = await engine.close_hedge("kPEPE")

        assert report.base_token == "kPEPE"
        assert len(report.legs) == 1
        adapters[HL].close_all_positions.assert_awaited_once_with(
            "kPEPE/USDC:USDC", Decimal("0.001")
        )

    @pytest.mark.asyncio
    async def test_nothing_open(self, engine) -> None:
        report = await engine.close_hedge("BTC")
        assert report.success
        assert report.legs == []


class TestCloseAll:
    @pytest.mark.asyncio
    async def test_closes_every_non_zero_position(
        self, engine, registry_and_adapters, make_position
    ) -> None:
        _, adapters = registry_and_adapters
        adapters[HL].get_positions.return_value = [
            make_position(HL, "BTC", PositionSide.LONG),
            make_position(HL, "ETH", PositionSide.SHORT),
            make_position(HL, "SOL", PositionSide.SHORT, contracts="0"),
        ]
        adapters[BITGET].get_positions.return_value = [
            make_position(BITGET, "DOGE", PositionSide.LONG),
        ]

        report = await engine.close_all()

        assert report.success
        assert report.base_token is None
        closed = [call.args[0] for call in adapters[HL].close_all_positions.await_args_list]
        assert closed == ["BTC/USDC:USDC", "ETH/USDC:USDC"]
        adapters[BITGET].close_all_positions.assert_awaited_once_with(
            "DOGE/USDT:USDT", Decimal("0.001")
        )
        adapters[GATE].close_all_positions.assert_not_awaited()
        assert len(report.legs) == 3

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_others(
        self, engine, registry_and_adapters, make_position
    ) -> None:
        _, adapters = registry_and_adapters
        adapters[HL].get_positions.return_value = [make_position(HL, "BTC", PositionSide.LONG)]
        adapters[GATE].get_positions.return_value = [make_position(GATE, "BTC", PositionSide.SHORT)]
        adapters[HL].close_all_positions.side_effect = AdapterUnavailable("timeout")

        report = await engine.close_all()

        assert not report.success
        adapters[GATE].close_all_positions.assert_awaited_once()
        assert [leg.ok for leg in report.legs] == [False, True]

    @pytest.mark.asyncio
    async def test_incomplete_close_keeps_closed_orders(
        self, engine, registry_and_adapters, make_position
    ) -> None:
        _, adapters = registry_and_adapters
        adapters[GATE].get_positions.return_value = [make_position(GATE, "BTC", PositionSide.LONG)]
        adapters[GATE].close_all_positions.side_effect = CloseIncomplete(
            "Failed to close 1 position(s)", orders=[{"id": "close-1"}]
        )

        report = await engine.close_all()

        (leg,) = report.legs
        assert not leg.ok
        assert leg.error_type == "CloseIncomplete"
        assert leg.result == [{"id": "close-1"}]

    @pytest.mark.asyncio
    async def test_duplicate_symbol_closed_once(
        self, engine, registry_and_adapters, make_position
    ) -> None:
        _, adapters = registry_and_adapters
        adapters[GATE].get_positions.return_value = [
            make_position(GATE, "BTC", PositionSide.LONG),
            make_position(GATE, "BTC", PositionSide.SHORT),
        ]
        await engine.close_all()
        adapters[GATE].close_all_positions.assert_awaited_once()
