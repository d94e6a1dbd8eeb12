"""Shared test fixtures for the cross-exchange funding arbitrage engine."""

from collections.abc import Callable
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from fundingarb.config import AppSettings, ArbitrageSettings, GateSettings, HyperliquidSettings
from fundingarb.exchange.client import ExchangeAdapter
from fundingarb.exchange.registry import ExchangeRegistry
from fundingarb.exchange.symbols import exchange_symbol
from fundingarb.models import ExchangeId, FundingRate, Position, PositionSide


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (dummy credentials, no proxy)."""
    return AppSettings(
        log_level="DEBUG",
        hyperliquid=HyperliquidSettings(
            wallet_address="0xabc",
            private_key="test-private-key",  # type: ignore[arg-type]
        ),
        gate=GateSettings(
            api_key="test-api-key",  # type: ignore[arg-type]
            api_secret="test-api-secret",  # type: ignore[arg-type]
        ),
        arbitrage=ArbitrageSettings(),
    )


@pytest.fixture
def make_adapter() -> Callable[[ExchangeId], MagicMock]:
    """Factory for mocked adapters bound to one exchange.

    Symbol resolution is real; every network-facing method is an AsyncMock
    with a benign default.
    """

    def _make(exchange_id: ExchangeId) -> MagicMock:
        adapter = MagicMock(spec=ExchangeAdapter)
        adapter.exchange_id = exchange_id
        adapter.exchange_symbol.side_effect = lambda base: exchange_symbol(base, exchange_id)
        adapter.connect = AsyncMock()
        adapter.close = AsyncMock()
        adapter.get_funding_rates = AsyncMock(return_value={})
        adapter.get_positions = AsyncMock(return_value=[])
        adapter.open_position = AsyncMock(
            return_value={"id": f"{exchange_id.value}-order-1", "amount": 1.0, "filled": 1.0}
        )
        adapter.calculate_slippage_price = AsyncMock(return_value=Decimal("100"))
        adapter.create_order = AsyncMock(return_value={"id": f"{exchange_id.value}-order-2"})
        adapter.close_all_positions = AsyncMock(return_value=[])
        return adapter

    return _make


@pytest.fixture
def make_registry(make_adapter) -> Callable[..., tuple[ExchangeRegistry, dict]]:
    """Build a registry of mocked adapters; returns (registry, adapters by id)."""

    def _make(*exchange_ids: ExchangeId) -> tuple[ExchangeRegistry, dict]:
        adapters = {exchange_id: make_adapter(exchange_id) for exchange_id in exchange_ids}
        return ExchangeRegistry(adapters), adapters

    return _make


@pytest.fixture
def make_rate() -> Callable[..., FundingRate]:
    """Factory for FundingRate rows keyed by base token and exchange."""

    def _make(
        base_token: str,
        exchange: ExchangeId,
        rate: str,
        mark_price: str = "0",
        funding_timestamp: int = 1_700_000_000_000,
    ) -> FundingRate:
        return FundingRate(
            exchange=exchange,
            symbol=exchange_symbol(base_token, exchange),
            base_token=base_token,
            funding_rate=Decimal(rate),
            mark_price=Decimal(mark_price),
            funding_timestamp=funding_timestamp,
        )

    return _make


@pytest.fixture
def make_position() -> Callable[..., Position]:
    """Factory for Position rows."""

    def _make(
        exchange: ExchangeId,
        base_token: str,
        side: PositionSide,
        contracts: str = "1",
    ) -> Position:
        return Position(
            exchange=exchange,
            symbol=exchange_symbol(base_token, exchange),
            side=side,
            contracts=Decimal(contracts),
        )

    return _make
