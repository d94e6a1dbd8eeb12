"""Abstract exchange adapter interface.

Defines the capability set the arbitrage engine consumes from every venue.
Aggregation, reconciliation and execution code depends only on this
interface; ccxt and venue quirks stay in the concrete implementations.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from fundingarb.models import ExchangeId, OrderSide, Position


class ExchangeAdapter(ABC):
    """Abstract base class for per-exchange adapters."""

    exchange_id: ExchangeId

    @abstractmethod
    async def connect(self) -> None:
        """Initialize connection and load markets."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (CRITICAL for ccxt async)."""
        ...

    @abstractmethod
    async def get_funding_rates(self, symbols: list[str] | None = None) -> dict:
        """Return native symbol -> ccxt funding-rate structure.

        With ``symbols=None`` every perpetual swap market is queried.

        Raises:
            AdapterUnavailable: On transport or authentication failure.
        """
        ...

    @abstractmethod
    async def fetch_ticker(self, symbol: str) -> dict:
        """Return the latest ticker (last/mark/index prices) for a symbol."""
        ...

    @abstractmethod
    async def calculate_slippage_price(
        self, symbol: str, side: OrderSide, slippage_percent: Decimal
    ) -> Decimal:
        """Bound the current price by the slippage tolerance.

        A buy tolerates ``price * (1 + slippage)``, a sell ``price * (1 - slippage)``.
        """
        ...

    @abstractmethod
    async def setup_leverage(self, symbol: str, leverage: int) -> None:
        """Set cross-margin leverage; an unchanged setting counts as success."""
        ...

    @abstractmethod
    async def create_order(
        self,
        symbol: str,
        side: OrderSide,
        amount: Decimal,
        price: Decimal | None = None,
        reduce_only: bool = False,
    ) -> dict:
        """Submit an immediate-or-cancel market order bounded by ``price``.

        Raises:
            OrderRejected: If the venue rejects the order.
        """
        ...

    @abstractmethod
    async def open_position(
        self,
        symbol: str,
        side: OrderSide,
        position_size: Decimal,
        leverage: int,
        slippage_percent: Decimal,
    ) -> dict:
        """Open one hedge leg worth ``position_size`` quote currency.

        Sets leverage, prices the order against the slippage bound, sizes
        the contracts and submits.

        Raises:
            InsufficientSize: If the sized order is below the venue minimum.
            OrderRejected: If the venue rejects the order.
        """
        ...

    @abstractmethod
    async def get_positions(self) -> list[Position]:
        """Return every position the account holds on this venue."""
        ...

    @abstractmethod
    async def close_all_positions(
        self, symbol: str, slippage_percent: Decimal | None = None
    ) -> list[dict]:
        """Close every open position in ``symbol`` with reduce-only orders.

        Each position is attempted even if an earlier one fails; failures are
        logged as they happen.

        Returns:
            Order dicts for the positions that were closed.

        Raises:
            CloseIncomplete: After all attempts, if any close failed. The
                orders that did close are on its ``orders`` attribute.
        """
        ...

    @abstractmethod
    def exchange_symbol(self, base_token: str) -> str:
        """Native perpetual symbol for a base token on this venue."""
        ...
