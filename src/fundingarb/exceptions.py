"""Custom exceptions for the cross-exchange funding arbitrage engine.

All adapter, execution and request-validation exceptions live here
to avoid circular imports between modules.
"""


class ArbitrageError(Exception):
    """Base exception for all engine errors."""


class AdapterUnavailable(ArbitrageError):
    """Raised when an exchange cannot be reached (network, timeout, auth)."""


class SymbolResolutionError(ArbitrageError):
    """Raised when a base token cannot be mapped to an exchange-native symbol."""


class UnsupportedExchangeError(SymbolResolutionError):
    """Raised when an exchange identifier has no bound adapter."""


class OrderRejected(ArbitrageError):
    """Raised when the venue rejects an order submission."""


class PartialHedgeError(ArbitrageError):
    """One leg of a hedge filled and the other did not.

    Never raised out of the execution engine; an instance is attached to the
    execution report so the exposure is described explicitly.
    """

    def __init__(self, filled_exchange: str, failed_exchange: str, reason: str) -> None:
        self.filled_exchange = filled_exchange
        self.failed_exchange = failed_exchange
        self.reason = reason
        super().__init__(
            f"Partial hedge: {filled_exchange} leg filled, "
            f"{failed_exchange} leg failed ({reason}); manual correction required"
        )


class InsufficientSize(ArbitrageError):
    """Raised when the computed contract count is below the venue minimum."""


class InvalidTradeIntent(ArbitrageError):
    """Raised when an execution request is missing or has malformed fields."""


class CloseIncomplete(OrderRejected):
    """Some reduce-only closes in a symbol were rejected after every position was tried.

    ``orders`` holds the closes that did go through.
    """

    def __init__(self, message: str, orders: list[dict] | None = None) -> None:
        self.orders = list(orders or [])
        super().__init__(message)
