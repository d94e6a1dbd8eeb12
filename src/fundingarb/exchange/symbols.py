"""Mapping between exchange-native perpetual symbols and base tokens.

Unified ccxt perpetual symbols look like ``BASE/QUOTE:SETTLE``. Two venues
quoting the same asset in different settlement currencies
(``BTC/USDC:USDC`` on Hyperliquid, ``BTC/USDT:USDT`` on Gate) share the
base token ``BTC``, which is the key for cross-exchange comparison.
"""

from fundingarb.exceptions import UnsupportedExchangeError
from fundingarb.models import ExchangeId

SETTLEMENT_CURRENCY: dict[ExchangeId, str] = {
    ExchangeId.HYPERLIQUID: "USDC",
    ExchangeId.GATE: "USDT",
    ExchangeId.BITGET: "USDT",
    ExchangeId.BINANCE: "USDT",
}

# Longest first so "BTCBUSD" strips "BUSD", not "USD".
_QUOTE_SUFFIXES = ("BUSD", "USDT", "USDC", "USD")


def extract_base_token(symbol: str) -> str:
    """Derive the exchange-agnostic base token from a native symbol.

    Strips the ``:SETTLE`` margin annotation, then the ``/QUOTE`` part.
    Raw venue ids without a slash (``BTC_USDT``, ``BTC-USDT``, ``BTCUSDT``)
    are handled by splitting on the separator or stripping a known quote
    suffix.

    Examples:
        >>> extract_base_token("BTC/USDT:USDT")
        'BTC'
        >>> extract_base_token("ETH/USDC:USDC")
        'ETH'
    """
    head = symbol.split(":", 1)[0].strip()
    if "/" in head:
        return head.split("/", 1)[0]
    for separator in ("_", "-"):
        if separator in head:
            return head.split(separator, 1)[0]
    for suffix in _QUOTE_SUFFIXES:
        if head.endswith(suffix) and len(head) > len(suffix):
            return head[: -len(suffix)]
    return head


def exchange_symbol(base_token: str, exchange: ExchangeId | str) -> str:
    """Build the unified linear-perpetual symbol for a base token on a venue.

    Raises:
        UnsupportedExchangeError: If the exchange has no settlement mapping.
    """
    exchange_id = ExchangeId.parse(exchange) if isinstance(exchange, str) else exchange
    settle = SETTLEMENT_CURRENCY.get(exchange_id)
    if settle is None:
        raise UnsupportedExchangeError(f"Unsupported exchange: {exchange_id.value}")
    return f"{base_token}/{settle}:{settle}"
