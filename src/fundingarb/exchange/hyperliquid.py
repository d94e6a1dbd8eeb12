"""Hyperliquid adapter.

Hyperliquid perpetuals settle in USDC and authenticate with a wallet
address plus its private key instead of an API key. The raw ticker carries
prices only in ``info`` (``markPx``, ``oraclePx``, ``midPx``), so tickers
are normalized before pricing orders.
"""

from fundingarb.exchange.ccxt_adapter import CcxtExchangeAdapter
from fundingarb.logging import get_logger
from fundingarb.models import ExchangeId, now_ms, to_decimal

logger = get_logger(__name__)


class HyperliquidAdapter(CcxtExchangeAdapter):
    """Hyperliquid perpetuals via ccxt."""

    exchange_id = ExchangeId.HYPERLIQUID
    ccxt_id = "hyperliquid"

    def _options(self) -> dict:
        return {
            "defaultType": "swap",
            "defaultContractType": "perpetual",
            "defaultSlippage": 0.01,
        }

    async def fetch_ticker(self, symbol: str) -> dict:
        """Fetch a ticker and lift mark/oracle/mid prices out of ``info``."""
        await self._ensure_markets()
        raw = await super().fetch_ticker(symbol)
        info = raw.get("info") or {}

        mark = to_decimal(info.get("markPx"))
        mid = to_decimal(info.get("midPx")) or mark
        ticker = {
            "symbol": raw.get("symbol", symbol),
            "timestamp": now_ms(),
            "bid": mid,
            "ask": mid,
            "last": mark,
            "close": mark,
            "markPrice": mark,
            "indexPrice": to_decimal(info.get("oraclePx")),
            "fundingRate": to_decimal(info.get("funding")),
            "info": info,
        }
        logger.debug(
            "hyperliquid_ticker",
            symbol=ticker["symbol"],
            mark_price=str(mark),
            index_price=str(ticker["indexPrice"]),
        )
        return ticker
