"""Bitget adapter.

Bitget needs a passphrase alongside key/secret, one-way position mode before
market orders, and exposes mark/index prices only inside the ticker ``info``.
"""

import ccxt.async_support as ccxt_async

from fundingarb.exchange.ccxt_adapter import CcxtExchangeAdapter
from fundingarb.logging import get_logger
from fundingarb.models import ExchangeId, to_decimal

logger = get_logger(__name__)


class BitgetAdapter(CcxtExchangeAdapter):
    """Bitget USDT-M perpetuals via ccxt."""

    exchange_id = ExchangeId.BITGET
    ccxt_id = "bitget"

    def _options(self) -> dict:
        return {
            "defaultType": "swap",
            "defaultContractType": "perpetual",
            "defaultMarginMode": "cross",
        }

    async def fetch_ticker(self, symbol: str) -> dict:
        raw = await super().fetch_ticker(symbol)
        info = raw.get("info") or {}
        ticker = dict(raw)
        ticker["markPrice"] = to_decimal(info.get("markPrice"))
        ticker["indexPrice"] = to_decimal(info.get("indexPrice"))
        ticker["fundingRate"] = to_decimal(info.get("fundingRate"))
        return ticker

    async def _prepare_symbol(self, symbol: str) -> None:
        """Switch to one-way position mode; an unchanged mode is fine."""
        try:
            await self._exchange.set_position_mode(False, symbol)
        except ccxt_async.BaseError as exc:
            logger.warning(
                "bitget_position_mode_unchanged",
                symbol=symbol,
                error=str(exc),
            )

    def _order_params(self, reduce_only: bool) -> dict:
        params = super()._order_params(reduce_only)
        params["oneWayMode"] = True
        return params
