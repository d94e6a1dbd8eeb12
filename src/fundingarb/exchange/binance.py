"""Binance USD-M futures adapter (standard ccxt behaviour)."""

from fundingarb.exchange.ccxt_adapter import CcxtExchangeAdapter
from fundingarb.models import ExchangeId


class BinanceAdapter(CcxtExchangeAdapter):
    """Binance USDT-settled perpetuals via ccxt."""

    exchange_id = ExchangeId.BINANCE
    ccxt_id = "binance"

    def _options(self) -> dict:
        return {"defaultType": "swap", "adjustForTimeDifference": True}
