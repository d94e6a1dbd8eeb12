"""Gate.io adapter.

Gate USDT perpetuals trade in whole contracts of ``contractSize`` base units,
so orders are sized as floor(notional / price / contractSize). Gate market
orders ignore any price, so the slippage bound is computed and logged but not
sent.
"""

import math
from decimal import Decimal

from fundingarb.exceptions import InsufficientSize
from fundingarb.exchange.ccxt_adapter import CcxtExchangeAdapter
from fundingarb.logging import get_logger
from fundingarb.models import ExchangeId

logger = get_logger(__name__)


class GateAdapter(CcxtExchangeAdapter):
    """Gate.io USDT-settled perpetuals via ccxt."""

    exchange_id = ExchangeId.GATE
    ccxt_id = "gate"
    market_orders_accept_price = False

    def _options(self) -> dict:
        return {"defaultType": "swap", "defaultContractType": "perpetual"}

    def _order_amount(self, symbol: str, position_size: Decimal, price: Decimal) -> Decimal:
        info = self.get_contract_info(symbol)
        contracts = Decimal(math.floor(position_size / price / info.contract_size))
        min_contracts = info.min_amount or Decimal("1")

        logger.debug(
            "gate_contract_sizing",
            symbol=symbol,
            position_size=str(position_size),
            price=str(price),
            contract_size=str(info.contract_size),
            contracts=str(contracts),
            min_contracts=str(min_contracts),
        )

        if contracts < min_contracts:
            raise InsufficientSize(
                f"Computed {contracts} contracts for {symbol} on gate, "
                f"below the minimum {min_contracts}"
            )
        return contracts
