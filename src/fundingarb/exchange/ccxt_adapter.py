"""Shared ExchangeAdapter implementation on top of ccxt async.

Wraps a ccxt.async_support exchange with market loading, a per-call timeout,
optional proxy, slippage-bounded IOC market orders and ccxt error
translation. Venue subclasses override only the hooks where their API
differs (ticker shape, contract sizing, order params).
"""

from decimal import Decimal

import ccxt.async_support as ccxt_async

from fundingarb.exceptions import (
    AdapterUnavailable,
    CloseIncomplete,
    InsufficientSize,
    OrderRejected,
    SymbolResolutionError,
)
from fundingarb.exchange.client import ExchangeAdapter
from fundingarb.exchange.symbols import exchange_symbol
from fundingarb.exchange.types import ContractInfo, round_to_step
from fundingarb.logging import get_logger
from fundingarb.models import (
    ExchangeId,
    OrderSide,
    Position,
    PositionSide,
    to_decimal,
)

logger = get_logger(__name__)

DEFAULT_SLIPPAGE = Decimal("0.001")


def _unavailable(exchange_id: ExchangeId, action: str, exc: Exception) -> AdapterUnavailable:
    return AdapterUnavailable(f"{exchange_id.value} {action} failed: {exc}")


class CcxtExchangeAdapter(ExchangeAdapter):
    """ExchangeAdapter backed by a ccxt async exchange instance.

    Args:
        credentials: ccxt credential keys (apiKey/secret/password/walletAddress/...).
        timeout_ms: Per-request timeout enforced by ccxt.
        proxy_url: Optional http(s) proxy for every request.
    """

    exchange_id: ExchangeId
    ccxt_id: str = ""
    # Whether the venue honours a price on market orders (the slippage bound).
    market_orders_accept_price: bool = True

    def __init__(
        self,
        credentials: dict | None = None,
        timeout_ms: int = 3000,
        proxy_url: str = "",
    ) -> None:
        config: dict = {
            "enableRateLimit": True,
            "timeout": timeout_ms,
            "options": self._options(),
        }
        config.update({k: v for k, v in (credentials or {}).items() if v})

        if proxy_url:
            if proxy_url.startswith(("http://", "https://")):
                config["httpsProxy"] = proxy_url
            else:
                logger.warning(
                    "invalid_proxy_url",
                    exchange=self.exchange_id.value,
                    proxy_url=proxy_url,
                )

        self._exchange = getattr(ccxt_async, self.ccxt_id)(config)
        self._markets: dict = {}

    @property
    def exchange(self) -> ccxt_async.Exchange:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    def _options(self) -> dict:
        return {"defaultType": "swap"}

    async def connect(self) -> None:
        """Initialize connection by loading markets."""
        logger.info("connecting_to_exchange", exchange=self.exchange_id.value)
        await self._load_markets()
        logger.info(
            "exchange_connected",
            exchange=self.exchange_id.value,
            market_count=len(self._markets),
        )

    async def close(self) -> None:
        """Clean up ccxt async resources. CRITICAL: must be called to avoid resource leaks."""
        await self._exchange.close()
        logger.info("exchange_connection_closed", exchange=self.exchange_id.value)

    async def _load_markets(self) -> dict:
        try:
            self._markets = await self._exchange.load_markets()
        except ccxt_async.BaseError as exc:
            raise _unavailable(self.exchange_id, "load_markets", exc) from exc
        return self._markets

    async def _ensure_markets(self) -> dict:
        if not self._markets:
            await self._load_markets()
        return self._markets

    def exchange_symbol(self, base_token: str) -> str:
        return exchange_symbol(base_token, self.exchange_id)

    def _swap_symbols(self) -> list[str]:
        return [
            symbol
            for symbol, market in self._markets.items()
            if market and market.get("swap")
        ]

    async def get_funding_rates(self, symbols: list[str] | None = None) -> dict:
        """Fetch funding rates in one batch call, per-symbol if batching is unsupported."""
        await self._ensure_markets()

        if symbols is None:
            symbols = self._swap_symbols()
            if not symbols:
                logger.warning("no_swap_markets", exchange=self.exchange_id.value)
                return {}

        try:
            if self._exchange.has.get("fetchFundingRates"):
                response = await self._exchange.fetch_funding_rates(symbols)
                logger.debug(
                    "funding_rates_fetched",
                    exchange=self.exchange_id.value,
                    count=len(response),
                )
                return response
        except ccxt_async.NotSupported:
            logger.info("funding_batch_unsupported", exchange=self.exchange_id.value)
        except (ccxt_async.NetworkError, ccxt_async.AuthenticationError) as exc:
            raise _unavailable(self.exchange_id, "fetch_funding_rates", exc) from exc
        except ccxt_async.BaseError as exc:
            logger.warning(
                "funding_batch_failed",
                exchange=self.exchange_id.value,
                error=str(exc),
            )

        return await self._fetch_funding_rates_individually(symbols)

    async def _fetch_funding_rates_individually(self, symbols: list[str]) -> dict:
        rates: dict = {}
        last_error: Exception | None = None
        for symbol in symbols:
            try:
                rates[symbol] = await self._exchange.fetch_funding_rate(symbol)
            except ccxt_async.BaseError as exc:
                last_error = exc
                logger.debug(
                    "funding_rate_fetch_failed",
                    exchange=self.exchange_id.value,
                    symbol=symbol,
                    error=str(exc),
                )
        if not rates and last_error is not None:
            raise _unavailable(self.exchange_id, "fetch_funding_rate", last_error)
        return rates

    async def fetch_ticker(self, symbol: str) -> dict:
        try:
            return await self._exchange.fetch_ticker(symbol)
        except ccxt_async.BadSymbol as exc:
            raise SymbolResolutionError(
                f"{symbol} not listed on {self.exchange_id.value}"
            ) from exc
        except ccxt_async.BaseError as exc:
            raise _unavailable(self.exchange_id, "fetch_ticker", exc) from exc

    async def calculate_slippage_price(
        self,
        symbol: str,
        side: OrderSide,
        slippage_percent: Decimal = DEFAULT_SLIPPAGE,
    ) -> Decimal:
        ticker = await self.fetch_ticker(symbol)
        price = to_decimal(ticker.get("last") or ticker.get("close"))
        if price <= 0:
            raise AdapterUnavailable(
                f"No price available for {symbol} on {self.exchange_id.value}"
            )
        if side == OrderSide.BUY:
            return price * (Decimal("1") + slippage_percent)
        return price * (Decimal("1") - slippage_percent)

    async def setup_leverage(self, symbol: str, leverage: int) -> None:
        try:
            await self._exchange.set_leverage(
                leverage, symbol, params={"marginMode": "cross"}
            )
        except ccxt_async.BaseError as exc:
            if "NO_CHANGE" in str(exc).upper():
                logger.debug(
                    "leverage_unchanged",
                    exchange=self.exchange_id.value,
                    symbol=symbol,
                    leverage=leverage,
                )
                return
            raise OrderRejected(
                f"set_leverage {leverage}x on {self.exchange_id.value} {symbol} failed: {exc}"
            ) from exc
        logger.info(
            "leverage_set",
            exchange=self.exchange_id.value,
            symbol=symbol,
            leverage=leverage,
        )

    def get_contract_info(self, symbol: str) -> ContractInfo:
        """Extract contract constraints from cached market data.

        Raises:
            SymbolResolutionError: If the symbol is not a loaded market.
        """
        market = self._markets.get(symbol)
        if not market:
            raise SymbolResolutionError(
                f"{symbol} not found in {self.exchange_id.value} markets"
            )
        limits = market.get("limits") or {}
        precision = market.get("precision") or {}
        return ContractInfo(
            symbol=symbol,
            contract_size=to_decimal(market.get("contractSize"), Decimal("1")) or Decimal("1"),
            min_amount=to_decimal((limits.get("amount") or {}).get("min")),
            amount_step=to_decimal(precision.get("amount")),
            tick_size=to_decimal(precision.get("price")),
            market_id=str(market.get("id", "")),
        )

    def _order_amount(self, symbol: str, position_size: Decimal, price: Decimal) -> Decimal:
        """Size an order worth ``position_size`` quote currency at ``price``.

        Raises:
            InsufficientSize: If the rounded amount is zero or below the venue minimum.
        """
        info = self.get_contract_info(symbol)
        amount = position_size / price / info.contract_size
        if info.amount_step > 0:
            amount = round_to_step(amount, info.amount_step)
        if amount <= 0 or amount < info.min_amount:
            raise InsufficientSize(
                f"Order amount {amount} for {symbol} on {self.exchange_id.value} "
                f"is below the minimum {info.min_amount}"
            )
        return amount

    def _order_params(self, reduce_only: bool) -> dict:
        return {
            "timeInForce": "IOC",
            "marginMode": "cross",
            "reduceOnly": reduce_only,
        }

    async def create_order(
        self,
        symbol: str,
        side: OrderSide,
        amount: Decimal,
        price: Decimal | None = None,
        reduce_only: bool = False,
    ) -> dict:
        order_price = price if self.market_orders_accept_price else None
        logger.info(
            "creating_order",
            exchange=self.exchange_id.value,
            symbol=symbol,
            side=side.value,
            amount=str(amount),
            price=str(order_price) if order_price is not None else None,
            reduce_only=reduce_only,
        )
        try:
            return await self._exchange.create_order(
                symbol,
                "market",
                side.value,
                float(amount),
                float(order_price) if order_price is not None else None,
                params=self._order_params(reduce_only),
            )
        except (ccxt_async.NetworkError, ccxt_async.AuthenticationError) as exc:
            raise _unavailable(self.exchange_id, "create_order", exc) from exc
        except ccxt_async.BaseError as exc:
            raise OrderRejected(
                f"{self.exchange_id.value} rejected {side.value} {symbol}: {exc}"
            ) from exc

    async def _prepare_symbol(self, symbol: str) -> None:
        """Venue-specific account setup before opening a position."""

    async def open_position(
        self,
        symbol: str,
        side: OrderSide,
        position_size: Decimal,
        leverage: int,
        slippage_percent: Decimal,
    ) -> dict:
        await self._ensure_markets()
        await self._prepare_symbol(symbol)
        await self.setup_leverage(symbol, leverage)

        price = await self.calculate_slippage_price(symbol, side, slippage_percent)
        amount = self._order_amount(symbol, position_size, price)

        order = await self.create_order(symbol, side, amount, price)
        logger.info(
            "position_opened",
            exchange=self.exchange_id.value,
            symbol=symbol,
            side=side.value,
            position_size=str(position_size),
            amount=str(amount),
            order_id=order.get("id"),
        )
        return order

    def _parse_position(self, raw: dict) -> Position | None:
        side = raw.get("side")
        if side not in (PositionSide.LONG.value, PositionSide.SHORT.value):
            return None
        return Position(
            exchange=self.exchange_id,
            symbol=raw.get("symbol", ""),
            side=PositionSide(side),
            contracts=abs(to_decimal(raw.get("contracts"))),
            entry_price=to_decimal(raw.get("entryPrice")),
            unrealized_pnl=to_decimal(raw.get("unrealizedPnl")),
        )

    async def _fetch_positions(self, symbols: list[str] | None = None) -> list[Position]:
        try:
            raw_positions = await self._exchange.fetch_positions(symbols)
        except ccxt_async.BaseError as exc:
            raise _unavailable(self.exchange_id, "fetch_positions", exc) from exc
        positions = []
        for raw in raw_positions:
            position = self._parse_position(raw)
            if position is not None:
                positions.append(position)
        return positions

    async def get_positions(self) -> list[Position]:
        return await self._fetch_positions()

    async def close_all_positions(
        self, symbol: str, slippage_percent: Decimal | None = None
    ) -> list[dict]:
        slippage = DEFAULT_SLIPPAGE if slippage_percent is None else slippage_percent
        positions = await self._fetch_positions([symbol])

        orders: list[dict] = []
        errors: list[str] = []
        for position in positions:
            if position.symbol != symbol or position.contracts <= 0:
                continue
            side = position.side.closing_side
            try:
                price = await self.calculate_slippage_price(symbol, side, slippage)
                order = await self.create_order(
                    symbol, side, position.contracts, price, reduce_only=True
                )
            except Exception as exc:
                errors.append(f"{position.side.value} {position.contracts}: {exc}")
                logger.error(
                    "close_position_failed",
                    exchange=self.exchange_id.value,
                    symbol=symbol,
                    side=position.side.value,
                    contracts=str(position.contracts),
                    error=str(exc),
                )
                continue
            orders.append(order)
            logger.info(
                "position_closed",
                exchange=self.exchange_id.value,
                symbol=symbol,
                side=position.side.value,
                contracts=str(position.contracts),
            )

        if errors:
            raise CloseIncomplete(
                f"Failed to close {len(errors)} position(s) in {symbol} on "
                f"{self.exchange_id.value}: {'; '.join(errors)}",
                orders=orders,
            )
        return orders
