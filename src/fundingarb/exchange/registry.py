"""Binding of the closed ExchangeId set to concrete adapters.

Adapters are built once at startup from settings. Lookup by identifier
returns the bound adapter or raises UnsupportedExchangeError; there is no
name-based dynamic dispatch anywhere else in the engine.
"""

from collections.abc import Iterable

from fundingarb.concurrency import gather_outcomes
from fundingarb.config import AppSettings
from fundingarb.exceptions import UnsupportedExchangeError
from fundingarb.exchange.binance import BinanceAdapter
from fundingarb.exchange.bitget import BitgetAdapter
from fundingarb.exchange.ccxt_adapter import CcxtExchangeAdapter
from fundingarb.exchange.client import ExchangeAdapter
from fundingarb.exchange.gate import GateAdapter
from fundingarb.exchange.hyperliquid import HyperliquidAdapter
from fundingarb.logging import get_logger
from fundingarb.models import ExchangeId

logger = get_logger(__name__)

ADAPTER_TYPES: dict[ExchangeId, type[CcxtExchangeAdapter]] = {
    ExchangeId.HYPERLIQUID: HyperliquidAdapter,
    ExchangeId.GATE: GateAdapter,
    ExchangeId.BITGET: BitgetAdapter,
    ExchangeId.BINANCE: BinanceAdapter,
}


class ExchangeRegistry:
    """Holds one adapter per enabled exchange, in enablement order.

    Args:
        adapters: Mapping of exchange identifier to its adapter. Iteration
            order of the mapping is the enumeration order used when merging
            per-adapter results.
    """

    def __init__(self, adapters: dict[ExchangeId, ExchangeAdapter]) -> None:
        self._adapters = dict(adapters)

    @property
    def enabled(self) -> list[ExchangeId]:
        return list(self._adapters)

    def get(self, exchange: ExchangeId | str) -> ExchangeAdapter:
        """Return the adapter bound to ``exchange``.

        Raises:
            UnsupportedExchangeError: If the exchange is unknown or not enabled.
        """
        exchange_id = ExchangeId.parse(exchange) if isinstance(exchange, str) else exchange
        adapter = self._adapters.get(exchange_id)
        if adapter is None:
            raise UnsupportedExchangeError(f"Exchange not enabled: {exchange_id.value}")
        return adapter

    def items(
        self, exchanges: Iterable[ExchangeId] | None = None
    ) -> list[tuple[ExchangeId, ExchangeAdapter]]:
        """(id, adapter) pairs for ``exchanges`` (default: all), skipping unbound ids."""
        if exchanges is None:
            return list(self._adapters.items())
        pairs = []
        for exchange_id in exchanges:
            adapter = self._adapters.get(exchange_id)
            if adapter is None:
                logger.warning("exchange_not_enabled", exchange=exchange_id.value)
                continue
            pairs.append((exchange_id, adapter))
        return pairs

    async def connect_all(self) -> dict[ExchangeId, str]:
        """Connect every adapter concurrently; return failures by exchange."""
        outcomes = await gather_outcomes(
            (exchange_id, adapter.connect()) for exchange_id, adapter in self.items()
        )
        failures = {}
        for outcome in outcomes:
            if not outcome.ok:
                failures[outcome.key] = outcome.reason
                logger.warning(
                    "exchange_connect_failed",
                    exchange=outcome.key.value,
                    error=outcome.reason,
                )
        return failures

    async def close_all(self) -> None:
        """Release every adapter's ccxt session."""
        outcomes = await gather_outcomes(
            (exchange_id, adapter.close()) for exchange_id, adapter in self.items()
        )
        for outcome in outcomes:
            if not outcome.ok:
                logger.warning(
                    "exchange_close_failed",
                    exchange=outcome.key.value,
                    error=outcome.reason,
                )


def _credentials(settings: AppSettings, exchange_id: ExchangeId) -> dict:
    if exchange_id == ExchangeId.HYPERLIQUID:
        return {
            "walletAddress": settings.hyperliquid.wallet_address,
            "privateKey": settings.hyperliquid.private_key.get_secret_value(),
        }
    if exchange_id == ExchangeId.GATE:
        return {
            "apiKey": settings.gate.api_key.get_secret_value(),
            "secret": settings.gate.api_secret.get_secret_value(),
        }
    if exchange_id == ExchangeId.BITGET:
        return {
            "apiKey": settings.bitget.api_key.get_secret_value(),
            "secret": settings.bitget.api_secret.get_secret_value(),
            "password": settings.bitget.password.get_secret_value(),
        }
    if exchange_id == ExchangeId.BINANCE:
        return {
            "apiKey": settings.binance.api_key.get_secret_value(),
            "secret": settings.binance.api_secret.get_secret_value(),
        }
    raise UnsupportedExchangeError(f"Unsupported exchange: {exchange_id.value}")


def build_registry(settings: AppSettings) -> ExchangeRegistry:
    """Construct adapters for every enabled exchange (no network I/O)."""
    adapters: dict[ExchangeId, ExchangeAdapter] = {}
    for exchange_id in settings.arbitrage.enabled_exchanges:
        if exchange_id in adapters:
            continue
        adapter_type = ADAPTER_TYPES[exchange_id]
        adapters[exchange_id] = adapter_type(
            credentials=_credentials(settings, exchange_id),
            timeout_ms=settings.arbitrage.request_timeout_ms,
            proxy_url=settings.proxy_url,
        )
    logger.info(
        "exchange_registry_built",
        exchanges=[exchange_id.value for exchange_id in adapters],
    )
    return ExchangeRegistry(adapters)
