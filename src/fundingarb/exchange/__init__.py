"""Exchange adapter layer -- multi-venue perpetuals integration via ccxt."""

from fundingarb.exchange.client import ExchangeAdapter
from fundingarb.exchange.registry import ExchangeRegistry, build_registry
from fundingarb.exchange.symbols import exchange_symbol, extract_base_token
from fundingarb.exchange.types import ContractInfo, round_to_step

__all__ = [
    "ContractInfo",
    "ExchangeAdapter",
    "ExchangeRegistry",
    "build_registry",
    "exchange_symbol",
    "extract_base_token",
    "round_to_step",
]
