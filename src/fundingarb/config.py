"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal
from typing import Annotated, Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from fundingarb.models import ExchangeId


class HyperliquidSettings(BaseSettings):
    """Hyperliquid wallet credentials (signs orders with the wallet key)."""

    model_config = SettingsConfigDict(env_prefix="HYPERLIQUID_")

    wallet_address: str = ""
    private_key: SecretStr = SecretStr("")


class GateSettings(BaseSettings):
    """Gate.io API credentials."""

    model_config = SettingsConfigDict(env_prefix="GATE_")

    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")


class BitgetSettings(BaseSettings):
    """Bitget API credentials. Bitget requires a passphrase in addition to key/secret."""

    model_config = SettingsConfigDict(env_prefix="BITGET_")

    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")
    password: SecretStr = SecretStr("")


class BinanceSettings(BaseSettings):
    """Binance USD-M futures API credentials."""

    model_config = SettingsConfigDict(env_prefix="BINANCE_")

    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")


class ArbitrageSettings(BaseSettings):
    """Detection, caching and execution parameters.

    All fields configurable via ARBITRAGE_ environment variable prefix.
    ``enabled_exchanges`` accepts a comma-separated string
    (e.g. ``ARBITRAGE_ENABLED_EXCHANGES=gate,bitget``).
    """

    model_config = SettingsConfigDict(env_prefix="ARBITRAGE_")

    enabled_exchanges: Annotated[list[ExchangeId], NoDecode] = [
        ExchangeId.HYPERLIQUID,
        ExchangeId.GATE,
        ExchangeId.BITGET,
    ]
    policy: Literal["pairwise", "extremal"] = "pairwise"
    opportunity_limit: int = 10  # pairwise policy truncation
    threshold: Decimal = Decimal("0.0001")  # extremal policy minimum difference
    cache_ttl_seconds: float = 60.0
    request_timeout_ms: int = 3000  # per adapter call, enforced by ccxt
    default_leverage: int = 1
    default_slippage_percent: Decimal = Decimal("0.001")  # 0.1%
    auto_unwind_partial: bool = False  # close the filled leg of a partial hedge

    @field_validator("enabled_exchanges", mode="before")
    @classmethod
    def _split_exchanges(cls, value: object) -> object:
        if isinstance(value, str):
            return [name.strip().lower() for name in value.split(",") if name.strip()]
        return value


class DashboardSettings(BaseSettings):
    """JSON API server configuration."""

    model_config = SettingsConfigDict(env_prefix="DASHBOARD_")

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    proxy_url: str = ""  # http(s) proxy applied to every exchange session
    hyperliquid: HyperliquidSettings = HyperliquidSettings()
    gate: GateSettings = GateSettings()
    bitget: BitgetSettings = BitgetSettings()
    binance: BinanceSettings = BinanceSettings()
    arbitrage: ArbitrageSettings = ArbitrageSettings()
    dashboard: DashboardSettings = DashboardSettings()
