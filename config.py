"""
Configuration loaded from environment variables. Fail-fast on missing required values.
"""

from decimal import Decimal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class ConfigurationError(ValueError):
    """Missing or invalid settings. Fatal at startup."""
    pass


class Config(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "frozen": True, "extra": "ignore"}

    # Credentials (required for live trading, optional for paper)
    poly_api_key: str = ""
    poly_api_secret: str = ""
    poly_api_passphrase: str = ""
    poly_private_key: str = Field(default="", description="Polygon wallet private key (hex)")
    poly_funder: str = Field(default="", description="Funding (proxy) wallet address")
    signature_type: int = Field(default=0, ge=0, le=2)  # 0=EOA, 1=Poly proxy, 2=Gnosis safe

    # API endpoints
    poly_http_url: str = "https://clob.polymarket.com"
    poly_ws_url: str = "wss://ws-subscriptions-clob.polymarket.com/ws/market"
    chain_id: int = 137  # Polygon mainnet

    # Risk limits (fractions, not percents: 0.02 = 2%)
    initial_balance: Decimal = Field(default=Decimal("1000"), gt=0)
    max_daily_loss_pct: Decimal = Field(default=Decimal("0.02"), gt=0, le=1)
    max_trade_capital_pct: Decimal = Field(default=Decimal("0.01"), gt=0, le=1)

    # Opportunity detection
    min_edge: Decimal = Field(default=Decimal("0.05"), ge=0, lt=1)
    taker_fee_rate: Decimal = Field(default=Decimal("0"), ge=0, lt=1)
    trade_size: Decimal = Field(default=Decimal("10"), gt=0)

    # Safety & re-entry
    min_liquidity_multiplier: Decimal = Field(default=Decimal("5"), gt=0)
    normalization_threshold: Decimal = Field(default=Decimal("0.99"), gt=0, le=2)
    normalization_updates: int = Field(default=3, ge=1)
    trade_cooldown_ms: int = Field(default=30_000, ge=0)

    # Execution
    order_timeout_sec: float = Field(default=5.0, gt=0)
    # SDK transport bound; kept below order_timeout_sec
    clob_http_timeout_sec: float = Field(default=4.0, gt=0)
    emergency_pause_sec: float = Field(default=60.0, ge=0)

    # Feed
    heartbeat_interval_sec: float = Field(default=20.0, gt=0)
    reconnect_backoff_max_sec: float = Field(default=60.0, ge=1.0)
    subscribe_batch_size: int = Field(default=50, ge=1, le=500)
    update_channel_capacity: int = Field(default=100, ge=1)

    # Discovery
    crypto_tags: list[str] = ["Crypto", "Bitcoin", "Ethereum", "Solana"]
    discovery_page_limit: int = Field(default=100, ge=1, le=1000)
    discovery_max_pages: int = Field(default=20, ge=1)

    # Modes
    paper_trading: bool = True
    log_level: str = "INFO"
    status_interval_sec: float = Field(default=60.0, gt=0)


_REQUIRED_LIVE_CREDENTIALS = {
    "poly_api_key": "POLY_API_KEY",
    "poly_api_secret": "POLY_API_SECRET",
    "poly_api_passphrase": "POLY_API_PASSPHRASE",
    "poly_private_key": "POLY_PRIVATE_KEY",
    "poly_funder": "POLY_FUNDER",
}


def missing_credentials(cfg: Config) -> list[str]:
    """Env var names of live-trading credentials that are unset."""
    return [env for attr, env in _REQUIRED_LIVE_CREDENTIALS.items() if not getattr(cfg, attr)]


def load_config(**overrides) -> Config:
    """
    Load and validate config from environment.
    Raises ConfigurationError on invalid values, or on missing credentials
    when paper trading is off.
    """
    try:
        cfg = Config(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    if cfg.clob_http_timeout_sec >= cfg.order_timeout_sec:
        raise ConfigurationError(
            f"CLOB_HTTP_TIMEOUT_SEC ({cfg.clob_http_timeout_sec}) must be below "
            f"ORDER_TIMEOUT_SEC ({cfg.order_timeout_sec})"
        )

    if not cfg.paper_trading:
        missing = missing_credentials(cfg)
        if missing:
            raise ConfigurationError(
                f"Live trading requires credentials; missing: {', '.join(missing)}"
            )
    return cfg
