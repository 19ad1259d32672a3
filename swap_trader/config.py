from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OKX V5 API credentials
    okx_api_key: str = ""
    okx_api_secret: str = ""
    okx_passphrase: str = ""

    # Demo trading uses the same host plus the x-simulated-trading header
    okx_demo_trading: bool = False
    okx_base_url: str = "https://www.okx.com"

    # Margin currency for balance queries (USDT-margined swaps only)
    okx_margin_currency: str = "USDT"

    @field_validator("okx_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Request paths already start with '/'"""
        return v.rstrip("/")

    # Seconds to wait after a leverage change before placing orders
    leverage_settle_seconds: float = 0.5

    # Instrument precision cache
    precision_cache_ttl_seconds: Optional[float] = None  # None = cache for process lifetime
    quantity_precision_fallback: int = 3
    price_precision_fallback: int = 2
    precision_failure_alert_threshold: int = 5

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
