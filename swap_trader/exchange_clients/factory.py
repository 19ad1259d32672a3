"""
Trader Factory

Builds an OKX trader from credentials or from application settings and
verifies connectivity before handing it out, so bad credentials or an
unreachable API surface at startup instead of on the first trade.
"""

import logging
from typing import Optional

from swap_trader.config import Settings, settings
from swap_trader.exceptions import ExchangeUnavailableError, TraderError
from swap_trader.exchange_clients.okx_adapter import OKXAdapter
from swap_trader.exchange_clients.okx_client import OKXClient
from swap_trader.exchange_clients.okx_precision import OKXFormatter, PrecisionCache
from swap_trader.okx_api.auth import BASE_URL

logger = logging.getLogger(__name__)


async def create_okx_trader(
    api_key: str,
    api_secret: str,
    passphrase: str,
    demo: bool = False,
    base_url: str = BASE_URL,
    margin_currency: str = "USDT",
    leverage_settle_seconds: float = 0.5,
    precision_cache_ttl_seconds: Optional[float] = None,
    quantity_precision_fallback: int = 3,
    price_precision_fallback: int = 2,
    precision_failure_alert_threshold: int = 5,
) -> OKXAdapter:
    """
    Create a connected OKX trader.

    Args:
        api_key: OKX API key
        api_secret: OKX API secret
        passphrase: API key passphrase
        demo: Use OKX demo trading
        base_url: REST host

    Returns:
        OKXAdapter ready for trading

    Raises:
        ValueError: If a credential is missing
        ExchangeUnavailableError: If the connectivity check fails

    Example:
        trader = await create_okx_trader("key", "secret", "passphrase", demo=True)
        await trader.open_long("BTCUSDT", 0.01, leverage=5)
    """
    if not api_key or not api_secret or not passphrase:
        raise ValueError("OKX requires api_key, api_secret and passphrase")

    client = OKXClient(
        api_key=api_key,
        api_secret=api_secret,
        passphrase=passphrase,
        demo=demo,
        base_url=base_url,
    )

    try:
        await client.get_server_time()
    except TraderError as e:
        raise ExchangeUnavailableError(
            f"Failed to connect to OKX API (check API key, passphrase or network): {e}"
        ) from e

    formatter = OKXFormatter(
        client,
        cache=PrecisionCache(ttl_seconds=precision_cache_ttl_seconds),
        quantity_fallback=quantity_precision_fallback,
        price_fallback=price_precision_fallback,
        failure_alert_threshold=precision_failure_alert_threshold,
    )

    logger.info(f"✓ OKX trader initialized (demo={demo})")
    return OKXAdapter(
        client,
        formatter=formatter,
        margin_currency=margin_currency,
        leverage_settle_seconds=leverage_settle_seconds,
    )


async def create_okx_trader_from_settings(config: Optional[Settings] = None) -> OKXAdapter:
    """
    Convenience function to create a trader from Settings (.env / environment).

    Example .env:
        OKX_API_KEY=...
        OKX_API_SECRET=...
        OKX_PASSPHRASE=...
        OKX_DEMO_TRADING=true
    """
    config = config or settings
    return await create_okx_trader(
        api_key=config.okx_api_key,
        api_secret=config.okx_api_secret,
        passphrase=config.okx_passphrase,
        demo=config.okx_demo_trading,
        base_url=config.okx_base_url,
        margin_currency=config.okx_margin_currency,
        leverage_settle_seconds=config.leverage_settle_seconds,
        precision_cache_ttl_seconds=config.precision_cache_ttl_seconds,
        quantity_precision_fallback=config.quantity_precision_fallback,
        price_precision_fallback=config.price_precision_fallback,
        precision_failure_alert_threshold=config.precision_failure_alert_threshold,
    )
