"""
Exchange Client Abstraction Layer

This package provides a uniform open/close position interface over
perpetual-swap exchanges. All traders implement the PerpetualTrader
abstract base class.

Supported Exchanges:
- OKX V5 USDT-margined swaps (via OKXAdapter)

Usage:
    from swap_trader.exchange_clients.factory import create_okx_trader

    trader = await create_okx_trader(
        api_key="...",
        api_secret="...",
        passphrase="...",
        demo=True,
    )
    await trader.open_long("BTCUSDT", 0.01, leverage=5)
    await trader.set_stop_loss("BTCUSDT", "long", 0.01, 60000)
"""

from swap_trader.exchange_clients.base import PerpetualTrader

__all__ = ["PerpetualTrader"]
