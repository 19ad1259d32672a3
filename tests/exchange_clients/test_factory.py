"""
Tests for swap_trader/exchange_clients/factory.py

Covers credential validation, the connectivity check and wiring of
settings into the adapter and its precision formatter.
"""

import pytest
from unittest.mock import patch

from swap_trader.config import Settings
from swap_trader.exceptions import ExchangeUnavailableError, TransportError
from swap_trader.exchange_clients.factory import (
    create_okx_trader,
    create_okx_trader_from_settings,
)
from swap_trader.exchange_clients.okx_adapter import OKXAdapter
from swap_trader.exchange_clients.okx_client import OKXError

CLIENT_CLASS = "swap_trader.exchange_clients.factory.OKXClient"


class TestCreateOkxTrader:
    @pytest.mark.asyncio
    async def test_returns_adapter_after_connectivity_check(self, mock_okx_client):
        """Happy path: connectivity check succeeds, adapter is returned."""
        with patch(CLIENT_CLASS, return_value=mock_okx_client) as mock_cls:
            trader = await create_okx_trader("key", "secret", "pass", demo=True)

        assert isinstance(trader, OKXAdapter)
        mock_okx_client.get_server_time.assert_called_once()
        mock_cls.assert_called_once_with(
            api_key="key",
            api_secret="secret",
            passphrase="pass",
            demo=True,
            base_url="https://www.okx.com",
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("api_key,api_secret,passphrase", [
        ("", "secret", "pass"),
        ("key", "", "pass"),
        ("key", "secret", ""),
    ])
    async def test_missing_credentials_raise(self, api_key, api_secret, passphrase):
        """Failure: every credential is required."""
        with patch(CLIENT_CLASS) as mock_cls:
            with pytest.raises(ValueError, match="passphrase"):
                await create_okx_trader(api_key, api_secret, passphrase)
        mock_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_connectivity_transport_failure(self, mock_okx_client):
        """Failure: unreachable API surfaces as ExchangeUnavailableError."""
        mock_okx_client.get_server_time.side_effect = TransportError("connection refused")
        with patch(CLIENT_CLASS, return_value=mock_okx_client):
            with pytest.raises(ExchangeUnavailableError, match="Failed to connect to OKX API") as exc_info:
                await create_okx_trader("key", "secret", "pass")
        assert isinstance(exc_info.value.__cause__, TransportError)

    @pytest.mark.asyncio
    async def test_connectivity_rejection(self, mock_okx_client):
        mock_okx_client.get_server_time.side_effect = OKXError("OKX API error (50113): Invalid Sign", "50113")
        with patch(CLIENT_CLASS, return_value=mock_okx_client):
            with pytest.raises(ExchangeUnavailableError, match="Invalid Sign"):
                await create_okx_trader("key", "secret", "pass")

    @pytest.mark.asyncio
    async def test_precision_options_are_applied(self, mock_okx_client):
        mock_okx_client.get_instruments.side_effect = TransportError("timeout")
        with patch(CLIENT_CLASS, return_value=mock_okx_client):
            trader = await create_okx_trader(
                "key", "secret", "pass",
                quantity_precision_fallback=1,
                price_precision_fallback=4,
            )

        assert await trader.format_quantity("BTCUSDT", 1.99) == "1.9"
        assert await trader.format_price("BTCUSDT", 1.23456) == "1.2345"


class TestCreateOkxTraderFromSettings:
    @pytest.mark.asyncio
    async def test_uses_settings_values(self, mock_okx_client):
        config = Settings(
            _env_file=None,
            okx_api_key="k",
            okx_api_secret="s",
            okx_passphrase="p",
            okx_demo_trading=True,
            okx_base_url="https://aws.okx.com/",
            okx_margin_currency="USDC",
            leverage_settle_seconds=0,
        )
        with patch(CLIENT_CLASS, return_value=mock_okx_client) as mock_cls:
            trader = await create_okx_trader_from_settings(config)

        mock_cls.assert_called_once_with(
            api_key="k",
            api_secret="s",
            passphrase="p",
            demo=True,
            base_url="https://aws.okx.com",
        )
        await trader.get_balance()
        mock_okx_client.get_account_balance.assert_called_once_with(ccy="USDC")

    @pytest.mark.asyncio
    async def test_empty_settings_raise(self):
        with pytest.raises(ValueError):
            await create_okx_trader_from_settings(Settings(_env_file=None))
