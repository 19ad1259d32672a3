"""
Shared test fixtures for swap_trader tests.

Provides reusable fixtures for:
- A mocked OKXClient with realistic V5 payloads
- An OKXAdapter wired to the mocked client (no settling delay)
"""

import pytest
from unittest.mock import AsyncMock

from swap_trader.exchange_clients.okx_adapter import OKXAdapter
from swap_trader.exchange_clients.okx_precision import OKXFormatter


def make_mock_okx_client():
    """Create a fully mocked OKXClient."""
    client = AsyncMock()
    client.get_server_time = AsyncMock(return_value={
        "code": "0", "msg": "", "data": [{"ts": "1700000000000"}],
    })
    client.get_instruments = AsyncMock(return_value={
        "code": "0", "msg": "",
        "data": [{
            "instId": "BTC-USDT-SWAP",
            "instType": "SWAP",
            "lotSz": "0.01",
            "minSz": "0.01",
            "tickSz": "0.1",
            "ctVal": "0.01",
        }],
    })
    client.get_ticker = AsyncMock(return_value={
        "code": "0", "msg": "",
        "data": [{"instId": "BTC-USDT-SWAP", "last": "65000.5"}],
    })
    client.get_account_balance = AsyncMock(return_value={
        "code": "0", "msg": "",
        "data": [{
            "totalEq": "1000",
            "upl": "50",
            "details": [{"ccy": "USDT", "availEq": "800", "eq": "1000"}],
        }],
    })
    client.get_positions = AsyncMock(return_value={
        "code": "0", "msg": "", "data": [],
    })
    client.set_leverage = AsyncMock(return_value={
        "code": "0", "msg": "",
        "data": [{"instId": "BTC-USDT-SWAP", "lever": "5", "mgnMode": "isolated"}],
    })
    client.place_order = AsyncMock(return_value={
        "code": "0", "msg": "",
        "data": [{"ordId": "okx-order-1", "clOrdId": "", "sCode": "0", "sMsg": ""}],
    })
    client.place_algo_order = AsyncMock(return_value={
        "code": "0", "msg": "",
        "data": [{"algoId": "algo-1", "sCode": "0", "sMsg": ""}],
    })
    client.get_algo_orders_pending = AsyncMock(return_value={
        "code": "0", "msg": "", "data": [],
    })
    client.cancel_algo_orders = AsyncMock(return_value={
        "code": "0", "msg": "",
        "data": [{"algoId": "algo-1", "sCode": "0", "sMsg": ""}],
    })
    return client


@pytest.fixture
def mock_okx_client():
    return make_mock_okx_client()


@pytest.fixture
def okx_adapter(mock_okx_client):
    """OKXAdapter over the mocked client, with no post-leverage delay."""
    return OKXAdapter(
        mock_okx_client,
        formatter=OKXFormatter(mock_okx_client),
        leverage_settle_seconds=0,
    )
