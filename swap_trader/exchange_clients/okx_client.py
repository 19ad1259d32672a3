"""
OKX V5 Client

Thin async wrapper around the signed OKX REST helpers with:
- Demo trading toggle
- Instrument ID translation (BTCUSDT <-> BTC-USDT-SWAP)
- Per-instance request spacing
- Transport failures mapped to TransportError, payload codes to OKXError
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from swap_trader.exceptions import ExchangeRejectedError, TransportError
from swap_trader.okx_api.auth import BASE_URL, authenticated_request, public_request

logger = logging.getLogger(__name__)

# OKX allows 60 order requests / 2s per instrument; keep a small floor
# between calls from one client so bursts from a strategy don't hit 50011.
_OKX_MIN_INTERVAL = 0.05

QUOTE_SUFFIX = "USDT"
SWAP_SUFFIX = "-USDT-SWAP"


class OKXError(ExchangeRejectedError):
    """OKX payload-level error (non-"0" code)"""


def to_okx_inst_id(symbol: str) -> str:
    """Convert a canonical symbol to an OKX USDT-margined swap instrument ID.

    Examples:
        BTCUSDT       -> BTC-USDT-SWAP
        BTC           -> BTC-USDT-SWAP
        BTC-USDT-SWAP -> BTC-USDT-SWAP
    """
    if symbol.endswith(SWAP_SUFFIX):
        return symbol
    if symbol.endswith(QUOTE_SUFFIX):
        return f"{symbol[:-len(QUOTE_SUFFIX)]}{SWAP_SUFFIX}"
    return f"{symbol}{SWAP_SUFFIX}"


def from_okx_inst_id(inst_id: str) -> str:
    """Convert an OKX swap instrument ID back to the canonical symbol.

    IDs without the swap suffix are returned unchanged.

    Examples:
        BTC-USDT-SWAP -> BTCUSDT
        BTC-USD-SWAP  -> BTC-USD-SWAP
    """
    if inst_id.endswith(SWAP_SUFFIX):
        return f"{inst_id[:-len(SWAP_SUFFIX)]}{QUOTE_SUFFIX}"
    return inst_id


def _check_response(resp: dict) -> dict:
    """Check an OKX envelope for errors and raise if needed."""
    code = str(resp.get("code", "-1"))
    if code != "0":
        msg = resp.get("msg")
        # OKX often leaves msg empty and puts the reason on the first item
        if not msg:
            items = resp.get("data") or []
            if items and isinstance(items[0], dict):
                msg = items[0].get("sMsg")
        safe_msg = msg[:200] if msg else "Unknown error"
        raise OKXError(f"OKX API error ({code}): {safe_msg}", code)
    return resp


class OKXClient:
    """
    Low-level OKX V5 REST client.

    Methods return the decoded JSON envelope. Order endpoints skip the
    envelope check so callers can read the per-order sCode/sMsg.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        passphrase: str,
        demo: bool = False,
        base_url: str = BASE_URL,
    ):
        self._api_key = api_key
        self._api_secret = api_secret
        self._passphrase = passphrase
        self._demo = demo
        self._base_url = base_url
        self._rate_lock = asyncio.Lock()
        self._last_request_time: float = 0.0
        logger.info(f"OKXClient initialized (demo={demo})")

    @property
    def demo(self) -> bool:
        return self._demo

    async def _throttle(self):
        async with self._rate_lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < _OKX_MIN_INTERVAL:
                await asyncio.sleep(_OKX_MIN_INTERVAL - elapsed)
            self._last_request_time = time.monotonic()

    async def _private(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Any = None,
    ) -> dict:
        await self._throttle()
        try:
            return await authenticated_request(
                method,
                endpoint,
                api_key=self._api_key,
                api_secret=self._api_secret,
                passphrase=self._passphrase,
                params=params,
                data=data,
                demo=self._demo,
                base_url=self._base_url,
            )
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            raise TransportError(f"OKX {method} {endpoint} failed: {e}") from e

    async def _public(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> dict:
        await self._throttle()
        try:
            return await public_request(
                "GET", endpoint, params=params, demo=self._demo, base_url=self._base_url
            )
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            raise TransportError(f"OKX GET {endpoint} failed: {e}") from e

    # ----------------------------------------------------------
    # Public
    # ----------------------------------------------------------

    async def get_server_time(self) -> dict:
        """Connectivity check."""
        resp = await self._public("/api/v5/public/time")
        return _check_response(resp)

    async def get_instruments(
        self, inst_type: str = "SWAP", inst_id: Optional[str] = None
    ) -> dict:
        """Instrument metadata (lotSz, tickSz, ctVal, ...)."""
        resp = await self._public(
            "/api/v5/public/instruments",
            params={"instType": inst_type, "instId": inst_id},
        )
        return _check_response(resp)

    async def get_ticker(self, inst_id: str) -> dict:
        resp = await self._public("/api/v5/market/ticker", params={"instId": inst_id})
        return _check_response(resp)

    # ----------------------------------------------------------
    # Account
    # ----------------------------------------------------------

    async def get_account_balance(self, ccy: Optional[str] = None) -> dict:
        resp = await self._private("GET", "/api/v5/account/balance", params={"ccy": ccy})
        return _check_response(resp)

    async def get_positions(
        self, inst_type: Optional[str] = None, inst_id: Optional[str] = None
    ) -> dict:
        resp = await self._private(
            "GET",
            "/api/v5/account/positions",
            params={"instType": inst_type, "instId": inst_id},
        )
        return _check_response(resp)

    async def set_leverage(
        self,
        inst_id: str,
        lever: str,
        mgn_mode: str = "isolated",
        pos_side: Optional[str] = None,
    ) -> dict:
        """Set leverage. Raises OKXError on rejection, including "Leverage not change"."""
        data: Dict[str, Any] = {"instId": inst_id, "lever": lever, "mgnMode": mgn_mode}
        if pos_side:
            data["posSide"] = pos_side
        resp = await self._private("POST", "/api/v5/account/set-leverage", data=data)
        return _check_response(resp)

    # ----------------------------------------------------------
    # Orders
    # ----------------------------------------------------------

    async def place_order(
        self,
        inst_id: str,
        td_mode: str,
        side: str,
        ord_type: str,
        sz: str,
        pos_side: Optional[str] = None,
    ) -> dict:
        """Place an order. Returns the raw envelope; inspect data[0].sCode."""
        data: Dict[str, Any] = {
            "instId": inst_id,
            "tdMode": td_mode,
            "side": side,
            "ordType": ord_type,
            "sz": sz,
        }
        if pos_side:
            data["posSide"] = pos_side
        return await self._private("POST", "/api/v5/trade/order", data=data)

    async def place_algo_order(self, body: Dict[str, Any]) -> dict:
        """Place a conditional (SL/TP) order. Returns the raw envelope."""
        return await self._private("POST", "/api/v5/trade/order-algo", data=body)

    async def get_algo_orders_pending(
        self,
        ord_type: str,
        inst_type: str = "SWAP",
        inst_id: Optional[str] = None,
    ) -> dict:
        resp = await self._private(
            "GET",
            "/api/v5/trade/orders-algo-pending",
            params={"ordType": ord_type, "instType": inst_type, "instId": inst_id},
        )
        return _check_response(resp)

    async def cancel_algo_orders(self, orders: List[Dict[str, str]]) -> dict:
        """Cancel algo orders; each entry is {"algoId": ..., "instId": ...}."""
        resp = await self._private("POST", "/api/v5/trade/cancel-algos", data=orders)
        return _check_response(resp)
