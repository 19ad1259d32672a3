"""
OKX Adapter

Implements the PerpetualTrader ABC for OKX V5 USDT-margined perpetual swaps.
All positions use isolated margin in long/short position mode.
Wraps OKXClient and normalizes responses to the shared schemas.
"""

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional

from swap_trader.exceptions import (
    ExchangeRejectedError,
    NotFoundError,
    TraderError,
    TransportError,
)
from swap_trader.exchange_clients.base import PerpetualTrader
from swap_trader.exchange_clients.okx_client import (
    OKXClient,
    OKXError,
    from_okx_inst_id,
    to_okx_inst_id,
)
from swap_trader.exchange_clients.okx_precision import OKXFormatter
from swap_trader.schemas import (
    BalanceSummary,
    CancelReport,
    ContingentOrderSpec,
    OrderResult,
    Position,
)

logger = logging.getLogger(__name__)

# OKX answers a set-leverage call for the current value with this message
_LEVERAGE_UNCHANGED = "leverage not change"

# Side that closes a position
_CLOSE_SIDES = {"long": "sell", "short": "buy"}

# Pending algo listing per protective kind: (ordType, trigger field)
_ALGO_KINDS = {
    "stop_loss": ("conditional", "slTriggerPx"),
    "take_profit": ("conditional", "tpTriggerPx"),
}


def _to_float(value: Any, default: float = 0.0) -> float:
    """OKX sends numbers as strings and uses "" for unset fields."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _normalize_pos_side(position_side: str) -> str:
    pos_side = (position_side or "").lower()
    if pos_side not in _CLOSE_SIDES:
        raise ValueError(f"Invalid position side: {position_side!r} (expected 'long' or 'short')")
    return pos_side


def _require_finite(name: str, value: float) -> float:
    """Reject NaN and inf before they are rendered into a request body."""
    try:
        finite = math.isfinite(value)
    except TypeError:
        finite = False
    if not finite:
        raise ValueError(f"Invalid {name}: {value!r} (expected a finite number)")
    return value


def _item_status(resp: Dict[str, Any], item: Dict[str, Any]) -> str:
    """Per-item sCode, falling back to the envelope code when absent."""
    s_code = item.get("sCode")
    if s_code is None or s_code == "":
        s_code = resp.get("code", "")
    return str(s_code)


class OKXAdapter(PerpetualTrader):
    """
    PerpetualTrader implementation for OKX V5.

    - Instruments are USDT-margined swaps (BTCUSDT <-> BTC-USDT-SWAP)
    - Every order and leverage change uses isolated margin
    - Orders carry posSide (long/short position mode)
    - Market orders are reported FILLED on acceptance; no fill polling
    """

    MARGIN_MODE = "isolated"

    def __init__(
        self,
        client: OKXClient,
        formatter: Optional[OKXFormatter] = None,
        margin_currency: str = "USDT",
        leverage_settle_seconds: float = 0.5,
    ):
        self._client = client
        self._formatter = formatter if formatter is not None else OKXFormatter(client)
        self._margin_currency = margin_currency
        self._leverage_settle_seconds = leverage_settle_seconds

    # ==========================================================
    # ACCOUNT & POSITIONS
    # ==========================================================

    async def get_balance(self) -> BalanceSummary:
        logger.info("🔄 Fetching OKX account balance...")
        try:
            resp = await self._client.get_account_balance(ccy=self._margin_currency)
        except TransportError as e:
            raise TransportError(f"OKX GetBalance failed: {e.message}") from e

        items = resp.get("data") or []
        if not items:
            raise NotFoundError("OKX GetBalance: no account data returned")
        account = items[0]

        total_equity = _to_float(account.get("totalEq"))
        unrealized_pnl = _to_float(account.get("upl"))

        return BalanceSummary(
            total_wallet_balance=total_equity - unrealized_pnl,
            available_balance=self._available_equity(account),
            total_unrealized_profit=unrealized_pnl,
        )

    def _available_equity(self, account: Dict[str, Any]) -> float:
        """availEq of the margin currency detail, else the account-level field."""
        for detail in account.get("details") or []:
            if detail.get("ccy", "").upper() == self._margin_currency.upper():
                if detail.get("availEq") not in (None, ""):
                    return _to_float(detail.get("availEq"))
        return _to_float(account.get("availEq"))

    def _normalize_position(self, raw: Dict[str, Any]) -> Optional[Position]:
        """Map an OKX position record; None for empty or unrecognized records."""
        pos = _to_float(raw.get("pos"))
        if pos == 0:
            return None

        side = raw.get("posSide", "")
        if side == "net":
            # Orders here always carry posSide, which a net-mode account rejects
            logger.warning(
                f"⚠️  Skipping net-mode position {raw.get('instId')}: switch the account to long/short mode"
            )
            return None
        if side not in _CLOSE_SIDES:
            logger.debug(f"Skipping position with unknown posSide {side!r}: {raw.get('instId')}")
            return None

        return Position(
            symbol=from_okx_inst_id(raw.get("instId", "")),
            side=side,
            amount=abs(pos),
            entry_price=_to_float(raw.get("avgPx")),
            mark_price=_to_float(raw.get("markPx")),
            unrealized_pnl=_to_float(raw.get("upl")),
            leverage=_to_float(raw.get("lever")),
            liquidation_price=_to_float(raw.get("liqPx")),
            margin_mode=raw.get("mgnMode") or self.MARGIN_MODE,
        )

    async def get_positions(self) -> List[Position]:
        logger.info("🔄 Fetching OKX swap positions...")
        try:
            resp = await self._client.get_positions(inst_type="SWAP")
        except TransportError as e:
            raise TransportError(f"OKX GetPositions failed: {e.message}") from e

        positions = []
        for raw in resp.get("data") or []:
            position = self._normalize_position(raw)
            if position is not None:
                positions.append(position)
        return positions

    async def get_specific_position(self, symbol: str, side: str) -> Optional[Position]:
        """First open position of `side` for the symbol, or None if there is none."""
        inst_id = to_okx_inst_id(symbol)
        try:
            resp = await self._client.get_positions(inst_id=inst_id)
        except TransportError as e:
            raise TransportError(f"OKX GetPositions failed ({inst_id} {side}): {e.message}") from e

        for raw in resp.get("data") or []:
            position = self._normalize_position(raw)
            if position is not None and position.side == side:
                return position
        return None

    # ==========================================================
    # MARKET DATA
    # ==========================================================

    async def get_market_price(self, symbol: str) -> float:
        inst_id = to_okx_inst_id(symbol)
        try:
            resp = await self._client.get_ticker(inst_id)
        except TransportError as e:
            raise TransportError(f"OKX GetTicker failed ({inst_id}): {e.message}") from e

        items = resp.get("data") or []
        if not items:
            raise NotFoundError(f"OKX GetTicker: no data returned for {inst_id}")
        return _to_float(items[0].get("last"))

    # ==========================================================
    # LEVERAGE
    # ==========================================================

    async def set_leverage(self, symbol: str, leverage: int) -> bool:
        inst_id = to_okx_inst_id(symbol)
        logger.info(f"🔄 Setting OKX leverage for {inst_id} to {leverage}x")

        try:
            await self._client.set_leverage(inst_id, str(leverage), mgn_mode=self.MARGIN_MODE)
        except OKXError as e:
            if _LEVERAGE_UNCHANGED in e.message.lower():
                logger.info(f"  ✓ {inst_id} leverage already {leverage}x, no change needed")
                return False
            raise OKXError(f"OKX SetLeverage rejected ({inst_id} {leverage}x): {e.message}", e.code) from e
        except TransportError as e:
            raise TransportError(f"OKX SetLeverage failed ({inst_id} {leverage}x): {e.message}") from e

        logger.info(f"  ✓ {inst_id} leverage switched to {leverage}x")
        # Orders sent right after a change can be rejected until it propagates
        await asyncio.sleep(self._leverage_settle_seconds)
        return True

    # ==========================================================
    # ORDER EXECUTION
    # ==========================================================

    async def _place_order(
        self,
        symbol: str,
        side: str,
        ord_type: str,
        pos_side: Optional[str],
        quantity: float,
    ) -> OrderResult:
        _require_finite("quantity", quantity)
        inst_id = to_okx_inst_id(symbol)
        sz = await self._formatter.format_quantity(inst_id, quantity)
        context = f"{inst_id} {side} {sz}"

        try:
            resp = await self._client.place_order(
                inst_id=inst_id,
                td_mode=self.MARGIN_MODE,
                side=side,
                ord_type=ord_type,
                sz=sz,
                pos_side=pos_side or None,
            )
        except TransportError as e:
            raise TransportError(f"OKX PlaceOrder failed ({context}): {e.message}") from e

        items = resp.get("data") or []
        if not items:
            code = str(resp.get("code", "")) or None
            raise ExchangeRejectedError(
                f"OKX PlaceOrder returned no order data ({context}): {resp.get('msg') or 'empty response'}",
                code,
            )

        order = items[0]
        s_code = _item_status(resp, order)
        if s_code != "0":
            raise ExchangeRejectedError(
                f"OKX order rejected ({context}): {order.get('sMsg') or resp.get('msg')} (code: {s_code})",
                s_code,
            )

        order_id = order.get("ordId", "")
        logger.info(f"  ✓ OKX order placed: {context} (ordId={order_id})")
        return OrderResult(order_id=order_id, symbol=from_okx_inst_id(inst_id), status="FILLED")

    async def _cancel_stale_orders(self, symbol: str):
        """Best-effort cleanup before opening; failures are logged only."""
        try:
            report = await self.cancel_all_orders(symbol)
        except TraderError as e:
            logger.warning(f"  ⚠️  Failed to cancel stale orders for {symbol}: {e}")
            return
        if report.errors:
            logger.warning(f"  ⚠️  Failed to cancel stale orders for {symbol}: {'; '.join(report.errors)}")

    async def _open(self, symbol: str, pos_side: str, quantity: float, leverage: int) -> OrderResult:
        _require_finite("quantity", quantity)
        await self._cancel_stale_orders(symbol)
        await self.set_leverage(symbol, leverage)
        open_side = "buy" if pos_side == "long" else "sell"
        return await self._place_order(symbol, open_side, "market", pos_side, quantity)

    async def _close(self, symbol: str, pos_side: str, quantity: float) -> OrderResult:
        if quantity == 0:
            position = await self.get_specific_position(symbol, pos_side)
            if position is None:
                raise NotFoundError(f"No {pos_side} position found for {symbol}")
            quantity = position.amount
        return await self._place_order(symbol, _CLOSE_SIDES[pos_side], "market", pos_side, quantity)

    async def open_long(self, symbol: str, quantity: float, leverage: int) -> OrderResult:
        logger.info(f"📈 Opening OKX long: {symbol}, quantity {quantity}, {leverage}x")
        return await self._open(symbol, "long", quantity, leverage)

    async def open_short(self, symbol: str, quantity: float, leverage: int) -> OrderResult:
        logger.info(f"📉 Opening OKX short: {symbol}, quantity {quantity}, {leverage}x")
        return await self._open(symbol, "short", quantity, leverage)

    async def close_long(self, symbol: str, quantity: float = 0) -> OrderResult:
        logger.info(f"🔄 Closing OKX long: {symbol}, quantity {quantity or 'all'}")
        return await self._close(symbol, "long", quantity)

    async def close_short(self, symbol: str, quantity: float = 0) -> OrderResult:
        logger.info(f"🔄 Closing OKX short: {symbol}, quantity {quantity or 'all'}")
        return await self._close(symbol, "short", quantity)

    # ==========================================================
    # PROTECTIVE ORDERS
    # ==========================================================

    async def _place_algo_order(
        self,
        symbol: str,
        position_side: str,
        kind: str,
        quantity: float,
        trigger_price: float,
    ) -> ContingentOrderSpec:
        _require_finite("quantity", quantity)
        _require_finite("trigger price", trigger_price)
        inst_id = to_okx_inst_id(symbol)
        spec = ContingentOrderSpec(
            inst_id=inst_id,
            pos_side=_normalize_pos_side(position_side),
            kind=kind,
            quantity=await self._formatter.format_quantity(inst_id, quantity),
            trigger_price=await self._formatter.format_price(inst_id, trigger_price),
        )
        context = f"{inst_id} {spec.pos_side} {kind} @ {spec.trigger_price}"

        try:
            resp = await self._client.place_algo_order(spec.to_request(self.MARGIN_MODE))
        except TransportError as e:
            raise TransportError(f"OKX PlaceAlgoOrder failed ({context}): {e.message}") from e

        items = resp.get("data") or []
        if not items:
            raise ExchangeRejectedError(
                f"OKX PlaceAlgoOrder returned no data ({context}): {resp.get('msg') or 'empty response'}",
                str(resp.get("code", "")) or None,
            )
        s_code = _item_status(resp, items[0])
        if s_code != "0":
            raise ExchangeRejectedError(
                f"OKX PlaceAlgoOrder rejected ({context}): {items[0].get('sMsg') or resp.get('msg')} (code: {s_code})",
                s_code,
            )

        logger.info(f"  ✓ OKX {kind} placed: {context} (algoId={items[0].get('algoId', '')})")
        return spec

    async def set_stop_loss(
        self, symbol: str, position_side: str, quantity: float, stop_price: float
    ) -> None:
        logger.info(f"🛡️ Setting OKX stop-loss: {symbol} {position_side}, trigger {stop_price}")
        await self._place_algo_order(symbol, position_side, "stop_loss", quantity, stop_price)

    async def set_take_profit(
        self, symbol: str, position_side: str, quantity: float, take_profit_price: float
    ) -> None:
        logger.info(f"💰 Setting OKX take-profit: {symbol} {position_side}, trigger {take_profit_price}")
        await self._place_algo_order(symbol, position_side, "take_profit", quantity, take_profit_price)

    async def _cancel_kind(self, inst_id: str, kind: str, report: CancelReport):
        """List pending orders of one protective kind and cancel them one by one."""
        ord_type, trigger_field = _ALGO_KINDS[kind]
        try:
            resp = await self._client.get_algo_orders_pending(ord_type=ord_type, inst_id=inst_id)
        except TraderError as e:
            logger.warning(f"  ⚠️  Could not list {kind} orders for {inst_id}: {e}")
            report.errors.append(f"list {kind}: {e}")
            return

        for algo in resp.get("data") or []:
            if not algo.get(trigger_field):
                continue
            # An order carrying both triggers is handled by the stop-loss pass
            if kind == "take_profit" and algo.get("slTriggerPx"):
                continue

            algo_id = algo.get("algoId", "")
            try:
                cancel_resp = await self._client.cancel_algo_orders([{"algoId": algo_id, "instId": inst_id}])
                items = cancel_resp.get("data") or []
                if items and _item_status(cancel_resp, items[0]) != "0":
                    raise ExchangeRejectedError(items[0].get("sMsg") or "cancel rejected", items[0].get("sCode"))
            except TraderError as e:
                logger.warning(f"  ⚠️  Could not cancel {kind} order {algo_id} on {inst_id}: {e}")
                report.errors.append(f"cancel {algo_id}: {e}")
                continue
            report.cancelled.append(algo_id)

    async def cancel_all_orders(self, symbol: str) -> CancelReport:
        inst_id = to_okx_inst_id(symbol)
        logger.info(f"🚫 Cancelling OKX protective orders: {inst_id}")

        report = CancelReport(symbol=from_okx_inst_id(inst_id))
        await asyncio.gather(*(self._cancel_kind(inst_id, kind, report) for kind in _ALGO_KINDS))

        if report.cancelled:
            logger.info(f"  ✓ Cancelled {len(report.cancelled)} protective order(s) on {inst_id}")
        return report

    # ==========================================================
    # FORMATTING
    # ==========================================================

    async def format_quantity(self, symbol: str, quantity: float) -> str:
        return await self._formatter.format_quantity(to_okx_inst_id(symbol), quantity)

    async def format_price(self, symbol: str, price: float) -> str:
        return await self._formatter.format_price(to_okx_inst_id(symbol), price)

    def invalidate_precision_cache(self, symbol: Optional[str] = None):
        """Forget cached precision (for one symbol, or all) so it is re-fetched."""
        self._formatter.invalidate(to_okx_inst_id(symbol) if symbol else None)
