"""
Instrument precision for OKX swap orders

OKX rejects sizes and prices that are not multiples of the instrument's
lotSz / tickSz. The decimal digit count of those steps is cached per
(instrument, kind) and used to render every quantity and price string sent
to the exchange.
"""

import asyncio
import logging
import time
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Awaitable, Callable, Dict, Optional, Tuple

from swap_trader.exceptions import NotFoundError, TraderError, TransportError

logger = logging.getLogger(__name__)

QUANTITY = "quantity"
PRICE = "price"

# Instrument metadata field holding the minimum step for each kind
_STEP_FIELDS = {
    QUANTITY: "lotSz",
    PRICE: "tickSz",
}

_CacheKey = Tuple[str, str]


def step_to_decimals(step: str) -> int:
    """
    Number of digits after the decimal point of a step size.

    Examples:
        >>> step_to_decimals("0.01")
        2
        >>> step_to_decimals("1")
        0
        >>> step_to_decimals("0.10")
        1
    """
    exponent = Decimal(str(step)).normalize().as_tuple().exponent
    if not isinstance(exponent, int):
        raise ValueError(f"Invalid step size: {step}")
    return -exponent if exponent < 0 else 0


def format_fixed(value: float, decimals: int) -> str:
    """
    Render value with exactly `decimals` digits, rounding toward zero.

    Rounding down keeps a close order from exceeding the open size.
    """
    try:
        quantum = Decimal(1).scaleb(-decimals)
        rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_DOWN)
        return format(rounded, "f")
    except InvalidOperation:
        return f"{value:.{decimals}f}"


class PrecisionCache:
    """
    Per-instrument precision table.

    Safe for concurrent coroutines: writes are compare-and-store (an entry
    already present is kept) and concurrent misses for the same key share a
    single fetch.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[_CacheKey, Tuple[int, float]] = {}
        self._lock = asyncio.Lock()
        self._in_flight: Dict[_CacheKey, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _is_fresh(self, stored_at: float) -> bool:
        return self._ttl is None or self._clock() - stored_at < self._ttl

    def peek(self, inst_id: str, kind: str) -> Optional[int]:
        """Return the cached digits without fetching, or None."""
        entry = self._entries.get((inst_id, kind))
        if entry is None or not self._is_fresh(entry[1]):
            return None
        return entry[0]

    async def store(self, inst_id: str, kind: str, digits: int) -> int:
        """Store digits unless a fresh entry exists; return the value in the table."""
        key = (inst_id, kind)
        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._is_fresh(entry[1]):
                return entry[0]
            self._entries[key] = (digits, self._clock())
            return digits

    async def get_or_fetch(
        self, inst_id: str, kind: str, fetch_fn: Callable[[], Awaitable[int]]
    ) -> int:
        """
        Get from cache or fetch with single-flight protection.

        fetch_fn is expected to store its result (it may store several kinds
        from one metadata response); the value it returns is stored as well.

        A cancelled waiter leaves the shared fetch running. If the caller
        doing the fetch is cancelled, waiters get a TransportError instead.
        """
        cached = self.peek(inst_id, kind)
        if cached is not None:
            return cached

        key = (inst_id, kind)
        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            return await asyncio.shield(in_flight)

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._in_flight[key] = future

        try:
            digits = await self.store(inst_id, kind, await fetch_fn())
        except BaseException as exc:
            if not future.done():
                if isinstance(exc, Exception):
                    future.set_exception(exc)
                else:
                    future.set_exception(
                        TransportError(f"Precision fetch for {inst_id} {kind} was cancelled")
                    )
                # Retrieve so a failure nobody awaited is not reported as unhandled
                future.exception()
            raise
        else:
            if not future.done():
                future.set_result(digits)
            return digits
        finally:
            self._in_flight.pop(key, None)

    def invalidate(self, inst_id: Optional[str] = None):
        """Drop cached precision for one instrument, or for all of them."""
        if inst_id is None:
            self._entries.clear()
            return
        for key in [k for k in self._entries if k[0] == inst_id]:
            del self._entries[key]


class OKXFormatter:
    """
    Formats quantities and prices at the instrument's precision.

    Formatting never fails: if metadata can't be fetched, a fallback
    precision is used and a warning is logged. The fallback is not cached,
    so the next call tries again. After `failure_alert_threshold`
    consecutive failures for one key the log escalates to ERROR.
    """

    def __init__(
        self,
        client,
        cache: Optional[PrecisionCache] = None,
        quantity_fallback: int = 3,
        price_fallback: int = 2,
        failure_alert_threshold: int = 5,
    ):
        self._client = client
        self._cache = cache if cache is not None else PrecisionCache()
        self._fallbacks = {QUANTITY: quantity_fallback, PRICE: price_fallback}
        self._failure_alert_threshold = failure_alert_threshold
        self._failures: Dict[_CacheKey, int] = {}

    @property
    def cache(self) -> PrecisionCache:
        return self._cache

    def failure_count(self, inst_id: str, kind: str) -> int:
        return self._failures.get((inst_id, kind), 0)

    def invalidate(self, inst_id: Optional[str] = None):
        self._cache.invalidate(inst_id)

    async def _fetch_instrument_digits(self, inst_id: str, kind: str) -> int:
        resp = await self._client.get_instruments(inst_type="SWAP", inst_id=inst_id)
        items = resp.get("data") or []
        if not items:
            raise NotFoundError(f"Instrument not found: {inst_id}")
        instrument = items[0]

        # One metadata call answers both kinds; store the other one too
        for other_kind, field in _STEP_FIELDS.items():
            if other_kind != kind and instrument.get(field):
                await self._cache.store(inst_id, other_kind, step_to_decimals(instrument[field]))

        return step_to_decimals(instrument[_STEP_FIELDS[kind]])

    async def get_precision(self, inst_id: str, kind: str) -> int:
        if kind not in _STEP_FIELDS:
            raise ValueError(f"Unknown precision kind: {kind}")

        try:
            digits = await self._cache.get_or_fetch(
                inst_id, kind, lambda: self._fetch_instrument_digits(inst_id, kind)
            )
        except (TraderError, KeyError, IndexError, ValueError, ArithmeticError) as e:
            fallback = self._fallbacks[kind]
            key = (inst_id, kind)
            self._failures[key] = self._failures.get(key, 0) + 1
            failures = self._failures[key]
            if failures >= self._failure_alert_threshold:
                logger.error(
                    f"❌ {inst_id} {kind} precision lookup failed {failures} times in a row, "
                    f"still using default {fallback}: {e}"
                )
            else:
                logger.warning(f"⚠️  {inst_id} {kind} precision not found, using default {fallback}: {e}")
            return fallback

        self._failures.pop((inst_id, kind), None)
        return digits

    async def format_quantity(self, inst_id: str, quantity: float) -> str:
        return format_fixed(quantity, await self.get_precision(inst_id, QUANTITY))

    async def format_price(self, inst_id: str, price: float) -> str:
        return format_fixed(price, await self.get_precision(inst_id, PRICE))
