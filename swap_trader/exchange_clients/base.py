"""
PerpetualTrader Abstract Base Class

This module defines the interface every perpetual-swap trader must implement.
A strategy layer written against it can open and close positions, protect
them with stop-loss / take-profit orders and read account state without
knowing the exchange's instrument naming, margin modes or number formats.
"""

from abc import ABC, abstractmethod
from typing import List

from swap_trader.schemas import BalanceSummary, CancelReport, OrderResult, Position


class PerpetualTrader(ABC):
    """
    Abstract base class for perpetual-swap traders.

    Design Philosophy:
    - Symbols are canonical tickers ("BTCUSDT"); adapters translate them
    - Quantities and prices are floats; adapters format them for the wire
    - Each call is stateless; the exchange is the source of truth
    - Async methods so several symbols can be traded concurrently
    """

    # ========================================
    # ACCOUNT & POSITIONS
    # ========================================

    @abstractmethod
    async def get_balance(self) -> BalanceSummary:
        """
        Get the margin account balance.

        Raises:
            NotFoundError: If the exchange returns no account record
        """
        pass

    @abstractmethod
    async def get_positions(self) -> List[Position]:
        """
        List open positions, excluding zero-size entries, in exchange order.
        """
        pass

    # ========================================
    # MARKET DATA
    # ========================================

    @abstractmethod
    async def get_market_price(self, symbol: str) -> float:
        """Get the last traded price for a symbol."""
        pass

    # ========================================
    # POSITION LIFECYCLE
    # ========================================

    @abstractmethod
    async def set_leverage(self, symbol: str, leverage: int) -> bool:
        """
        Set leverage for a symbol.

        Returns:
            True if leverage changed, False if it was already at that value
        """
        pass

    @abstractmethod
    async def open_long(self, symbol: str, quantity: float, leverage: int) -> OrderResult:
        """Cancel stale protective orders, set leverage and buy to open a long."""
        pass

    @abstractmethod
    async def open_short(self, symbol: str, quantity: float, leverage: int) -> OrderResult:
        """Cancel stale protective orders, set leverage and sell to open a short."""
        pass

    @abstractmethod
    async def close_long(self, symbol: str, quantity: float = 0) -> OrderResult:
        """
        Sell to close a long position.

        Args:
            quantity: Amount to close; 0 closes the whole position

        Raises:
            NotFoundError: If quantity is 0 and no long position exists
        """
        pass

    @abstractmethod
    async def close_short(self, symbol: str, quantity: float = 0) -> OrderResult:
        """Buy to close a short position (quantity 0 closes all of it)."""
        pass

    # ========================================
    # PROTECTIVE ORDERS
    # ========================================

    @abstractmethod
    async def set_stop_loss(
        self, symbol: str, position_side: str, quantity: float, stop_price: float
    ) -> None:
        """Place a market stop-loss that closes `quantity` of the given side."""
        pass

    @abstractmethod
    async def set_take_profit(
        self, symbol: str, position_side: str, quantity: float, take_profit_price: float
    ) -> None:
        """Place a market take-profit that closes `quantity` of the given side."""
        pass

    @abstractmethod
    async def cancel_all_orders(self, symbol: str) -> CancelReport:
        """
        Cancel all protective orders for a symbol.

        Best-effort: never raises for individual failures, which are
        reported in the returned CancelReport.
        """
        pass

    # ========================================
    # FORMATTING
    # ========================================

    @abstractmethod
    async def format_quantity(self, symbol: str, quantity: float) -> str:
        """Render a quantity at the instrument's lot precision."""
        pass

    @abstractmethod
    async def format_price(self, symbol: str, price: float) -> str:
        """Render a price at the instrument's tick precision."""
        pass
