"""Centralized Pydantic schemas for trader requests/results"""

from .trading import (
    BalanceSummary,
    CancelReport,
    ContingentOrderSpec,
    OrderResult,
    Position,
)

__all__ = [
    # Account schemas
    "BalanceSummary",
    "Position",
    # Order schemas
    "OrderResult",
    "ContingentOrderSpec",
    "CancelReport",
]
