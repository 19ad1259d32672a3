"""
Domain exceptions for the trader.

Adapters raise these instead of transport-library errors so the strategy
layer can tell a failed network call from an exchange-side rejection.
"""

from typing import Optional


class TraderError(Exception):
    """Base trader error."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TransportError(TraderError):
    """The remote call itself failed (network, HTTP status, authentication)."""


class ExchangeRejectedError(TraderError):
    """The exchange answered but reported a non-success code."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)


class NotFoundError(TraderError):
    """Requested position, account or ticker record does not exist."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class ExchangeUnavailableError(TraderError):
    """Exchange API could not be reached when the trader was created."""

    def __init__(self, message: str = "Exchange service unavailable"):
        super().__init__(message)
