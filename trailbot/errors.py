"""TrailBot — error taxonomy.

``InsufficientDataError`` and ``ConfigurationError`` subclass ``ValueError``
so callers that only care about bad input can catch the builtin.
"""

from typing import Optional


class TrailBotError(Exception):
    """Base class for all TrailBot errors."""


class InsufficientDataError(TrailBotError, ValueError):
    """Fewer data points than an indicator requires — skip the symbol."""


class GatewayError(TrailBotError):
    """Network, auth, or rate-limit failure talking to the exchange.

    Args:
        message: Human-readable description.
        status_code: HTTP status code, if the failure came from a response.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(TrailBotError, ValueError):
    """Missing credentials or invalid settings at startup — fatal."""
