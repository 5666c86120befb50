"""
Strategy error kinds.

Token decode failures have no exception here: they are absorbed by
decode_unverified_claims and contribute an empty claim set.
"""

from typing import Optional


class StrategyError(Exception):
    """Base exception for authentication strategy errors"""
    pass


class ConfigurationError(StrategyError):
    """Client credentials could not be resolved; the flow cannot start."""
    pass


class CallbackError(StrategyError):
    """
    Callback rejected by the strategy or reported by the provider.

    Attributes:
        error: Short reason code routed to the failure channel (e.g. invalid_email)
        error_reason: Human readable description
        error_uri: Optional documentation link sent by the provider
    """

    def __init__(self, error: str, error_reason: Optional[str] = None, error_uri: Optional[str] = None):
        self.error = error
        self.error_reason = error_reason
        self.error_uri = error_uri
        super().__init__(error_reason or error)


class UpstreamExchangeError(StrategyError):
    """Authorization code exchange with the token endpoint failed."""

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(message)
