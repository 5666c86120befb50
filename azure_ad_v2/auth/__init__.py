"""
Authentication Package

This package implements the Azure AD v2 authorization code strategy.

Modules:
- provider: TenantProvider capability object and per-flow resolution
- endpoints: authorize / token URL construction
- utils: unverified claims decoding, merging and the e-mail allow-list
- client: authorization code exchange over httpx
- strategy: request and callback phases
- routes: FastAPI endpoints (/auth/<strategy>, /auth/<strategy>/callback, /auth/failure)

The authentication flow:
1. Client is redirected to /auth/<strategy>
2. User authenticates with Microsoft
3. /auth/<strategy>/callback exchanges the code and merges the token claims
4. The e-mail is checked against the allow-list
5. The auth hash is returned, or the client is sent to /auth/failure
"""

from .errors import CallbackError, ConfigurationError, StrategyError, UpstreamExchangeError
from .provider import TenantProvider
from .routes import auth_router
from .strategy import AzureActiveDirectoryV2Strategy

__all__ = [
    "AzureActiveDirectoryV2Strategy",
    "CallbackError",
    "ConfigurationError",
    "StrategyError",
    "TenantProvider",
    "UpstreamExchangeError",
    "auth_router",
]
