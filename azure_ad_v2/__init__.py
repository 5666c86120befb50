"""
Azure AD v2 authentication strategy.

OAuth 2.0 authorization code sign-in against the Microsoft identity platform
(Azure AD / Entra ID), with per-request tenant resolution, claims merged
from the ID and access tokens, and an e-mail allow-list.
"""

__version__ = "1.0.0"
