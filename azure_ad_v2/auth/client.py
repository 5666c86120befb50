"""
OAuth 2.0 authorization code client.

Builds the authorize redirect and exchanges the authorization code at the
token endpoint with httpx. The client only knows the two URLs and the client
credentials; everything Azure specific is resolved by the strategy.
"""

import base64
import hashlib
import logging
import secrets
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from azure_ad_v2.auth.errors import UpstreamExchangeError
from azure_ad_v2.models import AccessToken

logger = logging.getLogger(__name__)


# =============================================================================
# State and PKCE Helpers
# =============================================================================

def generate_state() -> str:
    return secrets.token_urlsafe(32)


def generate_code_verifier() -> str:
    """
    Generate a cryptographically random code verifier for PKCE.

    Returns:
        Base64-URL-encoded random string (43-128 characters)
    """
    verifier_bytes = secrets.token_bytes(32)
    return base64.urlsafe_b64encode(verifier_bytes).decode('utf-8').rstrip('=')


def generate_code_challenge(verifier: str) -> str:
    """Base64-URL-encoded SHA256 of the verifier (S256 method)."""
    digest = hashlib.sha256(verifier.encode('utf-8')).digest()
    return base64.urlsafe_b64encode(digest).decode('utf-8').rstrip('=')


# =============================================================================
# Client
# =============================================================================

class OAuth2Client:
    """
    Authorization code flow client.

    Args:
        client_id: Application (client) ID
        client_secret: Client secret sent with the token request
        authorize_url: Authorization endpoint
        token_url: Token endpoint
        timeout: Token request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        authorize_url: str,
        token_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.timeout = timeout
        self.transport = transport

    def authorization_url(self, redirect_uri: str, state: str, params: Optional[Dict[str, str]] = None) -> str:
        """Full authorize URL the user agent is redirected to."""
        query = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "state": state,
        }
        query.update(params or {})
        return f"{self.authorize_url}?{urlencode(query)}"

    async def get_token(
        self,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> AccessToken:
        """
        Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback
            redirect_uri: Redirect URI used in the authorize request
            code_verifier: PKCE verifier, when a challenge was sent

        Returns:
            AccessToken with the raw access token and the remaining response fields

        Raises:
            UpstreamExchangeError: On timeouts, connection failures, error
                responses or a response without an access_token
        """
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if code_verifier:
            payload["code_verifier"] = code_verifier

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.token_url,
                    data=payload,
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException as e:
            raise UpstreamExchangeError("timeout", f"Token request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise UpstreamExchangeError("failed_to_connect", f"Token request failed: {e}") from e

        token_data = self._parse_response(response)

        if not response.is_success:
            error_msg = token_data.get("error_description") or token_data.get("error") or f"HTTP {response.status_code}"
            logger.warning(
                "Token exchange rejected by provider",
                extra={"status_code": response.status_code, "error": token_data.get("error")},
            )
            raise UpstreamExchangeError("invalid_credentials", f"Token exchange failed: {error_msg}")

        access_token = token_data.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise UpstreamExchangeError("invalid_credentials", "Token response missing access_token")

        try:
            return AccessToken.from_token_response(token_data)
        except ValidationError as e:
            raise UpstreamExchangeError("invalid_credentials", f"Malformed token response: {e}") from e

    @staticmethod
    def _parse_response(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
