"""
Azure AD v2 authentication strategy.

One strategy instance handles one request: the request phase builds the
authorize redirect, the callback phase exchanges the code, extracts the
claims and applies the e-mail allow-list. Nothing is shared between
instances; the resolved provider configuration and raw_info live on the
instance only.

Callback states:

    STARTED -> EXCHANGING -> CLAIMS_EXTRACTED -> VERIFYING -> COMPLETED
                    \\                                 \\
                     +-------------> FAILED <----------+
"""

import enum
import logging
from typing import Any, Dict, Mapping, MutableMapping, Optional, Type

import httpx
from starlette.requests import Request

from azure_ad_v2.auth.client import (
    OAuth2Client,
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
)
from azure_ad_v2.auth.endpoints import build_endpoints
from azure_ad_v2.auth.errors import CallbackError, UpstreamExchangeError
from azure_ad_v2.auth.provider import SettingsTenantProvider, TenantProvider, resolve_provider_config
from azure_ad_v2.auth.utils import build_identity, extract_claims, verify_authorized_email
from azure_ad_v2.config import Settings
from azure_ad_v2.models import AccessToken, AuthHash, AuthInfo, CallbackOutcome, Endpoints, ProviderConfig

logger = logging.getLogger(__name__)

STATE_SESSION_KEY = "oauth_state"
VERIFIER_SESSION_KEY = "code_verifier"


class FlowState(str, enum.Enum):
    STARTED = "started"
    EXCHANGING = "exchanging"
    CLAIMS_EXTRACTED = "claims_extracted"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    FAILED = "failed"


class AzureActiveDirectoryV2Strategy:
    """
    Authorization code strategy for Azure AD / Entra ID v2 endpoints.

    Args:
        settings: Application settings (static provider config and allow-list)
        query_params: Query parameters of the current request
        session: Host session used to carry state and the PKCE verifier
        full_host: Scheme and host of the current request, without trailing slash
        tenant_provider: TenantProvider subclass; SettingsTenantProvider when None
        transport: Optional httpx transport for the token request
    """

    def __init__(
        self,
        settings: Settings,
        query_params: Optional[Mapping[str, str]] = None,
        session: Optional[MutableMapping[str, Any]] = None,
        full_host: str = "",
        tenant_provider: Optional[Type[TenantProvider]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.name = settings.STRATEGY_NAME
        self.query_params = dict(query_params or {})
        self.session = session if session is not None else {}
        self.full_host = full_host.rstrip("/")
        self.tenant_provider = tenant_provider or settings.TENANT_PROVIDER
        self.transport = transport

        self.state = FlowState.STARTED
        self.access_token: Optional[AccessToken] = None
        self._provider_config: Optional[ProviderConfig] = None
        self._raw_info: Optional[Dict[str, Any]] = None

    @classmethod
    def from_request(
        cls,
        request: Request,
        settings: Settings,
        tenant_provider: Optional[Type[TenantProvider]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "AzureActiveDirectoryV2Strategy":
        return cls(
            settings=settings,
            query_params=request.query_params,
            session=request.session,
            full_host=f"{request.url.scheme}://{request.url.netloc}",
            tenant_provider=tenant_provider,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Provider resolution
    # ------------------------------------------------------------------

    def build_provider(self) -> TenantProvider:
        provider_cls = self.tenant_provider or SettingsTenantProvider
        return provider_cls(self)

    @property
    def provider_config(self) -> ProviderConfig:
        if self._provider_config is None:
            self._provider_config = resolve_provider_config(self.build_provider(), self.query_params)
        return self._provider_config

    @property
    def endpoints(self) -> Endpoints:
        return build_endpoints(self.provider_config)

    @property
    def client(self) -> OAuth2Client:
        config = self.provider_config
        endpoints = self.endpoints
        return OAuth2Client(
            client_id=config.client_id,
            client_secret=config.client_secret,
            authorize_url=endpoints.authorize_url,
            token_url=endpoints.token_url,
            timeout=self.settings.HTTP_TIMEOUT_SECONDS,
            transport=self.transport,
        )

    @property
    def callback_path(self) -> str:
        return f"/auth/{self.name}/callback"

    @property
    def callback_url(self) -> str:
        """Redirect URI: configured value, else host + callback path without query string."""
        if self.settings.AZURE_REDIRECT_URI:
            return self.settings.AZURE_REDIRECT_URI
        return self.full_host + self.callback_path

    # ------------------------------------------------------------------
    # Request phase
    # ------------------------------------------------------------------

    def request_phase(self) -> str:
        """
        Start the flow and return the authorize URL to redirect to.

        Raises:
            ConfigurationError: If client credentials cannot be resolved
        """
        config = self.provider_config
        state = generate_state()
        self.session[STATE_SESSION_KEY] = state

        params = dict(config.authorize_extra_params)
        params["scope"] = config.scope

        if self.settings.USE_PKCE:
            verifier = generate_code_verifier()
            self.session[VERIFIER_SESSION_KEY] = verifier
            params["code_challenge"] = generate_code_challenge(verifier)
            params["code_challenge_method"] = "S256"

        logger.info(
            "Redirecting to authorize endpoint",
            extra={"strategy": self.name, "tenant_id": config.tenant_id},
        )
        return self.client.authorization_url(self.callback_url, state, params)

    # ------------------------------------------------------------------
    # Claims and identity
    # ------------------------------------------------------------------

    @property
    def raw_info(self) -> Dict[str, Any]:
        """
        Merged ID token and access token claims, computed once per instance.

        Some account types only have a decodable ID token; others carry a
        richer set of claims in the access token. Both are decoded and the
        access token claims overwrite the ID token claims on collision.
        """
        if self._raw_info is None:
            id_token = self.access_token.params.get("id_token") if self.access_token else None
            token = self.access_token.token if self.access_token else None
            self._raw_info = extract_claims(id_token, token)
        return self._raw_info

    @property
    def uid(self) -> Optional[str]:
        return build_identity(self.raw_info).uid

    @property
    def info(self) -> AuthInfo:
        identity = build_identity(self.raw_info)
        return AuthInfo(**identity.model_dump(exclude={"uid"}))

    @property
    def extra(self) -> Dict[str, Any]:
        return {"raw_info": self.raw_info}

    def auth_hash(self) -> AuthHash:
        return AuthHash(provider=self.name, uid=self.uid, info=self.info, extra=self.extra)

    def verify_user(self) -> None:
        """
        Raises:
            CallbackError: invalid_email if the user is not on the allow-list
        """
        verify_authorized_email(
            self.raw_info,
            self.settings.authorized_emails_list,
            self.settings.authorized_domains_list,
        )

    # ------------------------------------------------------------------
    # Callback phase
    # ------------------------------------------------------------------

    def _transition(self, state: FlowState) -> None:
        logger.debug(f"Strategy {self.name}: {self.state.value} -> {state.value}")
        self.state = state

    def _check_callback_params(self) -> str:
        error = self.query_params.get("error")
        if error:
            raise CallbackError(
                error,
                self.query_params.get("error_description") or self.query_params.get("error_reason"),
                self.query_params.get("error_uri"),
            )

        expected_state = self.session.pop(STATE_SESSION_KEY, None)
        received_state = self.query_params.get("state")
        if not expected_state or received_state != expected_state:
            raise CallbackError("csrf_detected", "CSRF detected")

        code = self.query_params.get("code")
        if not code:
            raise CallbackError("missing_code", "Authorization code missing from callback")
        return code

    async def callback_phase(self) -> CallbackOutcome:
        """
        Exchange the code, extract claims and verify the user.

        Returns:
            CallbackOutcome carrying the AuthHash, or the failure reason and cause

        Raises:
            ConfigurationError: If client credentials cannot be resolved
        """
        try:
            code = self._check_callback_params()

            self._transition(FlowState.EXCHANGING)
            self.access_token = await self.client.get_token(
                code,
                self.callback_url,
                code_verifier=self.session.pop(VERIFIER_SESSION_KEY, None),
            )

            claims = self.raw_info
            self._transition(FlowState.CLAIMS_EXTRACTED)
            logger.debug(f"Extracted {len(claims)} claims from token response")

            self._transition(FlowState.VERIFYING)
            self.verify_user()
        except CallbackError as e:
            return self.fail(e.error, e)
        except UpstreamExchangeError as e:
            return self.fail(e.reason, e)

        self._transition(FlowState.COMPLETED)
        logger.info("Authentication succeeded", extra={"strategy": self.name, "uid": self.uid})
        return CallbackOutcome.succeeded(self.auth_hash())

    def fail(self, reason: str, exception: Exception) -> CallbackOutcome:
        self._transition(FlowState.FAILED)
        logger.warning(
            f"Authentication failure! {reason}: {type(exception).__name__}, {exception}",
            extra={"strategy": self.name},
        )
        return CallbackOutcome.failed(reason, exception)
