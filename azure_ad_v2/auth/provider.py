"""
Tenant providers and per-flow provider resolution.

A tenant provider supplies the client credentials and endpoint settings for
one flow. The embedding application configures a TenantProvider subclass
(TENANT_PROVIDER setting); it is instantiated once per flow with the
strategy, so it can pick a tenant from the current request. Without one,
SettingsTenantProvider serves the static AZURE_* settings.
"""

import logging
from typing import TYPE_CHECKING, Dict, Mapping, Optional

from azure_ad_v2.auth.errors import ConfigurationError
from azure_ad_v2.config import BASE_AZURE_URL
from azure_ad_v2.models import ProviderConfig

if TYPE_CHECKING:
    from azure_ad_v2.auth.strategy import AzureActiveDirectoryV2Strategy

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "openid profile email"
DEFAULT_TENANT_ID = "common"


class TenantProvider:
    """
    Capability object describing where and how to authenticate.

    Subclasses must provide client_id and client_secret; leaving either
    unset is a configuration error. Every other attribute is optional;
    leaving it as None (False for is_adfs) selects the default:

    - tenant_id: "common"
    - base_url: https://login.microsoftonline.com
    - authorize_params: no extra authorize parameters
    - domain_hint: not sent
    - scope: "openid profile email"
    - custom_policy: none
    - is_adfs: v2.0 endpoints

    Attributes may be plain class attributes or properties.
    """

    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    tenant_id: Optional[str] = None
    base_url: Optional[str] = None
    authorize_params: Optional[Mapping[str, str]] = None
    domain_hint: Optional[str] = None
    scope: Optional[str] = None
    custom_policy: Optional[str] = None
    is_adfs: bool = False

    def __init__(self, strategy: "AzureActiveDirectoryV2Strategy"):
        self.strategy = strategy


class SettingsTenantProvider(TenantProvider):
    """Static provider backed by the AZURE_* settings."""

    def __init__(self, strategy: "AzureActiveDirectoryV2Strategy"):
        super().__init__(strategy)
        settings = strategy.settings
        self.client_id = settings.AZURE_CLIENT_ID
        self.client_secret = settings.AZURE_CLIENT_SECRET
        self.tenant_id = settings.AZURE_TENANT_ID
        self.base_url = settings.AZURE_BASE_URL
        self.authorize_params = settings.AZURE_AUTHORIZE_PARAMS or None
        self.domain_hint = settings.AZURE_DOMAIN_HINT
        self.scope = settings.AZURE_SCOPE
        self.custom_policy = settings.AZURE_CUSTOM_POLICY
        self.is_adfs = settings.AZURE_ADFS


def resolve_provider_config(
    provider: TenantProvider,
    query_params: Optional[Mapping[str, str]] = None,
) -> ProviderConfig:
    """
    Build the effective ProviderConfig for one flow.

    Request parameters take precedence: 'prompt' overrides any provider
    authorize parameter, and 'scope' wins over the provider scope and the
    default scope.

    Args:
        provider: Tenant provider bound to the current flow
        query_params: Query parameters of the current request

    Returns:
        Fully populated ProviderConfig

    Raises:
        ConfigurationError: If client_id or client_secret is missing
    """
    query_params = query_params or {}

    client_id = provider.client_id
    client_secret = provider.client_secret
    if not client_id or not client_secret:
        missing = "client_id" if not client_id else "client_secret"
        raise ConfigurationError(
            f"{type(provider).__name__} did not provide a {missing}"
        )

    extra: Dict[str, str] = dict(provider.authorize_params or {})

    if provider.domain_hint:
        extra["domain_hint"] = provider.domain_hint

    prompt = query_params.get("prompt")
    if prompt:
        extra["prompt"] = prompt

    scope = query_params.get("scope") or provider.scope or DEFAULT_SCOPE

    config = ProviderConfig(
        client_id=client_id,
        client_secret=client_secret,
        tenant_id=provider.tenant_id or DEFAULT_TENANT_ID,
        base_url=(provider.base_url or BASE_AZURE_URL).rstrip("/"),
        custom_policy=provider.custom_policy or None,
        is_legacy_endpoint=bool(provider.is_adfs),
        scope=scope,
        domain_hint=provider.domain_hint or None,
        prompt=prompt or None,
        authorize_extra_params=extra,
    )

    logger.debug(
        "Resolved provider configuration",
        extra={
            "provider": type(provider).__name__,
            "tenant_id": config.tenant_id,
            "legacy_endpoint": config.is_legacy_endpoint,
            "custom_policy": config.custom_policy,
        },
    )
    return config
