"""Authorize and token URL construction for the Microsoft identity platform."""

from azure_ad_v2.models import Endpoints, ProviderConfig

V2_API_SEGMENT = "oauth2/v2.0"
LEGACY_API_SEGMENT = "oauth2"


def api_segment(config: ProviderConfig) -> str:
    return LEGACY_API_SEGMENT if config.is_legacy_endpoint else V2_API_SEGMENT


def build_endpoints(config: ProviderConfig) -> Endpoints:
    """
    Build the authorize and token URLs for a resolved configuration.

    A custom policy only appears in the token URL, between the tenant and
    the API segment:

        {base}/{tenant}/oauth2/v2.0/authorize
        {base}/{tenant}/{policy}/oauth2/v2.0/token
    """
    segment = api_segment(config)
    tenant_root = f"{config.base_url}/{config.tenant_id}"

    authorize_url = f"{tenant_root}/{segment}/authorize"
    if config.custom_policy:
        token_url = f"{tenant_root}/{config.custom_policy}/{segment}/token"
    else:
        token_url = f"{tenant_root}/{segment}/token"

    return Endpoints(authorize_url=authorize_url, token_url=token_url)
