"""
Data Models Module

This module defines the Pydantic models passed between the pieces of the
strategy and exposed to the embedding application.

Models are organized by functional area:
- Provider models (resolved per-flow configuration, endpoint pair)
- Token models (token endpoint response)
- Identity models (identity projection, auth hash, callback outcome)
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Provider Models
# ============================================================================

class ProviderConfig(BaseModel):
    """Settings resolved for a single authentication flow."""

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(..., description="Application (client) ID")
    client_secret: str = Field(..., description="Application client secret")
    tenant_id: str = Field(default="common", description="Tenant segment of the endpoint URLs")
    base_url: str = Field(..., description="Identity platform host")
    custom_policy: Optional[str] = Field(None, description="B2C policy inserted into the token URL")
    is_legacy_endpoint: bool = Field(default=False, description="Use 'oauth2' instead of 'oauth2/v2.0'")
    scope: str = Field(..., description="Space separated scopes for the authorize request")
    domain_hint: Optional[str] = Field(None, description="domain_hint sent to the authorize endpoint")
    prompt: Optional[str] = Field(None, description="prompt taken from the current request")
    authorize_extra_params: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra parameters for the authorize request",
    )


class Endpoints(BaseModel):
    """Authorize and token URLs for one flow."""

    model_config = ConfigDict(frozen=True)

    authorize_url: str
    token_url: str


# ============================================================================
# Token Models
# ============================================================================

class AccessToken(BaseModel):
    """Token endpoint response: the raw access token plus every other field."""

    token: str = Field(..., description="Raw access token string")
    params: Dict[str, Any] = Field(
        default_factory=dict,
        description="Remaining response fields (id_token, token_type, expires_in, ...)",
    )

    @classmethod
    def from_token_response(cls, data: Dict[str, Any]) -> "AccessToken":
        params = dict(data)
        token = params.pop("access_token")
        return cls(token=token, params=params)


# ============================================================================
# Identity Models
# ============================================================================

class Identity(BaseModel):
    """Identity projection over the merged token claims."""

    uid: Optional[str] = Field(None, description="Object ID (oid claim)")
    name: Optional[str] = None
    email: Optional[str] = Field(None, description="email claim, falling back to upn")
    nickname: Optional[str] = Field(None, description="unique_name claim")
    first_name: Optional[str] = Field(None, description="given_name claim")
    last_name: Optional[str] = Field(None, description="family_name claim")


class AuthInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    nickname: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class AuthHash(BaseModel):
    """Authentication result handed to the embedding application."""

    provider: str = Field(..., description="Strategy name")
    uid: Optional[str] = Field(None, description="Stable user identifier")
    info: AuthInfo
    extra: Dict[str, Any] = Field(default_factory=dict, description="Contains raw_info (merged claims)")


class CallbackOutcome(BaseModel):
    """Terminal result of one callback: success with an AuthHash, or a failure reason."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    auth: Optional[AuthHash] = None
    reason: Optional[str] = Field(None, description="Short failure code, e.g. invalid_email")
    message: Optional[str] = None
    cause: Optional[Exception] = Field(None, exclude=True)

    @classmethod
    def succeeded(cls, auth: AuthHash) -> "CallbackOutcome":
        return cls(success=True, auth=auth)

    @classmethod
    def failed(cls, reason: str, cause: Optional[Exception] = None) -> "CallbackOutcome":
        return cls(success=False, reason=reason, message=str(cause) if cause else None, cause=cause)
