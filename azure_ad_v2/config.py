"""
Configuration module for the Azure AD v2 authentication strategy.

This module uses Pydantic Settings to load and validate environment variables
for the static provider configuration, the authorization allow-list, the
host session and logging.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import Field, ImportString, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_AZURE_URL = "https://login.microsoftonline.com"
DEFAULT_STRATEGY_NAME = "azure_activedirectory_v2"


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The AZURE_* values form the static provider configuration used when no
    TENANT_PROVIDER class is configured.
    """

    # =========================================================================
    # Strategy
    # =========================================================================

    STRATEGY_NAME: str = Field(
        default=DEFAULT_STRATEGY_NAME,
        description="Strategy name, used as the /auth/<name> path segment",
        min_length=1,
    )

    TENANT_PROVIDER: Optional[ImportString] = Field(
        None,
        description="Dotted path to a TenantProvider subclass (e.g. 'myapp.tenants:AcmeProvider')",
    )

    # =========================================================================
    # Azure AD / Entra ID static provider configuration
    # =========================================================================

    AZURE_CLIENT_ID: Optional[str] = Field(
        None,
        description="Application (client) ID registered in Azure AD",
    )

    AZURE_CLIENT_SECRET: Optional[str] = Field(
        None,
        description="Client secret for the application",
    )

    AZURE_TENANT_ID: str = Field(
        default="common",
        description="Tenant ID, domain, or one of common/organizations/consumers",
        min_length=1,
    )

    AZURE_BASE_URL: str = Field(
        default=BASE_AZURE_URL,
        description="Identity platform host (override for sovereign clouds or B2C)",
    )

    AZURE_SCOPE: Optional[str] = Field(
        None,
        description="Space separated scopes requested when the request carries none",
    )

    AZURE_DOMAIN_HINT: Optional[str] = Field(
        None,
        description="Value sent as domain_hint on the authorize request",
    )

    AZURE_CUSTOM_POLICY: Optional[str] = Field(
        None,
        description="B2C custom policy inserted into the token URL",
    )

    AZURE_ADFS: bool = Field(
        default=False,
        description="Use the legacy 'oauth2' endpoints instead of 'oauth2/v2.0'",
    )

    AZURE_AUTHORIZE_PARAMS: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra authorize request parameters as a JSON object",
    )

    AZURE_REDIRECT_URI: Optional[str] = Field(
        None,
        description="Fixed redirect URI; derived from the request host when unset",
    )

    USE_PKCE: bool = Field(
        default=False,
        description="Send a PKCE S256 challenge with the authorize request",
    )

    HTTP_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for the token endpoint request",
        gt=0,
        le=120,
    )

    # =========================================================================
    # Authorization policy
    # =========================================================================

    AUTHORIZED_EMAILS: str = Field(
        default="",
        description="Comma-separated list of e-mail addresses allowed to sign in",
    )

    AUTHORIZED_DOMAINS: str = Field(
        default="",
        description="Comma-separated list of e-mail domains allowed to sign in (opt-in)",
    )

    # =========================================================================
    # Host application
    # =========================================================================

    SESSION_SECRET: str = Field(
        ...,
        description="Secret used to sign the session cookie holding OAuth state",
        min_length=32,
    )

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    LOG_LEVEL: str = Field(default="INFO", description="Root logging level")

    HOST: str = Field(default="0.0.0.0", description="Host to bind the server")

    PORT: int = Field(default=8080, description="Port to bind the server", ge=1, le=65535)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def authorized_emails_list(self) -> List[str]:
        """E-mail allow-list, compared verbatim against the resolved claim."""
        return _split_csv(self.AUTHORIZED_EMAILS)

    @property
    def authorized_domains_list(self) -> List[str]:
        """
        Parse and return AUTHORIZED_DOMAINS as a clean list.

        Returns:
            List of lowercase domain strings without whitespace.
        """
        return [domain.lower() for domain in _split_csv(self.AUTHORIZED_DOMAINS)]

    @property
    def allowed_origins_list(self) -> List[str]:
        return _split_csv(self.ALLOWED_ORIGINS)

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("AUTHORIZED_EMAILS")
    @classmethod
    def validate_authorized_emails(cls, v: str) -> str:
        """
        Validate that every allow-listed entry looks like an e-mail address.

        Raises:
            ValueError: If an entry has no local part or no domain
        """
        for email in _split_csv(v):
            local, _, domain = email.rpartition("@")
            if not local or not domain:
                raise ValueError(
                    f"Invalid email format: '{email}'. "
                    "Expected format: 'user@example.com'"
                )
        return v

    @field_validator("AUTHORIZED_DOMAINS")
    @classmethod
    def validate_authorized_domains(cls, v: str) -> str:
        for domain in _split_csv(v):
            if "." not in domain or " " in domain or "@" in domain:
                raise ValueError(
                    f"Invalid domain format: '{domain}'. "
                    "Expected format: 'example.com'"
                )
        return v

    @field_validator("AZURE_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unsupported log level: {v}")
        return level


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Settings are loaded once per process; tests build Settings directly and
    hand them to create_app instead.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> Dict[str, Any]:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup so misconfiguration shows up in the
    logs before the first sign-in attempt.

    Returns:
        Dictionary with validation status and any warnings.
    """
    errors = []
    warnings = []

    if settings.TENANT_PROVIDER is None:
        if not settings.AZURE_CLIENT_ID:
            errors.append("AZURE_CLIENT_ID is not set and no TENANT_PROVIDER is configured")
        if not settings.AZURE_CLIENT_SECRET:
            errors.append("AZURE_CLIENT_SECRET is not set and no TENANT_PROVIDER is configured")

    if not settings.authorized_emails_list and not settings.authorized_domains_list:
        warnings.append("No authorized emails or domains configured; every sign-in will be rejected")

    if settings.AZURE_CUSTOM_POLICY and settings.AZURE_ADFS:
        warnings.append("AZURE_CUSTOM_POLICY is combined with AZURE_ADFS legacy endpoints")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "strategy": settings.STRATEGY_NAME,
        "tenant_id": settings.AZURE_TENANT_ID,
        "authorized_emails": len(settings.authorized_emails_list),
        "authorized_domains": settings.authorized_domains_list,
    }
