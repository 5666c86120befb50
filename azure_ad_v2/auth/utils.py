"""
Authentication utilities for token claims and the authorization policy.

This module handles:
- Decoding ID and access tokens without verification
- Merging the two claim sets into raw_info
- Projecting raw_info onto the identity fields
- Checking the resolved e-mail against the allow-list

Tokens arrive straight from the token endpoint over TLS, so no signature,
issuer, audience or expiry checks are performed here.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from jose import JWTError, jwt

from azure_ad_v2.auth.errors import CallbackError
from azure_ad_v2.models import Identity

logger = logging.getLogger(__name__)

INVALID_EMAIL = "invalid_email"
INVALID_EMAIL_MESSAGE = "Invalid Email Domain or Email Not Authorized"


# =============================================================================
# Claims Extraction
# =============================================================================

def decode_unverified_claims(token: Optional[str]) -> Dict[str, Any]:
    """
    Decode a JWT payload without verifying it.

    Some account types issue opaque access tokens, and the ID token may be
    missing entirely, so every failure yields an empty claim set.

    Args:
        token: Raw JWT string, or None

    Returns:
        Decoded claims, or {} if the token is absent or not a decodable JWT
    """
    if not token or not isinstance(token, str):
        return {}

    try:
        claims = jwt.get_unverified_claims(token)
    except (JWTError, ValueError, TypeError) as e:
        logger.debug(f"Token is not a decodable JWT: {e}")
        return {}

    if not isinstance(claims, dict):
        return {}
    return claims


def merge_claims(id_token_claims: Dict[str, Any], access_token_claims: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge ID token and access token claims; access token claims win on collision.
    """
    merged = dict(id_token_claims)
    merged.update(access_token_claims)
    return merged


def extract_claims(id_token: Optional[str], access_token: Optional[str]) -> Dict[str, Any]:
    """Decode both tokens best-effort and merge them into raw_info."""
    return merge_claims(
        decode_unverified_claims(id_token),
        decode_unverified_claims(access_token),
    )


# =============================================================================
# Identity Projection
# =============================================================================

def extract_email_from_claims(claims: Dict[str, Any]) -> Optional[str]:
    """
    Return the e-mail claim, falling back to the User Principal Name.

    Personal accounts carry 'email'; work and school accounts often only
    carry 'upn'. A claim that is not a string counts as missing.
    """
    for name in ("email", "upn"):
        value = claims.get(name)
        if value and isinstance(value, str):
            return value
    return None


def claim_string(claims: Dict[str, Any], name: str) -> Optional[str]:
    """
    Read a claim as a string.

    Numbers are stringified; lists, objects and booleans are ignored.
    """
    value = claims.get(name)
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def build_identity(claims: Dict[str, Any]) -> Identity:
    return Identity(
        uid=claim_string(claims, "oid"),
        name=claim_string(claims, "name"),
        email=extract_email_from_claims(claims),
        nickname=claim_string(claims, "unique_name"),
        first_name=claim_string(claims, "given_name"),
        last_name=claim_string(claims, "family_name"),
    )


def email_domain(email: Optional[str]) -> Optional[str]:
    if not isinstance(email, str) or "@" not in email:
        return None
    return email.rsplit("@", 1)[-1].lower().strip()


# =============================================================================
# Authorization Policy
# =============================================================================

def verify_authorized_email(
    claims: Dict[str, Any],
    authorized_emails: Iterable[str],
    authorized_domains: Iterable[str] = (),
) -> Identity:
    """
    Check the resolved e-mail against the allow-list.

    The e-mail must match an entry of authorized_emails exactly. When
    authorized_domains is non-empty, an e-mail whose domain is listed is
    accepted as well.

    Args:
        claims: Merged raw_info
        authorized_emails: Exact e-mail allow-list
        authorized_domains: Lowercase domain allow-list (empty disables it)

    Returns:
        Identity derived from the claims

    Raises:
        CallbackError: invalid_email if the e-mail is missing or not allowed
    """
    identity = build_identity(claims)
    email = identity.email

    if email and email in set(authorized_emails):
        return identity

    domain = email_domain(email)
    if domain and domain in {d.lower() for d in authorized_domains}:
        return identity

    logger.info(
        "Rejected sign-in for unauthorized email",
        extra={"uid": identity.uid, "email_domain": domain},
    )
    raise CallbackError(INVALID_EMAIL, INVALID_EMAIL_MESSAGE)
