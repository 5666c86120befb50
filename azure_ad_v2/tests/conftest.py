"""Shared fixtures for the strategy tests."""

import pytest
import jwt

from azure_ad_v2.config import Settings


TEST_SESSION_SECRET = "test-session-secret-1234567890123456"


@pytest.fixture
def make_settings():
    """Build Settings without reading .env; keyword arguments override the defaults."""
    def _make(**overrides):
        values = {
            "AZURE_CLIENT_ID": "test-client-id",
            "AZURE_CLIENT_SECRET": "test-client-secret",
            "SESSION_SECRET": TEST_SESSION_SECRET,
            "AUTHORIZED_EMAILS": "alice@x.com",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return _make


@pytest.fixture
def mock_settings(make_settings):
    return make_settings()


@pytest.fixture
def make_token():
    """
    Mint a JWT carrying the given claims.

    The strategy never verifies signatures, so an HS256 test key is enough.
    """
    def _make(claims):
        return jwt.encode(claims, "unused-signing-key-for-tests-0123456789", algorithm="HS256")
    return _make


@pytest.fixture
def alice_claims():
    return {
        "oid": "00000000-0000-0000-0000-0000000a11ce",
        "name": "Alice Example",
        "email": "alice@x.com",
        "unique_name": "alice@x.com",
        "given_name": "Alice",
        "family_name": "Example",
    }
