"""
Unit Tests for the Strategy
===========================

Tests for azure_ad_v2/auth/strategy.py

Test Coverage:
--------------
1. Request phase: authorize URL, state and PKCE stored in the session
2. raw_info memoization
3. Callback phase: success, invalid_email, CSRF, provider error, upstream failures
4. Flow state transitions
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from azure_ad_v2.auth.errors import ConfigurationError
from azure_ad_v2.auth.provider import TenantProvider
from azure_ad_v2.auth.strategy import (
    STATE_SESSION_KEY,
    VERIFIER_SESSION_KEY,
    AzureActiveDirectoryV2Strategy,
    FlowState,
)
from azure_ad_v2.models import AccessToken


class AdfsProvider(TenantProvider):
    client_id = "adfs-client"
    client_secret = "adfs-secret"
    tenant_id = "adfs"
    is_adfs = True


def token_transport(status_code=200, json_body=None, calls=None):
    """MockTransport answering the token endpoint."""
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(status_code, json=json_body if json_body is not None else {})
    return httpx.MockTransport(handler)


def callback_strategy(settings, transport, state="expected-state", **params):
    query = {"code": "auth-code", "state": state}
    query.update(params)
    return AzureActiveDirectoryV2Strategy(
        settings,
        query_params=query,
        session={STATE_SESSION_KEY: "expected-state"},
        full_host="https://app.example.com",
        transport=transport,
    )


class TestRequestPhase:
    """Authorize redirect construction"""

    def test_authorize_url(self, mock_settings):
        session = {}
        strategy = AzureActiveDirectoryV2Strategy(
            mock_settings,
            query_params={"prompt": "login"},
            session=session,
            full_host="https://app.example.com/",
        )

        url = urlparse(strategy.request_phase())
        params = parse_qs(url.query)

        assert f"{url.scheme}://{url.netloc}{url.path}" == (
            "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
        )
        assert params["client_id"] == ["test-client-id"]
        assert params["response_type"] == ["code"]
        assert params["redirect_uri"] == ["https://app.example.com/auth/azure_activedirectory_v2/callback"]
        assert params["scope"] == ["openid profile email"]
        assert params["prompt"] == ["login"]
        assert params["state"] == [session[STATE_SESSION_KEY]]
        assert "code_challenge" not in params

    def test_adfs_provider_uses_legacy_segment(self, mock_settings):
        strategy = AzureActiveDirectoryV2Strategy(mock_settings, tenant_provider=AdfsProvider)

        url = urlparse(strategy.request_phase())

        assert url.path == "/adfs/oauth2/authorize"
        assert strategy.endpoints.token_url.endswith("/adfs/oauth2/token")

    def test_pkce_challenge(self, make_settings):
        session = {}
        strategy = AzureActiveDirectoryV2Strategy(make_settings(USE_PKCE=True), session=session)

        params = parse_qs(urlparse(strategy.request_phase()).query)

        assert session[VERIFIER_SESSION_KEY]
        assert params["code_challenge_method"] == ["S256"]
        assert params["code_challenge"][0] != session[VERIFIER_SESSION_KEY]

    def test_configured_redirect_uri(self, make_settings):
        settings = make_settings(AZURE_REDIRECT_URI="https://fixed.example.com/cb")
        strategy = AzureActiveDirectoryV2Strategy(settings, full_host="https://other.example.com")

        assert strategy.callback_url == "https://fixed.example.com/cb"

    def test_missing_credentials(self, make_settings):
        strategy = AzureActiveDirectoryV2Strategy(make_settings(AZURE_CLIENT_SECRET=None))

        with pytest.raises(ConfigurationError):
            strategy.request_phase()


class TestRawInfo:
    """raw_info is computed once per strategy instance"""

    def test_memoized(self, mock_settings, make_token):
        strategy = AzureActiveDirectoryV2Strategy(mock_settings)
        strategy.access_token = AccessToken(
            token=make_token({"b": 3, "c": 4}),
            params={"id_token": make_token({"a": 1, "b": 2})},
        )

        first = strategy.raw_info
        strategy.access_token.token = make_token({"z": 26})
        strategy.access_token.params["id_token"] = "garbage"
        second = strategy.raw_info

        assert first == {"a": 1, "b": 3, "c": 4}
        assert second is first

    def test_projections(self, mock_settings, make_token, alice_claims):
        strategy = AzureActiveDirectoryV2Strategy(mock_settings)
        strategy.access_token = AccessToken(token="opaque", params={"id_token": make_token(alice_claims)})

        auth = strategy.auth_hash()

        assert auth.provider == "azure_activedirectory_v2"
        assert auth.uid == alice_claims["oid"]
        assert auth.info.email == "alice@x.com"
        assert auth.info.first_name == "Alice"
        assert auth.info.last_name == "Example"
        assert auth.info.nickname == "alice@x.com"
        assert auth.extra == {"raw_info": alice_claims}


class TestCallbackPhase:
    """Callback state machine"""

    @pytest.mark.asyncio
    async def test_success(self, mock_settings, make_token, alice_claims):
        calls = []
        transport = token_transport(
            json_body={
                "access_token": "opaque-access-token",
                "id_token": make_token(alice_claims),
                "token_type": "Bearer",
            },
            calls=calls,
        )
        strategy = callback_strategy(mock_settings, transport)

        outcome = await strategy.callback_phase()

        assert outcome.success
        assert outcome.auth.uid == alice_claims["oid"]
        assert strategy.state == FlowState.COMPLETED
        assert STATE_SESSION_KEY not in strategy.session

        assert len(calls) == 1
        assert str(calls[0].url) == "https://login.microsoftonline.com/common/oauth2/v2.0/token"
        form = parse_qs(calls[0].content.decode())
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["auth-code"]
        assert form["client_secret"] == ["test-client-secret"]
        assert form["redirect_uri"] == ["https://app.example.com/auth/azure_activedirectory_v2/callback"]

    @pytest.mark.asyncio
    async def test_access_token_claims_override(self, mock_settings, make_token, alice_claims):
        transport = token_transport(
            json_body={
                "access_token": make_token({"name": "Alice From Access Token"}),
                "id_token": make_token(alice_claims),
            }
        )
        strategy = callback_strategy(mock_settings, transport)

        outcome = await strategy.callback_phase()

        assert outcome.auth.info.name == "Alice From Access Token"

    @pytest.mark.asyncio
    async def test_unauthorized_email(self, mock_settings, make_token, alice_claims):
        transport = token_transport(
            json_body={"access_token": make_token(dict(alice_claims, email="bob@x.com"))}
        )
        strategy = callback_strategy(mock_settings, transport)

        outcome = await strategy.callback_phase()

        assert not outcome.success
        assert outcome.reason == "invalid_email"
        assert outcome.cause is not None
        assert strategy.state == FlowState.FAILED

    @pytest.mark.asyncio
    async def test_no_decodable_tokens(self, mock_settings):
        transport = token_transport(json_body={"access_token": "opaque"})
        strategy = callback_strategy(mock_settings, transport)

        outcome = await strategy.callback_phase()

        assert strategy.raw_info == {}
        assert outcome.reason == "invalid_email"

    @pytest.mark.asyncio
    async def test_state_mismatch(self, mock_settings):
        calls = []
        strategy = callback_strategy(mock_settings, token_transport(calls=calls), state="forged")

        outcome = await strategy.callback_phase()

        assert outcome.reason == "csrf_detected"
        assert calls == []

    @pytest.mark.asyncio
    async def test_provider_error(self, mock_settings):
        strategy = callback_strategy(
            mock_settings,
            token_transport(),
            error="access_denied",
            error_description="AADSTS65004: User declined to consent",
        )

        outcome = await strategy.callback_phase()

        assert outcome.reason == "access_denied"
        assert "AADSTS65004" in outcome.message

    @pytest.mark.asyncio
    async def test_missing_code(self, mock_settings):
        strategy = callback_strategy(mock_settings, token_transport(), code="")

        outcome = await strategy.callback_phase()

        assert outcome.reason == "missing_code"

    @pytest.mark.asyncio
    async def test_token_endpoint_rejection(self, mock_settings):
        transport = token_transport(
            status_code=400,
            json_body={"error": "invalid_grant", "error_description": "AADSTS70008: code expired"},
        )
        strategy = callback_strategy(mock_settings, transport)

        outcome = await strategy.callback_phase()

        assert outcome.reason == "invalid_credentials"
        assert "AADSTS70008" in outcome.message
        assert strategy.state == FlowState.FAILED

    @pytest.mark.asyncio
    async def test_token_endpoint_timeout(self, mock_settings):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        strategy = callback_strategy(mock_settings, httpx.MockTransport(handler))

        outcome = await strategy.callback_phase()

        assert outcome.reason == "timeout"

    @pytest.mark.asyncio
    async def test_token_endpoint_unreachable(self, mock_settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        strategy = callback_strategy(mock_settings, httpx.MockTransport(handler))

        outcome = await strategy.callback_phase()

        assert outcome.reason == "failed_to_connect"

    @pytest.mark.asyncio
    async def test_custom_policy_token_url(self, make_settings, make_token, alice_claims):
        calls = []
        settings = make_settings(AZURE_TENANT_ID="contoso", AZURE_CUSTOM_POLICY="B2C_1_signin")
        transport = token_transport(json_body={"access_token": make_token(alice_claims)}, calls=calls)

        outcome = await callback_strategy(settings, transport).callback_phase()

        assert outcome.success
        assert str(calls[0].url) == "https://login.microsoftonline.com/contoso/B2C_1_signin/oauth2/v2.0/token"


class TestMalformedTokenResponses:
    """Unusable token endpoint responses end in FAILED, never an exception"""

    @pytest.mark.asyncio
    async def test_non_string_access_token(self, mock_settings):
        strategy = callback_strategy(mock_settings, token_transport(json_body={"access_token": 42}))

        outcome = await strategy.callback_phase()

        assert not outcome.success
        assert outcome.reason == "invalid_credentials"
        assert strategy.state == FlowState.FAILED

    @pytest.mark.asyncio
    async def test_non_json_body(self, mock_settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>oops</html>"))
        strategy = callback_strategy(mock_settings, transport)

        outcome = await strategy.callback_phase()

        assert outcome.reason == "invalid_credentials"
        assert strategy.state == FlowState.FAILED

    @pytest.mark.asyncio
    async def test_missing_access_token(self, mock_settings, make_token, alice_claims):
        transport = token_transport(json_body={"id_token": make_token(alice_claims), "token_type": "Bearer"})
        strategy = callback_strategy(mock_settings, transport)

        outcome = await strategy.callback_phase()

        assert outcome.reason == "invalid_credentials"
        assert "access_token" in outcome.message


class TestNonStringClaims:
    """Claims are unverified JSON; odd types never crash the callback"""

    @pytest.mark.asyncio
    async def test_numeric_oid(self, mock_settings, make_token):
        transport = token_transport(json_body={"access_token": make_token({"oid": 12345, "email": "alice@x.com"})})
        strategy = callback_strategy(mock_settings, transport)

        outcome = await strategy.callback_phase()

        assert outcome.success
        assert outcome.auth.uid == "12345"
        assert outcome.auth.extra["raw_info"]["oid"] == 12345

    @pytest.mark.asyncio
    async def test_list_email(self, mock_settings, make_token):
        transport = token_transport(json_body={"access_token": make_token({"oid": "1", "email": ["alice@x.com"]})})
        strategy = callback_strategy(mock_settings, transport)

        outcome = await strategy.callback_phase()

        assert not outcome.success
        assert outcome.reason == "invalid_email"
        assert strategy.state == FlowState.FAILED
