"""Tests for the enterprise-tier sign-in flow."""

from typing import Any, Dict, List
from urllib.parse import unquote

import msal
import pytest
from fastapi.testclient import TestClient

from maps_auth.core import signin
from maps_auth.core.config import AadConfig


class FakeMsalApp:
    """Replaces the MSAL client application so no request leaves the test."""

    def __init__(self, result: Dict[str, Any]):
        self.result = result
        self.auth_responses: List[Dict[str, str]] = []

    def initiate_auth_code_flow(self, scopes, redirect_uri=None, **kwargs) -> Dict[str, Any]:
        return {
            "auth_uri": "https://login.microsoftonline.com/contoso-tenant/oauth2/v2.0/authorize?state=xyz",
            "state": "xyz",
            "redirect_uri": redirect_uri,
            "scope": scopes,
        }

    def acquire_token_by_auth_code_flow(self, flow, auth_response) -> Dict[str, Any]:
        if auth_response.get("state") != flow["state"]:
            raise ValueError("state missing from auth_code_flow")
        self.auth_responses.append(auth_response)
        return self.result


@pytest.fixture
def enterprise_app(make_app):
    return make_app(
        MAPS_AUTH_TIER="enterprise",
        MAPS_CLIENT_ID="maps-client-id",
        IDENTITY_TENANT_ID="contoso-tenant",
        IDENTITY_CLIENT_ID="web-app-client-id",
        SESSION_SECRET_KEY="test-session-secret",
        SESSION_HTTPS_ONLY=False,
    )


@pytest.fixture
def fake_msal(monkeypatch: pytest.MonkeyPatch) -> FakeMsalApp:
    fake = FakeMsalApp({"id_token_claims": {"name": "Megan Bowen", "preferred_username": "megan@contoso.com", "nonce": "n"}})
    monkeypatch.setattr(signin, "build_msal_app", lambda identity: fake)
    return fake


class TestSignInFlow:
    def test_sign_in_redirects_to_identity_provider(self, enterprise_app, fake_msal) -> None:
        client = TestClient(enterprise_app)

        response = client.get("/signin", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"].startswith("https://login.microsoftonline.com/contoso-tenant/")

    def test_full_sign_in_unlocks_token_endpoint(self, enterprise_app, fake_msal, stub_credential) -> None:
        client = TestClient(enterprise_app)
        assert client.get("/api/token").status_code == 401

        client.get("/signin", follow_redirects=False)
        callback = client.get("/signin-oidc", params={"code": "auth-code", "state": "xyz"}, follow_redirects=False)

        assert callback.status_code == 302
        assert callback.headers["location"].endswith("/")
        assert fake_msal.auth_responses == [{"code": "auth-code", "state": "xyz"}]

        token = client.get("/api/token")
        assert token.status_code == 200
        assert token.text == "stub-maps-token"
        assert stub_credential.calls == 1

        page = client.get("/")
        assert page.status_code == 200
        assert "Megan Bowen" in page.text

    def test_state_mismatch_is_rejected(self, enterprise_app, fake_msal, stub_credential) -> None:
        client = TestClient(enterprise_app)
        client.get("/signin", follow_redirects=False)

        response = client.get("/signin-oidc", params={"code": "auth-code", "state": "forged"})

        assert response.status_code == 401
        assert client.get("/api/token").status_code == 401
        assert stub_credential.calls == 0

    def test_identity_provider_error_is_rejected(self, enterprise_app, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = FakeMsalApp({"error": "access_denied", "error_description": "User cancelled sign-in"})
        monkeypatch.setattr(signin, "build_msal_app", lambda identity: fake)
        client = TestClient(enterprise_app)
        client.get("/signin", follow_redirects=False)

        response = client.get("/signin-oidc", params={"state": "xyz", "error": "access_denied"})

        assert response.status_code == 401
        assert response.json()["detail"] == "User cancelled sign-in"

    def test_callback_without_pending_flow_restarts_sign_in(self, enterprise_app) -> None:
        response = TestClient(enterprise_app).get("/signin-oidc", params={"code": "x"}, follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"].endswith("/signin")

    def test_sign_out_clears_session(self, enterprise_app, fake_msal) -> None:
        client = TestClient(enterprise_app)
        client.get("/signin", follow_redirects=False)
        client.get("/signin-oidc", params={"code": "auth-code", "state": "xyz"}, follow_redirects=False)

        response = client.get("/signout", follow_redirects=False)

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith("https://login.microsoftonline.com/contoso-tenant/oauth2/v2.0/logout")
        assert unquote(location).endswith("post_logout_redirect_uri=http://testserver/")
        assert client.get("/api/token").status_code == 401

    def test_custom_callback_path(self, make_app, fake_msal) -> None:
        app = make_app(MAPS_AUTH_TIER="enterprise", IDENTITY_CLIENT_ID="web-app", IDENTITY_CALLBACK_PATH="/auth/callback", SESSION_HTTPS_ONLY=False)
        client = TestClient(app)
        client.get("/signin", follow_redirects=False)

        response = client.get("/auth/callback", params={"code": "c", "state": "xyz"}, follow_redirects=False)

        assert response.status_code == 302

    def test_session_cookie_is_secure_by_default(self, make_app, fake_msal) -> None:
        client = TestClient(make_app(MAPS_AUTH_TIER="enterprise", IDENTITY_CLIENT_ID="web-app"))

        response = client.get("/signin", follow_redirects=False)

        assert response.status_code == 302
        assert "; secure" in response.headers["set-cookie"].lower()

    def test_session_cookie_over_http_when_disabled(self, enterprise_app, fake_msal) -> None:
        response = TestClient(enterprise_app).get("/signin", follow_redirects=False)

        assert "; secure" not in response.headers["set-cookie"].lower()

    def test_sign_in_unavailable_without_client_id(self, make_app) -> None:
        client = TestClient(make_app(MAPS_AUTH_TIER="enterprise"))

        assert client.get("/signin").status_code == 503


class TestBuildMsalApp:
    def test_confidential_client_with_secret(self, monkeypatch: pytest.MonkeyPatch) -> None:
        created = {}
        monkeypatch.setattr(msal, "ConfidentialClientApplication", lambda *a, **kw: created.update(kind="confidential", kw=kw))
        identity = AadConfig(tenant_id="contoso-tenant", client_id="web-app", client_secret="s3cret")

        signin.build_msal_app(identity)

        assert created["kind"] == "confidential"
        assert created["kw"]["authority"] == "https://login.microsoftonline.com/contoso-tenant"
        assert created["kw"]["client_credential"] == "s3cret"

    def test_public_client_without_secret(self, monkeypatch: pytest.MonkeyPatch) -> None:
        created = {}
        monkeypatch.setattr(msal, "PublicClientApplication", lambda *a, **kw: created.update(kind="public", args=a))
        identity = AadConfig(tenant_id="contoso-tenant", client_id="web-app")

        signin.build_msal_app(identity)

        assert created == {"kind": "public", "args": ("web-app",)}
