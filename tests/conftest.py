"""Pytest configuration and shared fixtures for the Azure Maps sample tests."""

import time
from typing import Callable, Optional

import pytest
from azure.core.credentials import AccessToken
from fastapi import FastAPI
from fastapi.testclient import TestClient

from maps_auth.core.config import Settings
from maps_auth.core.credentials import MapsTokenProvider
from maps_auth.main import create_app


class StubCredential:
    """Stands in for DefaultAzureCredential and records how it was used."""

    def __init__(self, token: str = "stub-maps-token", error: Optional[Exception] = None):
        self.token = token
        self.error = error
        self.calls = 0
        self.scopes = ()
        self.closed = False

    def get_token(self, *scopes, **kwargs) -> AccessToken:
        self.calls += 1
        self.scopes = scopes
        if self.error is not None:
            raise self.error
        return AccessToken(self.token, int(time.time()) + 3600)

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment and secrets out of the tests."""
    for name in list(Settings.model_fields) + ["MAPS_USER_SECRETS_FILE", "MAPS_USER_SECRETS_ID"]:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def _make(**values) -> Settings:
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def stub_credential() -> StubCredential:
    return StubCredential()


@pytest.fixture
def make_app(make_settings, stub_credential) -> Callable[..., FastAPI]:
    def _make(credential: Optional[StubCredential] = None, **values) -> FastAPI:
        settings = make_settings(**values)
        provider = MapsTokenProvider(credential or stub_credential)
        return create_app(settings, token_provider=provider)

    return _make


@pytest.fixture
def anonymous_client(make_app) -> TestClient:
    app = make_app(MAPS_AUTH_TIER="anonymous", MAPS_CLIENT_ID="maps-client-id")
    return TestClient(app)


@pytest.fixture
def make_credential() -> Callable[..., StubCredential]:
    return StubCredential
