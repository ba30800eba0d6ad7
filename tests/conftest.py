"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import httpx
import pytest

from oauth2_keycloak import KeycloakConfig, KeycloakProvider

Handler = Callable[[httpx.Request], httpx.Response]
ProviderFactory = Callable[
    [KeycloakConfig, Handler], tuple[KeycloakProvider, "RecordingTransport"]
]

HS256_SECRET = "test-secret-that-is-long-enough-for-hs256!"


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests that require external services",
    )


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Handler) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture
def hs256_secret() -> str:
    return HS256_SECRET


@pytest.fixture
def keycloak_config() -> KeycloakConfig:
    """Create a Keycloak config without encryption."""
    return KeycloakConfig(
        auth_server_url="https://kc.example.com",
        realm="test-realm",
        client_id="test-client",
        client_secret="secret",
        redirect_uri="https://app.example.com/callback",
    )


@pytest.fixture
def encrypted_config(keycloak_config: KeycloakConfig) -> KeycloakConfig:
    """Create a Keycloak config decoding HS256 responses."""
    return keycloak_config.with_encryption("HS256", HS256_SECRET)


@pytest.fixture
def make_provider() -> Iterator[ProviderFactory]:
    """Build a provider whose HTTP traffic is served by ``handler``."""
    http_clients: list[httpx.Client] = []

    def _make(
        config: KeycloakConfig, handler: Handler
    ) -> tuple[KeycloakProvider, RecordingTransport]:
        transport = RecordingTransport(handler)
        http_client = httpx.Client(transport=transport)
        http_clients.append(http_client)
        return KeycloakProvider(config, http_client=http_client), transport

    yield _make

    for http_client in http_clients:
        http_client.close()
