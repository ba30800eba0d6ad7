"""Unit tests for the Keycloak provider (HTTP mocked with httpx.MockTransport)."""

from __future__ import annotations

import time
from typing import Any
from unittest.mock import MagicMock
from urllib.parse import parse_qs, parse_qsl, urlparse

import httpx
import pytest
from joserfc import jwt
from joserfc.jwe import JWERegistry
from joserfc.jwk import OctKey, RSAKey

from oauth2_keycloak import (
    AccessToken,
    EncryptionConfigurationError,
    IdentityProviderError,
    KeycloakConfig,
    KeycloakEndpoints,
    KeycloakProvider,
    KeycloakResourceOwner,
    UnexpectedResponseError,
)

BASE = "https://kc.example.com/realms/test-realm/protocol/openid-connect"


def _form(request: httpx.Request) -> dict[str, str]:
    return dict(parse_qsl(request.read().decode("utf-8")))


def _jwt_response(token: str) -> httpx.Response:
    return httpx.Response(200, text=token, headers={"content-type": "application/jwt"})


def _sign(claims: dict[str, Any], secret: str) -> str:
    return jwt.encode({"alg": "HS256"}, claims, OctKey.import_key(secret))


# ═══════════════════════════════════════════════════════════════
# Endpoints
# ═══════════════════════════════════════════════════════════════


class TestKeycloakEndpoints:
    """Realm-scoped endpoint URLs."""

    def test_endpoint_urls(self, keycloak_config: KeycloakConfig) -> None:
        endpoints = KeycloakEndpoints(keycloak_config)
        assert endpoints.authorization_url == f"{BASE}/auth"
        assert endpoints.token_url == f"{BASE}/token"
        assert endpoints.resource_owner_details_url == f"{BASE}/userinfo"
        assert endpoints.introspection_url == f"{BASE}/token/introspect"
        assert endpoints.logout_url == f"{BASE}/logout"

    def test_legacy_auth_prefix_and_trailing_slash(self) -> None:
        config = KeycloakConfig(
            auth_server_url="http://localhost:8080/auth/",
            realm="demo",
            client_id="c",
            redirect_uri="http://app/cb",
        )
        endpoints = KeycloakEndpoints(config)
        assert endpoints.token_url == (
            "http://localhost:8080/auth/realms/demo/protocol/openid-connect/token"
        )

    def test_default_scopes(self, keycloak_config: KeycloakConfig) -> None:
        assert tuple(KeycloakEndpoints(keycloak_config).default_scopes) == (
            "name",
            "email",
        )

    def test_error_without_description(self, keycloak_config: KeycloakConfig) -> None:
        endpoints = KeycloakEndpoints(keycloak_config)
        with pytest.raises(IdentityProviderError) as exc_info:
            endpoints.check_response(401, {"error": "unauthorized_client"})
        assert str(exc_info.value) == "unauthorized_client"
        assert exc_info.value.error_description is None

    def test_empty_error_field_ignored(self, keycloak_config: KeycloakConfig) -> None:
        KeycloakEndpoints(keycloak_config).check_response(200, {"error": ""})


# ═══════════════════════════════════════════════════════════════
# Redirect URLs
# ═══════════════════════════════════════════════════════════════


class TestRedirectUrls:
    """build_authorization_url / build_logout_url."""

    def test_authorization_url(self, keycloak_config: KeycloakConfig) -> None:
        provider = KeycloakProvider(keycloak_config)
        url = provider.build_authorization_url(state="xyz")

        parsed = urlparse(url)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == f"{BASE}/auth"
        query = parse_qs(parsed.query)
        assert query == {
            "client_id": ["test-client"],
            "redirect_uri": ["https://app.example.com/callback"],
            "response_type": ["code"],
            "scope": ["openid name email"],
            "state": ["xyz"],
        }
        assert "scope=openid%20name%20email" in url
        provider.close()

    def test_logout_url_shares_query_with_authorization_url(
        self, keycloak_config: KeycloakConfig
    ) -> None:
        provider = KeycloakProvider(keycloak_config)
        auth_url = provider.build_authorization_url(state="same", scope=["openid"])
        logout_url = provider.build_logout_url(state="same", scope=["openid"])

        assert urlparse(logout_url).path.endswith("/protocol/openid-connect/logout")
        assert urlparse(auth_url).query == urlparse(logout_url).query
        provider.close()

    def test_authorization_request_exposes_state(
        self, keycloak_config: KeycloakConfig
    ) -> None:
        provider = KeycloakProvider(keycloak_config)
        request = provider.build_authorization_request()
        assert f"state={request.state}" in request.url
        provider.close()

    def test_configured_state(self, keycloak_config: KeycloakConfig) -> None:
        config = KeycloakConfig(
            auth_server_url=keycloak_config.auth_server_url,
            realm=keycloak_config.realm,
            client_id=keycloak_config.client_id,
            redirect_uri=keycloak_config.redirect_uri,
            state="configured",
        )
        provider = KeycloakProvider(config)
        assert "state=configured" in provider.build_authorization_url()
        provider.close()


# ═══════════════════════════════════════════════════════════════
# Token exchange
# ═══════════════════════════════════════════════════════════════


class TestGetAccessToken:
    """get_access_token(code) / exchange_code(code)."""

    def test_success(self, keycloak_config, make_provider) -> None:
        provider, transport = make_provider(
            keycloak_config,
            lambda r: httpx.Response(
                200,
                json={
                    "access_token": "abc",
                    "expires_in": 300,
                    "refresh_token": "rt",
                    "id_token": "idt",
                    "session_state": "ss",
                    "token_type": "Bearer",
                },
            ),
        )
        token = provider.get_access_token("code-1")

        assert isinstance(token, AccessToken)
        assert token.access_token == "abc"
        assert token.expires_in == 300
        assert token.refresh_token == "rt"
        assert token.id_token == "idt"
        assert token.values["session_state"] == "ss"

        request = transport.requests[0]
        assert str(request.url) == f"{BASE}/token"
        assert _form(request)["grant_type"] == "authorization_code"
        assert _form(request)["code"] == "code-1"

    def test_exchange_code_alias(self, keycloak_config, make_provider) -> None:
        provider, transport = make_provider(
            keycloak_config, lambda r: httpx.Response(200, json={"access_token": "abc"})
        )
        assert provider.exchange_code("c").access_token == "abc"
        assert len(transport.requests) == 1

    def test_invalid_grant(self, keycloak_config, make_provider) -> None:
        provider, _ = make_provider(
            keycloak_config,
            lambda r: httpx.Response(
                400, json={"error": "invalid_grant", "error_description": "bad code"}
            ),
        )
        with pytest.raises(IdentityProviderError, match="^invalid_grant: bad code$"):
            provider.get_access_token("bad")

    def test_html_gateway_page(self, keycloak_config, make_provider) -> None:
        provider, _ = make_provider(
            keycloak_config,
            lambda r: httpx.Response(
                502,
                text="<html>Bad Gateway</html>",
                headers={"content-type": "text/html"},
            ),
        )
        with pytest.raises(UnexpectedResponseError) as exc_info:
            provider.get_access_token("code-1")

        assert exc_info.value.status_code == 502
        assert "Bad Gateway" in exc_info.value.body


class TestFetchNewToken:
    """fetch_new_token(refresh_token)."""

    def test_single_refresh_post(self, keycloak_config, make_provider) -> None:
        provider, transport = make_provider(
            keycloak_config,
            lambda r: httpx.Response(
                200, json={"access_token": "fresh", "expires_in": 60}
            ),
        )
        before = int(time.time())
        token = provider.fetch_new_token("old-rt")

        assert len(transport.requests) == 1
        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE}/token"
        assert _form(request) == {
            "grant_type": "refresh_token",
            "refresh_token": "old-rt",
            "client_id": "test-client",
            "client_secret": "secret",
        }
        assert token.access_token == "fresh"
        assert token.expires is not None
        assert token.expires >= before + 60

    def test_expired_refresh_token(self, keycloak_config, make_provider) -> None:
        provider, _ = make_provider(
            keycloak_config,
            lambda r: httpx.Response(
                400,
                json={
                    "error": "invalid_grant",
                    "error_description": "Token is not active",
                },
            ),
        )
        with pytest.raises(IdentityProviderError) as exc_info:
            provider.fetch_new_token("stale")
        assert exc_info.value.status_code == 400


# ═══════════════════════════════════════════════════════════════
# Logout
# ═══════════════════════════════════════════════════════════════


class TestLogout:
    def test_posts_refresh_token_with_credentials(
        self, keycloak_config, make_provider
    ) -> None:
        provider, transport = make_provider(
            keycloak_config, lambda r: httpx.Response(204)
        )
        result = provider.logout("rt")

        assert result == {}
        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE}/logout"
        assert "authorization" not in request.headers
        assert _form(request) == {
            "client_id": "test-client",
            "client_secret": "secret",
            "refresh_token": "rt",
        }

    def test_error_propagates(self, keycloak_config, make_provider) -> None:
        provider, _ = make_provider(
            keycloak_config,
            lambda r: httpx.Response(
                400,
                json={
                    "error": "invalid_grant",
                    "error_description": "Invalid refresh token",
                },
            ),
        )
        with pytest.raises(IdentityProviderError, match="Invalid refresh token"):
            provider.logout("rt")


# ═══════════════════════════════════════════════════════════════
# Introspection
# ═══════════════════════════════════════════════════════════════


class TestIntrospectToken:
    def test_returns_parsed_claims(self, keycloak_config, make_provider) -> None:
        claims = {"active": True, "sub": "user-1", "exp": 9999999999}
        provider, transport = make_provider(
            keycloak_config, lambda r: httpx.Response(200, json=claims)
        )
        result = provider.introspect_token(AccessToken(access_token="tok"))

        assert result == claims
        request = transport.requests[0]
        assert str(request.url) == f"{BASE}/token/introspect"
        assert "authorization" not in request.headers
        assert _form(request) == {
            "token": "tok",
            "client_id": "test-client",
            "client_secret": "secret",
        }

    def test_invalid_client(self, keycloak_config, make_provider) -> None:
        provider, _ = make_provider(
            keycloak_config,
            lambda r: httpx.Response(
                401,
                json={
                    "error": "invalid_client",
                    "error_description": "Invalid client credentials",
                },
            ),
        )
        with pytest.raises(IdentityProviderError) as exc_info:
            provider.introspect_token("tok")
        assert exc_info.value.error == "invalid_client"


# ═══════════════════════════════════════════════════════════════
# Resource owner
# ═══════════════════════════════════════════════════════════════


class TestGetResourceOwner:
    def test_plain_json_userinfo(self, keycloak_config, make_provider) -> None:
        provider, transport = make_provider(
            keycloak_config,
            lambda r: httpx.Response(
                200,
                json={
                    "sub": "user-1",
                    "email": "alice@example.com",
                    "name": "Alice Doe",
                    "preferred_username": "alice",
                },
            ),
        )
        owner = provider.get_resource_owner(AccessToken(access_token="tok"))

        assert isinstance(owner, KeycloakResourceOwner)
        assert owner.id == "user-1"
        assert owner.email == "alice@example.com"
        assert owner.name == "Alice Doe"
        assert owner.username == "alice"
        request = transport.requests[0]
        assert request.method == "GET"
        assert str(request.url) == f"{BASE}/userinfo"
        assert request.headers["Authorization"] == "Bearer tok"

    def test_jwt_userinfo_decoded(
        self, encrypted_config, hs256_secret, make_provider
    ) -> None:
        claims = {"sub": "user-2", "email": "bob@example.com"}
        provider, _ = make_provider(
            encrypted_config, lambda r: _jwt_response(_sign(claims, hs256_secret))
        )
        owner = provider.get_resource_owner("tok")
        assert owner.id == "user-2"
        assert owner.email == "bob@example.com"

    def test_jwe_userinfo_decrypted(self, keycloak_config, make_provider) -> None:
        key = RSAKey.generate_key(2048)
        claims = {"sub": "user-5", "email": "carol@example.com"}
        token = jwt.encode(
            {"alg": "RSA-OAEP-256", "enc": "A256GCM"},
            claims,
            key,
            registry=JWERegistry(algorithms=["RSA-OAEP-256", "A256GCM"]),
        )
        config = keycloak_config.with_encryption(
            "RSA-OAEP-256", key.as_pem(private=True).decode("utf-8")
        )
        provider, _ = make_provider(config, lambda r: _jwt_response(token))

        owner = provider.get_resource_owner("tok")

        assert owner.id == "user-5"
        assert owner.email == "carol@example.com"

    def test_jwt_userinfo_without_encryption_config(
        self, keycloak_config, hs256_secret, make_provider
    ) -> None:
        provider, _ = make_provider(
            keycloak_config, lambda r: _jwt_response(_sign({"sub": "x"}, hs256_secret))
        )
        with pytest.raises(EncryptionConfigurationError, match="encryption"):
            provider.get_resource_owner("tok")


class TestGetResourceOwnerFromIntrospectedToken:
    def test_plain_json(self, keycloak_config, make_provider) -> None:
        provider, transport = make_provider(
            keycloak_config,
            lambda r: httpx.Response(
                200,
                json={
                    "active": True,
                    "sub": "user-1",
                    "realm_access": {"roles": ["admin"]},
                },
            ),
        )
        owner = provider.get_resource_owner_from_introspected_token("tok")

        assert owner.is_active is True
        assert owner.id == "user-1"
        assert owner.realm_roles == ["admin"]
        assert len(transport.requests) == 1
        assert str(transport.requests[0].url) == f"{BASE}/token/introspect"

    def test_inactive_token(self, keycloak_config, make_provider) -> None:
        provider, _ = make_provider(
            keycloak_config, lambda r: httpx.Response(200, json={"active": False})
        )
        owner = provider.get_resource_owner_from_introspected_token("tok")
        assert owner.is_active is False
        assert owner.id is None

    def test_jwt_introspection_decoded(
        self, encrypted_config, hs256_secret, make_provider
    ) -> None:
        claims = {"active": True, "sub": "user-3"}
        provider, _ = make_provider(
            encrypted_config, lambda r: _jwt_response(_sign(claims, hs256_secret))
        )
        owner = provider.get_resource_owner_from_introspected_token("tok")
        assert owner.to_dict() == claims

    def test_non_object_json_rejected(self, keycloak_config, make_provider) -> None:
        provider, _ = make_provider(
            keycloak_config, lambda r: httpx.Response(200, json=["not", "an", "object"])
        )
        with pytest.raises(UnexpectedResponseError):
            provider.get_resource_owner_from_introspected_token("tok")

    def test_non_object_json_keeps_status(
        self, keycloak_config, make_provider
    ) -> None:
        provider, _ = make_provider(
            keycloak_config, lambda r: httpx.Response(503, json=["unavailable"])
        )
        with pytest.raises(UnexpectedResponseError) as exc_info:
            provider.get_resource_owner_from_introspected_token("tok")
        assert exc_info.value.status_code == 503


# ═══════════════════════════════════════════════════════════════
# decrypt_response
# ═══════════════════════════════════════════════════════════════


class TestDecryptResponse:
    @pytest.mark.parametrize(
        "value", [{"sub": "x"}, [], ["a", 1], None, 42, {"nested": {"a": [1]}}]
    )
    def test_non_string_is_identity(
        self, keycloak_config: KeycloakConfig, value: Any
    ) -> None:
        provider = KeycloakProvider(keycloak_config)
        assert provider.decrypt_response(value) is value
        provider.close()

    @pytest.mark.parametrize("value", ["", "{}", '{"sub": "x"}', "a.b.c"])
    def test_string_without_configuration_fails(
        self, keycloak_config: KeycloakConfig, value: str
    ) -> None:
        provider = KeycloakProvider(keycloak_config)
        with pytest.raises(EncryptionConfigurationError):
            provider.decrypt_response(value)
        provider.close()

    def test_mixed_configuration_counts_as_disabled(
        self, keycloak_config: KeycloakConfig
    ) -> None:
        config = KeycloakConfig(
            auth_server_url=keycloak_config.auth_server_url,
            realm=keycloak_config.realm,
            client_id=keycloak_config.client_id,
            redirect_uri=keycloak_config.redirect_uri,
            encryption_algorithm="HS256",
        )
        provider = KeycloakProvider(config)
        assert provider.uses_encryption() is False
        with pytest.raises(EncryptionConfigurationError):
            provider.decrypt_response("a.b.c")
        provider.close()

    def test_hs256_round_trip(
        self, encrypted_config: KeycloakConfig, hs256_secret: str
    ) -> None:
        payload = {"sub": "user-1", "name": "Alice", "roles": ["a", "b"]}
        provider = KeycloakProvider(encrypted_config)
        assert provider.uses_encryption() is True
        assert provider.decrypt_response(_sign(payload, hs256_secret)) == payload
        provider.close()

    def test_wrong_key_fails(self, encrypted_config: KeycloakConfig) -> None:
        token = _sign({"sub": "x"}, "another-secret-that-is-long-enough-too!!")
        provider = KeycloakProvider(encrypted_config)
        with pytest.raises(EncryptionConfigurationError):
            provider.decrypt_response(token)
        provider.close()

    def test_uses_injected_decoder(self, encrypted_config: KeycloakConfig) -> None:
        decoder = MagicMock()
        decoder.decode.return_value = {"sub": "from-decoder"}
        provider = KeycloakProvider(encrypted_config, token_decoder=decoder)

        assert provider.decrypt_response("tok") == {"sub": "from-decoder"}
        decoder.decode.assert_called_once_with(
            "tok", encrypted_config.encryption_key, "HS256"
        )
        provider.close()
