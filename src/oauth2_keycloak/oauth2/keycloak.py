"""Keycloak provider for the OAuth2 client.

Supplies Keycloak's realm-scoped OpenID Connect endpoints, its default
scopes and error shape, and adds logout, token introspection and decoding
of JWT-encoded (signed or encrypted) userinfo/introspection responses.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast
from urllib.parse import quote

from ..decoder import JoseTokenDecoder
from ..exceptions import (
    ConfigurationError,
    EncryptionConfigurationError,
    UnexpectedResponseError,
)
from ..observability import OAuth2Tracing
from ..resource_owner import KeycloakResourceOwner
from .client import AuthorizationRequest, OAuth2Client, OAuth2ClientConfig
from .response import check_error_field

if TYPE_CHECKING:
    from types import TracebackType

    import httpx

    from ..ports import ITokenDecoder
    from ..token import AccessToken

logger = logging.getLogger(__name__)

PROVIDER_NAME = "keycloak"

# Original option names accepted by KeycloakConfig.from_options
_OPTION_ALIASES: dict[str, str] = {
    "clientId": "client_id",
    "clientSecret": "client_secret",
    "redirectUri": "redirect_uri",
    "authServerUrl": "auth_server_url",
    "encryptionAlgorithm": "encryption_algorithm",
    "encryptionKey": "encryption_key",
    "encryptionKeyPath": "encryption_key_path",
}


def load_encryption_key(path: str | Path) -> str:
    """Read an encryption key (PEM, JWK JSON or shared secret) from disk.

    Raises:
        EncryptionConfigurationError: The file cannot be read.
    """
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise EncryptionConfigurationError.unreadable_key_file(str(path), str(e)) from e


# ═══════════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class KeycloakConfig:
    """Configuration for the Keycloak provider.

    Attributes:
        auth_server_url: Keycloak base URL, e.g. ``http://localhost:8080``
            (or ``http://localhost:8080/auth`` on legacy distributions).
        realm: Keycloak realm name.
        client_id: OAuth2 client ID.
        redirect_uri: Redirect URI registered for the client.
        client_secret: OAuth2 client secret (optional for public clients).
        state: Fixed state value; random per request when unset.
        encryption_algorithm: JOSE algorithm of JWT-encoded responses.
        encryption_key: Key used to verify/decrypt JWT-encoded responses.
        leeway: Clock skew in seconds tolerated for ``exp``/``nbf``/``iat``.
    """

    auth_server_url: str
    realm: str
    client_id: str
    redirect_uri: str
    client_secret: str | None = None
    state: str | None = None
    encryption_algorithm: str | None = None
    encryption_key: str | None = None
    leeway: int = 0

    def __post_init__(self) -> None:
        """Validate required settings and normalize the server URL."""
        if not self.auth_server_url or not self.auth_server_url.strip():
            raise ConfigurationError("auth_server_url is required")
        if not self.realm or not self.realm.strip():
            raise ConfigurationError("realm is required")
        object.__setattr__(self, "auth_server_url", self.auth_server_url.rstrip("/"))

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> KeycloakConfig:
        """Build a config from a flat options mapping.

        Accepts snake_case names as well as the camelCase names used by
        other Keycloak OAuth2 clients (``authServerUrl``, ``clientId``...).
        ``encryption_key_path``/``encryptionKeyPath`` is read immediately.

        Raises:
            ConfigurationError: Unknown option or missing required option.
            EncryptionConfigurationError: The key file cannot be read.
        """
        known = {f.name for f in dataclasses.fields(cls)} | {"encryption_key_path"}
        values: dict[str, Any] = {}
        for name, value in options.items():
            key = _OPTION_ALIASES.get(name, name)
            if key not in known:
                raise ConfigurationError(f"Unknown Keycloak option: {name}")
            values[key] = value

        key_path = values.pop("encryption_key_path", None)
        if key_path:
            values["encryption_key"] = load_encryption_key(key_path)

        missing = [
            name
            for name in ("auth_server_url", "realm", "client_id", "redirect_uri")
            if name not in values
        ]
        if missing:
            raise ConfigurationError(f"Missing Keycloak options: {', '.join(missing)}")

        return cls(**values)

    def with_encryption(self, algorithm: str, key: str) -> KeycloakConfig:
        """Return a copy configured to decode JWT-encoded responses."""
        return dataclasses.replace(
            self, encryption_algorithm=algorithm, encryption_key=key
        )

    def with_encryption_key_path(self, path: str | Path) -> KeycloakConfig:
        """Return a copy whose encryption key is read from ``path``.

        Raises:
            EncryptionConfigurationError: The file cannot be read.
        """
        return dataclasses.replace(self, encryption_key=load_encryption_key(path))

    @property
    def uses_encryption(self) -> bool:
        """True only when both algorithm and key are set."""
        return bool(self.encryption_algorithm) and bool(self.encryption_key)

    def to_client_config(self) -> OAuth2ClientConfig:
        return OAuth2ClientConfig(
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            client_secret=self.client_secret,
            state=self.state,
        )


# ═══════════════════════════════════════════════════════════════
# ENDPOINTS
# ═══════════════════════════════════════════════════════════════


class KeycloakEndpoints:
    """IEndpointResolver for a Keycloak realm.

    All endpoints live under
    ``<auth_server_url>/realms/<realm>/protocol/openid-connect/``.
    """

    scope_separator = " "

    def __init__(self, config: KeycloakConfig) -> None:
        self.config = config

    @property
    def base_url_with_realm(self) -> str:
        realm = quote(self.config.realm, safe="")
        return f"{self.config.auth_server_url}/realms/{realm}"

    def _endpoint(self, suffix: str) -> str:
        return f"{self.base_url_with_realm}/protocol/openid-connect/{suffix}"

    @property
    def authorization_url(self) -> str:
        return self._endpoint("auth")

    @property
    def token_url(self) -> str:
        return self._endpoint("token")

    @property
    def resource_owner_details_url(self) -> str:
        return self._endpoint("userinfo")

    @property
    def introspection_url(self) -> str:
        return self._endpoint("token/introspect")

    @property
    def logout_url(self) -> str:
        return self._endpoint("logout")

    @property
    def default_scopes(self) -> Sequence[str]:
        return ("name", "email")

    def check_response(self, status_code: int, data: Any) -> None:
        check_error_field(status_code, data)

    def create_resource_owner(
        self, response: Mapping[str, Any], token: AccessToken | str
    ) -> KeycloakResourceOwner:
        return KeycloakResourceOwner.from_claims(response)


# ═══════════════════════════════════════════════════════════════
# KEYCLOAK PROVIDER
# ═══════════════════════════════════════════════════════════════


class KeycloakProvider:
    """OAuth2 authorization code client for a Keycloak realm.

    Composes a generic OAuth2Client with KeycloakEndpoints and adds the
    Keycloak-only operations. All calls block until the single HTTP round
    trip completes; nothing is retried.

    Example:
        ```python
        config = KeycloakConfig(
            auth_server_url="https://keycloak.example.com",
            realm="my-realm",
            client_id="my-app",
            client_secret="secret",
            redirect_uri="https://app.example.com/callback",
        )
        with KeycloakProvider(config) as provider:
            request = provider.build_authorization_request()
            # ... redirect, then on callback:
            token = provider.get_access_token(code)
            owner = provider.get_resource_owner(token)
            provider.logout(token.refresh_token)
        ```
    """

    def __init__(
        self,
        config: KeycloakConfig,
        *,
        http_client: httpx.Client | None = None,
        token_decoder: ITokenDecoder | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            config: Keycloak configuration.
            http_client: HTTP client to use (created and owned if omitted).
            token_decoder: JWT decoder; defaults to JoseTokenDecoder.
        """
        self.config = config
        self.endpoints = KeycloakEndpoints(config)
        self.token_decoder: ITokenDecoder = token_decoder or JoseTokenDecoder(
            leeway=config.leeway
        )
        self.client = OAuth2Client(
            config.to_client_config(),
            self.endpoints,
            http_client=http_client,
            response_decoder=self.decrypt_response,
        )

    # ── Redirect URLs ───────────────────────────────────────────

    def build_authorization_request(
        self,
        *,
        state: str | None = None,
        scope: str | Sequence[str] | None = None,
        redirect_uri: str | None = None,
        extra_params: Mapping[str, str] | None = None,
    ) -> AuthorizationRequest:
        return self.client.build_authorization_request(
            state=state,
            scope=scope,
            redirect_uri=redirect_uri,
            extra_params=extra_params,
        )

    def build_authorization_url(
        self,
        *,
        state: str | None = None,
        scope: str | Sequence[str] | None = None,
        redirect_uri: str | None = None,
        extra_params: Mapping[str, str] | None = None,
    ) -> str:
        """Authorization endpoint URL to redirect the user to."""
        return self.build_authorization_request(
            state=state,
            scope=scope,
            redirect_uri=redirect_uri,
            extra_params=extra_params,
        ).url

    def build_logout_url(
        self,
        *,
        state: str | None = None,
        scope: str | Sequence[str] | None = None,
        redirect_uri: str | None = None,
        extra_params: Mapping[str, str] | None = None,
    ) -> str:
        """End-session URL built with the same query as the authorization URL."""
        return self.client.build_request(
            self.endpoints.logout_url,
            state=state,
            scope=scope,
            redirect_uri=redirect_uri,
            extra_params=extra_params,
        ).url

    # ── Tokens ──────────────────────────────────────────────────

    def get_access_token(
        self, code: str, *, redirect_uri: str | None = None
    ) -> AccessToken:
        """Exchange an authorization code for an access token.

        Raises:
            IdentityProviderError: Keycloak rejected the code.
            TransportError: The HTTP round trip failed.
        """
        with self._traced("exchange_code"):
            return self.client.exchange_code(code, redirect_uri=redirect_uri)

    exchange_code = get_access_token

    def fetch_new_token(self, refresh_token: str) -> AccessToken:
        """Obtain a fresh access token with a refresh token.

        Issues exactly one POST to the token endpoint.
        """
        with self._traced("refresh"):
            return self.client.refresh_token(refresh_token)

    def logout(self, refresh_token: str) -> Any:
        """Terminate the Keycloak session bound to a refresh token.

        Returns:
            Parsed response body (usually empty, i.e. ``{}``).

        Raises:
            IdentityProviderError: Keycloak answered with an error.
        """
        data = {**self.client.client_credentials(), "refresh_token": refresh_token}
        with self._traced("logout"):
            response = self.client.post_form(self.endpoints.logout_url, data)
        logger.debug("Logged out session in realm %s", self.config.realm)
        return response

    def introspect_token(self, token: AccessToken | str) -> Any:
        """Ask Keycloak for the current state of a token.

        Returns:
            Parsed introspection response (``active``, ``exp``, ``sub``...),
            or a string when Keycloak returns a JWT.
        """
        return self._introspect(token)[1]

    # ── Resource owner ──────────────────────────────────────────

    def get_resource_owner(self, token: AccessToken | str) -> KeycloakResourceOwner:
        """Fetch userinfo, decode it if needed, and wrap it.

        Raises:
            EncryptionConfigurationError: A JWT-encoded response arrived and
                cannot be decoded with the configuration.
        """
        with self._traced("userinfo"):
            owner = self.client.fetch_resource_owner(token)
        return cast("KeycloakResourceOwner", owner)

    def get_resource_owner_from_introspected_token(
        self, token: AccessToken | str
    ) -> KeycloakResourceOwner:
        """Introspect the token, decode the result if needed, and wrap it.

        Unlike ``get_resource_owner`` the token state is validated server
        side; check ``is_active`` on the result.
        """
        status_code, body = self._introspect(token)
        response = self.decrypt_response(body)
        if not isinstance(response, Mapping):
            raise UnexpectedResponseError(
                "Invalid introspection response. Expected JSON.",
                status_code=status_code,
                body=str(response),
            )
        return self.endpoints.create_resource_owner(response, token)

    def _introspect(self, token: AccessToken | str) -> tuple[int, Any]:
        data = {"token": str(token), **self.client.client_credentials()}
        with self._traced("introspect"):
            return self.client.send_and_parse(
                "POST", self.endpoints.introspection_url, data=data
            )

    # ── Decryption ──────────────────────────────────────────────

    def uses_encryption(self) -> bool:
        return self.config.uses_encryption

    def decrypt_response(self, response: Any) -> Any:
        """Decode a JWT-encoded response.

        Non-string responses are returned unchanged. Strings are verified
        and decoded with the configured algorithm and key.

        Raises:
            EncryptionConfigurationError: A string response arrived without
                algorithm and key configured, or decoding failed.
        """
        if not isinstance(response, str):
            return response

        if not self.uses_encryption():
            raise EncryptionConfigurationError.undetermined_encryption()

        return self.token_decoder.decode(
            response,
            cast("str", self.config.encryption_key),
            cast("str", self.config.encryption_algorithm),
        )

    # ── Lifecycle ───────────────────────────────────────────────

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> KeycloakProvider:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _traced(self, operation: str) -> AbstractContextManager[Any]:
        return OAuth2Tracing.span(
            operation, provider=PROVIDER_NAME, realm=self.config.realm
        )


__all__: list[str] = [
    "KeycloakConfig",
    "KeycloakEndpoints",
    "KeycloakProvider",
    "load_encryption_key",
]
