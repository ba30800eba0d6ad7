"""OAuth2 client for the authorization code flow.

Implements the provider-agnostic half of the OAuth2 Authorization Code
Flow: authorization URL construction, code and refresh-token exchange, and
resource owner retrieval. Provider specifics (endpoint URLs, default
scopes, error interpretation) come from an IEndpointResolver.

Every request is a single blocking round trip through an ``httpx.Client``.
Nothing is retried and no state is kept between calls.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

import httpx

from ..exceptions import TransportError, UnexpectedResponseError
from ..token import AccessToken
from .response import parse_response
from .state import generate_oauth_state

if TYPE_CHECKING:
    from types import TracebackType

    from ..ports import IEndpointResolver
    from ..resource_owner import ResourceOwner

logger = logging.getLogger(__name__)

_RESERVED_PARAMS = frozenset(
    {"client_id", "redirect_uri", "response_type", "scope", "state"}
)


@dataclass(frozen=True)
class OAuth2ClientConfig:
    """Client registration at the identity provider.

    Attributes:
        client_id: OAuth2 client ID.
        redirect_uri: Default redirect URI registered for the client.
        client_secret: OAuth2 client secret (optional for public clients).
        state: Fixed state value to send with every authorization request.
            When unset a random state is generated per request.
    """

    client_id: str
    redirect_uri: str
    client_secret: str | None = None
    state: str | None = None


@dataclass(frozen=True)
class AuthorizationRequest:
    """A redirect URL together with the state embedded in it.

    The caller stores ``state`` and compares it with the value returned on
    the callback (see ``states_match``).
    """

    url: str
    state: str


class OAuth2Client:
    """Generic OAuth2 authorization code client.

    Example:
        ```python
        client = OAuth2Client(
            OAuth2ClientConfig(
                client_id="my-client",
                client_secret="secret",
                redirect_uri="https://app.example.com/callback",
            ),
            resolver,
        )

        request = client.build_authorization_request()
        # redirect the user to request.url, keep request.state

        token = client.exchange_code(code_from_callback)
        owner = client.fetch_resource_owner(token)
        ```
    """

    DEFAULT_SCOPES: tuple[str, ...] = ("openid",)

    def __init__(
        self,
        config: OAuth2ClientConfig,
        resolver: IEndpointResolver,
        *,
        http_client: httpx.Client | None = None,
        response_decoder: Callable[[Any], Any] | None = None,
    ) -> None:
        """Initialize the OAuth2 client.

        Args:
            config: Client registration.
            resolver: Provider endpoint resolver.
            http_client: HTTP client to use. When omitted the client creates
                and owns one; timeouts and TLS come from its configuration.
            response_decoder: Applied to userinfo bodies before they are
                turned into a resource owner (e.g. JWT decryption).
        """
        self.config = config
        self.resolver = resolver
        self._owns_http_client = http_client is None
        self._http = http_client if http_client is not None else httpx.Client()
        self._response_decoder = response_decoder

    # ── Authorization URL ───────────────────────────────────────

    def default_scopes(self) -> list[str]:
        """Library defaults merged with the provider's, duplicates dropped."""
        merged: list[str] = []
        for scope in (*self.DEFAULT_SCOPES, *self.resolver.default_scopes):
            if scope not in merged:
                merged.append(scope)
        return merged

    def authorization_parameters(
        self,
        *,
        state: str | None = None,
        scope: str | Sequence[str] | None = None,
        redirect_uri: str | None = None,
        extra_params: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Assemble the query parameters of an authorization-style redirect.

        Args:
            state: Anti-CSRF state. Falls back to the configured state, then
                to a freshly generated one.
            scope: Scopes as a list or a pre-joined string. Defaults to
                ``default_scopes()``.
            redirect_uri: Override the configured redirect URI.
            extra_params: Additional provider parameters (``prompt``,
                ``kc_idp_hint``, ``ui_locales``...).

        Raises:
            ValueError: ``extra_params`` tries to override a core parameter.
        """
        params: dict[str, str] = {
            "client_id": self.config.client_id,
            "redirect_uri": redirect_uri or self.config.redirect_uri,
            "response_type": "code",
            "scope": self._format_scope(scope),
            "state": state or self.config.state or generate_oauth_state(),
        }

        if extra_params:
            clashing = _RESERVED_PARAMS.intersection(extra_params)
            if clashing:
                raise ValueError(
                    f"extra_params cannot override: {', '.join(sorted(clashing))}"
                )
            params.update(extra_params)

        return params

    def build_request(
        self,
        base_url: str,
        *,
        state: str | None = None,
        scope: str | Sequence[str] | None = None,
        redirect_uri: str | None = None,
        extra_params: Mapping[str, str] | None = None,
    ) -> AuthorizationRequest:
        """Build a redirect against any endpoint using the shared query logic."""
        params = self.authorization_parameters(
            state=state,
            scope=scope,
            redirect_uri=redirect_uri,
            extra_params=extra_params,
        )
        url = append_query(base_url, build_query(params))
        return AuthorizationRequest(url=url, state=params["state"])

    def build_authorization_request(
        self,
        *,
        state: str | None = None,
        scope: str | Sequence[str] | None = None,
        redirect_uri: str | None = None,
        extra_params: Mapping[str, str] | None = None,
    ) -> AuthorizationRequest:
        """Build the authorization redirect and return it with its state."""
        return self.build_request(
            self.resolver.authorization_url,
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
        """Generate the OAuth2 authorization URL.

        No network call is made.

        Returns:
            Authorization URL to redirect the user to.
        """
        return self.build_authorization_request(
            state=state,
            scope=scope,
            redirect_uri=redirect_uri,
            extra_params=extra_params,
        ).url

    # ── Token endpoint ──────────────────────────────────────────

    def request_access_token(self, grant_type: str, **params: str) -> AccessToken:
        """POST a grant to the token endpoint and wrap the response.

        Args:
            grant_type: OAuth2 grant type.
            **params: Grant specific form fields.

        Returns:
            AccessToken built from the response.

        Raises:
            IdentityProviderError: The provider answered with an error.
            UnexpectedResponseError: The response is not a JSON object.
            TransportError: The HTTP round trip failed.
        """
        data: dict[str, str] = {
            "grant_type": grant_type,
            **params,
            **self.client_credentials(),
        }
        status_code, parsed = self.send_and_parse(
            "POST", self.resolver.token_url, data=data
        )
        if not isinstance(parsed, dict):
            raise UnexpectedResponseError(
                "Invalid response received from Authorization Server. "
                "Expected JSON.",
                status_code=status_code,
                body=str(parsed),
            )
        try:
            return AccessToken.from_response(parsed)
        except ValueError as e:
            raise UnexpectedResponseError(
                str(e), status_code=status_code, body=str(parsed)
            ) from e

    def exchange_code(
        self, code: str, *, redirect_uri: str | None = None
    ) -> AccessToken:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback.
            redirect_uri: Must match the one used in the authorization URL.
        """
        return self.request_access_token(
            "authorization_code",
            code=code,
            redirect_uri=redirect_uri or self.config.redirect_uri,
        )

    def refresh_token(self, refresh_token: str) -> AccessToken:
        """Obtain a new access token with a refresh token."""
        return self.request_access_token("refresh_token", refresh_token=refresh_token)

    # ── Resource owner ──────────────────────────────────────────

    def fetch_resource_owner_details(self, token: AccessToken | str) -> Any:
        """GET the userinfo endpoint with the bearer token.

        Returns:
            Parsed body: a dict for JSON responses, a string for
            JWT-encoded ones.
        """
        return self.get(self.resolver.resource_owner_details_url, token=token)

    def fetch_resource_owner(self, token: AccessToken | str) -> ResourceOwner:
        """Fetch userinfo, decode it if needed, and wrap it.

        Raises:
            UnexpectedResponseError: The (decoded) body is not a JSON object.
        """
        status_code, details = self.send_and_parse(
            "GET",
            self.resolver.resource_owner_details_url,
            headers=self.authorization_headers(token),
        )
        if self._response_decoder is not None:
            details = self._response_decoder(details)
        if not isinstance(details, Mapping):
            raise UnexpectedResponseError(
                "Invalid resource owner response. Expected JSON.",
                status_code=status_code,
                body=str(details),
            )
        return self.resolver.create_resource_owner(details, token)

    # ── HTTP helpers ────────────────────────────────────────────

    def client_credentials(self) -> dict[str, str]:
        """Client credentials sent in request bodies."""
        credentials = {"client_id": self.config.client_id}
        if self.config.client_secret:
            credentials["client_secret"] = self.config.client_secret
        return credentials

    @staticmethod
    def authorization_headers(token: AccessToken | str) -> dict[str, str]:
        """Bearer authorization header for authenticated requests."""
        return {"Authorization": f"Bearer {token}"}

    def post_form(self, url: str, data: Mapping[str, str]) -> Any:
        """POST a form body (no bearer header) and return the checked body."""
        return self.get_parsed_response("POST", url, data=dict(data))

    def get(self, url: str, *, token: AccessToken | str) -> Any:
        """GET with a bearer header and return the checked body."""
        return self.get_parsed_response(
            "GET", url, headers=self.authorization_headers(token)
        )

    def get_parsed_response(
        self,
        method: str,
        url: str,
        *,
        data: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Send one request, parse the body and let the resolver check it."""
        return self.send_and_parse(method, url, data=data, headers=headers)[1]

    def send_and_parse(
        self,
        method: str,
        url: str,
        *,
        data: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[int, Any]:
        """Like ``get_parsed_response`` but also return the HTTP status."""
        response = self.send(method, url, data=data, headers=headers)
        parsed = parse_response(response)
        self.resolver.check_response(response.status_code, parsed)
        return response.status_code, parsed

    def send(
        self,
        method: str,
        url: str,
        *,
        data: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send one blocking request.

        Raises:
            TransportError: Network failure, timeout, TLS error...
        """
        request_headers = {"Accept": "application/json", **(headers or {})}
        logger.debug("%s %s", method, url)
        try:
            response = self._http.request(
                method, url, data=data, headers=request_headers
            )
        except httpx.TransportError as e:
            raise TransportError(
                f"{method} {url} failed: {e}", method=method, url=url
            ) from e
        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response

    # ── Lifecycle ───────────────────────────────────────────────

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client:
            self._http.close()

    def __enter__(self) -> OAuth2Client:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _format_scope(self, scope: str | Sequence[str] | None) -> str:
        if scope is None:
            scope = self.default_scopes()
        if isinstance(scope, str):
            return scope
        return self.resolver.scope_separator.join(scope)


def build_query(params: Mapping[str, str]) -> str:
    """Percent-encode parameters (RFC 3986, spaces as %20)."""
    return urlencode(params, safe="", quote_via=quote)


def append_query(url: str, query: str) -> str:
    """Append a query string to a URL that may already have one."""
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"


__all__: list[str] = [
    "AuthorizationRequest",
    "OAuth2Client",
    "OAuth2ClientConfig",
    "append_query",
    "build_query",
]
