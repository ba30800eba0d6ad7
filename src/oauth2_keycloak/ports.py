"""Provider ports (protocols).

The generic OAuth2 client is parameterised by an endpoint resolver supplied
per identity provider, and delegates JWT handling to a token decoder.
All ports use @runtime_checkable for isinstance checks.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from .resource_owner import ResourceOwner
from .token import AccessToken

# ═══════════════════════════════════════════════════════════════
# ENDPOINT RESOLVER PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IEndpointResolver(Protocol):
    """Protocol for the provider-specific part of the OAuth2 flow.

    Endpoint resolvers are responsible for:
    - Supplying the authorization, token and userinfo endpoint URLs
    - Supplying the provider's default scopes and their separator
    - Interpreting provider error bodies
    - Turning userinfo claims into a resource owner

    Implementations:
        - KeycloakEndpoints
    """

    scope_separator: str

    @property
    def authorization_url(self) -> str:
        """Base URL of the authorization endpoint (without query)."""
        ...

    @property
    def token_url(self) -> str:
        """URL of the token endpoint."""
        ...

    @property
    def resource_owner_details_url(self) -> str:
        """URL of the userinfo endpoint."""
        ...

    @property
    def default_scopes(self) -> Sequence[str]:
        """Minimum scopes the provider needs; merged with ``openid``."""
        ...

    def check_response(self, status_code: int, data: Any) -> None:
        """Inspect a parsed response body.

        Args:
            status_code: HTTP status of the response.
            data: Parsed body (mapping, list, string or None).

        Raises:
            IdentityProviderError: The body carries a provider error.
        """
        ...

    def create_resource_owner(
        self, response: Mapping[str, Any], token: AccessToken | str
    ) -> ResourceOwner:
        """Build a resource owner from decoded claims."""
        ...


# ═══════════════════════════════════════════════════════════════
# TOKEN DECODER PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class ITokenDecoder(Protocol):
    """Protocol for verifying and decoding signed or encrypted tokens.

    Given a token string, a key and an algorithm, return the claims or fail.
    Cryptography lives in the implementation, never in the client.
    """

    def decode(self, token: str, key: str | bytes, algorithm: str) -> dict[str, Any]:
        """Verify and decode a compact JWS/JWE.

        Args:
            token: Compact serialized token.
            key: Shared secret or PEM encoded key.
            algorithm: JOSE algorithm name (HS256, RS256, RSA-OAEP, ...).

        Returns:
            Dictionary of claims.

        Raises:
            EncryptionConfigurationError: Verification or decoding failed.
        """
        ...


__all__: list[str] = ["IEndpointResolver", "ITokenDecoder"]
