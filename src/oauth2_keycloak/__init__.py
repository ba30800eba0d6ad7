"""oauth2-keycloak

OAuth 2.0 / OpenID Connect authorization code client with a Keycloak
provider: authorization and logout redirects, code and refresh-token
exchange, userinfo, token introspection, logout, and decoding of
JWT-encoded responses.

Usage:
    ```python
    from oauth2_keycloak import KeycloakConfig, KeycloakProvider

    provider = KeycloakProvider(
        KeycloakConfig(
            auth_server_url="https://keycloak.example.com",
            realm="my-realm",
            client_id="my-app",
            client_secret="secret",
            redirect_uri="https://app.example.com/callback",
        )
    )
    url = provider.build_authorization_url()
    token = provider.get_access_token(code)
    owner = provider.get_resource_owner(token)
    ```

Submodules:
    - `oauth2`: generic client, response handling, state, Keycloak provider
    - `decoder`: joserfc-backed JWT decoding
    - `observability`: optional OpenTelemetry spans
"""

from __future__ import annotations

from .decoder import JoseTokenDecoder, key_type_for_algorithm

# Exceptions
from .exceptions import (
    ConfigurationError,
    EncryptionConfigurationError,
    IdentityProviderError,
    OAuth2ClientError,
    TransportError,
    UnexpectedResponseError,
)

# OAuth2
from .oauth2 import (
    AuthorizationRequest,
    KeycloakConfig,
    KeycloakEndpoints,
    KeycloakProvider,
    OAuth2Client,
    OAuth2ClientConfig,
    generate_oauth_state,
    states_match,
)

# Ports
from .ports import IEndpointResolver, ITokenDecoder
from .resource_owner import KeycloakResourceOwner, ResourceOwner
from .token import AccessToken

__version__ = "0.1.0"

__all__: list[str] = [
    # Models
    "AccessToken",
    "ResourceOwner",
    "KeycloakResourceOwner",
    # Ports
    "IEndpointResolver",
    "ITokenDecoder",
    # Client
    "AuthorizationRequest",
    "OAuth2Client",
    "OAuth2ClientConfig",
    "generate_oauth_state",
    "states_match",
    # Keycloak
    "KeycloakConfig",
    "KeycloakEndpoints",
    "KeycloakProvider",
    # Decoding
    "JoseTokenDecoder",
    "key_type_for_algorithm",
    # Exceptions
    "OAuth2ClientError",
    "ConfigurationError",
    "EncryptionConfigurationError",
    "IdentityProviderError",
    "UnexpectedResponseError",
    "TransportError",
]
