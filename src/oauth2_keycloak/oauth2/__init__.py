"""OAuth2 module for oauth2-keycloak."""

from .client import (
    AuthorizationRequest,
    OAuth2Client,
    OAuth2ClientConfig,
    append_query,
    build_query,
)
from .keycloak import (
    KeycloakConfig,
    KeycloakEndpoints,
    KeycloakProvider,
    load_encryption_key,
)
from .response import check_error_field, parse_response
from .state import generate_oauth_state, states_match

__all__: list[str] = [
    # Client
    "AuthorizationRequest",
    "OAuth2Client",
    "OAuth2ClientConfig",
    "append_query",
    "build_query",
    # Responses
    "check_error_field",
    "parse_response",
    # State
    "generate_oauth_state",
    "states_match",
    # Keycloak
    "KeycloakConfig",
    "KeycloakEndpoints",
    "KeycloakProvider",
    "load_encryption_key",
]
