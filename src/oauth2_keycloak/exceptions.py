"""OAuth2 client exceptions.

All errors raised by this package inherit from OAuth2ClientError so callers
can catch the whole family with a single handler.
"""

from __future__ import annotations

from typing import Any

# ═══════════════════════════════════════════════════════════════
# BASE ERROR
# ═══════════════════════════════════════════════════════════════


class OAuth2ClientError(Exception):
    """Root exception for the oauth2-keycloak client."""


# ═══════════════════════════════════════════════════════════════
# CONFIGURATION ERRORS
# ═══════════════════════════════════════════════════════════════


class ConfigurationError(OAuth2ClientError):
    """Raised when the provider configuration is incomplete or invalid.

    Configuration errors are programming or deployment bugs, not transient
    conditions. They must not be retried.
    """


class EncryptionConfigurationError(ConfigurationError):
    """Raised when a response cannot be decoded with the configured key.

    Examples:
        - A JWT-encoded response arrived but no algorithm/key is configured
        - The encryption key file could not be read
        - The token failed signature verification or claim validation
    """

    @classmethod
    def undetermined_encryption(cls) -> EncryptionConfigurationError:
        """Error for string responses received without decoding configuration."""
        return cls(
            "The given response may be encrypted and sufficient encryption "
            "configuration has not been provided."
        )

    @classmethod
    def unreadable_key_file(
        cls, path: str, reason: str
    ) -> EncryptionConfigurationError:
        """Error for an encryption key path that cannot be read."""
        return cls(f"Unable to read encryption key from {path!r}: {reason}")


# ═══════════════════════════════════════════════════════════════
# PROVIDER ERRORS
# ═══════════════════════════════════════════════════════════════


class IdentityProviderError(OAuth2ClientError):
    """Raised when the identity provider answers with an ``error`` field.

    Covers ``invalid_grant``, ``invalid_client``, ``invalid_token`` and any
    other OAuth2 error code returned in the response body.

    Attributes:
        error: OAuth2 error code.
        error_description: Human readable description (may be empty).
        status_code: HTTP status of the response.
        response_body: The full parsed response body.
    """

    def __init__(
        self,
        message: str,
        *,
        error: str | None = None,
        error_description: str | None = None,
        status_code: int | None = None,
        response_body: Any = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.error_description = error_description
        self.status_code = status_code
        self.response_body = response_body

    @classmethod
    def from_response(
        cls, data: dict[str, Any], status_code: int | None = None
    ) -> IdentityProviderError:
        """Build the error from a parsed ``{"error": ..., ...}`` body."""
        error = str(data["error"])
        description = data.get("error_description")
        message = f"{error}: {description}" if description else error
        return cls(
            message,
            error=error,
            error_description=str(description) if description else None,
            status_code=status_code,
            response_body=data,
        )


class UnexpectedResponseError(OAuth2ClientError):
    """Raised when a response body cannot be interpreted.

    Attributes:
        status_code: HTTP status of the response.
        body: Raw response text.
    """

    def __init__(self, message: str, *, status_code: int, body: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


# ═══════════════════════════════════════════════════════════════
# TRANSPORT ERRORS
# ═══════════════════════════════════════════════════════════════


class TransportError(OAuth2ClientError):
    """Raised when the HTTP round trip itself fails (timeout, DNS, TLS...).

    The original ``httpx`` exception is chained as ``__cause__``.
    This layer never retries.
    """

    def __init__(self, message: str, *, method: str, url: str) -> None:
        super().__init__(message)
        self.method = method
        self.url = url


__all__: list[str] = [
    "OAuth2ClientError",
    "ConfigurationError",
    "EncryptionConfigurationError",
    "IdentityProviderError",
    "UnexpectedResponseError",
    "TransportError",
]
