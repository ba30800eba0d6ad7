"""Access token value object.

Wraps a successful token endpoint response. One instance is created per
token exchange and handed to the caller, who owns it from then on.
"""

from __future__ import annotations

import copy
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

_KNOWN_FIELDS = frozenset(
    {"access_token", "refresh_token", "expires_in", "expires", "resource_owner_id"}
)


@dataclass(frozen=True)
class AccessToken:
    """OAuth2 access token returned by the token endpoint.

    Attributes:
        access_token: The bearer token string.
        refresh_token: Token for obtaining a new access token (optional).
        expires_in: Lifetime in seconds as reported by the provider.
        expires: Absolute expiry as a Unix timestamp.
        resource_owner_id: Identifier of the token owner, when the provider
            reports one.
        values: Read-only copy of every other field of the token response,
            e.g. ``id_token``, ``token_type``, ``scope`` or Keycloak's
            ``session_state``.
    """

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    expires: int | None = None
    resource_owner_id: str | None = None
    values: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        """Freeze extra values and derive the expiry from expires_in."""
        frozen = MappingProxyType(copy.deepcopy(dict(self.values)))
        object.__setattr__(self, "values", frozen)
        if self.expires is None and self.expires_in is not None:
            object.__setattr__(self, "expires", int(time.time()) + self.expires_in)

    @classmethod
    def from_response(cls, response: Mapping[str, Any]) -> AccessToken:
        """Create a token from a parsed token endpoint response.

        Args:
            response: Parsed JSON body of the token endpoint.

        Returns:
            AccessToken instance.

        Raises:
            ValueError: If ``access_token`` is missing or ``expires_in`` is
                not numeric.
        """
        if not response.get("access_token"):
            raise ValueError("Required option not passed: 'access_token'")

        expires_in = response.get("expires_in")
        expires = response.get("expires")
        refresh_token = response.get("refresh_token")
        owner_id = response.get("resource_owner_id")

        return cls(
            access_token=str(response["access_token"]),
            refresh_token=str(refresh_token) if refresh_token else None,
            expires_in=_as_int(expires_in, "expires_in"),
            expires=_as_int(expires, "expires"),
            resource_owner_id=str(owner_id) if owner_id is not None else None,
            values={k: v for k, v in response.items() if k not in _KNOWN_FIELDS},
        )

    @property
    def id_token(self) -> str | None:
        """OpenID Connect ID token, if the provider issued one."""
        value = self.values.get("id_token")
        return str(value) if value else None

    @property
    def token_type(self) -> str:
        return str(self.values.get("token_type", "Bearer"))

    def has_expired(self) -> bool:
        """Check whether the token is past its expiry.

        Raises:
            ValueError: If the token carries no expiry information.
        """
        if self.expires is None:
            raise ValueError('"expires" is not set on the token')
        return self.expires < time.time()

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the token response shape."""
        result: dict[str, Any] = copy.deepcopy(dict(self.values))
        result["access_token"] = self.access_token
        if self.refresh_token:
            result["refresh_token"] = self.refresh_token
        if self.expires is not None:
            result["expires"] = self.expires
        if self.resource_owner_id is not None:
            result["resource_owner_id"] = self.resource_owner_id
        return result

    def __str__(self) -> str:
        return self.access_token


def _as_int(value: Any, name: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} value must be an integer, got {value!r}") from e


__all__: list[str] = ["AccessToken"]
