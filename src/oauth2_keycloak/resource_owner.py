"""Resource owner value objects.

A resource owner is the authenticated subject described by the claims of a
userinfo or introspection response.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, PrivateAttr

_OwnerT = TypeVar("_OwnerT", bound="ResourceOwner")


class ResourceOwner(BaseModel):
    """Immutable resource owner built from provider claims.

    The claims are copied on the way in and on the way out, so neither the
    provider response nor a caller can change an owner after creation.
    Equality and hashing are structural (claims compared).

    Attributes:
        claims: Read-only view of the claims as returned by the provider
            (after decoding).
    """

    model_config = ConfigDict(frozen=True)

    _claims: dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_claims(
        cls: type[_OwnerT], claims: Mapping[str, Any] | None
    ) -> _OwnerT:
        """Wrap a claims mapping. ``None`` yields an owner without claims."""
        owner = cls()
        owner._claims = copy.deepcopy(dict(claims or {}))
        return owner

    @property
    def claims(self) -> Mapping[str, Any]:
        return MappingProxyType(self.to_dict())

    @property
    def id(self) -> str | None:
        """Subject identifier (``sub``)."""
        return self._str_claim("sub")

    @property
    def email(self) -> str | None:
        return self._str_claim("email")

    @property
    def name(self) -> str | None:
        return self._str_claim("name")

    def get(self, claim: str, default: Any = None) -> Any:
        return copy.deepcopy(self._claims.get(claim, default))

    def to_dict(self) -> dict[str, Any]:
        """Return a deep copy of the raw claims."""
        return copy.deepcopy(self._claims)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResourceOwner):
            return NotImplemented
        return type(self) is type(other) and self._claims == other._claims

    def __hash__(self) -> int:
        canonical = json.dumps(self._claims, sort_keys=True, default=str)
        return hash((type(self), canonical))

    def _str_claim(self, claim: str) -> str | None:
        value = self._claims.get(claim)
        return None if value is None else str(value)

    def _mapping_claim(self, claim: str) -> Mapping[str, Any]:
        value = self._claims.get(claim)
        return value if isinstance(value, Mapping) else {}


def _roles(access: Mapping[str, Any]) -> list[str]:
    roles = access.get("roles")
    if not isinstance(roles, (list, tuple)):
        return []
    return [str(role) for role in roles]


class KeycloakResourceOwner(ResourceOwner):
    """Resource owner with Keycloak claim conventions.

    Example:
        ```python
        owner = provider.get_resource_owner(token)
        print(owner.id, owner.username, owner.realm_roles)
        ```
    """

    @property
    def username(self) -> str | None:
        return self._str_claim("preferred_username")

    @property
    def first_name(self) -> str | None:
        return self._str_claim("given_name")

    @property
    def last_name(self) -> str | None:
        return self._str_claim("family_name")

    @property
    def is_active(self) -> bool | None:
        """Introspection ``active`` flag; ``None`` for userinfo responses."""
        active = self._claims.get("active")
        return None if active is None else bool(active)

    @property
    def realm_roles(self) -> list[str]:
        """Roles from ``realm_access.roles``; malformed claims yield ``[]``."""
        return _roles(self._mapping_claim("realm_access"))

    def client_roles(self, client_id: str) -> list[str]:
        """Roles granted for one client from ``resource_access``."""
        client_access = self._mapping_claim("resource_access").get(client_id)
        if not isinstance(client_access, Mapping):
            return []
        return _roles(client_access)


__all__: list[str] = ["ResourceOwner", "KeycloakResourceOwner"]
