"""JWT decoding for encrypted or signed provider responses.

Keycloak can be configured to return userinfo and introspection responses
as a signed (JWS) or encrypted (JWE) JWT instead of plain JSON. This module
verifies/decrypts such responses with joserfc.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any

from joserfc import jwe, jwt
from joserfc.errors import JoseError
from joserfc.jwk import import_key

from .exceptions import EncryptionConfigurationError

logger = logging.getLogger(__name__)

_DIRECT_KEY_ALGORITHMS = frozenset(
    {
        "dir",
        "A128KW",
        "A192KW",
        "A256KW",
        "A128GCMKW",
        "A192GCMKW",
        "A256GCMKW",
    }
)


def key_type_for_algorithm(algorithm: str) -> str:
    """Map a JOSE algorithm name to the joserfc key type it needs.

    Args:
        algorithm: JWS ``alg`` (HS256, RS256, ES256, EdDSA...) or JWE ``alg``
            (RSA-OAEP, ECDH-ES, dir, A128KW...).

    Returns:
        One of ``"oct"``, ``"RSA"``, ``"EC"``, ``"OKP"``.

    Raises:
        EncryptionConfigurationError: The algorithm is not supported.
    """
    if algorithm.startswith("HS") or algorithm in _DIRECT_KEY_ALGORITHMS:
        return "oct"
    if algorithm.startswith(("RS", "PS")):
        return "RSA"
    if algorithm.startswith(("ES", "ECDH-ES")):
        return "EC"
    if algorithm == "EdDSA":
        return "OKP"
    raise EncryptionConfigurationError(f"Unsupported encryption algorithm: {algorithm}")


class JoseTokenDecoder:
    """ITokenDecoder implementation backed by joserfc.

    Registered time claims (``exp``, ``nbf``, ``iat``) are validated after
    decoding, tolerating ``leeway`` seconds of clock skew.

    Example:
        ```python
        decoder = JoseTokenDecoder(leeway=30)
        claims = decoder.decode(token, secret, "HS256")
        ```
    """

    def __init__(self, *, leeway: int = 0) -> None:
        self.leeway = leeway

    def decode(self, token: str, key: str | bytes, algorithm: str) -> dict[str, Any]:
        """Verify and decode a compact JWS or JWE.

        Raises:
            EncryptionConfigurationError: Key import, verification, decryption
                or claim validation failed.
        """
        key_type = key_type_for_algorithm(algorithm)
        compact = token.strip()
        allowed = _allowed_algorithms(compact, algorithm)
        # jwt.decode only takes the JWE path when handed a JWERegistry
        registry = jwe.JWERegistry(algorithms=allowed) if _is_jwe(compact) else None
        try:
            material = _key_material(key)
            jose_key = import_key(material, key_type)  # type: ignore[arg-type]
            decoded = jwt.decode(
                compact, jose_key, algorithms=allowed, registry=registry
            )
            jwt.JWTClaimsRegistry(leeway=self.leeway).validate(decoded.claims)
        except (JoseError, ValueError) as e:
            logger.warning("Failed to decode %s token: %s", algorithm, e)
            raise EncryptionConfigurationError(
                f"Unable to decode token with algorithm {algorithm}: {e}"
            ) from e

        return dict(decoded.claims)


def _key_material(key: str | bytes) -> Any:
    """Accept JWK JSON documents as well as raw secrets and PEM keys."""
    if isinstance(key, str) and key.lstrip().startswith("{"):
        try:
            return json.loads(key)
        except json.JSONDecodeError:
            return key
    return key


def _allowed_algorithms(token: str, algorithm: str) -> list[str]:
    """Restrict decoding to the configured algorithm.

    For JWE the content encryption algorithm (``enc``) must be allowed too;
    it is read from the protected header.
    """
    if not _is_jwe(token):
        return [algorithm]

    header = _decode_header(token.split(".", 1)[0])
    enc = header.get("enc")
    return [algorithm, str(enc)] if enc else [algorithm]


def _is_jwe(token: str) -> bool:
    """Compact JWE has five segments, compact JWS three."""
    return token.count(".") == 4


def _decode_header(segment: str) -> dict[str, Any]:
    padded = segment + "=" * (-len(segment) % 4)
    try:
        header = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError):
        return {}
    return header if isinstance(header, dict) else {}


__all__: list[str] = ["JoseTokenDecoder", "key_type_for_algorithm"]
