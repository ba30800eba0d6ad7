"""OAuth2 state parameter helpers.

The state parameter prevents CSRF attacks during OAuth2 flows. It is sent
with the authorization redirect, kept by the caller, and compared with the
value echoed back on the callback.
"""

from __future__ import annotations

import hmac
import secrets


def generate_oauth_state(length: int = 16) -> str:
    """Generate a random state value.

    Args:
        length: Number of random bytes (the result has twice as many hex
            characters). Default 16 bytes gives 32 hex characters.

    Returns:
        Hex encoded random string.
    """
    return secrets.token_hex(length)


def states_match(expected: str | None, received: str | None) -> bool:
    """Compare a stored state with the one received on callback.

    Uses constant-time comparison. Missing values never match.
    """
    if not expected or not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


__all__: list[str] = ["generate_oauth_state", "states_match"]
