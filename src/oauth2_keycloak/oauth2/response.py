"""Response body parsing for OAuth2 endpoints."""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import parse_qsl

import httpx

from ..exceptions import IdentityProviderError, UnexpectedResponseError

logger = logging.getLogger(__name__)


def parse_response(response: httpx.Response) -> Any:
    """Parse an endpoint response body.

    - ``application/x-www-form-urlencoded`` bodies become a dict.
    - Everything else is parsed as JSON; an empty body becomes ``{}``.
    - A body that is not JSON is returned as a string (for instance a
      JWT-encoded userinfo response), unless the content type claims JSON
      or the server failed with a 500.

    Raises:
        UnexpectedResponseError: The body cannot be interpreted.
    """
    content = response.text
    content_type = response.headers.get("content-type", "").lower()

    if "urlencoded" in content_type:
        return dict(parse_qsl(content, keep_blank_values=True))

    if not content.strip():
        return {}

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        if "json" in content_type:
            raise UnexpectedResponseError(
                f"Failed to parse JSON response: {e}",
                status_code=response.status_code,
                body=content,
            ) from e
        if response.status_code == 500:
            raise UnexpectedResponseError(
                "An OAuth server error was encountered that did not contain a "
                "JSON body",
                status_code=response.status_code,
                body=content,
            ) from e
        return content


def check_error_field(status_code: int, data: Any) -> None:
    """Raise IdentityProviderError when a body carries an ``error`` field.

    Non-mapping bodies and bodies without a truthy ``error`` pass unchanged.
    """
    if not isinstance(data, dict) or not data.get("error"):
        return

    error = IdentityProviderError.from_response(data, status_code)
    logger.warning(
        "Identity provider returned error %r (HTTP %s)", error.error, status_code
    )
    raise error


__all__: list[str] = ["parse_response", "check_error_field"]
