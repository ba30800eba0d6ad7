"""OAuth2 tracing helpers for OpenTelemetry integration.

Every network operation of the provider runs inside a span when
opentelemetry-api is installed (``pip install 'oauth2-keycloak[otel]'``).
Without it the helpers are no-ops.

Usage:
    ```python
    from oauth2_keycloak.observability import OAuth2Tracing

    with OAuth2Tracing.span("introspect", provider="keycloak") as span:
        claims = provider.introspect_token(token)
    ```
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from ..exceptions import IdentityProviderError

if TYPE_CHECKING:
    from collections.abc import Generator

_logger = logging.getLogger(__name__)

# Try to import OpenTelemetry (optional dependency)
try:
    from opentelemetry import trace
    from opentelemetry.trace import Status, StatusCode

    HAS_OTEL = True
except ImportError:
    HAS_OTEL = False
    trace = None  # type: ignore[assignment]
    Status = None  # type: ignore[assignment,misc]
    StatusCode = None  # type: ignore[assignment,misc]


class _TracerRegistry:
    """Lazy tracer initialization."""

    def __init__(self) -> None:
        self._tracer: Any = None
        self._initialized = False

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        if HAS_OTEL and trace:
            self._tracer = trace.get_tracer("oauth2-keycloak")
        self._initialized = True

    @property
    def tracer(self) -> Any:
        self._ensure_initialized()
        return self._tracer


_registry = _TracerRegistry()


class OAuth2Tracing:
    """Span helpers for OAuth2 round trips."""

    @staticmethod
    @contextmanager
    def span(
        operation: str,
        *,
        provider: str = "unknown",
        realm: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[Any, None, None]:
        """Context manager for a traced OAuth2 operation.

        Sets ``oauth2.outcome`` to ``success`` or ``failure`` and, when the
        provider answered with an OAuth2 error, ``oauth2.error``.

        Args:
            operation: Operation name (exchange_code, refresh, userinfo,
                introspect, logout).
            provider: Identity provider name.
            realm: Provider realm or tenant, if any.
            attributes: Additional span attributes.

        Yields:
            Span object or None if tracing disabled.
        """
        tracer = _registry.tracer
        if not tracer:
            yield None
            return

        with tracer.start_as_current_span(f"oauth2.{operation}") as span:
            try:
                span.set_attribute("oauth2.operation", operation)
                span.set_attribute("oauth2.provider", provider)
                if realm:
                    span.set_attribute("oauth2.realm", realm)

                if attributes:
                    for key, value in attributes.items():
                        span.set_attribute(key, str(value))

                yield span
                span.set_attribute("oauth2.outcome", "success")

            except Exception as e:
                span.set_attribute("oauth2.outcome", "failure")
                if isinstance(e, IdentityProviderError):
                    OAuth2Tracing.set_error_code(span, e.error)
                if Status and StatusCode:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                raise

    @staticmethod
    def set_error_code(span: Any, error: str | None) -> None:
        """Attach the provider's OAuth2 error code to a span."""
        if span and error:
            span.set_attribute("oauth2.error", error)


__all__: list[str] = ["OAuth2Tracing", "HAS_OTEL"]
