"""Observability helpers for oauth2-keycloak."""

from __future__ import annotations

from .tracing import HAS_OTEL, OAuth2Tracing

__all__: list[str] = ["OAuth2Tracing", "HAS_OTEL"]
