"""Request middleware."""

from .admin import AdminKeyMiddleware
from .telemetry import TelemetryMiddleware

__all__ = ["AdminKeyMiddleware", "TelemetryMiddleware"]
