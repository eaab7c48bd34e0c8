"""HTTP boundary for dashboards polling the cached telemetry view."""

from otelview.api.main import create_app

__all__ = ["create_app"]
