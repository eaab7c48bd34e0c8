"""API route modules."""

from .health import router as health_router
from .telemetry import router as telemetry_router

__all__ = ["health_router", "telemetry_router"]
