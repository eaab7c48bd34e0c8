"""
Telemetry API Routes
=====================

- GET /api/telemetry        → cached traces and logs (dashboard polling)
- GET /api/telemetry/stats  → latency snapshot and cache counters

Both endpoints answer 200 even when the broker is unreachable; the
payload then carries ``consumerRunning: false`` plus ``error`` and
``details`` next to whatever is already cached.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from otelview.api.deps import get_driver
from otelview.infra.telemetry import get_logger
from otelview.ingest import IngestionDriver

logger = get_logger(__name__)

router = APIRouter(prefix="/api/telemetry", tags=["telemetry"])


@router.get("")
async def get_telemetry(driver: IngestionDriver = Depends(get_driver)) -> dict[str, Any]:
    """
    Return the cached telemetry view, starting the consumer on first use.

    A failed start is reported inside the payload, never as an HTTP error.
    """
    started = await driver.ensure_started()
    if not started:
        logger.warning("telemetry_served_degraded")
    return driver.get_snapshot()


@router.get("/stats")
async def get_telemetry_stats(driver: IngestionDriver = Depends(get_driver)) -> dict[str, Any]:
    """Latency aggregates over the cached traces and per-cache counters."""
    return driver.get_stats()
