"""Health and metrics endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST

from otelview.api.deps import get_driver, get_metrics_collector
from otelview.infra.telemetry import IngestionMetrics
from otelview.ingest import IngestionDriver

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(driver: IngestionDriver = Depends(get_driver)):
    """Liveness plus consumer state; degraded while the consumer is down."""
    running = driver.is_running
    return {
        "status": "healthy" if running else "degraded",
        "consumerRunning": running,
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/metrics")
async def metrics(collector: IngestionMetrics = Depends(get_metrics_collector)):
    """Prometheus exposition of the ingestion metrics."""
    return Response(content=collector.export_prometheus(), media_type=CONTENT_TYPE_LATEST)
