from datetime import datetime, timezone

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.core.resilience import fallback_manager, performance_monitor
from app.core.suggestions import suggestion_engine
from app.models.schemas import HealthResponse
from app.storage.document_store import document_store
from app.storage.history_store import history_store

router = APIRouter()

MONITORED_SERVICES = ("search", "advanced_search", "context", "suggestions")
MONITORED_OPERATIONS = ("search", "indexing", "suggestions", "context")


@router.get("/api/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    services = {name: fallback_manager.get_service_health(name) for name in MONITORED_SERVICES}
    performance = {op: performance_monitor.get_stats(op) for op in MONITORED_OPERATIONS}
    performance["overall"] = performance_monitor.get_stats()

    is_healthy = (
        all(s.status != "unhealthy" for s in services.values())
        and performance["overall"].is_performing_well
    )
    return HealthResponse(
        status="healthy" if is_healthy else "degraded",
        is_healthy=is_healthy,
        services=services,
        performance=performance,
        documents_count=len(document_store),
        history_count=len(history_store),
        suggestion_cache=suggestion_engine.cache_stats(),
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/metrics")
def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
