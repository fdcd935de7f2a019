"""Prometheus-compatible metrics endpoint."""

from fastapi import APIRouter, Response

from app.monitoring.registry import registry


router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=Response, include_in_schema=False)
def export_metrics() -> Response:
    """Expose the relay counters in the Prometheus text format."""

    return Response(content=registry.render(), media_type="text/plain; version=0.0.4")
