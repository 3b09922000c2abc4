"""Prometheus scrape endpoint."""

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics(request: Request) -> Response:
    """Current availability snapshot. Runs in the thread pool."""
    registry = request.app.state.collector_registry
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
