from fastapi import APIRouter, Response

from arvi.core.metrics import METRICS

router = APIRouter(tags=["metrics"])

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@router.get("/metrics", include_in_schema=False)
def metrics_endpoint():
    """Process-local counters and histograms in Prometheus text format."""
    return Response(content=METRICS.export_prometheus(), media_type=PROMETHEUS_CONTENT_TYPE)
