from fastapi import APIRouter, Response

from app.waypoint.core.metrics import metrics

router = APIRouter()


@router.get("/waypoint/ops/metrics")
def get_prometheus_metrics():
    snapshot = metrics.render()
    return Response(content=snapshot.content, media_type=snapshot.content_type)
