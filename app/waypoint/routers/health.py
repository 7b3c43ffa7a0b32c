from fastapi import APIRouter, Depends, Request
from sqlalchemy import text

from app.waypoint.core.config import settings
from app.waypoint.core.error_catalog import ErrorCatalog
from app.waypoint.core.errors import error_response
from app.waypoint.db.session import get_db

router = APIRouter()


@router.get("/health")
def health(request: Request):
    return {"status": "ok", "service": settings.APP_NAME, "trace_id": getattr(request.state, "trace_id", "")}


@router.get("/ready")
def ready(request: Request, db=Depends(get_db)):
    trace_id = getattr(request.state, "trace_id", "")
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        return error_response(
            code=ErrorCatalog.DB_UNAVAILABLE.code,
            message=ErrorCatalog.DB_UNAVAILABLE.message,
            details=str(exc),
            trace_id=trace_id,
            status_code=ErrorCatalog.DB_UNAVAILABLE.status_code,
        )
    return {"status": "ready", "service": settings.APP_NAME, "trace_id": trace_id}
