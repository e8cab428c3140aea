from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.cashdesk.core.config import settings
from app.cashdesk.core.error_catalog import ErrorCatalog
from app.cashdesk.core.errors import error_response
from app.cashdesk.core.metrics import metrics
from app.cashdesk.db.models import CashSession
from app.cashdesk.db.session import get_db

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    return {"status": "ok", "service": settings.APP_NAME, "trace_id": getattr(request.state, "trace_id", "")}


@router.get("/ready")
def ready(request: Request, db=Depends(get_db)):
    """Ready once the database answers and the cash schema is migrated."""
    trace_id = getattr(request.state, "trace_id", "")
    try:
        db.execute(select(CashSession.id).limit(1))
    except SQLAlchemyError as exc:
        return error_response(
            code=ErrorCatalog.DB_UNAVAILABLE.code,
            message=ErrorCatalog.DB_UNAVAILABLE.message,
            details={"type": exc.__class__.__name__},
            trace_id=trace_id,
            status_code=ErrorCatalog.DB_UNAVAILABLE.status_code,
        )
    return {"status": "ready", "trace_id": trace_id}


@router.get("/metrics", include_in_schema=False)
def get_metrics():
    snapshot = metrics.render()
    return Response(content=snapshot.content, media_type=snapshot.content_type)
