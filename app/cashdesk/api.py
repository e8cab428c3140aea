from fastapi import APIRouter

from app.cashdesk.routers.cash_sessions import router as cash_sessions_router
from app.cashdesk.routers.health import router as ops_router

api_router = APIRouter()
api_router.include_router(ops_router, tags=["ops"])
api_router.include_router(cash_sessions_router, tags=["cash"])
