"""Master API router: includes all sub-routers."""

from fastapi import APIRouter

from .routes.dashboard import router as dashboard_router
from .routes.layouts import router as layouts_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(layouts_router)
api_router.include_router(dashboard_router)
