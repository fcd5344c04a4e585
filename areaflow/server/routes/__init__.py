"""Route registration for the AreaFlow API."""

from fastapi import FastAPI

from .areas import router as areas_router
from .engine import router as engine_router


def register_routes(app: FastAPI):
    app.include_router(engine_router)
    app.include_router(areas_router)
