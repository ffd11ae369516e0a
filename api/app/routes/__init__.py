from fastapi import APIRouter, FastAPI

from .admin import router as admin_router
from .rounds import router as rounds_router
from .slack import router as slack_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(rounds_router, tags=["rounds"])
    app.include_router(slack_router, tags=["slack"])
    app.include_router(admin_router, tags=["admin"])


__all__ = ["include_modular_routers", "APIRouter"]
