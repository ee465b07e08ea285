"""API routes."""

from .auth_routes import router as auth_router
from .directories import router as directories_router
from .files import router as files_router
from .entities import router as entities_router, paths_router

__all__ = [
    "auth_router",
    "directories_router",
    "files_router",
    "entities_router",
    "paths_router",
]
