"""Shared FastAPI dependencies for the tree endpoints."""

from functools import lru_cache
from urllib.parse import quote

from fastapi import Depends
from sqlalchemy.orm import Session

from ..core.config import settings
from ..database import get_db
from ..services.entity_manager import EntityManager
from ..storage import LocalContentStore, ZipArchiver


@lru_cache
def get_content_store() -> LocalContentStore:
    return LocalContentStore(settings.storage_root, chunk_size=settings.stream_chunk_size)


@lru_cache
def get_archiver() -> ZipArchiver:
    return ZipArchiver(
        get_content_store(),
        archive_dir=settings.archive_dir,
        chunk_size=settings.stream_chunk_size,
    )


def get_entity_manager(db: Session = Depends(get_db)) -> EntityManager:
    """One EntityManager per request, bound to the request's session."""
    return EntityManager(
        db,
        get_content_store(),
        archiver=get_archiver(),
        path_policy=settings.path_policy,
    )


def attachment_headers(filename: str) -> dict:
    """Content-Disposition for a download, safe for non-ASCII names."""
    fallback = filename.encode("ascii", "replace").decode().replace('"', "_")
    return {
        "Content-Disposition": (
            f'attachment; filename="{fallback}"; filename*=UTF-8\'\'{quote(filename)}'
        )
    }
