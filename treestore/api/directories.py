"""Directory endpoints: root lookup, listing, creation, search and download.

Endpoints are thin; EntityManager does validation, authorization and the
mutation. The caller's user_id always comes from the token, never the body.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ..core.auth import require_auth
from ..core.token_factory import TokenClaims
from ..schemas.entity import DirectoryCreate, DirectoryListing, EntityCreatedResponse, SearchResult
from ..services.entity_manager import EntityManager
from .deps import attachment_headers, get_entity_manager

router = APIRouter(prefix="/api/directories", tags=["directories"])


@router.get("/root", response_model=DirectoryListing)
def get_root_directory(
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    """The caller's root directory and its live children."""
    return manager.get_root_directory(claims.user_id)


@router.post("", response_model=EntityCreatedResponse, status_code=201)
def create_directory(
    data: DirectoryCreate,
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    dir_id = manager.create_directory(claims.user_id, data.name, data.parent_id)
    return EntityCreatedResponse(id=dir_id)


@router.get("/{dir_id}", response_model=DirectoryListing)
def get_directory(
    dir_id: str,
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    return manager.get_directory(claims.user_id, dir_id)


@router.get("/{dir_id}/search", response_model=SearchResult)
def search_directory(
    dir_id: str,
    q: str = Query(..., min_length=1, description="Case-sensitive name substring"),
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    """Live descendants of the directory whose name contains ``q``."""
    return manager.search_by_name(claims.user_id, q, dir_id)


@router.get("/{dir_id}/download")
def download_directory(
    dir_id: str,
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    """Zip of the directory's content, streamed once then deleted."""
    archive = manager.download_directory(claims.user_id, dir_id)
    return StreamingResponse(
        archive.iter_chunks(),
        media_type="application/zip",
        headers=attachment_headers(archive.filename),
        background=BackgroundTask(archive.release),
    )
