"""Endpoints shared by files and directories: rename, move, copy, remove, path lookup."""

from fastapi import APIRouter, Depends, Query, Response

from ..core.auth import require_auth
from ..core.token_factory import TokenClaims
from ..schemas.entity import (
    CopyRequest,
    EntityCreatedResponse,
    MoveRequest,
    RemoveResponse,
    RenameRequest,
    ResolvedPath,
)
from ..services.entity_manager import EntityManager
from .deps import get_entity_manager

router = APIRouter(prefix="/api/entities", tags=["entities"])
paths_router = APIRouter(prefix="/api/paths", tags=["paths"])


@router.put("/{entity_id}/name", status_code=204)
def rename_entity(
    entity_id: str,
    data: RenameRequest,
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    manager.rename_entity(claims.user_id, entity_id, data.name)
    return Response(status_code=204)


@router.put("/{entity_id}/parent", status_code=204)
def move_entity(
    entity_id: str,
    data: MoveRequest,
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    manager.move_entity(claims.user_id, entity_id, data.parent_id)
    return Response(status_code=204)


@router.post("/{entity_id}/copy", response_model=EntityCreatedResponse, status_code=201)
def copy_entity(
    entity_id: str,
    data: CopyRequest,
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    new_id = manager.copy_entity(claims.user_id, entity_id, data.parent_id)
    return EntityCreatedResponse(id=new_id)


@router.delete("/{entity_id}", response_model=RemoveResponse)
def remove_entity(
    entity_id: str,
    permanent: bool = Query(False, description="Delete permanently instead of moving to trash"),
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    """Soft-remove by default; ``?permanent=true`` deletes the subtree and its content."""
    if permanent:
        count = manager.hard_remove(claims.user_id, entity_id)
    else:
        manager.soft_remove(claims.user_id, entity_id)
        count = 1
    return RemoveResponse(id=entity_id, permanent=permanent, removed_count=count)


@paths_router.get("", response_model=ResolvedPath)
def resolve_path(
    path: str = Query(..., description="Logical path from the caller's root, e.g. /docs/a.txt"),
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    return manager.resolve_path(claims.user_id, path)
