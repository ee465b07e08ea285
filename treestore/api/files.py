"""File endpoints: upload, empty-file creation, metadata, content and bundles."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ..core.auth import require_auth
from ..core.config import settings
from ..core.token_factory import TokenClaims
from ..schemas.entity import BundleRequest, EntityCreatedResponse, FileCreate, FileResponse
from ..services.entity_manager import DEFAULT_MIME_TYPE, EntityManager
from .deps import attachment_headers, get_entity_manager

router = APIRouter(prefix="/api/files", tags=["files"])


@router.post("", response_model=EntityCreatedResponse, status_code=201)
def upload_file(
    parent_id: str = Form(...),
    name: Optional[str] = Form(None, description="Defaults to the uploaded filename"),
    upload: UploadFile = File(..., alias="file"),
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    """Multipart upload of one file into ``parent_id``."""
    # Browsers send octet-stream for unknown types; let the name decide then.
    mime_type = upload.content_type
    if mime_type == DEFAULT_MIME_TYPE:
        mime_type = None
    file_id = manager.upload_file(
        claims.user_id,
        name if name is not None else (upload.filename or ""),
        parent_id,
        upload.file,
        mime_type=mime_type,
    )
    return EntityCreatedResponse(id=file_id)


@router.post("/empty", response_model=EntityCreatedResponse, status_code=201)
def create_empty_file(
    data: FileCreate,
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    file_id = manager.create_file(claims.user_id, data.name, data.parent_id)
    return EntityCreatedResponse(id=file_id)


@router.post("/download")
def download_bundle(
    data: BundleRequest,
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    """Zip of several files and directories, streamed once then deleted."""
    archive = manager.download_bundle(claims.user_id, data.ids)
    return StreamingResponse(
        archive.iter_chunks(),
        media_type="application/zip",
        headers=attachment_headers(archive.filename),
        background=BackgroundTask(archive.release),
    )


@router.get("/{file_id}", response_model=FileResponse)
def get_file(
    file_id: str,
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    return manager.get_file(claims.user_id, file_id)


@router.get("/{file_id}/content")
def download_file(
    file_id: str,
    manager: EntityManager = Depends(get_entity_manager),
    claims: TokenClaims = Depends(require_auth),
):
    payload = manager.download_file(claims.user_id, file_id)
    headers = attachment_headers(payload.name)
    headers["Content-Length"] = str(payload.size)
    return StreamingResponse(
        payload.iter_chunks(settings.stream_chunk_size),
        media_type=payload.mime_type,
        headers=headers,
        background=BackgroundTask(payload.stream.close),
    )
