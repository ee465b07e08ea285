"""Schemas for directories, files and tree operation results."""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List


# --- Entity schemas ---

class DirectoryResponse(BaseModel):
    """Directory metadata in API responses."""
    id: str
    name: str
    path: str
    parent_id: Optional[str] = None
    owner_id: str
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FileResponse(BaseModel):
    """File metadata in API responses. The storage handle is never exposed."""
    id: str
    name: str
    mime_type: str
    path: str
    size: int
    parent_id: str
    owner_id: str
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# --- Operation results ---

class DirectoryListing(BaseModel):
    """A directory plus its live direct children."""
    directory: DirectoryResponse
    directories: List[DirectoryResponse] = []
    files: List[FileResponse] = []


class SearchResult(BaseModel):
    """Live descendants of a scope directory whose name contains the query."""
    scope_id: str
    query: str
    directories: List[DirectoryResponse] = []
    files: List[FileResponse] = []


class ResolvedPath(BaseModel):
    """The entity a logical path resolves to."""
    path: str
    entity_type: str  # 'file' or 'directory'
    directory: Optional[DirectoryResponse] = None
    file: Optional[FileResponse] = None


class EntityCreatedResponse(BaseModel):
    id: str


class RemoveResponse(BaseModel):
    id: str
    permanent: bool
    removed_count: int


# --- Requests ---

class DirectoryCreate(BaseModel):
    """Create a directory under parent_id."""
    name: str
    parent_id: str


class FileCreate(BaseModel):
    """Create an empty file under parent_id."""
    name: str
    parent_id: str


class RenameRequest(BaseModel):
    name: str


class MoveRequest(BaseModel):
    parent_id: str


class CopyRequest(BaseModel):
    parent_id: str


class BundleRequest(BaseModel):
    """Entities to download together as one zip archive."""
    ids: List[str]
