"""Pydantic schemas for API validation."""

from .entity import (
    DirectoryResponse,
    FileResponse,
    DirectoryListing,
    SearchResult,
    ResolvedPath,
    EntityCreatedResponse,
    RemoveResponse,
    DirectoryCreate,
    FileCreate,
    RenameRequest,
    MoveRequest,
    CopyRequest,
    BundleRequest,
)

__all__ = [
    "DirectoryResponse",
    "FileResponse",
    "DirectoryListing",
    "SearchResult",
    "ResolvedPath",
    "EntityCreatedResponse",
    "RemoveResponse",
    "DirectoryCreate",
    "FileCreate",
    "RenameRequest",
    "MoveRequest",
    "CopyRequest",
    "BundleRequest",
]
