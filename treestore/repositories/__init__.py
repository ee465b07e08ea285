"""Data access repositories."""

from .base import BaseRepository
from .tree_repository import DirectoryRepository, FileRepository, NameClaimRepository
from .user_repository import UserRepository, RoleBindingRepository
from .metadata_store import MetadataStore, translate_store_errors

__all__ = [
    "BaseRepository",
    "DirectoryRepository",
    "FileRepository",
    "NameClaimRepository",
    "UserRepository",
    "RoleBindingRepository",
    "MetadataStore",
    "translate_store_errors",
]
