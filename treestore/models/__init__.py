"""Database models."""

from .user import User, RoleBinding
from .tree import Directory, File, NameClaim, ROOT_DIRECTORY_NAME, ROOT_DIRECTORY_PATH

__all__ = [
    "User", "RoleBinding",
    "Directory", "File", "NameClaim",
    "ROOT_DIRECTORY_NAME", "ROOT_DIRECTORY_PATH",
]
