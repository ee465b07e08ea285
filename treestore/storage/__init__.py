"""Blob storage: the content store and the download archiver."""

from .content_store import LocalContentStore
from .archiver import ArchiveHandle, ZipArchiver

__all__ = ["LocalContentStore", "ArchiveHandle", "ZipArchiver"]
