"""Zip archiver for multi-file and directory downloads.

``bundle`` copies blobs from the content store into a zip written to a
temporary file and returns an ``ArchiveHandle``. The handle is single-use:
the archive file is deleted once it has been read to the end or released,
whichever happens first.
"""

import logging
import os
import shutil
import tempfile
import zipfile
from typing import Dict, Iterator, Optional

from ..exceptions import ContentStoreError
from .content_store import LocalContentStore


class ArchiveHandle:
    """A finished archive on disk that can be streamed exactly once."""

    def __init__(
        self,
        path: str,
        filename: str,
        entry_count: int,
        chunk_size: int = 64 * 1024,
        logger: Optional[logging.Logger] = None,
    ):
        self.path = path
        self.filename = filename
        self.entry_count = entry_count
        self.size = os.path.getsize(path)
        self.chunk_size = chunk_size
        self.logger = logger or logging.getLogger(__name__)
        self._consumed = False
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def iter_chunks(self) -> Iterator[bytes]:
        """Yield the archive bytes, then delete the archive file."""
        if self._consumed or self._released:
            raise ContentStoreError("Archive has already been consumed")
        self._consumed = True
        try:
            with open(self.path, "rb") as f:
                while True:
                    chunk = f.read(self.chunk_size)
                    if not chunk:
                        break
                    yield chunk
        finally:
            self.release()

    def read(self) -> bytes:
        return b"".join(self.iter_chunks())

    def release(self) -> None:
        """Delete the archive file. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            return
        except OSError as e:
            self.logger.warning(
                "[INTERNAL] Failed to delete archive",
                extra={"archive": self.path, "error": str(e)},
            )

    def __enter__(self) -> "ArchiveHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class ZipArchiver:
    """Builds zip archives from ``{logical_path: storage_handle}`` mappings."""

    def __init__(
        self,
        content_store: LocalContentStore,
        archive_dir: Optional[str] = None,
        chunk_size: int = 64 * 1024,
        logger: Optional[logging.Logger] = None,
    ):
        self.content_store = content_store
        self.archive_dir = archive_dir or None
        self.chunk_size = chunk_size
        self.logger = logger or logging.getLogger(__name__)
        if self.archive_dir:
            os.makedirs(self.archive_dir, exist_ok=True)

    def bundle(
        self, mapping: Dict[str, Optional[str]], filename: str = "download.zip"
    ) -> ArchiveHandle:
        """Write every mapped blob into a new zip archive.

        Args:
            mapping: Archive path -> storage handle. A ``None`` handle adds an
                empty directory entry (the path should end with ``/``).
            filename: Download name reported on the handle.

        Raises:
            ContentStoreError: A blob could not be read or the archive written.
                No archive file is left behind.
        """
        fd, path = tempfile.mkstemp(suffix=".zip", prefix="bundle-", dir=self.archive_dir)
        os.close(fd)
        try:
            with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                for arcname, handle in mapping.items():
                    if handle is None:
                        zf.writestr(arcname if arcname.endswith("/") else arcname + "/", b"")
                        continue
                    with self.content_store.read(handle) as src, zf.open(arcname, "w") as dst:
                        shutil.copyfileobj(src, dst, self.chunk_size)
        except (OSError, zipfile.BadZipFile, ContentStoreError) as e:
            self._remove_partial(path)
            self.logger.error(
                "[INTERNAL] Failed to build archive",
                extra={"entries": len(mapping), "error": str(e)},
            )
            if isinstance(e, ContentStoreError):
                raise
            raise ContentStoreError("Failed to build archive") from e

        self.logger.info(
            "Archive built",
            extra={"entries": len(mapping), "archive": path},
        )
        return ArchiveHandle(path, filename, len(mapping), self.chunk_size, self.logger)

    def _remove_partial(self, path: str) -> None:
        try:
            os.unlink(path)
        except OSError as e:
            self.logger.warning(
                "[INTERNAL] Failed to delete partial archive",
                extra={"archive": path, "error": str(e)},
            )
