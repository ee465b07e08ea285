"""Filesystem content store for file bytes.

Blobs are addressed by opaque storage handles. A handle is generated here
from a caller hint (the file id) plus a random suffix, so two saves never
share a handle even for the same file id. Blobs are sharded into
subdirectories by the first two characters of the handle.
"""

import logging
import os
import re
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

from ..exceptions import ContentStoreError

_HANDLE_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9\-]{0,254}$")


class LocalContentStore:
    """Content store backed by a directory on the local filesystem.

    Public methods:
        save     -- write a stream under a fresh handle, returns (handle, size)
        read     -- open a blob for binary reading
        remove   -- delete a blob; a missing blob is not an error
        discard  -- best-effort remove used by compensation paths
        exists   -- whether a handle has a blob
    """

    def __init__(
        self,
        root: str,
        chunk_size: int = 64 * 1024,
        logger: Optional[logging.Logger] = None,
    ):
        self.root = Path(root)
        self.chunk_size = chunk_size
        self.logger = logger or logging.getLogger(__name__)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, handle: str) -> Path:
        if not isinstance(handle, str) or not _HANDLE_RE.match(handle):
            raise ContentStoreError("Invalid storage handle", handle=str(handle))
        return self.root / handle[:2] / handle

    def save(self, handle_hint: str, reader: BinaryIO) -> Tuple[str, int]:
        """Copy *reader* into a new blob.

        The blob is written to a temporary file next to its final location
        and renamed into place, so a failed save never leaves a partial blob
        under a handle.

        Returns:
            (handle, size in bytes)
        """
        hint = re.sub(r"[^A-Za-z0-9\-]", "", handle_hint or "")[:64] or "blob"
        handle = f"{hint}-{uuid.uuid4().hex}"
        target = self._path_for(handle)

        tmp_name = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=target.parent, prefix=".upload-", delete=False
            ) as tmp:
                tmp_name = tmp.name
                shutil.copyfileobj(reader, tmp, self.chunk_size)
                size = tmp.tell()
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name is not None:
                self._unlink_quietly(Path(tmp_name))
            self.logger.error(
                "[INTERNAL] Failed to write blob",
                extra={"handle": handle, "error": str(e)},
            )
            raise ContentStoreError("Failed to write content", handle=handle) from e

        self.logger.debug("Stored blob", extra={"handle": handle, "size": size})
        return handle, size

    def read(self, handle: str) -> BinaryIO:
        """Open a blob for reading. The caller closes the returned stream."""
        path = self._path_for(handle)
        try:
            return open(path, "rb")
        except OSError as e:
            self.logger.error(
                "[INTERNAL] Failed to open blob",
                extra={"handle": handle, "error": str(e)},
            )
            raise ContentStoreError("Failed to read content", handle=handle) from e

    def remove(self, handle: str) -> None:
        """Delete a blob. Removing a handle that has no blob succeeds."""
        path = self._path_for(handle)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            self.logger.error(
                "[INTERNAL] Failed to remove blob",
                extra={"handle": handle, "error": str(e)},
            )
            raise ContentStoreError("Failed to remove content", handle=handle) from e
        self.logger.debug("Removed blob", extra={"handle": handle})

    def discard(self, handle: str) -> bool:
        """Remove a blob written by an operation that is being rolled back.

        Best-effort: a failure is logged and reported through the return
        value, never raised, because the metadata rollback already happened.
        """
        try:
            self.remove(handle)
            return True
        except ContentStoreError:
            self.logger.warning(
                "[INTERNAL] Orphaned blob left behind after rollback",
                extra={"handle": handle},
            )
            return False

    def exists(self, handle: str) -> bool:
        return self._path_for(handle).is_file()

    def _unlink_quietly(self, path: Path) -> None:
        try:
            path.unlink()
        except OSError as e:
            self.logger.warning(
                "[INTERNAL] Could not remove temporary blob",
                extra={"path": str(path), "error": str(e)},
            )
