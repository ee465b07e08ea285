"""Sagas for the recursive tree operations: copy and cascading delete.

A saga records every step it completed so a failure part-way through a
subtree can be undone (copy) or left in a hidden, retryable state (delete).
Each metadata write is its own short transaction; no transaction ever spans
content-store I/O.

Cancellation is cooperative: the walk checks ``cancel_event`` before each
node, stops there and raises OperationCancelledError. Nodes already copied
or deleted are left as they are.
"""

import threading
import uuid
from typing import List, Optional, Tuple

from ..core.logging_config import OperationLogger
from ..core.validation import join_path
from ..exceptions import (
    ContentStoreError,
    InternalError,
    OperationCancelledError,
    TreeStoreException,
)
from ..models import Directory, File
from ..repositories import MetadataStore
from ..storage import LocalContentStore


class _Saga:
    operation = "saga"

    def __init__(
        self,
        store: MetadataStore,
        content_store: LocalContentStore,
        log: OperationLogger,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.store = store
        self.content_store = content_store
        self.log = log
        self.cancel_event = cancel_event
        self.visited = 0

    def _ensure_not_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            self.log.info(
                "[USER] Operation cancelled",
                extra={"visited_nodes": self.visited},
            )
            raise OperationCancelledError(self.operation, self.visited)

    def _checkpoint(self) -> None:
        """Stop here if cancelled, otherwise count one more visited node."""
        self._ensure_not_cancelled()
        self.visited += 1


class CopySaga(_Saga):
    """Pre-order copy of a file or a directory subtree into a destination.

    Step log: ids of created directories (in creation order), ids of created
    files, and handles of written blobs. On failure everything in the log is
    removed again, rows children first, then blobs.
    """

    operation = "copy_entity"

    def __init__(self, *args, owner_id: str, **kwargs):
        super().__init__(*args, **kwargs)
        self.owner_id = owner_id
        self.created_dirs: List[str] = []
        self.created_files: List[str] = []
        self.written_blobs: List[str] = []

    def run(self, source, dst_parent: Directory) -> str:
        """Copy *source* (File or Directory) under *dst_parent*; return the new id."""
        try:
            if isinstance(source, File):
                return self._copy_file(source, dst_parent)
            return self._copy_tree(source, dst_parent)
        except OperationCancelledError:
            raise
        except Exception:
            self.compensate()
            raise

    def _copy_file(self, source: File, dst_parent: Directory) -> str:
        self._checkpoint()
        new_id = str(uuid.uuid4())
        try:
            with self.content_store.read(source.storage_handle) as reader:
                handle, size = self.content_store.save(new_id, reader)
        except ContentStoreError as e:
            raise InternalError() from e
        self.written_blobs.append(handle)

        copy = File(
            id=new_id,
            name=source.name,
            mime_type=source.mime_type,
            path=join_path(dst_parent.path, source.name),
            size=size,
            storage_handle=handle,
            parent_id=dst_parent.id,
            owner_id=self.owner_id,
        )
        with self.store.transaction(claim=(dst_parent.id, source.name)):
            self.store.insert_file(copy)
        self.created_files.append(new_id)
        return new_id

    def _create_directory(self, source: Directory, dst_parent: Directory) -> Directory:
        self._checkpoint()
        copy = Directory(
            id=str(uuid.uuid4()),
            name=source.name,
            path=join_path(dst_parent.path, source.name),
            parent_id=dst_parent.id,
            owner_id=self.owner_id,
        )
        with self.store.transaction(claim=(dst_parent.id, source.name)):
            self.store.insert_directory(copy)
        self.created_dirs.append(copy.id)
        return copy

    def _copy_tree(self, source: Directory, dst_parent: Directory) -> str:
        top_id = None
        # Explicit stack keeps strict pre-order without recursion depth limits.
        stack: List[Tuple[Directory, Directory]] = [(source, dst_parent)]
        while stack:
            src_dir, parent = stack.pop()
            new_dir = self._create_directory(src_dir, parent)
            if top_id is None:
                top_id = new_dir.id
            child_dirs, child_files = self.store.list_children(src_dir.id)
            for child_file in child_files:
                self._copy_file(child_file, new_dir)
            stack.extend((child, new_dir) for child in reversed(child_dirs))
        return top_id

    def compensate(self) -> None:
        """Undo every recorded step. Failures are logged, never raised."""
        if not (self.created_dirs or self.created_files or self.written_blobs):
            return
        self.log.warning(
            "[INTERNAL] Rolling back partial copy",
            extra={
                "created_dirs": len(self.created_dirs),
                "created_files": len(self.created_files),
                "written_blobs": len(self.written_blobs),
            },
        )
        try:
            with self.store.transaction():
                self.store.hard_delete_rows(list(reversed(self.created_dirs)), self.created_files)
        except TreeStoreException as e:
            self.log.error(
                "[INTERNAL] Copy compensation failed to delete rows",
                extra={"error": e.message, "dir_ids": self.created_dirs, "file_ids": self.created_files},
            )
            # Rows that still reference blobs must keep them.
            return
        for handle in self.written_blobs:
            self.content_store.discard(handle)


class DeleteSaga(_Saga):
    """Hard removal of a file or a directory subtree.

    0. Walk the subtree, checking for cancellation at every node. Nothing is
       changed yet, so cancelling here leaves the tree untouched.
    1. Mark every row of the subtree deleted in one transaction (hides it and
       releases its name claims).
    2. Remove the blobs one by one. Removing a missing blob succeeds, so a
       retry after a failure or a cancellation here picks up where the last
       attempt stopped.
    3. Delete all rows in one transaction, children before parents.
    """

    operation = "hard_remove"

    def collect(self, directory: Directory) -> Tuple[List[str], List[File]]:
        """Directory ids (children before parents) and files of the whole subtree.

        Soft-deleted descendants are included.
        """
        ordered: List[str] = []
        files: List[File] = []
        stack = [directory]
        while stack:
            current = stack.pop()
            self._checkpoint()
            ordered.append(current.id)
            child_dirs, child_files = self.store.list_children(current.id, include_deleted=True)
            for child in child_files:
                self._checkpoint()
                files.append(child)
            stack.extend(child_dirs)
        ordered.reverse()
        return ordered, files

    def run(self, entity) -> int:
        """Remove *entity* (File or Directory) and return the number of rows deleted."""
        if isinstance(entity, File):
            self._checkpoint()
            dir_ids, files = [], [entity]
        else:
            dir_ids, files = self.collect(entity)
        file_ids = [f.id for f in files]
        handles = [f.storage_handle for f in files]

        self._ensure_not_cancelled()
        with self.store.transaction():
            self.store.soft_delete(dir_ids, file_ids)

        for handle in handles:
            self._ensure_not_cancelled()
            try:
                self.content_store.remove(handle)
            except ContentStoreError as e:
                self.log.error(
                    "[INTERNAL] Blob removal failed; subtree left hidden for retry",
                    extra={"handle": handle, "visited_nodes": self.visited},
                )
                raise InternalError() from e

        with self.store.transaction():
            count = self.store.hard_delete_rows(dir_ids, file_ids)
        self.log.info(
            "Hard removal complete",
            extra={"rows_deleted": count, "blobs_removed": len(handles)},
        )
        return count
