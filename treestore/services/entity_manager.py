"""Hierarchical entity manager: every operation on a user's tree of files and directories.

Every public method runs the same pipeline:

    1. structural validation (ids, names, paths)
    2. authorization through the AuthorizationGate, for the exact action set
    3. business rules (existence, name collisions, cycles, root protection)
    4. mutation through the metadata store and the content store
    5. compensation when a multi-step mutation fails part-way

The collision checks in step 3 are the friendly fast path only. The name
claim primary key in the metadata store has the final word; a late violation
surfaces as ConflictError from ``MetadataStore.transaction``.
"""

import io
import logging
import mimetypes
import os
import posixpath
import threading
import uuid
from dataclasses import dataclass
from typing import BinaryIO, Dict, Iterator, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from ..core.config import PathPolicy, settings
from ..core.logging_config import operation_logger
from ..core.validation import join_path, split_path, validate_name, validate_uuid
from ..exceptions import (
    ConflictError,
    ContentStoreError,
    EntityNotFoundError,
    InternalError,
    NotFoundError,
    PathNotFoundError,
    TreeStoreException,
    ValidationError,
)
from ..models import Directory, File
from ..repositories import MetadataStore, translate_store_errors
from ..schemas.entity import (
    DirectoryListing,
    DirectoryResponse,
    FileResponse,
    ResolvedPath,
    SearchResult,
)
from ..storage import ArchiveHandle, LocalContentStore, ZipArchiver
from .authorization_service import Action, AuthorizationGate, ResourceType
from .tree_saga import CopySaga, DeleteSaga

DEFAULT_MIME_TYPE = "application/octet-stream"

# Upper bound on parent hops when walking towards a root. Deeper chains
# only appear if parent pointers were corrupted into a loop.
MAX_TREE_DEPTH = 10_000

Entity = Union[Directory, File]


@dataclass
class FilePayload:
    """An open file download. The caller must consume or close ``stream``."""
    file_id: str
    name: str
    mime_type: str
    size: int
    stream: BinaryIO

    def iter_chunks(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        try:
            while True:
                chunk = self.stream.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.stream.close()


def guess_mime_type(name: str) -> str:
    mime_type, _ = mimetypes.guess_type(name, strict=False)
    return mime_type or DEFAULT_MIME_TYPE


def unique_archive_name(name: str, used: set, is_directory: bool = False) -> str:
    """Return *name*, or ``name (1).ext``, ``name (2).ext``... if already used."""
    if name not in used:
        used.add(name)
        return name
    stem, ext = (name, "") if is_directory else os.path.splitext(name)
    n = 1
    while f"{stem} ({n}){ext}" in used:
        n += 1
    candidate = f"{stem} ({n}){ext}"
    used.add(candidate)
    return candidate


class EntityManager:
    """All tree operations for authenticated callers.

    Public methods:
        get_root_directory -- caller's root with its live children
        get_directory      -- a directory with its live children
        get_file           -- file metadata
        create_directory   -- new empty directory under a parent
        create_file        -- new empty file under a parent
        upload_file        -- new file with content under a parent
        download_file      -- open stream over a file's content
        rename_entity      -- change a file or directory name in place
        move_entity        -- reparent a file or directory
        copy_entity        -- copy a file or a whole subtree
        soft_remove        -- hide an entity and free its name
        hard_remove        -- delete an entity (and subtree) with its content
        search_by_name     -- substring search below a directory
        resolve_path       -- logical path to entity
        download_bundle    -- zip archive of several entities
        download_directory -- zip archive of one directory's content
    """

    def __init__(
        self,
        db: Session,
        content_store: LocalContentStore,
        archiver: Optional[ZipArchiver] = None,
        path_policy: Optional[PathPolicy] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.db = db
        self.logger = logger or logging.getLogger(__name__)
        self.store = MetadataStore(db, self.logger)
        self.gate = AuthorizationGate(db, self.logger)
        self.content_store = content_store
        self.archiver = archiver or ZipArchiver(content_store, logger=self.logger)
        self.path_policy = PathPolicy(path_policy or settings.path_policy)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @translate_store_errors
    def get_root_directory(self, user_id: str) -> DirectoryListing:
        return self._listing(self._root_of(user_id))

    @translate_store_errors
    def get_directory(self, user_id: str, dir_id: str) -> DirectoryListing:
        dir_id = validate_uuid(dir_id, "dir_id")
        directory = self.store.get_directory(dir_id)
        self.gate.require_entity(user_id, directory, ResourceType.DIRECTORY, Action.VIEW)
        return self._listing(directory)

    @translate_store_errors
    def get_file(self, user_id: str, file_id: str) -> FileResponse:
        file_id = validate_uuid(file_id, "file_id")
        file = self.store.get_file(file_id)
        self.gate.require_entity(user_id, file, ResourceType.FILE, Action.VIEW)
        return FileResponse.model_validate(file)

    @translate_store_errors
    def download_file(self, user_id: str, file_id: str) -> FilePayload:
        file_id = validate_uuid(file_id, "file_id")
        file = self.store.get_file(file_id)
        self.gate.require_entity(user_id, file, ResourceType.FILE, Action.VIEW)
        try:
            stream = self.content_store.read(file.storage_handle)
        except ContentStoreError as e:
            raise InternalError() from e
        return FilePayload(
            file_id=file.id,
            name=file.name,
            mime_type=file.mime_type,
            size=file.size,
            stream=stream,
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @translate_store_errors
    def create_directory(self, user_id: str, name: str, parent_id: str) -> str:
        """Create an empty directory named *name* under *parent_id*.

        Raises:
            ValidationError: malformed name or id, or the parent is deleted.
            DirectoryNotFoundError: the parent does not exist.
            ForbiddenError: no ``upload_to`` on the parent.
            ConflictError: a live child of the parent already has that name.
        """
        name = validate_name(name)
        parent_id = validate_uuid(parent_id, "parent_id")
        log = operation_logger(
            self.logger, "create_directory",
            user_id=user_id, parent_id=parent_id, entity_name=name,
        )

        parent = self.store.get_directory(parent_id)
        self.gate.require_entity(user_id, parent, ResourceType.DIRECTORY, Action.UPLOAD_TO)
        self._ensure_live_destination(parent)
        self._ensure_name_free(parent.id, name)

        directory = Directory(
            id=str(uuid.uuid4()),
            name=name,
            path=join_path(parent.path, name),
            parent_id=parent.id,
            owner_id=parent.owner_id,
        )
        new_id = directory.id
        with self.store.transaction(claim=(parent.id, name)):
            self.store.insert_directory(directory)
        log.info("Directory created", extra={"dir_id": new_id})
        return new_id

    def create_file(self, user_id: str, name: str, parent_id: str) -> str:
        """Create an empty file. Same rules as upload_file."""
        return self.upload_file(user_id, name, parent_id, b"")

    @translate_store_errors
    def upload_file(
        self,
        user_id: str,
        name: str,
        parent_id: str,
        content: Union[bytes, BinaryIO],
        mime_type: Optional[str] = None,
    ) -> str:
        """Store *content* as a new file named *name* under *parent_id*.

        The blob is written before the metadata row. If the row cannot be
        inserted the blob is discarded again, so a failed upload leaves
        nothing behind in either store.
        """
        name = validate_name(name)
        parent_id = validate_uuid(parent_id, "parent_id")
        log = operation_logger(
            self.logger, "upload_file",
            user_id=user_id, parent_id=parent_id, entity_name=name,
        )

        parent = self.store.get_directory(parent_id)
        self.gate.require_entity(user_id, parent, ResourceType.DIRECTORY, Action.UPLOAD_TO)
        self._ensure_live_destination(parent)
        self._ensure_name_free(parent.id, name)

        file_id = str(uuid.uuid4())
        reader = io.BytesIO(content) if isinstance(content, (bytes, bytearray)) else content
        try:
            handle, size = self.content_store.save(file_id, reader)
        except ContentStoreError as e:
            raise InternalError() from e

        file = File(
            id=file_id,
            name=name,
            mime_type=mime_type or guess_mime_type(name),
            path=join_path(parent.path, name),
            size=size,
            storage_handle=handle,
            parent_id=parent.id,
            owner_id=parent.owner_id,
        )
        try:
            with self.store.transaction(claim=(parent.id, name)):
                self.store.insert_file(file)
        except TreeStoreException:
            log.warning("Metadata insert failed; discarding uploaded blob", extra={"handle": handle})
            self.content_store.discard(handle)
            raise

        log.info("File uploaded", extra={"file_id": file_id, "size": size})
        return file_id

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    @translate_store_errors
    def rename_entity(self, user_id: str, entity_id: str, new_name: str) -> None:
        """Rename a file or directory within its current parent.

        Renaming to the current name is a no-op.
        """
        entity_id = validate_uuid(entity_id, "entity_id")
        new_name = validate_name(new_name)
        log = operation_logger(
            self.logger, "rename_entity",
            user_id=user_id, entity_id=entity_id, new_name=new_name,
        )

        entity, resource_type = self._load_entity(entity_id)
        self.gate.require_entity(user_id, entity, resource_type, Action.UPDATE)
        self._ensure_not_root(entity, "renamed")
        self._ensure_not_deleted(entity)
        if entity.name == new_name:
            return
        self._ensure_name_free(entity.parent_id, new_name)

        old_name = entity.name
        with self.store.transaction(claim=(entity.parent_id, new_name)):
            self.store.name_claims.reclaim(entity.id, entity.parent_id, new_name, resource_type.value)
            entity.name = new_name
            entity.path = join_path(posixpath.dirname(entity.path) or "/", new_name)
            rewritten = self._cascade_paths(entity)
        log.info(
            "Entity renamed",
            extra={"old_name": old_name, "descendant_paths_rewritten": rewritten},
        )

    @translate_store_errors
    def move_entity(self, user_id: str, entity_id: str, new_parent_id: str) -> None:
        """Move a file or directory under *new_parent_id*, keeping its name.

        Requires ``copy`` and ``remove`` on the entity and ``upload_to`` on the
        destination. A directory cannot be moved into itself or its subtree.
        """
        entity_id = validate_uuid(entity_id, "entity_id")
        new_parent_id = validate_uuid(new_parent_id, "new_parent_id")
        log = operation_logger(
            self.logger, "move_entity",
            user_id=user_id, entity_id=entity_id, new_parent_id=new_parent_id,
        )

        entity, resource_type = self._load_entity(entity_id)
        destination = self.store.get_directory(new_parent_id)
        self.gate.require_entity(user_id, entity, resource_type, Action.COPY, Action.REMOVE)
        self.gate.require_entity(user_id, destination, ResourceType.DIRECTORY, Action.UPLOAD_TO)

        self._ensure_not_root(entity, "moved")
        self._ensure_not_deleted(entity)
        self._ensure_live_destination(destination)
        if entity.parent_id == destination.id:
            raise ValidationError(
                "Entity is already in the destination directory", field="new_parent_id"
            )
        if resource_type == ResourceType.DIRECTORY and self._is_within(destination, entity.id):
            raise ValidationError(
                "Cannot move a directory into itself or its own subtree", field="new_parent_id"
            )
        self._ensure_name_free(destination.id, entity.name)

        old_parent_id = entity.parent_id
        # Moved entities take the destination's owner.
        new_owner = destination.owner_id if entity.owner_id != destination.owner_id else None
        with self.store.transaction(claim=(destination.id, entity.name)):
            self.store.name_claims.reclaim(entity.id, destination.id, entity.name, resource_type.value)
            entity.parent_id = destination.id
            entity.path = join_path(destination.path, entity.name)
            if new_owner:
                entity.owner_id = new_owner
            rewritten = self._cascade_paths(entity, owner_id=new_owner)
        log.info(
            "Entity moved",
            extra={
                "old_parent_id": old_parent_id,
                "descendant_paths_rewritten": rewritten,
                "new_owner_id": new_owner,
            },
        )

    @translate_store_errors
    def copy_entity(
        self,
        user_id: str,
        entity_id: str,
        dst_parent_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """Copy a file, or a directory with its live subtree, under *dst_parent_id*.

        Copies get fresh ids and fresh blobs and belong to the destination's
        owner. A failure part-way through removes everything the copy created.
        """
        entity_id = validate_uuid(entity_id, "entity_id")
        dst_parent_id = validate_uuid(dst_parent_id, "dst_parent_id")
        log = operation_logger(
            self.logger, "copy_entity",
            user_id=user_id, entity_id=entity_id, dst_parent_id=dst_parent_id,
        )

        source, resource_type = self._load_entity(entity_id)
        destination = self.store.get_directory(dst_parent_id)
        self.gate.require_entity(user_id, source, resource_type, Action.COPY)
        self.gate.require_entity(user_id, destination, ResourceType.DIRECTORY, Action.UPLOAD_TO)

        self._ensure_not_root(source, "copied")
        self._ensure_not_deleted(source)
        self._ensure_live_destination(destination)
        if resource_type == ResourceType.DIRECTORY and self._is_within(destination, source.id):
            raise ValidationError(
                "Cannot copy a directory into itself or its own subtree", field="dst_parent_id"
            )
        self._ensure_name_free(destination.id, source.name)

        saga = CopySaga(
            self.store, self.content_store, log, cancel_event,
            owner_id=destination.owner_id,
        )
        new_id = saga.run(source, destination)
        log.info(
            "Entity copied",
            extra={
                "new_id": new_id,
                "dirs_created": len(saga.created_dirs),
                "files_created": len(saga.created_files),
            },
        )
        return new_id

    @translate_store_errors
    def soft_remove(self, user_id: str, entity_id: str) -> None:
        """Hide an entity and release its name. Content and id stay intact."""
        entity_id = validate_uuid(entity_id, "entity_id")
        log = operation_logger(self.logger, "soft_remove", user_id=user_id, entity_id=entity_id)

        entity, resource_type = self._load_entity(entity_id)
        self.gate.require_entity(user_id, entity, resource_type, Action.REMOVE)
        self._ensure_not_root(entity, "removed")
        if entity.is_deleted:
            return

        with self.store.transaction():
            if resource_type == ResourceType.DIRECTORY:
                self.store.soft_delete([entity.id], [])
            else:
                self.store.soft_delete([], [entity.id])
        log.info("Entity moved to trash", extra={"entity_type": resource_type.value})

    @translate_store_errors
    def hard_remove(
        self,
        user_id: str,
        entity_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Permanently delete an entity, its whole subtree and all their content.

        Returns the number of metadata rows deleted.
        """
        entity_id = validate_uuid(entity_id, "entity_id")
        log = operation_logger(self.logger, "hard_remove", user_id=user_id, entity_id=entity_id)

        entity, resource_type = self._load_entity(entity_id)
        self.gate.require_entity(user_id, entity, resource_type, Action.REMOVE)
        self._ensure_not_root(entity, "removed")

        return DeleteSaga(self.store, self.content_store, log, cancel_event).run(entity)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @translate_store_errors
    def search_by_name(self, user_id: str, query: str, scope_dir_id: str) -> SearchResult:
        """Case-sensitive substring match over the live descendants of a directory."""
        scope_dir_id = validate_uuid(scope_dir_id, "scope_dir_id")
        if not isinstance(query, str) or not query:
            raise ValidationError("Search query must not be empty", field="query")

        scope = self.store.get_directory(scope_dir_id)
        self.gate.require_entity(user_id, scope, ResourceType.DIRECTORY, Action.VIEW)

        directories: List[DirectoryResponse] = []
        files: List[FileResponse] = []
        stack = [scope]
        while stack:
            current = stack.pop()
            child_dirs, child_files = self.store.list_children(current.id)
            for child in child_dirs:
                if query in child.name:
                    directories.append(DirectoryResponse.model_validate(child))
                stack.append(child)
            for child in child_files:
                if query in child.name:
                    files.append(FileResponse.model_validate(child))

        return SearchResult(
            scope_id=scope.id,
            query=query,
            directories=sorted(directories, key=lambda d: d.path),
            files=sorted(files, key=lambda f: f.path),
        )

    @translate_store_errors
    def resolve_path(self, user_id: str, path: str) -> ResolvedPath:
        """Walk *path* name by name from the caller's root.

        Only the final entity is authorized; intermediate directories are
        traversed by name without a check.
        """
        segments = split_path(path)
        current: Entity = self._root_of(user_id)
        for segment in segments:
            if isinstance(current, File):
                raise PathNotFoundError(path, segment)
            child = self.store.directories.get_live_child(current.id, segment)
            if child is None:
                child = self.store.files.get_live_child(current.id, segment)
            if child is None:
                raise PathNotFoundError(path, segment)
            current = child

        if isinstance(current, File):
            self.gate.require_entity(user_id, current, ResourceType.FILE, Action.VIEW)
            return ResolvedPath(
                path="/" + "/".join(segments),
                entity_type=ResourceType.FILE.value,
                file=FileResponse.model_validate(current),
            )
        self.gate.require_entity(user_id, current, ResourceType.DIRECTORY, Action.VIEW)
        return ResolvedPath(
            path="/" + "/".join(segments),
            entity_type=ResourceType.DIRECTORY.value,
            directory=DirectoryResponse.model_validate(current),
        )

    # ------------------------------------------------------------------
    # Archives
    # ------------------------------------------------------------------

    @translate_store_errors
    def download_bundle(self, user_id: str, entity_ids: List[str]) -> ArchiveHandle:
        """Zip several files and directories into one single-use archive.

        Files sit at the archive root under their own name; directories
        contribute their live subtree under ``dirname/``. Clashing top-level
        names are disambiguated as ``name (1).ext``.
        """
        if not entity_ids:
            raise ValidationError("At least one id is required", field="ids")
        ids = [validate_uuid(entity_id, "ids") for entity_id in entity_ids]
        log = operation_logger(self.logger, "download_bundle", user_id=user_id, count=len(ids))

        entities: List[Tuple[Entity, ResourceType]] = []
        for entity_id in dict.fromkeys(ids):
            entity, resource_type = self._load_entity(entity_id)
            self.gate.require_entity(user_id, entity, resource_type, Action.VIEW)
            entities.append((entity, resource_type))

        mapping: Dict[str, Optional[str]] = {}
        used: set = set()
        for entity, resource_type in entities:
            if resource_type == ResourceType.FILE:
                mapping[unique_archive_name(entity.name, used)] = entity.storage_handle
            else:
                top = unique_archive_name(entity.name, used, is_directory=True)
                self._collect_archive_entries(entity, top + "/", mapping)

        handle = self._bundle(mapping, "download.zip")
        log.info("Bundle ready", extra={"entries": handle.entry_count, "size": handle.size})
        return handle

    @translate_store_errors
    def download_directory(self, user_id: str, dir_id: str) -> ArchiveHandle:
        """Zip the live content of one directory, paths relative to it."""
        dir_id = validate_uuid(dir_id, "dir_id")
        directory = self.store.get_directory(dir_id)
        self.gate.require_entity(user_id, directory, ResourceType.DIRECTORY, Action.VIEW)

        mapping: Dict[str, Optional[str]] = {}
        self._collect_archive_entries(directory, "", mapping)
        return self._bundle(mapping, f"{directory.name}.zip")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bundle(self, mapping: Dict[str, Optional[str]], filename: str) -> ArchiveHandle:
        try:
            return self.archiver.bundle(mapping, filename=filename)
        except ContentStoreError as e:
            raise InternalError() from e

    def _collect_archive_entries(
        self, directory: Directory, prefix: str, mapping: Dict[str, Optional[str]]
    ) -> None:
        """Add the live subtree of *directory* to *mapping* under *prefix*.

        Archive paths are built from names, never from stored paths.
        """
        stack: List[Tuple[Directory, str]] = [(directory, prefix)]
        while stack:
            current, current_prefix = stack.pop()
            child_dirs, child_files = self.store.list_children(current.id)
            if not child_dirs and not child_files and current_prefix:
                mapping[current_prefix] = None
            for child in child_files:
                mapping[current_prefix + child.name] = child.storage_handle
            for child in child_dirs:
                stack.append((child, f"{current_prefix}{child.name}/"))

    def _listing(self, directory: Directory) -> DirectoryListing:
        child_dirs, child_files = self.store.list_children(directory.id)
        return DirectoryListing(
            directory=DirectoryResponse.model_validate(directory),
            directories=[DirectoryResponse.model_validate(d) for d in child_dirs],
            files=[FileResponse.model_validate(f) for f in child_files],
        )

    def _root_of(self, user_id: str) -> Directory:
        root = self.store.directories.get_root(user_id)
        if root is None:
            raise NotFoundError("Root directory not found", details={"user_id": user_id})
        return root

    def _load_entity(self, entity_id: str) -> Tuple[Entity, ResourceType]:
        found = self.store.get_entity(entity_id)
        if found is None:
            raise EntityNotFoundError(entity_id)
        entity, entity_type = found
        return entity, ResourceType(entity_type)

    def _ensure_name_free(self, parent_id: str, name: str) -> None:
        if self.store.is_name_taken(parent_id, name):
            raise ConflictError(parent_id, name)

    @staticmethod
    def _ensure_not_root(entity: Entity, verb: str) -> None:
        if isinstance(entity, Directory) and entity.is_root:
            raise ValidationError(f"The root directory cannot be {verb}")

    @staticmethod
    def _ensure_not_deleted(entity: Entity) -> None:
        if entity.is_deleted:
            raise ValidationError(f"'{entity.name}' is in the trash")

    @staticmethod
    def _ensure_live_destination(directory: Directory) -> None:
        if directory.is_deleted:
            raise ValidationError(
                f"Directory '{directory.name}' is in the trash", field="parent_id"
            )

    def _is_within(self, directory: Directory, ancestor_id: str) -> bool:
        """True if *directory* is *ancestor_id* or lies anywhere below it."""
        current: Optional[Directory] = directory
        for _ in range(MAX_TREE_DEPTH):
            if current is None:
                return False
            if current.id == ancestor_id:
                return True
            if current.is_root:
                return False
            current = self.store.directories.get_by_id_optional(current.parent_id)
        raise InternalError("Directory hierarchy is deeper than supported")

    def _cascade_paths(self, entity: Entity, owner_id: Optional[str] = None) -> int:
        """Re-derive descendant paths from *entity*'s new path.

        Only under the cascade policy; with self_only the descendants keep
        their old, now stale, paths. With *owner_id* the whole subtree is
        handed to that owner in the same walk, whatever the policy. Runs
        inside the caller's transaction. Returns the number of paths rewritten.
        """
        cascade = self.path_policy == PathPolicy.CASCADE
        if not isinstance(entity, Directory) or not (cascade or owner_id):
            return 0
        count = 0
        stack = [entity]
        while stack:
            parent = stack.pop()
            child_dirs, child_files = self.store.list_children(parent.id, include_deleted=True)
            for child in child_files + child_dirs:
                if owner_id:
                    child.owner_id = owner_id
                if cascade:
                    child.path = join_path(parent.path, child.name)
                    count += 1
            stack.extend(child_dirs)
        self.db.flush()
        return count
