"""Metadata store facade.

Groups the per-model repositories behind one object bound to one Session and
owns the transaction boundary. Driver exceptions never leave this module
untranslated: a violated name claim becomes ConflictError, any other store
failure becomes InternalError with the driver text kept in the log only.
"""

import functools
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import ConflictError, InternalError
from ..models import Directory, File, RoleBinding
from .tree_repository import DirectoryRepository, FileRepository, NameClaimRepository
from .user_repository import UserRepository, RoleBindingRepository

Entity = Union[Directory, File]


class MetadataStore:
    """Durable rows for users, directories, files, name claims and role bindings.

    Public methods:
        transaction          -- context manager; commit on success, translate failures
        insert_directory     -- stage a directory row plus its name claim
        insert_file          -- stage a file row plus its name claim
        get_directory        -- directory by id (DirectoryNotFoundError)
        get_file             -- file by id (FileEntryNotFoundError)
        get_entity           -- (entity, type) by id, or None
        soft_delete          -- mark rows deleted and release their claims
        hard_delete_rows     -- delete file and directory rows, children first
        is_name_taken        -- live child named *name* under *parent_id*
        list_children        -- (directories, files) directly under a parent
        resolve_role_binding -- explicit grant for (user, resource), or None
    """

    def __init__(self, db: Session, logger: Optional[logging.Logger] = None):
        self.db = db
        self.logger = logger or logging.getLogger(__name__)
        self.directories = DirectoryRepository(db)
        self.files = FileRepository(db)
        self.name_claims = NameClaimRepository(db)
        self.users = UserRepository(db)
        self.role_bindings = RoleBindingRepository(db)

    @contextmanager
    def transaction(self, claim: Optional[Tuple[str, str]] = None) -> Iterator["MetadataStore"]:
        """Run a unit of work; commit on success, roll back on any failure.

        Args:
            claim: ``(parent_id, name)`` reserved inside this unit of work. An
                integrity violation is then reported as a conflict on that name.
        """
        try:
            yield self
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if claim is not None:
                self.logger.info(
                    "[USER] Name claim rejected by store",
                    extra={"parent_id": claim[0], "entity_name": claim[1]},
                )
                raise ConflictError(claim[0], claim[1]) from e
            self.logger.error("[INTERNAL] Integrity violation: %s", e.orig)
            raise InternalError() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.error("[INTERNAL] Metadata store failure: %s", e)
            raise InternalError() from e
        except Exception:
            self.db.rollback()
            raise

    # --- Inserts ---

    def insert_directory(self, directory: Directory) -> Directory:
        if directory.parent_id is not None:
            self.name_claims.claim(directory.parent_id, directory.name, directory.id, "directory")
        return self.directories.add(directory)

    def insert_file(self, file: File) -> File:
        self.name_claims.claim(file.parent_id, file.name, file.id, "file")
        return self.files.add(file)

    # --- Reads ---

    def get_directory(self, dir_id: str) -> Directory:
        return self.directories.get_by_id(dir_id)

    def get_file(self, file_id: str) -> File:
        return self.files.get_by_id(file_id)

    def get_entity(self, entity_id: str) -> Optional[Tuple[Entity, str]]:
        """Look an id up in both tables; ids are unique across them."""
        directory = self.directories.get_by_id_optional(entity_id)
        if directory is not None:
            return directory, "directory"
        file = self.files.get_by_id_optional(entity_id)
        if file is not None:
            return file, "file"
        return None

    def is_name_taken(self, parent_id: str, name: str) -> bool:
        return self.name_claims.is_taken(parent_id, name)

    def list_children(
        self, parent_id: str, include_deleted: bool = False
    ) -> Tuple[List[Directory], List[File]]:
        return (
            self.directories.list_children(parent_id, include_deleted),
            self.files.list_children(parent_id, include_deleted),
        )

    def resolve_role_binding(self, user_id: str, resource_id: str) -> Optional[RoleBinding]:
        return self.role_bindings.get(user_id, resource_id)

    # --- Deletes ---

    def soft_delete(self, dir_ids: List[str], file_ids: List[str]) -> None:
        """Hide rows and release their name claims. Rows stay addressable by id."""
        self.name_claims.release_many(list(dir_ids) + list(file_ids))
        self.directories.set_deleted(dir_ids)
        self.files.set_deleted(file_ids)

    def hard_delete_rows(self, dir_ids: List[str], file_ids: List[str]) -> int:
        """Delete rows. *dir_ids* must be ordered children before parents."""
        self.name_claims.release_many(list(dir_ids) + list(file_ids))
        count = self.files.delete_rows(file_ids)
        count += self.directories.delete_rows(dir_ids)
        return count


def translate_store_errors(method):
    """Turn stray driver errors raised by a service method into InternalError.

    Writes already go through ``MetadataStore.transaction``; this covers the
    reads in between.
    """

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.error(
                "[INTERNAL] Metadata store failure in %s: %s", method.__name__, e
            )
            raise InternalError() from e

    return wrapper
