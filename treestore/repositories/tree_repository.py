"""Repositories for directories, files and the child-name namespace.

Soft-deleted rows stay addressable by id: get_by_id never filters on
is_deleted. Listings and searches only return live rows unless asked for
the full subtree.
"""

from typing import Iterable, List, Optional

from sqlalchemy import update

from ..models import Directory, File, NameClaim
from ..exceptions import DirectoryNotFoundError, FileEntryNotFoundError
from .base import BaseRepository


class DirectoryRepository(BaseRepository[Directory]):
    """Directory rows, including the per-user root."""

    model_class = Directory
    not_found_error = DirectoryNotFoundError

    def get_root(self, owner_id: str) -> Optional[Directory]:
        return (
            self.db.query(Directory)
            .filter(Directory.owner_id == owner_id, Directory.parent_id.is_(None))
            .first()
        )

    def list_children(self, parent_id: str, include_deleted: bool = False) -> List[Directory]:
        query = self.db.query(Directory).filter(Directory.parent_id == parent_id)
        if not include_deleted:
            query = query.filter(Directory.is_deleted.is_(False))
        return query.order_by(Directory.name).all()

    def get_live_child(self, parent_id: str, name: str) -> Optional[Directory]:
        return (
            self.db.query(Directory)
            .filter(
                Directory.parent_id == parent_id,
                Directory.name == name,
                Directory.is_deleted.is_(False),
            )
            .first()
        )

    def set_deleted(self, dir_ids: Iterable[str], deleted: bool = True) -> int:
        ids = list(dir_ids)
        if not ids:
            return 0
        result = self.db.execute(
            update(Directory)
            .where(Directory.id.in_(ids))
            .values(is_deleted=deleted)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def delete_rows(self, dir_ids: List[str]) -> int:
        """Delete directory rows in the given order (children before parents)."""
        count = 0
        for dir_id in dir_ids:
            directory = self.get_by_id_optional(dir_id)
            if directory is not None:
                self.db.delete(directory)
                # Flush per row so the parent FK never sees an orphan.
                self.db.flush()
                count += 1
        return count


class FileRepository(BaseRepository[File]):
    """File metadata rows."""

    model_class = File
    not_found_error = FileEntryNotFoundError

    def list_children(self, parent_id: str, include_deleted: bool = False) -> List[File]:
        query = self.db.query(File).filter(File.parent_id == parent_id)
        if not include_deleted:
            query = query.filter(File.is_deleted.is_(False))
        return query.order_by(File.name).all()

    def get_live_child(self, parent_id: str, name: str) -> Optional[File]:
        return (
            self.db.query(File)
            .filter(
                File.parent_id == parent_id,
                File.name == name,
                File.is_deleted.is_(False),
            )
            .first()
        )

    def set_deleted(self, file_ids: Iterable[str], deleted: bool = True) -> int:
        ids = list(file_ids)
        if not ids:
            return 0
        result = self.db.execute(
            update(File)
            .where(File.id.in_(ids))
            .values(is_deleted=deleted)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def delete_rows(self, file_ids: List[str]) -> int:
        if not file_ids:
            return 0
        count = (
            self.db.query(File)
            .filter(File.id.in_(file_ids))
            .delete(synchronize_session="fetch")
        )
        self.db.flush()
        return count


class NameClaimRepository:
    """Reservations of (parent_id, name) for live children.

    The composite primary key makes the store reject a second live child with
    the same name; callers translate the resulting IntegrityError into a
    conflict.
    """

    def __init__(self, db):
        self.db = db

    def is_taken(self, parent_id: str, name: str) -> bool:
        return (
            self.db.query(NameClaim.entity_id)
            .filter(NameClaim.parent_id == parent_id, NameClaim.name == name)
            .first()
        ) is not None

    def get_for_entity(self, entity_id: str) -> Optional[NameClaim]:
        return self.db.query(NameClaim).filter(NameClaim.entity_id == entity_id).first()

    def claim(self, parent_id: str, name: str, entity_id: str, entity_type: str) -> NameClaim:
        claim = NameClaim(
            parent_id=parent_id,
            name=name,
            entity_id=entity_id,
            entity_type=entity_type,
        )
        self.db.add(claim)
        self.db.flush()
        return claim

    def release(self, entity_id: str) -> bool:
        claim = self.get_for_entity(entity_id)
        if claim is None:
            return False
        self.db.delete(claim)
        self.db.flush()
        return True

    def release_many(self, entity_ids: List[str]) -> int:
        if not entity_ids:
            return 0
        count = (
            self.db.query(NameClaim)
            .filter(NameClaim.entity_id.in_(entity_ids))
            .delete(synchronize_session="fetch")
        )
        self.db.flush()
        return count

    def reclaim(self, entity_id: str, parent_id: str, name: str, entity_type: str) -> NameClaim:
        """Move an entity's claim to a new (parent_id, name)."""
        self.release(entity_id)
        return self.claim(parent_id, name, entity_id, entity_type)
