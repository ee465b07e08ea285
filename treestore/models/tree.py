"""Tree models: directories, files, and the shared child-name namespace.

Directories and files live in separate tables but share one namespace per
parent. That namespace is enforced by the store itself through NameClaim,
whose primary key is (parent_id, name): every live child of a directory holds
exactly one claim, soft-deleted children hold none.
"""

from sqlalchemy import (
    BigInteger, Boolean, Column, DateTime, ForeignKey, Index, String, Text,
)
from sqlalchemy.sql import func
from ..database import Base


ROOT_DIRECTORY_NAME = "root"
ROOT_DIRECTORY_PATH = "/"


class Directory(Base):
    """A directory in a user's tree. parent_id is NULL only for the user's root."""

    __tablename__ = "directories"
    __table_args__ = (
        Index("ix_directories_parent_id", "parent_id"),
        Index("ix_directories_owner_id", "owner_id"),
    )

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    path = Column(Text, nullable=False)
    parent_id = Column(String(36), ForeignKey("directories.id"), nullable=True)
    owner_id = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class File(Base):
    """A file's metadata. The bytes live in the content store under storage_handle."""

    __tablename__ = "files"
    __table_args__ = (
        Index("ix_files_parent_id", "parent_id"),
        Index("ix_files_owner_id", "owner_id"),
    )

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    mime_type = Column(String(255), nullable=False, default="application/octet-stream")
    path = Column(Text, nullable=False)
    size = Column(BigInteger, nullable=False, default=0)
    storage_handle = Column(String(255), unique=True, nullable=False)
    parent_id = Column(String(36), ForeignKey("directories.id"), nullable=False)
    owner_id = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class NameClaim(Base):
    """Reservation of a child name inside a directory.

    The composite primary key is the authoritative uniqueness constraint for
    the shared file/directory namespace. A violated insert means a concurrent
    writer won the name.
    """

    __tablename__ = "name_claims"
    __table_args__ = (
        Index("ix_name_claims_entity_id", "entity_id", unique=True),
    )

    parent_id = Column(
        String(36),
        ForeignKey("directories.id", ondelete="CASCADE"),
        primary_key=True,
    )
    name = Column(String(255), primary_key=True)
    entity_id = Column(String(36), nullable=False)
    entity_type = Column(String(20), nullable=False)
