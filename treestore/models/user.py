"""User and RoleBinding models.

Users authenticate with username/password and receive JWT tokens. Each user
owns exactly one root directory, created in the same transaction as the user.
RoleBindings grant a non-owner an editor or viewer role on one specific file
or directory. They are written by an external sharing workflow and only read
by the authorization gate.
"""

from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.sql import func
from ..database import Base


class User(Base):
    """User account. Ownership of entities is recorded on the entities themselves."""

    __tablename__ = "users"

    user_id = Column(String(36), primary_key=True)
    username = Column(String(150), unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class RoleBinding(Base):
    """Explicit grant of a role on one resource to one user.

    resource_type is 'file' or 'directory'; role is 'editor' or 'viewer'.
    Ownership is never stored here: it is derived from the entity's owner_id.
    """

    __tablename__ = "role_bindings"
    __table_args__ = (
        Index("ix_role_bindings_resource_id", "resource_id"),
    )

    user_id = Column(
        String(36),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    resource_id = Column(String(36), primary_key=True)
    resource_type = Column(String(20), nullable=False)
    role = Column(String(20), nullable=False, default="viewer")
    granted_by = Column(String(36), ForeignKey("users.user_id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
