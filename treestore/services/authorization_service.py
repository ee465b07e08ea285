"""Authorization gate: role resolution plus a static policy table.

This is the one place where access rules are defined. Everything that
mutates or reveals an entity asks the gate first.

Design:
    - Roles: owner > editor > viewer > "" (no relationship)
    - Owner is derived from the entity's owner_id, never stored as a binding
    - Non-owners get the role of their RoleBinding on that exact resource
    - Root directories are owner-only regardless of bindings
    - Default deny: anything not in the table is refused
"""

import logging
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.logging_config import operation_logger
from ..exceptions import (
    DirectoryNotFoundError,
    FileEntryNotFoundError,
    ForbiddenError,
    InternalError,
)
from ..models import Directory, File
from ..repositories import MetadataStore


class Action(str, Enum):
    VIEW = "view"
    UPDATE = "update"
    COPY = "copy"
    REMOVE = "remove"
    UPLOAD_TO = "upload_to"


class ResourceType(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


class Role(str, Enum):
    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"
    NONE = ""


_FILE_OWNER = frozenset({Action.VIEW, Action.UPDATE, Action.COPY, Action.REMOVE})
_FILE_EDITOR = frozenset({Action.VIEW, Action.UPDATE, Action.COPY})
_READ_ONLY = frozenset({Action.VIEW, Action.COPY})

# (role, resource type) -> allowed actions.
POLICY: Dict[Tuple[Role, ResourceType], FrozenSet[Action]] = {
    (Role.OWNER, ResourceType.FILE): _FILE_OWNER,
    (Role.OWNER, ResourceType.DIRECTORY): _FILE_OWNER | {Action.UPLOAD_TO},
    (Role.EDITOR, ResourceType.FILE): _FILE_EDITOR,
    (Role.EDITOR, ResourceType.DIRECTORY): _FILE_EDITOR | {Action.UPLOAD_TO},
    (Role.VIEWER, ResourceType.FILE): _READ_ONLY,
    (Role.VIEWER, ResourceType.DIRECTORY): _READ_ONLY,
}


def is_allowed(role: Role, resource_type: ResourceType, action: Action) -> bool:
    """Policy lookup for a single action. Unknown combinations are denied."""
    return action in POLICY.get((role, resource_type), frozenset())


class AuthorizationGate:
    """Decides whether a caller may perform a set of actions on one resource.

    Public methods:
        resolve_role     -- caller's role on an already-loaded entity
        authorize        -- bool decision by resource id (loads the entity)
        require          -- raising variant of authorize
        check_entity     -- bool decision on an already-loaded entity
        require_entity   -- raising variant of check_entity

    The gate only reads. A missing resource raises NotFoundError and a store
    failure raises InternalError; neither is ever reported as a denial.
    """

    def __init__(self, db: Session, logger: Optional[logging.Logger] = None):
        self.db = db
        self.logger = logger or logging.getLogger(__name__)
        self.store = MetadataStore(db, self.logger)

    def resolve_role(self, caller_id: str, entity: Union[Directory, File]) -> Role:
        if entity.owner_id == caller_id:
            return Role.OWNER
        if isinstance(entity, Directory) and entity.is_root:
            # Roots are owner-only.
            return Role.NONE
        try:
            binding = self.store.resolve_role_binding(caller_id, entity.id)
        except SQLAlchemyError as e:
            self.logger.error("[INTERNAL] Role binding lookup failed: %s", e)
            raise InternalError() from e
        if binding is None:
            return Role.NONE
        try:
            return Role(binding.role)
        except ValueError:
            self.logger.warning(
                "[INTERNAL] Ignoring role binding with unknown role",
                extra={"user_id": caller_id, "resource_id": entity.id, "role": binding.role},
            )
            return Role.NONE

    def check_entity(
        self,
        caller_id: str,
        entity: Union[Directory, File],
        resource_type: ResourceType,
        *actions: Action,
    ) -> bool:
        role = self.resolve_role(caller_id, entity)
        for action in actions:
            if not is_allowed(role, resource_type, action):
                operation_logger(self.logger, "authorize").info(
                    "[USER] Access denied",
                    extra={
                        "user_id": caller_id,
                        "resource_id": entity.id,
                        "resource_type": resource_type.value,
                        "role": role.value,
                        "action": action.value,
                    },
                )
                return False
        return True

    def require_entity(
        self,
        caller_id: str,
        entity: Union[Directory, File],
        resource_type: ResourceType,
        *actions: Action,
    ) -> None:
        if not self.check_entity(caller_id, entity, resource_type, *actions):
            raise ForbiddenError()

    def authorize(
        self,
        caller_id: str,
        resource_id: str,
        resource_type: ResourceType,
        *actions: Action,
    ) -> bool:
        """Load *resource_id* and decide whether every action in *actions* is allowed.

        Evaluation stops at the first denied action.

        Raises:
            DirectoryNotFoundError / FileEntryNotFoundError: no such resource.
            InternalError: the metadata store failed.
        """
        entity = self._load(resource_id, resource_type)
        return self.check_entity(caller_id, entity, resource_type, *actions)

    def require(
        self,
        caller_id: str,
        resource_id: str,
        resource_type: ResourceType,
        *actions: Action,
    ) -> None:
        if not self.authorize(caller_id, resource_id, resource_type, *actions):
            raise ForbiddenError()

    def _load(self, resource_id: str, resource_type: ResourceType) -> Union[Directory, File]:
        try:
            if resource_type == ResourceType.DIRECTORY:
                entity = self.store.directories.get_by_id_optional(resource_id)
                if entity is None:
                    raise DirectoryNotFoundError(resource_id)
            else:
                entity = self.store.files.get_by_id_optional(resource_id)
                if entity is None:
                    raise FileEntryNotFoundError(resource_id)
        except SQLAlchemyError as e:
            self.logger.error("[INTERNAL] Resource lookup failed: %s", e)
            raise InternalError() from e
        return entity
