"""Repositories for users and role bindings."""

from typing import Optional

from ..models import User, RoleBinding
from ..exceptions import NotFoundError
from .base import BaseRepository


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__(f"User not found: {user_id}", details={"user_id": user_id})


class UserRepository(BaseRepository[User]):
    model_class = User
    id_column = "user_id"
    not_found_error = UserNotFoundError

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()


class RoleBindingRepository:
    """Read access to role bindings, plus grant for the sharing workflow."""

    def __init__(self, db):
        self.db = db

    def get(self, user_id: str, resource_id: str) -> Optional[RoleBinding]:
        return self.db.get(RoleBinding, (user_id, resource_id))

    def grant(
        self,
        user_id: str,
        resource_id: str,
        resource_type: str,
        role: str,
        granted_by: Optional[str] = None,
    ) -> RoleBinding:
        binding = self.get(user_id, resource_id)
        if binding is None:
            binding = RoleBinding(user_id=user_id, resource_id=resource_id)
            self.db.add(binding)
        binding.resource_type = resource_type
        binding.role = role
        binding.granted_by = granted_by
        self.db.flush()
        return binding
