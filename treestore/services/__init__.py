"""Business logic services."""

from .authorization_service import Action, AuthorizationGate, ResourceType, Role
from .entity_manager import EntityManager, FilePayload

__all__ = [
    "Action",
    "AuthorizationGate",
    "ResourceType",
    "Role",
    "EntityManager",
    "FilePayload",
]
