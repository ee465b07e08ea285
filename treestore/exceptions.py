"""Error types raised by treestore components.

Every error carries a stable machine-readable code and the HTTP status the
API answers with; the exception handler renders them as
``{"error", "message", "details"}``.
"""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    # Caller errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # Auth
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Long-running tree operations
    CANCELLED = "CANCELLED"

    # Backend errors
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class TreeStoreException(Exception):
    """Base class for every error treestore reports to callers."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """JSON body for the error response."""
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(TreeStoreException):
    """Malformed identifier, name, path or request field."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class NotFoundError(TreeStoreException):
    """An identifier or path does not resolve to a stored entity."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            ErrorCode.NOT_FOUND,
            status_code=404,
            details=details
        )


class DirectoryNotFoundError(NotFoundError):
    """Directory not found in the metadata store."""

    def __init__(self, dir_id: str):
        super().__init__(f"Directory not found: {dir_id}", details={"dir_id": dir_id})


class FileEntryNotFoundError(NotFoundError):
    """File not found in the metadata store."""

    def __init__(self, file_id: str):
        super().__init__(f"File not found: {file_id}", details={"file_id": file_id})


class EntityNotFoundError(NotFoundError):
    """Neither a file nor a directory carries this id."""

    def __init__(self, entity_id: str):
        super().__init__(f"Entity not found: {entity_id}", details={"entity_id": entity_id})


class PathNotFoundError(NotFoundError):
    """A path segment does not resolve under the user's root."""

    def __init__(self, path: str, segment: str):
        super().__init__(
            f"Path not found: {path}",
            details={"path": path, "missing_segment": segment},
        )


class ConflictError(TreeStoreException):
    """A live entity with the same name already exists in the target directory."""

    def __init__(self, parent_id: str, name: str, message: Optional[str] = None):
        super().__init__(
            message or f"Name already exists in desired location: {name}",
            ErrorCode.CONFLICT,
            status_code=409,
            details={"parent_id": parent_id, "name": name}
        )


class AuthenticationError(TreeStoreException):
    """Request lacks valid authentication credentials."""

    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__(
            message,
            ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class ForbiddenError(TreeStoreException):
    """Authenticated user lacks permission for the requested action."""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(
            message,
            ErrorCode.FORBIDDEN,
            status_code=403,
        )


class OperationCancelledError(TreeStoreException):
    """A recursive operation was cancelled by the caller before it finished."""

    def __init__(self, operation: str, visited: int = 0):
        super().__init__(
            f"Operation cancelled: {operation}",
            ErrorCode.CANCELLED,
            status_code=499,
            details={"operation": operation, "visited_nodes": visited}
        )


class ContentStoreError(TreeStoreException):
    """Content store I/O failed."""

    def __init__(self, message: str, handle: Optional[str] = None):
        details = {"handle": handle} if handle else {}
        super().__init__(
            message,
            ErrorCode.STORAGE_ERROR,
            status_code=500,
            details=details
        )


class InternalError(TreeStoreException):
    """Metadata or content backend failure.

    The original exception is kept on ``__cause__`` for logging only; it is
    never rendered into the response body.
    """

    def __init__(self, message: str = "Oops! Something went wrong on our side"):
        super().__init__(
            message,
            ErrorCode.INTERNAL_ERROR,
            status_code=500,
        )
