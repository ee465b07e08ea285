"""Structural validation of identifiers, entity names and logical paths.

These checks run before authorization and before any store access, so a
malformed request never reaches the metadata or content stores.
"""

import re
import uuid
from typing import List

from ..exceptions import ValidationError

MAX_NAME_LENGTH = 255

_FORBIDDEN_NAME_CHARS = re.compile(r'[/\\:*?"<>|\x00-\x1f\x7f]')


def validate_uuid(value: str, field: str = "id") -> str:
    """Return *value* in canonical form if it is a UUID string."""
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} is required", field=field)
    try:
        parsed = uuid.UUID(value)
    except ValueError:
        raise ValidationError(f"{field} is not a valid identifier: {value}", field=field) from None
    return str(parsed)


def validate_name(name: str, field: str = "name") -> str:
    """Check an entity name against the naming rules and return it unchanged.

    Names are compared exactly (case-sensitive), so no normalization happens.
    """
    if not isinstance(name, str) or not name:
        raise ValidationError("Name must not be empty", field=field)
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"Name exceeds {MAX_NAME_LENGTH} characters", field=field
        )
    if name != name.strip():
        raise ValidationError("Name must not start or end with whitespace", field=field)
    if name in (".", ".."):
        raise ValidationError(f"'{name}' is not a valid name", field=field)
    if _FORBIDDEN_NAME_CHARS.search(name):
        raise ValidationError(
            'Name contains invalid characters (/ \\ : * ? " < > | or control characters)',
            field=field,
        )
    return name


def split_path(path: str) -> List[str]:
    """Split a logical path into validated segments.

    ``/`` (or an empty segment list) denotes the root. Repeated separators
    are collapsed; a leading slash is optional.
    """
    if not isinstance(path, str) or not path.strip():
        raise ValidationError("Path must not be empty", field="path")
    segments = [s for s in path.split("/") if s]
    for segment in segments:
        validate_name(segment, field="path")
    return segments


def join_path(parent_path: str, name: str) -> str:
    """Logical path of *name* inside a directory whose path is *parent_path*."""
    if parent_path.endswith("/"):
        return parent_path + name
    return f"{parent_path}/{name}"
