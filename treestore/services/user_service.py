"""User service: registration, login and lookup.

All password operations use bcrypt via passlib. Passwords are never stored
or logged in plaintext. Registering a user also creates the user's root
directory in the same transaction, so a user without a tree never exists.
"""

import logging
import re
import uuid
from typing import Optional

from passlib.hash import bcrypt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..exceptions import AuthenticationError, InternalError, ValidationError
from ..models import Directory, User, ROOT_DIRECTORY_NAME, ROOT_DIRECTORY_PATH

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
_USERNAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._\-]{2,149}$")


def register_user(db: Session, username: str, password: str) -> User:
    """Create a user account and its root directory.

    Raises ValidationError if the username is taken or inputs are invalid.
    """
    username = (username or "").strip()
    if not _USERNAME_RE.match(username):
        raise ValidationError(
            "Username must be 3-150 characters of letters, digits, '.', '_' or '-'",
            field="username",
        )
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password"
        )

    if db.query(User).filter(User.username == username).first() is not None:
        raise ValidationError("Username already registered", field="username")

    user_id = str(uuid.uuid4())
    user = User(
        user_id=user_id,
        username=username,
        password_hash=bcrypt.using(rounds=settings.password_hash_rounds).hash(password),
    )
    root = Directory(
        id=str(uuid.uuid4()),
        name=ROOT_DIRECTORY_NAME,
        path=ROOT_DIRECTORY_PATH,
        parent_id=None,
        owner_id=user_id,
    )
    db.add(user)
    try:
        # User row first so the root's owner FK resolves.
        db.flush()
        db.add(root)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.info("[USER] Registration lost a race for username: %s", username)
        raise ValidationError("Username already registered", field="username") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[INTERNAL] Registration failed: %s", e)
        raise InternalError() from e

    db.refresh(user)
    logger.info("User registered", extra={"user_id": user_id, "root_id": root.id})
    return user


def authenticate(db: Session, username: str, password: str) -> User:
    """Validate credentials and return the user.

    Raises AuthenticationError on unknown username or wrong password.
    """
    username = (username or "").strip()
    user = db.query(User).filter(User.username == username).first()

    if user is None or not bcrypt.verify(password or "", user.password_hash):
        logger.info("[USER] Failed login", extra={"username": username})
        raise AuthenticationError("Invalid username or password")

    return user


def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.user_id == user_id).first()
