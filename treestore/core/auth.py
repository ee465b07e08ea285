"""Authentication dependencies for FastAPI routes.

Public interface:
    ``require_auth``: returns the caller's TokenClaims or raises 401.

The core never sees raw tokens or claim dictionaries: routes pass
``claims.user_id`` into the EntityManager.
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import settings
from .token_factory import TokenClaims, decode_token
from ..database import get_db
from ..exceptions import AuthenticationError

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    db: Session = Depends(get_db),
) -> TokenClaims:
    """Require a valid bearer token whose subject is an existing user."""
    from ..models import User

    if credentials is None:
        raise AuthenticationError("Missing authentication token")

    claims = decode_token(
        credentials.credentials, settings.jwt_secret_key, settings.jwt_algorithm
    )
    if claims is None:
        raise AuthenticationError("Invalid or expired token")

    if db.query(User.user_id).filter(User.user_id == claims.user_id).first() is None:
        logger.info("[USER] Token for unknown user", extra={"user_id": claims.user_id})
        raise AuthenticationError("User not found")

    return claims
