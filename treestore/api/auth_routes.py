"""Authentication API endpoints.

Public endpoints:
    POST /api/auth/register : create account and its root directory
    POST /api/auth/login    : authenticate and receive a bearer token
    GET  /api/auth/me       : current user info
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..core.auth import require_auth
from ..core.config import settings
from ..core.token_factory import TokenClaims, create_token
from ..database import get_db
from ..exceptions import AuthenticationError
from ..models import User
from ..repositories import DirectoryRepository
from ..services import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


# --- Request/Response schemas ---


class RegisterRequest(BaseModel):
    username: str = Field(..., description="Login name (3-150 characters)")
    password: str = Field(..., min_length=8, description="Password (min 8 characters)")

    model_config = {
        "json_schema_extra": {
            "examples": [{"username": "alice", "password": "securepass"}]
        }
    }


class LoginRequest(BaseModel):
    username: str
    password: str


class UserResponse(BaseModel):
    user_id: str
    username: str
    root_directory_id: Optional[str] = None
    created_at: Optional[datetime] = None


class LoginResponse(BaseModel):
    token: str
    expires_at: datetime
    user: UserResponse


# --- Endpoints ---


def _user_response(db: Session, user: User) -> UserResponse:
    root = DirectoryRepository(db).get_root(user.user_id)
    return UserResponse(
        user_id=user.user_id,
        username=user.username,
        root_directory_id=root.id if root is not None else None,
        created_at=user.created_at,
    )


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=201,
    summary="Register a new user",
    description="Creates the account together with the user's root directory.",
)
def register_user(body: RegisterRequest, db: Session = Depends(get_db)):
    user = user_service.register_user(db, body.username, body.password)
    return _user_response(db, user)


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Authenticate and receive a bearer token",
)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    from ..core.token_factory import decode_token

    user = user_service.authenticate(db, body.username, body.password)
    token = create_token(
        user_id=user.user_id,
        username=user.username,
        secret=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expires_hours=settings.token_expires_hours,
    )
    claims = decode_token(token, settings.jwt_secret_key, settings.jwt_algorithm)
    return LoginResponse(
        token=token,
        expires_at=claims.expires_at,
        user=_user_response(db, user),
    )


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user info",
)
def get_me(claims: TokenClaims = Depends(require_auth), db: Session = Depends(get_db)):
    user = user_service.get_user_by_id(db, claims.user_id)
    if user is None:
        raise AuthenticationError("User not found")
    return _user_response(db, user)
