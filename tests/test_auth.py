"""Tests for tokens, registration/login and the bearer-token dependency."""

from datetime import datetime, timezone

import pytest

from treestore.core.config import settings
from treestore.core.token_factory import TokenClaims, create_token, decode_token
from treestore.exceptions import AuthenticationError, ValidationError
from treestore.models import Directory
from treestore.services import user_service
from tests.conftest import bearer


class TestTokenFactory:

    def test_create_and_decode(self):
        token = create_token("user-1", "alice", "test-secret")
        claims = decode_token(token, "test-secret")
        assert isinstance(claims, TokenClaims)
        assert claims.user_id == "user-1"
        assert claims.username == "alice"
        assert claims.expires_at > datetime.now(timezone.utc)

    def test_default_lifetime_is_72_hours(self):
        token = create_token("user-1", "alice", "secret")
        claims = decode_token(token, "secret")
        remaining = claims.expires_at - datetime.now(timezone.utc)
        assert 71 * 3600 < remaining.total_seconds() <= 72 * 3600

    def test_wrong_secret_returns_none(self):
        token = create_token("user-1", "alice", "correct-secret")
        assert decode_token(token, "wrong-secret") is None

    def test_expired_token_returns_none(self):
        token = create_token("user-1", "alice", "secret", expires_hours=-1)
        assert decode_token(token, "secret") is None

    def test_malformed_token_returns_none(self):
        assert decode_token("not.a.token", "secret") is None
        assert decode_token("", "secret") is None

    def test_claims_are_immutable(self):
        claims = decode_token(create_token("user-1", "alice", "s"), "s")
        with pytest.raises(AttributeError):
            claims.user_id = "someone-else"


class TestUserService:

    def test_register_creates_root_directory(self, db):
        user = user_service.register_user(db, "carol", "carol-password")
        root = (
            db.query(Directory)
            .filter(Directory.owner_id == user.user_id, Directory.parent_id.is_(None))
            .one()
        )
        assert root.name == "root"
        assert root.path == "/"

    def test_password_is_hashed(self, db):
        user = user_service.register_user(db, "carol", "carol-password")
        assert user.password_hash != "carol-password"
        assert user.password_hash.startswith("$2")

    def test_duplicate_username_rejected(self, db):
        user_service.register_user(db, "carol", "carol-password")
        with pytest.raises(ValidationError):
            user_service.register_user(db, "carol", "other-password")

    def test_short_password_rejected(self, db):
        with pytest.raises(ValidationError):
            user_service.register_user(db, "carol", "short")

    def test_invalid_username_rejected(self, db):
        with pytest.raises(ValidationError):
            user_service.register_user(db, "a b", "carol-password")

    def test_authenticate(self, db):
        user = user_service.register_user(db, "carol", "carol-password")
        assert user_service.authenticate(db, "carol", "carol-password").user_id == user.user_id

    def test_authenticate_wrong_password(self, db):
        user_service.register_user(db, "carol", "carol-password")
        with pytest.raises(AuthenticationError):
            user_service.authenticate(db, "carol", "wrong-password")

    def test_authenticate_unknown_user(self, db):
        with pytest.raises(AuthenticationError):
            user_service.authenticate(db, "nobody", "whatever-password")


class TestAuthEndpoints:

    def test_register_login_me(self, client):
        resp = client.post("/api/auth/register", json={"username": "dave", "password": "dave-password"})
        assert resp.status_code == 201
        registered = resp.json()
        assert registered["root_directory_id"]

        resp = client.post("/api/auth/login", json={"username": "dave", "password": "dave-password"})
        assert resp.status_code == 200
        token = resp.json()["token"]

        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["user_id"] == registered["user_id"]

    def test_login_wrong_password_is_401(self, client, alice):
        resp = client.post("/api/auth/login", json={"username": "alice", "password": "nope-nope"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "UNAUTHORIZED"

    def test_missing_token_is_401(self, client):
        assert client.get("/api/directories/root").status_code == 401

    def test_garbage_token_is_401(self, client):
        resp = client.get("/api/directories/root", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401

    def test_token_for_unknown_user_is_401(self, client):
        token = create_token("00000000-0000-4000-8000-000000000000", "ghost", settings.jwt_secret_key)
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_valid_token(self, client, alice):
        resp = client.get("/api/auth/me", headers=bearer(alice))
        assert resp.status_code == 200
        assert resp.json()["username"] == "alice"
