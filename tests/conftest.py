"""Shared test fixtures for the treestore test suite.

Tests run against a throwaway SQLite database and a temporary content-store
root, both configured through the environment before any app import. Every
test gets freshly created tables.
"""

import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="treestore-tests-")

# Configure the app before any treestore import reads settings.
os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL", f"sqlite:///{os.path.join(_TMP, 'test.db')}"
)
os.environ["STORAGE_ROOT"] = os.path.join(_TMP, "blobs")
os.environ["ARCHIVE_DIR"] = os.path.join(_TMP, "archives")
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["LOG_FORMAT"] = "text"
os.environ["PATH_POLICY"] = "cascade"

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from treestore.database import Base, SessionLocal, engine, get_db, init_db
from treestore.main import app
from treestore.core.config import PathPolicy, settings
from treestore.core.token_factory import create_token
from treestore.services.entity_manager import EntityManager
from treestore.services.user_service import register_user
from treestore.storage import LocalContentStore, ZipArchiver


@pytest.fixture(autouse=True)
def _reset_schema():
    """Recreate all tables before each test for isolation."""
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def content_store(tmp_path) -> LocalContentStore:
    return LocalContentStore(str(tmp_path / "blobs"))


@pytest.fixture()
def archiver(content_store, tmp_path) -> ZipArchiver:
    return ZipArchiver(content_store, archive_dir=str(tmp_path / "archives"))


@pytest.fixture()
def manager(db, content_store, archiver) -> EntityManager:
    return EntityManager(db, content_store, archiver=archiver, path_policy=PathPolicy.CASCADE)


@pytest.fixture()
def alice(db):
    return register_user(db, "alice", "alice-password")


@pytest.fixture()
def bob(db):
    return register_user(db, "bob", "bob-password")


@pytest.fixture()
def client(db):
    """FastAPI TestClient with the DB dependency overridden to use the test session."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def root_id(manager: EntityManager, user) -> str:
    return manager.get_root_directory(user.user_id).directory.id


def blob_count(root) -> int:
    """Number of stored blobs under a content-store root."""
    return sum(1 for p in Path(root).rglob("*") if p.is_file())


def bearer(user) -> dict:
    token = create_token(user.user_id, user.username, settings.jwt_secret_key)
    return {"Authorization": f"Bearer {token}"}
