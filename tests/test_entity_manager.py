"""Service-level tests for EntityManager: the tree operations end to end."""

import io
import uuid
import zipfile

import pytest

from treestore.core.config import PathPolicy
from treestore.exceptions import (
    ConflictError,
    DirectoryNotFoundError,
    EntityNotFoundError,
    FileEntryNotFoundError,
    ForbiddenError,
    PathNotFoundError,
    ValidationError,
)
from treestore.models import Directory, File, NameClaim
from treestore.repositories import RoleBindingRepository
from treestore.services.entity_manager import EntityManager, unique_archive_name
from tests.conftest import blob_count, root_id


def snapshot(manager: EntityManager, user_id: str, dir_id: str) -> dict:
    """Nested {name: size or subtree} view of a directory's live content."""
    listing = manager.get_directory(user_id, dir_id)
    tree = {f.name: f.size for f in listing.files}
    for d in listing.directories:
        tree[d.name + "/"] = snapshot(manager, user_id, d.id)
    return tree


def subtree_ids(manager: EntityManager, user_id: str, dir_id: str) -> set:
    listing = manager.get_directory(user_id, dir_id)
    ids = {dir_id} | {f.id for f in listing.files}
    for d in listing.directories:
        ids |= subtree_ids(manager, user_id, d.id)
    return ids


@pytest.fixture()
def root(manager, alice) -> str:
    return root_id(manager, alice)


@pytest.fixture()
def tree(manager, alice, root) -> dict:
    """docs/{a.txt, sub/{b.txt, c.bin}, empty/} under alice's root."""
    uid = alice.user_id
    docs = manager.create_directory(uid, "docs", root)
    a = manager.upload_file(uid, "a.txt", docs, b"alpha")
    sub = manager.create_directory(uid, "sub", docs)
    b = manager.upload_file(uid, "b.txt", sub, b"bravo!")
    c = manager.upload_file(uid, "c.bin", sub, b"\x00\x01\x02")
    empty = manager.create_directory(uid, "empty", docs)
    return {"docs": docs, "a": a, "sub": sub, "b": b, "c": c, "empty": empty}


class TestReads:

    def test_root_directory(self, manager, alice):
        listing = manager.get_root_directory(alice.user_id)
        assert listing.directory.name == "root"
        assert listing.directory.path == "/"
        assert listing.directory.parent_id is None
        assert listing.directories == [] and listing.files == []

    def test_each_user_has_own_root(self, manager, alice, bob):
        assert root_id(manager, alice) != root_id(manager, bob)

    def test_only_root_is_root(self, db, manager, alice, tree):
        assert db.get(Directory, root_id(manager, alice)).is_root
        assert not db.get(Directory, tree["docs"]).is_root

    def test_listing_shows_live_children_only(self, manager, alice, tree):
        manager.soft_remove(alice.user_id, tree["a"])
        listing = manager.get_directory(alice.user_id, tree["docs"])
        assert [d.name for d in listing.directories] == ["empty", "sub"]
        assert listing.files == []

    def test_get_file(self, manager, alice, tree):
        file = manager.get_file(alice.user_id, tree["a"])
        assert file.name == "a.txt"
        assert file.size == 5
        assert file.mime_type == "text/plain"
        assert file.path == "/docs/a.txt"

    def test_get_missing_directory(self, manager, alice):
        with pytest.raises(DirectoryNotFoundError):
            manager.get_directory(alice.user_id, str(uuid.uuid4()))

    def test_get_missing_file(self, manager, alice):
        with pytest.raises(FileEntryNotFoundError):
            manager.get_file(alice.user_id, str(uuid.uuid4()))

    def test_malformed_id_is_validation_error(self, manager, alice):
        with pytest.raises(ValidationError):
            manager.get_directory(alice.user_id, "not-a-uuid")


class TestCreate:

    def test_create_directory(self, manager, alice, root):
        dir_id = manager.create_directory(alice.user_id, "docs", root)
        listing = manager.get_directory(alice.user_id, dir_id)
        assert listing.directory.name == "docs"
        assert listing.directory.path == "/docs"
        assert listing.directory.parent_id == root
        assert listing.directory.owner_id == alice.user_id

    def test_nested_path(self, manager, alice, tree):
        listing = manager.get_directory(alice.user_id, tree["sub"])
        assert listing.directory.path == "/docs/sub"

    def test_duplicate_directory_name_conflicts(self, manager, alice, root):
        manager.create_directory(alice.user_id, "docs", root)
        with pytest.raises(ConflictError):
            manager.create_directory(alice.user_id, "docs", root)

    def test_names_are_case_sensitive(self, manager, alice, root):
        manager.create_directory(alice.user_id, "docs", root)
        manager.create_directory(alice.user_id, "Docs", root)

    def test_files_and_directories_share_namespace(self, manager, alice, root):
        manager.create_file(alice.user_id, "notes", root)
        with pytest.raises(ConflictError):
            manager.create_directory(alice.user_id, "notes", root)
        with pytest.raises(ConflictError):
            manager.upload_file(alice.user_id, "notes", root, b"x")

    def test_same_name_in_different_parents(self, manager, alice, tree):
        manager.create_file(alice.user_id, "a.txt", tree["sub"])

    def test_invalid_name(self, manager, alice, root):
        with pytest.raises(ValidationError):
            manager.create_directory(alice.user_id, "a/b", root)

    def test_missing_parent(self, manager, alice):
        with pytest.raises(DirectoryNotFoundError):
            manager.create_directory(alice.user_id, "docs", str(uuid.uuid4()))

    def test_parent_in_trash(self, manager, alice, tree):
        manager.soft_remove(alice.user_id, tree["sub"])
        with pytest.raises(ValidationError):
            manager.create_directory(alice.user_id, "new", tree["sub"])

    def test_store_constraint_is_authoritative(self, manager, alice, root, monkeypatch):
        manager.create_directory(alice.user_id, "docs", root)
        # Simulate a concurrent writer that slipped past the pre-check.
        monkeypatch.setattr(manager.store, "is_name_taken", lambda parent_id, name: False)
        with pytest.raises(ConflictError):
            manager.create_directory(alice.user_id, "docs", root)
        assert len(manager.get_directory(alice.user_id, root).directories) == 1


class TestUploadDownload:

    def test_round_trip(self, manager, alice, root):
        payload_bytes = bytes(range(256)) * 1000
        file_id = manager.upload_file(alice.user_id, "data.bin", root, payload_bytes)
        payload = manager.download_file(alice.user_id, file_id)
        assert payload.name == "data.bin"
        assert payload.size == len(payload_bytes)
        assert b"".join(payload.iter_chunks(4096)) == payload_bytes

    def test_stream_upload(self, manager, alice, root):
        file_id = manager.upload_file(alice.user_id, "s.txt", root, io.BytesIO(b"streamed"))
        assert manager.get_file(alice.user_id, file_id).size == 8

    def test_mime_type_guessed_from_name(self, manager, alice, root):
        file_id = manager.upload_file(alice.user_id, "page.html", root, b"<p/>")
        assert manager.get_file(alice.user_id, file_id).mime_type == "text/html"

    def test_unknown_extension_is_octet_stream(self, manager, alice, root):
        file_id = manager.upload_file(alice.user_id, "blob.zzqx", root, b"?")
        assert manager.get_file(alice.user_id, file_id).mime_type == "application/octet-stream"

    def test_explicit_mime_type_wins(self, manager, alice, root):
        file_id = manager.upload_file(alice.user_id, "a.txt", root, b"{}", mime_type="application/json")
        assert manager.get_file(alice.user_id, file_id).mime_type == "application/json"

    def test_create_file_is_empty(self, manager, alice, root):
        file_id = manager.create_file(alice.user_id, "empty.txt", root)
        assert manager.get_file(alice.user_id, file_id).size == 0
        assert b"".join(manager.download_file(alice.user_id, file_id).iter_chunks()) == b""

    def test_failed_insert_discards_blob(self, manager, alice, root, content_store, monkeypatch):
        manager.upload_file(alice.user_id, "a.txt", root, b"first")
        before = blob_count(content_store.root)
        monkeypatch.setattr(manager.store, "is_name_taken", lambda parent_id, name: False)
        with pytest.raises(ConflictError):
            manager.upload_file(alice.user_id, "a.txt", root, b"second")
        assert blob_count(content_store.root) == before


class TestRename:

    def test_rename_file(self, manager, alice, tree):
        manager.rename_entity(alice.user_id, tree["a"], "alpha.txt")
        file = manager.get_file(alice.user_id, tree["a"])
        assert file.name == "alpha.txt"
        assert file.path == "/docs/alpha.txt"

    def test_rename_frees_old_name(self, manager, alice, tree):
        manager.rename_entity(alice.user_id, tree["a"], "alpha.txt")
        manager.create_file(alice.user_id, "a.txt", tree["docs"])

    def test_rename_to_same_name_is_noop(self, manager, alice, tree):
        manager.rename_entity(alice.user_id, tree["a"], "a.txt")
        assert manager.get_file(alice.user_id, tree["a"]).name == "a.txt"

    def test_rename_collision(self, manager, alice, tree):
        with pytest.raises(ConflictError):
            manager.rename_entity(alice.user_id, tree["a"], "sub")

    def test_rename_root_rejected(self, manager, alice, root):
        with pytest.raises(ValidationError):
            manager.rename_entity(alice.user_id, root, "home")

    def test_rename_missing(self, manager, alice):
        with pytest.raises(EntityNotFoundError):
            manager.rename_entity(alice.user_id, str(uuid.uuid4()), "x")


class TestMove:

    def test_move_file(self, manager, alice, tree):
        manager.move_entity(alice.user_id, tree["a"], tree["empty"])
        file = manager.get_file(alice.user_id, tree["a"])
        assert file.parent_id == tree["empty"]
        assert file.path == "/docs/empty/a.txt"
        assert [f.name for f in manager.get_directory(alice.user_id, tree["empty"]).files] == ["a.txt"]

    def test_move_directory_moves_subtree(self, manager, alice, root, tree):
        manager.move_entity(alice.user_id, tree["sub"], root)
        assert manager.get_directory(alice.user_id, tree["sub"]).directory.path == "/sub"
        assert manager.get_file(alice.user_id, tree["b"]).path == "/sub/b.txt"

    def test_move_into_itself_rejected(self, manager, alice, tree):
        with pytest.raises(ValidationError):
            manager.move_entity(alice.user_id, tree["docs"], tree["docs"])

    def test_move_into_own_subtree_rejected(self, manager, alice, tree):
        with pytest.raises(ValidationError):
            manager.move_entity(alice.user_id, tree["docs"], tree["sub"])

    def test_move_to_current_parent_rejected(self, manager, alice, tree):
        with pytest.raises(ValidationError):
            manager.move_entity(alice.user_id, tree["a"], tree["docs"])

    def test_move_collision(self, manager, alice, tree):
        manager.create_file(alice.user_id, "b.txt", tree["docs"])
        with pytest.raises(ConflictError):
            manager.move_entity(alice.user_id, tree["b"], tree["docs"])

    def test_move_root_rejected(self, manager, alice, root, tree):
        with pytest.raises(ValidationError):
            manager.move_entity(alice.user_id, root, tree["docs"])

    def test_move_to_missing_destination(self, manager, alice, tree):
        with pytest.raises(DirectoryNotFoundError):
            manager.move_entity(alice.user_id, tree["a"], str(uuid.uuid4()))


class TestPathPolicy:

    def test_cascade_rewrites_descendant_paths(self, manager, alice, tree):
        manager.rename_entity(alice.user_id, tree["docs"], "papers")
        assert manager.get_directory(alice.user_id, tree["sub"]).directory.path == "/papers/sub"
        assert manager.get_file(alice.user_id, tree["b"]).path == "/papers/sub/b.txt"

    def test_self_only_leaves_descendants(self, db, content_store, archiver, alice, tree):
        legacy = EntityManager(db, content_store, archiver=archiver, path_policy=PathPolicy.SELF_ONLY)
        legacy.rename_entity(alice.user_id, tree["docs"], "papers")
        assert legacy.get_directory(alice.user_id, tree["docs"]).directory.path == "/papers"
        assert legacy.get_file(alice.user_id, tree["b"]).path == "/docs/sub/b.txt"

    def test_resolution_ignores_stale_paths(self, db, content_store, archiver, alice, tree):
        legacy = EntityManager(db, content_store, archiver=archiver, path_policy=PathPolicy.SELF_ONLY)
        legacy.rename_entity(alice.user_id, tree["docs"], "papers")
        resolved = legacy.resolve_path(alice.user_id, "/papers/sub/b.txt")
        assert resolved.file.id == tree["b"]


class TestCopy:

    def test_copy_file(self, manager, alice, tree):
        new_id = manager.copy_entity(alice.user_id, tree["a"], tree["empty"])
        assert new_id != tree["a"]
        copy = manager.download_file(alice.user_id, new_id)
        assert copy.name == "a.txt"
        assert b"".join(copy.iter_chunks()) == b"alpha"

    def test_copy_file_collision_keeps_no_blob(self, manager, alice, tree, content_store):
        before = blob_count(content_store.root)
        with pytest.raises(ConflictError):
            manager.copy_entity(alice.user_id, tree["b"], tree["sub"])
        assert blob_count(content_store.root) == before

    def test_copy_directory_is_isomorphic(self, manager, alice, root, tree):
        target = manager.create_directory(alice.user_id, "backup", root)
        new_id = manager.copy_entity(alice.user_id, tree["docs"], target)
        assert snapshot(manager, alice.user_id, new_id) == snapshot(manager, alice.user_id, tree["docs"])
        assert not subtree_ids(manager, alice.user_id, new_id) & subtree_ids(manager, alice.user_id, tree["docs"])
        assert manager.get_directory(alice.user_id, new_id).directory.path == "/backup/docs"

    def test_copy_shares_no_blobs(self, db, manager, alice, root, tree):
        target = manager.create_directory(alice.user_id, "backup", root)
        manager.copy_entity(alice.user_id, tree["docs"], target)
        handles = [f.storage_handle for f in db.query(File).all()]
        assert len(handles) == len(set(handles)) == 6

    def test_copy_skips_trashed_descendants(self, manager, alice, root, tree):
        manager.soft_remove(alice.user_id, tree["b"])
        target = manager.create_directory(alice.user_id, "backup", root)
        new_id = manager.copy_entity(alice.user_id, tree["docs"], target)
        assert snapshot(manager, alice.user_id, new_id)["sub/"] == {"c.bin": 3}

    def test_copy_into_own_subtree_rejected(self, manager, alice, tree):
        with pytest.raises(ValidationError):
            manager.copy_entity(alice.user_id, tree["docs"], tree["sub"])
        with pytest.raises(ValidationError):
            manager.copy_entity(alice.user_id, tree["docs"], tree["docs"])

    def test_copy_root_rejected(self, manager, alice, root, tree):
        with pytest.raises(ValidationError):
            manager.copy_entity(alice.user_id, root, tree["docs"])


class TestRemove:

    def test_soft_remove_hides_and_frees_name(self, manager, alice, tree):
        manager.soft_remove(alice.user_id, tree["a"])
        file = manager.get_file(alice.user_id, tree["a"])
        assert file.is_deleted
        manager.create_file(alice.user_id, "a.txt", tree["docs"])

    def test_soft_remove_keeps_content(self, manager, alice, tree):
        manager.soft_remove(alice.user_id, tree["a"])
        assert b"".join(manager.download_file(alice.user_id, tree["a"]).iter_chunks()) == b"alpha"

    def test_soft_remove_twice_is_noop(self, manager, alice, tree):
        manager.soft_remove(alice.user_id, tree["a"])
        manager.soft_remove(alice.user_id, tree["a"])

    def test_soft_remove_root_rejected(self, manager, alice, root):
        with pytest.raises(ValidationError):
            manager.soft_remove(alice.user_id, root)

    def test_hard_remove_file(self, manager, alice, tree, content_store):
        before = blob_count(content_store.root)
        assert manager.hard_remove(alice.user_id, tree["a"]) == 1
        assert blob_count(content_store.root) == before - 1
        with pytest.raises(FileEntryNotFoundError):
            manager.get_file(alice.user_id, tree["a"])

    def test_hard_remove_cascades(self, db, manager, alice, root, tree, content_store):
        # 3 directories (docs, sub, empty) + 3 files
        assert manager.hard_remove(alice.user_id, tree["docs"]) == 6
        assert blob_count(content_store.root) == 0
        for key in ("docs", "sub", "empty"):
            with pytest.raises(DirectoryNotFoundError):
                manager.get_directory(alice.user_id, tree[key])
        for key in ("a", "b", "c"):
            with pytest.raises(FileEntryNotFoundError):
                manager.get_file(alice.user_id, tree[key])
        assert db.query(NameClaim).count() == 0
        assert db.query(Directory).count() == 1  # only the root is left

    def test_hard_remove_includes_trashed_descendants(self, manager, alice, tree, content_store):
        manager.soft_remove(alice.user_id, tree["b"])
        assert manager.hard_remove(alice.user_id, tree["docs"]) == 6
        assert blob_count(content_store.root) == 0

    def test_hard_remove_frees_name(self, manager, alice, root, tree):
        manager.hard_remove(alice.user_id, tree["docs"])
        manager.create_directory(alice.user_id, "docs", root)

    def test_hard_remove_root_rejected(self, manager, alice, root):
        with pytest.raises(ValidationError):
            manager.hard_remove(alice.user_id, root)


class TestSearchAndResolve:

    def test_search_substring(self, manager, alice, root, tree):
        result = manager.search_by_name(alice.user_id, ".txt", root)
        assert sorted(f.name for f in result.files) == ["a.txt", "b.txt"]
        assert result.directories == []

    def test_search_matches_directories(self, manager, alice, root, tree):
        result = manager.search_by_name(alice.user_id, "u", root)
        assert [d.name for d in result.directories] == ["sub"]

    def test_search_is_case_sensitive(self, manager, alice, root, tree):
        assert manager.search_by_name(alice.user_id, "A.TXT", root).files == []

    def test_search_scoped(self, manager, alice, tree):
        result = manager.search_by_name(alice.user_id, ".txt", tree["sub"])
        assert [f.name for f in result.files] == ["b.txt"]

    def test_search_skips_trash(self, manager, alice, root, tree):
        manager.soft_remove(alice.user_id, tree["sub"])
        result = manager.search_by_name(alice.user_id, ".txt", root)
        assert [f.name for f in result.files] == ["a.txt"]

    def test_empty_query_rejected(self, manager, alice, root):
        with pytest.raises(ValidationError):
            manager.search_by_name(alice.user_id, "", root)

    def test_resolve_root(self, manager, alice, root):
        resolved = manager.resolve_path(alice.user_id, "/")
        assert resolved.entity_type == "directory"
        assert resolved.directory.id == root

    def test_resolve_file(self, manager, alice, tree):
        resolved = manager.resolve_path(alice.user_id, "/docs/sub/b.txt")
        assert resolved.entity_type == "file"
        assert resolved.file.id == tree["b"]

    def test_resolve_missing_segment(self, manager, alice, tree):
        with pytest.raises(PathNotFoundError) as exc:
            manager.resolve_path(alice.user_id, "/docs/nope/b.txt")
        assert exc.value.details["missing_segment"] == "nope"

    def test_resolve_through_file_fails(self, manager, alice, tree):
        with pytest.raises(PathNotFoundError):
            manager.resolve_path(alice.user_id, "/docs/a.txt/more")

    def test_resolve_is_per_user(self, manager, alice, bob, tree):
        with pytest.raises(PathNotFoundError):
            manager.resolve_path(bob.user_id, "/docs")


class TestArchives:

    def _names(self, archive) -> dict:
        with zipfile.ZipFile(io.BytesIO(archive.read())) as zf:
            return {name: zf.read(name) for name in zf.namelist()}

    def test_download_directory(self, manager, alice, tree):
        entries = self._names(manager.download_directory(alice.user_id, tree["docs"]))
        assert entries == {
            "a.txt": b"alpha",
            "sub/b.txt": b"bravo!",
            "sub/c.bin": b"\x00\x01\x02",
            "empty/": b"",
        }

    def test_download_bundle(self, manager, alice, tree):
        archive = manager.download_bundle(alice.user_id, [tree["a"], tree["sub"]])
        assert set(self._names(archive)) == {"a.txt", "sub/b.txt", "sub/c.bin"}

    def test_bundle_disambiguates_names(self, manager, alice, root, tree):
        other = manager.upload_file(alice.user_id, "a.txt", tree["sub"], b"other")
        archive = manager.download_bundle(alice.user_id, [tree["a"], other])
        entries = self._names(archive)
        assert entries == {"a.txt": b"alpha", "a (1).txt": b"other"}

    def test_bundle_requires_ids(self, manager, alice):
        with pytest.raises(ValidationError):
            manager.download_bundle(alice.user_id, [])

    def test_unique_archive_name(self):
        used = set()
        assert unique_archive_name("a.txt", used) == "a.txt"
        assert unique_archive_name("a.txt", used) == "a (1).txt"
        assert unique_archive_name("a.txt", used) == "a (2).txt"
        assert unique_archive_name("v1.2", used, is_directory=True) == "v1.2"
        assert unique_archive_name("v1.2", used, is_directory=True) == "v1.2 (1)"


class TestScenario:

    def test_collision_scenario(self, manager, alice, root):
        uid = alice.user_id
        docs = manager.create_directory(uid, "docs", root)
        with pytest.raises(ConflictError):
            manager.create_directory(uid, "docs", root)
        file_id = manager.upload_file(uid, "a.txt", docs, b"hello")
        manager.rename_entity(uid, file_id, "b.txt")
        with pytest.raises(ConflictError):
            manager.create_directory(uid, "b.txt", docs)


class TestStrangerAccess:
    """A user with no relationship to a resource is refused everywhere."""

    def test_stranger_is_forbidden(self, manager, alice, bob, root, tree):
        bob_root = root_id(manager, bob)
        stranger = bob.user_id
        calls = [
            lambda: manager.get_directory(stranger, tree["docs"]),
            lambda: manager.get_directory(stranger, root),
            lambda: manager.get_file(stranger, tree["a"]),
            lambda: manager.download_file(stranger, tree["a"]),
            lambda: manager.create_directory(stranger, "x", tree["docs"]),
            lambda: manager.upload_file(stranger, "x", tree["docs"], b"x"),
            lambda: manager.create_file(stranger, "x", root),
            lambda: manager.rename_entity(stranger, tree["a"], "x"),
            lambda: manager.move_entity(stranger, tree["a"], bob_root),
            lambda: manager.copy_entity(stranger, tree["a"], bob_root),
            lambda: manager.soft_remove(stranger, tree["a"]),
            lambda: manager.hard_remove(stranger, tree["docs"]),
            lambda: manager.search_by_name(stranger, "a", tree["docs"]),
            lambda: manager.download_bundle(stranger, [tree["a"]]),
            lambda: manager.download_directory(stranger, tree["docs"]),
        ]
        for call in calls:
            with pytest.raises(ForbiddenError):
                call()
        # Nothing changed for the owner.
        assert manager.get_file(alice.user_id, tree["a"]).name == "a.txt"

    def test_cannot_move_into_strangers_directory(self, manager, alice, bob, tree):
        own = manager.create_file(bob.user_id, "mine.txt", root_id(manager, bob))
        with pytest.raises(ForbiddenError):
            manager.move_entity(bob.user_id, own, tree["docs"])


class TestSharedAccess:

    def test_viewer_can_read_and_copy_out(self, db, manager, alice, bob, tree):
        RoleBindingRepository(db).grant(bob.user_id, tree["a"], "file", "viewer", alice.user_id)
        db.commit()
        assert manager.get_file(bob.user_id, tree["a"]).name == "a.txt"
        copy_id = manager.copy_entity(bob.user_id, tree["a"], root_id(manager, bob))
        assert manager.get_file(bob.user_id, copy_id).owner_id == bob.user_id
        with pytest.raises(ForbiddenError):
            manager.rename_entity(bob.user_id, tree["a"], "x.txt")

    def test_viewer_cannot_move(self, db, manager, alice, bob, tree):
        RoleBindingRepository(db).grant(bob.user_id, tree["a"], "file", "viewer", alice.user_id)
        db.commit()
        with pytest.raises(ForbiddenError):
            manager.move_entity(bob.user_id, tree["a"], root_id(manager, bob))

    def test_editor_can_upload_and_rename_but_not_remove(self, db, manager, alice, bob, tree):
        RoleBindingRepository(db).grant(bob.user_id, tree["docs"], "directory", "editor", alice.user_id)
        db.commit()
        new_id = manager.upload_file(bob.user_id, "from-bob.txt", tree["docs"], b"hi")
        # Entities created in a tree belong to the tree's owner.
        assert manager.get_file(alice.user_id, new_id).owner_id == alice.user_id
        manager.rename_entity(bob.user_id, tree["docs"], "documents")
        with pytest.raises(ForbiddenError):
            manager.soft_remove(bob.user_id, tree["docs"])

    @pytest.fixture()
    def inbox(self, db, manager, alice, bob) -> str:
        """bob's 'inbox' directory, with an editor binding for alice."""
        inbox = manager.create_directory(bob.user_id, "inbox", root_id(manager, bob))
        RoleBindingRepository(db).grant(alice.user_id, inbox, "directory", "editor", bob.user_id)
        db.commit()
        return inbox

    def test_file_moved_into_shared_directory_belongs_to_its_owner(self, manager, alice, bob, root, inbox):
        f = manager.upload_file(alice.user_id, "mine.txt", root, b"m")
        manager.move_entity(alice.user_id, f, inbox)

        listing = manager.get_directory(bob.user_id, inbox)
        assert [x.name for x in listing.files] == ["mine.txt"]
        assert manager.get_file(bob.user_id, f).owner_id == bob.user_id
        manager.rename_entity(bob.user_id, f, "theirs.txt")
        manager.soft_remove(bob.user_id, f)

    def test_moved_subtree_belongs_to_destination_owner(self, db, manager, alice, bob, tree, inbox):
        manager.move_entity(alice.user_id, tree["docs"], inbox)

        owners = {d.owner_id for d in db.query(Directory).filter(Directory.id.in_(
            [tree["docs"], tree["sub"], tree["empty"]]
        ))}
        owners |= {f.owner_id for f in db.query(File).filter(File.id.in_(
            [tree["a"], tree["b"], tree["c"]]
        ))}
        assert owners == {bob.user_id}
        assert manager.get_file(bob.user_id, tree["b"]).path == "/inbox/docs/sub/b.txt"

    def test_owner_follows_move_under_self_only_paths(
        self, db, content_store, archiver, manager, alice, bob, tree, inbox
    ):
        self_only = EntityManager(db, content_store, archiver=archiver, path_policy=PathPolicy.SELF_ONLY)
        self_only.move_entity(alice.user_id, tree["docs"], inbox)

        b = self_only.get_file(bob.user_id, tree["b"])
        assert b.owner_id == bob.user_id
        # Descendant paths are left as they were.
        assert b.path == "/docs/sub/b.txt"

    def test_move_within_own_tree_keeps_owner(self, manager, alice, tree):
        manager.move_entity(alice.user_id, tree["a"], tree["sub"])
        assert manager.get_file(alice.user_id, tree["a"]).owner_id == alice.user_id
