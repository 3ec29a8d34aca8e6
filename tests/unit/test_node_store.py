"""Tests for SqlNodeStore (SQLAlchemy content tree)."""

import pytest
from unittest.mock import patch
from sqlalchemy.exc import OperationalError

from core.publishing.exceptions import NotFoundError, StoreError, TransientStoreError
from core.store import NodeStore, SqlNodeStore


def _locked():
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


class TestTree:

    def test_implements_protocol(self, store):
        assert isinstance(store, NodeStore)

    def test_create_and_get(self, store):
        root = store.create_child(None, "9780140449136", "bestpub:bookFolder")
        node = store.get_node(root)

        assert node.name == "9780140449136"
        assert node.parent_id is None
        assert node.type == "bestpub:bookFolder"
        assert node.created_at is not None
        assert store.exists(root)

    def test_children_ordered_by_name(self, store):
        root = store.create_child(None, "book", "folder")
        for name in ["chapter-2", "chapter-10", "chapter-1"]:
            store.create_child(root, name, "chapter")

        names = [n.name for n in store.list_children(root)]
        assert names == ["chapter-1", "chapter-10", "chapter-2"]

    def test_list_children_filters_type(self, store):
        root = store.create_child(None, "book", "folder")
        store.create_child(root, "chapter-1", "chapter")
        store.create_child(root, "notes", "other")

        assert [n.name for n in store.list_children(root, "chapter")] == ["chapter-1"]

    def test_duplicate_sibling_name(self, store):
        root = store.create_child(None, "book", "folder")
        store.create_child(root, "chapter-1", "chapter")
        with pytest.raises(StoreError):
            store.create_child(root, "chapter-1", "chapter")

    def test_same_name_under_different_parents(self, store):
        a = store.create_child(None, "a", "folder")
        b = store.create_child(None, "b", "folder")
        store.create_child(a, "chapter-1", "chapter")
        store.create_child(b, "chapter-1", "chapter")

    def test_create_under_missing_parent(self, store):
        with pytest.raises(NotFoundError):
            store.create_child("nope", "x", "chapter")

    def test_find_child_and_parent(self, store):
        root = store.create_child(None, "book", "folder")
        child = store.create_child(root, "chapter-1", "chapter")

        assert store.find_child(root, "chapter-1").id == child
        assert store.find_child(root, "chapter-9") is None
        assert store.get_parent(child).id == root
        assert store.get_parent(root) is None

    def test_delete_removes_subtree(self, store):
        root = store.create_child(None, "book", "folder")
        child = store.create_child(root, "chapter-1", "chapter")
        store.write_content(child, b"<p>x</p>", "text/html")

        store.delete_child(root)

        assert not store.exists(root)
        assert not store.exists(child)

    def test_delete_missing(self, store):
        with pytest.raises(NotFoundError):
            store.delete_child("missing")

    def test_display_path(self, store):
        root = store.create_child(None, "9780140449136", "folder")
        child = store.create_child(root, "chapter-3", "chapter")
        assert store.display_path(child) == "/9780140449136/chapter-3"


class TestProperties:

    def test_set_and_get(self, store):
        node = store.create_child(None, "book", "folder")
        store.set_property(node, "chapterNumber", 3)

        assert store.get_property(node, "chapterNumber") == 3
        assert store.get_property(node, "missing") is None

    def test_name_property_renames(self, store):
        root = store.create_child(None, "book", "folder")
        child = store.create_child(root, "chapter-3", "chapter")

        store.set_property(child, "name", "chapter-4")

        assert store.get_node(child).name == "chapter-4"
        assert store.find_child(root, "chapter-3") is None

    def test_rename_onto_sibling_fails(self, store):
        root = store.create_child(None, "book", "folder")
        store.create_child(root, "chapter-1", "chapter")
        second = store.create_child(root, "chapter-2", "chapter")
        with pytest.raises(StoreError):
            store.set_property(second, "name", "chapter-1")

    def test_set_property_bumps_modified(self, store):
        node = store.create_child(None, "book", "folder")
        before = store.get_modified_at(node)
        store.set_property(node, "bookTitle", "Odyssey")
        assert store.get_modified_at(node) > before

    def test_touch_false_keeps_modified(self, store):
        node = store.create_child(None, "book", "folder")
        before = store.get_modified_at(node)
        store.set_property(node, "webPublishedDate", "2024-01-01T00:00:00", touch=False)
        assert store.get_modified_at(node) == before

    def test_set_property_on_missing_node(self, store):
        with pytest.raises(NotFoundError):
            store.set_property("missing", "x", 1)


class TestMetadataBundles:

    def test_attach_metadata(self, store):
        node = store.create_child(None, "book", "folder")
        store.attach_metadata(node, "bestpub:bookInfo", {"isbn": "123", "bookTitle": "T"})

        info = store.get_node(node)
        assert "bestpub:bookInfo" in info.aspects
        assert info.properties == {"isbn": "123", "bookTitle": "T"}

    def test_copy_metadata_copies_only_named_bundles(self, store):
        src = store.create_child(None, "src", "folder")
        dst = store.create_child(None, "dst", "folder")
        store.attach_metadata(src, "bestpub:bookInfo", {"bookTitle": "T"})
        store.attach_metadata(src, "other", {"secret": 1})
        store.set_property(src, "loose", True)

        store.copy_metadata(src, dst, ["bestpub:bookInfo"])

        info = store.get_node(dst)
        assert info.aspects == {"bestpub:bookInfo"}
        assert info.properties == {"bookTitle": "T"}

    def test_copy_missing_bundle_is_skipped(self, store):
        src = store.create_child(None, "src", "folder")
        dst = store.create_child(None, "dst", "folder")
        store.copy_metadata(src, dst, ["bestpub:bookInfo"])
        assert store.get_node(dst).aspects == set()

    def test_detach_metadata(self, store):
        node = store.create_child(None, "book", "folder")
        store.attach_metadata(node, "bundle", {"a": 1})
        store.detach_metadata(node, "bundle")

        info = store.get_node(node)
        assert info.aspects == set()
        assert info.properties == {}


class TestContent:

    def test_write_and_read(self, store):
        node = store.create_child(None, "chapter", "chapter")
        assert store.read_content(node) is None

        store.write_content(node, b"# Title", "text/markdown")
        content = store.read_content(node)
        assert content.data == b"# Title"
        assert content.mimetype == "text/markdown"

    def test_overwrite(self, store):
        node = store.create_child(None, "chapter", "chapter")
        store.write_content(node, b"one", "text/plain")
        store.write_content(node, b"two", "text/html")
        assert store.read_content(node).data == b"two"


class TestErrorTranslation:

    def test_transient_error_is_retried(self, tmp_path):
        store = SqlNodeStore(str(tmp_path / "s.db"), retry_attempts=3, retry_wait=0)
        real_session = store.session_factory()

        with patch.object(store, "get_session", side_effect=[_locked(), _locked(), real_session]) as mock:
            assert store.list_children(None) == []
        assert mock.call_count == 3

    def test_transient_error_gives_up(self, tmp_path):
        store = SqlNodeStore(str(tmp_path / "s.db"), retry_attempts=2, retry_wait=0)

        with patch.object(store, "get_session", side_effect=_locked()) as mock:
            with pytest.raises(TransientStoreError):
                store.list_children(None)
        assert mock.call_count == 2

    def test_other_operational_error_not_retried(self, tmp_path):
        store = SqlNodeStore(str(tmp_path / "s.db"), retry_attempts=3, retry_wait=0)
        err = OperationalError("SELECT 1", {}, Exception("no such table: nodes"))

        with patch.object(store, "get_session", side_effect=err) as mock:
            with pytest.raises(StoreError) as exc:
                store.list_children(None)
        assert not isinstance(exc.value, TransientStoreError)
        assert mock.call_count == 1
