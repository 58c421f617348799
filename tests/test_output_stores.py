"""
Tests for the media index and tree output stores.
"""
import os
import sys
from types import SimpleNamespace

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from media_index_store import MediaIndexStore
from output_store import create_output_store, extension_for_mime, remove_file, unique_path
from recording_options import OutputRef, StorageBackend
from tree_store import TreeStore


def test_extension_for_mime():
    assert extension_for_mime("video/mp4") == ".mp4"
    assert extension_for_mime("video/webm") == ".webm"
    assert extension_for_mime("application/octet-stream") == ""


def test_unique_path_appends_counter(tmp_path):
    (tmp_path / "REC.mp4").touch()
    (tmp_path / "REC (1).mp4").touch()
    assert unique_path(str(tmp_path), "REC", ".mp4") == str(tmp_path / "REC (2).mp4")


def test_remove_file_missing_is_success(tmp_path):
    assert remove_file(str(tmp_path / "gone.mp4")) is True


def test_create_output_store_selects_backend(tmp_path):
    media = create_output_store(SimpleNamespace(storage_backend="media", media_root=str(tmp_path)))
    tree = create_output_store(SimpleNamespace(storage_backend="tree", media_root=str(tmp_path)))
    assert isinstance(media, MediaIndexStore)
    assert isinstance(tree, TreeStore)


def test_create_output_store_rejects_unknown_backend():
    with pytest.raises(ValueError):
        create_output_store(SimpleNamespace(storage_backend="cloud", media_root="/tmp"))


class TestMediaIndexStore:

    def test_create_is_pending(self, tmp_path):
        store = MediaIndexStore(str(tmp_path))
        ref = store.create("ScreenRecorder", "REC_1", "video/mp4")

        assert ref is not None
        assert ref.backend == StorageBackend.MEDIA_INDEX
        assert ref.uri.startswith("media://")
        assert ref.path == str(tmp_path / "ScreenRecorder" / "REC_1.mp4")
        assert os.path.exists(ref.path)
        assert store.is_pending(ref)

        row = store.lookup(ref)
        assert row["display_name"] == "REC_1.mp4"
        assert row["relative_path"] == "ScreenRecorder"
        assert row["mime_type"] == "video/mp4"

    def test_mark_complete_clears_pending(self, tmp_path):
        store = MediaIndexStore(str(tmp_path))
        ref = store.create("ScreenRecorder", "REC_1", "video/mp4")

        assert store.mark_complete(ref) is True
        assert not store.is_pending(ref)
        assert store.exists(ref)

    def test_name_collision_gets_suffix(self, tmp_path):
        store = MediaIndexStore(str(tmp_path))
        first = store.create("ScreenRecorder", "REC_1", "video/webm")
        second = store.create("ScreenRecorder", "REC_1", "video/webm")

        assert first.uri != second.uri
        assert os.path.basename(second.path) == "REC_1 (1).webm"

    def test_delete_pending_artifact(self, tmp_path):
        store = MediaIndexStore(str(tmp_path))
        ref = store.create("ScreenRecorder", "REC_1", "video/mp4")

        assert store.delete(ref) is True
        assert not os.path.exists(ref.path)
        assert store.lookup(ref) is None
        assert not store.exists(ref)

    def test_foreign_reference_rejected(self, tmp_path):
        store = MediaIndexStore(str(tmp_path))
        ref = OutputRef(uri="file:///tmp/x.mp4", path="/tmp/x.mp4", backend=StorageBackend.TREE)

        assert store.mark_complete(ref) is False
        assert store.delete(ref) is False

    def test_mark_complete_unknown_row(self, tmp_path):
        store = MediaIndexStore(str(tmp_path))
        ref = OutputRef(uri="media://999", path=str(tmp_path / "x.mp4"), backend=StorageBackend.MEDIA_INDEX)
        assert store.mark_complete(ref) is False


class TestTreeStore:

    def test_create_in_existing_directory(self, tmp_path):
        store = TreeStore()
        ref = store.create(str(tmp_path), "REC_1", "video/mp4")

        assert ref is not None
        assert ref.backend == StorageBackend.TREE
        assert ref.uri.startswith("file://")
        assert store.exists(ref)
        assert store.mark_complete(ref) is True

    def test_create_in_missing_directory_fails(self, tmp_path):
        store = TreeStore()
        assert store.create(str(tmp_path / "missing"), "REC_1", "video/mp4") is None

    def test_delete(self, tmp_path):
        store = TreeStore()
        ref = store.create(str(tmp_path), "REC_1", "video/mp4")

        assert store.delete(ref) is True
        assert not store.exists(ref)
        assert store.delete(ref) is True

    def test_mark_complete_missing_file(self, tmp_path):
        store = TreeStore()
        ref = OutputRef(uri="file:///nowhere", path=str(tmp_path / "nowhere.mp4"), backend=StorageBackend.TREE)
        assert store.mark_complete(ref) is False


class TestReferenceOwnership:

    def test_media_delete_ignores_forged_path(self, tmp_path):
        store = MediaIndexStore(str(tmp_path / "media"))
        ref = store.create("ScreenRecorder", "REC_1", "video/mp4")
        unrelated = tmp_path / "unrelated.txt"
        unrelated.write_text("keep me")

        forged = OutputRef(uri=ref.uri, path=str(unrelated), backend=StorageBackend.MEDIA_INDEX)
        assert store.delete(forged) is True

        assert unrelated.exists()
        assert not os.path.exists(ref.path)
        assert store.lookup(ref) is None

    def test_media_delete_unknown_row_keeps_file(self, tmp_path):
        store = MediaIndexStore(str(tmp_path / "media"))
        bystander = tmp_path / "bystander.mp4"
        bystander.touch()

        ref = OutputRef(uri="media://42", path=str(bystander), backend=StorageBackend.MEDIA_INDEX)
        assert store.delete(ref) is False
        assert bystander.exists()

    def test_tree_store_rejects_media_reference(self, tmp_path):
        media = MediaIndexStore(str(tmp_path / "media"))
        ref = media.create("ScreenRecorder", "REC_1", "video/mp4")
        tree = TreeStore()

        assert tree.delete(ref) is False
        assert tree.mark_complete(ref) is False
        assert not tree.exists(ref)
        assert os.path.exists(ref.path)
        assert media.is_pending(ref)

    def test_media_store_rejects_tree_reference(self, tmp_path):
        tree_ref = TreeStore().create(str(tmp_path), "REC_1", "video/mp4")
        media = MediaIndexStore(str(tmp_path / "media"))
        retagged = OutputRef(uri="media://1", path=tree_ref.path, backend=StorageBackend.TREE)

        assert media.delete(retagged) is False
        assert media.mark_complete(retagged) is False
        assert os.path.exists(tree_ref.path)
