"""
Tests for object store backends and the IP record store.
"""

import json
import os
import sys
import threading

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from ip_records import DerivativeRelationship, IPRecordStore
from storage import StorageError, get_object_store
from storage.base import StorageReadError, StorageWriteError
from storage.json_file import FileObjectStore
from storage.memory import MemoryObjectStore

SAMPLE_CHAPTER = {
    "chapterId": "story-1-1",
    "title": "The Lighthouse",
    "licenseTier": "premium",
    "usage": {"totalReads": 12, "totalLicenses": 1, "averageReadingTime": 300},
}


def relationship(child, parent="0xparent", chapter="story-1-1"):
    return DerivativeRelationship(
        ip_id=child,
        parent_ip_id=parent,
        parent_chapter_id=chapter,
        license_terms_id="1",
        transaction_hash="0x" + "1" * 64,
        derivative_type="remix",
        similarity_score=0.75,
        creator_address="0xcreator",
    )


class TestMemoryObjectStore:
    """Tests for MemoryObjectStore backend."""

    def test_init_empty(self):
        """Test that a new memory store is empty."""
        store = MemoryObjectStore()
        assert store.get("chapters/x.json") is None
        assert store.list_keys() == []
        assert store.is_available() is True

    def test_put_and_get(self):
        store = MemoryObjectStore()
        url = store.put("chapters/story-1-1.json", SAMPLE_CHAPTER)

        assert url == "chapters/story-1-1.json"
        assert store.get("chapters/story-1-1.json") == SAMPLE_CHAPTER

    def test_public_url(self):
        store = MemoryObjectStore(public_url="https://cdn.example/")
        assert store.put("a.json", {}) == "https://cdn.example/a.json"

    def test_data_isolation(self):
        """Stored documents are copies of the caller's dict."""
        store = MemoryObjectStore()
        data = {"usage": {"totalReads": 1}}
        store.put("k.json", data)

        data["usage"]["totalReads"] = 99
        loaded = store.get("k.json")
        loaded["usage"]["totalReads"] = 50

        assert store.get("k.json")["usage"]["totalReads"] == 1

    def test_empty_key_rejected(self):
        with pytest.raises(StorageWriteError):
            MemoryObjectStore().put("", {})

    def test_delete_and_list(self):
        store = MemoryObjectStore()
        store.put("chapters/b.json", {})
        store.put("chapters/a.json", {})
        store.put("ip-assets/x.json", {})

        assert store.list_keys("chapters/") == ["chapters/a.json", "chapters/b.json"]
        assert store.delete("chapters/a.json") is True
        assert store.delete("chapters/a.json") is False

    def test_get_info_and_clear(self):
        store = MemoryObjectStore()
        store.put("a.json", {})
        assert store.get_info()["object_count"] == 1
        store.clear()
        assert store.get_info()["object_count"] == 0

    def test_context_manager(self):
        with MemoryObjectStore() as store:
            store.put("a.json", {"x": 1})
            assert store.get("a.json") == {"x": 1}


class TestFileObjectStore:
    """Tests for FileObjectStore backend."""

    def test_put_creates_nested_file(self, tmp_path):
        store = FileObjectStore(str(tmp_path))
        store.put("chapters/story-1-1.json", SAMPLE_CHAPTER)

        path = tmp_path / "chapters" / "story-1-1.json"
        assert path.exists()
        assert json.loads(path.read_text(encoding="utf-8")) == SAMPLE_CHAPTER

    def test_get_missing(self, tmp_path):
        assert FileObjectStore(str(tmp_path)).get("nope.json") is None

    def test_empty_file_is_missing(self, tmp_path):
        (tmp_path / "empty.json").write_text("   ")
        assert FileObjectStore(str(tmp_path)).get("empty.json") is None

    def test_invalid_json(self, tmp_path):
        (tmp_path / "bad.json").write_text("{not json")
        with pytest.raises(StorageReadError):
            FileObjectStore(str(tmp_path)).get("bad.json")

    def test_key_cannot_escape_root(self, tmp_path):
        store = FileObjectStore(str(tmp_path / "root"))
        with pytest.raises(StorageWriteError):
            store.put("../outside.json", {})
        with pytest.raises(StorageReadError):
            store.get("../outside.json")

    def test_unserializable_body(self, tmp_path):
        with pytest.raises(StorageWriteError):
            FileObjectStore(str(tmp_path)).put("a.json", {"value": object()})

    def test_no_temp_files_left(self, tmp_path):
        store = FileObjectStore(str(tmp_path))
        store.put("a.json", {"x": 1})
        store.put("a.json", {"x": 2})

        assert store.get("a.json") == {"x": 2}
        assert store.list_keys() == ["a.json"]
        assert not list(tmp_path.glob("*.tmp"))

    def test_list_and_delete(self, tmp_path):
        store = FileObjectStore(str(tmp_path))
        store.put("derivatives/by-parent/p.json", {"children": []})
        store.put("derivatives/c.json", {})

        assert store.list_keys("derivatives/by-parent/") == ["derivatives/by-parent/p.json"]
        assert store.delete("derivatives/c.json") is True
        assert store.delete("derivatives/c.json") is False

    def test_is_available(self, tmp_path):
        assert FileObjectStore(str(tmp_path)).is_available()
        assert FileObjectStore(str(tmp_path / "not-yet-created")).is_available()

    def test_concurrent_writes(self, tmp_path):
        store = FileObjectStore(str(tmp_path))

        def writer(n):
            store.put(f"chapters/{n}.json", {"n": n})

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store.list_keys("chapters/")) == 20


class TestGetObjectStore:
    """Tests for get_object_store."""

    def test_memory(self):
        assert isinstance(get_object_store("memory"), MemoryObjectStore)

    def test_file(self, tmp_path):
        store = get_object_store("file", str(tmp_path), "https://cdn.example")
        assert isinstance(store, FileObjectStore)
        assert store.put("a.json", {}) == "https://cdn.example/a.json"

    def test_env_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "json")
        monkeypatch.setenv("STORAGE_DIR", str(tmp_path))
        assert isinstance(get_object_store(), FileObjectStore)

    def test_unknown_backend(self):
        with pytest.raises(StorageError):
            get_object_store("s3")


class TestIPRecordStore:
    """Tests for IPRecordStore."""

    def test_chapter_and_asset_round_trip(self, records):
        records.save_chapter("story-1-1", SAMPLE_CHAPTER)
        records.save_ip_asset("0xip", {"ipId": "0xip"})

        assert records.get_chapter("story-1-1")["title"] == "The Lighthouse"
        assert records.get_ip_asset("0xip") == {"ipId": "0xip"}
        assert records.get_chapter("missing") is None

    def test_relationship_indexes(self, records, store):
        records.save_relationship(relationship("0xc1"))
        records.save_relationship(relationship("0xc2"))

        assert records.list_children("0xparent") == ["0xc1", "0xc2"]
        assert [r.ip_id for r in records.list_chapter_derivatives("story-1-1")] == ["0xc1", "0xc2"]
        assert store.get("derivatives/0xc1.json")["similarityScore"] == 0.75

    def test_index_has_no_duplicates(self, records):
        records.save_relationship(relationship("0xc1"))
        records.save_relationship(relationship("0xc1"))
        assert records.list_children("0xparent") == ["0xc1"]

    def test_relationship_without_chapter(self, records, store):
        records.save_relationship(relationship("0xc1", chapter=""))
        assert records.list_children("0xparent") == ["0xc1"]
        assert store.list_keys("derivatives/by-chapter/") == []

    def test_missing_record_skipped(self, records, store):
        records.save_relationship(relationship("0xc1"))
        store.delete("derivatives/0xc1.json")
        assert records.list_chapter_derivatives("story-1-1") == []

    def test_concurrent_registrations_keep_all_children(self, store):
        records = IPRecordStore(store)
        threads = [
            threading.Thread(target=records.save_relationship, args=(relationship(f"0xc{n}"),))
            for n in range(25)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(records.list_children("0xparent")) == 25

    def test_file_backed(self, tmp_path):
        records = IPRecordStore(FileObjectStore(str(tmp_path)))
        records.save_relationship(relationship("0xc1"))

        reloaded = IPRecordStore(FileObjectStore(str(tmp_path)))
        assert reloaded.get_relationship("0xc1").creator_address == "0xcreator"

    def test_merge_chapter_keeps_existing_keys(self, records):
        records.save_chapter("story-1-1", SAMPLE_CHAPTER)
        records.merge_chapter(
            "story-1-1",
            {"ipAssetId": "0xnew"},
            defaults={"usage": {"totalReads": 0, "totalLicenses": 0, "averageReadingTime": 0}},
        )

        chapter = records.get_chapter("story-1-1")
        assert chapter["ipAssetId"] == "0xnew"
        assert chapter["usage"]["totalReads"] == 12

    def test_merge_chapter_creates_with_defaults(self, records):
        records.merge_chapter("story-1-2", {"title": "Two"}, defaults={"usage": {"totalReads": 0}})
        assert records.get_chapter("story-1-2") == {"title": "Two", "usage": {"totalReads": 0}}

    def test_royalty_history_per_author(self, records, store):
        records.append_royalty_history("0xABC", {"status": "completed"})
        records.append_royalty_history("0xabc", {"status": "failed"})

        assert [e["status"] for e in records.get_royalty_history("0xAbC")] == ["completed", "failed"]
        assert store.list_keys("royalties/history/") == ["royalties/history/0xabc.json"]
        assert records.get_royalty_history("0xother") == []
