import json
import os
import pytest
from unittest.mock import patch
from msync.domain.models import IndexEntry
from msync.pipeline.index_store import IndexStore


def _entry(**kwargs) -> IndexEntry:
    data = {"mtime": 1_700_000_000.5, "size": 1234, "album": "Album", "artist": "Artist"}
    data.update(kwargs)
    return IndexEntry(**data)


def test_load_missing_file_gives_empty_index(tmp_path):
    store = IndexStore.for_root(tmp_path).load()
    assert len(store) == 0
    assert not store.dirty


def test_load_corrupt_file_degrades_to_empty(tmp_path, caplog):
    (tmp_path / "index.json").write_text("{ not json")

    store = IndexStore.for_root(tmp_path).load()

    assert len(store) == 0
    assert store.dirty
    assert "starting empty" in caplog.text


def test_corrupt_file_is_replaced_even_without_changes(tmp_path):
    index_path = tmp_path / "index.json"
    index_path.write_text("{ not json")

    assert IndexStore.for_root(tmp_path).load().save() is True

    assert json.loads(index_path.read_text()) == {"version": 1, "tracks": {}}
    assert not IndexStore.for_root(tmp_path).load().dirty


def test_load_wrong_shape_degrades_to_empty(tmp_path):
    (tmp_path / "index.json").write_text(json.dumps({"version": 1, "tracks": []}))
    assert len(IndexStore.for_root(tmp_path).load()) == 0


def test_load_drops_malformed_entries_only(tmp_path):
    document = {
        "version": 1,
        "tracks": {
            "good.flac": {"mtime": 1.5, "size": 3, "trackNumber": 2},
            "bad.flac": {"size": "huge"},
        },
    }
    (tmp_path / "index.json").write_text(json.dumps(document))

    store = IndexStore.for_root(tmp_path).load()

    assert store.keys() == ["good.flac"]
    assert store.get("good.flac").track_number == 2


def test_insert_and_remove_track_dirty_state(tmp_path):
    store = IndexStore.for_root(tmp_path).load()
    store.insert("a.flac", _entry())
    assert store.dirty
    assert store.keys() == ["a.flac"]

    store.save()
    assert not store.dirty

    # Inserting an identical entry is not a change
    store.insert("a.flac", _entry())
    assert not store.dirty

    assert store.remove("a.flac")
    assert not store.remove("a.flac")
    assert store.dirty


def test_save_writes_sorted_camelcase_document_without_nulls(tmp_path):
    store = IndexStore.for_root(tmp_path).load()
    store.insert("b/2.flac", _entry(track_number=2, disk_number=1, title=None))
    store.insert("a/1.flac", _entry(album_artist="Various"))

    assert store.save() is True

    text = (tmp_path / "index.json").read_text(encoding="utf-8")
    document = json.loads(text)
    assert document["version"] == 1
    assert list(document["tracks"]) == ["a/1.flac", "b/2.flac"]
    assert document["tracks"]["a/1.flac"]["albumArtist"] == "Various"
    assert document["tracks"]["b/2.flac"]["trackNumber"] == 2
    assert document["tracks"]["b/2.flac"]["diskNumber"] == 1
    assert "title" not in document["tracks"]["b/2.flac"]
    assert "null" not in text
    assert text.endswith("\n")


def test_save_round_trips_through_load(tmp_path):
    store = IndexStore.for_root(tmp_path).load()
    store.insert("Ünïcode/å.flac", _entry(title="Sång"))
    store.save()

    reloaded = IndexStore.for_root(tmp_path).load()
    assert reloaded.get("Ünïcode/å.flac") == _entry(title="Sång")
    assert "Sång" in (tmp_path / "index.json").read_text(encoding="utf-8")


def test_save_skipped_in_dry_run(tmp_path):
    store = IndexStore.for_root(tmp_path).load()
    store.insert("a.flac", _entry())

    assert store.save(dry_run=True) is False
    assert not (tmp_path / "index.json").exists()


def test_unchanged_index_is_not_rewritten(tmp_path):
    store = IndexStore.for_root(tmp_path).load()
    store.insert("a.flac", _entry())
    store.save()
    index_path = tmp_path / "index.json"
    os.utime(index_path, ns=(1_000_000_000, 1_000_000_000))

    reloaded = IndexStore.for_root(tmp_path).load()
    assert reloaded.save() is False
    assert index_path.stat().st_mtime_ns == 1_000_000_000

    reloaded.insert("b.flac", _entry())
    assert reloaded.save() is True
    assert index_path.stat().st_mtime_ns != 1_000_000_000


def test_empty_index_is_written_when_file_missing(tmp_path):
    store = IndexStore.for_root(tmp_path).load()
    assert store.save() is True
    assert json.loads((tmp_path / "index.json").read_text()) == {"version": 1, "tracks": {}}


def test_failed_save_keeps_previous_file(tmp_path):
    store = IndexStore.for_root(tmp_path).load()
    store.insert("a.flac", _entry())
    store.save()
    index_path = tmp_path / "index.json"
    before = index_path.read_bytes()

    store.insert("b.flac", _entry())
    with patch("msync.pipeline.index_store.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(OSError):
            store.save()

    assert index_path.read_bytes() == before
    assert [p.name for p in tmp_path.iterdir()] == ["index.json"]
