"""
Tests for storage.SqliteStore: library reads, clock templates and playlist writes.
"""
import pytest

from engine.models import Filters
from storage import SqliteStore, StorageError


def _track(id, artist="Artist", **kw):
    return {
        "id":          id,
        "title":       f"Song {id}",
        "artist":      artist,
        "file_path":   f"/music/{id}.mp3",
        "duration_ms": 200000,
        **kw,
    }


@pytest.fixture
def store(tmp_path):
    s = SqliteStore(str(tmp_path / "library.db"))
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Library
# ---------------------------------------------------------------------------

def test_import_and_fetch_maps_column_names(store):
    store.import_tracks([_track(1, energy=0.7, mood="happy", bpm=128)])
    rows = store.fetch_tracks(Filters())
    assert len(rows) == 1
    assert rows[0]["energy"] == 0.7
    assert rows[0]["mood"] == "happy"
    assert rows[0]["bpm"] == 128


def test_import_replaces_existing_rows(store):
    store.import_tracks([_track(1, title="Old")])
    store.import_tracks([_track(1, title="New")])
    rows = store.fetch_tracks(Filters())
    assert [r["title"] for r in rows] == ["New"]


def test_fetch_jingles_only_available_jingles(store):
    store.import_tracks([
        _track(1),
        _track(2, is_jingle=True),
        _track(3, is_jingle=True, is_missing=True),
    ])
    assert [j["id"] for j in store.fetch_jingles()] == [2]


def test_fetch_jingles_respects_limit(store):
    store.import_tracks([_track(i, is_jingle=True) for i in range(1, 11)])
    assert len(store.fetch_jingles(limit=4)) == 4


# ---------------------------------------------------------------------------
# Clock templates
# ---------------------------------------------------------------------------

def test_clock_templates_for_requested_hours(store):
    store.save_clock_template(8, [{"type": "song", "count": 2}], name="Eight")
    store.save_clock_template(9, [{"type": "song", "count": 3}], name="Nine")
    store.save_clock_template(10, [{"type": "song"}], name="Ten", active=False)
    templates = store.fetch_clock_templates([10, 9, 8])
    assert [t.name for t in templates] == ["Eight", "Nine"]


def test_day_specific_template_beats_any_day(store):
    store.save_clock_template(9, [{"type": "song"}], name="Any day")
    store.save_clock_template(9, [{"type": "song"}], name="Monday", day_of_week=0)
    store.save_clock_template(9, [{"type": "song"}], name="Friday", day_of_week=4)

    assert [t.name for t in store.fetch_clock_templates([9], day_of_week=0)] == ["Monday"]
    assert [t.name for t in store.fetch_clock_templates([9], day_of_week=2)] == ["Any day"]
    assert [t.name for t in store.fetch_clock_templates([9])] == ["Any day"]


def test_no_hours_no_templates(store):
    assert store.fetch_clock_templates([]) == []


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------

def test_upsert_creates_then_reuses_id(store):
    first = store.upsert_playlist("Morning", "static", "", "{}", 0)
    second = store.upsert_playlist("Morning", "smart", "redo", "{}", 0)
    assert first == second
    assert store.get_playlist(first)["type"] == "smart"
    assert store.get_playlist_by_name("Morning")["description"] == "redo"


def test_replace_tracks_writes_one_based_positions(store):
    store.import_tracks([_track(i) for i in (1, 2, 3)])
    pid = store.upsert_playlist("Drive", "static", "", "{}", 0)
    assert store.replace_playlist_tracks(pid, [{"id": 3}, {"id": 1}, {"id": 2}]) == 3
    rows = store.get_playlist_tracks(pid)
    assert [(r["position"], r["id"]) for r in rows] == [(1, 3), (2, 1), (3, 2)]
    assert all(r["slot_weight"] == 1.0 for r in rows)


def test_upsert_clears_previous_tracks(store):
    store.import_tracks([_track(i) for i in (1, 2)])
    pid = store.upsert_playlist("Drive", "static", "", "{}", 0)
    store.replace_playlist_tracks(pid, [{"id": 1}, {"id": 2}])
    store.upsert_playlist("Drive", "static", "", "{}", 0)
    assert store.get_playlist_tracks(pid) == []


def test_update_track_count(store):
    pid = store.upsert_playlist("Late", "static", "", "{}", 0)
    store.update_track_count(pid, 12)
    assert store.get_playlist(pid)["track_count"] == 12


def test_transaction_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.upsert_playlist("Ghost", "static", "", "{}", 0)
            raise RuntimeError("boom")
    assert store.get_playlist_by_name("Ghost") is None


def test_sqlite_errors_become_storage_errors(store):
    with pytest.raises(StorageError):
        store._query("SELECT * FROM no_such_table")


def test_missing_playlist_is_none(store):
    assert store.get_playlist(404) is None
    assert store.get_playlist_tracks(404) == []
