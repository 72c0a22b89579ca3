"""
Tests for engine.pool: filter predicates, role flags and pool/count agreement.
"""
import pytest

from engine.models import Filters
from engine.pool import (
    DEFAULT_AVG_DURATION_MS, average_duration_ms, build_jingle_pool, build_pool, count_pool,
)
from storage import SqliteStore, StorageError


def _track(id, artist="Artist", genre="Pop", **kw):
    return {
        "id":          id,
        "title":       f"Song {id}",
        "artist":      artist,
        "genre":       genre,
        "file_path":   f"/music/{id}.mp3",
        "duration_ms": 180000,
        **kw,
    }


LIBRARY = [
    _track(1, genre="Rock", year=1985, bpm=120, rating=4, categories=[1]),
    _track(2, genre="Classic Rock", year=1972, bpm=None, rating=5, categories=[1, 2]),
    _track(3, genre="Pop", year=2005, bpm=95, rating=2, categories=[2]),
    _track(4, genre="Jazz", year=1959, bpm=140, rating=3),
    _track(5, genre="Rock", year=1990, bpm=110, rating=5, is_missing=True, categories=[1]),
    _track(6, genre="Station ID", is_jingle=True),
    _track(7, genre="Promo", is_sweeper=True),
    _track(8, genre="Ad", is_spot=True),
    _track(9, genre="100%_Hits", year=2020, bpm=128),
]


@pytest.fixture
def store(tmp_path):
    s = SqliteStore(str(tmp_path / "library.db"))
    s.import_tracks(LIBRARY)
    yield s
    s.close()


class BrokenStore:
    def fetch_tracks(self, filters):
        raise StorageError("database is locked")

    def count_tracks(self, filters):
        raise StorageError("database is locked")

    def fetch_jingles(self, limit=500):
        raise StorageError("database is locked")


def _ids(pool):
    return [t["id"] for t in pool]


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def test_default_pool_is_music_only_and_never_missing(store):
    pool = build_pool(store, Filters())
    assert _ids(pool) == [1, 2, 3, 4, 9]
    assert all(not t["is_missing"] for t in pool)
    assert all(t["weight"] == 1.0 for t in pool)


def test_role_flags_opt_in(store):
    pool = build_pool(store, {"include_jingles": True, "include_sweepers": True})
    assert 6 in _ids(pool)
    assert 7 in _ids(pool)
    assert 8 not in _ids(pool)


def test_genre_is_case_insensitive_substring(store):
    assert _ids(build_pool(store, {"genre": "rock"})) == [1, 2]


def test_genre_wildcards_match_literally(store):
    assert _ids(build_pool(store, {"genre": "0%_"})) == [9]
    assert _ids(build_pool(store, {"genre": "%"})) == [9]


def test_genre_folds_accented_case(tmp_path):
    s = SqliteStore(str(tmp_path / "accents.db"))
    s.import_tracks([_track(1, genre="ÉLECTRO"), _track(2, genre="Électro Pop"),
                     _track(3, genre="Rock")])
    try:
        filters = Filters.from_dict({"genre": "électro"})
        assert _ids(build_pool(s, filters)) == [1, 2]
        assert count_pool(s, filters) == 2
        assert _ids(build_pool(s, {"genre": "Électro Pop"})) == [2]
    finally:
        s.close()


def test_year_range(store):
    assert _ids(build_pool(store, {"year_from": 1970, "year_to": 1989})) == [1, 2]


def test_bpm_range_lets_unknown_bpm_through(store):
    assert _ids(build_pool(store, {"bpm_min": 100, "bpm_max": 125})) == [1, 2]


def test_rating_min(store):
    assert _ids(build_pool(store, {"rating_min": 4})) == [1, 2]


def test_category_filter_lists_each_track_once(store):
    pool = build_pool(store, {"category_ids": [1, 2]})
    assert _ids(pool) == [1, 2, 3]


def test_every_track_satisfies_every_predicate(store):
    filters = Filters.from_dict({"genre": "rock", "year_from": 1980, "bpm_max": 130,
                                 "rating_min": 4, "category_ids": [1]})
    pool = build_pool(store, filters)
    assert pool
    for t in pool:
        assert "rock" in t["genre"].lower()
        assert t["year"] >= 1980
        assert t["bpm"] is None or t["bpm"] <= 130
        assert t["rating"] >= 4
        assert not t["is_missing"] and not t["is_jingle"]


@pytest.mark.parametrize("filters", [
    {},
    {"genre": "rock"},
    {"category_ids": [1, 2]},
    {"bpm_min": 100},
    {"include_jingles": True, "include_spots": True},
    {"genre": "nothing-like-this"},
])
def test_count_matches_pool_length(store, filters):
    assert count_pool(store, filters) == len(build_pool(store, filters))


# ---------------------------------------------------------------------------
# Jingles
# ---------------------------------------------------------------------------

def test_jingle_pool(store):
    jingles = build_jingle_pool(store)
    assert _ids(jingles) == [6]
    assert jingles[0]["is_jingle"] is True


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------

def test_storage_failure_degrades_to_empty_pool():
    assert build_pool(BrokenStore(), Filters()) == []
    assert build_jingle_pool(BrokenStore()) == []
    assert count_pool(BrokenStore(), Filters()) == 0


def test_invalid_filters_raise():
    with pytest.raises(ValueError):
        build_pool(BrokenStore(), {"year_from": "long ago"})


# ---------------------------------------------------------------------------
# Average duration
# ---------------------------------------------------------------------------

def test_average_duration_ignores_unknown_lengths():
    pool = [{"duration_ms": 200000}, {"duration_ms": 0}, {"duration_ms": 100000}]
    assert average_duration_ms(pool) == 150000
    assert average_duration_ms(pool, ignore_zero=False) == 100000


def test_average_duration_fallback():
    assert average_duration_ms([]) == DEFAULT_AVG_DURATION_MS
    assert average_duration_ms([{"duration_ms": 0}]) == DEFAULT_AVG_DURATION_MS
