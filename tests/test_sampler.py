import random
from datetime import datetime, timedelta, timezone

from engine.sampler import SeparationWindow, draw_without_replacement, hours_since, weighted_pick

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FixedRandom:
    """Stands in for random.Random with a constant draw."""

    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def _track(id, artist="Artist", weight=1.0, last_played=None):
    return {"id": id, "artist": artist, "weight": weight, "last_played_at": last_played}


# ---------------------------------------------------------------------------
# hours_since
# ---------------------------------------------------------------------------

def test_hours_since_never_played_is_infinite():
    assert hours_since(None, NOW) == float("inf")
    assert hours_since("", NOW) == float("inf")
    assert hours_since("not a date", NOW) == float("inf")


def test_hours_since_parses_iso_strings():
    assert hours_since("2026-03-02T09:00:00Z", NOW) == 3
    assert hours_since("2026-03-02 06:00:00", NOW) == 6
    assert hours_since(NOW - timedelta(hours=1), NOW) == 1


# ---------------------------------------------------------------------------
# weighted_pick
# ---------------------------------------------------------------------------

def test_weighted_pick_uses_cumulative_weights():
    pool = [_track(1, weight=1.0), _track(2, weight=3.0)]
    assert weighted_pick(pool, set(), FixedRandom(0.0))["id"] == 1
    assert weighted_pick(pool, set(), FixedRandom(0.24))["id"] == 1
    assert weighted_pick(pool, set(), FixedRandom(0.26))["id"] == 2
    assert weighted_pick(pool, set(), FixedRandom(0.999))["id"] == 2


def test_weighted_pick_skips_used_ids():
    pool = [_track(1), _track(2), _track(3)]
    assert weighted_pick(pool, {1, 2}, FixedRandom(0.0))["id"] == 3


def test_weighted_pick_exhausted_returns_none():
    assert weighted_pick([_track(1)], {1}, FixedRandom(0.5)) is None
    assert weighted_pick([], set(), FixedRandom(0.5)) is None


def test_zero_weight_track_still_selectable():
    pool = [_track(1, weight=0), _track(2, weight=-3)]
    assert weighted_pick(pool, set(), FixedRandom(0.9))["id"] == 2


def test_heavier_tracks_drawn_more_often():
    rng = random.Random(11)
    pool = [_track(1, weight=1.0), _track(2, weight=9.0)]
    heavy = sum(1 for _ in range(2000) if weighted_pick(pool, set(), rng)["id"] == 2)
    assert 1600 < heavy < 1990


# ---------------------------------------------------------------------------
# draw_without_replacement
# ---------------------------------------------------------------------------

def test_draw_without_replacement_no_duplicates():
    pool = [_track(i, weight=i) for i in range(1, 21)]
    result = draw_without_replacement(pool, 15, random.Random(3))
    ids = [t["id"] for t in result]
    assert len(ids) == 15
    assert len(set(ids)) == 15


def test_draw_stops_when_pool_exhausted():
    pool = [_track(i) for i in range(3)]
    assert len(draw_without_replacement(pool, 10, random.Random(1))) == 3


def test_draw_honours_pre_used_ids():
    used = {1}
    result = draw_without_replacement([_track(1), _track(2)], 5, random.Random(1), used)
    assert [t["id"] for t in result] == [2]
    assert used == {1, 2}


# ---------------------------------------------------------------------------
# SeparationWindow
# ---------------------------------------------------------------------------

def test_artist_window_blocks_recent_artists():
    window = SeparationWindow(artist_separation=2, now=NOW)
    window.record(_track(1, "A"))
    window.record(_track(2, "B"))
    assert not window.artist_ok(_track(3, "a "))
    assert not window.artist_ok(_track(4, "B"))
    window.record(_track(5, "C"))
    assert window.artist_ok(_track(6, "A"))


def test_blank_artist_always_passes():
    window = SeparationWindow(artist_separation=3, now=NOW)
    window.record(_track(1, ""))
    assert window.artist_ok(_track(2, ""))


def test_relax_shrinks_window_and_record_resets_it():
    window = SeparationWindow(artist_separation=2, now=NOW)
    window.record(_track(1, "A"))
    window.record(_track(2, "B"))
    window.relax()
    assert window.effective_window == 1
    assert window.artist_ok(_track(3, "A"))
    assert not window.artist_ok(_track(4, "B"))
    assert window.was_relaxed

    window.record(_track(3, "A"))
    assert window.relax_level == 0
    assert window.effective_window == 2


def test_replay_age_is_never_relaxed():
    window = SeparationWindow(artist_separation=0, song_separation_hrs=4, now=NOW)
    recent = _track(1, last_played="2026-03-02T10:00:00Z")
    rested = _track(2, last_played="2026-03-01T10:00:00Z")
    for _ in range(5):
        window.relax()
    assert not window.replay_ok(recent)
    assert window.replay_ok(rested)
    assert window.replay_ok(_track(3))
