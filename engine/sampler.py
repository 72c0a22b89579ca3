"""
engine/sampler.py — Weighted sampling and separation checks shared by strategies.
"""
import random
from datetime import datetime, timezone
from typing import List, Optional

MIN_WEIGHT = 0.0001


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------

def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def hours_since(value, now: Optional[datetime] = None) -> float:
    """Hours elapsed since ``value`` (ISO string or datetime); inf when never played."""
    if not value:
        return float("inf")
    now = now or _now_utc()
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00").replace(" ", "T"))
        except (ValueError, TypeError):
            return float("inf")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (now - dt).total_seconds() / 3600


# ---------------------------------------------------------------------------
# Weighted sampling
# ---------------------------------------------------------------------------

def _weight(track: dict) -> float:
    try:
        return max(MIN_WEIGHT, float(track.get("weight", 1.0)))
    except (TypeError, ValueError):
        return MIN_WEIGHT


def weighted_pick(pool: List[dict], used_ids, rng: Optional[random.Random] = None) -> Optional[dict]:
    """Draw one track with probability proportional to its weight.

    Tracks whose id is in ``used_ids`` are skipped.  Returns None when nothing
    is left to draw from.
    """
    rng = rng or random
    eligible = [t for t in pool if t["id"] not in used_ids]
    if not eligible:
        return None

    total = sum(_weight(t) for t in eligible)
    threshold = rng.random() * total
    cumulative = 0.0
    for t in eligible:
        cumulative += _weight(t)
        if threshold < cumulative:
            return t
    return eligible[-1]


def draw_without_replacement(pool: List[dict], count: int,
                             rng: Optional[random.Random] = None,
                             used_ids: Optional[set] = None) -> List[dict]:
    """Repeat weighted_pick until ``count`` tracks, pool exhaustion or the attempt budget."""
    used = used_ids if used_ids is not None else set()
    result: List[dict] = []
    max_attempts = count * 15 + 100
    attempts = 0

    while len(result) < count and attempts < max_attempts:
        attempts += 1
        pick = weighted_pick(pool, used, rng)
        if pick is None:
            break
        result.append(pick)
        used.add(pick["id"])
    return result


# ---------------------------------------------------------------------------
# Separation
# ---------------------------------------------------------------------------

def _artist_key(track: dict) -> str:
    return (track.get("artist") or "").strip().lower()


class SeparationWindow:
    """Artist and replay-age separation for sequential picks.

    ``artist_separation`` is the number of most recent picks whose artists are
    blocked.  ``relax()`` shrinks that window by one step; the replay-age check
    (``song_separation_hrs``) is never relaxed.
    """

    def __init__(self, artist_separation: int = 0, song_separation_hrs: float = 0,
                 now: Optional[datetime] = None):
        self.artist_separation = max(0, int(artist_separation))
        self.song_separation_hrs = max(0.0, float(song_separation_hrs))
        self.now = now or _now_utc()
        self.recent_artists: List[str] = []
        self.relax_level = 0
        self.was_relaxed = False

    @property
    def effective_window(self) -> int:
        return max(0, self.artist_separation - self.relax_level)

    def artist_ok(self, track: dict) -> bool:
        window = self.effective_window
        if window <= 0:
            return True
        artist = _artist_key(track)
        if not artist:
            return True
        return artist not in self.recent_artists[-window:]

    def replay_ok(self, track: dict) -> bool:
        if self.song_separation_hrs <= 0 or not track.get("last_played_at"):
            return True
        return hours_since(track["last_played_at"], self.now) >= self.song_separation_hrs

    def allows(self, track: dict) -> bool:
        return self.artist_ok(track) and self.replay_ok(track)

    def record(self, track: dict) -> None:
        self.recent_artists.append(_artist_key(track))
        self.relax_level = 0

    def relax(self) -> None:
        self.relax_level += 1
        self.was_relaxed = True
