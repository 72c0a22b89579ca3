"""
engine/pool.py — Candidate pool builder.

Turns a Filters value into the in-memory list of tracks a strategy selects
from.  Storage failures never propagate: they are logged and the pool comes
back empty, which callers already treat as "no tracks match".
"""
import logging
from typing import List, Optional

from engine.models import Filters, make_track
from storage import StorageError

logger = logging.getLogger(__name__)

DEFAULT_AVG_DURATION_MS = 210000   # 3.5 min, used when durations are unknown
MIN_AVG_DURATION_MS = 60000        # floor for duration-based count estimates


def _unique(tracks: List[dict]) -> List[dict]:
    seen = set()
    out = []
    for t in tracks:
        if t["id"] in seen:
            continue
        seen.add(t["id"])
        out.append(t)
    return out


def build_pool(store, filters: Optional[Filters] = None) -> List[dict]:
    """Fetch every track matching ``filters``, ordered by id, each with weight 1.0."""
    filters = Filters.from_dict(filters)
    try:
        rows = store.fetch_tracks(filters)
    except StorageError as e:
        logger.warning(f"Pool build failed, continuing with an empty pool: {e}")
        return []
    return _unique([make_track(r) for r in rows])


def build_jingle_pool(store) -> List[dict]:
    """Fetch up to 500 jingles in random order (fresh on every call)."""
    try:
        rows = store.fetch_jingles()
    except StorageError as e:
        logger.warning(f"Jingle pool unavailable: {e}")
        return []
    return _unique([make_track(r) for r in rows])


def count_pool(store, filters: Optional[Filters] = None) -> int:
    """Number of tracks ``build_pool`` would return, without materialising them."""
    filters = Filters.from_dict(filters)
    try:
        return store.count_tracks(filters)
    except StorageError as e:
        logger.warning(f"Pool count failed: {e}")
        return 0


def average_duration_ms(pool: List[dict], ignore_zero: bool = True) -> float:
    """Mean track length in the pool, DEFAULT_AVG_DURATION_MS when unknown."""
    durations = [t.get("duration_ms") or 0 for t in pool]
    if ignore_zero:
        durations = [d for d in durations if d > 0]
    if not durations:
        return float(DEFAULT_AVG_DURATION_MS)
    avg = sum(durations) / len(durations)
    return avg if avg > 0 else float(DEFAULT_AVG_DURATION_MS)
