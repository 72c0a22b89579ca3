"""
Playlist generation orchestrator.

Ties the engine to storage and export: build the pool, run the selected
strategy, persist the ordered result under the playlist name and optionally
write an export file.  Callers pass plain dicts (an API payload, CLI args) and
always get a plain dict back; failures are reported, never raised.

Result shapes:
    generate → {"ok": True, "playlist_id", "track_count", "pool_size",
                "duration_sec", "export_path", "export_error", "stats"}
    preview  → {"ok": True, "tracks", "pool_size", "estimated_total",
                "estimated_duration_sec"}
    failure  → {"ok": False, "error": str, "error_type": "input" | "empty" | "database"}
"""
import dataclasses
import logging
import math
import random
from datetime import datetime, timezone
from typing import List, Optional

from engine.generator import GenerationContext, generate as run_algorithm
from engine.models import (
    DEFAULT_TRACK_COUNT, MAX_TRACKS, Algorithm, Filters, GenerationOptions, playlist_type,
)
from engine.pool import (
    DEFAULT_AVG_DURATION_MS, MIN_AVG_DURATION_MS, average_duration_ms,
    build_jingle_pool, build_pool, count_pool,
)
from engine.validator import validate_playlist
from export_base import PlaylistExporter, format_duration
from storage import StorageError

logger = logging.getLogger(__name__)

NO_TRACKS = "no tracks match filters"
EMPTY_RESULT = "algorithm produced empty playlist"


def _failure(error: str, error_type: str, **extra) -> dict:
    return {"ok": False, "error": error, "error_type": error_type, **extra}


# ---------------------------------------------------------------------------
# Length resolution
# ---------------------------------------------------------------------------

def resolve_track_count(options: GenerationOptions, pool: Optional[List[dict]] = None) -> int:
    """Target number of tracks: explicit count, else derived from duration_min, else 50.

    A duration target uses the pool's average track length (floored at one
    minute); before a pool exists it assumes 3.5 minutes per track.
    """
    if options.track_count:
        return max(1, min(MAX_TRACKS, options.track_count))

    if options.duration_min:
        target_ms = options.duration_min * 60 * 1000
        if pool:
            avg_ms = max(MIN_AVG_DURATION_MS, average_duration_ms(pool))
        else:
            avg_ms = DEFAULT_AVG_DURATION_MS
        return max(1, min(MAX_TRACKS, math.ceil(target_ms / avg_ms)))

    return DEFAULT_TRACK_COUNT


# ---------------------------------------------------------------------------
# Shared steps
# ---------------------------------------------------------------------------

def _clock_templates(store, options: GenerationOptions, now: datetime) -> list:
    local = now.astimezone()
    hours = options.clock_hours or (local.hour,)
    day = options.day_of_week if options.day_of_week is not None else local.weekday()
    try:
        return store.fetch_clock_templates(hours, day)
    except StorageError as e:
        logger.warning(f"Clock templates unavailable: {e}")
        return []


def _context(store, options: GenerationOptions, rng, now, with_jingles: bool) -> GenerationContext:
    ctx = GenerationContext(rng=rng or random.Random(), now=now or datetime.now(timezone.utc))
    if with_jingles and options.rules.get("jingle_every_n", 0) > 0:
        ctx.jingles = build_jingle_pool(store)
    if options.algorithm is Algorithm.CLOCK_WHEEL:
        ctx.clock_templates = _clock_templates(store, options, ctx.now)
    return ctx


def format_for_preview(tracks: List[dict]) -> List[dict]:
    """Compact, display-ready rows for a preview listing."""
    out = []
    for t in tracks:
        duration_ms = t.get("duration_ms") or 0
        out.append({
            "id":         t["id"],
            "title":      t.get("title") or "",
            "artist":     t.get("artist") or "",
            "album":      t.get("album") or "",
            "genre":      t.get("genre") or "",
            "duration":   format_duration(round(duration_ms / 1000)) if duration_ms > 0 else "—",
            "bpm":        round(float(t["bpm"])) if t.get("bpm") is not None else None,
            "rating":     int(t.get("rating") or 3),
            "energy":     round(float(t["energy"]), 2) if t.get("energy") is not None else None,
            "is_jingle":  bool(t.get("is_jingle")),
            "is_sweeper": bool(t.get("is_sweeper")),
        })
    return out


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def generate(data: dict, store, exporter: Optional[PlaylistExporter] = None,
             rng: Optional[random.Random] = None, now: Optional[datetime] = None) -> dict:
    """Generate, persist and optionally export a playlist.

    Regenerating under an existing name replaces that playlist's tracks.
    """
    try:
        options = GenerationOptions.from_dict(data)
    except ValueError as e:
        return _failure(str(e), "input")
    if not options.name:
        return _failure("Playlist name is required", "input")

    try:
        return _generate(options, store, exporter, rng, now)
    except Exception as e:
        logger.exception(f"Playlist generation failed for '{options.name}'")
        return _failure(f"internal error: {e}", "internal")


def _generate(options: GenerationOptions, store, exporter, rng, now) -> dict:
    pool = build_pool(store, options.filters)
    if not pool:
        return _failure(NO_TRACKS, "empty", pool_size=0)

    count = resolve_track_count(options, pool)
    ctx = _context(store, options, rng, now, with_jingles=True)
    tracks = run_algorithm(pool, options, count, ctx)
    if not tracks:
        return _failure(EMPTY_RESULT, "empty", pool_size=len(pool))

    try:
        with store.transaction():
            playlist_id = store.upsert_playlist(
                options.name,
                playlist_type(options.algorithm),
                options.description,
                options.snapshot(),
                len(tracks),
            )
            written = store.replace_playlist_tracks(playlist_id, tracks)
            store.update_track_count(playlist_id, written)
    except StorageError as e:
        logger.error(f"Could not save playlist '{options.name}': {e}")
        return _failure(f"database error: {e}", "database", pool_size=len(pool))

    export_path = None
    export_error = None
    if options.write_export and exporter is not None:
        try:
            export_path = str(exporter.export(options.name, tracks))
        except Exception as e:
            logger.warning(f"Export of '{options.name}' failed: {e}", exc_info=True)
            export_error = str(e)

    duration_sec = sum((t.get("duration_ms") or 0) for t in tracks) // 1000
    logger.info(
        f"Playlist generated: {options.name} ({options.algorithm.value}) "
        f"→ {len(tracks)} tracks from a pool of {len(pool)}"
    )

    return {
        "ok":           True,
        "playlist_id":  playlist_id,
        "track_count":  len(tracks),
        "pool_size":    len(pool),
        "duration_sec": duration_sec,
        "export_path":  export_path,
        "export_error": export_error,
        "stats":        validate_playlist(tracks, options.rules)["stats"],
    }


def preview(data: dict, store, limit: int = 20, rng: Optional[random.Random] = None,
            now: Optional[datetime] = None) -> dict:
    """Sample of what generate would produce; no jingles, nothing written."""
    try:
        options = GenerationOptions.from_dict(data)
    except ValueError as e:
        return _failure(str(e), "input")

    try:
        return _preview(options, store, max(1, int(limit)), rng, now)
    except Exception as e:
        logger.exception("Playlist preview failed")
        return _failure(f"internal error: {e}", "internal")


def _preview(options: GenerationOptions, store, limit: int, rng, now) -> dict:
    pool = build_pool(store, options.filters)
    if not pool:
        return _failure(NO_TRACKS, "empty", tracks=[], pool_size=0)

    count = resolve_track_count(options, pool)
    options = dataclasses.replace(options, rules={**options.rules, "jingle_every_n": 0})
    ctx = _context(store, options, rng, now, with_jingles=False)
    tracks = run_algorithm(pool, options, min(limit, count), ctx)
    if not tracks:
        return _failure(EMPTY_RESULT, "empty", tracks=[], pool_size=len(pool))

    avg_ms = average_duration_ms(pool, ignore_zero=False)

    return {
        "ok":                     True,
        "tracks":                 format_for_preview(tracks),
        "pool_size":              len(pool),
        "estimated_total":        count,
        "estimated_duration_sec": int(count * avg_ms / 1000),
    }


def estimate_pool_size(filters, store) -> int:
    """How many tracks the given filters would put in the pool (0 on bad filters)."""
    try:
        filters = Filters.from_dict(filters)
    except ValueError as e:
        logger.info(f"Pool estimate with invalid filters: {e}")
        return 0
    return count_pool(store, filters)
