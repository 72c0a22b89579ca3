"""
engine/strategies.py — The eight playlist selection algorithms.

Every strategy takes the candidate pool and returns an ordered list of at
most ``count`` tracks.  Pools are never mutated; strategies that re-weight or
re-order work on copies.  Randomness comes from the ``rng`` passed in so runs
can be replayed with a seed.
"""
import logging
import math
import random
from datetime import datetime
from typing import Dict, List, Optional

from engine.models import ClockHourTemplate, GenerationOptions, energy_of
from engine.sampler import SeparationWindow, draw_without_replacement, hours_since, weighted_pick

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Weighted random
# ---------------------------------------------------------------------------

def weighted_random(pool: List[dict], count: int, rng: random.Random) -> List[dict]:
    """Cumulative-weight draw without replacement."""
    return draw_without_replacement(pool, count, rng)


# ---------------------------------------------------------------------------
# Smart rotation
# ---------------------------------------------------------------------------

def rotation_score(track: dict, now: datetime) -> float:
    """Lower is better: penalise play count, reward rating, weight and rest time."""
    play_penalty = (track.get("play_count") or 0) * 2.0
    rating_bonus = ((track.get("rating") or 3) - 1.0) * -5.0
    weight_bonus = (float(track.get("weight", 1.0)) - 1.0) * -3.0
    fresh_bonus = 0.0
    if track.get("last_played_at"):
        hrs = hours_since(track["last_played_at"], now)
        if math.isfinite(hrs):
            fresh_bonus = -min(20.0, hrs / 24.0 * 5.0)
    return play_penalty + rating_bonus + weight_bonus + fresh_bonus


def smart_rotation(pool: List[dict], count: int, rules: dict,
                   now: datetime, window: Optional[SeparationWindow] = None) -> List[dict]:
    """Best-scored eligible track at each step, relaxing artist separation when stuck.

    ``window`` may be supplied by callers that want to inspect whether
    relaxation kicked in.
    """
    artist_sep = int(rules.get("artist_separation", 3))
    window = window or SeparationWindow(
        artist_separation=artist_sep,
        song_separation_hrs=rules.get("song_separation_hrs", 4),
        now=now,
    )

    # sorted() is stable, so equal scores keep pool order
    ranked = sorted(pool, key=lambda t: rotation_score(t, now))

    result: List[dict] = []
    used = set()
    max_attempts = count * 25 + 200
    attempts = 0

    while len(result) < count and len(used) < len(ranked) and attempts < max_attempts:
        attempts += 1
        best = None
        for t in ranked:
            if t["id"] in used:
                continue
            if window.allows(t):
                best = t
                break

        if best is not None:
            result.append(best)
            used.add(best["id"])
            window.record(best)
        else:
            window.relax()
            logger.debug(f"smart_rotation: relaxing artist window to {window.effective_window}")
            if window.relax_level > artist_sep + 2:
                break

    return result


# ---------------------------------------------------------------------------
# Hot rotation
# ---------------------------------------------------------------------------

def hot_weight(track: dict) -> float:
    rating = max(1.0, float(track.get("rating") or 3))
    plays = max(0.0, float(track.get("play_count") or 0))
    return rating * (1.0 + math.log1p(plays))


def hot_rotation(pool: List[dict], count: int, rng: random.Random) -> List[dict]:
    """Weighted draw where rating and play history set the weight."""
    hot_pool = [{**t, "weight": hot_weight(t)} for t in pool]
    return draw_without_replacement(hot_pool, count, rng)


# ---------------------------------------------------------------------------
# Clock wheel
# ---------------------------------------------------------------------------

def _matches_segment(track: dict, seg_type: str) -> bool:
    if seg_type == "jingle":
        return track.get("is_jingle", False)
    if seg_type == "sweeper":
        return track.get("is_sweeper", False)
    if seg_type == "spot":
        return track.get("is_spot", False)
    return not (track.get("is_jingle") or track.get("is_sweeper") or track.get("is_spot"))


def clock_wheel(pool: List[dict], count: int, rules: dict,
                templates: List[ClockHourTemplate], rng: random.Random,
                now: datetime) -> List[dict]:
    """Fill each template segment, in order, with weighted draws of its role."""
    if not templates:
        logger.info("clock_wheel: no clock templates for the requested hours, using smart_rotation")
        return smart_rotation(pool, count, rules, now)

    by_role: Dict[str, List[dict]] = {}
    result: List[dict] = []
    used = set()

    for tmpl in templates:
        for seg in tmpl.segments:
            if seg.type not in by_role:
                by_role[seg.type] = [t for t in pool if _matches_segment(t, seg.type)]
            for _ in range(seg.count):
                if len(result) >= count:
                    break
                pick = weighted_pick(by_role[seg.type], used, rng)
                if pick is None:
                    break
                result.append(pick)
                used.add(pick["id"])

    if not result:
        logger.info("clock_wheel: templates produced nothing, using weighted_random")
        return weighted_random(pool, count, rng)
    return result


# ---------------------------------------------------------------------------
# Genre block
# ---------------------------------------------------------------------------

def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def genre_block(pool: List[dict], count: int, rng: random.Random) -> List[dict]:
    """Round-robin contiguous blocks, one genre at a time."""
    by_genre: Dict[str, List[dict]] = {}
    for t in pool:
        genre = (t.get("genre") or "").strip() or "Unknown"
        by_genre.setdefault(genre, []).append(t)

    for tracks in by_genre.values():
        rng.shuffle(tracks)

    block_size = max(3, _round_half_up(count / max(1, len(by_genre))))
    result: List[dict] = []
    rounds = 0

    while len(result) < count and rounds < 200:
        rounds += 1
        added = False
        for tracks in by_genre.values():
            if len(result) >= count:
                break
            if not tracks:
                continue
            block = tracks[:block_size]
            del tracks[:block_size]
            for t in block[:count - len(result)]:
                result.append(t)
                added = True
        if not added:
            break

    return result


# ---------------------------------------------------------------------------
# Energy flow
# ---------------------------------------------------------------------------

def energy_flow(pool: List[dict], count: int, direction: str = "wave") -> List[dict]:
    """Order by energy: ascending, descending, or rising then falling (wave)."""
    ordered = [{**t, "energy": energy_of(t)} for t in pool]

    if direction == "ascending":
        ordered.sort(key=lambda t: t["energy"])
    elif direction == "descending":
        ordered.sort(key=lambda t: t["energy"], reverse=True)
    else:
        ordered.sort(key=lambda t: t["energy"])
        mid = math.ceil(len(ordered) / 2)
        ordered = ordered[:mid] + list(reversed(ordered[mid:]))

    return ordered[:count]


# ---------------------------------------------------------------------------
# AI adaptive
# ---------------------------------------------------------------------------

def adaptive_score(track: dict, max_plays: int, now: datetime) -> float:
    """Composite 0–1 score; higher is better."""
    play_norm = 1.0 - (track.get("play_count") or 0) / max_plays
    rating_norm = ((track.get("rating") or 3) - 1.0) / 4.0
    weight_norm = min(1.0, max(0.0, float(track.get("weight", 1.0)) / 10.0))
    energy_norm = energy_of(track)

    freshness = 1.0
    if track.get("last_played_at"):
        freshness = min(1.0, max(0.0, hours_since(track["last_played_at"], now) / 168.0))

    return (freshness * 0.35
            + rating_norm * 0.30
            + weight_norm * 0.20
            + play_norm * 0.10
            + energy_norm * 0.05)


def ai_adaptive(pool: List[dict], count: int, rules: dict, now: datetime) -> List[dict]:
    """Highest composite score first; artist window in pass one, none in pass two."""
    max_plays = max([1] + [t.get("play_count") or 0 for t in pool])
    ranked = sorted(pool, key=lambda t: adaptive_score(t, max_plays, now), reverse=True)

    window = SeparationWindow(artist_separation=max(1, int(rules.get("artist_separation", 3))),
                              now=now)
    result: List[dict] = []
    used = set()

    for t in ranked:
        if len(result) >= count:
            break
        if not window.artist_ok(t):
            continue
        result.append(t)
        used.add(t["id"])
        window.record(t)

    for t in ranked:
        if len(result) >= count:
            break
        if t["id"] in used:
            continue
        result.append(t)
        used.add(t["id"])

    return result


# ---------------------------------------------------------------------------
# Daypart
# ---------------------------------------------------------------------------

DAYPART_MIN_POOL = 10


def daypart_band(hour: int) -> tuple:
    """Energy band (min, max) for an hour of the day."""
    if 6 <= hour < 12:
        return 0.6, 1.0   # morning
    if 12 <= hour < 18:
        return 0.4, 0.8   # afternoon
    if 18 <= hour < 22:
        return 0.3, 0.7   # evening
    return 0.0, 0.5       # overnight


def daypart(pool: List[dict], count: int, hour: int, rng: random.Random) -> List[dict]:
    """Weighted draw from the tracks whose energy fits the hour."""
    lo, hi = daypart_band(hour)
    banded = [t for t in pool if lo <= energy_of(t) <= hi]
    if len(banded) < DAYPART_MIN_POOL:
        logger.debug(f"daypart: only {len(banded)} tracks in band {lo}-{hi}, using full pool")
        banded = pool
    return weighted_random(banded, count, rng)


# ---------------------------------------------------------------------------
# Option-level adapters (uniform signature for the dispatcher)
# ---------------------------------------------------------------------------

def run_weighted_random(pool, count, options: GenerationOptions, ctx):
    return weighted_random(pool, count, ctx.rng)


def run_smart_rotation(pool, count, options: GenerationOptions, ctx):
    return smart_rotation(pool, count, options.rules, ctx.now)


def run_hot_rotation(pool, count, options: GenerationOptions, ctx):
    return hot_rotation(pool, count, ctx.rng)


def run_clock_wheel(pool, count, options: GenerationOptions, ctx):
    return clock_wheel(pool, count, options.rules, ctx.clock_templates or [], ctx.rng, ctx.now)


def run_genre_block(pool, count, options: GenerationOptions, ctx):
    return genre_block(pool, count, ctx.rng)


def run_energy_flow(pool, count, options: GenerationOptions, ctx):
    return energy_flow(pool, count, options.energy_direction)


def run_ai_adaptive(pool, count, options: GenerationOptions, ctx):
    return ai_adaptive(pool, count, options.rules, ctx.now)


def run_daypart(pool, count, options: GenerationOptions, ctx):
    hour = options.daypart_hour if options.daypart_hour is not None else ctx.now.astimezone().hour
    return daypart(pool, count, hour, ctx.rng)
