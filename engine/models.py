"""
engine/models.py — Track defaults, generation options and the algorithm catalog.

Tracks travel through the engine as plain dicts (one per library row) so that
storage rows, pool entries and API payloads share a single shape.  Options and
filters are parsed once at the boundary into frozen dataclasses.
"""

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from engine.rules import merge_rules

MAX_TRACKS = 5000
DEFAULT_TRACK_COUNT = 50


def _now():
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Track defaults  (mirrors the media library "tracks" table)
# ---------------------------------------------------------------------------

TRACK_DEFAULTS = {
    "file_path":      "",
    "title":          "",
    "artist":         "",
    "album":          "",
    "genre":          "",
    "year":           None,
    "duration_ms":    0,
    "bpm":            None,
    "energy":         None,    # 0.0 – 1.0; None = not analysed (treated as 0.5)
    "mood":           "",
    "rating":         3,       # 1 – 5
    "play_count":     0,
    "last_played_at": None,    # ISO-8601 string

    # --- Role flags ---
    "is_jingle":      False,   # station ID
    "is_sweeper":     False,   # transition
    "is_spot":        False,   # advertisement

    # --- Library housekeeping ---
    "is_missing":     False,   # file no longer on disk; never scheduled
}


def make_track(data: dict) -> dict:
    """Return a pool entry: defaults merged with a storage row, plus weight 1.0."""
    track = {**TRACK_DEFAULTS}
    track.update(data)
    track["id"] = int(track["id"])
    track["duration_ms"] = int(track.get("duration_ms") or 0)
    track["rating"] = int(track.get("rating") or 3)
    track["play_count"] = int(track.get("play_count") or 0)
    for flag in ("is_jingle", "is_sweeper", "is_spot", "is_missing"):
        track[flag] = bool(track.get(flag))
    track.setdefault("weight", 1.0)
    if track.get("weight") is None:
        track["weight"] = 1.0
    return track


def energy_of(track: dict) -> float:
    """Energy level of a track, 0.5 when the library has no value."""
    energy = track.get("energy")
    return 0.5 if energy is None else float(energy)


# ---------------------------------------------------------------------------
# Algorithms
# ---------------------------------------------------------------------------

class Algorithm(Enum):
    """Selection strategy used to turn a pool into an ordered playlist."""
    WEIGHTED_RANDOM = "weighted_random"
    SMART_ROTATION = "smart_rotation"
    HOT_ROTATION = "hot_rotation"
    CLOCK_WHEEL = "clock_wheel"
    GENRE_BLOCK = "genre_block"
    ENERGY_FLOW = "energy_flow"
    AI_ADAPTIVE = "ai_adaptive"
    DAYPART = "daypart"

    @classmethod
    def parse(cls, value) -> "Algorithm":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            valid = ", ".join(a.value for a in cls)
            raise ValueError(f"Unknown algorithm '{value}'. Expected one of: {valid}")


ALGORITHM_CATALOG = {
    Algorithm.WEIGHTED_RANDOM: {
        "label": "Weighted Random",
        "desc":  "Probability-weighted random selection. Higher-weight tracks appear more often.",
        "type":  "static",
    },
    Algorithm.SMART_ROTATION: {
        "label": "Smart Rotation",
        "desc":  "Respects artist and song separation, favours rested and under-played tracks.",
        "type":  "smart",
    },
    Algorithm.HOT_ROTATION: {
        "label": "Hot Rotation",
        "desc":  "Favours highly rated, frequently played tracks for heavy rotation.",
        "type":  "smart",
    },
    Algorithm.CLOCK_WHEEL: {
        "label": "Clock Wheel",
        "desc":  "Follows the hour templates: song, jingle, sweeper and spot counts per segment.",
        "type":  "clock",
    },
    Algorithm.GENRE_BLOCK: {
        "label": "Genre Block",
        "desc":  "Groups tracks into consecutive genre blocks for specialty shows.",
        "type":  "static",
    },
    Algorithm.ENERGY_FLOW: {
        "label": "Energy Flow",
        "desc":  "Orders tracks by energy: ascending build-up, descending cool-down or a wave arc.",
        "type":  "smart",
    },
    Algorithm.AI_ADAPTIVE: {
        "label": "AI Adaptive",
        "desc":  "Composite score of freshness, rating, weight, play history and energy.",
        "type":  "ai",
    },
    Algorithm.DAYPART: {
        "label": "Daypart",
        "desc":  "Matches track energy to the time of day: lively mornings, relaxed overnights.",
        "type":  "ai",
    },
}


def algo_catalog() -> dict:
    """Algorithm catalog keyed by algorithm name, for selector UIs."""
    return {
        algo.value: {"label": info["label"], "desc": info["desc"]}
        for algo, info in ALGORITHM_CATALOG.items()
    }


def playlist_type(algorithm: Algorithm) -> str:
    return ALGORITHM_CATALOG[algorithm]["type"]


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def _opt_int(data: dict, key: str) -> Optional[int]:
    val = data.get(key)
    if val is None or val == "":
        return None
    try:
        return int(val)
    except (TypeError, ValueError):
        raise ValueError(f"Filter '{key}' must be an integer, got {val!r}")


def _opt_float(data: dict, key: str) -> Optional[float]:
    val = data.get(key)
    if val is None or val == "":
        return None
    try:
        return float(val)
    except (TypeError, ValueError):
        raise ValueError(f"Filter '{key}' must be a number, got {val!r}")


_TRUE_WORDS = ("true", "1", "yes", "on")
_FALSE_WORDS = ("false", "0", "no", "off")


def _flag(data: dict, key: str, default: bool) -> bool:
    val = data.get(key)
    if val is None or val == "":
        return default
    if isinstance(val, bool):
        return val
    if isinstance(val, int) and val in (0, 1):
        return bool(val)
    if isinstance(val, str) and val.strip().lower() in _TRUE_WORDS + _FALSE_WORDS:
        return val.strip().lower() in _TRUE_WORDS
    raise ValueError(f"'{key}' must be true or false, got {val!r}")


@dataclass(frozen=True)
class Filters:
    """Predicates used to build a track pool."""
    category_ids: FrozenSet[int] = frozenset()
    genre: str = ""
    include_jingles: bool = False
    include_sweepers: bool = False
    include_spots: bool = False
    year_from: Optional[int] = None
    year_to: Optional[int] = None
    bpm_min: Optional[float] = None
    bpm_max: Optional[float] = None
    rating_min: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Filters":
        if isinstance(data, cls):
            return data
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError("Filters must be an object")

        raw_ids = data.get("category_ids") or []
        if not isinstance(raw_ids, (list, tuple, set, frozenset)):
            raise ValueError("Filter 'category_ids' must be a list")
        try:
            category_ids = frozenset(int(i) for i in raw_ids if int(i) > 0)
        except (TypeError, ValueError):
            raise ValueError("Filter 'category_ids' must contain integers")

        return cls(
            category_ids=category_ids,
            genre=str(data.get("genre") or "").strip(),
            include_jingles=_flag(data, "include_jingles", False),
            include_sweepers=_flag(data, "include_sweepers", False),
            include_spots=_flag(data, "include_spots", False),
            year_from=_opt_int(data, "year_from"),
            year_to=_opt_int(data, "year_to"),
            bpm_min=_opt_float(data, "bpm_min"),
            bpm_max=_opt_float(data, "bpm_max"),
            rating_min=_opt_int(data, "rating_min"),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["category_ids"] = sorted(self.category_ids)
        return data


# ---------------------------------------------------------------------------
# Clock templates
# ---------------------------------------------------------------------------

SEGMENT_TYPES = ("song", "jingle", "sweeper", "spot")


@dataclass(frozen=True)
class ClockSegment:
    type: str = "song"
    count: int = 1


@dataclass(frozen=True)
class ClockHourTemplate:
    """Ordered segment layout for one hour of the day."""
    hour: int
    segments: List[ClockSegment] = field(default_factory=list)
    day_of_week: Optional[int] = None
    name: str = ""

    @classmethod
    def from_row(cls, row: dict) -> "ClockHourTemplate":
        raw = row.get("segments")
        if raw is None:
            try:
                raw = json.loads(row.get("segment_json") or "[]")
            except (TypeError, ValueError):
                raw = []
        segments = []
        for seg in raw if isinstance(raw, list) else []:
            if not isinstance(seg, dict):
                continue
            seg_type = seg.get("type", "song")
            if seg_type not in SEGMENT_TYPES:
                seg_type = "song"
            try:
                count = max(1, int(seg.get("count", 1)))
            except (TypeError, ValueError):
                count = 1
            segments.append(ClockSegment(type=seg_type, count=count))
        return cls(
            hour=int(row.get("hour", 0)) % 24,
            segments=segments,
            day_of_week=row.get("day_of_week"),
            name=row.get("name") or "",
        )


# ---------------------------------------------------------------------------
# Generation options
# ---------------------------------------------------------------------------

ENERGY_DIRECTIONS = ("ascending", "descending", "wave")


def _hour(val, key: str) -> int:
    try:
        hour = int(val)
    except (TypeError, ValueError):
        raise ValueError(f"'{key}' must be an hour between 0 and 23, got {val!r}")
    if not 0 <= hour <= 23:
        raise ValueError(f"'{key}' must be an hour between 0 and 23, got {hour}")
    return hour


@dataclass(frozen=True)
class GenerationOptions:
    """Everything a single generate/preview run needs, validated."""
    algorithm: Algorithm = Algorithm.WEIGHTED_RANDOM
    name: str = ""
    description: str = ""
    track_count: Optional[int] = None
    duration_min: Optional[int] = None
    filters: Filters = field(default_factory=Filters)
    rules: Dict = field(default_factory=lambda: merge_rules({}))
    energy_direction: str = "wave"
    daypart_hour: Optional[int] = None
    clock_hours: tuple = ()
    day_of_week: Optional[int] = None
    write_export: bool = True

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "GenerationOptions":
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError("Options must be an object")

        track_count = None
        if data.get("track_count") not in (None, ""):
            try:
                track_count = int(data["track_count"])
            except (TypeError, ValueError):
                raise ValueError(f"'track_count' must be an integer, got {data['track_count']!r}")
            if track_count < 1:
                raise ValueError("'track_count' must be at least 1")

        duration_min = None
        if data.get("duration_min") not in (None, ""):
            try:
                duration_min = int(data["duration_min"])
            except (TypeError, ValueError):
                raise ValueError(f"'duration_min' must be an integer, got {data['duration_min']!r}")
            if duration_min < 1:
                raise ValueError("'duration_min' must be at least 1")

        direction = str(data.get("energy_direction") or "wave").strip().lower()
        if direction not in ENERGY_DIRECTIONS:
            raise ValueError(f"'energy_direction' must be one of: {', '.join(ENERGY_DIRECTIONS)}")

        daypart_hour = None
        if data.get("daypart_hour") not in (None, ""):
            daypart_hour = _hour(data["daypart_hour"], "daypart_hour")

        raw_hours = data.get("clock_hours") or []
        if not isinstance(raw_hours, (list, tuple)):
            raise ValueError("'clock_hours' must be a list of hours")
        clock_hours = tuple(sorted({_hour(h, "clock_hours") for h in raw_hours}))

        day_of_week = None
        if data.get("day_of_week") not in (None, ""):
            try:
                day_of_week = int(data["day_of_week"])
            except (TypeError, ValueError):
                raise ValueError("'day_of_week' must be an integer between 0 and 6")
            if not 0 <= day_of_week <= 6:
                raise ValueError("'day_of_week' must be an integer between 0 and 6")

        rules = data.get("rules") or {}
        if not isinstance(rules, dict):
            raise ValueError("Rules must be an object")

        return cls(
            algorithm=Algorithm.parse(data.get("algorithm") or Algorithm.WEIGHTED_RANDOM.value),
            name=str(data.get("name") or "").strip(),
            description=str(data.get("description") or "").strip(),
            track_count=track_count,
            duration_min=duration_min,
            filters=Filters.from_dict(data.get("filters")),
            rules=merge_rules(rules),
            energy_direction=direction,
            daypart_hour=daypart_hour,
            clock_hours=clock_hours,
            day_of_week=day_of_week,
            write_export=_flag(data, "write_export", True),
        )

    def snapshot(self) -> str:
        """JSON snapshot stored alongside a generated playlist."""
        return json.dumps({
            "algorithm":        self.algorithm.value,
            "filters":          self.filters.to_dict(),
            "rules":            self.rules,
            "energy_direction": self.energy_direction,
            "generated_at":     _now(),
        })
