"""
engine/rules.py — Rotation rules applied during playlist generation.
"""

DEFAULT_RULES = {
    # --- Artist separation ---
    "artist_separation":   3,   # min picks between two tracks by the same artist

    # --- Song separation ---
    "song_separation_hrs": 4,   # min hours since a track last aired before it can be picked

    # --- Jingle cadence ---
    "jingle_every_n":      0,   # splice a jingle after every N music tracks (0 = off)
}

_INT_RULES = ("artist_separation", "jingle_every_n")
_FLOAT_RULES = ("song_separation_hrs",)


def merge_rules(overrides: dict) -> dict:
    """Return DEFAULT_RULES with caller-supplied overrides applied (shallow merge).

    Values are coerced to numbers; anything negative or non-numeric raises
    ValueError so callers can report it as an input error.
    """
    rules = {**DEFAULT_RULES}
    for key, val in (overrides or {}).items():
        if key not in DEFAULT_RULES:
            continue
        if val is None or val == "":
            continue
        try:
            num = int(val) if key in _INT_RULES else float(val)
        except (TypeError, ValueError):
            raise ValueError(f"Rule '{key}' must be a number, got {val!r}")
        if num < 0:
            raise ValueError(f"Rule '{key}' must not be negative")
        rules[key] = num
    return rules
