"""
engine/validator.py — Checks a generated playlist against rotation rules.
"""
from collections import Counter

from engine.rules import DEFAULT_RULES


def _hms(seconds: int) -> str:
    seconds = int(seconds or 0)
    h = seconds // 3600
    m = (seconds % 3600) // 60
    s = seconds % 60
    return f"{h:02d}:{m:02d}:{s:02d}"


def _is_music(track: dict) -> bool:
    return not track.get("is_jingle", False)


def validate_playlist(tracks: list, rules: dict = None) -> dict:
    """
    Validate an ordered playlist.

    Args:
        tracks: ordered track dicts (music and interleaved jingles).
        rules:  rotation rules; falls back to DEFAULT_RULES if None.

    Returns:
        {
          "valid":      bool,   # False only when an error-level violation exists
          "violations": [...],
          "stats":      {...},
        }
    """
    if rules is None:
        rules = DEFAULT_RULES

    violations: list = []
    artist_sep = int(rules.get("artist_separation", 0) or 0)
    music = [(pos, t) for pos, t in enumerate(tracks, start=1) if _is_music(t)]
    seen_ids: dict = {}

    for i, (pos, track) in enumerate(music):
        artist = (track.get("artist") or "").strip().lower()

        # --- Duplicates ---
        first = seen_ids.get(track.get("id"))
        if first is not None:
            violations.append({
                "position": pos,
                "type":     "duplicate_track",
                "severity": "error",
                "message":  f"Track {track.get('id')} at position {pos} already at position {first}",
            })
        else:
            seen_ids[track.get("id")] = pos

        # --- Missing data ---
        if not artist or not (track.get("title") or "").strip():
            violations.append({
                "position": pos,
                "type":     "missing_metadata",
                "severity": "warning",
                "message":  f"Position {pos} has no artist or title",
            })
        if not track.get("file_path"):
            violations.append({
                "position": pos,
                "type":     "missing_file_path",
                "severity": "warning",
                "message":  f"Position {pos} has no file path",
            })

        # --- Artist separation (counted in music picks) ---
        if artist and artist_sep > 0:
            for j in range(max(0, i - artist_sep), i):
                prev_pos, prev = music[j]
                if (prev.get("artist") or "").strip().lower() == artist:
                    violations.append({
                        "position": pos,
                        "type":     "artist_separation",
                        "severity": "warning",
                        "message":  (
                            f"'{track.get('artist')}' at position {pos} also at position "
                            f"{prev_pos} (gap: {i - j} picks, rule: >{artist_sep})"
                        ),
                    })
                    break

    # --- Stats ---
    artists = Counter(
        (t.get("artist") or "").strip() for _, t in music if (t.get("artist") or "").strip()
    )
    genres = Counter((t.get("genre") or "").strip() or "Unknown" for _, t in music)
    total_secs = sum((t.get("duration_ms") or 0) for t in tracks) // 1000

    errors = sum(1 for v in violations if v["severity"] == "error")
    warnings = sum(1 for v in violations if v["severity"] == "warning")

    stats = {
        "total_tracks":           len(tracks),
        "music_tracks":           len(music),
        "jingles":                len(tracks) - len(music),
        "unique_artists":         len(artists),
        "top_artists":            dict(artists.most_common(5)),
        "genre_breakdown":        dict(genres),
        "total_duration_seconds": total_secs,
        "total_duration_hms":     _hms(total_secs),
        "errors":                 errors,
        "warnings":               warnings,
    }

    return {
        "valid":      errors == 0,
        "violations": violations,
        "stats":      stats,
    }
