import argparse
import json
import logging
from pathlib import Path

import config
import playlist_manager
from export_base import format_duration, get_exporter
from logger import setup_logging
from storage import SqliteStore, StorageError

logger = logging.getLogger(__name__)


def load_json(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


def load_tracks(path: Path) -> list:
    """Track rows from a JSON array or {"tracks": [...]} document."""
    raw = load_json(path)
    tracks = raw if isinstance(raw, list) else raw.get("tracks", [])
    return [t for t in tracks if isinstance(t, dict) and "id" in t]


def build_options(args) -> dict:
    options = {
        "name":             args.name,
        "algorithm":        args.algorithm,
        "track_count":      args.count,
        "duration_min":     args.duration,
        "energy_direction": args.direction,
        "daypart_hour":     args.hour,
        "clock_hours":      args.clock_hours or [],
        "write_export":     not args.no_export,
        "filters": {
            "genre":           args.genre or "",
            "category_ids":    args.category or [],
            "rating_min":      args.rating_min,
            "include_jingles": args.include_jingles,
        },
    }
    rules = config.load_rules(args.rules_file)
    if args.jingle_every is not None:
        rules["jingle_every_n"] = args.jingle_every
    options["rules"] = rules
    return options


def print_preview(result: dict) -> None:
    print(f"\nPreview ({result['estimated_total']} tracks, "
          f"~{format_duration(result['estimated_duration_sec'])}, "
          f"pool {result['pool_size']})")
    print("=" * 40)
    for idx, t in enumerate(result["tracks"], start=1):
        print(f"{idx:3d}. {t['artist']} - {t['title']} [{t['duration']}]")


def print_generated(result: dict) -> None:
    print(f"\nPlaylist #{result['playlist_id']}: {result['track_count']} tracks "
          f"({format_duration(result['duration_sec'])}) from a pool of {result['pool_size']}")
    if result["export_path"]:
        print(f"  Exported to {result['export_path']}")
    if result["export_error"]:
        print(f"  Export failed: {result['export_error']}")
    stats = result["stats"]
    print(f"  {stats['unique_artists']} artists, {stats['jingles']} jingles")


def main():
    parser = argparse.ArgumentParser(description="Generate radio playlists from a track library")
    parser.add_argument("--db", default=config.DB_PATH, help="SQLite database path")
    parser.add_argument("--import", dest="import_file", type=Path,
                        help="Seed the library from a JSON track list, then exit")
    parser.add_argument("--name", help="Playlist name (required to generate)")
    parser.add_argument("--algorithm", default="weighted_random",
                        help="e.g. smart_rotation, clock_wheel, energy_flow")
    parser.add_argument("--count", type=int, help="Number of tracks")
    parser.add_argument("--duration", type=int, help="Target length in minutes")
    parser.add_argument("--direction", default="wave", help="Energy flow: ascending, descending, wave")
    parser.add_argument("--hour", type=int, help="Daypart hour (0-23)")
    parser.add_argument("--clock-hours", type=int, nargs="*", help="Clock wheel hours")
    parser.add_argument("--genre", help="Genre substring filter")
    parser.add_argument("--category", type=int, action="append", help="Category id (repeatable)")
    parser.add_argument("--rating-min", type=int, help="Minimum rating (1-5)")
    parser.add_argument("--include-jingles", action="store_true")
    parser.add_argument("--jingle-every", type=int, help="Insert a jingle after every N tracks")
    parser.add_argument("--rules-file", default=config.RULES_FILE)
    parser.add_argument("--format", default=config.EXPORT_FORMAT, help="Export format: m3u or csv")
    parser.add_argument("--export-dir", default=config.EXPORT_DIR)
    parser.add_argument("--no-export", action="store_true")
    parser.add_argument("--preview", action="store_true", help="Show a sample without saving")
    parser.add_argument("--limit", type=int, default=20, help="Preview size")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    setup_logging(level=args.log_level)

    try:
        store = SqliteStore(args.db)
    except StorageError as e:
        raise SystemExit(f"Cannot open database: {e}")

    try:
        if args.import_file:
            try:
                n = store.import_tracks(load_tracks(args.import_file))
            except (OSError, ValueError, StorageError) as e:
                raise SystemExit(f"Import failed: {e}")
            print(f"Imported {n} tracks into {args.db}")
            return

        options = build_options(args)

        if args.preview:
            result = playlist_manager.preview(options, store, limit=args.limit)
            if not result["ok"]:
                raise SystemExit(f"Preview failed: {result['error']}")
            print_preview(result)
            return

        if not args.name:
            raise SystemExit("--name is required to generate a playlist")
        try:
            exporter = get_exporter(args.format, args.export_dir)
        except ValueError as e:
            raise SystemExit(str(e))

        result = playlist_manager.generate(options, store, exporter=exporter)
        if not result["ok"]:
            raise SystemExit(f"Generation failed ({result['error_type']}): {result['error']}")
        print_generated(result)
    finally:
        store.close()


if __name__ == "__main__":
    main()
