"""
CSV exporter for generated playlists.
Generic spreadsheet-friendly log for automation systems that import CSV.
"""
import csv
import io
from datetime import datetime
from typing import List

from export_base import PlaylistExporter, format_duration

FIELDS = ["position", "id", "type", "artist", "title", "album", "genre",
          "duration_sec", "duration", "file_path"]


class CSVExporter(PlaylistExporter):
    """
    Export to CSV, one row per playlist slot.

    Columns: position,id,type,artist,title,album,genre,duration_sec,duration,file_path
    """

    def get_file_extension(self) -> str:
        return "csv"

    def _row(self, position: int, track: dict) -> dict:
        seconds = (track.get("duration_ms") or 0) // 1000
        return {
            "position":     position,
            "id":           track.get("id"),
            "type":         "jingle" if track.get("is_jingle") else "music",
            "artist":       track.get("artist") or "",
            "title":        track.get("title") or "",
            "album":        track.get("album") or "",
            "genre":        track.get("genre") or "",
            "duration_sec": seconds,
            "duration":     format_duration(seconds),
            "file_path":    track.get("file_path") or "",
        }

    def render(self, name: str, tracks: List[dict], generated_at: datetime) -> List[str]:
        buf = io.StringIO()
        w = csv.DictWriter(buf, fieldnames=FIELDS, lineterminator="\n")
        w.writeheader()
        for pos, t in enumerate(tracks, start=1):
            w.writerow(self._row(pos, t))
        return buf.getvalue().rstrip("\n").split("\n")
