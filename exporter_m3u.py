"""
Extended M3U exporter.
Generates playlists a streaming encoder can play sequentially.
"""
import math
from datetime import datetime
from typing import List

from export_base import PlaylistExporter, format_duration


class ExtM3UExporter(PlaylistExporter):
    """
    Export to Extended M3U.

    Format:
        #EXTM3U
        # Generated ...
        #EXTINF:243,Artist - Title
        /path/to/file.mp3
        ...
        # Total runtime: 1:02:10
    """

    def get_file_extension(self) -> str:
        return "m3u"

    def _extinf(self, track: dict) -> tuple:
        duration_ms = track.get("duration_ms") or 0
        seconds = math.ceil(duration_ms / 1000) if duration_ms > 0 else -1
        artist = (track.get("artist") or "").strip()
        title = (track.get("title") or "").strip()
        display = f"{artist} - {title}" if artist else title
        return seconds, f"#EXTINF:{seconds},{display}"

    def render(self, name: str, tracks: List[dict], generated_at: datetime) -> List[str]:
        lines = [
            "#EXTM3U",
            f"# Generated playlist '{name}' at {generated_at.strftime('%Y-%m-%d %H:%M:%S')}",
        ]
        total = 0
        for t in tracks:
            seconds, extinf = self._extinf(t)
            total += max(0, seconds)
            lines.append(extinf)
            lines.append(t.get("file_path") or "")
        lines.append(f"# Total runtime: {format_duration(total)}")
        return lines
