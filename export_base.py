"""
Export framework for generated playlists.
Base class and common logic for writing playlists to files a playout encoder reads.
"""
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 64


def safe_filename(name: str) -> str:
    """Reduce a playlist name to [A-Za-z0-9_-], collapsing runs of underscores."""
    safe = re.sub(r"[^a-zA-Z0-9_\-]", "_", name or "")
    safe = re.sub(r"_+", "_", safe).strip("_")
    return safe[:MAX_NAME_LENGTH] or "playlist"


def format_duration(seconds: int) -> str:
    """Format seconds as M:SS, or H:MM:SS from an hour up."""
    if seconds < 0:
        return "—"
    h = seconds // 3600
    m = (seconds % 3600) // 60
    s = seconds % 60
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


class PlaylistExporter(ABC):
    """Base class for all playlist exporters"""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    @abstractmethod
    def get_file_extension(self) -> str:
        """Get the file extension for this format (e.g., 'm3u', 'csv')"""
        pass

    @abstractmethod
    def render(self, name: str, tracks: List[dict], generated_at: datetime) -> List[str]:
        """Return the file content as a list of lines"""
        pass

    def generate_filename(self, name: str, when: datetime) -> str:
        """{safe-name}_{YYYYMMDD_HHMM}.{ext}"""
        return f"{safe_filename(name)}_{when.strftime('%Y%m%d_%H%M')}.{self.get_file_extension()}"

    def export(self, name: str, tracks: List[dict], when: Optional[datetime] = None) -> Path:
        """Write the playlist and return the path of the written file.

        Raises OSError when the directory or file cannot be written.
        """
        when = when or datetime.now()
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / self.generate_filename(name, when)
        lines = self.render(name, tracks, when)
        with open(path, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
        logger.info(f"Exported {len(tracks)} tracks to {path}")
        return path


def get_exporter(fmt: str, output_dir: Path) -> PlaylistExporter:
    """Exporter for a format name ('m3u' or 'csv')."""
    from exporter_csv import CSVExporter
    from exporter_m3u import ExtM3UExporter

    fmt = (fmt or "m3u").strip().lower()
    if fmt == "csv":
        return CSVExporter(output_dir)
    if fmt in ("m3u", "m3u8"):
        return ExtM3UExporter(output_dir)
    raise ValueError(f"Unknown export format '{fmt}'. Expected 'm3u' or 'csv'")
