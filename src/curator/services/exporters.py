"""Render playlists as plain text, CSV or JSON downloads."""

import csv
import io
import json
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from .exceptions import InvalidInput
from .playlist_types import Song


def playlist_as_text(name: str, songs: List[Song]) -> str:
    lines = [f"{index}. {song.title} - {song.artist}" for index, song in enumerate(songs, start=1)]
    return f"{name}\n\n" + "\n".join(lines)


def playlist_as_csv(name: str, songs: List[Song]) -> str:  # pylint: disable=unused-argument
    """CSV with a `Track,Artist,Title` header; ``name`` is not part of the payload."""
    buffer = io.StringIO()
    buffer.write("Track,Artist,Title\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for index, song in enumerate(songs, start=1):
        writer.writerow([index, song.artist, song.title])
    return buffer.getvalue().rstrip("\n")


def playlist_as_json(name: str, songs: List[Song], *, created: Optional[datetime] = None) -> str:
    created_at = created or datetime.now(timezone.utc)
    return json.dumps(
        {
            "name": name,
            "created": created_at.isoformat(),
            "tracks": [
                {"position": index, "title": song.title, "artist": song.artist}
                for index, song in enumerate(songs, start=1)
            ],
        },
        indent=2,
        ensure_ascii=False,
    )


# format -> (renderer, content type, file extension)
EXPORT_FORMATS: Dict[str, Tuple[Callable[..., str], str, str]] = {
    "text": (playlist_as_text, "text/plain; charset=utf-8", "txt"),
    "csv": (playlist_as_csv, "text/csv; charset=utf-8", "csv"),
    "json": (playlist_as_json, "application/json", "json"),
}


def render_playlist(export_format: str, name: str, songs: List[Song]) -> Tuple[str, str, str]:
    """Return (body, content type, file extension) for ``export_format``."""
    try:
        renderer, content_type, extension = EXPORT_FORMATS[export_format]
    except KeyError as exc:
        raise InvalidInput(f"Unsupported export format '{export_format}'.") from exc
    return renderer(name, songs), content_type, extension
