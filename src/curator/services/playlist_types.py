"""Value objects passed between the playlist pipeline, the Spotify helpers and views."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from django.conf import settings

from .exceptions import InvalidInput

PARAMETER_MIN = 1
PARAMETER_MAX = 10
DEFAULT_PLAYLIST_TITLE = "ai-generated playlist"


@dataclass
class Song:
    """A `(title, artist)` candidate, optionally annotated with catalog metadata."""

    title: str
    artist: str
    uri: Optional[str] = None
    cover_url: Optional[str] = None
    preview_url: Optional[str] = None
    popularity: Optional[int] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Song":
        """Build a song from request JSON, accepting camelCase catalog keys."""
        title = str(data.get("title") or "").strip()
        if not title:
            raise InvalidInput("Every song needs a title.")
        popularity = data.get("popularity")
        return cls(
            title=title,
            artist=str(data.get("artist") or "").strip(),
            uri=data.get("uri") or None,
            cover_url=data.get("cover_url") or data.get("coverUrl") or None,
            preview_url=data.get("preview_url") or data.get("previewUrl") or None,
            popularity=int(popularity) if isinstance(popularity, (int, float)) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


def _coerce_level(name: str, value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        level = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"{name} must be a whole number between 1 and 10.") from exc
    if not PARAMETER_MIN <= level <= PARAMETER_MAX:
        raise InvalidInput(f"{name} must be between {PARAMETER_MIN} and {PARAMETER_MAX}.")
    return level


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass(frozen=True)
class AdvancedParameters:
    """
    Numeric preference knobs for one pipeline run.

    A level left as ``None`` means the caller sent no signal for it, in which
    case no constraint text is emitted for that knob.
    """

    include_obscure: bool = False
    energy_level: Optional[int] = None
    tempo: Optional[int] = None
    diversity: Optional[int] = None
    is_used: Optional[bool] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "energy_level", _coerce_level("Energy level", self.energy_level))
        object.__setattr__(self, "tempo", _coerce_level("Tempo", self.tempo))
        object.__setattr__(self, "diversity", _coerce_level("Artist diversity", self.diversity))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AdvancedParameters":
        is_used = data.get("is_used", data.get("isUsed"))
        return cls(
            include_obscure=_coerce_flag(data.get("include_obscure", data.get("includeObscure", False))),
            energy_level=_coerce_level("Energy level", data.get("energy_level", data.get("energyLevel"))),
            tempo=_coerce_level("Tempo", data.get("tempo")),
            diversity=_coerce_level("Artist diversity", data.get("diversity")),
            is_used=None if is_used in (None, "") else _coerce_flag(is_used),
        )

    def active_levels(self) -> Dict[str, Optional[int]]:
        """
        Return the knob values that should steer the playlist prompt.

        ``is_used`` is informational only; a level is absent only when it is None.
        """
        return {"energy_level": self.energy_level, "tempo": self.tempo, "diversity": self.diversity}


@dataclass(frozen=True)
class ProcessedImage:
    """A square-cropped JPEG prepared for transmission to the vision model."""

    base64: str
    data_url: str = ""
    filename: str = "image.jpg"


@dataclass
class PlaylistResponse:
    """Terminal output of the playlist pipeline."""

    playlist: List[Song] = field(default_factory=list)
    generated_title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"playlist": [song.to_dict() for song in self.playlist]}
        if self.generated_title:
            payload["generated_title"] = self.generated_title
        return payload


def clamp_song_count(value: Any) -> int:
    """Clamp a requested playlist length into the configured bounds."""
    lower = getattr(settings, "CURATOR_MIN_PLAYLIST_LENGTH", 1)
    upper = getattr(settings, "CURATOR_MAX_PLAYLIST_LENGTH", 50)
    try:
        requested = int(value)
    except (TypeError, ValueError):
        requested = getattr(settings, "CURATOR_DEFAULT_PLAYLIST_LENGTH", 15)
    return max(lower, min(upper, requested))
