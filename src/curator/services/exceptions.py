"""Error taxonomy shared by the playlist pipeline and the Spotify helpers."""

from typing import Optional


class CuratorError(Exception):
    """Base class for failures surfaced to callers of the curator services."""


class ConfigurationError(CuratorError):
    """A required credential or setting is missing; the user must fix setup."""


class InvalidInput(CuratorError):
    """The caller supplied nothing usable to build a playlist from."""


class UpstreamError(CuratorError):
    """An external service answered with an error status or could not be reached."""

    def __init__(self, message: str, *, status: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class ExtractionFailed(UpstreamError):
    """The vibe could not be extracted from the supplied text and/or image."""


class InvalidPlaylistFormat(CuratorError):
    """The completion service returned output that is not the expected playlist JSON."""


class ResolutionMiss(CuratorError):
    """A single candidate could not be matched to a catalog track."""

    def __init__(self, title: str, artist: str) -> None:
        super().__init__(f"No catalog match for '{title}' by '{artist}'.")
        self.title = title
        self.artist = artist
