"""Spotify helpers: match candidates to catalog tracks, enrich playlists and export them."""

import asyncio
import logging
import re
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple, TypeVar

import requests
import spotipy
from django.conf import settings
from spotipy import SpotifyException

from .exceptions import ConfigurationError, InvalidInput, ResolutionMiss, UpstreamError
from .playlist_types import Song

logger = logging.getLogger(__name__)

SPOTIFY_HTTP_TIMEOUT = int(getattr(settings, "SPOTIFY_HTTP_TIMEOUT", 15))
SEARCH_LIMIT = int(getattr(settings, "CURATOR_SEARCH_LIMIT", 20))
PLAYLIST_ITEMS_BATCH_SIZE = 100
PLAYLIST_NAME_MAX_LENGTH = 100
DEFAULT_PLAYLIST_NAME = getattr(settings, "CURATOR_DEFAULT_EXPORT_NAME", "YouLists AI Playlist")
DEFAULT_PLAYLIST_DESCRIPTION = getattr(
    settings, "CURATOR_DEFAULT_EXPORT_DESCRIPTION", "Generated by YouLists AI"
)

# Integer weight per matching criterion; see score_track.
SCORE_WEIGHTS: Dict[str, int] = {
    "exact_title": 100,
    "partial_title": 80,
    "artist_match": 80,
    "popularity_cap": 100,
    "album_release": 30,
    "single_release": 20,
    "alternate_version": -50,
    "parenthetical": -10,
    "bracketed": -10,
    "unrequested_feature": -15,
}

ALTERNATE_VERSION_KEYWORDS = (
    "live",
    "concert",
    "tour",
    "acoustic",
    "unplugged",
    "session",
    "remix",
    "edit",
    "mix",
    "version",
    "remaster",
    "demo",
    "alternate",
    "rehearsal",
    "bootleg",
    "radio",
    "instrumental",
    "karaoke",
)

_QUERY_NOISE_RE = re.compile(r"[^\w\s]")
_PARENTHETICAL_RE = re.compile(r"\([^)]*\)")
_BRACKETED_RE = re.compile(r"\[[^\]]*\]")

T = TypeVar("T")
R = TypeVar("R")


class ScoredCandidate(NamedTuple):
    track: Dict[str, Any]
    score: int


def _log(
    debug_steps: Optional[List[str]],
    log_step: Optional[Callable[[str], None]],
    message: str,
) -> None:
    """Record a debug message either via callback or mutable list."""
    if log_step:
        log_step(message)
    elif debug_steps is not None:
        debug_steps.append(message)


def _sanitize_query_term(value: str) -> str:
    """Replace punctuation with spaces so it cannot break the scoped search syntax."""
    return _QUERY_NOISE_RE.sub(" ", value or "").strip()


def _is_alternate_version(track_name: str, album_name: str) -> bool:
    """Return True when the track or its release looks like a live/remix/karaoke variant."""
    track_lower = (track_name or "").lower()
    album_lower = (album_name or "").lower()
    return any(keyword in track_lower or keyword in album_lower for keyword in ALTERNATE_VERSION_KEYWORDS)


def _has_featured_credit(text: str) -> bool:
    return "feat." in text or "ft." in text


def score_track(track: Dict[str, Any], title: str, artist: str) -> Tuple[int, Dict[str, int]]:
    """
    Score how likely ``track`` is the canonical recording of ``title`` by ``artist``.

    Returns the total together with the per-criterion breakdown.
    """
    breakdown: Dict[str, int] = {}
    name_lower = (track.get("name") or "").lower()
    title_lower = (title or "").lower()
    artist_lower = (artist or "").lower()
    album = track.get("album") or {}

    if name_lower == title_lower:
        breakdown["title"] = SCORE_WEIGHTS["exact_title"]
    elif name_lower in title_lower or title_lower in name_lower:
        breakdown["title"] = SCORE_WEIGHTS["partial_title"]
    else:
        breakdown["title"] = 0

    artist_names = [(entry.get("name") or "").lower() for entry in track.get("artists") or []]
    artist_hit = any(artist_lower in name or name in artist_lower for name in artist_names)
    breakdown["artist"] = SCORE_WEIGHTS["artist_match"] if artist_hit else 0

    popularity = int(track.get("popularity") or 0)
    breakdown["popularity"] = min(popularity, SCORE_WEIGHTS["popularity_cap"])

    album_type = album.get("album_type")
    if album_type == "album":
        breakdown["release_type"] = SCORE_WEIGHTS["album_release"]
    elif album_type == "single":
        breakdown["release_type"] = SCORE_WEIGHTS["single_release"]
    else:
        breakdown["release_type"] = 0

    breakdown["alternate_version"] = (
        SCORE_WEIGHTS["alternate_version"]
        if _is_alternate_version(track.get("name") or "", album.get("name") or "")
        else 0
    )
    breakdown["decorations"] = (
        len(_PARENTHETICAL_RE.findall(name_lower)) * SCORE_WEIGHTS["parenthetical"]
        + len(_BRACKETED_RE.findall(name_lower)) * SCORE_WEIGHTS["bracketed"]
    )
    breakdown["featuring"] = (
        SCORE_WEIGHTS["unrequested_feature"]
        if _has_featured_credit(name_lower) and not _has_featured_credit(title_lower)
        else 0
    )

    total = sum(breakdown.values())
    breakdown["total"] = total
    return total, breakdown


def rank_candidates(tracks: Sequence[Dict[str, Any]], title: str, artist: str) -> List[ScoredCandidate]:
    """Score every track and order best first; ties keep the catalog's order."""
    scored = [ScoredCandidate(track, score_track(track, title, artist)[0]) for track in tracks]
    return sorted(scored, key=lambda candidate: candidate.score, reverse=True)


def _primary_image_url(images: Optional[List[Dict]]) -> str:
    """Return the first available URL from a list of Spotify image dictionaries."""
    if not images:
        return ""
    for image in images:
        url = image.get("url")
        if url:
            return url
    return ""


def _track_id_from_uri(uri: str) -> str:
    return (uri or "").rsplit(":", 1)[-1]


def build_spotify_client(token: Optional[str]) -> spotipy.Spotify:
    """Create a bearer-token Spotify client without automatic retries."""
    if not token:
        raise ConfigurationError("Missing Spotify authentication.")
    return spotipy.Spotify(
        auth=token,
        requests_timeout=SPOTIFY_HTTP_TIMEOUT,
        retries=0,
        status_retries=0,
    )


async def _call_spotify(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking spotipy call off the event loop and normalize its failures."""
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except SpotifyException as exc:
        raise UpstreamError(
            f"Spotify request failed: {exc.http_status} - {exc.msg}",
            status=exc.http_status,
            body=str(exc.msg),
        ) from exc
    except requests.exceptions.RequestException as exc:
        raise UpstreamError(f"Network error while communicating with Spotify: {exc}") from exc


class TrackResolver:
    """Resolve `(title, artist)` candidates to playable Spotify track URIs."""

    def __init__(
        self,
        token: Optional[str],
        *,
        sp: Optional[spotipy.Spotify] = None,
        debug_steps: Optional[List[str]] = None,
        log_step: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.sp = sp or build_spotify_client(token)
        self._debug_steps = debug_steps
        self._log_step = log_step

    def _log(self, message: str) -> None:
        _log(self._debug_steps, self._log_step, message)

    async def search_tracks(self, query: str) -> List[Dict[str, Any]]:
        self._log(f'Spotify API -> search track: q="{query}", limit={SEARCH_LIMIT}')
        result = await _call_spotify(self.sp.search, q=query, type="track", limit=SEARCH_LIMIT)
        return ((result or {}).get("tracks") or {}).get("items") or []

    async def resolve(self, title: str, artist: str) -> Optional[str]:
        """
        Return the URI of the best catalog match, or None when nothing was found.

        A scoped ``track:"..." artist:"..."`` search runs first; when it yields
        nothing an unscoped free-text search is tried. Search failures are
        treated as misses.
        """
        clean_title = _sanitize_query_term(title)
        clean_artist = _sanitize_query_term(artist)

        try:
            tracks = await self.search_tracks(f'track:"{clean_title}" artist:"{clean_artist}"')
            if not tracks:
                tracks = await self.search_tracks(f"{clean_title} {clean_artist}")
        except UpstreamError as exc:
            self._log(f"Spotify search failed for '{title}' ({artist}): {exc}")
            logger.warning("Spotify search failed for '%s' by '%s': %s", title, artist, exc)
            return None

        if not tracks:
            self._log(f"No search results found for '{title}' ({artist}).")
            return None

        best = rank_candidates(tracks, title, artist)[0]
        self._log(f"Resolved '{title}' ({artist}) -> {best.track.get('name')} [score {best.score}]")
        return best.track.get("uri") or None

    async def track_details(self, uri: str) -> Dict[str, Any]:
        return await _call_spotify(self.sp.track, _track_id_from_uri(uri))


async def _run_in_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    batch_size: Optional[int] = None,
    delay: Optional[float] = None,
) -> List[Any]:
    """
    Apply ``worker`` to ``items`` a batch at a time.

    Results keep input order; a failed item yields its exception instead of a value.
    """
    size = max(int(batch_size or getattr(settings, "CURATOR_ENHANCE_BATCH_SIZE", 5)), 1)
    pause = float(
        delay if delay is not None else getattr(settings, "CURATOR_ENHANCE_BATCH_DELAY_SECONDS", 0.25)
    )
    results: List[Any] = []
    for start in range(0, len(items), size):
        if start and pause > 0:
            await asyncio.sleep(pause)
        batch = items[start : start + size]
        results.extend(await asyncio.gather(*(worker(item) for item in batch), return_exceptions=True))
    return results


async def _enhance_song(resolver: TrackResolver, song: Song) -> Song:
    uri = await resolver.resolve(song.title, song.artist)
    if not uri:
        raise ResolutionMiss(song.title, song.artist)
    details = await resolver.track_details(uri)
    album = details.get("album") or {}
    return replace(
        song,
        uri=uri,
        cover_url=_primary_image_url(album.get("images")) or None,
        preview_url=details.get("preview_url"),
        popularity=details.get("popularity"),
    )


async def enhance_playlist(
    songs: List[Song],
    resolver: TrackResolver,
    *,
    batch_size: Optional[int] = None,
    delay: Optional[float] = None,
) -> List[Song]:
    """
    Attach URI, cover art, preview URL and popularity to each song.

    The result has the same length and order as ``songs``; a song that cannot
    be resolved or looked up is returned unchanged.
    """
    if not songs:
        return songs

    async def worker(song: Song) -> Song:
        return await _enhance_song(resolver, song)

    results = await _run_in_batches(songs, worker, batch_size=batch_size, delay=delay)
    enhanced: List[Song] = []
    for song, result in zip(songs, results):
        if isinstance(result, ResolutionMiss):
            logger.info("%s", result)
            enhanced.append(song)
        elif isinstance(result, BaseException):
            logger.warning("Could not enhance '%s' by '%s': %s", song.title, song.artist, result)
            enhanced.append(song)
        else:
            enhanced.append(result)
    return enhanced


async def resolve_track_uris(
    songs: List[Song],
    resolver: TrackResolver,
    *,
    batch_size: Optional[int] = None,
    delay: Optional[float] = None,
) -> Tuple[List[str], List[Song]]:
    """Return (URIs in playlist order, songs that could not be resolved)."""

    async def worker(song: Song) -> str:
        if song.uri:
            return song.uri
        uri = await resolver.resolve(song.title, song.artist)
        if not uri:
            raise ResolutionMiss(song.title, song.artist)
        return uri

    results = await _run_in_batches(songs, worker, batch_size=batch_size, delay=delay)
    uris: List[str] = []
    missing: List[Song] = []
    for song, result in zip(songs, results):
        if isinstance(result, BaseException):
            logger.info("Skipping '%s' by '%s' on export: %s", song.title, song.artist, result)
            missing.append(song)
        else:
            uris.append(result)
    return uris, missing


async def create_playlist_with_tracks(
    token: Optional[str],
    track_uris: List[str],
    playlist_name: str,
    *,
    description: str = DEFAULT_PLAYLIST_DESCRIPTION,
    user_id: Optional[str] = None,
    public: bool = False,
    cover_image: Optional[str] = None,
    sp: Optional[spotipy.Spotify] = None,
) -> Dict[str, str]:
    """
    Create a Spotify playlist and populate it with the given track URIs.

    Returns the created playlist metadata and resolved user id.
    """
    if not track_uris:
        raise InvalidInput("No tracks found to add to playlist.")
    cleaned_name = re.sub(r"[\r\n\t]+", " ", playlist_name or "").strip()
    if not cleaned_name:
        raise InvalidInput("A playlist name must be provided.")
    if len(cleaned_name) > PLAYLIST_NAME_MAX_LENGTH:
        raise InvalidInput(f"Playlist name must be {PLAYLIST_NAME_MAX_LENGTH} characters or fewer.")

    sp = sp or build_spotify_client(token)

    resolved_user_id = user_id
    if not resolved_user_id:
        profile = await _call_spotify(sp.current_user)
        resolved_user_id = (profile or {}).get("id")
        if not resolved_user_id:
            raise UpstreamError("Spotify user id could not be resolved.")

    created = await _call_spotify(
        sp.user_playlist_create,
        user=resolved_user_id,
        name=cleaned_name,
        public=public,
        description=description,
    )
    playlist_id = (created or {}).get("id")
    if not playlist_id:
        raise UpstreamError("Spotify did not return a playlist id.")

    # Spotify limits each request to 100 tracks max.
    for start in range(0, len(track_uris), PLAYLIST_ITEMS_BATCH_SIZE):
        batch = track_uris[start : start + PLAYLIST_ITEMS_BATCH_SIZE]
        try:
            await _call_spotify(sp.playlist_add_items, playlist_id, batch)
        except UpstreamError as exc:
            raise UpstreamError(
                f"Spotify rejected playlist items batch starting at index {start}: {exc}",
                status=exc.status,
                body=exc.body,
            ) from exc

    if cover_image:
        try:
            await _call_spotify(sp.playlist_upload_cover_image, playlist_id, cover_image)
        except UpstreamError as exc:
            logger.warning("Cover image upload failed for playlist %s: %s", playlist_id, exc)

    return {
        "playlist_id": playlist_id,
        "playlist_name": cleaned_name,
        "playlist_url": ((created.get("external_urls") or {}).get("spotify") or ""),
        "user_id": resolved_user_id,
    }


async def export_playlist_to_spotify(
    songs: List[Song],
    token: Optional[str],
    *,
    playlist_name: str = DEFAULT_PLAYLIST_NAME,
    description: str = DEFAULT_PLAYLIST_DESCRIPTION,
    cover_image: Optional[str] = None,
    user_id: Optional[str] = None,
    sp: Optional[spotipy.Spotify] = None,
    log_step: Optional[Callable[[str], None]] = None,
) -> Dict[str, Any]:
    """Resolve every song, then create a private playlist from the matches."""
    if not songs:
        raise InvalidInput("No songs to export!")
    resolver = TrackResolver(token, sp=sp, log_step=log_step)
    uris, missing = await resolve_track_uris(songs, resolver)
    if not uris:
        raise InvalidInput("No tracks found to add to playlist.")

    result: Dict[str, Any] = dict(
        await create_playlist_with_tracks(
            token,
            uris,
            playlist_name,
            description=description,
            user_id=user_id,
            public=getattr(settings, "CURATOR_PLAYLIST_PUBLIC", False),
            cover_image=cover_image,
            sp=resolver.sp,
        )
    )
    result["track_count"] = len(uris)
    result["missing"] = [{"title": song.title, "artist": song.artist} for song in missing]
    return result

