"""Async JSON views for generating, enhancing and exporting playlists."""

import asyncio
import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from django.conf import settings
from django.http import HttpResponse, JsonResponse
from django.utils.text import slugify
from django.views.decorators.http import require_POST

from spotify_auth.session import get_access_token, get_user_id, remember_user_id

from .services.coordinator import PlaylistGenerator
from .services.exceptions import (
    ConfigurationError,
    CuratorError,
    InvalidInput,
    InvalidPlaylistFormat,
    UpstreamError,
)
from .services.exporters import render_playlist
from .services.image_utils import process_image_file, validate_image_file
from .services.llm_handler import get_llm_usage_snapshot, reset_llm_usage_tracker
from .services.playlist_types import AdvancedParameters, Song, clamp_song_count
from .services.spotify_handler import (
    DEFAULT_PLAYLIST_DESCRIPTION,
    DEFAULT_PLAYLIST_NAME,
    TrackResolver,
    enhance_playlist,
    export_playlist_to_spotify,
)

logger = logging.getLogger(__name__)

# One coordinator per browser session so a double submit attaches to the running pipeline.
_SESSION_GENERATORS: Dict[str, PlaylistGenerator] = {}
# UTC-12:00 to UTC+14:00.
MAX_UTC_OFFSET_MINUTES = 14 * 60


def _ensure_session_key(request) -> str:
    """Ensure the request has a session key and return it."""
    session_key = request.session.session_key
    if not session_key:
        request.session.save()
        session_key = request.session.session_key or ""
    return session_key


def _generator_for_session(session_key: str) -> PlaylistGenerator:
    generator = _SESSION_GENERATORS.get(session_key)
    if generator is None:
        generator = PlaylistGenerator(
            on_settled=lambda settled: _release_generator(session_key, settled)
        )
        _SESSION_GENERATORS[session_key] = generator
    return generator


def _release_generator(session_key: str, generator: PlaylistGenerator) -> None:
    if not generator.is_loading and _SESSION_GENERATORS.get(session_key) is generator:
        _SESSION_GENERATORS.pop(session_key, None)


def _make_logger(
    debug_steps: List[str],
    errors: List[str],
    *,
    label: str = "curator",
    capture_debug: bool = True,
) -> Callable[..., None]:
    """Capture diagnostic messages and surface potential errors for the UI."""
    start = time.perf_counter()

    def _log(message: str, *, sensitive: bool = False) -> None:
        elapsed = time.perf_counter() - start
        formatted = f"[{elapsed:0.2f}s] {message}"
        if capture_debug:
            debug_steps.append(formatted)
        lower_msg = message.lower()
        if any(keyword in lower_msg for keyword in ("error", "failed", "missing", "unavailable")):
            errors.append(message)
        display_message = message if (capture_debug or not sensitive) else "<sensitive output hidden>"
        logger.debug("%s: [%0.2fs] %s", label, elapsed, display_message)

    return _log


def _error_status(exc: CuratorError) -> int:
    if isinstance(exc, InvalidInput):
        return 400
    if isinstance(exc, ConfigurationError):
        return 503
    if isinstance(exc, (UpstreamError, InvalidPlaylistFormat)):
        return 502
    return 500


def _error_response(exc: CuratorError, extra: Optional[Dict[str, Any]] = None) -> JsonResponse:
    payload: Dict[str, Any] = {"error": str(exc)}
    if extra:
        payload.update(extra)
    return JsonResponse(payload, status=_error_status(exc))


def _json_payload(request) -> Dict[str, Any]:
    """Decode a JSON object body, raising InvalidInput for anything else."""
    content_type = (request.content_type or request.META.get("CONTENT_TYPE") or "").lower()
    if not content_type.startswith("application/json"):
        raise InvalidInput("Expected JSON payload.")
    try:
        payload = json.loads(request.body.decode("utf-8") or "{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidInput("Invalid JSON payload.") from exc
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON payload.")
    return payload


def _songs_from_payload(payload: Dict[str, Any]) -> List[Song]:
    raw_songs = payload.get("songs")
    if raw_songs is None:
        raw_songs = payload.get("playlist")
    if not isinstance(raw_songs, list):
        raise InvalidInput("A list of songs is required.")
    return [Song.from_mapping(entry) for entry in raw_songs if isinstance(entry, dict)]


def _advanced_parameters(payload: Dict[str, Any]) -> AdvancedParameters:
    """Read the advanced knobs from a nested object/JSON string or from flat fields."""
    source = payload.get("advanced_params", payload.get("advancedParams"))
    if isinstance(source, str):
        try:
            source = json.loads(source) if source.strip() else {}
        except json.JSONDecodeError as exc:
            raise InvalidInput("Advanced parameters must be a JSON object.") from exc
    if source is None:
        source = payload
    if not isinstance(source, dict):
        raise InvalidInput("Advanced parameters must be a JSON object.")
    return AdvancedParameters.from_mapping(source)


def _generation_payload(request) -> Dict[str, Any]:
    content_type = (request.content_type or "").lower()
    if content_type.startswith("application/json"):
        return _json_payload(request)
    return request.POST.dict()


def _listener_now(payload: Dict[str, Any]) -> Optional[datetime]:
    """
    Return the listener's wall-clock time from ``local_time`` (ISO-8601) or
    ``utc_offset_minutes``; None when the client sent neither.
    """
    local_time = payload.get("local_time", payload.get("localTime"))
    if local_time:
        try:
            return datetime.fromisoformat(str(local_time).strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise InvalidInput("local_time must be an ISO-8601 timestamp.") from exc

    offset = payload.get("utc_offset_minutes", payload.get("utcOffsetMinutes"))
    if offset in (None, ""):
        return None
    try:
        minutes = int(offset)
    except (TypeError, ValueError) as exc:
        raise InvalidInput("utc_offset_minutes must be a whole number.") from exc
    if not -MAX_UTC_OFFSET_MINUTES <= minutes <= MAX_UTC_OFFSET_MINUTES:
        raise InvalidInput("utc_offset_minutes is out of range.")
    return datetime.now(timezone(timedelta(minutes=minutes)))


def _cover_image_payload(raw: Any) -> Optional[str]:
    """Accept either bare base64 or a data URL and return bare base64."""
    if not isinstance(raw, str) or not raw.strip():
        return None
    value = raw.strip()
    if value.startswith("data:") and "," in value:
        value = value.split(",", 1)[1]
    return value


@require_POST
async def generate_playlist(request):
    """Run the playlist pipeline for a prompt and/or uploaded image."""
    debug_enabled = bool(getattr(settings, "CURATOR_DEBUG_VIEW_ENABLED", False))
    debug_steps: List[str] = []
    errors: List[str] = []
    log = _make_logger(debug_steps, errors, label="generate_playlist", capture_debug=debug_enabled)
    reset_llm_usage_tracker()

    def _with_debug(payload: Dict[str, Any]) -> Dict[str, Any]:
        payload["usage"] = get_llm_usage_snapshot()
        if debug_enabled:
            payload["debug_steps"] = debug_steps
            payload["errors"] = errors
        return payload

    try:
        payload = _generation_payload(request)
        prompt = str(payload.get("prompt") or "").strip()
        song_count = clamp_song_count(
            payload.get("song_count", payload.get("songCount", getattr(settings, "CURATOR_DEFAULT_PLAYLIST_LENGTH", 15)))
        )
        params = _advanced_parameters(payload)
        now = _listener_now(payload)

        image = None
        upload = request.FILES.get("image")
        if upload is not None:
            problem = validate_image_file(upload.name, upload.content_type, upload.size)
            if problem:
                raise InvalidInput(problem)
            image = await asyncio.to_thread(process_image_file, upload, upload.name)
            log(f"Image '{upload.name}' processed ({upload.size} bytes).")
    except InvalidInput as exc:
        log(f"Request rejected: {exc}")
        return _error_response(exc, _with_debug({}))

    if prompt:
        log(f"Prompt received: {prompt}", sensitive=True)

    session_key = _ensure_session_key(request)
    generator = _generator_for_session(session_key)
    try:
        response = await generator.generate_playlist(prompt, song_count, image, params, now=now, log_step=log)
    except CuratorError as exc:
        log(f"Playlist generation failed: {exc}")
        return _error_response(exc, _with_debug({}))
    finally:
        _release_generator(session_key, generator)

    return JsonResponse(_with_debug(response.to_dict()))


@require_POST
async def enhance_playlist_view(request):
    """Attach Spotify URIs, artwork and previews to generated songs."""
    debug_enabled = bool(getattr(settings, "CURATOR_DEBUG_VIEW_ENABLED", False))
    debug_steps: List[str] = []
    errors: List[str] = []
    log = _make_logger(debug_steps, errors, label="enhance_playlist", capture_debug=debug_enabled)

    access_token = get_access_token(request.session)
    if not access_token:
        return JsonResponse({"error": "Spotify authentication required."}, status=401)

    try:
        songs = _songs_from_payload(_json_payload(request))
        resolver = TrackResolver(access_token, log_step=log)
        enhanced = await enhance_playlist(songs, resolver)
    except CuratorError as exc:
        return _error_response(exc)

    payload: Dict[str, Any] = {"songs": [song.to_dict() for song in enhanced]}
    if debug_enabled:
        payload["debug_steps"] = debug_steps
    return JsonResponse(payload)


@require_POST
async def export_to_spotify(request):
    """Create a private Spotify playlist from the supplied songs."""
    access_token = get_access_token(request.session)
    if not access_token:
        return JsonResponse({"error": "Spotify authentication required."}, status=401)

    try:
        payload = _json_payload(request)
        songs = _songs_from_payload(payload)
        result = await export_playlist_to_spotify(
            songs,
            access_token,
            playlist_name=str(payload.get("name") or DEFAULT_PLAYLIST_NAME),
            description=str(payload.get("description") or DEFAULT_PLAYLIST_DESCRIPTION),
            cover_image=_cover_image_payload(payload.get("cover_image")),
            user_id=get_user_id(request.session),
        )
    except CuratorError as exc:
        logger.info("Spotify export failed: %s", exc)
        return _error_response(exc)

    remember_user_id(request.session, result.get("user_id"))
    return JsonResponse(result)


@require_POST
async def export_playlist_file(request, export_format: str):
    """Return the playlist as a downloadable text, CSV or JSON file."""
    try:
        payload = _json_payload(request)
        songs = _songs_from_payload(payload)
        name = str(payload.get("name") or DEFAULT_PLAYLIST_NAME)
        body, content_type, extension = render_playlist(export_format.lower(), name, songs)
    except CuratorError as exc:
        return _error_response(exc)

    response = HttpResponse(body, content_type=content_type)
    filename = f"{slugify(name) or 'playlist'}.{extension}"
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response
