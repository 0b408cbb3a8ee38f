"""Sequential playlist pipeline: context -> vibe -> synthesis -> post-processing."""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from .context_hints import describe_listening_context
from .playlist_synthesizer import synthesize_playlist
from .playlist_types import AdvancedParameters, PlaylistResponse, ProcessedImage
from .vibe_extractor import extract_vibe, generate_title

logger = logging.getLogger(__name__)


def _log(
    debug_steps: Optional[List[str]],
    log_step: Optional[Callable[[str], None]],
    message: str,
) -> None:
    """Collect debug output centrally so callers can display progress."""
    if log_step:
        log_step(message)
    elif debug_steps is not None:
        debug_steps.append(message)
    logger.debug(message)


async def run_playlist_pipeline(
    prompt: str,
    song_count: int,
    image: Optional[ProcessedImage] = None,
    params: Optional[AdvancedParameters] = None,
    *,
    now: Optional[datetime] = None,
    debug_steps: Optional[List[str]] = None,
    log_step: Optional[Callable[[str], None]] = None,
) -> PlaylistResponse:
    """
    Run every stage of playlist generation once.

    A generated title is only produced when an image supplied the vibe and no
    text prompt was given.
    """
    text = (prompt or "").strip()
    params = params or AdvancedParameters()

    context = describe_listening_context(now)
    _log(
        debug_steps,
        log_step,
        f"Starting playlist generation (text={bool(text)}, image={image is not None}, "
        f"songs={song_count}, context={context}).",
    )

    vibe = await extract_vibe(text, image, context=context)
    _log(debug_steps, log_step, f"Vibe extracted: {vibe}")

    generated_title: Optional[str] = None
    if image is not None and not text:
        generated_title = await generate_title(vibe)
        _log(debug_steps, log_step, f"Generated playlist title: {generated_title}")

    songs = await synthesize_playlist(vibe, context, song_count, params)
    _log(debug_steps, log_step, f"Playlist ready with {len(songs)} songs.")
    return PlaylistResponse(playlist=songs, generated_title=generated_title)
