"""Ask the completion model for a playlist and shape its answer to the requested size."""

import logging
from typing import Any, List, Optional

from .exceptions import InvalidInput, InvalidPlaylistFormat
from .llm_handler import parse_json_response, query_chat_completion
from .playlist_types import AdvancedParameters, Song

logger = logging.getLogger(__name__)

# Knob values above this read as "high" in the prompt wording.
LEVEL_MIDPOINT = 5
# Artist de-duplication only kicks in for diversity values above this.
DIVERSITY_FILTER_THRESHOLD = 7

PLAYLIST_PROMPT = """
You are an expert AI music curator creating a {song_count} song playlist.

**Target Vibe:** {vibe}
**Context:** {context}

**Parameters:**
{parameters}

**Requirements:**
- Match the target vibe perfectly with natural time awareness
- Create smooth flow between songs
- Songs should evoke the same emotional atmosphere as described in the vibe

**Output Format (STRICT JSON):**
{{
  "playlist": [
    {{ "title": "Song Name", "artist": "Artist Name" }}
  ]
}}
""".strip()


def _describe_level(label: str, value: int, high: str, low: str) -> str:
    return f"- {label}: {value}/10 {high if value > LEVEL_MIDPOINT else low}"


def build_constraint_lines(params: AdvancedParameters) -> List[str]:
    """Render the advanced parameters as the bullet list embedded in the prompt."""
    lines = [
        "- Mix popular tracks with hidden gems"
        if params.include_obscure
        else "- Focus on well-known, recognizable tracks"
    ]
    levels = params.active_levels()
    if levels["energy_level"] is not None:
        lines.append(
            _describe_level("Energy level", levels["energy_level"], "(high energy, upbeat)", "(low energy, relaxed)")
        )
    if levels["tempo"] is not None:
        lines.append(_describe_level("Tempo", levels["tempo"], "(faster paced)", "(slower paced)"))
    if levels["diversity"] is not None:
        lines.append(
            _describe_level(
                "Artist diversity", levels["diversity"], "(wide variety of artists)", "(can repeat artists)"
            )
        )
    return lines


def build_playlist_prompt(vibe: str, context: str, song_count: int, params: AdvancedParameters) -> str:
    return PLAYLIST_PROMPT.format(
        song_count=song_count,
        vibe=vibe,
        context=context,
        parameters="\n".join(build_constraint_lines(params)),
    )


def parse_playlist_response(content: str) -> List[Song]:
    """
    Extract ``{"playlist": [{"title", "artist"}, ...]}`` from the model's answer.

    Entries without a title are dropped; anything that is not a playlist object
    raises InvalidPlaylistFormat.
    """
    parsed: Any = parse_json_response(content)
    if parsed is None:
        raise InvalidPlaylistFormat("Failed to parse playlist response")
    if not isinstance(parsed, dict) or not isinstance(parsed.get("playlist"), list):
        raise InvalidPlaylistFormat("Invalid playlist response format")

    songs: List[Song] = []
    for item in parsed["playlist"]:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        if not title:
            continue
        songs.append(Song(title=title, artist=str(item.get("artist") or "").strip()))
    return songs


def diversity_floor(song_count: int) -> float:
    """Smallest list length an artist-unique rewrite may shrink the playlist to."""
    return min(song_count * 0.8, song_count - 3)


def apply_artist_diversity(songs: List[Song], song_count: int) -> List[Song]:
    """
    Keep only the first song per artist (case-insensitive).

    The filtered list is returned only when it still holds at least
    ``diversity_floor(song_count)`` songs; otherwise the input is returned as-is.
    """
    seen_artists = set()
    unique: List[Song] = []
    for song in songs:
        key = song.artist.lower()
        if key in seen_artists:
            continue
        seen_artists.add(key)
        unique.append(song)

    if len(unique) >= diversity_floor(song_count):
        return unique
    logger.debug(
        "Artist diversity filter rejected: %d unique artists below floor %.1f",
        len(unique),
        diversity_floor(song_count),
    )
    return songs


def post_process_playlist(songs: List[Song], song_count: int, params: AdvancedParameters) -> List[Song]:
    """Apply the optional artist-diversity filter and trim to ``song_count``."""
    diversity: Optional[int] = params.active_levels()["diversity"]
    if diversity is not None and diversity > DIVERSITY_FILTER_THRESHOLD:
        songs = apply_artist_diversity(songs, song_count)
    if len(songs) > song_count:
        songs = songs[:song_count]
    return songs


async def synthesize_playlist(
    vibe: str,
    context: str,
    song_count: int,
    params: Optional[AdvancedParameters] = None,
) -> List[Song]:
    """Request a playlist for ``vibe`` and return at most ``song_count`` songs."""
    if not isinstance(song_count, int) or isinstance(song_count, bool) or song_count < 1:
        raise InvalidInput("Song count must be a positive whole number.")
    if not (vibe or "").strip():
        raise InvalidInput("A vibe description is required to build a playlist.")
    params = params or AdvancedParameters()

    content = await query_chat_completion(
        messages=[
            {"role": "system", "content": build_playlist_prompt(vibe, context, song_count, params)},
            {"role": "user", "content": "Generate the playlist now."},
        ],
        max_tokens=2000,
        temperature=0.7,
    )
    songs = parse_playlist_response(content)
    shaped = post_process_playlist(songs, song_count, params)
    logger.info(
        "Playlist synthesized: %d candidates, %d kept (requested %d)",
        len(songs),
        len(shaped),
        song_count,
    )
    return shaped
