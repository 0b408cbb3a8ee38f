"""Turn free text and/or an image into a short natural-language "vibe" description."""

import logging
from typing import Optional

from .context_hints import describe_listening_context
from .exceptions import ConfigurationError, ExtractionFailed, InvalidInput, UpstreamError
from .llm_handler import get_vision_model, image_message_part, query_chat_completion
from .playlist_types import DEFAULT_PLAYLIST_TITLE, ProcessedImage

logger = logging.getLogger(__name__)

IMAGE_VIBE_PROMPT = """
You are an expert music vibe interpreter analyzing images to understand the emotional atmosphere and mood they convey.

Analyze this image and extract the core emotional vibe, mood, and atmosphere that would translate to music preferences. Consider:

1. **Visual Elements**: Colors, lighting, composition, objects, people, settings
2. **Emotional Atmosphere**: What feelings does this image evoke?
3. **Energy Level**: Is it calm/peaceful or energetic/dynamic?
4. **Musical Associations**: What kind of music would fit this scene/mood?
5. **Contextual Clues**: Time of day, activity, location, style

**Examples of good vibe extractions:**
- Sunset beach photo -> "warm, nostalgic, golden hour serenity with gentle waves of emotion"
- City nightlife -> "electric urban energy, neon-lit confidence, late night adventure vibes"
- Cozy coffee shop -> "intimate acoustic warmth, contemplative morning focus, artisanal comfort"
- Mountain landscape -> "expansive freedom, natural majesty, adventure-seeking spirit"

Respond with ONLY a detailed vibe description (2-3 sentences) that captures the musical essence of this image.
""".strip()

TEXT_VIBE_PROMPT = """
You are a music vibe interpreter with human natural contextual awareness.

User request: "{prompt}"
Contextual timing: {context}

Extract the core emotional vibe, naturally considering the time context and any implicit mood cues.
If they mention places, activities, or objects, interpret the associated atmosphere and feeling.
Consider how the current time of day/week might influence the desired mood.

Examples:
"study music" (evening weekday) -> "focused evening concentration with calm determination"
"workout playlist" (morning weekend) -> "energetic weekend motivation with fresh drive"
"road trip to california" -> "freedom, adventure, sunny optimism, open highway feeling"

Respond with ONLY the vibe description.
""".strip()

COMBINED_VIBE_PROMPT = """
You have two sources of vibe information:
1. Image Analysis: "{image_vibe}"
2. User Text: "{prompt}"
3. Context: {context}

Combine these into a single, cohesive musical vibe description that incorporates both the visual atmosphere and the user's text preferences.

Respond with ONLY the combined vibe description.
""".strip()

TITLE_PROMPT = """
Based on this musical vibe description, generate a creative, short playlist title (2-5 words maximum):

Vibe: "{vibe}"

The title should be:
- Catchy and memorable
- Reflective of the mood/atmosphere
- Not generic (avoid "chill vibes", "good music", etc.)
- Creative but not overly complex

Examples:
"warm nostalgic golden hour serenity" -> "Golden Hour Dreams"
"electric urban neon-lit confidence" -> "Neon Nights"
"intimate acoustic morning focus" -> "Morning Coffee"

Respond with ONLY the playlist title, no quotes or extra text.
""".strip()


async def _complete_vibe(stage: str, *, fallback: str = "", **request) -> str:
    """Run one extraction request, converting upstream failures into ExtractionFailed."""
    try:
        content = await query_chat_completion(**request)
    except ConfigurationError:
        raise
    except UpstreamError as exc:
        raise ExtractionFailed(
            f"{stage} failed: {exc}",
            status=exc.status,
            body=exc.body,
        ) from exc
    content = content or fallback
    if not content:
        raise ExtractionFailed(f"{stage} failed: the completion was empty.")
    return content


async def analyze_image_vibe(image: ProcessedImage) -> str:
    """Describe the musical vibe of an image in two or three sentences."""
    logger.debug("Analyzing image %s for vibe", image.filename)
    return await _complete_vibe(
        "Image analysis",
        model=get_vision_model(),
        messages=[
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": IMAGE_VIBE_PROMPT},
                    image_message_part(image.base64),
                ],
            }
        ],
        max_tokens=200,
        temperature=0.7,
    )


async def extract_vibe(
    prompt: Optional[str] = None,
    image: Optional[ProcessedImage] = None,
    *,
    context: Optional[str] = None,
) -> str:
    """
    Return a vibe description for the given text, image, or both.

    Text-only requests are interpreted against the listening context; when both
    are supplied the image vibe is extracted first and then merged with the text.
    """
    text = (prompt or "").strip()
    if not text and image is None:
        raise InvalidInput("Please provide either a text description or upload an image.")

    context = context or describe_listening_context()

    if image is not None:
        image_vibe = await analyze_image_vibe(image)
        if not text:
            return image_vibe
        system_prompt = COMBINED_VIBE_PROMPT.format(image_vibe=image_vibe, prompt=text, context=context)
        return await _complete_vibe(
            "Vibe combination",
            fallback=image_vibe,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": "Combine the vibes now."},
            ],
            max_tokens=150,
            temperature=0.7,
        )

    return await _complete_vibe(
        "Vibe extraction",
        messages=[
            {"role": "system", "content": TEXT_VIBE_PROMPT.format(prompt=text, context=context)},
            {"role": "user", "content": text},
        ],
        max_tokens=150,
        temperature=0.7,
    )


async def generate_title(vibe: str) -> str:
    """Ask for a short, non-generic playlist title; never fails."""
    try:
        title = await query_chat_completion(
            messages=[
                {"role": "system", "content": TITLE_PROMPT.format(vibe=vibe)},
                {"role": "user", "content": vibe},
            ],
            max_tokens=50,
            temperature=0.8,
        )
    except (ConfigurationError, UpstreamError) as exc:
        logger.warning("Playlist title generation failed; using default title: %s", exc)
        return DEFAULT_PLAYLIST_TITLE
    return title.strip().strip('"').strip() or DEFAULT_PLAYLIST_TITLE
