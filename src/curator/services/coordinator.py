"""Single-flight guard around the playlist pipeline."""

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Optional

from .exceptions import ConfigurationError, InvalidInput
from .llm_handler import has_completion_credentials
from .pipeline import run_playlist_pipeline
from .playlist_types import AdvancedParameters, PlaylistResponse, ProcessedImage

logger = logging.getLogger(__name__)

Pipeline = Callable[..., Awaitable[PlaylistResponse]]


class GenerationState(enum.Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"


class PlaylistGenerator:
    """
    Run at most one playlist pipeline at a time for this instance.

    Calls made while a run is outstanding await that same run instead of
    starting another one. Once the run settles, successfully or not, the next
    call starts fresh. ``COMPLETED`` behaves like ``IDLE`` for new calls but
    keeps ``last_result``/``last_error`` from the settled run.

    A caller that attaches to an outstanding run shares its result only: its own
    ``pipeline_kwargs`` (``log_step``, ``now``, ...) are ignored, and token usage
    is accounted to the request that started the run.

    ``on_settled`` is called with this generator once a run finishes, even when
    every awaiting caller has gone away.
    """

    def __init__(
        self,
        pipeline: Optional[Pipeline] = None,
        *,
        on_settled: Optional[Callable[["PlaylistGenerator"], None]] = None,
    ) -> None:
        self._pipeline = pipeline or run_playlist_pipeline
        self._on_settled = on_settled
        self._inflight: Optional["asyncio.Future[PlaylistResponse]"] = None
        self.state = GenerationState.IDLE
        self.last_error: Optional[str] = None
        self.last_result: Optional[PlaylistResponse] = None

    @property
    def is_loading(self) -> bool:
        return self.state is GenerationState.IN_FLIGHT

    def _fail(self, exc: Exception) -> Exception:
        self.last_error = str(exc)
        return exc

    async def generate_playlist(
        self,
        prompt: str = "",
        song_count: int = 15,
        image: Optional[ProcessedImage] = None,
        params: Optional[AdvancedParameters] = None,
        **pipeline_kwargs: Any,
    ) -> PlaylistResponse:
        """Start the pipeline, or attach to the run already in flight."""
        if self._inflight is not None:
            logger.info("Playlist generation already in flight; attaching to it.")
            if pipeline_kwargs:
                logger.debug(
                    "Ignoring options %s from attaching caller; the in-flight run keeps its own.",
                    sorted(pipeline_kwargs),
                )
            return await asyncio.shield(self._inflight)

        if not has_completion_credentials():
            raise self._fail(
                ConfigurationError("API Key missing. Please check your environment configuration.")
            )
        if not (prompt or "").strip() and image is None:
            raise self._fail(InvalidInput("Please provide either a text description or upload an image."))

        self.last_error = None
        self.state = GenerationState.IN_FLIGHT
        self._inflight = asyncio.ensure_future(
            self._run(prompt, song_count, image, params, **pipeline_kwargs)
        )
        self._inflight.add_done_callback(self._settled)
        return await asyncio.shield(self._inflight)

    def _settled(self, future: "asyncio.Future[PlaylistResponse]") -> None:
        if not future.cancelled():
            # Marks the outcome as retrieved when no caller is left to await it.
            future.exception()
        if self._on_settled is not None:
            self._on_settled(self)

    async def _run(
        self,
        prompt: str,
        song_count: int,
        image: Optional[ProcessedImage],
        params: Optional[AdvancedParameters],
        **pipeline_kwargs: Any,
    ) -> PlaylistResponse:
        try:
            result = await self._pipeline(prompt, song_count, image, params, **pipeline_kwargs)
        except Exception as exc:
            self.last_error = str(exc) or "Unknown error occurred"
            logger.warning("Playlist generation failed: %s", self.last_error)
            raise
        finally:
            self._inflight = None
            self.state = GenerationState.COMPLETED
        self.last_result = result
        return result
