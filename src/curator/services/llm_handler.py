"""Thin async adapter around the OpenAI chat completion API used by the playlist pipeline."""

import json
import logging
import os
import re
from contextvars import ContextVar
from typing import Any, Dict, List, Optional, Union

from openai import APIStatusError, AsyncOpenAI, OpenAIError

from .exceptions import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

try:
    from django.conf import settings as django_settings  # type: ignore
except ImportError:  # pragma: no cover - optional dependency in some contexts
    DJANGO_SETTINGS = None
else:
    DJANGO_SETTINGS = django_settings

MessageContent = Union[str, List[Dict[str, Any]]]
Message = Dict[str, MessageContent]

_JSON_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)
_LLM_USAGE: ContextVar[Optional[Dict[str, int]]] = ContextVar("curator_llm_usage", default=None)


def _default_usage_bucket() -> Dict[str, int]:
    return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


def reset_llm_usage_tracker() -> None:
    """Reset the accumulated token counters for the current request context."""
    _LLM_USAGE.set(_default_usage_bucket())


def _usage_bucket() -> Dict[str, int]:
    usage = _LLM_USAGE.get()
    if usage is None:
        usage = _default_usage_bucket()
        _LLM_USAGE.set(usage)
    return usage


def get_llm_usage_snapshot() -> Dict[str, int]:
    """Return the current token counters for the active request context."""
    usage = _LLM_USAGE.get()
    if not usage:
        return _default_usage_bucket()
    return {key: int(usage.get(key, 0)) for key in ("prompt_tokens", "completion_tokens", "total_tokens")}


def _get_setting(name: str, default=None):
    if DJANGO_SETTINGS is not None and DJANGO_SETTINGS.configured and hasattr(DJANGO_SETTINGS, name):
        return getattr(DJANGO_SETTINGS, name)
    return os.getenv(name, default)


def has_completion_credentials() -> bool:
    return bool(_get_setting("OPENAI_API_KEY"))


def get_vision_model() -> str:
    """Model used for image understanding requests."""
    return _get_setting("CURATOR_VISION_MODEL", "gpt-4o")


def _get_openai_client() -> AsyncOpenAI:
    """Build an async OpenAI client bound to the caller's event loop."""
    api_key = _get_setting("OPENAI_API_KEY")
    if not api_key:
        raise ConfigurationError(
            "OpenAI API key is missing. Set OPENAI_API_KEY to enable playlist generation."
        )

    client_kwargs: Dict[str, Any] = {"api_key": api_key, "max_retries": 0}
    base_url = _get_setting("OPENAI_API_BASE")
    if base_url:
        client_kwargs["base_url"] = base_url
    organization = _get_setting("OPENAI_ORGANIZATION")
    if organization:
        client_kwargs["organization"] = organization
    return AsyncOpenAI(**client_kwargs)


def _extract_usage_value(source: object, *keys: str) -> Optional[int]:
    for key in keys:
        value = source.get(key) if isinstance(source, dict) else getattr(source, key, None)
        if value is not None:
            try:
                return int(value)
            except (TypeError, ValueError):
                continue
    return None


def _capture_openai_usage(response: object) -> None:
    """Best-effort extraction of token usage metadata from a completion response."""
    usage_obj = getattr(response, "usage", None)
    if usage_obj is None:
        return

    prompt_tokens = _extract_usage_value(usage_obj, "prompt_tokens", "input_tokens")
    completion_tokens = _extract_usage_value(usage_obj, "completion_tokens", "output_tokens")
    total_tokens = _extract_usage_value(usage_obj, "total_tokens")
    if total_tokens is None and (prompt_tokens is not None or completion_tokens is not None):
        total_tokens = (prompt_tokens or 0) + (completion_tokens or 0)

    usage = _usage_bucket()
    usage["prompt_tokens"] += max(prompt_tokens or 0, 0)
    usage["completion_tokens"] += max(completion_tokens or 0, 0)
    usage["total_tokens"] += max(total_tokens or 0, 0)


def _first_choice_text(response: object) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return (content or "").strip()


async def query_chat_completion(
    messages: List[Message],
    *,
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
) -> str:
    """
    Send a chat completion request and return the first choice's text.

    Raises:
        ConfigurationError: when no API key is configured.
        UpstreamError: on a non-2xx answer (status and body attached) or a network failure.
    """
    resolved_model = model or _get_setting("CURATOR_TEXT_MODEL", "gpt-4")
    request_kwargs: Dict[str, Any] = {"model": resolved_model, "messages": messages}
    if max_tokens:
        request_kwargs["max_tokens"] = int(max_tokens)
    if temperature is not None:
        request_kwargs["temperature"] = float(temperature)

    async with _get_openai_client() as client:
        try:
            response = await client.chat.completions.create(**request_kwargs)
        except APIStatusError as exc:
            body = exc.response.text if exc.response is not None else str(exc)
            logger.error("OpenAI request to %s failed with %s: %s", resolved_model, exc.status_code, body)
            raise UpstreamError(
                f"Completion request failed: {exc.status_code} - {body}",
                status=exc.status_code,
                body=body,
            ) from exc
        except OpenAIError as exc:
            logger.error("OpenAI request to %s failed: %s", resolved_model, exc)
            raise UpstreamError(f"Completion request failed: {exc}") from exc

    _capture_openai_usage(response)
    return _first_choice_text(response)


def image_message_part(base64_image: str) -> Dict[str, Any]:
    """Wrap a base64 JPEG as an ``image_url`` content part."""
    return {
        "type": "image_url",
        "image_url": {"url": f"data:image/jpeg;base64,{base64_image}"},
    }


def _json_candidates(raw: str) -> List[str]:
    """Yield plausible JSON substrings from a potentially messy LLM response."""
    if not raw:
        return []
    candidates: List[str] = []
    for match in _JSON_CODE_FENCE_RE.findall(raw):
        cleaned = match.strip()
        if cleaned:
            candidates.append(cleaned)

    stripped = raw.strip()
    if stripped:
        candidates.append(stripped)

    return candidates


def parse_json_response(raw: str) -> Optional[Any]:
    """Parse JSON from LLM output, unwrapping Markdown code fences and surrounding chatter."""
    if not raw:
        return None

    decoder = json.JSONDecoder()
    for candidate in _json_candidates(raw):
        try:
            return decoder.raw_decode(candidate)[0]
        except json.JSONDecodeError:
            pass

        # Look for the first JSON object/array within the candidate.
        for idx, ch in enumerate(candidate):
            if ch in "{[":
                try:
                    return decoder.raw_decode(candidate[idx:])[0]
                except json.JSONDecodeError:
                    continue

    return None
