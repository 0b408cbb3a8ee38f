"""Utilities for storing the user's Spotify access token in the session."""

import logging
import time
from typing import Any, MutableMapping, Optional

logger = logging.getLogger(__name__)

TOKEN_EXPIRY_LEEWAY_SECONDS = 60

_ACCESS_TOKEN_KEY = "spotify_access_token"
_EXPIRES_IN_KEY = "spotify_expires_in"
_EXPIRES_AT_KEY = "spotify_token_expires_at"
_USER_ID_KEY = "spotify_user_id"


def _coerce_int(value: Any) -> Optional[int]:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _token_is_expired(expires_at: Optional[int], *, now: Optional[float] = None) -> bool:
    if not expires_at:
        return False
    current_time = now or time.time()
    return current_time >= (expires_at - TOKEN_EXPIRY_LEEWAY_SECONDS)


def store_token(
    session: MutableMapping[str, Any],
    token_data: MutableMapping[str, Any],
    *,
    now: Optional[float] = None,
) -> bool:
    """
    Persist Spotify token details into the user's session.

    Args:
        session: The Django session-like mapping to store values in.
        token_data: Payload holding ``access_token`` and optionally ``expires_in``
            and ``user_id``.

    Returns:
        True when an access token was stored.
    """
    access_token = str(token_data.get("access_token") or "").strip()
    if not access_token:
        return False
    session[_ACCESS_TOKEN_KEY] = access_token

    expires_in = _coerce_int(token_data.get("expires_in"))
    if expires_in is not None:
        session[_EXPIRES_IN_KEY] = expires_in
        session[_EXPIRES_AT_KEY] = int((now or time.time()) + expires_in)
    else:
        session.pop(_EXPIRES_IN_KEY, None)
        session.pop(_EXPIRES_AT_KEY, None)

    user_id = token_data.get("user_id")
    if user_id:
        session[_USER_ID_KEY] = str(user_id)
    return True


def clear_spotify_session(session: MutableMapping[str, Any]) -> None:
    """Remove Spotify authentication details from the session."""
    for key in (_ACCESS_TOKEN_KEY, _EXPIRES_IN_KEY, _EXPIRES_AT_KEY, _USER_ID_KEY):
        if key in session:
            session.pop(key, None)


def has_valid_token(session: MutableMapping[str, Any], *, now: Optional[float] = None) -> bool:
    """Return True if the session holds a non-expired Spotify access token."""
    if not session.get(_ACCESS_TOKEN_KEY):
        return False
    expires_at = _coerce_int(session.get(_EXPIRES_AT_KEY))
    if expires_at is None:
        return True
    return not _token_is_expired(expires_at, now=now)


def get_access_token(session: MutableMapping[str, Any], *, now: Optional[float] = None) -> Optional[str]:
    """Return the stored access token, or None when absent or expired."""
    if not has_valid_token(session, now=now):
        if session.get(_ACCESS_TOKEN_KEY):
            logger.info("Stored Spotify access token has expired.")
        return None
    return session.get(_ACCESS_TOKEN_KEY)


def get_user_id(session: MutableMapping[str, Any]) -> Optional[str]:
    return session.get(_USER_ID_KEY) or None


def remember_user_id(session: MutableMapping[str, Any], user_id: Optional[str]) -> None:
    if user_id:
        session[_USER_ID_KEY] = user_id
