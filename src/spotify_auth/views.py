"""Views that hand a browser-obtained Spotify access token to the server session."""

import json
import logging

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.http import require_POST

from .session import clear_spotify_session, has_valid_token, store_token

logger = logging.getLogger(__name__)


def _request_payload(request) -> dict:
    content_type = (request.content_type or "").lower()
    if content_type.startswith("application/json"):
        try:
            payload = json.loads(request.body.decode("utf-8") or "{}")
        except (json.JSONDecodeError, UnicodeDecodeError):
            return {}
        return payload if isinstance(payload, dict) else {}
    return request.POST.dict()


@method_decorator(require_POST, name="dispatch")
class SpotifyTokenView(View):
    """Store the Spotify access token supplied by the client."""

    def post(self, request):
        """Persist ``access_token`` (and optional ``expires_in``) in the session."""
        payload = _request_payload(request)
        if not store_token(request.session, payload):
            return JsonResponse({'error': 'An access_token is required.'}, status=400)
        logger.info("Spotify access token stored for session.")
        return JsonResponse({'authenticated': has_valid_token(request.session)})


@method_decorator(require_POST, name="dispatch")
class SpotifyLogoutView(View):
    """Forget the Spotify credentials held in the session."""

    def post(self, request):
        clear_spotify_session(request.session)
        return JsonResponse({'authenticated': False})
