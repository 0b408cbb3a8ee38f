"""Tests for spotify_auth views and session helpers."""

import time

from django.test import Client, SimpleTestCase
from django.urls import reverse

from spotify_auth.session import (
    TOKEN_EXPIRY_LEEWAY_SECONDS,
    clear_spotify_session,
    get_access_token,
    has_valid_token,
    store_token,
)


class SpotifySessionHelperTests(SimpleTestCase):
    """Token storage and expiry checks on a plain mapping."""

    def test_store_token_records_expiry(self):
        session = {}
        stored = store_token(session, {"access_token": "abc", "expires_in": 3600, "user_id": "user-1"}, now=1000)

        self.assertTrue(stored)
        self.assertEqual(session["spotify_access_token"], "abc")
        self.assertEqual(session["spotify_token_expires_at"], 4600)
        self.assertEqual(session["spotify_user_id"], "user-1")

    def test_store_token_requires_access_token(self):
        session = {}
        self.assertFalse(store_token(session, {"expires_in": 3600}))
        self.assertEqual(session, {})

    def test_token_without_expiry_is_valid(self):
        session = {"spotify_access_token": "abc"}
        self.assertTrue(has_valid_token(session))
        self.assertEqual(get_access_token(session), "abc")

    def test_token_expires_with_leeway(self):
        now = time.time()
        session = {
            "spotify_access_token": "abc",
            "spotify_token_expires_at": int(now + TOKEN_EXPIRY_LEEWAY_SECONDS - 5),
        }
        self.assertFalse(has_valid_token(session, now=now))
        self.assertIsNone(get_access_token(session, now=now))

    def test_clear_removes_spotify_keys(self):
        session = {"spotify_access_token": "abc", "spotify_user_id": "user-1", "other": 1}
        clear_spotify_session(session)
        self.assertEqual(session, {"other": 1})


class SpotifyTokenViewTests(SimpleTestCase):
    """POST /spotify/token/ and /spotify/logout/"""

    def setUp(self):
        self.client = Client()

    def test_token_is_stored_in_session(self):
        response = self.client.post(
            reverse("spotify_auth:token"),
            {"access_token": "abc", "expires_in": 3600},
            content_type="application/json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"authenticated": True})
        self.assertEqual(self.client.session["spotify_access_token"], "abc")

    def test_form_encoded_token_accepted(self):
        response = self.client.post(reverse("spotify_auth:token"), {"access_token": "abc"})
        self.assertEqual(response.status_code, 200)

    def test_missing_token_rejected(self):
        response = self.client.post(reverse("spotify_auth:token"), {}, content_type="application/json")
        self.assertEqual(response.status_code, 400)

    def test_get_not_allowed(self):
        response = self.client.get(reverse("spotify_auth:token"))
        self.assertEqual(response.status_code, 405)

    def test_logout_clears_session(self):
        self.client.post(reverse("spotify_auth:token"), {"access_token": "abc"}, content_type="application/json")

        response = self.client.post(reverse("spotify_auth:logout"))

        self.assertEqual(response.status_code, 200)
        self.assertNotIn("spotify_access_token", self.client.session)
