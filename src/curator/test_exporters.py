"""Tests for the playlist download renderers."""

import json
from datetime import datetime, timezone

from django.test import SimpleTestCase

from curator.services.exceptions import InvalidInput
from curator.services.exporters import playlist_as_csv, playlist_as_json, playlist_as_text, render_playlist
from curator.services.playlist_types import Song


class PlaylistExportTests(SimpleTestCase):
    """Text, CSV and JSON renderings."""

    def setUp(self):
        self.songs = [Song("So What", "Miles Davis"), Song('Say "Hello"', "Band, The")]

    def test_text_export(self):
        self.assertEqual(
            playlist_as_text("Late Night", self.songs),
            'Late Night\n\n1. So What - Miles Davis\n2. Say "Hello" - Band, The',
        )

    def test_csv_export_quotes_text_fields(self):
        lines = playlist_as_csv("Late Night", self.songs).split("\n")
        self.assertEqual(lines[0], "Track,Artist,Title")
        self.assertEqual(lines[1], '1,"Miles Davis","So What"')
        self.assertEqual(lines[2], '2,"Band, The","Say ""Hello"""')

    def test_json_export(self):
        created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        payload = json.loads(playlist_as_json("Late Night", self.songs, created=created))
        self.assertEqual(payload["name"], "Late Night")
        self.assertEqual(payload["created"], "2024-05-01T12:00:00+00:00")
        self.assertEqual(payload["tracks"][1], {"position": 2, "title": 'Say "Hello"', "artist": "Band, The"})

    def test_render_rejects_unknown_format(self):
        with self.assertRaises(InvalidInput):
            render_playlist("xml", "Late Night", self.songs)

    def test_render_reports_content_type(self):
        body, content_type, extension = render_playlist("csv", "Late Night", self.songs)
        self.assertTrue(body.startswith("Track,Artist,Title"))
        self.assertEqual(content_type, "text/csv; charset=utf-8")
        self.assertEqual(extension, "csv")
