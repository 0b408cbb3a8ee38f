"""Tests for the Spotify track resolution and export helpers."""

from unittest.mock import AsyncMock, Mock, patch

from django.test import SimpleTestCase
from spotipy.exceptions import SpotifyException

from curator.services import spotify_handler as handler
from curator.services.exceptions import ConfigurationError, InvalidInput, UpstreamError
from curator.services.playlist_types import Song


def _track(name, artist, uri, *, popularity=0, album_type="album", album_name="Album", images=None):
    return {
        "name": name,
        "uri": uri,
        "popularity": popularity,
        "artists": [{"name": artist}],
        "album": {"album_type": album_type, "name": album_name, "images": images or []},
    }


def _search_by_query(results):
    """Build a fake ``sp.search`` answering from a query -> tracks mapping."""

    def search(q, type, limit):  # pylint: disable=redefined-builtin,unused-argument
        return {"tracks": {"items": results.get(q, [])}}

    return Mock(side_effect=search)


class TrackScoringTests(SimpleTestCase):
    """Scoring criteria for candidate tracks."""

    def test_canonical_recording_scores_every_criterion(self):
        track = _track("Yellow", "Coldplay", "spotify:track:1", popularity=20)
        total, breakdown = handler.score_track(track, "Yellow", "Coldplay")
        self.assertEqual(total, 230)
        self.assertEqual(breakdown["title"], 100)
        self.assertEqual(breakdown["artist"], 80)
        self.assertEqual(breakdown["release_type"], 30)

    def test_alternate_versions_are_penalized(self):
        live = _track("Yellow (Live)", "Coldplay", "spotify:track:2", popularity=50, album_name="Live in Buenos Aires")
        total, breakdown = handler.score_track(live, "Yellow", "Coldplay")
        self.assertEqual(breakdown["alternate_version"], -50)
        self.assertEqual(breakdown["decorations"], -10)
        self.assertEqual(total, 80 + 80 + 50 + 30 - 50 - 10)

    def test_unrequested_feature_penalized(self):
        track = _track("Song feat. Guest", "Artist", "spotify:track:3", album_type="single")
        _, breakdown = handler.score_track(track, "Song", "Artist")
        self.assertEqual(breakdown["featuring"], -15)
        self.assertEqual(breakdown["release_type"], 20)

    def test_popularity_is_capped(self):
        track = _track("Other", "Someone", "spotify:track:4", popularity=250, album_type="compilation")
        self.assertEqual(handler.score_track(track, "Song", "Artist")[0], 100)

    def test_ties_keep_catalog_order(self):
        tracks = [_track("Song", "Artist", "spotify:track:a"), _track("Song", "Artist", "spotify:track:b")]
        ranked = handler.rank_candidates(tracks, "Song", "Artist")
        self.assertEqual([candidate.track["uri"] for candidate in ranked], ["spotify:track:a", "spotify:track:b"])


class TrackResolverTests(SimpleTestCase):
    """Scoped search, fallback search and ranking."""

    async def test_single_exact_result_resolves(self):
        sp = Mock()
        sp.search = _search_by_query(
            {'track:"Yellow" artist:"Coldplay"': [_track("Yellow", "Coldplay", "spotify:track:yellow")]}
        )
        resolver = handler.TrackResolver(None, sp=sp)

        self.assertEqual(await resolver.resolve("Yellow", "Coldplay"), "spotify:track:yellow")
        sp.search.assert_called_once_with(q='track:"Yellow" artist:"Coldplay"', type="track", limit=handler.SEARCH_LIMIT)

    async def test_prefers_studio_recording_over_live(self):
        sp = Mock()
        sp.search = _search_by_query(
            {
                'track:"Yellow" artist:"Coldplay"': [
                    _track("Yellow (Live)", "Coldplay", "spotify:track:live", popularity=50, album_name="Live 2003"),
                    _track("Yellow", "Coldplay", "spotify:track:studio", popularity=20),
                ]
            }
        )
        resolver = handler.TrackResolver(None, sp=sp)

        self.assertEqual(await resolver.resolve("Yellow", "Coldplay"), "spotify:track:studio")

    async def test_exact_single_beats_more_popular_live_single(self):
        exact = _track("Yellow", "Coldplay", "spotify:track:exact", popularity=50, album_type="single")
        live = _track("Yellow (Live)", "Coldplay", "spotify:track:live", popularity=90, album_type="single")
        self.assertEqual(handler.score_track(exact, "Yellow", "Coldplay")[0], 250)
        self.assertLess(handler.score_track(live, "Yellow", "Coldplay")[0], 250)

        sp = Mock()
        sp.search = _search_by_query({'track:"Yellow" artist:"Coldplay"': [live, exact]})
        resolver = handler.TrackResolver(None, sp=sp)

        self.assertEqual(await resolver.resolve("Yellow", "Coldplay"), "spotify:track:exact")

    async def test_falls_back_to_free_text_search(self):
        sp = Mock()
        sp.search = _search_by_query({"Don t Stop Me Now Queen": [_track("Don't Stop Me Now", "Queen", "spotify:track:q")]})
        debug_steps = []
        resolver = handler.TrackResolver(None, sp=sp, debug_steps=debug_steps)

        self.assertEqual(await resolver.resolve("Don't Stop Me Now", "Queen"), "spotify:track:q")
        self.assertEqual(sp.search.call_count, 2)
        self.assertEqual(sp.search.call_args_list[0].kwargs["q"], 'track:"Don t Stop Me Now" artist:"Queen"')
        self.assertTrue(any("Resolved" in step for step in debug_steps))

    async def test_returns_none_when_nothing_found(self):
        sp = Mock()
        sp.search = _search_by_query({})
        resolver = handler.TrackResolver(None, sp=sp)

        self.assertIsNone(await resolver.resolve("Unknown", "Nobody"))
        self.assertEqual(sp.search.call_count, 2)

    async def test_search_failure_is_a_miss(self):
        sp = Mock()
        sp.search.side_effect = SpotifyException(429, -1, "rate limited")
        resolver = handler.TrackResolver(None, sp=sp)

        self.assertIsNone(await resolver.resolve("Yellow", "Coldplay"))

    def test_missing_token_raises_configuration_error(self):
        with self.assertRaises(ConfigurationError):
            handler.TrackResolver(None)


class FakeResolver:
    """Resolver stand-in keyed by title."""

    def __init__(self, uris, details):
        self.uris = uris
        self.details = details
        self.sp = Mock()

    async def resolve(self, title, artist):  # pylint: disable=unused-argument
        return self.uris.get(title)

    async def track_details(self, uri):
        detail = self.details[uri]
        if isinstance(detail, Exception):
            raise detail
        return detail


class PlaylistEnhancerTests(SimpleTestCase):
    """Batched enhancement keeps length and order."""

    async def test_failures_leave_songs_unchanged(self):
        songs = [Song("Found", "A"), Song("Missing", "B"), Song("Broken", "C")]
        resolver = FakeResolver(
            {"Found": "spotify:track:found", "Broken": "spotify:track:broken"},
            {
                "spotify:track:found": {
                    "album": {"images": [{"url": "https://img/cover.jpg"}]},
                    "preview_url": "https://p.scdn.co/preview",
                    "popularity": 61,
                },
                "spotify:track:broken": UpstreamError("Spotify request failed: 500 - oops", status=500),
            },
        )

        enhanced = await handler.enhance_playlist(songs, resolver, batch_size=2, delay=0)

        self.assertEqual(len(enhanced), 3)
        self.assertEqual([song.title for song in enhanced], ["Found", "Missing", "Broken"])
        self.assertEqual(enhanced[0].uri, "spotify:track:found")
        self.assertEqual(enhanced[0].cover_url, "https://img/cover.jpg")
        self.assertEqual(enhanced[0].popularity, 61)
        self.assertIs(enhanced[1], songs[1])
        self.assertIs(enhanced[2], songs[2])

    async def test_empty_playlist_returns_empty(self):
        self.assertEqual(await handler.enhance_playlist([], FakeResolver({}, {})), [])

    @patch("curator.services.spotify_handler.asyncio.sleep", new_callable=AsyncMock)
    async def test_batches_pause_between_groups(self, mock_sleep):
        async def worker(value):
            if value == 4:
                raise ValueError("bad item")
            return value * 10

        results = await handler._run_in_batches(list(range(7)), worker, batch_size=3, delay=0.5)

        self.assertEqual(results[:4], [0, 10, 20, 30])
        self.assertIsInstance(results[4], ValueError)
        self.assertEqual(results[5:], [50, 60])
        self.assertEqual(mock_sleep.await_count, 2)
        mock_sleep.assert_awaited_with(0.5)


class CreatePlaylistTests(SimpleTestCase):
    """Playlist creation, chunked track adds and cover upload."""

    def setUp(self):
        self.sp = Mock()
        self.sp.current_user.return_value = {"id": "user-1"}
        self.sp.user_playlist_create.return_value = {
            "id": "pl-1",
            "external_urls": {"spotify": "https://open.spotify.com/playlist/pl-1"},
        }

    async def test_adds_tracks_in_chunks_of_one_hundred(self):
        uris = [f"spotify:track:{index}" for index in range(205)]

        result = await handler.create_playlist_with_tracks(None, uris, "  Road Trip\n", sp=self.sp)

        self.assertEqual(result["playlist_id"], "pl-1")
        self.assertEqual(result["playlist_name"], "Road Trip")
        self.assertEqual(result["playlist_url"], "https://open.spotify.com/playlist/pl-1")
        self.assertEqual(result["user_id"], "user-1")
        batch_sizes = [len(call.args[1]) for call in self.sp.playlist_add_items.call_args_list]
        self.assertEqual(batch_sizes, [100, 100, 5])
        self.sp.user_playlist_create.assert_called_once_with(
            user="user-1", name="Road Trip", public=False, description=handler.DEFAULT_PLAYLIST_DESCRIPTION
        )

    async def test_failed_batch_raises(self):
        self.sp.playlist_add_items.side_effect = SpotifyException(403, -1, "forbidden")

        with self.assertRaises(UpstreamError) as ctx:
            await handler.create_playlist_with_tracks(None, ["spotify:track:1"], "Mix", sp=self.sp)
        self.assertEqual(ctx.exception.status, 403)

    async def test_cover_upload_failure_is_not_fatal(self):
        self.sp.playlist_upload_cover_image.side_effect = SpotifyException(413, -1, "too large")

        result = await handler.create_playlist_with_tracks(
            None, ["spotify:track:1"], "Mix", user_id="user-9", cover_image="aGVsbG8=", sp=self.sp
        )

        self.assertEqual(result["user_id"], "user-9")
        self.sp.current_user.assert_not_called()
        self.sp.playlist_upload_cover_image.assert_called_once_with("pl-1", "aGVsbG8=")

    async def test_rejects_long_names(self):
        with self.assertRaises(InvalidInput):
            await handler.create_playlist_with_tracks(None, ["spotify:track:1"], "x" * 101, sp=self.sp)


class ExportPlaylistTests(SimpleTestCase):
    """End-to-end export with resolution and missing-track reporting."""

    async def test_exports_resolved_tracks_and_reports_missing(self):
        sp = Mock()
        sp.search = _search_by_query(
            {'track:"Naima" artist:"John Coltrane"': [_track("Naima", "John Coltrane", "spotify:track:naima")]}
        )
        sp.current_user.return_value = {"id": "user-1"}
        sp.user_playlist_create.return_value = {"id": "pl-2", "external_urls": {"spotify": "https://open.spotify.com/playlist/pl-2"}}
        songs = [
            Song("Blue in Green", "Miles Davis", uri="spotify:track:blue"),
            Song("Naima", "John Coltrane"),
            Song("Imaginary", "Nobody"),
        ]

        result = await handler.export_playlist_to_spotify(songs, "token", sp=sp)

        self.assertEqual(result["track_count"], 2)
        self.assertEqual(result["missing"], [{"title": "Imaginary", "artist": "Nobody"}])
        sp.playlist_add_items.assert_called_once_with("pl-2", ["spotify:track:blue", "spotify:track:naima"])
        self.assertEqual(sp.user_playlist_create.call_args.kwargs["name"], handler.DEFAULT_PLAYLIST_NAME)

    async def test_empty_playlist_rejected(self):
        with self.assertRaises(InvalidInput):
            await handler.export_playlist_to_spotify([], "token", sp=Mock())

    async def test_no_resolved_tracks_rejected(self):
        sp = Mock()
        sp.search = _search_by_query({})
        with self.assertRaises(InvalidInput):
            await handler.export_playlist_to_spotify([Song("Imaginary", "Nobody")], "token", sp=sp)
        sp.user_playlist_create.assert_not_called()
