"""Tests for domain types and rating parsing."""
from datetime import datetime, timezone

import pytest

from brainzsync.models import (
    ALL_RATINGS,
    LocalPlaylist,
    LocalTrack,
    RecordingMetadata,
    ReconciliationOutcome,
    RemotePlaylist,
    find_playlist,
    get_identifier,
    parse_ratings,
    parse_timestamp,
)


class TestParseRatings:

    @pytest.mark.parametrize("raw", [None, [], "", ["x", "7"], [-1, 6], "a,b"])
    def test_nothing_valid_allows_everything(self, raw):
        assert parse_ratings(raw) == ALL_RATINGS

    def test_duplicates_and_invalid_entries_collapse(self):
        assert parse_ratings(["1", "1", "x", "7"]) == frozenset({1})

    def test_comma_separated_string(self):
        assert parse_ratings("0, 2,5") == frozenset({0, 2, 5})

    def test_single_int(self):
        assert parse_ratings(4) == frozenset({4})

    def test_bools_are_not_ratings(self):
        assert parse_ratings([True, 3]) == frozenset({3})


def test_get_identifier_takes_last_segment():
    assert get_identifier("https://listenbrainz.org/playlist/abc-123") == "abc-123"
    assert get_identifier("plain") == "plain"
    assert get_identifier("") == ""


def test_parse_timestamp_handles_zulu_and_garbage():
    parsed = parse_timestamp("2024-05-01T10:00:00Z")
    assert parsed == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None
    assert parse_timestamp("2024-05-01T10:00:00").tzinfo is not None


def test_remote_playlist_from_jspf():
    payload = {
        "identifier": "https://listenbrainz.org/playlist/pl-1",
        "title": "Daily Jams",
        "date": "2024-05-01T00:00:00+00:00",
        "extension": {
            "https://musicbrainz.org/doc/jspf#playlist": {
                "last_modified_at": "2024-05-01T01:00:00Z",
                "additional_metadata": {"algorithm_metadata": {"source_patch": "daily-jams"}},
            }
        },
        "track": [
            {
                "title": "Song A",
                "creator": "Artist A",
                "identifier": ["https://musicbrainz.org/recording/rec-1"],
                "extension": {
                    "https://musicbrainz.org/doc/jspf#track": {
                        "additional_metadata": {"artists": [{"artist_mbid": "art-1"}, {"artist_mbid": "art-2"}]}
                    }
                },
            }
        ],
    }

    playlist = RemotePlaylist.from_jspf(payload)

    assert playlist.playlist_id == "pl-1"
    assert playlist.source_patch == "daily-jams"
    track = playlist.tracks[0]
    assert track.mbid == "rec-1"
    assert track.artist_mbids == ("art-1", "art-2")
    assert track.label() == "Song A by Artist A"


def test_recording_metadata_from_lookup():
    meta = RecordingMetadata.from_lookup("rec-1", {
        "recording": {"name": "Song A"},
        "artist": {"name": "A & B", "artists": [{"artist_mbid": "a"}, {"artist_mbid": "b"}]},
    })
    assert meta.title == "Song A"
    assert meta.artist_mbids == ("a", "b")


def test_local_track_from_subsonic_prefers_artist_list():
    song = LocalTrack.from_subsonic({
        "id": "s1", "title": "T", "userRating": 4, "played": "2024-01-01T00:00:00Z",
        "artistId": "legacy", "artists": [{"id": "x"}, {"id": "y"}],
    })
    assert song.artist_ids == ("x", "y")
    assert song.user_rating == 4
    assert song.played is not None

    legacy = LocalTrack.from_subsonic({"id": "s2", "title": "T", "artistId": "legacy"})
    assert legacy.artist_ids == ("legacy",)
    assert legacy.user_rating == 0
    assert legacy.played is None


def test_find_playlist_is_exact():
    playlists = [LocalPlaylist(id="1", name="Daily"), LocalPlaylist(id="2", name="Daily Jams")]
    assert find_playlist(playlists, "Daily Jams").id == "2"
    assert find_playlist(playlists, "daily jams") is None


def test_outcome_deduplicates_ids_in_order():
    outcome = ReconciliationOutcome()
    assert outcome.add_track_id("a")
    assert outcome.add_track_id("b")
    assert not outcome.add_track_id("a")
    assert outcome.track_ids == ["a", "b"]
