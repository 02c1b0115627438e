"""Tests for the idempotent playlist reconciler and comment formats."""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from conftest import FakeLibrary

from brainzsync.models import LocalPlaylist
from brainzsync.playlist.reconciler import (
    PlaylistReconciler,
    ReconcileError,
    build_generate_comment,
    build_import_comment,
    format_rfc1123,
)
from brainzsync.subsonic_client import LibraryError


def test_creates_then_converges():
    library = FakeLibrary()
    reconciler = PlaylistReconciler(library)

    reconciler.reconcile("alice", "Daily Jams", "comment A", ["s1", "s2"])
    assert library.create_calls == [("alice", ["s1", "s2"], None, "Daily Jams")]
    assert len(library.update_calls) == 1

    reconciler.reconcile("alice", "Daily Jams", "comment A", ["s1", "s2"])
    assert library.create_calls[-1] == ("alice", ["s1", "s2"], "pl1", None)
    assert len(library.update_calls) == 1


def test_changed_comment_is_updated():
    library = FakeLibrary(playlists={"alice": [LocalPlaylist(id="p9", name="Daily Jams", comment="old")]})

    saved = PlaylistReconciler(library).reconcile("alice", "Daily Jams", "new", ["s1"])

    assert saved.id == "p9"
    assert library.update_calls == [("alice", "p9", "new")]


def test_empty_song_list_clears_existing_playlist():
    library = FakeLibrary(playlists={"alice": [LocalPlaylist(id="p9", name="Daily Jams", comment="c")]})

    PlaylistReconciler(library).reconcile("alice", "Daily Jams", "c", [])

    assert library.create_calls == [("alice", [], "p9", None)]
    assert library.update_calls == []


def test_falls_back_to_listed_playlist_when_no_body_returned():
    library = MagicMock()
    library.get_playlists.return_value = [LocalPlaylist(id="p1", name="Mix", comment="same")]
    library.create_playlist.return_value = None

    PlaylistReconciler(library).reconcile("alice", "Mix", "same", ["s1"])

    library.update_playlist.assert_not_called()


def test_relists_after_creating_without_body():
    library = MagicMock()
    library.get_playlists.side_effect = [[], [LocalPlaylist(id="p2", name="Mix", comment="")]]
    library.create_playlist.return_value = None

    PlaylistReconciler(library).reconcile("alice", "Mix", "fresh", ["s1"])

    library.update_playlist.assert_called_once_with("alice", "p2", comment="fresh")


def test_not_found_after_create():
    library = MagicMock()
    library.get_playlists.return_value = []
    library.create_playlist.return_value = None

    with pytest.raises(ReconcileError) as exc_info:
        PlaylistReconciler(library).reconcile("alice", "Mix", "c", ["s1"])
    assert exc_info.value.playlist_name == "Mix"
    assert exc_info.value.user == "alice"


def test_empty_create_that_makes_nothing_is_not_an_error():
    library = MagicMock()
    library.get_playlists.return_value = []
    library.create_playlist.return_value = None

    assert PlaylistReconciler(library).reconcile("alice", "Gen", "c", []) is None
    library.create_playlist.assert_called_once_with("alice", [], name="Gen")
    library.update_playlist.assert_not_called()


@pytest.mark.parametrize("failing", ["get_playlists", "create_playlist", "update_playlist"])
def test_library_failures_become_reconcile_errors(failing):
    library = MagicMock()
    library.get_playlists.return_value = [LocalPlaylist(id="p1", name="Mix", comment="old")]
    library.create_playlist.return_value = None
    getattr(library, failing).side_effect = LibraryError("boom", code=0)

    with pytest.raises(ReconcileError):
        PlaylistReconciler(library).reconcile("alice", "Mix", "new", ["s1"])


def test_import_comment():
    assert build_import_comment(identifier="https://lb/playlist/1", date="2024-01-01") == (
        "Imported from playlist https://lb/playlist/1\nUpdated on: 2024-01-01"
    )
    comment = build_import_comment(
        identifier="id", date="d", missing=["A by X", "B by Y"], excluded=["C by Z"],
    )
    assert comment.splitlines() == [
        "Imported from playlist id",
        "Updated on: d",
        "Tracks not matched by track MBID or track name + artist MBIDs: A by X, B by Y",
        "Tracks excluded by rating rule: C by Z",
    ]


def test_generate_comment():
    comment = build_generate_comment(
        generated_at=datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc),
        recommendation_count=1000,
        recommendations_updated=datetime(2024, 5, 31, 3, 4, 5, tzinfo=timezone.utc),
        excluded=["T1"],
        missing=["T2", "T3"],
        recent_count=4,
    )
    assert comment.splitlines() == [
        "Jams generated on Sat, 01 Jun 2024 12:00:00 GMT with 1000 recommendations "
        "generated on Fri, 31 May 2024 03:04:05 GMT.",
        "Excluded by rating rules: T1",
        "Tracks not found in library: T2, T3",
        "Excluded for being recent: 4",
    ]


def test_rfc1123_assumes_utc_for_naive():
    assert format_rfc1123(datetime(2024, 1, 2, 3, 4, 5)) == "Tue, 02 Jan 2024 03:04:05 GMT"
