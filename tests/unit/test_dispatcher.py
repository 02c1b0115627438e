"""Tests for job dispatch: fetch-sources, generate and import."""
from datetime import timedelta
from unittest.mock import MagicMock

from conftest import NOW, FakeLibrary, make_song

from brainzsync.jobs.dispatcher import Dispatcher
from brainzsync.jobs.job_model import (
    GeneratePayload,
    ImportPayload,
    Job,
    JobStatus,
    PatchPayload,
    Source,
)
from brainzsync.jobs.job_types import JobType
from brainzsync.models import LocalPlaylist, Recommendations, RecordingMetadata, RemotePlaylist, RemoteTrackRef
from brainzsync.retry_helper import CatalogError, ErrorKind
from brainzsync.subsonic_client import LibraryError


def _job(kind, payload, ratings=None):
    return Job(
        kind=kind, username="alice", lbz_username="alice_lb", lbz_token="tok",
        payload=payload, ratings=ratings,
    )


def _dispatcher(library, catalog):
    return Dispatcher(library, catalog_factory=lambda job: catalog, clock=lambda: NOW)


class TestFetchSources:

    def test_partial_match_chains_one_import(self):
        catalog = MagicMock()
        catalog.get_created_for_playlists.return_value = [
            RemotePlaylist(identifier="https://listenbrainz.org/playlist/pl-old", source_patch="weekly-jams"),
            RemotePlaylist(identifier="https://listenbrainz.org/playlist/pl-daily", source_patch="daily-jams"),
            RemotePlaylist(identifier="https://listenbrainz.org/playlist/pl-daily-2", source_patch="daily-jams"),
        ]
        job = _job(JobType.FETCH_PATCHES, PatchPayload(sources=(
            Source("missing-patch", "Nope"),
            Source("daily-jams", "Daily Jams"),
        )))

        outcome = _dispatcher(FakeLibrary(), catalog).dispatch(job)

        catalog.get_created_for_playlists.assert_called_once_with("alice_lb")
        assert outcome.status == JobStatus.PARTIAL
        assert len(outcome.chained) == 1
        chained = outcome.chained[0]
        assert chained.delay == 60
        assert chained.job.kind == JobType.IMPORT_PLAYLIST
        assert chained.job.payload == ImportPayload(name="Daily Jams", lbz_id="pl-daily")
        assert chained.job.lbz_token == "tok"
        assert outcome.error_message() == (
            "No playlist for ListenBrainz user `alice_lb` found with algorithm/source patch `missing-patch`"
        )

    def test_no_match_fails(self):
        catalog = MagicMock()
        catalog.get_created_for_playlists.return_value = []
        job = _job(JobType.FETCH_PATCHES, PatchPayload(sources=(Source("a", "A"), Source("b", "B"))))

        outcome = _dispatcher(FakeLibrary(), catalog).dispatch(job)

        assert outcome.status == JobStatus.FAILED
        assert len(outcome.errors) == 2
        assert outcome.chained == []

    def test_collection_failure_is_fatal(self):
        catalog = MagicMock()
        catalog.get_created_for_playlists.side_effect = CatalogError(ErrorKind.RATE_LIMITED, "slow down", code=429)
        job = _job(JobType.FETCH_PATCHES, PatchPayload(sources=(Source("a", "A"),)))

        outcome = _dispatcher(FakeLibrary(), catalog).dispatch(job)

        assert outcome.status == JobStatus.FAILED
        assert outcome.retryable
        assert outcome.errors[0].kind == "rate_limited"


class TestImport:

    def _catalog(self, tracks):
        catalog = MagicMock()
        catalog.get_playlist.return_value = RemotePlaylist(
            identifier="https://listenbrainz.org/playlist/pl-1", title="Mix", date="2024-05-30", tracks=tuple(tracks),
        )
        return catalog

    def test_zero_resolved_tracks_never_writes(self):
        library = FakeLibrary()
        catalog = self._catalog([RemoteTrackRef(title="Ghost", mbid="rec-x", creator="Nobody")])

        outcome = _dispatcher(library, catalog).dispatch(
            _job(JobType.IMPORT_PLAYLIST, ImportPayload(name="Mix", lbz_id="pl-1"))
        )

        assert outcome.status == JobStatus.SKIPPED
        assert library.create_calls == []
        assert library.update_calls == []
        assert outcome.errors[0].message == "No matching files found for playlist Mix. Refusing to create/update"

    def test_import_filters_and_writes_comment(self):
        library = FakeLibrary(songs_by_mbid={
            "rec-1": make_song("s1", "One", rating=5),
            "rec-2": make_song("s2", "Two", rating=1),
        })
        catalog = self._catalog([
            RemoteTrackRef(title="One", mbid="rec-1", creator="A"),
            RemoteTrackRef(title="Two", mbid="rec-2", creator="B"),
            RemoteTrackRef(title="Three", mbid="rec-3", creator="C"),
        ])

        outcome = _dispatcher(library, catalog).dispatch(
            _job(JobType.IMPORT_PLAYLIST, ImportPayload(name="Mix", lbz_id="pl-1"), ratings=[0, 3, 4, 5])
        )

        catalog.get_playlist.assert_called_once_with("pl-1")
        assert outcome.status == JobStatus.SUCCESS
        assert library.create_calls == [("alice", ["s1"], None, "Mix")]
        comment = library.update_calls[0][2]
        assert comment == (
            "Imported from playlist https://listenbrainz.org/playlist/pl-1\n"
            "Updated on: 2024-05-30\n"
            "Tracks not matched by track MBID or track name + artist MBIDs: Three by C\n"
            "Tracks excluded by rating rule: Two by B"
        )

    def test_library_failure_becomes_failed_outcome(self):
        library = MagicMock()
        library.search.return_value = MagicMock(songs=[make_song("s1")], artists=[])
        library.get_playlists.side_effect = LibraryError("down")
        catalog = self._catalog([RemoteTrackRef(title="One", mbid="rec-1")])

        outcome = _dispatcher(library, catalog).dispatch(
            _job(JobType.IMPORT_PLAYLIST, ImportPayload(name="Mix", lbz_id="pl-1"))
        )

        assert outcome.status == JobStatus.FAILED
        assert outcome.errors[0].playlist == "Mix"
        assert not outcome.retryable


class TestGenerate:

    def test_generate_reconciles_selection(self):
        played = NOW - timedelta(days=100)
        library = FakeLibrary(
            songs_by_mbid={
                "r1": make_song("s1", "One", played=played, artists=("a1",)),
                "r2": make_song("s2", "Two", played=NOW - timedelta(days=1), artists=("a2",)),
                "r3": make_song("s3", "Three", rating=1, played=played, artists=("a3",)),
            },
            playlists={"alice": [LocalPlaylist(id="p1", name="Jams", comment="old")]},
        )
        catalog = MagicMock()
        catalog.get_recommendations.return_value = Recommendations(mbids=("r1", "r2", "r3", "r4"), last_updated=1717200000)
        catalog.lookup_recordings.return_value = {
            m: RecordingMetadata(mbid=m, title=t) for m, t in
            [("r1", "One"), ("r2", "Two"), ("r3", "Three"), ("r4", "Four")]
        }
        job = _job(
            JobType.GENERATE_JAMS,
            GeneratePayload(name="Jams", track_age_days=7, artist_limit=2),
            ratings=[0, 4, 5],
        )

        outcome = _dispatcher(library, catalog).dispatch(job)

        assert outcome.status == JobStatus.SUCCESS
        catalog.lookup_recordings.assert_called_once_with(["r1", "r2", "r3", "r4"])
        assert library.create_calls == [("alice", ["s1"], "p1", None)]
        comment = library.update_calls[0][2]
        assert comment.splitlines() == [
            "Jams generated on Sat, 01 Jun 2024 12:00:00 GMT with 4 recommendations "
            "generated on Sat, 01 Jun 2024 00:00:00 GMT.",
            "Excluded by rating rules: Three",
            "Tracks not found in library: Four",
            "Excluded for being recent: 1",
        ]

    def test_empty_selection_for_new_playlist_succeeds(self):
        library = MagicMock()
        library.get_playlists.return_value = []
        library.create_playlist.return_value = None
        catalog = MagicMock()
        catalog.get_recommendations.return_value = Recommendations(mbids=("r1",), last_updated=1717200000)
        catalog.lookup_recordings.return_value = {}

        outcome = _dispatcher(library, catalog).dispatch(
            _job(JobType.GENERATE_JAMS, GeneratePayload(name="Gen"))
        )

        assert outcome.status == JobStatus.SUCCESS
        assert outcome.errors == []
        assert outcome.result.skipped_metadata == 1
        library.update_playlist.assert_not_called()

    def test_domain_error_fails_job(self):
        catalog = MagicMock()
        catalog.get_recommendations.side_effect = CatalogError(ErrorKind.DOMAIN, "No recommendations found for user alice_lb")
        library = FakeLibrary()

        outcome = _dispatcher(library, catalog).dispatch(
            _job(JobType.GENERATE_JAMS, GeneratePayload(name="Jams"))
        )

        assert outcome.status == JobStatus.FAILED
        assert outcome.error_message() == "No recommendations found for user alice_lb"
        assert library.create_calls == []


def test_each_dispatch_gets_a_fresh_artist_cache():
    library = FakeLibrary(artists_by_mbid={"art-1": "ar1"})
    catalog = MagicMock()
    catalog.get_playlist.return_value = RemotePlaylist(
        identifier="pl", tracks=(RemoteTrackRef(title="T", mbid="rec-x", artist_mbids=("art-1",)),),
    )
    dispatcher = _dispatcher(library, catalog)
    job = _job(JobType.IMPORT_PLAYLIST, ImportPayload(name="Mix", lbz_id="pl"))

    dispatcher.dispatch(job)
    dispatcher.dispatch(job)

    assert len([c for c in library.search_calls if c[0] == "art-1"]) == 2
