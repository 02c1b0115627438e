"""
Dispatcher - runs one job to completion against ListenBrainz and the library.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..artist_cache import ArtistIdentityCache
from ..listenbrainz_client import ListenBrainzClient
from ..logging_utils import redact, stage_timer, truncate_list
from ..models import ReconciliationOutcome
from ..playlist.reconciler import (
    PlaylistReconciler,
    ReconcileError,
    build_generate_comment,
    build_import_comment,
)
from ..playlist.selection import SelectionConfig, select_candidates
from ..retry_helper import CatalogError
from ..subsonic_client import LibraryBackend, LibraryError
from ..track_resolver import TrackResolver
from .job_model import (
    GeneratePayload,
    ImportPayload,
    Job,
    JobOutcome,
    JobStatus,
    PatchPayload,
    ScheduledJob,
    SyncError,
)
from .job_types import JOB_DURATION, JobType

logger = logging.getLogger(__name__)

CatalogFactory = Callable[[Job], ListenBrainzClient]


class Dispatcher:
    """Routes each job kind to its routine and reports the outcome."""

    def __init__(
        self,
        library: LibraryBackend,
        catalog_factory: Optional[CatalogFactory] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Args:
            library: Local library backend
            catalog_factory: Builds a ListenBrainz client for a job's credentials
            clock: Source of "now" for recency checks and comments
        """
        self.library = library
        self.catalog_factory = catalog_factory or (lambda job: ListenBrainzClient(job.lbz_token))
        self.clock = clock
        self.reconciler = PlaylistReconciler(library)

    def dispatch(self, job: Job) -> JobOutcome:
        """
        Run a job. Failures are returned in the outcome, never raised.
        """
        routines = {
            JobType.FETCH_PATCHES: self._dispatch_source_fetching,
            JobType.GENERATE_JAMS: self._dispatch_generate,
            JobType.IMPORT_PLAYLIST: self._dispatch_import,
        }
        outcome = JobOutcome(job=job, started_at=self.clock())
        routine = routines[job.kind]

        try:
            with stage_timer(job.describe(), logger=logger):
                routine(job, outcome)
        except CatalogError as e:
            self._fail(outcome, e.message, kind=e.kind.value, retryable=e.retryable)
        except ReconcileError as e:
            self._fail(outcome, str(e), kind="library")
        except LibraryError as e:
            self._fail(outcome, e.message, kind="library")

        outcome.finished_at = self.clock()
        return outcome

    def _fail(self, outcome: JobOutcome, message: str, *, kind: str, retryable: bool = False) -> None:
        job = outcome.job
        message = redact(message)
        logger.error(f"{job.describe()} failed: {message}")
        outcome.errors.append(
            SyncError(user=job.username, playlist=job.playlist_name, message=message, kind=kind, retryable=retryable)
        )
        outcome.status = JobStatus.FAILED

    def _resolver(self, job: Job) -> TrackResolver:
        # One cache per run; never shared between jobs
        return TrackResolver(
            self.library,
            job.username,
            fallback_count=job.fallback,
            artist_cache=ArtistIdentityCache(),
        )

    def _dispatch_source_fetching(self, job: Job, outcome: JobOutcome) -> None:
        payload: PatchPayload = job.payload
        catalog = self.catalog_factory(job)

        # A failure here is fatal for the whole job
        playlists = catalog.get_created_for_playlists(job.lbz_username)

        for idx, source in enumerate(payload.sources):
            match = next((p for p in playlists if p.source_patch == source.source_patch), None)

            if match is None:
                message = (
                    f"No playlist for ListenBrainz user `{job.lbz_username}` found "
                    f"with algorithm/source patch `{source.source_patch}`"
                )
                logger.error(message)
                outcome.errors.append(SyncError(user=job.username, playlist=source.playlist_name, message=message))
                continue

            import_job = job.with_payload(
                JobType.IMPORT_PLAYLIST,
                ImportPayload(name=source.playlist_name, lbz_id=match.playlist_id),
            )
            outcome.chained.append(ScheduledJob(delay=JOB_DURATION * (idx + 1), job=import_job))
            logger.debug(f"Queued import of {match.playlist_id} into `{source.playlist_name}`")

        if outcome.errors:
            outcome.status = JobStatus.PARTIAL if outcome.chained else JobStatus.FAILED

    def _dispatch_generate(self, job: Job, outcome: JobOutcome) -> None:
        payload: GeneratePayload = job.payload
        catalog = self.catalog_factory(job)
        now = self.clock()

        logger.info(f"Generating playlist `{payload.name}` for user {job.username}")

        recommendations = catalog.get_recommendations(job.lbz_username)
        mbids = list(recommendations.mbids)
        metadata = catalog.lookup_recordings(mbids)

        selection = select_candidates(
            mbids=mbids,
            metadata=metadata,
            resolver=self._resolver(job),
            config=SelectionConfig(
                ratings=job.ratings,
                track_age_days=payload.track_age_days,
                artist_limit=payload.artist_limit,
            ),
            now=now,
        )
        outcome.result = selection

        comment = build_generate_comment(
            generated_at=now,
            recommendation_count=len(mbids),
            recommendations_updated=datetime.fromtimestamp(recommendations.last_updated, timezone.utc),
            excluded=selection.excluded,
            missing=selection.missing,
            recent_count=selection.recent_count,
        )

        self.reconciler.reconcile(job.username, payload.name, comment, selection.track_ids)
        logger.info(f"Successfully generated playlist `{payload.name}` for user {job.username}")

    def _dispatch_import(self, job: Job, outcome: JobOutcome) -> None:
        payload: ImportPayload = job.payload
        catalog = self.catalog_factory(job)

        playlist = catalog.get_playlist(payload.lbz_id)
        logger.info(f"Importing playlist `{playlist.title}`")

        resolver = self._resolver(job)
        result = ReconciliationOutcome()
        outcome.result = result

        for track in playlist.tracks:
            song = resolver.resolve_ref(track)
            if song is None:
                result.missing.append(track.label())
            elif song.user_rating in job.ratings:
                result.add_track_id(song.id)
            else:
                result.excluded.append(track.label())

        if result.missing:
            logger.info(f"Unmatched tracks: {truncate_list(result.missing, max_items=5)}")

        if not result.track_ids:
            message = f"No matching files found for playlist {payload.name}. Refusing to create/update"
            logger.warning(message)
            outcome.errors.append(SyncError(user=job.username, playlist=payload.name, message=message))
            outcome.status = JobStatus.SKIPPED
            return

        comment = build_import_comment(
            identifier=playlist.identifier,
            date=playlist.date,
            missing=result.missing,
            excluded=result.excluded,
        )
        self.reconciler.reconcile(job.username, payload.name, comment, result.track_ids)
        logger.info(f"Successfully processed playlist `{payload.name}` for user {job.username}")
