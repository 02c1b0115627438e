"""
Batch construction for the periodic sweep and the startup check.

The periodic sweep schedules every configured source, generation and
recurring import for every user. The startup check only schedules work whose
destination playlist is missing or has not changed for STALE_AFTER.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from ..models import LocalPlaylist, find_playlist
from ..subsonic_client import LibraryBackend, LibraryError
from .job_model import (
    GeneratePayload,
    ImportPayload,
    Job,
    PatchPayload,
    ScheduledJob,
    Source,
    SyncError,
)
from .job_types import JobType

logger = logging.getLogger(__name__)

STALE_AFTER = timedelta(hours=3)
FIRST_DELAY = 1


@dataclass
class Batch:
    """Jobs to schedule plus what the startup check found."""
    jobs: List[ScheduledJob] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    stale: List[str] = field(default_factory=list)
    errors: List[SyncError] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.jobs)


def schedule(jobs: Iterable[Job], first_delay: int = FIRST_DELAY) -> List[ScheduledJob]:
    """
    Space jobs out so none overlaps the previous one's reserved duration.

    The first job runs after `first_delay` seconds; each following one after
    the previous delay plus the previous job's duration.
    """
    scheduled: List[ScheduledJob] = []
    delay = first_delay
    for job in jobs:
        scheduled.append(ScheduledJob(delay=delay, job=job))
        delay += job.duration()
    return scheduled


def _label(user: str, playlist: str) -> str:
    return f"User: `{user}`, Source: `{playlist}`"


class BatchBuilder:
    """Builds job batches from the per-user configuration."""

    def __init__(
        self,
        users: Iterable,
        fallback: int,
        library: Optional[LibraryBackend] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Args:
            users: UserConfig entries (see config_loader)
            fallback: Title-search breadth for every job
            library: Library backend, needed for the startup check
            clock: Source of "now" for staleness checks
        """
        self.users = list(users)
        self.fallback = fallback
        self.library = library
        self.clock = clock

    def _job(self, user, kind: JobType, payload) -> Job:
        return Job(
            kind=kind,
            username=user.username,
            lbz_username=user.lbz_username,
            lbz_token=user.lbz_token,
            ratings=user.ratings,
            fallback=self.fallback,
            payload=payload,
        )

    def _generate_payload(self, user) -> GeneratePayload:
        return GeneratePayload(
            name=user.generated_playlist,
            track_age_days=user.generated_playlist_track_age,
            artist_limit=user.generated_playlist_artist_limit,
        )

    def build_periodic(self) -> Batch:
        """
        Every source, the generated playlist and recurring imports, per user.

        One-time imports are checked against the library and scheduled only
        when their playlist does not exist yet.
        """
        batch = Batch()
        jobs: List[Job] = []

        for user in self.users:
            if user.sources:
                jobs.append(self._job(user, JobType.FETCH_PATCHES, PatchPayload(sources=tuple(user.sources))))

            if user.generates:
                jobs.append(self._job(user, JobType.GENERATE_JAMS, self._generate_payload(user)))

            recurring = [p for p in user.playlists if not p.one_time]
            one_time = [p for p in user.playlists if p.one_time]

            for item in recurring:
                jobs.append(self._job(user, JobType.IMPORT_PLAYLIST, ImportPayload(name=item.name, lbz_id=item.lbz_id)))

            if one_time:
                existing = self._list_playlists(user, batch)
                if existing is None:
                    continue
                for item in one_time:
                    if find_playlist(existing, item.name) is None:
                        batch.missing.append(_label(user.username, item.name))
                        jobs.append(
                            self._job(user, JobType.IMPORT_PLAYLIST, ImportPayload(name=item.name, lbz_id=item.lbz_id))
                        )

        batch.jobs = schedule(jobs)
        logger.info(f"Periodic sweep: {len(batch.jobs)} job(s) for {len(self.users)} user(s)")
        return batch

    def build_initial(self) -> Batch:
        """Only work whose playlist is missing, or stale beyond STALE_AFTER."""
        batch = Batch()
        jobs: List[Job] = []
        now = self.clock()

        for user in self.users:
            existing = self._list_playlists(user, batch)
            if existing is None:
                continue

            def needs_refresh(name: str, refresh_stale: bool = True) -> bool:
                playlist = find_playlist(existing, name)
                if playlist is None:
                    batch.missing.append(_label(user.username, name))
                    return True
                if refresh_stale and self._is_stale(playlist, now):
                    batch.stale.append(_label(user.username, name))
                    return True
                return False

            fetched: List[Source] = [s for s in user.sources if needs_refresh(s.playlist_name)]
            if fetched:
                jobs.append(self._job(user, JobType.FETCH_PATCHES, PatchPayload(sources=tuple(fetched))))

            if user.generates and needs_refresh(user.generated_playlist):
                jobs.append(self._job(user, JobType.GENERATE_JAMS, self._generate_payload(user)))

            for item in user.playlists:
                if needs_refresh(item.name, refresh_stale=not item.one_time):
                    jobs.append(
                        self._job(user, JobType.IMPORT_PLAYLIST, ImportPayload(name=item.name, lbz_id=item.lbz_id))
                    )

        batch.jobs = schedule(jobs)
        if batch.jobs:
            logger.info(
                f"Missing or outdated playlists, fetching on initial sync. "
                f"Missing: {batch.missing}, Outdated: {batch.stale}"
            )
        else:
            logger.info("No missing/outdated playlists, not fetching")
        return batch

    def _is_stale(self, playlist: LocalPlaylist, now: datetime) -> bool:
        if playlist.changed is None:
            return True
        return now - playlist.changed > STALE_AFTER

    def _list_playlists(self, user, batch: Batch) -> Optional[List[LocalPlaylist]]:
        if self.library is None:
            raise ValueError("A library backend is required to check existing playlists")
        try:
            return self.library.get_playlists(user.username)
        except LibraryError as e:
            message = f"Failed to fetch playlists for user {user.username}: {e}"
            logger.error(message)
            batch.errors.append(SyncError(user=user.username, playlist="", message=message, kind="library"))
            return None
