"""
ListenBrainz Playlist Sync - Main Application
Keeps Subsonic/Navidrome playlists in step with ListenBrainz recommendations
"""
import argparse
import logging
import sys
import time
import uuid
from typing import Callable, List, Optional

from brainzsync.config_loader import Config, ConfigError
from brainzsync.jobs import BatchBuilder, Dispatcher, JobOutcome, JobQueue, JobStatus, JobStore
from brainzsync.jobs.dispatcher import CatalogFactory
from brainzsync.listenbrainz_client import ListenBrainzClient
from brainzsync.logging_utils import (
    RunSummary,
    add_logging_args,
    configure_logging,
    format_count,
    resolve_log_level,
)
from brainzsync.rate_limiter import RateLimiter
from brainzsync.subsonic_client import LibraryBackend, SubsonicClient

logger = logging.getLogger("brainzsync.app")


class SyncApp:
    """Main application orchestrator"""

    def __init__(
        self,
        config: Config,
        library: Optional[LibraryBackend] = None,
        catalog_factory: Optional[CatalogFactory] = None,
        job_store: Optional[JobStore] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.sleep = sleep

        self.library = library or SubsonicClient(
            config.subsonic_url,
            config.credentials(),
            client_name=config.subsonic_client_name,
            verify_ssl=config.subsonic_verify_ssl,
        )

        # One limiter for every client so the shared window is respected
        rate_limiter = RateLimiter(threshold=config.rate_limit_threshold, sleep=sleep)
        self.catalog_factory = catalog_factory or (
            lambda job: ListenBrainzClient(
                job.lbz_token,
                base_url=config.listenbrainz_base_url,
                rate_limiter=rate_limiter,
            )
        )

        if job_store is None and config.job_history_enabled:
            job_store = JobStore()
        self.job_store = job_store

        self.dispatcher = Dispatcher(self.library, self.catalog_factory)
        self.builder = BatchBuilder(config.users, config.fallback_count, library=self.library)

    def _run_batch(self, title: str, batch) -> List[JobOutcome]:
        summary = RunSummary(title, logger=logger)
        for error in batch.errors:
            logger.error(error.message)

        queue = JobQueue(self.dispatcher, job_store=self.job_store, sleep=self.sleep)
        queue.extend(batch.jobs)
        outcomes = queue.run()

        summary.add("scheduled", format_count(len(batch.jobs), "job"))
        summary.add("missing", len(batch.missing))
        summary.add("stale", len(batch.stale))
        for outcome in outcomes:
            summary.increment(outcome.status.value.lower())
        summary.add("errors", len(batch.errors) + sum(len(o.errors) for o in outcomes))
        summary.log()
        return outcomes

    def run_initial(self) -> List[JobOutcome]:
        """Sync only playlists that are missing or stale."""
        return self._run_batch("Initial sync", self.builder.build_initial())

    def run_once(self) -> List[JobOutcome]:
        """One full sweep over every configured playlist."""
        return self._run_batch("Periodic sync", self.builder.build_periodic())

    def run_forever(self) -> None:
        """Startup check, then a full sweep every schedule_hours."""
        if self.config.check_on_startup:
            self.run_initial()
        interval = self.config.schedule_hours * 3600
        while True:
            logger.info(f"Next sync in {self.config.schedule_hours:g}h")
            self.sleep(interval)
            self.run_once()


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point"""
    parser = argparse.ArgumentParser(
        description="Synchronize ListenBrainz playlists and recommendations into a Subsonic server"
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config.yaml",
        help="Path to the YAML configuration (default: config.yaml)"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--initial",
        action="store_true",
        help="Only sync playlists that are missing or outdated, then exit"
    )
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run one full sync of every configured playlist, then exit"
    )
    add_logging_args(parser)
    args = parser.parse_args(argv)

    configure_logging(
        level=resolve_log_level(args),
        log_file=args.log_file,
        run_id=uuid.uuid4().hex[:8],
        show_run_id=args.show_run_id,
    )

    try:
        config = Config(args.config)
    except FileNotFoundError as e:
        logger.error(f"{e}. See config.example.yaml for reference.")
        return 1
    except ConfigError as e:
        logger.error(f"Configuration Error: {e}")
        return 1

    app = SyncApp(config)
    try:
        if args.initial:
            outcomes = app.run_initial()
        elif args.once:
            outcomes = app.run_once()
        else:
            app.run_forever()
            return 0
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
        return 130

    return 0 if all(o.status != JobStatus.FAILED for o in outcomes) else 2


if __name__ == "__main__":
    sys.exit(main())
