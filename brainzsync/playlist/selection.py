"""
Candidate selection for recommendation-based playlists.

Turns an ordered recommendation feed into a bounded list of local song ids:
- Rating filter (user's allowed ratings)
- Never-played tracks held back as backfill
- Recently played exclusion (recency window in days)
- Per-artist cap (diversity)

Feed order is significant and preserved throughout.
"""
from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
import logging

from ..models import LocalTrack, RatingFilter, ReconciliationOutcome, RecordingMetadata
from ..track_resolver import TrackResolver

logger = logging.getLogger(__name__)

TARGET_SIZE = 50


@dataclass(frozen=True)
class SelectionConfig:
    """Configuration for candidate selection."""
    ratings: RatingFilter
    track_age_days: int = 0
    artist_limit: int = 0
    target_size: int = TARGET_SIZE


@dataclass
class SelectionResult(ReconciliationOutcome):
    """Selected ids plus the diagnostics that go into the playlist comment."""
    eligible_count: int = 0
    never_played_count: int = 0
    stats: Dict[str, int] = field(default_factory=dict)


def is_recent(song: LocalTrack, *, now: datetime, track_age_days: int) -> bool:
    """True when the song was played less than track_age_days ago."""
    if song.played is None:
        return False
    hours = (now - song.played).total_seconds() / 3600
    return hours < track_age_days * 24


def _unique_songs(songs: Sequence[LocalTrack], exclude: Sequence[LocalTrack] = ()) -> List[LocalTrack]:
    """First occurrence of each song id, in order, skipping ids in exclude."""
    seen = {song.id for song in exclude}
    unique = []
    for song in songs:
        if song.id not in seen:
            seen.add(song.id)
            unique.append(song)
    return unique


def cap_by_artist(
    *,
    songs: Sequence[LocalTrack],
    artist_limit: int,
    target_size: int = TARGET_SIZE,
) -> Tuple[List[LocalTrack], int]:
    """
    Take songs in order, skipping any whose artists already reached the cap

    Skipped songs are not reconsidered. Every artist credited on a taken song
    counts towards its cap.

    Returns:
        (selected songs, number of songs skipped by the cap)
    """
    if artist_limit <= 0:
        return list(songs[:target_size]), 0

    artist_credits: Counter = Counter()
    selected: List[LocalTrack] = []
    skipped = 0

    for song in songs:
        if any(artist_credits[artist_id] >= artist_limit for artist_id in song.artist_ids):
            skipped += 1
            continue

        selected.append(song)
        if len(selected) == target_size:
            break

        for artist_id in song.artist_ids:
            artist_credits[artist_id] += 1

    return selected, skipped


def select_candidates(
    *,
    mbids: Sequence[str],
    metadata: Mapping[str, RecordingMetadata],
    resolver: TrackResolver,
    config: SelectionConfig,
    now: Optional[datetime] = None,
) -> SelectionResult:
    """
    Resolve and filter a recommendation feed

    Args:
        mbids: Recommended recording mbids, in feed order
        metadata: Recording metadata keyed by mbid
        resolver: Track resolver for the user being synchronized
        config: Rating filter, recency window, artist cap and target size
        now: Reference time for the recency window (defaults to utcnow)

    Returns:
        SelectionResult with selected ids and diagnostics
    """
    now = now or datetime.now(timezone.utc)
    result = SelectionResult()

    eligible: List[LocalTrack] = []
    never_played: List[LocalTrack] = []

    for mbid in mbids:
        recording = metadata.get(mbid)
        if recording is None:
            logger.warning(f"Track with mbid {mbid} not found in metadata lookup. Skipping")
            result.skipped_metadata += 1
            continue

        song = resolver.resolve(recording.title, mbid, recording.artist_mbids)
        if song is None:
            result.missing.append(recording.title)
            continue

        if song.user_rating not in config.ratings:
            result.excluded.append(recording.title)
            continue

        if song.played is None:
            never_played.append(song)
            continue

        if is_recent(song, now=now, track_age_days=config.track_age_days):
            result.recent_count += 1
            logger.debug(f"Excluding track `{song.title}` for being played recently")
            continue

        eligible.append(song)

    result.eligible_count = len(eligible)
    result.never_played_count = len(never_played)

    # Several recommendations can resolve to the same local song
    pool = _unique_songs(eligible)
    if len(pool) < config.target_size:
        shortfall = config.target_size - len(pool)
        backfill = _unique_songs(never_played, exclude=pool)[:shortfall]
        pool.extend(backfill)
        result.backfilled = len(backfill)

    selected, result.artist_capped = cap_by_artist(
        songs=pool,
        artist_limit=config.artist_limit,
        target_size=config.target_size,
    )

    for song in selected:
        result.add_track_id(song.id)

    result.stats = {
        "recommended": len(mbids),
        "eligible": result.eligible_count,
        "never_played": result.never_played_count,
        "backfilled": result.backfilled,
        "recent": result.recent_count,
        "rating_excluded": len(result.excluded),
        "missing": len(result.missing),
        "artist_capped": result.artist_capped,
        "selected": len(result.track_ids),
    }
    logger.info(
        "Selection: recommended=%d eligible=%d backfilled=%d recent=%d excluded=%d missing=%d capped=%d selected=%d",
        len(mbids), result.eligible_count, result.backfilled, result.recent_count,
        len(result.excluded), len(result.missing), result.artist_capped, len(result.track_ids),
    )
    return result
