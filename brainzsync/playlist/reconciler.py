"""
Playlist reconciler - idempotent create-or-update of a named playlist on the
local library, plus the diagnostic comments written alongside it.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import List, Optional, Sequence

from ..models import LocalPlaylist, find_playlist
from ..subsonic_client import LibraryBackend, LibraryError

logger = logging.getLogger(__name__)


class ReconcileError(RuntimeError):
    """Failure while writing a destination playlist."""

    def __init__(self, user: str, playlist_name: str, message: str):
        super().__init__(f"{message} (playlist `{playlist_name}`, user {user})")
        self.user = user
        self.playlist_name = playlist_name
        self.message = message


def format_rfc1123(dt: datetime) -> str:
    """Format a datetime the way HTTP dates look (Mon, 02 Jan 2006 15:04:05 GMT)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


def build_import_comment(
    *,
    identifier: str,
    date: str,
    missing: Sequence[str] = (),
    excluded: Sequence[str] = (),
) -> str:
    comment = f"Imported from playlist {identifier}\nUpdated on: {date}"
    if missing:
        comment += f"\nTracks not matched by track MBID or track name + artist MBIDs: {', '.join(missing)}"
    if excluded:
        comment += f"\nTracks excluded by rating rule: {', '.join(excluded)}"
    return comment


def build_generate_comment(
    *,
    generated_at: datetime,
    recommendation_count: int,
    recommendations_updated: datetime,
    excluded: Sequence[str] = (),
    missing: Sequence[str] = (),
    recent_count: int = 0,
) -> str:
    return (
        f"Jams generated on {format_rfc1123(generated_at)} with {recommendation_count} "
        f"recommendations generated on {format_rfc1123(recommendations_updated)}."
        f"\nExcluded by rating rules: {', '.join(excluded)}"
        f"\nTracks not found in library: {', '.join(missing)}"
        f"\nExcluded for being recent: {recent_count}"
    )


class PlaylistReconciler:
    """Writes song lists into named playlists without redundant updates."""

    def __init__(self, library: LibraryBackend):
        self.library = library

    def reconcile(self, user: str, playlist_name: str, comment: str, song_ids: List[str]) -> Optional[LocalPlaylist]:
        """
        Create or update `playlist_name` for `user` with `song_ids`

        The song list is always submitted, so an empty list clears an existing
        playlist. The comment is only written when it differs from the stored
        one. Returns None when an empty list created no playlist.

        Raises:
            ReconcileError: on any library failure
        """
        try:
            existing = find_playlist(self.library.get_playlists(user), playlist_name)
        except LibraryError as e:
            raise ReconcileError(user, playlist_name, f"Failed to fetch subsonic playlists: {e}") from e

        try:
            if existing is not None:
                logger.debug("Replacing songs of playlist '%s' (id=%s)", playlist_name, existing.id)
                saved = self.library.create_playlist(user, song_ids, playlist_id=existing.id)
            else:
                logger.debug("Creating playlist '%s'", playlist_name)
                saved = self.library.create_playlist(user, song_ids, name=playlist_name)
        except LibraryError as e:
            raise ReconcileError(user, playlist_name, f"Failed to create playlist: {e}") from e

        current = saved or existing or self._lookup(user, playlist_name)
        if current is None:
            if not song_ids:
                # Some servers do not create a playlist from an empty song list
                logger.info("No songs for playlist '%s' of user %s, nothing created", playlist_name, user)
                return None
            raise ReconcileError(user, playlist_name, "Playlist not found after create")

        if current.comment != comment:
            try:
                self.library.update_playlist(user, current.id, comment=comment)
            except LibraryError as e:
                raise ReconcileError(user, playlist_name, f"Failed to update playlist comment: {e}") from e
            logger.debug("Updated comment of playlist '%s'", playlist_name)
        else:
            logger.debug("Comment of playlist '%s' unchanged", playlist_name)

        logger.info("Saved playlist '%s' for user %s (%d tracks)", playlist_name, user, len(song_ids))
        return current

    def _lookup(self, user: str, playlist_name: str) -> Optional[LocalPlaylist]:
        try:
            return find_playlist(self.library.get_playlists(user), playlist_name)
        except LibraryError as e:
            raise ReconcileError(user, playlist_name, f"Failed to fetch subsonic playlists: {e}") from e
