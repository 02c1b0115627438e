"""
Track Resolver - Matches ListenBrainz tracks to the local library
"""
from typing import Dict, Optional, Sequence, Set
import logging

from .artist_cache import ArtistIdentityCache, NOT_FOUND
from .logging_utils import redact
from .models import LocalTrack, RemoteTrackRef
from .subsonic_client import LibraryBackend, LibraryError

logger = logging.getLogger(__name__)


class TrackResolver:
    """Resolves remote recordings to local songs for one user and one run"""

    def __init__(
        self,
        library: LibraryBackend,
        user: str,
        fallback_count: int = 15,
        artist_cache: Optional[ArtistIdentityCache] = None,
    ):
        """
        Initialize track resolver

        Args:
            library: Library backend used for searches
            user: Local library user the searches run as
            fallback_count: Number of songs requested by the title fallback
            artist_cache: Per-run artist id memo (a fresh one when omitted)
        """
        self.library = library
        self.user = user
        self.fallback_count = fallback_count
        self.artist_cache = artist_cache if artist_cache is not None else ArtistIdentityCache()
        self.match_stats: Dict[str, int] = {'mbid': 0, 'title_artists': 0, 'unmatched': 0}

    def resolve_ref(self, ref: RemoteTrackRef) -> Optional[LocalTrack]:
        return self.resolve(ref.title, ref.mbid, ref.artist_mbids)

    def resolve(self, title: str, mbid: str, artist_mbids: Sequence[str]) -> Optional[LocalTrack]:
        """
        Find the local song for a remote recording

        Tries the recording mbid first, then an exact title match whose
        artists are exactly the resolved artist set. A library failure at
        any stage ends the lookup as unmatched.
        """
        strategies = [
            ('mbid', lambda: self._match_by_mbid(mbid)),
            ('title_artists', lambda: self._match_by_title_and_artists(title, artist_mbids)),
        ]

        for match_type, strategy in strategies:
            try:
                song = strategy()
            except LibraryError as e:
                logger.warning(f"Library lookup failed for `{title}` ({mbid}) as {self.user}: {redact(e.message)}")
                self.match_stats['unmatched'] += 1
                return None
            if song is not None:
                self.match_stats[match_type] += 1
                return song

        self.match_stats['unmatched'] += 1
        logger.debug(f"Could not find song by matching title and artist mbids: {title}, {list(artist_mbids)}")
        return None

    def _match_by_mbid(self, mbid: str) -> Optional[LocalTrack]:
        if not mbid:
            return None
        result = self.library.search(self.user, mbid, song_count=1)
        if result.songs:
            return result.songs[0]
        logger.debug(f"Could not find track by MBID: {mbid}")
        return None

    def _match_by_title_and_artists(self, title: str, artist_mbids: Sequence[str]) -> Optional[LocalTrack]:
        artist_ids = self._resolve_artists(artist_mbids)
        if artist_ids is None:
            return None

        result = self.library.search(self.user, title, song_count=self.fallback_count)
        for song in result.songs:
            if song.title != title or len(song.artist_ids) != len(artist_ids):
                continue
            if all(artist_id in artist_ids for artist_id in song.artist_ids):
                return song
        return None

    def _resolve_artists(self, artist_mbids: Sequence[str]) -> Optional[Set[str]]:
        """Resolve every artist mbid, or None as soon as one is not in the library."""
        artist_ids: Set[str] = set()
        for artist_mbid in artist_mbids:
            artist_id = self.find_artist_id(artist_mbid)
            if not artist_id:
                return None
            artist_ids.add(artist_id)
        return artist_ids

    def find_artist_id(self, artist_mbid: str) -> str:
        """
        Resolve an artist mbid to a local artist id, memoized per run

        Returns NOT_FOUND when the library has no such artist. Library errors
        propagate and are not memoized.
        """
        cached = self.artist_cache.get(artist_mbid)
        if cached is not None:
            return cached

        result = self.library.search(self.user, artist_mbid, artist_count=1)
        if result.artists:
            artist = result.artists[0]
            logger.debug(f"Artist found by mbid: {artist.name}")
            artist_id = artist.id
        else:
            logger.debug(f"Artist not found by mbid: {artist_mbid}")
            artist_id = NOT_FOUND

        self.artist_cache.set(artist_mbid, artist_id)
        return artist_id
