"""
Artist Identity Cache - Per-run memo of MusicBrainz artist id -> local artist id
"""
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

NOT_FOUND = ""


class ArtistIdentityCache:
    """
    Maps remote artist mbids to local library artist ids for one run

    An empty string records a confirmed miss so the library is not asked
    again. Entries are write-once. Create one per synchronization run and
    discard it afterwards; instances are not thread-safe.
    """

    def __init__(self):
        self._entries: Dict[str, str] = {}
        self.hits = 0
        self.misses = 0

    def __contains__(self, mbid: str) -> bool:
        return mbid in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, mbid: str) -> Optional[str]:
        """
        Look up a cached artist id

        Returns:
            Local artist id, NOT_FOUND for a confirmed miss, or None when the
            mbid has not been looked up yet
        """
        if mbid in self._entries:
            self.hits += 1
            logger.debug(f"Cache HIT: {mbid}")
            return self._entries[mbid]

        self.misses += 1
        logger.debug(f"Cache MISS: {mbid}")
        return None

    def set(self, mbid: str, artist_id: str) -> None:
        """Record the lookup result for an mbid (ignored if already recorded)."""
        if mbid in self._entries:
            logger.debug(f"Ignoring second write for cached artist {mbid}")
            return
        self._entries[mbid] = artist_id or NOT_FOUND

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get statistics about the cache"""
        found = sum(1 for value in self._entries.values() if value != NOT_FOUND)
        return {
            "total_artists": len(self._entries),
            "found": found,
            "not_found": len(self._entries) - found,
            "hits": self.hits,
            "misses": self.misses,
        }
