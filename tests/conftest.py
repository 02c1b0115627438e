"""Test configuration and fixtures."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from brainzsync.models import LocalArtist, LocalPlaylist, LocalTrack
from brainzsync.subsonic_client import LibraryError, SearchResult


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeLibrary:
    """In-memory LibraryBackend recording every call."""

    def __init__(
        self,
        songs_by_mbid: Optional[Dict[str, LocalTrack]] = None,
        songs_by_title: Optional[Dict[str, List[LocalTrack]]] = None,
        artists_by_mbid: Optional[Dict[str, str]] = None,
        playlists: Optional[Dict[str, List[LocalPlaylist]]] = None,
    ):
        self.songs_by_mbid = songs_by_mbid or {}
        self.songs_by_title = songs_by_title or {}
        self.artists_by_mbid = artists_by_mbid or {}
        self.playlists = playlists or {}
        self.search_calls = []
        self.create_calls = []
        self.update_calls = []
        self.fail_search = set()
        self._next_id = 1

    def search(self, user, query, *, artist_count=0, album_count=0, song_count=0):
        self.search_calls.append((query, artist_count, song_count))
        if query in self.fail_search:
            raise LibraryError("search failed", code=0)
        if artist_count:
            artist_id = self.artists_by_mbid.get(query)
            return SearchResult(artists=[LocalArtist(id=artist_id, name=query)] if artist_id else [])
        if query in self.songs_by_mbid:
            return SearchResult(songs=[self.songs_by_mbid[query]][:song_count])
        return SearchResult(songs=list(self.songs_by_title.get(query, []))[:song_count])

    def get_playlists(self, user):
        return list(self.playlists.get(user, []))

    def create_playlist(self, user, song_ids, *, playlist_id=None, name=None):
        self.create_calls.append((user, list(song_ids), playlist_id, name))
        existing = self.playlists.setdefault(user, [])
        if playlist_id is not None:
            for idx, playlist in enumerate(existing):
                if playlist.id == playlist_id:
                    updated = LocalPlaylist(
                        id=playlist.id, name=playlist.name, comment=playlist.comment,
                        song_count=len(song_ids), changed=NOW,
                    )
                    existing[idx] = updated
                    return updated
            raise LibraryError(f"Playlist {playlist_id} not found", code=70)
        created = LocalPlaylist(id=f"pl{self._next_id}", name=name, song_count=len(song_ids), changed=NOW)
        self._next_id += 1
        existing.append(created)
        return created

    def update_playlist(self, user, playlist_id, *, comment):
        self.update_calls.append((user, playlist_id, comment))
        existing = self.playlists.get(user, [])
        for idx, playlist in enumerate(existing):
            if playlist.id == playlist_id:
                existing[idx] = LocalPlaylist(
                    id=playlist.id, name=playlist.name, comment=comment,
                    song_count=playlist.song_count, changed=NOW,
                )


def make_song(song_id, title="Song", rating=0, played=None, artists=("ar1",)):
    return LocalTrack(id=song_id, title=title, user_rating=rating, played=played, artist_ids=tuple(artists))


@pytest.fixture()
def fake_library():
    return FakeLibrary()
