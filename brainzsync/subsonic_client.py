"""
Subsonic Library Client - Searches the local library and manages playlists
through the Subsonic REST API (Navidrome / OpenSubsonic).
"""
from __future__ import annotations

import hashlib
import logging
import secrets
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import requests

from .logging_utils import redact
from .models import LocalArtist, LocalPlaylist, LocalTrack

logger = logging.getLogger(__name__)

API_VERSION = "1.16.1"


class LibraryError(RuntimeError):
    """A failed Subsonic call (transport, HTTP, decode or status != ok)."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class LibraryBackend(Protocol):
    """The narrow library contract the synchronization engine consumes."""

    def search(
        self,
        user: str,
        query: str,
        *,
        artist_count: int = 0,
        album_count: int = 0,
        song_count: int = 0,
    ) -> "SearchResult":
        ...

    def get_playlists(self, user: str) -> List[LocalPlaylist]:
        ...

    def create_playlist(
        self,
        user: str,
        song_ids: Sequence[str],
        *,
        playlist_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Optional[LocalPlaylist]:
        ...

    def update_playlist(self, user: str, playlist_id: str, *, comment: str) -> None:
        ...


class SearchResult:
    """Artists and songs returned by search3."""

    def __init__(self, artists: Optional[List[LocalArtist]] = None, songs: Optional[List[LocalTrack]] = None):
        self.artists = artists or []
        self.songs = songs or []

    def __repr__(self) -> str:
        return f"SearchResult(artists={len(self.artists)}, songs={len(self.songs)})"


class SubsonicClient:
    """Library backend speaking the Subsonic REST API."""

    def __init__(
        self,
        base_url: str,
        credentials: Mapping[str, str],
        *,
        client_name: str = "brainzsync",
        verify_ssl: bool = True,
        timeout: int = 15,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.credentials = dict(credentials)
        self.client_name = client_name
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.session = session or requests.Session()

    def _auth_params(self, user: str) -> Dict[str, str]:
        password = self.credentials.get(user)
        if password is None:
            raise LibraryError(f"No Subsonic credentials configured for user {user}")
        salt = secrets.token_hex(8)
        token = hashlib.md5((password + salt).encode("utf-8")).hexdigest()
        return {
            "u": user,
            "t": token,
            "s": salt,
            "v": API_VERSION,
            "c": self.client_name,
            "f": "json",
        }

    def _request(self, endpoint: str, user: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}/rest/{endpoint}"
        query = self._auth_params(user)
        query.update(params or {})
        try:
            resp = self.session.get(url, params=query, timeout=self.timeout, verify=self.verify_ssl)
        except requests.exceptions.RequestException as exc:
            # The request url carries the auth token and salt
            raise LibraryError(f"An error occurred calling {endpoint} for {user}: {redact(exc)}") from exc

        if resp.status_code >= 400:
            raise LibraryError(f"Subsonic API request failed ({resp.status_code}) for {endpoint}", code=resp.status_code)

        try:
            decoded = resp.json()
        except ValueError as exc:
            logger.debug("Subsonic response that failed to parse: %s", resp.text[:500])
            raise LibraryError(f"A deserialization error occurred for {user}: {exc}") from exc

        body = decoded.get("subsonic-response") if isinstance(decoded, dict) else None
        if not isinstance(body, dict):
            raise LibraryError(f"Missing subsonic-response for {endpoint}")

        if body.get("status") != "ok":
            error = body.get("error") or {}
            raise LibraryError(
                f"Subsonic status is not ok: ({error.get('code')}){error.get('message')}",
                code=error.get("code"),
            )
        return body

    def search(
        self,
        user: str,
        query: str,
        *,
        artist_count: int = 0,
        album_count: int = 0,
        song_count: int = 0,
    ) -> SearchResult:
        body = self._request(
            "search3",
            user,
            {
                "artistCount": artist_count,
                "albumCount": album_count,
                "songCount": song_count,
                "query": query,
            },
        )
        result = body.get("searchResult3") or {}
        return SearchResult(
            artists=[LocalArtist(id=str(a.get("id", "")), name=a.get("name", "")) for a in result.get("artist", []) or []],
            songs=[LocalTrack.from_subsonic(s) for s in result.get("song", []) or []],
        )

    def get_playlists(self, user: str) -> List[LocalPlaylist]:
        body = self._request("getPlaylists", user, {"username": user})
        playlists = (body.get("playlists") or {}).get("playlist", []) or []
        return [LocalPlaylist.from_subsonic(p) for p in playlists]

    def create_playlist(
        self,
        user: str,
        song_ids: Sequence[str],
        *,
        playlist_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Optional[LocalPlaylist]:
        """
        Create a playlist by name, or replace the songs of an existing one

        Returns the playlist echoed by the server, when it sends one.
        """
        if not playlist_id and not name:
            raise ValueError("create_playlist needs a playlist_id or a name")
        params: Dict[str, Any] = {"songId": list(song_ids)}
        if playlist_id:
            params["playlistId"] = playlist_id
        else:
            params["name"] = name
        body = self._request("createPlaylist", user, params)
        playlist = body.get("playlist")
        if not playlist:
            return None
        return LocalPlaylist.from_subsonic(playlist)

    def update_playlist(self, user: str, playlist_id: str, *, comment: str) -> None:
        self._request("updatePlaylist", user, {"playlistId": playlist_id, "comment": comment})
