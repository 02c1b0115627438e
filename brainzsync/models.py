"""
Domain types shared by the ListenBrainz client, the Subsonic library client
and the synchronization engine.

Remote types are parsed from ListenBrainz JSPF payloads; local types are
read-only views of Subsonic (OpenSubsonic) response entries.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

JSPF_PLAYLIST_EXT = "https://musicbrainz.org/doc/jspf#playlist"
JSPF_TRACK_EXT = "https://musicbrainz.org/doc/jspf#track"

ALL_RATINGS: FrozenSet[int] = frozenset(range(0, 6))

RatingFilter = FrozenSet[int]


def get_identifier(url: str) -> str:
    """Return the last path segment of a URL-shaped identifier."""
    return (url or "").split("/")[-1]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (with optional trailing Z) into an aware datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Unparseable timestamp: {value!r}")
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_ratings(raw: Union[None, str, int, Iterable[Any]]) -> RatingFilter:
    """
    Build a rating filter from configuration input

    Accepts None, a comma-separated string, a single int, or an iterable of
    ints / numeric strings. Entries outside 0-5 or that do not parse are
    dropped. A result with no valid entries allows every rating.
    """
    if raw is None:
        return ALL_RATINGS
    if isinstance(raw, str):
        items: Iterable[Any] = raw.split(",")
    elif isinstance(raw, int) and not isinstance(raw, bool):
        items = [raw]
    else:
        items = raw

    ratings = set()
    for item in items:
        if isinstance(item, bool):
            continue
        try:
            value = int(str(item).strip())
        except (TypeError, ValueError):
            continue
        if 0 <= value <= 5:
            ratings.add(value)

    if not ratings:
        return ALL_RATINGS
    return frozenset(ratings)


# ----------------------------
# Remote (ListenBrainz) types
# ----------------------------

@dataclass(frozen=True)
class RemoteTrackRef:
    """A track as described by ListenBrainz."""
    title: str
    mbid: str
    artist_mbids: Tuple[str, ...] = ()
    creator: str = ""

    def label(self) -> str:
        if self.creator:
            return f"{self.title} by {self.creator}"
        return self.title

    @staticmethod
    def from_jspf(track: Dict[str, Any]) -> "RemoteTrackRef":
        identifier = track.get("identifier") or ""
        if isinstance(identifier, list):
            identifier = identifier[0] if identifier else ""
        meta = (track.get("extension") or {}).get(JSPF_TRACK_EXT, {}).get("additional_metadata", {}) or {}
        artists = tuple(a.get("artist_mbid", "") for a in meta.get("artists", []) or [])
        return RemoteTrackRef(
            title=track.get("title", ""),
            mbid=get_identifier(identifier),
            artist_mbids=artists,
            creator=track.get("creator", ""),
        )


@dataclass(frozen=True)
class RemotePlaylist:
    """A JSPF playlist returned by ListenBrainz."""
    identifier: str
    title: str = ""
    creator: str = ""
    annotation: str = ""
    date: str = ""
    source_patch: str = ""
    tracks: Tuple[RemoteTrackRef, ...] = ()

    @property
    def playlist_id(self) -> str:
        return get_identifier(self.identifier)

    @staticmethod
    def from_jspf(payload: Dict[str, Any]) -> "RemotePlaylist":
        ext = (payload.get("extension") or {}).get(JSPF_PLAYLIST_EXT, {}) or {}
        algo = (ext.get("additional_metadata") or {}).get("algorithm_metadata", {}) or {}
        return RemotePlaylist(
            identifier=payload.get("identifier", ""),
            title=payload.get("title", ""),
            creator=payload.get("creator", ""),
            annotation=payload.get("annotation", ""),
            date=payload.get("date", ""),
            source_patch=algo.get("source_patch", ""),
            tracks=tuple(RemoteTrackRef.from_jspf(t) for t in payload.get("track", []) or []),
        )


@dataclass(frozen=True)
class Recommendations:
    """Collaborative-filtering recording recommendations for one user."""
    mbids: Tuple[str, ...]
    last_updated: int = 0
    count: int = 0


@dataclass(frozen=True)
class RecordingMetadata:
    """Result of the batched recording metadata lookup."""
    mbid: str
    title: str
    artist_mbids: Tuple[str, ...] = ()

    @staticmethod
    def from_lookup(mbid: str, payload: Dict[str, Any]) -> "RecordingMetadata":
        artist = payload.get("artist") or {}
        artists = artist.get("artists", []) or []
        return RecordingMetadata(
            mbid=mbid,
            title=(payload.get("recording") or {}).get("name", ""),
            artist_mbids=tuple(a.get("artist_mbid", "") for a in artists),
        )


# ----------------------------
# Local (Subsonic) types
# ----------------------------

@dataclass(frozen=True)
class LocalArtist:
    id: str
    name: str = ""


@dataclass(frozen=True)
class LocalTrack:
    """A song held by the local library."""
    id: str
    title: str
    user_rating: int = 0
    played: Optional[datetime] = None
    artist_ids: Tuple[str, ...] = ()
    artist: str = ""

    @staticmethod
    def from_subsonic(song: Dict[str, Any]) -> "LocalTrack":
        artists = song.get("artists")
        if artists:
            artist_ids = tuple(str(a.get("id", "")) for a in artists)
        elif song.get("artistId"):
            artist_ids = (str(song["artistId"]),)
        else:
            artist_ids = ()
        return LocalTrack(
            id=str(song.get("id", "")),
            title=song.get("title", ""),
            user_rating=int(song.get("userRating") or 0),
            played=parse_timestamp(song.get("played")),
            artist_ids=artist_ids,
            artist=song.get("artist", ""),
        )


@dataclass(frozen=True)
class LocalPlaylist:
    id: str
    name: str
    comment: str = ""
    song_count: int = 0
    changed: Optional[datetime] = None

    @staticmethod
    def from_subsonic(playlist: Dict[str, Any]) -> "LocalPlaylist":
        return LocalPlaylist(
            id=str(playlist.get("id", "")),
            name=playlist.get("name", ""),
            comment=playlist.get("comment", "") or "",
            song_count=int(playlist.get("songCount") or 0),
            changed=parse_timestamp(playlist.get("changed")),
        )


def find_playlist(playlists: Iterable[LocalPlaylist], name: str) -> Optional[LocalPlaylist]:
    """Return the first playlist whose name matches exactly."""
    for playlist in playlists:
        if playlist.name == name:
            return playlist
    return None


@dataclass
class ReconciliationOutcome:
    """Result of resolving and filtering one batch of remote tracks."""
    track_ids: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    recent_count: int = 0
    backfilled: int = 0
    artist_capped: int = 0
    skipped_metadata: int = 0

    def add_track_id(self, track_id: str) -> bool:
        """Append an id unless already present. Returns True when added."""
        if track_id in self.track_ids:
            return False
        self.track_ids.append(track_id)
        return True
