"""
ListenBrainz API Client - Fetches generated playlists, recommendations and
recording metadata
"""
import requests
from typing import Any, Dict, List, Optional
import logging

from . import __version__
from .models import Recommendations, RecordingMetadata, RemotePlaylist
from .rate_limiter import RateLimiter
from .retry_helper import CatalogError, ErrorKind, retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.listenbrainz.org/1"
USER_AGENT = f"ListenBrainzPlaylistSync/{__version__}"
RECOMMENDATION_COUNT = 1000
METADATA_BATCH_SIZE = 1000


def classify_transport_error(exc: Exception) -> CatalogError:
    """Classify an exception raised before any response was received."""
    message = str(exc)
    reset = "connection reset by peer" in message.lower()
    cause = exc
    seen = set()
    while cause is not None and not reset and id(cause) not in seen:
        seen.add(id(cause))
        reset = isinstance(cause, ConnectionResetError)
        cause = cause.__cause__ or cause.__context__
    kind = ErrorKind.TRANSIENT_NETWORK if reset else ErrorKind.TRANSPORT
    return CatalogError(kind, message)


def classify_response(response: requests.Response) -> Optional[CatalogError]:
    """
    Classify a completed HTTP response

    Returns None for 2xx responses. 429 is retryable; any other status is fatal
    and carries the service's code and message when the error body decodes.
    """
    status = response.status_code
    if 200 <= status < 300:
        return None

    if status == 429:
        return CatalogError(ErrorKind.RATE_LIMITED, "ListenBrainz rate limit hit", code=429)

    try:
        body = response.json()
    except ValueError as e:
        return CatalogError(ErrorKind.DECODE, f"Failed to decode ListenBrainz error body ({status}): {e}", code=status)

    if not isinstance(body, dict) or "error" not in body:
        return CatalogError(ErrorKind.DECODE, f"Unexpected ListenBrainz error body ({status})", code=status)

    code = body.get("code", status)
    return CatalogError(
        ErrorKind.REMOTE_FATAL,
        f"ListenBrainz HTTP Error. Code: {code}, Error: {body.get('error')}",
        code=code,
    )


class ListenBrainzClient:
    """Client for the ListenBrainz API"""

    def __init__(
        self,
        token: str = "",
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = 10,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize ListenBrainz client

        Args:
            token: ListenBrainz user token (optional for public endpoints)
            base_url: API root
            timeout: Per-request timeout in seconds
            rate_limiter: Header-driven limiter shared across calls
            session: requests session (injected in tests)
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.rate_limiter = rate_limiter or RateLimiter()
        self.session = session or requests.Session()

    def _headers(self, json_body: bool = False) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        if self.token:
            headers["Authorization"] = f"Token {self.token}"
        return headers

    def _make_request(self, method: str, path: str, **kwargs) -> requests.Response:
        """
        Issue a request and classify the outcome

        The rate-limit check runs on every response that arrives, whether or
        not the status is successful.
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(json_body="json" in kwargs),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            err = classify_transport_error(e)
            logger.warning(f"ListenBrainz {method} {path} failed ({err.kind.value}): {e}")
            raise err from e

        self.rate_limiter.check(response.headers)

        err = classify_response(response)
        if err is not None:
            logger.debug(f"ListenBrainz {method} {path} returned {response.status_code}: {err.message}")
            raise err
        return response

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise CatalogError(ErrorKind.DECODE, f"Failed to decode JSON: {e}") from e

    @retry_with_backoff()
    def get_created_for_playlists(self, lbz_username: str) -> List[RemotePlaylist]:
        """
        Get playlists generated for a user (daily jams, weekly exploration, ...)

        Returns:
            Playlists without their track lists
        """
        response = self._make_request("GET", f"/user/{lbz_username}/playlists/createdfor")
        body = self._decode(response)
        if not isinstance(body, dict):
            raise CatalogError(ErrorKind.DECODE, "Unexpected created-for payload")

        playlists = []
        for entry in body.get("playlists", []) or []:
            playlists.append(RemotePlaylist.from_jspf(entry.get("playlist") or {}))

        logger.debug(f"Fetched {len(playlists)} created-for playlists for {lbz_username}")
        return playlists

    @retry_with_backoff()
    def get_playlist(self, playlist_id: str) -> RemotePlaylist:
        """Get one playlist including its tracks."""
        response = self._make_request("GET", f"/playlist/{playlist_id}")
        body = self._decode(response)

        payload = body.get("playlist") if isinstance(body, dict) else None
        if not payload:
            raise CatalogError(ErrorKind.DOMAIN, f"Nothing parsed for playlist {playlist_id}")

        return RemotePlaylist.from_jspf(payload)

    @retry_with_backoff()
    def get_recommendations(self, lbz_username: str, count: int = RECOMMENDATION_COUNT) -> Recommendations:
        """
        Get collaborative-filtering recording recommendations

        An empty recommendation list is an error, not an empty result.
        """
        response = self._make_request(
            "GET",
            f"/cf/recommendation/user/{lbz_username}/recording",
            params={"count": count},
        )
        body = self._decode(response)

        payload = body.get("payload") if isinstance(body, dict) else None
        payload = payload or {}
        mbids = tuple(
            item.get("recording_mbid", "")
            for item in payload.get("mbids", []) or []
            if item.get("recording_mbid")
        )
        if not mbids:
            raise CatalogError(ErrorKind.DOMAIN, f"No recommendations found for user {lbz_username}")

        return Recommendations(
            mbids=mbids,
            last_updated=int(payload.get("last_updated") or 0),
            count=int(payload.get("count") or len(mbids)),
        )

    def lookup_recordings(self, mbids: List[str]) -> Dict[str, RecordingMetadata]:
        """
        Resolve recording mbids to titles and artist mbids

        Requests are sent in batches; results are merged into one mapping.
        """
        metadata: Dict[str, RecordingMetadata] = {}
        for start in range(0, len(mbids), METADATA_BATCH_SIZE):
            batch = mbids[start:start + METADATA_BATCH_SIZE]
            metadata.update(self._lookup_batch(batch))
        logger.debug(f"Looked up metadata for {len(metadata)}/{len(mbids)} recordings")
        return metadata

    @retry_with_backoff()
    def _lookup_batch(self, mbids: List[str]) -> Dict[str, RecordingMetadata]:
        response = self._make_request(
            "POST",
            "/metadata/recording",
            json={"recording_mbids": list(mbids), "inc": "artist"},
        )
        body = self._decode(response)
        if not isinstance(body, dict):
            raise CatalogError(ErrorKind.DECODE, "Unexpected metadata payload")

        return {
            mbid: RecordingMetadata.from_lookup(mbid, entry or {})
            for mbid, entry in body.items()
        }
