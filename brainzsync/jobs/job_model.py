"""
Job model definitions: the job payload union, scheduled jobs and outcomes.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from ..models import ALL_RATINGS, RatingFilter, ReconciliationOutcome, parse_ratings
from .job_types import JOB_DURATION, JobType

MIN_FALLBACK = 1
MAX_FALLBACK = 500
DEFAULT_FALLBACK = 15


def _safe_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Source:
    """A created-for playlist tag mapped to a destination playlist name."""
    source_patch: str
    playlist_name: str

    def to_dict(self) -> Dict[str, str]:
        return {"sourcePatch": self.source_patch, "playlistName": self.playlist_name}

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "Source":
        return Source(
            source_patch=payload.get("sourcePatch", payload.get("source_patch", "")),
            playlist_name=payload.get("playlistName", payload.get("playlist_name", "")),
        )


@dataclass(frozen=True)
class PatchPayload:
    sources: Tuple[Source, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"sources": [s.to_dict() for s in self.sources]}

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "PatchPayload":
        return PatchPayload(sources=tuple(Source.from_dict(s) for s in payload.get("sources", []) or []))


@dataclass(frozen=True)
class GeneratePayload:
    name: str
    track_age_days: int = 0
    artist_limit: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "trackAge": self.track_age_days, "artistLimit": self.artist_limit}

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "GeneratePayload":
        return GeneratePayload(
            name=payload.get("name", ""),
            track_age_days=int(payload.get("trackAge", 0) or 0),
            artist_limit=int(payload.get("artistLimit", 0) or 0),
        )


@dataclass(frozen=True)
class ImportPayload:
    name: str
    lbz_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "lbzId": self.lbz_id}

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "ImportPayload":
        return ImportPayload(name=payload.get("name", ""), lbz_id=payload.get("lbzId", ""))


JobPayload = Union[PatchPayload, GeneratePayload, ImportPayload]

# kind -> (payload class, serialized key)
_PAYLOADS = {
    JobType.FETCH_PATCHES: (PatchPayload, "patch"),
    JobType.GENERATE_JAMS: (GeneratePayload, "generate"),
    JobType.IMPORT_PLAYLIST: (ImportPayload, "import"),
}


@dataclass(frozen=True)
class Job:
    """
    One unit of synchronization work for one user.

    `payload` is exactly one of PatchPayload, GeneratePayload or
    ImportPayload, and always the one matching `kind`.
    """

    kind: JobType
    username: str
    lbz_username: str
    payload: JobPayload
    lbz_token: str = field(default="", repr=False)
    ratings: RatingFilter = ALL_RATINGS
    fallback: int = DEFAULT_FALLBACK

    def __post_init__(self):
        kind = JobType(self.kind)
        object.__setattr__(self, "kind", kind)
        expected, _ = _PAYLOADS[kind]
        if not isinstance(self.payload, expected):
            raise ValueError(
                f"{kind.value} job needs a {expected.__name__} payload, got {type(self.payload).__name__}"
            )
        if not MIN_FALLBACK <= int(self.fallback) <= MAX_FALLBACK:
            raise ValueError(f"fallback must be between {MIN_FALLBACK} and {MAX_FALLBACK} (inclusive)")
        object.__setattr__(self, "ratings", parse_ratings(self.ratings))

    @property
    def playlist_name(self) -> str:
        """Destination playlist(s) this job writes, for diagnostics."""
        if isinstance(self.payload, PatchPayload):
            return ", ".join(s.playlist_name for s in self.payload.sources)
        return self.payload.name

    def duration(self) -> int:
        """Seconds to reserve for this job, including the imports it chains."""
        if isinstance(self.payload, PatchPayload):
            return JOB_DURATION * (1 + len(self.payload.sources))
        return JOB_DURATION

    def with_payload(self, kind: JobType, payload: JobPayload) -> "Job":
        """Derive a job for the same user and settings with a new payload."""
        return Job(
            kind=kind,
            username=self.username,
            lbz_username=self.lbz_username,
            lbz_token=self.lbz_token,
            ratings=self.ratings,
            fallback=self.fallback,
            payload=payload,
        )

    def describe(self) -> str:
        return f"{self.kind.label()} `{self.playlist_name}` for user {self.username}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict."""
        _, key = _PAYLOADS[self.kind]
        return {
            "jobType": self.kind.value,
            "username": self.username,
            "lbzUsername": self.lbz_username,
            "lbzToken": self.lbz_token,
            "ratings": sorted(self.ratings),
            "fallback": self.fallback,
            key: self.payload.to_dict(),
        }

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "Job":
        """Deserialize from dict. Raises ValueError on unknown kinds or missing payloads."""
        kind = JobType(payload.get("jobType"))
        payload_cls, key = _PAYLOADS[kind]
        body = payload.get(key)
        if body is None:
            raise ValueError(f"{kind.value} job is missing its `{key}` payload")
        return Job(
            kind=kind,
            username=payload.get("username", ""),
            lbz_username=payload.get("lbzUsername", ""),
            lbz_token=payload.get("lbzToken", ""),
            ratings=parse_ratings(payload.get("ratings")),
            fallback=int(payload.get("fallback", DEFAULT_FALLBACK)),
            payload=payload_cls.from_dict(body),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @staticmethod
    def from_json(text: str) -> "Job":
        return Job.from_dict(json.loads(text))


@dataclass(frozen=True)
class ScheduledJob:
    """A job plus the delay (seconds) after which it should be dispatched."""
    delay: int
    job: Job


class JobStatus(str, Enum):
    """Final state of one dispatched job."""

    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SyncError:
    """A diagnostic for one failed item, attributable to a user and playlist."""
    user: str
    playlist: str
    message: str
    kind: str = "domain"
    retryable: bool = False

    def __str__(self) -> str:
        return self.message


@dataclass
class JobOutcome:
    """What happened when a job was dispatched."""

    job: Job
    status: JobStatus = JobStatus.SUCCESS
    errors: List[SyncError] = field(default_factory=list)
    chained: List[ScheduledJob] = field(default_factory=list)
    result: Optional[ReconciliationOutcome] = None
    started_at: datetime = field(default_factory=_safe_now)
    finished_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status in (JobStatus.SUCCESS, JobStatus.SKIPPED)

    @property
    def retryable(self) -> bool:
        return bool(self.errors) and all(e.retryable for e in self.errors)

    def error_message(self) -> str:
        """All collected errors joined, one per line."""
        return "\n".join(e.message for e in self.errors)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict (credentials excluded)."""

        def _dt(val: Optional[datetime]) -> Optional[str]:
            return val.isoformat() if isinstance(val, datetime) else None

        return {
            "job_type": self.job.kind.value,
            "username": self.job.username,
            "playlist": self.job.playlist_name,
            "status": self.status.value,
            "errors": [e.message for e in self.errors],
            "retryable": self.retryable,
            "chained": len(self.chained),
            "track_count": len(self.result.track_ids) if self.result else None,
            "started_at": _dt(self.started_at),
            "finished_at": _dt(self.finished_at),
        }
