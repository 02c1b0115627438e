from .job_types import JOB_DURATION, JobType
from .job_model import (
    GeneratePayload,
    ImportPayload,
    Job,
    JobOutcome,
    JobStatus,
    PatchPayload,
    ScheduledJob,
    Source,
    SyncError,
)
from .dispatcher import Dispatcher
from .batch_builder import Batch, BatchBuilder, STALE_AFTER, schedule
from .job_store import JobStore
from .job_queue import JobQueue

__all__ = [
    "JOB_DURATION",
    "JobType",
    "GeneratePayload",
    "ImportPayload",
    "Job",
    "JobOutcome",
    "JobStatus",
    "PatchPayload",
    "ScheduledJob",
    "Source",
    "SyncError",
    "Dispatcher",
    "Batch",
    "BatchBuilder",
    "STALE_AFTER",
    "schedule",
    "JobStore",
    "JobQueue",
]
