"""Job state for the normalization pipeline."""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional

from pricing_atlas.contracts import JobConfiguration, JobStatus, JobType
from pricing_atlas.normalization.schema import RawPricingRecord


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RawBatch:
    """One offset-paginated slice of raw records handed to a worker."""

    provider: str
    offset: int
    records: list[RawPricingRecord]


@dataclass
class BatchResult:
    provider: str
    offset: int
    processed_records: int = 0
    normalized_records: int = 0
    skipped_records: int = 0
    error_records: int = 0
    errors: list[str] = field(default_factory=list)
    fatal_error: Optional[str] = None


@dataclass
class JobProgress:
    """Counters for one job.

    While a provider is being processed only the result collector thread
    mutates these; stage and totals are set by the job thread between
    providers, when no collector is running.
    """

    total_records: int = 0
    processed_records: int = 0
    normalized_records: int = 0
    skipped_records: int = 0
    error_records: int = 0
    current_stage: str = "Initializing"
    last_updated: datetime = field(default_factory=utc_now)
    rate: float = 0.0

    def set_stage(self, stage: str) -> None:
        self.current_stage = stage
        self.last_updated = utc_now()

    def apply(self, batch: BatchResult, started_at: datetime) -> None:
        self.processed_records += batch.processed_records
        self.normalized_records += batch.normalized_records
        self.skipped_records += batch.skipped_records
        self.error_records += batch.error_records
        self.last_updated = utc_now()
        elapsed = (self.last_updated - started_at).total_seconds()
        if elapsed > 0:
            self.rate = self.processed_records / elapsed

    def snapshot(self) -> "JobProgress":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["last_updated"] = self.last_updated.isoformat()
        return payload


class Job:
    """One ETL job: pending -> running -> completed | failed | cancelled.

    Terminal states are final; later transitions are ignored.
    """

    def __init__(self, job_id: str, job_type: JobType, configuration: JobConfiguration) -> None:
        self.id = job_id
        self.type = job_type
        self.configuration = configuration
        self.status = JobStatus.PENDING
        self.provider: Optional[str] = None
        self.progress = JobProgress()
        self.started_at = utc_now()
        self.completed_at: Optional[datetime] = None
        self.error: Optional[str] = None
        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._done = threading.Event()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def mark_running(self) -> bool:
        with self._lock:
            if self.status is not JobStatus.PENDING:
                return False
            self.status = JobStatus.RUNNING
            return True

    def request_cancel(self) -> bool:
        """Signal cancellation and mark the job cancelled; False if already terminal."""
        with self._lock:
            if self.status.is_terminal:
                return False
            self._cancel_event.set()
            self.status = JobStatus.CANCELLED
            self.completed_at = utc_now()
            return True

    def finish(self, status: JobStatus, error: Optional[str] = None) -> bool:
        with self._lock:
            if self.status.is_terminal:
                return False
            self.status = status
            self.error = error
            self.completed_at = utc_now()
            self.progress.set_stage("Completed" if status is JobStatus.COMPLETED else "Failed")
            return True

    def mark_done(self) -> None:
        self._done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job's thread has exited; False on timeout."""
        return self._done.wait(timeout)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "provider": self.provider,
            "status": self.status.value,
            "progress": self.progress.snapshot().to_dict(),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
            "configuration": self.configuration.model_dump(),
        }

    def __repr__(self) -> str:
        return f"Job(id={self.id!r}, type={self.type.value!r}, status={self.status.value!r})"
