from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from .errors import JobStateError

logger = logging.getLogger(__name__)

_REMOTE_COMPLETED = {"jobcomplete", "completed", "complete"}
_REMOTE_FAILED = {"failed", "aborted"}

STILL_RUNNING_MESSAGE = (
    "The bulk job may still be running and applying changes; "
    "check its status in the org before retrying."
)


class JobState(str, Enum):
    """Local lifecycle of a bulk job.

    Example:
        ```python
        assert JobState("failed") is JobState.FAILED
        ```
    """

    SUBMITTED = "submitted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def terminal(self) -> bool:
        """True for absorbing states.

        Example:
            ```python
            assert JobState.COMPLETED.terminal
            ```
        """
        return self in {JobState.COMPLETED, JobState.FAILED, JobState.TIMED_OUT}


@dataclass(frozen=True, slots=True)
class RecordFailure:
    """One record the bulk job rejected.

    Example:
        ```python
        failure = RecordFailure(message="REQUIRED_FIELD_MISSING: Name")
        ```
    """

    message: str
    record: Any = None


def _first_present(data: Mapping[str, Any], *keys: str) -> Any:
    """Return the value of the first key that is present and not None.

    Example:
        ```python
        assert _first_present({"id": "750"}, "jobId", "id") == "750"
        ```
    """
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _as_int(value: Any) -> int | None:
    """Coerce a count field to int, treating booleans and junk as missing.

    Example:
        ```python
        assert _as_int("5") == 5
        ```
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def record_failure_from(raw: Any) -> RecordFailure:
    """Build a RecordFailure from one entry of the tool's failed-records list.

    Example:
        ```python
        failure = record_failure_from({"message": "DUPLICATE_VALUE"})
        ```
    """
    if isinstance(raw, Mapping):
        message = raw.get("message") or raw.get("error") or raw.get("sf__Error")
        if message:
            return RecordFailure(message=str(message), record=dict(raw))
        return RecordFailure(message=json.dumps(raw, sort_keys=True, default=str), record=dict(raw))
    return RecordFailure(message=str(raw), record=raw)


def map_remote_state(remote: str | None) -> JobState:
    """Map the tool's job state string onto the local lifecycle.

    Example:
        ```python
        assert map_remote_state("JobComplete") is JobState.COMPLETED
        ```
    """
    if not remote:
        return JobState.IN_PROGRESS
    normalized = remote.replace(" ", "").lower()
    if normalized in _REMOTE_COMPLETED:
        return JobState.COMPLETED
    if normalized in _REMOTE_FAILED:
        return JobState.FAILED
    return JobState.IN_PROGRESS


@dataclass(slots=True)
class JobDescriptor:
    """State of one asynchronous bulk job as reported by the tool.

    Example:
        ```python
        job = JobDescriptor(job_id="7505g00000AbCdE")
        job.apply_poll({"state": "JobComplete", "numberRecordsProcessed": 5})
        ```
    """

    job_id: str
    state: JobState = JobState.SUBMITTED
    records_processed: int | None = None
    records_failed: int | None = None
    failures: list[RecordFailure] = field(default_factory=list)
    remote_state: str | None = None

    @property
    def has_failures(self) -> bool:
        """True when any record failed, by list or by count.

        Example:
            ```python
            assert not JobDescriptor(job_id="750").has_failures
            ```
        """
        return bool(self.failures) or bool(self.records_failed)

    def apply_poll(self, response: Mapping[str, Any]) -> None:
        """Update the descriptor from one job description returned by the tool.

        Example:
            ```python
            job.apply_poll({"state": "InProgress"})
            ```
        """
        if self.state.terminal:
            raise JobStateError(f"Job {self.job_id} is already {self.state.value}")
        job_id = _first_present(response, "jobId", "id")
        if isinstance(job_id, str) and job_id:
            self.job_id = job_id
        # Envelope-level "status" is the numeric exit status, not a job state.
        remote = next(
            (response[key] for key in ("state", "status") if isinstance(response.get(key), str)),
            None,
        )
        if remote is not None:
            self.remote_state = remote
        processed = _as_int(_first_present(response, "numberRecordsProcessed", "processedRecords"))
        if processed is not None:
            self.records_processed = processed
        failed = _as_int(_first_present(response, "numberRecordsFailed", "failedRecords"))
        if failed is not None:
            self.records_failed = failed
        raw_failures = _first_present(response, "failedResults", "unprocessedRecords")
        if isinstance(raw_failures, list) and raw_failures:
            self.failures = [record_failure_from(item) for item in raw_failures]

        # Record counts without a state string only appear on finished jobs.
        reported_counts = (
            self.records_processed is not None or self.records_failed is not None or bool(self.failures)
        )
        if remote is None and reported_counts:
            self.state = JobState.COMPLETED
        else:
            self.state = map_remote_state(self.remote_state)
        logger.debug("Job %s is now %s", self.job_id, self.state.value)

    def mark_timed_out(self) -> None:
        """Record that the client stopped waiting; the remote job may still run.

        Example:
            ```python
            job.mark_timed_out()
            ```
        """
        if self.state.terminal:
            raise JobStateError(f"Job {self.job_id} is already {self.state.value}")
        self.state = JobState.TIMED_OUT

    @classmethod
    def from_response(cls, response: Mapping[str, Any]) -> "JobDescriptor":
        """Create a descriptor from the tool's terminal job description.

        Example:
            ```python
            job = JobDescriptor.from_response({"jobId": "750", "state": "JobComplete"})
            ```
        """
        job = cls(job_id="Unknown")
        job.apply_poll(response)
        return job

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly view of the descriptor.

        Example:
            ```python
            payload = job.to_dict()
            ```
        """
        return {
            "jobId": self.job_id,
            "state": self.state.value,
            "remoteState": self.remote_state,
            "recordsProcessed": self.records_processed,
            "recordsFailed": self.records_failed,
            "failures": [failure.message for failure in self.failures],
        }


def looks_like_job(data: Any) -> bool:
    """True when a decoded payload carries bulk job fields.

    Example:
        ```python
        assert looks_like_job({"jobId": "750"})
        ```
    """
    if not isinstance(data, Mapping):
        return False
    return any(
        key in data
        for key in ("jobId", "id", "numberRecordsProcessed", "processedRecords", "failedResults")
    )
