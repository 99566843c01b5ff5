from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .execution.config import TRANSPORT_HINT
from .execution.types import Decoded, ExecutionOutcome
from .jobs import STILL_RUNNING_MESSAGE, JobDescriptor, JobState, looks_like_job
from .logparse import LogRecord, UsageCounter, extract_debug_lines, extract_usage_stats

logger = logging.getLogger(__name__)

GENERIC_TRANSPORT_MESSAGE = "sf CLI invocation failed"


class OperationKind(str, Enum):
    """How the output of an operation is interpreted.

    Example:
        ```python
        assert OperationKind("apex-run") is OperationKind.APEX_RUN
        ```
    """

    APEX_RUN = "apex-run"
    BULK = "bulk"
    QUERY = "query"
    REST = "rest"
    TEXT = "text"


class ResultCategory(str, Enum):
    """Outcome categories, ordered from least to most progress.

    Example:
        ```python
        assert ResultCategory.SUCCESS.exit_code == 0
        ```
    """

    VALIDATION_FAILURE = "validation_failure"
    TRANSPORT_FAILURE = "transport_failure"
    COMPILE_FAILURE = "compile_failure"
    RUNTIME_FAILURE = "runtime_failure"
    PARTIAL_BATCH_FAILURE = "partial_batch_failure"
    SUCCESS = "success"

    @property
    def rank(self) -> int:
        """Position in the progress order, validation first and success last.

        Example:
            ```python
            assert ResultCategory.COMPILE_FAILURE.rank < ResultCategory.RUNTIME_FAILURE.rank
            ```
        """
        return list(ResultCategory).index(self)

    @property
    def exit_code(self) -> int:
        """Process exit code for this category.

        Example:
            ```python
            assert ResultCategory.PARTIAL_BATCH_FAILURE.exit_code == 0
            ```
        """
        if self in {ResultCategory.SUCCESS, ResultCategory.PARTIAL_BATCH_FAILURE}:
            return 0
        return 1


@dataclass(frozen=True, slots=True)
class CompileProblem:
    """Where and why anonymous Apex failed to compile.

    Example:
        ```python
        problem = CompileProblem(message="Unexpected token", line=3, column=5)
        ```
    """

    message: str
    line: int | None = None
    column: int = 0


@dataclass(frozen=True, slots=True)
class RuntimeProblem:
    """Exception raised by code that compiled and started running.

    Example:
        ```python
        problem = RuntimeProblem(message="System.NullPointerException", stack_trace="AnonymousBlock: line 1")
        ```
    """

    message: str
    stack_trace: str = ""
    debug_lines: tuple[LogRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class ApexRun:
    """Successful anonymous Apex execution.

    Example:
        ```python
        run = ApexRun(logs="", debug_lines=(), usage=())
        ```
    """

    logs: str
    debug_lines: tuple[LogRecord, ...] = ()
    usage: tuple[UsageCounter, ...] = ()


@dataclass(slots=True)
class CommandResult:
    """Normalized, presentable result of one operation.

    Example:
        ```python
        result = CommandResult(category=ResultCategory.SUCCESS, payload={"totalSize": 0})
        ```
    """

    category: ResultCategory
    payload: Any = None
    message: str | None = None
    hint: str | None = None
    data: Any = None

    @property
    def ok(self) -> bool:
        """True for full success.

        Example:
            ```python
            assert CommandResult(ResultCategory.SUCCESS).ok
            ```
        """
        return self.category is ResultCategory.SUCCESS

    @property
    def exit_code(self) -> int:
        """Process exit code for this result.

        Example:
            ```python
            assert CommandResult(ResultCategory.TRANSPORT_FAILURE).exit_code == 1
            ```
        """
        return self.category.exit_code


def validation_failure(message: str) -> CommandResult:
    """Build the result for input rejected before any invocation.

    Example:
        ```python
        result = validation_failure("--file is required")
        ```
    """
    return CommandResult(category=ResultCategory.VALIDATION_FAILURE, message=message)


def transport_failure(message: str | None = None, payload: Any = None) -> CommandResult:
    """Build the result for a tool that could not be reached or understood.

    Example:
        ```python
        result = transport_failure("'sf' executable was not found on PATH")
        ```
    """
    return CommandResult(
        category=ResultCategory.TRANSPORT_FAILURE,
        payload=payload,
        message=message or GENERIC_TRANSPORT_MESSAGE,
        hint=TRANSPORT_HINT,
    )


def envelope_message(envelope: Mapping[str, Any]) -> str:
    """Summarize a structured error envelope as one line.

    Example:
        ```python
        msg = envelope_message({"name": "NoOrgFound", "message": "No default org"})
        ```
    """
    parts: list[str] = []
    name = envelope.get("name")
    message = envelope.get("message")
    if name:
        parts.append(str(name))
    if message:
        parts.append(str(message))
    nested = envelope.get("result")
    if isinstance(nested, list) and nested and isinstance(nested[0], Mapping):
        first = nested[0].get("message")
        if first:
            parts.append(str(first))
    return ": ".join(parts) or "sf CLI reported a failure without a message"


def unwrap_envelope(envelope: Mapping[str, Any]) -> Any:
    """Return the nested result of an envelope, or the envelope itself.

    Example:
        ```python
        assert unwrap_envelope({"status": 0, "result": {"a": 1}}) == {"a": 1}
        ```
    """
    if "result" in envelope and envelope["result"] is not None:
        return envelope["result"]
    return envelope


def _envelope_failed(outcome: ExecutionOutcome, envelope: Mapping[str, Any]) -> bool:
    """True when the exit code or the envelope's own status reports a failure.

    Example:
        ```python
        assert _envelope_failed(outcome, {"status": 1})
        ```
    """
    status = envelope.get("status")
    return outcome.returncode != 0 or (isinstance(status, int) and not isinstance(status, bool) and status != 0)


def _classify_apex(envelope: Mapping[str, Any], data: Any, failed: bool) -> CommandResult:
    """Split an anonymous Apex envelope into compile failure, runtime failure or success.

    Example:
        ```python
        result = _classify_apex(envelope, {"compiled": True, "success": True, "logs": ""}, failed=False)
        ```
    """
    if not isinstance(data, Mapping) or not ({"compiled", "success"} & data.keys()):
        if failed:
            return CommandResult(
                category=ResultCategory.RUNTIME_FAILURE,
                payload=RuntimeProblem(message=envelope_message(envelope)),
                message=envelope_message(envelope),
                data=data,
            )
        data = data if isinstance(data, Mapping) else {}

    logs = str(data.get("logs") or "")
    if data.get("compiled") is False:
        line = data.get("line")
        problem = CompileProblem(
            message=str(data.get("compileProblem") or "Compilation failed"),
            line=int(line) if line is not None else None,
            column=int(data.get("column") or 0),
        )
        return CommandResult(
            category=ResultCategory.COMPILE_FAILURE,
            payload=problem,
            message=problem.message,
            data=data,
        )
    if data.get("success") is False:
        problem = RuntimeProblem(
            message=str(data.get("exceptionMessage") or ""),
            stack_trace=str(data.get("exceptionStackTrace") or ""),
            debug_lines=tuple(extract_debug_lines(logs)),
        )
        return CommandResult(
            category=ResultCategory.RUNTIME_FAILURE,
            payload=problem,
            message=problem.message or "Anonymous Apex raised an exception",
            data=data,
        )
    return CommandResult(
        category=ResultCategory.SUCCESS,
        payload=ApexRun(
            logs=logs,
            debug_lines=tuple(extract_debug_lines(logs)),
            usage=tuple(extract_usage_stats(logs)),
        ),
        data=data,
    )


def _classify_bulk(envelope: Mapping[str, Any], data: Any, failed: bool) -> CommandResult:
    """Classify the description of a finished, failed or still running bulk job.

    A job the tool reports as failed or aborted is a runtime failure even when
    some records were rejected; the rejected records stay on the descriptor.

    Example:
        ```python
        result = _classify_bulk(envelope, envelope["result"], failed=False)
        ```
    """
    if not looks_like_job(data):
        # A failure envelope may carry the job under "data" instead of "result".
        alt = envelope.get("data")
        if looks_like_job(alt):
            data = alt
        elif failed:
            return CommandResult(
                category=ResultCategory.RUNTIME_FAILURE,
                message=envelope_message(envelope),
                data=data,
            )
    job = JobDescriptor.from_response(data if isinstance(data, Mapping) else {})
    if job.state is JobState.FAILED:
        message = envelope_message(envelope) if failed else f"Bulk job {job.job_id} {job.remote_state}"
        if job.has_failures:
            message = f"{message}, {_failed_count(job)} record(s) failed"
        return CommandResult(category=ResultCategory.RUNTIME_FAILURE, payload=job, message=message, data=data)
    if not job.state.terminal:
        logger.warning("Bulk job %s is not finished (%s)", job.job_id, job.remote_state)
        job.mark_timed_out()
        message = f"Bulk job {job.job_id} is still {job.remote_state or 'in progress'}. {STILL_RUNNING_MESSAGE}"
        if failed:
            # Structured failures are never transport failures.
            return CommandResult(category=ResultCategory.RUNTIME_FAILURE, payload=job, message=message, data=data)
        return transport_failure(message, payload=job)
    if job.has_failures:
        return CommandResult(
            category=ResultCategory.PARTIAL_BATCH_FAILURE,
            payload=job,
            message=f"{_failed_count(job)} record(s) failed",
            data=data,
        )
    if failed:
        return CommandResult(
            category=ResultCategory.RUNTIME_FAILURE,
            payload=job,
            message=envelope_message(envelope),
            data=data,
        )
    return CommandResult(category=ResultCategory.SUCCESS, payload=job, data=data)


def _failed_count(job: JobDescriptor) -> int:
    """Number of rejected records, preferring the tool's own count.

    Example:
        ```python
        assert _failed_count(JobDescriptor(job_id="750", records_failed=2)) == 2
        ```
    """
    return job.records_failed if job.records_failed is not None else len(job.failures)


def _rest_error_message(body: Any) -> str | None:
    """Join the messages of a REST error list, or None when the body is not one.

    Example:
        ```python
        assert _rest_error_message([{"errorCode": "NOT_FOUND"}]) == "NOT_FOUND"
        ```
    """
    if not isinstance(body, list) or not body:
        return None
    parts = [
        str(item.get("message") or item.get("errorCode"))
        for item in body
        if isinstance(item, Mapping) and (item.get("message") or item.get("errorCode"))
    ]
    return "; ".join(parts) or None


def _classify_rest(outcome: ExecutionOutcome) -> CommandResult | None:
    """Classify a raw REST response body; None defers to envelope handling.

    Successful calls may answer with an empty body (204) or a JSON object.

    Example:
        ```python
        result = _classify_rest(outcome)
        ```
    """
    text = outcome.stdout.strip()
    try:
        body = json.loads(text) if text else None
    except json.JSONDecodeError:
        body = None
    if outcome.returncode == 0:
        payload = body if isinstance(body, Mapping) else {}
        return CommandResult(category=ResultCategory.SUCCESS, payload=payload, data=payload)
    message = _rest_error_message(body)
    if message is not None:
        return CommandResult(category=ResultCategory.RUNTIME_FAILURE, message=message, data=body)
    return None


def classify(outcome: ExecutionOutcome, kind: OperationKind | str) -> CommandResult:
    """Interpret a raw outcome as exactly one result category.

    Example:
        ```python
        result = classify(outcome, OperationKind.APEX_RUN)
        ```
    """
    kind = OperationKind(kind)
    if outcome.timed_out or outcome.error is not None:
        return transport_failure(outcome.error)
    if kind is OperationKind.TEXT and outcome.returncode == 0:
        return CommandResult(category=ResultCategory.SUCCESS, payload=outcome.stdout, data=outcome.stdout)
    if kind is OperationKind.REST:
        rest_result = _classify_rest(outcome)
        if rest_result is not None:
            return rest_result

    raw = outcome.raw_result()
    if not isinstance(raw, Decoded):
        logger.debug("Undecodable output (exit %s)", outcome.returncode)
        if outcome.returncode == 0:
            return transport_failure("sf CLI returned output that is not JSON")
        return transport_failure(raw.text or None)

    envelope = raw.value
    data = unwrap_envelope(envelope)
    failed = _envelope_failed(outcome, envelope)
    if kind is OperationKind.APEX_RUN:
        return _classify_apex(envelope, data, failed)
    if kind is OperationKind.BULK:
        return _classify_bulk(envelope, data, failed)
    if failed:
        return CommandResult(
            category=ResultCategory.RUNTIME_FAILURE,
            message=envelope_message(envelope),
            data=data,
        )
    return CommandResult(category=ResultCategory.SUCCESS, payload=data, data=data)
