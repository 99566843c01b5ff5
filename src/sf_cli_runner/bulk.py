from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .classifier import CommandResult, OperationKind, classify, transport_failure, validation_failure
from .errors import ValidationError
from .execution.config import batch_timeout_seconds, parse_wait_minutes
from .execution.engine import ProcessRunner
from .execution.invoke import execute
from .execution.types import CommandInvocation
from .jobs import STILL_RUNNING_MESSAGE, JobDescriptor
from .policy import ToolPolicy
from .preview import PreviewSample, preview_file, require_column, requires_explicit_warning

logger = logging.getLogger(__name__)


class BulkOperation(str, Enum):
    """Supported bulk DML operations.

    Example:
        ```python
        assert BulkOperation("upsert") is BulkOperation.UPSERT
        ```
    """

    INSERT = "insert"
    UPSERT = "upsert"
    UPDATE = "update"


@dataclass(frozen=True, slots=True)
class BulkRequest:
    """What the caller asked for, before validation.

    Example:
        ```python
        req = BulkRequest(sobject="Account", csv_path="accounts.csv", operation="upsert", external_id="Ext__c")
        ```
    """

    sobject: str
    csv_path: str
    operation: str = BulkOperation.INSERT.value
    external_id: str | None = None
    wait_minutes: int | str | None = None
    target_org: str | None = None


@dataclass(frozen=True, slots=True)
class BulkPlan:
    """A validated bulk request, its CSV preview and the invocation to submit.

    Example:
        ```python
        plan = prepare_bulk(req, ToolPolicy())
        ```
    """

    sobject: str
    csv_path: str
    operation: BulkOperation
    external_id: str | None
    wait_minutes: int
    sample: PreviewSample
    requires_confirmation: bool
    invocation: CommandInvocation


def parse_operation(value: str | None) -> BulkOperation:
    """Validate a bulk operation name.

    Example:
        ```python
        assert parse_operation("upsert") is BulkOperation.UPSERT
        ```
    """
    try:
        return BulkOperation(value or BulkOperation.INSERT.value)
    except ValueError:
        allowed = ", ".join(op.value for op in BulkOperation)
        raise ValidationError(f'Invalid operation: "{value}". Must be one of: {allowed}') from None


def resolve_external_id(operation: BulkOperation, external_id: str | None) -> str | None:
    """Apply the per-operation external-id rules.

    Example:
        ```python
        assert resolve_external_id(BulkOperation.UPDATE, None) == "Id"
        ```
    """
    cleaned = (external_id or "").strip() or None
    if operation is BulkOperation.INSERT:
        return None
    if operation is BulkOperation.UPDATE:
        return cleaned or "Id"
    if cleaned is None:
        raise ValidationError(
            "--external-id is required for upsert operations. Provide the external ID field API name."
        )
    return cleaned


def build_bulk_invocation(
    *,
    sobject: str,
    csv_path: str,
    operation: BulkOperation,
    external_id: str | None,
    wait_minutes: int,
    target_org: str | None,
    policy: ToolPolicy,
) -> CommandInvocation:
    """Build the single blocking call that submits the job and waits for it.

    Example:
        ```python
        inv = build_bulk_invocation(sobject="Account", csv_path="a.csv", operation=BulkOperation.INSERT,
                                    external_id=None, wait_minutes=10, target_org=None, policy=ToolPolicy())
        ```
    """
    if operation is BulkOperation.INSERT:
        args = ["data", "import", "bulk", "--sobject", sobject, "--file", csv_path]
    else:
        if not external_id:
            raise ValidationError(f"{operation.value} requires an external id field")
        args = [
            "data",
            "upsert",
            "bulk",
            "--sobject",
            sobject,
            "--file",
            csv_path,
            "--external-id",
            external_id,
        ]
    args.extend(["--wait", str(wait_minutes), "--json"])
    return CommandInvocation(
        args=tuple(args),
        target_org=target_org,
        timeout_seconds=batch_timeout_seconds(wait_minutes, policy.timeout_margin_minutes),
    )


def prepare_bulk(request: BulkRequest, policy: ToolPolicy | None = None) -> BulkPlan:
    """Validate a bulk request and preview its CSV without invoking anything.

    Example:
        ```python
        plan = prepare_bulk(BulkRequest(sobject="Contact", csv_path="c.csv", operation="update"))
        ```
    """
    resolved_policy = policy or ToolPolicy()
    sobject = request.sobject.strip()
    if not sobject:
        raise ValidationError("Object name is required.")
    if not request.csv_path:
        raise ValidationError("--file is required. Provide the path to a CSV file.")
    operation = parse_operation(request.operation)
    wait_minutes = parse_wait_minutes(request.wait_minutes, resolved_policy.wait_minutes)
    external_id = resolve_external_id(operation, request.external_id)

    sample = preview_file(request.csv_path, resolved_policy.preview_sample_size)
    if external_id is not None:
        require_column(sample, external_id)

    invocation = build_bulk_invocation(
        sobject=sobject,
        csv_path=request.csv_path,
        operation=operation,
        external_id=external_id,
        wait_minutes=wait_minutes,
        target_org=request.target_org or resolved_policy.target_org,
        policy=resolved_policy,
    )
    return BulkPlan(
        sobject=sobject,
        csv_path=request.csv_path,
        operation=operation,
        external_id=external_id,
        wait_minutes=wait_minutes,
        sample=sample,
        requires_confirmation=requires_explicit_warning(
            sample.total_rows, resolved_policy.large_dataset_threshold
        ),
        invocation=invocation,
    )


def submit_bulk_job(plan: BulkPlan, runner: ProcessRunner) -> CommandResult:
    """Submit the job, block until the tool reports a terminal state, and classify it.

    Example:
        ```python
        result = submit_bulk_job(plan, runner)
        ```
    """
    logger.info("Submitting bulk %s of %s (%d rows)", plan.operation.value, plan.sobject, plan.sample.total_rows)
    outcome = execute(plan.invocation, runner)
    if outcome.timed_out:
        job = JobDescriptor(job_id="Unknown")
        job.mark_timed_out()
        return transport_failure(
            f"Stopped waiting after {plan.wait_minutes} minute(s). {STILL_RUNNING_MESSAGE}",
            payload=job,
        )
    return classify(outcome, OperationKind.BULK)


def run_bulk(
    request: BulkRequest,
    runner: ProcessRunner,
    policy: ToolPolicy | None = None,
) -> CommandResult:
    """Validate, then submit a bulk job; bad input never reaches the tool.

    Example:
        ```python
        result = run_bulk(BulkRequest(sobject="Account", csv_path="a.csv"), runner)
        ```
    """
    try:
        plan = prepare_bulk(request, policy)
    except ValidationError as exc:
        return validation_failure(str(exc))
    return submit_bulk_job(plan, runner)
