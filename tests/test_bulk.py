import json
from pathlib import Path
from typing import Sequence

import pytest

from sf_cli_runner import (
    BulkOperation,
    BulkRequest,
    ExecutionOutcome,
    JobState,
    ResultCategory,
    ToolPolicy,
    ValidationError,
    prepare_bulk,
    run_bulk,
)
from sf_cli_runner.bulk import parse_operation, resolve_external_id
from sf_cli_runner.jobs import STILL_RUNNING_MESSAGE


class _FakeRunner:
    kind = "fake"
    tool_name = "sf"

    def __init__(self, outcome: ExecutionOutcome | None = None) -> None:
        self.outcome = outcome or ExecutionOutcome(
            json.dumps(
                {
                    "status": 0,
                    "result": {
                        "jobId": "7505g00000AbCdE",
                        "state": "JobComplete",
                        "numberRecordsProcessed": 5,
                        "numberRecordsFailed": 0,
                    },
                }
            ),
            "",
            0,
            False,
        )
        self.calls: list[tuple[list[str], float | None]] = []

    def run(self, args: Sequence[str], *, timeout_seconds: float | None = None) -> ExecutionOutcome:
        self.calls.append((list(args), timeout_seconds))
        return self.outcome


def _write_csv(tmp_path: Path, rows: int, header: str = "Name,External_Id__c") -> Path:
    path = tmp_path / "accounts.csv"
    lines = [header] + [f"Account {i},EXT-{i}" for i in range(rows)]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def test_upsert_without_external_id_fails_before_invocation(tmp_path: Path) -> None:
    runner = _FakeRunner()
    csv_path = _write_csv(tmp_path, 5)
    result = run_bulk(BulkRequest(sobject="Account", csv_path=str(csv_path), operation="upsert"), runner)

    assert result.category is ResultCategory.VALIDATION_FAILURE
    assert "--external-id is required for upsert" in (result.message or "")
    assert result.exit_code == 1
    assert runner.calls == []


def test_insert_builds_import_command_with_timeout(tmp_path: Path) -> None:
    runner = _FakeRunner()
    csv_path = _write_csv(tmp_path, 5)
    result = run_bulk(
        BulkRequest(sobject="Account", csv_path=str(csv_path), wait_minutes="15", target_org="myOrg"),
        runner,
    )

    assert result.category is ResultCategory.SUCCESS
    [(args, timeout)] = runner.calls
    assert args == [
        "data",
        "import",
        "bulk",
        "--sobject",
        "Account",
        "--file",
        str(csv_path),
        "--wait",
        "15",
        "--json",
        "--target-org",
        "myOrg",
    ]
    assert timeout == (15 + 2) * 60


def test_update_defaults_external_id_to_id(tmp_path: Path) -> None:
    runner = _FakeRunner()
    csv_path = _write_csv(tmp_path, 2, header="Id,Name")
    run_bulk(BulkRequest(sobject="Contact", csv_path=str(csv_path), operation="update"), runner)

    [(args, timeout)] = runner.calls
    assert args[:3] == ["data", "upsert", "bulk"]
    assert args[args.index("--external-id") + 1] == "Id"
    assert timeout == (10 + 2) * 60


def test_external_id_column_must_exist(tmp_path: Path) -> None:
    runner = _FakeRunner()
    csv_path = _write_csv(tmp_path, 2, header="Name,Industry")
    result = run_bulk(
        BulkRequest(sobject="Account", csv_path=str(csv_path), operation="upsert", external_id="External_Id__c"),
        runner,
    )
    assert result.category is ResultCategory.VALIDATION_FAILURE
    assert "External_Id__c" in (result.message or "")
    assert runner.calls == []


@pytest.mark.parametrize(
    ("request_kwargs", "message"),
    [
        ({"sobject": " ", "csv_path": "a.csv"}, "Object name is required"),
        ({"sobject": "Account", "csv_path": ""}, "--file is required"),
        ({"sobject": "Account", "csv_path": "a.csv", "operation": "delete"}, 'Invalid operation: "delete"'),
        ({"sobject": "Account", "csv_path": "a.csv", "wait_minutes": "soon"}, "--wait"),
        ({"sobject": "Account", "csv_path": "a.csv", "wait_minutes": 0}, "--wait must be positive"),
        ({"sobject": "Account", "csv_path": "does-not-exist.csv"}, "File not found"),
    ],
)
def test_validation_failures(request_kwargs: dict, message: str) -> None:
    runner = _FakeRunner()
    result = run_bulk(BulkRequest(**request_kwargs), runner)
    assert result.category is ResultCategory.VALIDATION_FAILURE
    assert message in (result.message or "")
    assert runner.calls == []


def test_large_dataset_requires_confirmation(tmp_path: Path) -> None:
    at_threshold = prepare_bulk(BulkRequest(sobject="Account", csv_path=str(_write_csv(tmp_path, 1000))))
    assert at_threshold.requires_confirmation is False

    over = prepare_bulk(BulkRequest(sobject="Account", csv_path=str(_write_csv(tmp_path, 1001))))
    assert over.requires_confirmation is True
    assert over.sample.total_rows == 1001
    assert len(over.sample.rows) == 3


def test_policy_threshold_and_margin_are_honored(tmp_path: Path) -> None:
    policy = ToolPolicy(large_dataset_threshold=2, timeout_margin_minutes=5, wait_minutes=3, preview_sample_size=1)
    plan = prepare_bulk(BulkRequest(sobject="Account", csv_path=str(_write_csv(tmp_path, 3))), policy)
    assert plan.requires_confirmation is True
    assert plan.wait_minutes == 3
    assert plan.invocation.timeout_seconds == (3 + 5) * 60
    assert len(plan.sample.rows) == 1


def test_timeout_reports_job_may_still_be_running(tmp_path: Path) -> None:
    runner = _FakeRunner(ExecutionOutcome("", "", 124, True, "'sf' timed out after 720s"))
    csv_path = _write_csv(tmp_path, 5)
    result = run_bulk(BulkRequest(sobject="Account", csv_path=str(csv_path)), runner)

    assert result.category is ResultCategory.TRANSPORT_FAILURE
    assert "may still be running" in (result.message or "")
    assert result.payload.state is JobState.TIMED_OUT


def test_unfinished_job_reads_like_a_client_timeout(tmp_path: Path) -> None:
    outcome = ExecutionOutcome(
        json.dumps({"status": 0, "result": {"jobId": "750", "state": "InProgress"}}), "", 0, False
    )
    result = run_bulk(BulkRequest(sobject="Account", csv_path=str(_write_csv(tmp_path, 5))), _FakeRunner(outcome))
    timed_out = run_bulk(
        BulkRequest(sobject="Account", csv_path=str(_write_csv(tmp_path, 5))),
        _FakeRunner(ExecutionOutcome("", "", 124, True, "'sf' timed out after 720s")),
    )

    assert result.category is timed_out.category is ResultCategory.TRANSPORT_FAILURE
    assert result.payload.state is timed_out.payload.state is JobState.TIMED_OUT
    assert (result.message or "").endswith(STILL_RUNNING_MESSAGE)
    assert (timed_out.message or "").endswith(STILL_RUNNING_MESSAGE)


def test_partial_failure_result(tmp_path: Path) -> None:
    outcome = ExecutionOutcome(
        json.dumps(
            {
                "status": 1,
                "result": {
                    "jobId": "750",
                    "state": "JobComplete",
                    "numberRecordsProcessed": 5,
                    "numberRecordsFailed": 1,
                    "failedResults": [{"sf__Error": "DUPLICATE_VALUE:duplicate value found"}],
                },
            }
        ),
        "",
        1,
        False,
    )
    result = run_bulk(BulkRequest(sobject="Account", csv_path=str(_write_csv(tmp_path, 5))), _FakeRunner(outcome))
    assert result.category is ResultCategory.PARTIAL_BATCH_FAILURE
    assert result.payload.failures[0].message == "DUPLICATE_VALUE:duplicate value found"
    assert result.exit_code == 0


def test_operation_helpers() -> None:
    assert parse_operation(None) is BulkOperation.INSERT
    with pytest.raises(ValidationError):
        parse_operation("merge")
    assert resolve_external_id(BulkOperation.INSERT, "Ext__c") is None
    assert resolve_external_id(BulkOperation.UPSERT, " Ext__c ") == "Ext__c"
