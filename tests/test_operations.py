import json
from pathlib import Path
from typing import Sequence

import pytest

from sf_cli_runner import (
    ExecutionOutcome,
    ResultCategory,
    ToolPolicy,
    ValidationError,
    fetch_log,
    parse_field_values,
    run_apex,
    run_describe,
    run_query,
    run_record_insert,
    run_record_update,
    run_record_upsert,
)
from sf_cli_runner.execution.config import PAYLOAD_FILE_PREFIX
from sf_cli_runner.runner import child_relationships, find_field, flatten_record, relationship_fields, sorted_fields


class _FakeRunner:
    kind = "fake"
    tool_name = "sf"

    def __init__(self, stdout: str = "", stderr: str = "", returncode: int = 0) -> None:
        self.outcome = ExecutionOutcome(stdout, stderr, returncode, False)
        self.calls: list[tuple[list[str], float | None]] = []
        self.payloads: list[tuple[Path, str]] = []

    def run(self, args: Sequence[str], *, timeout_seconds: float | None = None) -> ExecutionOutcome:
        self.calls.append((list(args), timeout_seconds))
        for arg in args:
            path = Path(arg)
            if path.name.startswith(PAYLOAD_FILE_PREFIX):
                self.payloads.append((path, path.read_text(encoding="utf-8")))
        return self.outcome


def test_run_apex_sends_code_through_temp_file() -> None:
    envelope = {"status": 0, "result": {"compiled": True, "success": True, "logs": ""}}
    runner = _FakeRunner(stdout=json.dumps(envelope))
    code = "String s = 'a \"quoted\" & piped | value';\nSystem.debug(s);"

    result = run_apex(code, runner=runner, policy=ToolPolicy(command_timeout_seconds=45, target_org="dev"))

    assert result.category is ResultCategory.SUCCESS
    [(args, timeout)] = runner.calls
    [(path, written)] = runner.payloads
    assert written == code
    assert args == ["apex", "run", "-f", str(path), "--json", "--target-org", "dev"]
    assert timeout == 45
    assert not path.exists()


def test_run_apex_rejects_empty_code() -> None:
    runner = _FakeRunner()
    result = run_apex("   ", runner=runner)
    assert result.category is ResultCategory.VALIDATION_FAILURE
    assert runner.calls == []


def test_run_apex_rejects_policy_and_policy_file(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="not both"):
        run_apex("x", runner=_FakeRunner(), policy=ToolPolicy(), policy_file=str(tmp_path / "p.toml"))


def test_run_query_arguments_and_result() -> None:
    envelope = {"status": 0, "result": {"totalSize": 1, "done": True, "records": [{"Id": "001"}]}}
    runner = _FakeRunner(stdout=json.dumps(envelope))

    result = run_query("SELECT Id FROM Account", runner=runner, target_org="qa", all_rows=True)

    assert result.ok
    assert result.payload["totalSize"] == 1
    [(args, _)] = runner.calls
    assert args == ["data", "query", "--query", "SELECT Id FROM Account", "--json", "--all-rows", "--target-org", "qa"]


def test_run_query_rejects_empty_soql() -> None:
    assert run_query("", runner=_FakeRunner()).category is ResultCategory.VALIDATION_FAILURE


def test_fetch_log_returns_raw_text() -> None:
    runner = _FakeRunner(stdout="59.0 APEX_CODE,DEBUG\n|USER_DEBUG|[1]|DEBUG|x\n")
    result = fetch_log(" 07L5w00000abcdef ", runner=runner)
    assert result.ok
    assert "USER_DEBUG" in result.payload
    assert runner.calls[0][0] == ["apex", "get", "log", "--log-id", "07L5w00000abcdef"]


def test_fetch_log_failure_envelope() -> None:
    runner = _FakeRunner(stdout=json.dumps({"status": 1, "name": "NotFound", "message": "No log"}), returncode=1)
    result = fetch_log("07L", runner=runner)
    assert result.category is ResultCategory.RUNTIME_FAILURE
    assert result.message == "NotFound: No log"


def test_flatten_record() -> None:
    record = {
        "attributes": {"type": "Contact"},
        "Id": "003",
        "Account": {"attributes": {"type": "Account"}, "Name": "Acme", "Owner": {"attributes": {}, "Alias": "jd"}},
        "Cases": {"totalSize": 2, "done": True, "records": [{}, {}]},
        "MailingAddress": {"city": "Paris"},
        "Email": None,
    }
    assert flatten_record(record) == {
        "Id": "003",
        "Account.Name": "Acme",
        "Account.Owner.Alias": "jd",
        "Cases": "[2 records]",
        "MailingAddress": '{"city":"Paris"}',
        "Email": None,
    }


def test_run_record_insert_arguments_and_id() -> None:
    envelope = {"status": 0, "result": {"id": "001xx000003DGbYAAW", "success": True, "errors": []}}
    runner = _FakeRunner(stdout=json.dumps(envelope))

    result = run_record_insert("Account", "Name='Acme Corp' Industry='Technology'", runner=runner, target_org="dev")

    assert result.ok
    assert result.payload["id"] == "001xx000003DGbYAAW"
    [(args, _)] = runner.calls
    assert args == [
        "data",
        "create",
        "record",
        "--sobject",
        "Account",
        "--values",
        "Name='Acme Corp' Industry='Technology'",
        "--json",
        "--target-org",
        "dev",
    ]


def test_run_record_insert_requires_object_and_values() -> None:
    runner = _FakeRunner()
    assert run_record_insert(" ", "Name='x'", runner=runner).message == "Object name is required."
    missing = run_record_insert("Account", "", runner=runner)
    assert missing.category is ResultCategory.VALIDATION_FAILURE
    assert (missing.message or "").startswith("--values is required")
    assert runner.calls == []


def test_run_record_update_arguments() -> None:
    runner = _FakeRunner(stdout=json.dumps({"status": 0, "result": {"id": "001xx000003DGbY", "success": True}}))
    result = run_record_update("Account", " 001xx000003DGbY ", "Industry='Finance'", runner=runner)

    assert result.ok
    [(args, _)] = runner.calls
    assert args == [
        "data",
        "update",
        "record",
        "--sobject",
        "Account",
        "--record-id",
        "001xx000003DGbY",
        "--values",
        "Industry='Finance'",
        "--json",
    ]


@pytest.mark.parametrize("record_id", ["001xx", "001xx000003DGbYAA", "001xx000003DGb-Y"])
def test_run_record_update_rejects_malformed_ids(record_id: str) -> None:
    runner = _FakeRunner()
    result = run_record_update("Account", record_id, "Industry='Finance'", runner=runner)
    assert result.category is ResultCategory.VALIDATION_FAILURE
    assert result.message == f'Invalid record Id: "{record_id}". Must be 15 or 18 alphanumeric characters.'
    assert runner.calls == []


def test_run_record_update_failure_envelope() -> None:
    envelope = {"status": 1, "name": "NOT_FOUND", "message": "The requested resource does not exist"}
    runner = _FakeRunner(stdout=json.dumps(envelope), returncode=1)
    result = run_record_update("Account", "001xx000003DGbYAAW", "Industry='Finance'", runner=runner)
    assert result.category is ResultCategory.RUNTIME_FAILURE
    assert result.message == "NOT_FOUND: The requested resource does not exist"


def test_parse_field_values_types() -> None:
    body = parse_field_values(
        "Name='Acme Corp' AnnualRevenue=5000000 Rating=4.5 IsActive=true Closed=false Description=null Code=A-1"
    )
    assert body == {
        "Name": "Acme Corp",
        "AnnualRevenue": 5000000,
        "Rating": 4.5,
        "IsActive": True,
        "Closed": False,
        "Description": None,
        "Code": "A-1",
    }
    assert parse_field_values("Zip='02134'") == {"Zip": "02134"}
    with pytest.raises(ValidationError, match="Could not parse any field=value pairs"):
        parse_field_values("just words")


def test_run_record_upsert_builds_rest_call() -> None:
    runner = _FakeRunner(stdout=json.dumps({"id": "001xx000003DGbYAAW", "success": True, "created": True}))

    result = run_record_upsert(
        "Account",
        "External_Id__c",
        "EXT/001 a",
        "Name='Acme' NumberOfEmployees=12",
        runner=runner,
        api_version="v60.0",
    )

    assert result.ok
    assert result.payload["created"] is True
    [(args, _)] = runner.calls
    assert args[:7] == [
        "api",
        "request",
        "rest",
        "--method",
        "PATCH",
        "--url",
        "/services/data/v60.0/sobjects/Account/External_Id__c/EXT%2F001%20a",
    ]
    assert args[7] == "--body"
    assert json.loads(args[8]) == {"Name": "Acme", "NumberOfEmployees": 12}


def test_run_record_upsert_empty_response_means_updated() -> None:
    result = run_record_upsert("Account", "External_Id__c", "EXT-001", "Name='Acme'", runner=_FakeRunner())
    assert result.ok
    assert result.payload == {}


def test_run_record_upsert_joins_rest_errors() -> None:
    errors = [
        {"message": "Name: data value too large", "errorCode": "STRING_TOO_LONG"},
        {"errorCode": "DUPLICATE_VALUE"},
    ]
    runner = _FakeRunner(stdout=json.dumps(errors), returncode=1)
    result = run_record_upsert("Account", "External_Id__c", "EXT-001", "Name='Acme'", runner=runner)
    assert result.category is ResultCategory.RUNTIME_FAILURE
    assert result.message == "Name: data value too large; DUPLICATE_VALUE"


def test_run_record_upsert_validation() -> None:
    runner = _FakeRunner()
    assert run_record_upsert("Account", "", "EXT", "Name='x'", runner=runner).category is (
        ResultCategory.VALIDATION_FAILURE
    )
    assert (run_record_upsert("Account", "Ext__c", "", "Name='x'", runner=runner).message or "").startswith(
        "--external-id-value is required"
    )
    unparsable = run_record_upsert("Account", "Ext__c", "EXT", "no pairs here", runner=runner)
    assert unparsable.message == 'Could not parse any field=value pairs from: "no pairs here"'
    assert runner.calls == []


_DESCRIBE = {
    "name": "Contact",
    "label": "Contact",
    "fields": [
        {"name": "Name", "label": "Full Name", "type": "string", "length": 121},
        {"name": "AccountId", "label": "Account ID", "type": "reference", "referenceTo": ["Account"],
         "relationshipName": "Account"},
        {"name": "Id", "label": "Contact ID", "type": "id", "length": 18},
    ],
    "childRelationships": [
        {"childSObject": "Task", "relationshipName": "Tasks", "field": "WhoId"},
        {"childSObject": "Case", "relationshipName": "Cases", "field": "ContactId"},
    ],
}


def test_run_describe_arguments_and_helpers() -> None:
    runner = _FakeRunner(stdout=json.dumps({"status": 0, "result": _DESCRIBE}))

    result = run_describe("Contact", runner=runner, policy=ToolPolicy(target_org="qa"))

    assert result.ok
    [(args, _)] = runner.calls
    assert args == ["sobject", "describe", "--sobject", "Contact", "--json", "--target-org", "qa"]
    assert [f["name"] for f in sorted_fields(result.payload)] == ["AccountId", "Id", "Name"]
    assert find_field(result.payload, "accountid")["relationshipName"] == "Account"
    assert find_field(result.payload, "Missing__c") is None
    assert [f["name"] for f in relationship_fields(result.payload)] == ["AccountId"]
    assert [c["childSObject"] for c in child_relationships(result.payload)] == ["Case", "Task"]


def test_run_describe_unknown_object_is_runtime_failure() -> None:
    envelope = {"status": 1, "name": "NOT_FOUND", "message": "The requested resource does not exist"}
    runner = _FakeRunner(stdout=json.dumps(envelope), returncode=1)
    result = run_describe("Nope__c", runner=runner)
    assert result.category is ResultCategory.RUNTIME_FAILURE
    assert run_describe("", runner=_FakeRunner()).category is ResultCategory.VALIDATION_FAILURE
