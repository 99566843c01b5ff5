from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping
from urllib.parse import quote

from .classifier import CommandResult, OperationKind, classify, validation_failure
from .errors import ValidationError
from .execution.engine import ProcessRunner
from .execution.invoke import execute
from .execution.types import PAYLOAD_PATH_TOKEN, CommandInvocation
from .policy import ToolPolicy

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "v62.0"

_RECORD_ID_RE = re.compile(r"[a-zA-Z0-9]{15}(?:[a-zA-Z0-9]{3})?")
_FIELD_VALUE_RE = re.compile(r"(\w+)=(?:'([^']*)'|(\S+))")
_NUMBER_RE = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")
_BARE_LITERALS: dict[str, Any] = {"null": None, "true": True, "false": False}


def _resolve_policy(policy: ToolPolicy | None, policy_file: str | None) -> ToolPolicy:
    """Resolve the effective policy object for a call.

    Example:
        ```python
        policy = _resolve_policy(None, "/tmp/sfr.toml")
        ```
    """
    if policy is not None and policy_file is not None:
        raise ValueError("Provide either 'policy' or 'policy_file', not both")
    if policy is None and policy_file is not None:
        return ToolPolicy.from_file(policy_file)
    if policy is None:
        return ToolPolicy()
    return policy


def run_apex(
    code: str,
    runner: ProcessRunner,
    policy: ToolPolicy | None = None,
    policy_file: str | None = None,
    target_org: str | None = None,
) -> CommandResult:
    """Execute anonymous Apex delivered through a temporary file.

    Example:
        ```python
        from sf_cli_runner import run_apex, select_runner
        result = run_apex("System.debug('hello');", runner=select_runner())
        ```
    """
    resolved_policy = _resolve_policy(policy, policy_file)
    if not code.strip():
        return validation_failure("Apex code is required.")
    invocation = CommandInvocation(
        args=("apex", "run", "-f", PAYLOAD_PATH_TOKEN, "--json"),
        target_org=target_org or resolved_policy.target_org,
        timeout_seconds=resolved_policy.command_timeout,
        payload_text=code,
        payload_suffix=".apex",
    )
    return classify(execute(invocation, runner), OperationKind.APEX_RUN)


def run_query(
    soql: str,
    runner: ProcessRunner,
    policy: ToolPolicy | None = None,
    policy_file: str | None = None,
    target_org: str | None = None,
    all_rows: bool = False,
) -> CommandResult:
    """Run a SOQL query and return the decoded result set.

    Example:
        ```python
        result = run_query("SELECT Id, Name FROM Account LIMIT 5", runner=runner)
        ```
    """
    resolved_policy = _resolve_policy(policy, policy_file)
    if not soql.strip():
        return validation_failure("SOQL query is required.")
    args = ["data", "query", "--query", soql, "--json"]
    if all_rows:
        args.append("--all-rows")
    invocation = CommandInvocation(
        args=tuple(args),
        target_org=target_org or resolved_policy.target_org,
        timeout_seconds=resolved_policy.command_timeout,
    )
    return classify(execute(invocation, runner), OperationKind.QUERY)


def fetch_log(
    log_id: str,
    runner: ProcessRunner,
    policy: ToolPolicy | None = None,
    policy_file: str | None = None,
    target_org: str | None = None,
) -> CommandResult:
    """Download one debug log as raw text.

    Example:
        ```python
        result = fetch_log("07L5w00000abcdef", runner=runner)
        ```
    """
    resolved_policy = _resolve_policy(policy, policy_file)
    if not log_id.strip():
        return validation_failure("--log-id is required.")
    invocation = CommandInvocation(
        args=("apex", "get", "log", "--log-id", log_id.strip()),
        target_org=target_org or resolved_policy.target_org,
        timeout_seconds=resolved_policy.command_timeout,
    )
    return classify(execute(invocation, runner), OperationKind.TEXT)


def flatten_record(record: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten one query record for tabular display.

    Relationship traversals become dotted keys, subquery results collapse to
    a "[N records]" placeholder, compound fields are rendered as JSON.

    Example:
        ```python
        flat = flatten_record({"Id": "001", "Account": {"attributes": {}, "Name": "Acme"}})
        assert flat == {"Id": "001", "Account.Name": "Acme"}
        ```
    """
    flat: dict[str, Any] = {}
    for key, value in record.items():
        if key == "attributes":
            continue
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, Mapping):
            if "records" in value:
                flat[full_key] = f"[{len(value.get('records') or [])} records]"
            elif "attributes" in value:
                flat.update(flatten_record(value, full_key))
            else:
                flat[full_key] = json.dumps(value, separators=(",", ":"))
        else:
            flat[full_key] = value
    return flat


def parse_field_values(values: str) -> dict[str, Any]:
    """Parse `Field=value` pairs into a JSON-ready record body.

    Single-quoted values stay strings; bare `null`, `true`, `false` and
    numbers are converted.

    Example:
        ```python
        body = parse_field_values("Name='Acme Corp' AnnualRevenue=5000000 IsActive=true")
        assert body == {"Name": "Acme Corp", "AnnualRevenue": 5000000, "IsActive": True}
        ```
    """
    body: dict[str, Any] = {}
    for match in _FIELD_VALUE_RE.finditer(values):
        name, quoted, bare = match.groups()
        if quoted is not None:
            body[name] = quoted
        else:
            body[name] = _BARE_LITERALS.get(bare, _parse_number(bare))
    if not body:
        raise ValidationError(f'Could not parse any field=value pairs from: "{values}"')
    return body


def _parse_number(text: str) -> Any:
    """Return `text` as an int or float when it is numeric, else unchanged.

    Example:
        ```python
        assert _parse_number("2.5") == 2.5
        ```
    """
    if not _NUMBER_RE.fullmatch(text):
        return text
    return float(text) if "." in text else int(text)


def _record_invocation(
    args: list[str], resolved_policy: ToolPolicy, target_org: str | None
) -> CommandInvocation:
    """Wrap single-record command arguments with the policy's org and timeout.

    Example:
        ```python
        inv = _record_invocation(["sobject", "describe", "--sobject", "Account", "--json"], ToolPolicy(), None)
        ```
    """
    return CommandInvocation(
        args=tuple(args),
        target_org=target_org or resolved_policy.target_org,
        timeout_seconds=resolved_policy.command_timeout,
    )


def run_record_insert(
    sobject: str,
    values: str,
    runner: ProcessRunner,
    policy: ToolPolicy | None = None,
    policy_file: str | None = None,
    target_org: str | None = None,
) -> CommandResult:
    """Create one record from `Field=value` pairs.

    Example:
        ```python
        result = run_record_insert("Account", "Name='Acme Corp'", runner=runner)
        record_id = result.payload.get("id")
        ```
    """
    resolved_policy = _resolve_policy(policy, policy_file)
    if not sobject.strip():
        return validation_failure("Object name is required.")
    if not values.strip():
        return validation_failure("--values is required. Example: --values \"Name='Acme Corp' Industry='Technology'\"")
    args = ["data", "create", "record", "--sobject", sobject.strip(), "--values", values, "--json"]
    return classify(execute(_record_invocation(args, resolved_policy, target_org), runner), OperationKind.QUERY)


def run_record_update(
    sobject: str,
    record_id: str,
    values: str,
    runner: ProcessRunner,
    policy: ToolPolicy | None = None,
    policy_file: str | None = None,
    target_org: str | None = None,
) -> CommandResult:
    """Update one record by its 15 or 18 character Id.

    Example:
        ```python
        result = run_record_update("Account", "001xx000003DGbYAAW", "Industry='Finance'", runner=runner)
        ```
    """
    resolved_policy = _resolve_policy(policy, policy_file)
    if not sobject.strip():
        return validation_failure("Object name is required.")
    record_id = record_id.strip()
    if not record_id:
        return validation_failure("--record-id is required. Provide a 15 or 18-character Salesforce record Id.")
    if not _RECORD_ID_RE.fullmatch(record_id):
        return validation_failure(
            f'Invalid record Id: "{record_id}". Must be 15 or 18 alphanumeric characters.'
        )
    if not values.strip():
        return validation_failure("--values is required. Example: --values \"Industry='Finance'\"")
    args = [
        "data",
        "update",
        "record",
        "--sobject",
        sobject.strip(),
        "--record-id",
        record_id,
        "--values",
        values,
        "--json",
    ]
    return classify(execute(_record_invocation(args, resolved_policy, target_org), runner), OperationKind.QUERY)


def run_record_upsert(
    sobject: str,
    external_id_field: str,
    external_id_value: str,
    values: str,
    runner: ProcessRunner,
    policy: ToolPolicy | None = None,
    policy_file: str | None = None,
    target_org: str | None = None,
    api_version: str = DEFAULT_API_VERSION,
) -> CommandResult:
    """Insert or update one record matched on an external id field.

    The call goes through the REST API, so a match answers with an empty
    body and a new record with `{"id": ..., "created": true}`.

    Example:
        ```python
        result = run_record_upsert("Account", "External_Id__c", "EXT-001", "Name='Acme'", runner=runner)
        created = result.payload.get("created", False)
        ```
    """
    resolved_policy = _resolve_policy(policy, policy_file)
    sobject = sobject.strip()
    if not sobject:
        return validation_failure("Object name is required.")
    if not external_id_field.strip():
        return validation_failure(
            "--external-id is required. Provide the external ID field API name (e.g., External_Id__c)."
        )
    if not external_id_value:
        return validation_failure("--external-id-value is required. Provide the value to match on.")
    if not values.strip():
        return validation_failure("--values is required. Example: --values \"Name='Acme Corp' Industry='Technology'\"")
    try:
        body = parse_field_values(values)
    except ValidationError as exc:
        return validation_failure(str(exc))

    endpoint = (
        f"/services/data/{api_version or DEFAULT_API_VERSION}/sobjects/{sobject}/"
        f"{external_id_field.strip()}/{quote(external_id_value, safe='')}"
    )
    args = ["api", "request", "rest", "--method", "PATCH", "--url", endpoint, "--body", json.dumps(body)]
    logger.debug("Upserting %s via PATCH %s", sobject, endpoint)
    return classify(execute(_record_invocation(args, resolved_policy, target_org), runner), OperationKind.REST)


def run_describe(
    sobject: str,
    runner: ProcessRunner,
    policy: ToolPolicy | None = None,
    policy_file: str | None = None,
    target_org: str | None = None,
) -> CommandResult:
    """Fetch the schema metadata of one object.

    Example:
        ```python
        result = run_describe("Account", runner=runner)
        fields = result.payload["fields"]
        ```
    """
    resolved_policy = _resolve_policy(policy, policy_file)
    if not sobject.strip():
        return validation_failure("Object name is required.")
    args = ["sobject", "describe", "--sobject", sobject.strip(), "--json"]
    return classify(execute(_record_invocation(args, resolved_policy, target_org), runner), OperationKind.QUERY)


def sorted_fields(describe: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Return the described fields ordered by API name.

    Example:
        ```python
        names = [f["name"] for f in sorted_fields({"fields": [{"name": "Name"}, {"name": "Id"}]})]
        assert names == ["Id", "Name"]
        ```
    """
    fields = [item for item in describe.get("fields") or [] if isinstance(item, Mapping)]
    return sorted(fields, key=lambda item: str(item.get("name") or ""))


def find_field(describe: Mapping[str, Any], name: str) -> Mapping[str, Any] | None:
    """Look up one described field by API name, ignoring case.

    Example:
        ```python
        field = find_field({"fields": [{"name": "Industry"}]}, "industry")
        ```
    """
    wanted = name.strip().lower()
    for item in sorted_fields(describe):
        if str(item.get("name") or "").lower() == wanted:
            return item
    return None


def relationship_fields(describe: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Return the lookup and master-detail fields of a described object.

    Example:
        ```python
        refs = relationship_fields({"fields": [{"name": "OwnerId", "referenceTo": ["User"]}]})
        ```
    """
    return [item for item in sorted_fields(describe) if item.get("referenceTo")]


def child_relationships(describe: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Return child relationships ordered by child object name.

    Example:
        ```python
        children = child_relationships({"childRelationships": [{"childSObject": "Contact"}]})
        ```
    """
    children = [item for item in describe.get("childRelationships") or [] if isinstance(item, Mapping)]
    return sorted(children, key=lambda item: str(item.get("childSObject") or ""))
