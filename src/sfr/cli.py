from __future__ import annotations

import argparse
import logging
from functools import partial
from pathlib import Path
from typing import Any, Never, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table
from rich_argparse import RawTextRichHelpFormatter
from sf_cli_runner import (
    ApexRun,
    BulkPlan,
    BulkRequest,
    CommandResult,
    CompileProblem,
    JobDescriptor,
    ResultCategory,
    RuntimeProblem,
    ToolPolicy,
    ValidationError,
    analyze_log,
    fetch_log,
    prepare_bulk,
    run_apex,
    run_describe,
    run_query,
    run_record_insert,
    run_record_update,
    run_record_upsert,
    select_runner,
    submit_bulk_job,
)
from sf_cli_runner.analysis import LogAnalysis
from sf_cli_runner.bulk import BulkOperation
from sf_cli_runner.execution.engine import ProcessRunner
from sf_cli_runner.logparse import format_size
from sf_cli_runner.runner import (
    DEFAULT_API_VERSION,
    child_relationships,
    find_field,
    flatten_record,
    relationship_fields,
    sorted_fields,
)

_CONSOLE = Console(no_color=False)
_LOG_CONSOLE = Console(stderr=True)
_MAX_COLUMN_WIDTH = 50
_BAR_WIDTH = 20
_RECORD_TITLES = {"insert": "Record Created", "update": "Record Updated", "upsert": "Record Upserted"}


class _CLIHelpFormatter(RawTextRichHelpFormatter):
    """Rich formatter with explicit high-contrast CLI styles.

    Example:
        ```python
        parser = argparse.ArgumentParser(formatter_class=_CLIHelpFormatter)
        ```
    """

    styles = {
        "argparse.args": "bold cyan",
        "argparse.groups": "bold magenta",
        "argparse.help": "white",
        "argparse.metavar": "bold yellow",
        "argparse.prog": "bold bright_blue",
        "argparse.syntax": "bold bright_white",
        "argparse.text": "bright_white",
    }


_HELP_FORMATTER = partial(
    _CLIHelpFormatter,
    max_help_position=34,
    width=120,
)


class _RichArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that renders errors via Rich and exits with status 1.

    Example:
        ```python
        parser = _RichArgumentParser(prog="sfr")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {escape(message)}", border_style="red"))
        self.print_usage()
        raise SystemExit(1)


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser for sf command helpers.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="sfr",
        description=(
            "sf-cli-runner CLI\n"
            "Run Salesforce CLI commands and normalize their output.\n"
            "Exit code is 0 on success (including partial bulk success) and 1 on any failure."
        ),
        epilog=(
            "Quick Examples:\n"
            "  sfr apex \"System.debug('Hello World');\"\n"
            "  sfr query \"SELECT Id, Name FROM Account LIMIT 10\"\n"
            "  sfr bulk Account --file accounts.csv\n"
            "  sfr bulk Account -f accounts.csv --operation upsert -e External_Id__c\n"
            "  sfr record insert Account -v \"Name='Acme Corp'\"\n"
            "  sfr describe Account --fields-only\n"
            "  sfr log analyze --file ./debug.log"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument(
        "--config",
        help="Path to a policy TOML file (default: bundled default_policy.toml).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log command lines, timings and temp file handling to stderr.",
    )

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    apex_cmd = sub.add_parser(
        "apex",
        help="Execute anonymous Apex.",
        description=(
            "Execute anonymous Apex against an org.\n"
            "The code is written to a temporary file that is always removed afterwards."
        ),
        epilog=(
            "Examples:\n"
            "  sfr apex \"System.debug('Hello World');\"\n"
            "  sfr apex --file script.apex -o myDevOrg"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    apex_cmd.add_argument("code", nargs="?", help="Apex code to execute.")
    apex_cmd.add_argument("--file", "-f", help="Read the Apex code from a file instead.")
    apex_cmd.add_argument("--target-org", "-o", help="Target org alias or username.")
    apex_cmd.add_argument("--json", action="store_true", help="Output the decoded sf CLI result as JSON.")

    bulk_cmd = sub.add_parser(
        "bulk",
        help="Bulk insert, upsert, or update records from a CSV file.",
        description=(
            "Bulk insert, upsert, or update records from a CSV file.\n"
            "Shows a preview first; datasets above the confirmation threshold need --yes or a prompt answer."
        ),
        epilog=(
            "Examples:\n"
            "  sfr bulk Account --file accounts.csv\n"
            "  sfr bulk Account --file accounts.csv --operation upsert -e External_Id__c\n"
            "  sfr bulk Contact --file contacts.csv --operation update\n"
            "  sfr bulk Account --file accounts.csv --wait 20 -o myOrg"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    bulk_cmd.add_argument("sobject", help="Object API name, e.g. Account.")
    bulk_cmd.add_argument("--file", "-f", help="Path to the CSV file (required).")
    bulk_cmd.add_argument(
        "--operation",
        default=BulkOperation.INSERT.value,
        choices=[op.value for op in BulkOperation],
        help="insert | upsert | update (default: insert).",
    )
    bulk_cmd.add_argument(
        "--external-id",
        "-e",
        help="External ID field for upsert (default: Id for update).",
    )
    bulk_cmd.add_argument("--wait", "-w", help="Minutes to wait for job completion (default: 10).")
    bulk_cmd.add_argument("--target-org", "-o", help="Target org alias or username.")
    bulk_cmd.add_argument("--json", action="store_true", help="Output the decoded sf CLI result as JSON.")
    bulk_cmd.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Skip the confirmation prompt for large datasets.",
    )

    query_cmd = sub.add_parser(
        "query",
        help="Run a SOQL query.",
        description="Run a standard SOQL query and render the records as a table.",
        epilog=(
            "Examples:\n"
            "  sfr query \"SELECT Id, Name FROM Account LIMIT 10\"\n"
            "  sfr query \"SELECT Id, Account.Name FROM Contact\" -o myOrg --json"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    query_cmd.add_argument("soql", help="SOQL query text.")
    query_cmd.add_argument("--target-org", "-o", help="Target org alias or username.")
    query_cmd.add_argument("--json", action="store_true", help="Output the decoded sf CLI result as JSON.")
    query_cmd.add_argument("--all-rows", action="store_true", help="Include deleted and archived records.")

    record_cmd = sub.add_parser(
        "record",
        help="Insert, update, or upsert a single record.",
        description="Single-record DML. Values are space-separated Field=value pairs; quote text with single quotes.",
        formatter_class=_HELP_FORMATTER,
    )
    record_sub = record_cmd.add_subparsers(
        dest="action",
        required=True,
        parser_class=_RichArgumentParser,
    )
    insert_cmd = record_sub.add_parser(
        "insert",
        help="Create one record.",
        description="Create one record and print its Id.",
        epilog=(
            "Examples:\n"
            "  sfr record insert Account -v \"Name='Acme Corp' Industry='Technology'\"\n"
            "  sfr record insert Contact -v \"LastName='Smith' Email='smith@example.com'\" -o myOrg"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    update_cmd = record_sub.add_parser(
        "update",
        help="Update one record by Id.",
        description="Update one record identified by its 15 or 18 character Id.",
        epilog=(
            "Examples:\n"
            "  sfr record update Account -i 001xx000003DGbYAAW -v \"Industry='Finance'\""
        ),
        formatter_class=_HELP_FORMATTER,
    )
    update_cmd.add_argument("--record-id", "-i", help="Record Id to update (required).")
    upsert_cmd = record_sub.add_parser(
        "upsert",
        help="Insert or update one record matched on an external id.",
        description=(
            "Upsert one record through the REST API.\n"
            "Inserts when no record matches the external id value, updates otherwise."
        ),
        epilog=(
            "Examples:\n"
            "  sfr record upsert Account -e External_Id__c -x EXT-001 -v \"Name='Acme Corp'\"\n"
            "  sfr record upsert Contact -e Email -x smith@example.com -v \"LastName='Smith'\" --json"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    upsert_cmd.add_argument("--external-id", "-e", help="External ID field API name (required).")
    upsert_cmd.add_argument("--external-id-value", "-x", help="Value to match on the external ID field (required).")
    upsert_cmd.add_argument(
        "--api-version",
        default=DEFAULT_API_VERSION,
        help=f"REST API version (default: {DEFAULT_API_VERSION}).",
    )
    for record_action in (insert_cmd, update_cmd, upsert_cmd):
        record_action.add_argument("sobject", help="Object API name, e.g. Account.")
        record_action.add_argument("--values", "-v", default="", help="Field=value pairs (required).")
        record_action.add_argument("--target-org", "-o", help="Target org alias or username.")
        record_action.add_argument("--json", action="store_true", help="Output the decoded sf CLI result as JSON.")

    describe_cmd = sub.add_parser(
        "describe",
        help="Describe an object's fields and relationships.",
        description="Show object metadata, the field list, one field in detail, or relationships.",
        epilog=(
            "Examples:\n"
            "  sfr describe Account\n"
            "  sfr describe Account --fields-only\n"
            "  sfr describe Contact --field Email\n"
            "  sfr describe Opportunity --relationships -o myOrg"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    describe_cmd.add_argument("sobject", help="Object API name, e.g. Account.")
    describe_view = describe_cmd.add_mutually_exclusive_group()
    describe_view.add_argument("--fields-only", action="store_true", help="Show only the field table.")
    describe_view.add_argument("--field", "-f", help="Show one field in detail.")
    describe_view.add_argument("--relationships", action="store_true", help="Show only relationship fields.")
    describe_cmd.add_argument("--target-org", "-o", help="Target org alias or username.")
    describe_cmd.add_argument("--json", action="store_true", help="Output the decoded sf CLI result as JSON.")

    log_cmd = sub.add_parser(
        "log",
        help="Work with Apex debug logs.",
        description="Debug log helpers.",
        formatter_class=_HELP_FORMATTER,
    )
    log_sub = log_cmd.add_subparsers(
        dest="action",
        required=True,
        parser_class=_RichArgumentParser,
    )
    analyze_cmd = log_sub.add_parser(
        "analyze",
        help="Analyze a debug log for limits, SOQL/DML, errors, and debug output.",
        description=(
            "Analyze a debug log for governor limits, SOQL/DML, errors, and performance.\n"
            "One of --log-id or --file is required."
        ),
        epilog=(
            "Examples:\n"
            "  sfr log analyze --log-id 07L5w00000abcdef\n"
            "  sfr log analyze --file ./debug.log --json"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    source = analyze_cmd.add_mutually_exclusive_group()
    source.add_argument("--log-id", "-i", help="Fetch and analyze a log by id.")
    source.add_argument("--file", "-f", help="Analyze a log from a local file.")
    analyze_cmd.add_argument("--target-org", "-o", help="Target org alias or username (with --log-id).")
    analyze_cmd.add_argument("--json", action="store_true", help="Output the analysis as JSON.")

    return parser


def _configure_logging(verbose: bool) -> None:
    """Route package log records to stderr through Rich.

    Example:
        ```python
        _configure_logging(verbose=True)
        ```
    """
    package_logger = logging.getLogger("sf_cli_runner")
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(handler, RichHandler) for handler in package_logger.handlers):
        package_logger.addHandler(RichHandler(console=_LOG_CONSOLE, show_path=False))


def _load_policy(config_path: str | None) -> ToolPolicy:
    """Load the policy file named on the command line, or the defaults.

    Example:
        ```python
        policy = _load_policy(None)
        ```
    """
    if config_path:
        return ToolPolicy.from_file(config_path)
    return ToolPolicy()


def _print_error(message: str) -> None:
    """Render a red error panel.

    Example:
        ```python
        _print_error("--file is required.")
        ```
    """
    _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {escape(message)}", border_style="red"))


def _print_failure(result: CommandResult, title: str) -> None:
    """Render a classified failure with its remediation hint.

    Example:
        ```python
        _print_failure(result, "Query Failed")
        ```
    """
    lines = [f"[bold]{escape(result.message or result.category.value)}[/bold]"]
    if result.hint:
        lines.append(escape(result.hint))
    _CONSOLE.print(Panel.fit("\n".join(lines), title=title, border_style="red"))


def _print_json(result: CommandResult) -> int:
    """Print the decoded tool data, or the classification when there is none.

    Example:
        ```python
        code = _print_json(result)
        ```
    """
    if result.data is not None:
        _CONSOLE.print_json(data=result.data, default=str)
    else:
        _CONSOLE.print_json(
            data={"category": result.category.value, "message": result.message, "hint": result.hint}
        )
    return result.exit_code


def _print_lines(title: str, lines: Sequence[str]) -> None:
    """Print a titled, indented list; nothing when the list is empty.

    Example:
        ```python
        _print_lines("Debug Output:", ["[1] DEBUG: hello"])
        ```
    """
    if not lines:
        return
    _CONSOLE.print()
    _CONSOLE.print(f"[bold]{escape(title)}[/bold]")
    for line in lines:
        _CONSOLE.print(f"  {escape(line)}", soft_wrap=True)


def _run_apex_command(args: argparse.Namespace, policy: ToolPolicy, runner: ProcessRunner) -> int:
    """Handle `sfr apex`.

    Example:
        ```python
        code = _run_apex_command(args, policy, runner)
        ```
    """
    if args.code and args.file:
        _print_error("Provide Apex code or --file, not both.")
        return 1
    code = args.code or ""
    if args.file:
        try:
            code = Path(args.file).read_text(encoding="utf-8")
        except OSError as exc:
            _print_error(f"Failed to read file: {args.file} ({exc.strerror or exc})")
            return 1
    if not code.strip():
        _print_error('Apex code is required. Usage: sfr apex "<Apex code>"')
        return 1

    result = run_apex(code, runner=runner, policy=policy, target_org=args.target_org)
    if args.json:
        return _print_json(result)

    _CONSOLE.print(Panel(escape(code.rstrip()), title="Anonymous Apex", border_style="cyan"))
    if result.category is ResultCategory.COMPILE_FAILURE:
        problem: CompileProblem = result.payload
        lines = ["[bold red]RESULT: Compilation Failed[/bold red]", f"Error: {escape(problem.message)}"]
        if problem.line is not None:
            lines.append(f"Line: {problem.line}, Column: {problem.column}")
        _CONSOLE.print(Panel.fit("\n".join(lines), border_style="red"))
    elif result.category is ResultCategory.RUNTIME_FAILURE:
        runtime: RuntimeProblem = result.payload
        _CONSOLE.print(
            Panel.fit(
                f"[bold red]RESULT: Runtime Error[/bold red]\nException: {escape(runtime.message)}",
                border_style="red",
            )
        )
        if runtime.stack_trace:
            _print_lines("Stack Trace:", runtime.stack_trace.splitlines())
        _print_lines("Debug Output (before error):", [record.render() for record in runtime.debug_lines])
    elif result.category is ResultCategory.SUCCESS:
        run: ApexRun = result.payload
        _CONSOLE.print(Panel.fit("[bold green]RESULT: Execution Successful[/bold green]", border_style="green"))
        _print_lines("Debug Output:", [record.render() for record in run.debug_lines])
        _print_lines("Execution Stats:", [counter.render() for counter in run.usage])
    else:
        _print_failure(result, "Anonymous Apex Failed")
    return result.exit_code


def _print_preview(plan: BulkPlan, target_org: str | None) -> None:
    """Render the bulk summary and CSV sample.

    Example:
        ```python
        _print_preview(plan, None)
        ```
    """
    sample = plan.sample
    _CONSOLE.print(f"[bold]Bulk {plan.operation.value}: {escape(plan.sobject)}[/bold]")
    _CONSOLE.print(f"File: {escape(plan.csv_path)}", soft_wrap=True)
    _CONSOLE.print(f"Rows: {sample.total_rows} (showing first {len(sample.rows)})")
    if plan.external_id:
        _CONSOLE.print(f"External ID: {escape(plan.external_id)}")
    if target_org:
        _CONSOLE.print(f"Target Org: {escape(target_org)}")
    table = Table(title="CSV Preview")
    for name in sample.header:
        table.add_column(escape(name), overflow="fold")
    for row in sample.rows:
        table.add_row(*(escape(value) for value in row))
    _CONSOLE.print(table)
    if sample.remaining:
        _CONSOLE.print(f"  ... ({sample.remaining} more rows)")


def _print_job(job: JobDescriptor, plan: BulkPlan) -> None:
    """Render the terminal job description and per-record failures.

    Example:
        ```python
        _print_job(result.payload, plan)
        ```
    """
    table = Table(title="Bulk Job Result", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Job ID", escape(job.job_id))
    table.add_row("Operation", plan.operation.value)
    table.add_row("Object", escape(plan.sobject))
    table.add_row("Status", escape(job.remote_state or job.state.value))
    table.add_row("Records Processed", "N/A" if job.records_processed is None else str(job.records_processed))
    table.add_row("Records Failed", "N/A" if job.records_failed is None else str(job.records_failed))
    _CONSOLE.print(table)
    _print_lines("Failed Records:", [failure.message for failure in job.failures])


def _run_bulk_command(args: argparse.Namespace, policy: ToolPolicy, runner: ProcessRunner) -> int:
    """Handle `sfr bulk`.

    Example:
        ```python
        code = _run_bulk_command(args, policy, runner)
        ```
    """
    request = BulkRequest(
        sobject=args.sobject,
        csv_path=args.file or "",
        operation=args.operation,
        external_id=args.external_id,
        wait_minutes=args.wait,
        target_org=args.target_org,
    )
    try:
        plan = prepare_bulk(request, policy)
    except ValidationError as exc:
        _print_error(str(exc))
        return 1

    target_org = args.target_org or policy.target_org
    if not args.json:
        _print_preview(plan, target_org)
    if plan.requires_confirmation and not args.yes:
        prompt = (
            f"{plan.sample.total_rows} rows exceed the {policy.large_dataset_threshold}-row safety "
            f"threshold. Run bulk {plan.operation.value} on {plan.sobject}?"
        )
        # Keep stdout parseable when --json is set.
        prompt_console = _LOG_CONSOLE if args.json else _CONSOLE
        if not Confirm.ask(prompt, console=prompt_console, default=False):
            _print_error("Aborted by user; no records were submitted.")
            return 1

    if not args.json:
        _CONSOLE.print("Submitting bulk job...")
    result = submit_bulk_job(plan, runner)
    if args.json:
        return _print_json(result)

    if isinstance(result.payload, JobDescriptor) and result.category is not ResultCategory.TRANSPORT_FAILURE:
        _print_job(result.payload, plan)
    if result.category is ResultCategory.PARTIAL_BATCH_FAILURE:
        _CONSOLE.print(f"[bold yellow]{escape(result.message or 'Some records failed')}[/bold yellow]")
    elif not result.ok:
        _print_failure(result, "Bulk Job Failed")
        _CONSOLE.print(
            f"Object: {escape(plan.sobject)}, File: {escape(plan.csv_path)}, Operation: {plan.operation.value}",
            soft_wrap=True,
        )
    return result.exit_code


def _format_value(value: Any) -> str:
    """Render one query cell.

    Example:
        ```python
        assert _format_value(True) == "true"
        ```
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _run_query_command(args: argparse.Namespace, policy: ToolPolicy, runner: ProcessRunner) -> int:
    """Handle `sfr query`.

    Example:
        ```python
        code = _run_query_command(args, policy, runner)
        ```
    """
    result = run_query(
        args.soql,
        runner=runner,
        policy=policy,
        target_org=args.target_org,
        all_rows=args.all_rows,
    )
    if args.json:
        return _print_json(result)
    if not result.ok:
        _print_failure(result, "Query Failed")
        _CONSOLE.print(f"Query was: {escape(args.soql)}", soft_wrap=True)
        return result.exit_code

    data = result.payload if isinstance(result.payload, dict) else {}
    records = data.get("records") or []
    total_size = data.get("totalSize", len(records))
    if not records:
        _CONSOLE.print("No records found.")
        _CONSOLE.print(f"Total Size: {total_size}")
        return 0

    flat_records = [flatten_record(record) for record in records]
    columns = list(dict.fromkeys(key for record in flat_records for key in record))
    table = Table()
    for column in columns:
        table.add_column(escape(column), max_width=_MAX_COLUMN_WIDTH, overflow="ellipsis")
    for record in flat_records:
        table.add_row(*(escape(_format_value(record.get(column))) for column in columns))
    _CONSOLE.print(table)
    _CONSOLE.print(f"Records returned: {len(records)}")
    _CONSOLE.print(f"Total size: {total_size}")
    if data.get("done") is False:
        _CONSOLE.print("Note: More records available (result set not complete).")
    return 0


def _run_record_command(args: argparse.Namespace, policy: ToolPolicy, runner: ProcessRunner) -> int:
    """Handle `sfr record insert|update|upsert`.

    Example:
        ```python
        code = _run_record_command(args, policy, runner)
        ```
    """
    if args.action == "insert":
        result = run_record_insert(
            args.sobject, args.values, runner=runner, policy=policy, target_org=args.target_org
        )
    elif args.action == "update":
        result = run_record_update(
            args.sobject,
            args.record_id or "",
            args.values,
            runner=runner,
            policy=policy,
            target_org=args.target_org,
        )
    else:
        result = run_record_upsert(
            args.sobject,
            args.external_id or "",
            args.external_id_value or "",
            args.values,
            runner=runner,
            policy=policy,
            target_org=args.target_org,
            api_version=args.api_version,
        )

    if result.category is ResultCategory.VALIDATION_FAILURE:
        _print_error(result.message or "Invalid input.")
        return result.exit_code
    if args.json:
        return _print_json(result)
    if not result.ok:
        _print_failure(result, f"Failed to {args.action} record")
        _CONSOLE.print(f"Object: {escape(args.sobject)}, Values: {escape(args.values)}", soft_wrap=True)
        return result.exit_code

    data = result.payload if isinstance(result.payload, dict) else {}
    record_id = data.get("id") or data.get("Id") or args.record_id or "N/A"
    table = Table(title=_RECORD_TITLES[args.action], show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    if args.action == "upsert":
        table.add_row("Action", "Created" if data.get("created") is True else "Updated")
    table.add_row("Id", escape(str(record_id)))
    table.add_row("Object", escape(args.sobject))
    if args.action == "upsert":
        table.add_row("External ID", escape(f"{args.external_id} = '{args.external_id_value}'"))
    table.add_row("Values", escape(args.values))
    _CONSOLE.print(table)
    return 0


def _flag(value: Any) -> str:
    """Render a describe boolean the way the field tables show it.

    Example:
        ```python
        assert _flag(None) == "false"
        ```
    """
    return "true" if value else "false"


def _print_object_summary(data: dict[str, Any]) -> None:
    """Render the object-level describe properties and record types.

    Example:
        ```python
        _print_object_summary({"name": "Account", "label": "Account", "fields": []})
        ```
    """
    table = Table(title=f"{data.get('name') or 'Unknown'} ({data.get('label') or ''})", show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Label (Plural)", escape(str(data.get("labelPlural") or "")))
    table.add_row("Key Prefix", escape(str(data.get("keyPrefix") or "N/A")))
    for key in ("custom", "createable", "updateable", "deletable", "queryable", "searchable"):
        table.add_row(key.capitalize(), _flag(data.get(key)))
    record_types = [item for item in data.get("recordTypeInfos") or [] if isinstance(item, dict)]
    if record_types:
        names = []
        for info in record_types:
            marker = " (default)" if info.get("defaultRecordTypeMapping") else ""
            marker += " (inactive)" if info.get("active") is False else ""
            names.append(f"{info.get('name') or 'N/A'}{marker}")
        table.add_row("Record Types", escape(", ".join(names)))
    table.add_row("Total Fields", str(len(data.get("fields") or [])))
    _CONSOLE.print(table)


def _print_fields_table(data: dict[str, Any]) -> None:
    """Render every field sorted by API name.

    Example:
        ```python
        _print_fields_table({"fields": [{"name": "Id", "type": "id"}]})
        ```
    """
    fields = sorted_fields(data)
    table = Table(title=f"Fields ({len(fields)})")
    for column in ("Name", "Label", "Type", "Length", "Nillable", "Ref"):
        table.add_column(column, max_width=_MAX_COLUMN_WIDTH, overflow="ellipsis")
    for item in fields:
        table.add_row(
            escape(str(item.get("name") or "")),
            escape(str(item.get("label") or "")),
            escape(str(item.get("type") or "")),
            _format_value(item.get("length")),
            "Yes" if item.get("nillable") else "No",
            escape(", ".join(item.get("referenceTo") or [])),
        )
    _CONSOLE.print(table)


def _print_relationships(data: dict[str, Any]) -> None:
    """Render lookup fields and child relationships.

    Example:
        ```python
        _print_relationships({"name": "Contact", "fields": [], "childRelationships": []})
        ```
    """
    refs = relationship_fields(data)
    table = Table(title=f"Relationships on {data.get('name') or 'Unknown'} ({len(refs)} fields)")
    for column in ("Field", "Relationship", "References", "Type"):
        table.add_column(column)
    for item in refs:
        table.add_row(
            escape(str(item.get("name") or "")),
            escape(str(item.get("relationshipName") or "N/A")),
            escape(", ".join(item.get("referenceTo") or [])),
            escape(str(item.get("type") or "")),
        )
    _CONSOLE.print(table)

    children = child_relationships(data)
    if children:
        child_table = Table(title=f"Child Relationships ({len(children)})")
        for column in ("Child Object", "Relationship Name", "Field"):
            child_table.add_column(column)
        for child in children:
            child_table.add_row(
                escape(str(child.get("childSObject") or "N/A")),
                escape(str(child.get("relationshipName") or "N/A")),
                escape(str(child.get("field") or "N/A")),
            )
        _CONSOLE.print(child_table)


def _print_single_field(data: dict[str, Any], field_name: str) -> int:
    """Render one field in detail, or list the available names when it is missing.

    Example:
        ```python
        code = _print_single_field(describe_data, "Email")
        ```
    """
    item = find_field(data, field_name)
    if item is None:
        _print_error(f'Field "{field_name}" not found on {data.get("name") or "Unknown"}.')
        _print_lines(
            f"Available fields ({len(data.get('fields') or [])}):",
            [f"- {entry.get('name')}" for entry in sorted_fields(data)],
        )
        return 1

    def _or(key: str, fallback: str) -> str:
        """Return the field property as text, or the fallback when it is unset.

        Example:
            ```python
            label = _or("label", "")
            ```
        """
        value = item.get(key)
        return fallback if value is None else str(value)

    table = Table(title=f"Field: {item.get('name')}", show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Label", escape(_or("label", "")))
    table.add_row("Type", escape(_or("type", "")))
    for key in ("length", "precision", "scale"):
        table.add_row(key.capitalize(), escape(_or(key, "N/A")))
    for label, key in (
        ("Nillable", "nillable"),
        ("Createable", "createable"),
        ("Updateable", "updateable"),
        ("Unique", "unique"),
        ("External ID", "externalId"),
    ):
        table.add_row(label, _flag(item.get(key)))
    table.add_row("Default Value", escape(_or("defaultValue", "None")))
    table.add_row("Formula", escape(_or("calculatedFormula", "None")))
    table.add_row("Help Text", escape(_or("inlineHelpText", "None")))
    if item.get("referenceTo"):
        table.add_row("References", escape(", ".join(item["referenceTo"])))
        table.add_row("Relationship", escape(_or("relationshipName", "N/A")))
    _CONSOLE.print(table)

    picklist = []
    for entry in item.get("picklistValues") or []:
        marker = " (default)" if entry.get("defaultValue") else ""
        marker += " (inactive)" if entry.get("active") is False else ""
        picklist.append(f"- {entry.get('label') or entry.get('value') or ''}{marker}")
    _print_lines("Picklist Values:", picklist)
    return 0


def _run_describe_command(args: argparse.Namespace, policy: ToolPolicy, runner: ProcessRunner) -> int:
    """Handle `sfr describe`.

    Example:
        ```python
        code = _run_describe_command(args, policy, runner)
        ```
    """
    result = run_describe(args.sobject, runner=runner, policy=policy, target_org=args.target_org)
    if args.json:
        return _print_json(result)
    if not result.ok:
        _print_failure(result, f"Failed to describe object '{args.sobject}'")
        return result.exit_code

    data = result.payload if isinstance(result.payload, dict) else {}
    if args.field:
        return _print_single_field(data, args.field)
    if args.relationships:
        _print_relationships(data)
        return 0
    if not args.fields_only:
        _print_object_summary(data)
    _print_fields_table(data)
    return 0


def _make_bar(pct: int) -> str:
    """Draw a fixed-width text gauge.

    Example:
        ```python
        assert _make_bar(50) == "[##########..........]"
        ```
    """
    filled = max(0, min(_BAR_WIDTH, round(pct / 100 * _BAR_WIDTH)))
    return "[" + "#" * filled + "." * (_BAR_WIDTH - filled) + "]"


def _truncate(text: str, max_len: int) -> str:
    """Shorten text to `max_len` characters with a trailing ellipsis.

    Example:
        ```python
        assert _truncate("abcdef", 5) == "ab..."
        ```
    """
    return text if len(text) <= max_len else text[: max_len - 3] + "..."


def _print_analysis(analysis: LogAnalysis) -> None:
    """Render a log analysis as tables and sections.

    Example:
        ```python
        _print_analysis(analyze_log(text))
        ```
    """
    if analysis.truncated:
        _CONSOLE.print(
            "[yellow]WARNING:[/yellow] This log was truncated (exceeded 2 MB limit). Some data may be missing."
        )
    if analysis.execution_time_ms is not None:
        _CONSOLE.print(f"Execution Time: {analysis.execution_time_ms} ms")

    if analysis.governor_limits:
        table = Table(title="Governor Limits")
        table.add_column("Limit", style="cyan")
        table.add_column("Used", justify="right")
        table.add_column("Max", justify="right")
        table.add_column("Usage")
        for name, usage in analysis.governor_limits.items():
            marker = f" {usage.severity}" if usage.severity else ""
            table.add_row(
                escape(name),
                str(usage.used),
                str(usage.max),
                escape(f"{_make_bar(usage.pct)} {usage.pct}%{marker}"),
            )
        _CONSOLE.print(table)

    _print_lines(
        f"SOQL Queries ({len(analysis.soql_queries)}):",
        [
            f"{i}. [Line {q.line}] {q.rows} rows{' [IN LOOP!]' if q.in_loop else ''} {_truncate(q.query, 120)}"
            for i, q in enumerate(analysis.soql_queries, start=1)
        ],
    )
    _print_lines(
        f"DML Operations ({len(analysis.dml_operations)}):",
        [
            f"{i}. [Line {d.line}] {d.operation} on {d.sobject_type} ({d.rows} rows)"
            f"{' [IN LOOP!]' if d.in_loop else ''}"
            for i, d in enumerate(analysis.dml_operations, start=1)
        ],
    )
    _print_lines(
        f"System.debug() Output ({len(analysis.debug_output)}):",
        [record.render() for record in analysis.debug_output],
    )
    _print_lines(
        f"Errors ({len(analysis.errors)}):",
        [
            f"{e.kind} [Line {e.line}]: {e.message}" if e.line is not None else f"{e.kind}: {e.message}"
            for e in analysis.errors
        ],
    )
    units = analysis.unique_code_units
    _print_lines(f"Code Units Executed ({len(units)}):", units)

    summary = Table(title="Summary", show_header=False)
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value")
    soql_loops = f" ({analysis.soql_in_loop} in loops!)" if analysis.soql_in_loop else ""
    dml_loops = f" ({analysis.dml_in_loop} in loops!)" if analysis.dml_in_loop else ""
    summary.add_row("SOQL Queries", f"{len(analysis.soql_queries)}{soql_loops}")
    summary.add_row("DML Operations", f"{len(analysis.dml_operations)}{dml_loops}")
    summary.add_row("Debug Statements", str(len(analysis.debug_output)))
    summary.add_row("Errors", str(len(analysis.errors)))
    summary.add_row("Code Units", str(len(units)))
    _CONSOLE.print(summary)
    _print_lines("Warnings:", [f"! {warning}" for warning in analysis.warnings()])


def _run_log_analyze_command(args: argparse.Namespace, policy: ToolPolicy, runner: ProcessRunner) -> int:
    """Handle `sfr log analyze`.

    Example:
        ```python
        code = _run_log_analyze_command(args, policy, runner)
        ```
    """
    if not args.log_id and not args.file:
        _print_error("One of --log-id or --file is required. Use --help for usage.")
        return 1
    if args.file:
        try:
            log_text = Path(args.file).read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            _print_error(f"Failed to read file: {args.file} ({exc.strerror or exc})")
            return 1
        source = f"Source: {args.file}"
    else:
        result = fetch_log(args.log_id, runner=runner, policy=policy, target_org=args.target_org)
        if not result.ok:
            _print_failure(result, f"Failed to retrieve log: {args.log_id}")
            return result.exit_code
        log_text = str(result.payload)
        source = f"Log: {args.log_id}"

    if not log_text.strip():
        _print_error("Log content is empty.")
        return 1

    analysis = analyze_log(log_text)
    if args.json:
        _CONSOLE.print_json(data=analysis.to_dict())
        return 1 if analysis.errors else 0

    _CONSOLE.print(Panel.fit(f"{escape(source)}\nLog size: {format_size(len(log_text))}", title="Debug Log Analysis"))
    _print_analysis(analysis)
    return 1 if analysis.errors else 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `sfr` CLI command handler.

    Example:
        ```python
        code = main(["query", "SELECT Id FROM Account LIMIT 1"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    _configure_logging(args.verbose)
    try:
        policy = _load_policy(args.config)
    except (ValueError, OSError) as exc:
        _print_error(f"Invalid policy file: {exc}")
        return 1
    runner = select_runner(policy)

    if args.command == "apex":
        return _run_apex_command(args, policy, runner)
    if args.command == "bulk":
        return _run_bulk_command(args, policy, runner)
    if args.command == "query":
        return _run_query_command(args, policy, runner)
    if args.command == "record":
        return _run_record_command(args, policy, runner)
    if args.command == "describe":
        return _run_describe_command(args, policy, runner)
    if args.command == "log" and args.action == "analyze":
        return _run_log_analyze_command(args, policy, runner)

    parser.error("Unhandled command")


def run() -> None:
    """Console script entry point.

    Example:
        ```python
        run()
        ```
    """
    raise SystemExit(main())
