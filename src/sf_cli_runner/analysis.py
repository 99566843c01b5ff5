from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any

from .logparse import LogRecord, parse_debug_line

TRUNCATION_MARKER = "MAXIMUM DEBUG LOG SIZE REACHED"
WARNING_PCT = 70
CRITICAL_PCT = 90
SOQL_LOOKAHEAD_LINES = 20

_SOQL_BEGIN = re.compile(r"\|SOQL_EXECUTE_BEGIN\|\[(\d+)\]\|.*?Aggregations:(\d+)\|(.*)")
_SOQL_END = re.compile(r"\|SOQL_EXECUTE_END\|\[(\d+)\]\|Rows:(\d+)")
_DML_BEGIN = re.compile(r"\|DML_BEGIN\|\[(\d+)\]\|Op:(\w+)\|Type:(\w+)\|Rows:(\d+)")
_CODE_UNIT = re.compile(r"\|CODE_UNIT_STARTED\|\[.*?\]\|(.+)")
_LOOP_STATEMENT = re.compile(r"\bfor\b|\bwhile\b|\bdo\b", re.IGNORECASE)
_FATAL = re.compile(r"\|FATAL_ERROR\|(.*)")
_EXCEPTION = re.compile(r"\|EXCEPTION_THROWN\|\[(\d+)\]\|(.*)")
_LIMIT = re.compile(r"Number of ([\w\s]+):\s*(\d+)\s+out of\s+(\d+)")
_CPU = re.compile(r"Maximum CPU time:\s*(\d+)\s+out of\s+(\d+)")
_HEAP = re.compile(r"Maximum heap size:\s*(\d+)\s+out of\s+(\d+)")
_EXEC_START = re.compile(r"^([\d:.]+)\s*\((\d+)\)\|EXECUTION_STARTED")
_EXEC_END = re.compile(r"^([\d:.]+)\s*\((\d+)\)\|EXECUTION_FINISHED")


@dataclass(frozen=True, slots=True)
class LimitUsage:
    """Governor limit consumption.

    Example:
        ```python
        usage = LimitUsage.of(75, 100)
        ```
    """

    used: int
    max: int
    pct: int

    @classmethod
    def of(cls, used: int, maximum: int) -> "LimitUsage":
        """Build a usage entry, rounding the percentage half up.

        Example:
            ```python
            assert LimitUsage.of(1, 3).pct == 33
            ```
        """
        pct = int(used * 100 / maximum + 0.5) if maximum > 0 else 0
        return cls(used=used, max=maximum, pct=pct)

    @property
    def severity(self) -> str | None:
        """Return "CRITICAL", "WARNING" or None for this usage level.

        Example:
            ```python
            assert LimitUsage.of(95, 100).severity == "CRITICAL"
            ```
        """
        if self.pct >= CRITICAL_PCT:
            return "CRITICAL"
        if self.pct >= WARNING_PCT:
            return "WARNING"
        return None


@dataclass(frozen=True, slots=True)
class SoqlQuery:
    """One SOQL_EXECUTE_BEGIN record with its row count.

    Example:
        ```python
        query = SoqlQuery(line=12, aggregations=0, query="SELECT Id FROM Account", rows=3, in_loop=False)
        ```
    """

    line: int
    aggregations: int
    query: str
    rows: int
    in_loop: bool


@dataclass(frozen=True, slots=True)
class DmlOperation:
    """One DML_BEGIN record.

    Example:
        ```python
        dml = DmlOperation(line=20, operation="Insert", sobject_type="Account", rows=1, in_loop=False)
        ```
    """

    line: int
    operation: str
    sobject_type: str
    rows: int
    in_loop: bool


@dataclass(frozen=True, slots=True)
class LogError:
    """An exception or fatal error found in the log.

    Example:
        ```python
        error = LogError(kind="FATAL_ERROR", message="System.LimitException: Too many SOQL queries: 101")
        ```
    """

    kind: str
    message: str
    line: int | None = None


@dataclass(slots=True)
class LogAnalysis:
    """Everything extracted from one debug log.

    Example:
        ```python
        analysis = analyze_log(text)
        print(analysis.warnings())
        ```
    """

    governor_limits: dict[str, LimitUsage] = field(default_factory=dict)
    soql_queries: list[SoqlQuery] = field(default_factory=list)
    dml_operations: list[DmlOperation] = field(default_factory=list)
    debug_output: list[LogRecord] = field(default_factory=list)
    errors: list[LogError] = field(default_factory=list)
    code_units: list[str] = field(default_factory=list)
    execution_time_ms: int | None = None
    truncated: bool = False

    @property
    def soql_in_loop(self) -> int:
        """Number of queries issued while inside a loop.

        Example:
            ```python
            count = analysis.soql_in_loop
            ```
        """
        return sum(1 for query in self.soql_queries if query.in_loop)

    @property
    def dml_in_loop(self) -> int:
        """Number of DML statements issued while inside a loop.

        Example:
            ```python
            count = analysis.dml_in_loop
            ```
        """
        return sum(1 for dml in self.dml_operations if dml.in_loop)

    @property
    def unique_code_units(self) -> list[str]:
        """Code units in first-seen order without duplicates.

        Example:
            ```python
            units = analysis.unique_code_units
            ```
        """
        return list(dict.fromkeys(self.code_units))

    def warnings(self) -> list[str]:
        """Human-readable warnings, most structural first.

        Example:
            ```python
            for warning in analysis.warnings():
                print(warning)
            ```
        """
        found: list[str] = []
        if self.soql_in_loop:
            found.append("SOQL queries inside loops detected")
        if self.dml_in_loop:
            found.append("DML operations inside loops detected")
        if self.truncated:
            found.append("Log was truncated, results may be incomplete")
        for name, usage in self.governor_limits.items():
            if usage.severity:
                found.append(f"{name} at {usage.pct}% ({usage.severity})")
        if self.errors:
            found.append(f"{len(self.errors)} error(s) found")
        return found

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly view.

        Example:
            ```python
            payload = analysis.to_dict()
            ```
        """
        return {
            "governorLimits": {name: asdict(usage) for name, usage in self.governor_limits.items()},
            "soqlQueries": [asdict(query) for query in self.soql_queries],
            "dmlOperations": [asdict(dml) for dml in self.dml_operations],
            "debugOutput": [asdict(record) for record in self.debug_output],
            "errors": [asdict(error) for error in self.errors],
            "codeUnits": self.code_units,
            "executionTime": self.execution_time_ms,
            "isTruncated": self.truncated,
        }


def _soql_rows(lines: list[str], start: int) -> int:
    """Find the row count reported by the SOQL_EXECUTE_END after `start`.

    Example:
        ```python
        rows = _soql_rows(lines, index)
        ```
    """
    for candidate in lines[start + 1 : start + SOQL_LOOKAHEAD_LINES]:
        end = _SOQL_END.search(candidate)
        if end:
            return int(end.group(2))
    return 0


def analyze_log(log_text: str) -> LogAnalysis:
    """Parse a full debug log into limits, queries, DML, debug output and errors.

    Loop detection is heuristic: a STATEMENT_EXECUTE mentioning a loop keyword
    or an ITERATION_BEGIN event opens a loop, ITERATION_END closes one.

    Example:
        ```python
        analysis = analyze_log(Path("debug.log").read_text(encoding="utf-8"))
        ```
    """
    analysis = LogAnalysis(truncated=TRUNCATION_MARKER in log_text)
    lines = log_text.splitlines()
    loop_depth = 0
    exec_start: int | None = None

    for idx, line in enumerate(lines):
        record = parse_debug_line(line)
        if record is not None:
            analysis.debug_output.append(record)
            continue

        soql = _SOQL_BEGIN.search(line)
        if soql:
            analysis.soql_queries.append(
                SoqlQuery(
                    line=int(soql.group(1)),
                    aggregations=int(soql.group(2)),
                    query=soql.group(3),
                    rows=_soql_rows(lines, idx),
                    in_loop=loop_depth > 0,
                )
            )
            continue

        dml = _DML_BEGIN.search(line)
        if dml:
            analysis.dml_operations.append(
                DmlOperation(
                    line=int(dml.group(1)),
                    operation=dml.group(2),
                    sobject_type=dml.group(3),
                    rows=int(dml.group(4)),
                    in_loop=loop_depth > 0,
                )
            )
            continue

        unit = _CODE_UNIT.search(line)
        if unit:
            analysis.code_units.append(unit.group(1))
            continue

        if "|STATEMENT_EXECUTE|" in line and _LOOP_STATEMENT.search(line):
            loop_depth += 1
        if "|ITERATION_BEGIN|" in line:
            loop_depth = max(1, loop_depth)
        if "|ITERATION_END|" in line:
            loop_depth = max(0, loop_depth - 1)

        fatal = _FATAL.search(line)
        if fatal:
            analysis.errors.append(LogError(kind="FATAL_ERROR", message=fatal.group(1)))
            continue

        exception = _EXCEPTION.search(line)
        if exception:
            analysis.errors.append(
                LogError(kind="EXCEPTION", message=exception.group(2), line=int(exception.group(1)))
            )
            continue

        limit = _LIMIT.search(line)
        if limit:
            analysis.governor_limits[limit.group(1).strip()] = LimitUsage.of(
                int(limit.group(2)), int(limit.group(3))
            )
            continue

        cpu = _CPU.search(line)
        if cpu:
            analysis.governor_limits["CPU time (ms)"] = LimitUsage.of(int(cpu.group(1)), int(cpu.group(2)))
            continue

        heap = _HEAP.search(line)
        if heap:
            analysis.governor_limits["Heap size (bytes)"] = LimitUsage.of(
                int(heap.group(1)), int(heap.group(2))
            )
            continue

        started = _EXEC_START.search(line)
        if started:
            exec_start = int(started.group(2))
            continue

        finished = _EXEC_END.search(line)
        if finished and exec_start is not None:
            analysis.execution_time_ms = round((int(finished.group(2)) - exec_start) / 1_000_000)

    return analysis
