"""Line-oriented extraction of debug output and usage counters from Apex logs."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

DEBUG_PATTERN = re.compile(r"\|USER_DEBUG\|\[(\d+)\]\|(\w+)\|(.*)")
HEAP_PATTERN = re.compile(r"HEAP_ALLOCATE.*?Bytes:(\d+)")
DML_PATTERN = re.compile(r"Number of DML statements: (\d+) out of (\d+)")
SOQL_PATTERN = re.compile(r"Number of SOQL queries: (\d+) out of (\d+)")


@dataclass(frozen=True, slots=True)
class LogRecord:
    """One System.debug() entry.

    Example:
        ```python
        record = LogRecord(line=7, level="DEBUG", message="hello")
        ```
    """

    line: int
    level: str
    message: str

    def render(self) -> str:
        """Return the display form used by the CLI.

        Example:
            ```python
            assert LogRecord(7, "DEBUG", "hello").render() == "[Line 7] DEBUG: hello"
            ```
        """
        return f"[Line {self.line}] {self.level}: {self.message}"


@dataclass(frozen=True, slots=True)
class UsageCounter:
    """A named resource counter, either used/limit or a byte count.

    Example:
        ```python
        counter = UsageCounter(name="SOQL Queries", used=1, limit=100)
        ```
    """

    name: str
    used: int | None = None
    limit: int | None = None
    byte_count: int | None = None

    def render(self) -> str:
        """Return the display form used by the CLI.

        Example:
            ```python
            assert UsageCounter("Heap", byte_count=1234).render() == "Heap: 1,234 bytes"
            ```
        """
        if self.byte_count is not None:
            return f"{self.name}: {format_count(self.byte_count)} bytes"
        return f"{self.name}: {self.used}/{self.limit}"


def format_count(value: int) -> str:
    """Render an integer with thousands separators.

    Example:
        ```python
        assert format_count(1234567) == "1,234,567"
        ```
    """
    return f"{value:,}"


def format_size(size: int) -> str:
    """Render a byte size as B, KB or MB.

    Example:
        ```python
        assert format_size(2048) == "2.0 KB"
        ```
    """
    if size <= 0:
        return "0 B"
    units = ("B", "KB", "MB")
    index = 0
    value = float(size)
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    if value < 10:
        return f"{value:.1f} {units[index]}"
    return f"{round(value)} {units[index]}"


def parse_debug_line(line: str) -> LogRecord | None:
    """Parse a single USER_DEBUG log line, or return None.

    Example:
        ```python
        record = parse_debug_line("12:00:00.1 (1)|USER_DEBUG|[7]|DEBUG|hello")
        ```
    """
    match = DEBUG_PATTERN.search(line)
    if match is None:
        return None
    return LogRecord(line=int(match.group(1)), level=match.group(2), message=match.group(3))


def extract_debug_lines(log_text: str) -> Iterator[LogRecord]:
    """Yield debug records in log order.

    Example:
        ```python
        records = list(extract_debug_lines(logs))
        ```
    """
    for line in log_text.splitlines():
        record = parse_debug_line(line)
        if record is not None:
            yield record


def extract_usage_stats(log_text: str) -> list[UsageCounter]:
    """Collect SOQL, DML and heap counters; absent counters are omitted.

    Example:
        ```python
        stats = extract_usage_stats("Number of SOQL queries: 2 out of 100")
        ```
    """
    stats: list[UsageCounter] = []
    soql = SOQL_PATTERN.search(log_text)
    if soql:
        stats.append(UsageCounter("SOQL Queries", used=int(soql.group(1)), limit=int(soql.group(2))))
    dml = DML_PATTERN.search(log_text)
    if dml:
        stats.append(UsageCounter("DML Statements", used=int(dml.group(1)), limit=int(dml.group(2))))
    heap = HEAP_PATTERN.search(log_text)
    if heap:
        stats.append(UsageCounter("Heap", byte_count=int(heap.group(1))))
    return stats
