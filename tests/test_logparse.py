from sf_cli_runner import LogRecord, UsageCounter, extract_debug_lines, extract_usage_stats
from sf_cli_runner.logparse import format_size, parse_debug_line

LOG = """59.0 APEX_CODE,FINEST;APEX_PROFILING,INFO
12:00:00.1 (1000)|EXECUTION_STARTED
12:00:00.1 (2000)|USER_DEBUG|[1]|DEBUG|first
12:00:00.1 (3000)|USER_DEBUG|[4]|WARN|second | with pipe
12:00:00.1 (4000)|HEAP_ALLOCATE|[72]|Bytes:3
12:00:00.1 (5000)|HEAP_ALLOCATE|[80]|Bytes:52
  Number of SOQL queries: 2 out of 100
  Number of DML statements: 1 out of 150
"""


def test_extract_debug_lines_in_order() -> None:
    assert list(extract_debug_lines(LOG)) == [
        LogRecord(line=1, level="DEBUG", message="first"),
        LogRecord(line=4, level="WARN", message="second | with pipe"),
    ]


def test_parse_debug_line_rejects_other_events() -> None:
    assert parse_debug_line("12:00:00.1 (1000)|EXECUTION_STARTED") is None


def test_usage_stats_use_first_heap_allocation() -> None:
    assert extract_usage_stats(LOG) == [
        UsageCounter("SOQL Queries", used=2, limit=100),
        UsageCounter("DML Statements", used=1, limit=150),
        UsageCounter("Heap", byte_count=3),
    ]


def test_usage_stats_omit_absent_counters() -> None:
    assert extract_usage_stats("nothing interesting") == []


def test_render_helpers() -> None:
    assert LogRecord(7, "DEBUG", "hello").render() == "[Line 7] DEBUG: hello"
    assert UsageCounter("Heap", byte_count=1234567).render() == "Heap: 1,234,567 bytes"
    assert format_size(0) == "0 B"
    assert format_size(512) == "512 B"
    assert format_size(2048) == "2.0 KB"
    assert format_size(3 * 1024 * 1024) == "3.0 MB"
