from sf_cli_runner import analyze_log
from sf_cli_runner.analysis import LimitUsage

LOG = """59.0 APEX_CODE,FINEST
12:00:00.000 (1000000)|EXECUTION_STARTED
12:00:00.001 (1100000)|CODE_UNIT_STARTED|[EXTERNAL]|execute_anonymous_apex
12:00:00.002 (1200000)|SOQL_EXECUTE_BEGIN|[3]|Aggregations:0|SELECT Id FROM Account LIMIT 10
12:00:00.003 (1300000)|SOQL_EXECUTE_END|[3]|Rows:10
12:00:00.004 (1400000)|STATEMENT_EXECUTE|[4]|for (Account a : accts)
12:00:00.005 (1500000)|SOQL_EXECUTE_BEGIN|[5]|Aggregations:0|SELECT Id FROM Contact WHERE AccountId = :tmpVar1
12:00:00.006 (1600000)|SOQL_EXECUTE_END|[5]|Rows:2
12:00:00.007 (1700000)|DML_BEGIN|[6]|Op:Update|Type:Contact|Rows:2
12:00:00.008 (1800000)|ITERATION_END|[4]
12:00:00.009 (1900000)|DML_BEGIN|[8]|Op:Insert|Type:Account|Rows:1
12:00:00.010 (2000000)|USER_DEBUG|[9]|DEBUG|done
12:00:00.011 (2100000)|EXCEPTION_THROWN|[10]|System.DmlException: Insert failed
12:00:00.012 (2200000)|FATAL_ERROR|System.DmlException: Insert failed
12:00:00.013 (2300000)|CODE_UNIT_STARTED|[EXTERNAL]|execute_anonymous_apex
  Number of SOQL queries: 95 out of 100
  Number of DML statements: 75 out of 150
  Maximum CPU time: 10 out of 10000
  Maximum heap size: 0 out of 6000000
12:00:00.050 (53000000)|EXECUTION_FINISHED
"""


def test_analyze_log_collects_queries_dml_and_loops() -> None:
    analysis = analyze_log(LOG)

    assert [(q.line, q.rows, q.in_loop) for q in analysis.soql_queries] == [(3, 10, False), (5, 2, True)]
    assert [(d.operation, d.sobject_type, d.rows, d.in_loop) for d in analysis.dml_operations] == [
        ("Update", "Contact", 2, True),
        ("Insert", "Account", 1, False),
    ]
    assert analysis.soql_in_loop == 1
    assert analysis.dml_in_loop == 1


def test_analyze_log_collects_errors_limits_and_timing() -> None:
    analysis = analyze_log(LOG)

    assert [(e.kind, e.line) for e in analysis.errors] == [("EXCEPTION", 10), ("FATAL_ERROR", None)]
    assert analysis.governor_limits["SOQL queries"] == LimitUsage(used=95, max=100, pct=95)
    assert analysis.governor_limits["DML statements"].pct == 50
    assert analysis.governor_limits["DML statements"].severity is None
    assert analysis.governor_limits["CPU time (ms)"].severity is None
    assert analysis.governor_limits["Heap size (bytes)"].pct == 0
    assert analysis.execution_time_ms == 52
    assert analysis.unique_code_units == ["execute_anonymous_apex"]
    assert len(analysis.code_units) == 2
    assert [r.message for r in analysis.debug_output] == ["done"]
    assert analysis.truncated is False


def test_warnings_and_json_view() -> None:
    analysis = analyze_log(LOG + "*********** MAXIMUM DEBUG LOG SIZE REACHED ***********\n")
    warnings = analysis.warnings()

    assert warnings[:3] == [
        "SOQL queries inside loops detected",
        "DML operations inside loops detected",
        "Log was truncated, results may be incomplete",
    ]
    assert "SOQL queries at 95% (CRITICAL)" in warnings
    assert not any(w.startswith("DML statements") for w in warnings)
    assert warnings[-1] == "2 error(s) found"

    payload = analysis.to_dict()
    assert payload["isTruncated"] is True
    assert payload["executionTime"] == 52
    assert payload["soqlQueries"][1]["in_loop"] is True
    assert payload["governorLimits"]["SOQL queries"] == {"used": 95, "max": 100, "pct": 95}


def test_limit_usage_rounds_half_up() -> None:
    assert LimitUsage.of(1, 8).pct == 13
    assert LimitUsage.of(5, 0).pct == 0
    assert LimitUsage.of(70, 100).severity == "WARNING"
    assert LimitUsage.of(90, 100).severity == "CRITICAL"


def test_empty_log() -> None:
    analysis = analyze_log("")
    assert analysis.warnings() == []
    assert analysis.execution_time_ms is None
