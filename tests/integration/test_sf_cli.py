import os
import shutil

import pytest

from sf_cli_runner import ResultCategory, ToolPolicy, run_apex, run_query, select_runner


def _sf_ready() -> bool:
    if shutil.which("sf") is None:
        return False
    return os.getenv("RUN_SF_TESTS") == "1"


pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not _sf_ready(), reason="sf CLI integration tests disabled"),
]


@pytest.fixture(scope="module")
def policy() -> ToolPolicy:
    return ToolPolicy(target_org=os.getenv("SF_TARGET_ORG") or None, command_timeout_seconds=300)


def test_apex_debug_round_trip(policy: ToolPolicy) -> None:
    runner = select_runner(policy)
    result = run_apex("System.debug('sfr integration');", runner=runner, policy=policy)
    assert result.category is ResultCategory.SUCCESS
    assert any(record.message == "sfr integration" for record in result.payload.debug_lines)


def test_apex_compile_error(policy: ToolPolicy) -> None:
    runner = select_runner(policy)
    result = run_apex("Integer x = ;", runner=runner, policy=policy)
    assert result.category is ResultCategory.COMPILE_FAILURE
    assert result.payload.line == 1


def test_query_with_metacharacters(policy: ToolPolicy) -> None:
    runner = select_runner(policy)
    result = run_query(
        "SELECT Id FROM Account WHERE Name = 'sfr & \"quoted\" | test' LIMIT 1",
        runner=runner,
        policy=policy,
    )
    assert result.category is ResultCategory.SUCCESS
    assert "records" in result.payload
