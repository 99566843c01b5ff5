from __future__ import annotations

from .engine import ProcessRunner
from .payload import payload_file
from .types import CommandInvocation, ExecutionOutcome


def execute(invocation: CommandInvocation, runner: ProcessRunner) -> ExecutionOutcome:
    """Run one invocation, scoping any payload file to this call.

    Example:
        ```python
        outcome = execute(CommandInvocation(args=("org", "list", "--json")), runner)
        ```
    """
    try:
        with payload_file(invocation.payload_text, suffix=invocation.payload_suffix) as path:
            args = invocation.render_args(str(path) if path is not None else None)
            return runner.run(args, timeout_seconds=invocation.timeout_seconds)
    except OSError as exc:
        return ExecutionOutcome("", "", 126, False, f"Failed to prepare payload file: {exc}")
