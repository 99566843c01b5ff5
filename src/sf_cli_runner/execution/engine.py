from __future__ import annotations

from typing import Protocol, Sequence

from .types import ExecutionOutcome


class ProcessRunner(Protocol):
    """Anything that can run the external tool once and report what happened.

    Example:
        ```python
        runner: ProcessRunner = ArgvRunner(tool_name="sf")
        ```
    """

    kind: str
    tool_name: str

    def run(self, args: Sequence[str], *, timeout_seconds: float | None = None) -> ExecutionOutcome:
        """Run the tool with the given arguments and return the raw outcome.

        Example:
            ```python
            outcome = runner.run(["org", "list", "--json"], timeout_seconds=60)
            ```
        """
        ...
