from __future__ import annotations

import logging
import os
import subprocess
import sys
import threading
import time
from typing import IO, Callable, Sequence

from ..policy import ToolPolicy
from .config import is_windows_platform
from .engine import ProcessRunner
from .escaping import join_command
from .types import ExecutionOutcome

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024
_DRAIN_GRACE_SECONDS = 5.0


class _BoundedReader:
    """Drain one pipe on a background thread and stop once it passes a byte bound.

    Example:
        ```python
        reader = _BoundedReader(proc.stdout, 1024, on_overflow=proc.kill)
        reader.join(5.0)
        ```
    """

    def __init__(self, stream: IO[bytes], limit: int, on_overflow: Callable[[], None]) -> None:
        """Start draining `stream` right away.

        Example:
            ```python
            reader = _BoundedReader(proc.stderr, 50 * 1024 * 1024, on_overflow=proc.kill)
            ```
        """
        self._stream = stream
        self._limit = limit
        self._on_overflow = on_overflow
        self._chunks: list[bytes] = []
        self.size = 0
        self.overflowed = False
        self._thread = threading.Thread(target=self._drain, daemon=True)
        self._thread.start()

    def _drain(self) -> None:
        """Read chunks until EOF or until the bound is crossed.

        Example:
            ```python
            reader._drain()
            ```
        """
        try:
            while True:
                chunk = os.read(self._stream.fileno(), _READ_CHUNK)
                if not chunk:
                    return
                self.size += len(chunk)
                if self.size > self._limit:
                    self.overflowed = True
                    self._on_overflow()
                    return
                self._chunks.append(chunk)
        except (OSError, ValueError) as exc:
            logger.debug("Stopped reading output pipe: %s", exc)

    def join(self, timeout: float) -> None:
        """Wait for the drain thread to finish, at most `timeout` seconds.

        Example:
            ```python
            reader.join(5.0)
            ```
        """
        self._thread.join(timeout)

    def text(self) -> str:
        """Decode what was read as UTF-8, replacing invalid bytes.

        Example:
            ```python
            stdout = reader.text()
            ```
        """
        return b"".join(self._chunks).decode("utf-8", errors="replace")


def _run_process(
    command: str | list[str],
    *,
    shell: bool,
    tool_name: str,
    timeout_seconds: float | None,
    max_output_bytes: int,
) -> ExecutionOutcome:
    """Run one process and fold every failure mode into an ExecutionOutcome.

    Both pipes are read incrementally; the child is killed as soon as either
    stream passes `max_output_bytes` or the deadline expires.

    Example:
        ```python
        outcome = _run_process(["sf", "--version"], shell=False, tool_name="sf", timeout_seconds=30, max_output_bytes=1024)
        ```
    """
    started = time.monotonic()
    try:
        proc = subprocess.Popen(
            command,
            shell=shell,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError:
        return ExecutionOutcome(
            "",
            "",
            127,
            False,
            f"'{tool_name}' executable was not found on PATH",
        )
    except OSError as exc:
        return ExecutionOutcome("", "", 126, False, f"Failed to start '{tool_name}': {exc}")

    assert proc.stdout is not None and proc.stderr is not None
    readers = [
        _BoundedReader(proc.stdout, max_output_bytes, proc.kill),
        _BoundedReader(proc.stderr, max_output_bytes, proc.kill),
    ]
    timed_out = False
    try:
        proc.wait(timeout=timeout_seconds)
    except subprocess.TimeoutExpired:
        timed_out = True
        proc.kill()
        proc.wait()
    finally:
        for reader in readers:
            reader.join(_DRAIN_GRACE_SECONDS)
        proc.stdout.close()
        proc.stderr.close()

    elapsed = time.monotonic() - started
    if any(reader.overflowed for reader in readers):
        logger.warning("%s output passed %d bytes after %.2fs; process killed", tool_name, max_output_bytes, elapsed)
        return ExecutionOutcome(
            "",
            "",
            proc.returncode,
            False,
            f"'{tool_name}' output exceeded the {max_output_bytes} byte buffer",
        )
    if timed_out:
        logger.warning("%s did not finish within %ss; abandoning the call", tool_name, timeout_seconds)
        return ExecutionOutcome(
            "",
            "",
            124,
            True,
            f"'{tool_name}' timed out after {timeout_seconds}s",
        )

    logger.debug("%s exited with %s after %.2fs", tool_name, proc.returncode, elapsed)
    stdout, stderr = (reader.text() for reader in readers)
    return ExecutionOutcome(stdout, stderr, proc.returncode, False)


class ArgvRunner:
    """Execute the tool directly from an argument vector, no shell involved.

    Example:
        ```python
        runner = ArgvRunner(tool_name="sf")
        ```
    """

    kind = "argv"

    def __init__(self, *, tool_name: str = "sf", max_output_bytes: int = 50 * 1024 * 1024) -> None:
        """Initialize the runner with the tool name and capture bound.

        Example:
            ```python
            runner = ArgvRunner(tool_name="sf", max_output_bytes=10 * 1024 * 1024)
            ```
        """
        cleaned = tool_name.strip()
        if not cleaned:
            raise ValueError("ArgvRunner requires a non-empty 'tool_name'")
        if max_output_bytes <= 0:
            raise ValueError("max_output_bytes must be positive")
        self.tool_name = cleaned
        self.max_output_bytes = max_output_bytes

    def command(self, args: Sequence[str]) -> list[str]:
        """Return the full argument vector for the given tool arguments.

        Example:
            ```python
            assert runner.command(["org", "list"]) == ["sf", "org", "list"]
            ```
        """
        return [self.tool_name, *args]

    def run(self, args: Sequence[str], *, timeout_seconds: float | None = None) -> ExecutionOutcome:
        """Execute the tool with an argument vector.

        Example:
            ```python
            outcome = runner.run(["org", "list", "--json"])
            ```
        """
        cmd = self.command(args)
        logger.debug("Running %s", cmd)
        return _run_process(
            cmd,
            shell=False,
            tool_name=self.tool_name,
            timeout_seconds=timeout_seconds,
            max_output_bytes=self.max_output_bytes,
        )


class ShellRunner:
    """Execute the tool through the host shell with every argument quoted.

    Example:
        ```python
        runner = ShellRunner(tool_name="sf", quoting="cmd")
        ```
    """

    kind = "shell"

    def __init__(
        self,
        *,
        tool_name: str = "sf",
        quoting: str = "cmd",
        max_output_bytes: int = 50 * 1024 * 1024,
    ) -> None:
        """Initialize the runner with the tool name, quoting mode, and capture bound.

        Example:
            ```python
            runner = ShellRunner(tool_name="sf", quoting="posix")
            ```
        """
        cleaned = tool_name.strip()
        if not cleaned:
            raise ValueError("ShellRunner requires a non-empty 'tool_name'")
        if quoting not in {"cmd", "posix"}:
            raise ValueError("quoting must be either 'cmd' or 'posix'")
        if max_output_bytes <= 0:
            raise ValueError("max_output_bytes must be positive")
        self.tool_name = cleaned
        self.quoting = quoting
        self.max_output_bytes = max_output_bytes

    def command(self, args: Sequence[str]) -> str:
        """Return the shell command string for the given tool arguments.

        Example:
            ```python
            cmd = runner.command(["data", "query", "--query", "SELECT Id FROM Account"])
            ```
        """
        return join_command(self.tool_name, args, self.quoting)

    def run(self, args: Sequence[str], *, timeout_seconds: float | None = None) -> ExecutionOutcome:
        """Execute the tool as a quoted shell command string.

        Example:
            ```python
            outcome = runner.run(["org", "list", "--json"])
            ```
        """
        cmd = self.command(args)
        logger.debug("Running shell command %s", cmd)
        return _run_process(
            cmd,
            shell=True,
            tool_name=self.tool_name,
            timeout_seconds=timeout_seconds,
            max_output_bytes=self.max_output_bytes,
        )


def select_runner(policy: ToolPolicy | None = None, platform: str | None = None) -> ProcessRunner:
    """Pick the runner variant for this host once, at startup.

    Example:
        ```python
        runner = select_runner(ToolPolicy())
        ```
    """
    resolved = policy or ToolPolicy()
    host = platform or sys.platform
    if is_windows_platform(host):
        logger.debug("Selected shell runner with cmd quoting for %s", host)
        return ShellRunner(
            tool_name=resolved.tool_name,
            quoting="cmd",
            max_output_bytes=resolved.max_output_bytes,
        )
    logger.debug("Selected argv runner for %s", host)
    return ArgvRunner(tool_name=resolved.tool_name, max_output_bytes=resolved.max_output_bytes)
