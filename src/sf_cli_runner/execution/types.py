from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

# Argument placeholder replaced with the temporary payload file path.
PAYLOAD_PATH_TOKEN = "{payload_path}"


@dataclass(frozen=True, slots=True)
class CommandInvocation:
    """Immutable request to run the external tool once.

    Example:
        ```python
        inv = CommandInvocation(args=("data", "query", "--query", "SELECT Id FROM Account", "--json"))
        ```
    """

    args: tuple[str, ...]
    target_org: str | None = None
    timeout_seconds: float | None = None
    payload_text: str | None = None
    payload_suffix: str = ".txt"

    def __post_init__(self) -> None:
        """Freeze argument sequences into a tuple and validate the payload slot.

        Example:
            ```python
            CommandInvocation(args=["apex", "run"])
            ```
        """
        object.__setattr__(self, "args", tuple(str(arg) for arg in self.args))
        wants_payload = PAYLOAD_PATH_TOKEN in self.args
        if wants_payload and self.payload_text is None:
            raise ValueError("Invocation references a payload file but has no payload_text")
        if self.payload_text is not None and not wants_payload:
            raise ValueError("payload_text given but no argument references the payload file")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive when set")

    def render_args(self, payload_path: str | None = None) -> list[str]:
        """Return the final argument list with the payload path and target org filled in.

        Example:
            ```python
            args = inv.render_args("/tmp/sfr-payload-1.apex")
            ```
        """
        rendered: list[str] = []
        for arg in self.args:
            if arg == PAYLOAD_PATH_TOKEN:
                if payload_path is None:
                    raise ValueError("A payload path is required to render this invocation")
                rendered.append(payload_path)
            else:
                rendered.append(arg)
        if self.target_org:
            rendered.extend(["--target-org", self.target_org])
        return rendered


@dataclass(frozen=True, slots=True)
class Decoded:
    """A stream that parsed as a JSON object.

    Example:
        ```python
        raw = Decoded(value={"status": 0, "result": {}}, stream="stdout")
        ```
    """

    value: dict[str, Any]
    stream: str


@dataclass(frozen=True, slots=True)
class Undecodable:
    """Neither stream parsed; carries the best diagnostic text available.

    Example:
        ```python
        raw = Undecodable(text="sf: command not found")
        ```
    """

    text: str


RawResult = Union[Decoded, Undecodable]


def decode_json_object(text: str) -> dict[str, Any] | None:
    """Parse text as a JSON object, returning None for anything else.

    Example:
        ```python
        assert decode_json_object('{"status": 0}') == {"status": 0}
        ```
    """
    stripped = text.strip()
    if not stripped:
        return None
    try:
        parsed = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


@dataclass(slots=True)
class ExecutionOutcome:
    """Raw result of running one CommandInvocation.

    Example:
        ```python
        out = ExecutionOutcome(stdout="{}", stderr="", returncode=0, timed_out=False)
        ```
    """

    stdout: str
    stderr: str
    returncode: int
    timed_out: bool
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        """True when the process exited 0 without a timeout or transport error.

        Example:
            ```python
            assert ExecutionOutcome("", "", 0, False).succeeded
            ```
        """
        return self.returncode == 0 and not self.timed_out and self.error is None

    def raw_result(self) -> RawResult:
        """Decode stdout, then stderr, falling back to trimmed error text.

        Example:
            ```python
            raw = ExecutionOutcome('{"result": 1}', "", 0, False).raw_result()
            ```
        """
        for stream, text in (("stdout", self.stdout), ("stderr", self.stderr)):
            value = decode_json_object(text)
            if value is not None:
                return Decoded(value=value, stream=stream)
        return Undecodable(text=self.stderr.strip())
