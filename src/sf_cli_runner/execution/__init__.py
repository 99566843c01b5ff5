from .engine import ProcessRunner
from .invoke import execute
from .runners import ArgvRunner, ShellRunner, select_runner
from .types import (
    PAYLOAD_PATH_TOKEN,
    CommandInvocation,
    Decoded,
    ExecutionOutcome,
    RawResult,
    Undecodable,
)

__all__ = [
    "ArgvRunner",
    "CommandInvocation",
    "Decoded",
    "ExecutionOutcome",
    "PAYLOAD_PATH_TOKEN",
    "ProcessRunner",
    "RawResult",
    "ShellRunner",
    "Undecodable",
    "execute",
    "select_runner",
]
