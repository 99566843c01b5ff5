"""Argument quoting for runners that hand a single command string to a shell."""

from __future__ import annotations

import re
import shlex
from typing import Sequence

QUOTING_MODES = ("cmd", "posix")

# Characters cmd.exe would interpret, plus whitespace that would split the token.
_CMD_META = re.compile(r'[() &|<>^%!"\t\r\n]')


def quote_cmd_argument(arg: str) -> str:
    """Quote one argument for cmd.exe, doubling embedded double quotes.

    Example:
        ```python
        assert quote_cmd_argument('a&b') == '"a&b"'
        ```
    """
    if arg == "" or _CMD_META.search(arg):
        return '"' + arg.replace('"', '""') + '"'
    return arg


def split_cmd_command(command: str) -> list[str]:
    """Split a command string produced by `quote_cmd_argument` back into arguments.

    Example:
        ```python
        assert split_cmd_command('sf "a b"') == ["sf", "a b"]
        ```
    """
    tokens: list[str] = []
    current: list[str] = []
    in_token = False
    in_quotes = False
    i = 0
    while i < len(command):
        char = command[i]
        if in_quotes:
            if char == '"':
                if command[i + 1 : i + 2] == '"':
                    current.append('"')
                    i += 2
                    continue
                in_quotes = False
            else:
                current.append(char)
        elif char == '"':
            in_quotes = True
            in_token = True
        elif char == " ":
            if in_token:
                tokens.append("".join(current))
                current = []
                in_token = False
        else:
            current.append(char)
            in_token = True
        i += 1
    if in_quotes:
        raise ValueError("Unterminated quote in command string")
    if in_token:
        tokens.append("".join(current))
    return tokens


def join_command(tool_name: str, args: Sequence[str], mode: str = "cmd") -> str:
    """Build a shell command string that delivers every argument unaltered.

    Example:
        ```python
        cmd = join_command("sf", ["data", "query", "--query", "SELECT Id FROM Account"])
        ```
    """
    if mode == "cmd":
        return " ".join([tool_name, *(quote_cmd_argument(arg) for arg in args)])
    if mode == "posix":
        return shlex.join([tool_name, *args])
    raise ValueError(f"Unknown quoting mode: {mode!r}. Expected one of {QUOTING_MODES}")


def split_command(command: str, mode: str = "cmd") -> list[str]:
    """Invert `join_command` for the given quoting mode.

    Example:
        ```python
        assert split_command(join_command("sf", ["a&b"])) == ["sf", "a&b"]
        ```
    """
    if mode == "cmd":
        return split_cmd_command(command)
    if mode == "posix":
        return shlex.split(command)
    raise ValueError(f"Unknown quoting mode: {mode!r}. Expected one of {QUOTING_MODES}")
