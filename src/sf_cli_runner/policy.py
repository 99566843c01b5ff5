from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any


def _default_policy_path() -> Path:
    """Return bundled default policy TOML path.

    Example:
        ```python
        path = _default_policy_path()
        ```
    """
    return Path(__file__).with_name("default_policy.toml")


def _read_policy_toml(path: Path) -> dict[str, Any]:
    """Read policy TOML and return normalized policy dictionary.

    Example:
        ```python
        raw = _read_policy_toml(Path("/tmp/policy.toml"))
        ```
    """
    if not path.exists():
        return {
            "tool_name": "sf",
            "max_buffer_mb": 50,
            "command_timeout_seconds": 0,
            "wait_minutes": 10,
            "timeout_margin_minutes": 2,
            "preview_sample_size": 3,
            "large_dataset_threshold": 1000,
            "target_org": "",
        }
    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    policy_obj = raw.get("policy", raw)
    if not isinstance(policy_obj, dict):
        raise ValueError("Policy config must be a TOML table")
    return policy_obj


def _optional_str(value: Any) -> str | None:
    """Normalize an optional TOML string, treating blank text as unset.

    Example:
        ```python
        assert _optional_str("  ") is None
        ```
    """
    if value is None:
        return None
    text = str(value).strip()
    return text or None


_DEFAULT_POLICY_RAW = _read_policy_toml(_default_policy_path())
DEFAULT_TOOL_NAME = str(_DEFAULT_POLICY_RAW.get("tool_name", "sf"))
DEFAULT_MAX_BUFFER_MB = int(_DEFAULT_POLICY_RAW.get("max_buffer_mb", 50))
DEFAULT_COMMAND_TIMEOUT_SECONDS = int(_DEFAULT_POLICY_RAW.get("command_timeout_seconds", 0))
DEFAULT_WAIT_MINUTES = int(_DEFAULT_POLICY_RAW.get("wait_minutes", 10))
DEFAULT_TIMEOUT_MARGIN_MINUTES = int(_DEFAULT_POLICY_RAW.get("timeout_margin_minutes", 2))
DEFAULT_PREVIEW_SAMPLE_SIZE = int(_DEFAULT_POLICY_RAW.get("preview_sample_size", 3))
DEFAULT_LARGE_DATASET_THRESHOLD = int(_DEFAULT_POLICY_RAW.get("large_dataset_threshold", 1000))
DEFAULT_TARGET_ORG = _optional_str(_DEFAULT_POLICY_RAW.get("target_org"))


@dataclass(slots=True)
class ToolPolicy:
    """Settings that shape every external tool invocation.

    Example:
        ```python
        policy = ToolPolicy(wait_minutes=20, target_org="myDevOrg")
        ```
    """

    tool_name: str = DEFAULT_TOOL_NAME
    max_buffer_mb: int = DEFAULT_MAX_BUFFER_MB
    command_timeout_seconds: int = DEFAULT_COMMAND_TIMEOUT_SECONDS
    wait_minutes: int = DEFAULT_WAIT_MINUTES
    timeout_margin_minutes: int = DEFAULT_TIMEOUT_MARGIN_MINUTES
    preview_sample_size: int = DEFAULT_PREVIEW_SAMPLE_SIZE
    large_dataset_threshold: int = DEFAULT_LARGE_DATASET_THRESHOLD
    target_org: str | None = DEFAULT_TARGET_ORG
    config_path: str | None = None

    def __post_init__(self) -> None:
        """Validate numeric limits after dataclass initialization.

        Example:
            ```python
            ToolPolicy(max_buffer_mb=10)
            ```
        """
        if not self.tool_name.strip():
            raise ValueError("tool_name must be a non-empty string")
        if self.max_buffer_mb <= 0:
            raise ValueError("max_buffer_mb must be positive")
        if self.command_timeout_seconds < 0:
            raise ValueError("command_timeout_seconds must be zero or positive")
        if self.wait_minutes <= 0:
            raise ValueError("wait_minutes must be positive")
        if self.timeout_margin_minutes < 0:
            raise ValueError("timeout_margin_minutes must be zero or positive")
        if self.preview_sample_size < 0:
            raise ValueError("preview_sample_size must be zero or positive")
        if self.large_dataset_threshold < 0:
            raise ValueError("large_dataset_threshold must be zero or positive")

    @property
    def max_output_bytes(self) -> int:
        """Per-stream capture bound in bytes.

        Example:
            ```python
            assert ToolPolicy(max_buffer_mb=1).max_output_bytes == 1024 * 1024
            ```
        """
        return self.max_buffer_mb * 1024 * 1024

    @property
    def command_timeout(self) -> int | None:
        """Timeout for single commands, or None when disabled.

        Example:
            ```python
            assert ToolPolicy(command_timeout_seconds=0).command_timeout is None
            ```
        """
        return self.command_timeout_seconds or None

    @classmethod
    def from_file(cls, config_path: str) -> "ToolPolicy":
        """Create a policy instance from a TOML file.

        Example:
            ```python
            policy = ToolPolicy.from_file("/tmp/sfr.toml")
            ```
        """
        path = Path(config_path)
        if not path.exists():
            raise ValueError(f"Policy file not found: {config_path}")
        raw = _read_policy_toml(path)
        return cls(
            tool_name=str(raw.get("tool_name", DEFAULT_TOOL_NAME)),
            max_buffer_mb=int(raw.get("max_buffer_mb", DEFAULT_MAX_BUFFER_MB)),
            command_timeout_seconds=int(
                raw.get("command_timeout_seconds", DEFAULT_COMMAND_TIMEOUT_SECONDS)
            ),
            wait_minutes=int(raw.get("wait_minutes", DEFAULT_WAIT_MINUTES)),
            timeout_margin_minutes=int(
                raw.get("timeout_margin_minutes", DEFAULT_TIMEOUT_MARGIN_MINUTES)
            ),
            preview_sample_size=int(raw.get("preview_sample_size", DEFAULT_PREVIEW_SAMPLE_SIZE)),
            large_dataset_threshold=int(
                raw.get("large_dataset_threshold", DEFAULT_LARGE_DATASET_THRESHOLD)
            ),
            target_org=_optional_str(raw.get("target_org", DEFAULT_TARGET_ORG)),
            config_path=config_path,
        )
