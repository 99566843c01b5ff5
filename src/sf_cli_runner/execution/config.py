from __future__ import annotations

from ..errors import ValidationError

WINDOWS_PLATFORMS = ("win32", "cygwin")
TRANSPORT_HINT = "Ensure the sf CLI is installed and you are authenticated."
PAYLOAD_FILE_PREFIX = "sfr-payload-"


def is_windows_platform(platform: str) -> bool:
    """Return True for hosts whose tool shims need shell-string execution.

    Example:
        ```python
        assert is_windows_platform("win32")
        ```
    """
    return platform in WINDOWS_PLATFORMS


def parse_wait_minutes(value: int | str | None, default: int) -> int:
    """Validate a caller-supplied bulk wait budget in minutes.

    Example:
        ```python
        minutes = parse_wait_minutes("20", default=10)
        ```
    """
    if value is None or value == "":
        return default
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"--wait must be a whole number of minutes, got {value!r}") from None
    if minutes <= 0:
        raise ValidationError(f"--wait must be positive, got {minutes}")
    return minutes


def batch_timeout_seconds(wait_minutes: int, margin_minutes: int) -> int:
    """Return the client-side timeout for a bulk call, kept behind the tool's own wait.

    Example:
        ```python
        assert batch_timeout_seconds(10, 2) == 720
        ```
    """
    return (max(1, int(wait_minutes)) + max(0, int(margin_minutes))) * 60
