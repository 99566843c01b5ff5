from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterator

from .config import PAYLOAD_FILE_PREFIX

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def payload_file(text: str | None, *, suffix: str = ".txt") -> Iterator[Path | None]:
    """Write a payload to a freshly named temp file and delete it on exit.

    Cleanup failures are logged, never raised, so they cannot mask the
    outcome of the body.

    Example:
        ```python
        with payload_file("System.debug('hi');", suffix=".apex") as path:
            runner.run(["apex", "run", "-f", str(path), "--json"])
        ```
    """
    if text is None:
        yield None
        return
    fd, name = tempfile.mkstemp(prefix=PAYLOAD_FILE_PREFIX, suffix=suffix)
    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        logger.debug("Wrote payload file %s (%d chars)", path, len(text))
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove payload file %s: %s", path, exc)
        else:
            logger.debug("Removed payload file %s", path)
