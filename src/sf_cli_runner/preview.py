from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .errors import ValidationError

DEFAULT_SAMPLE_SIZE = 3
LARGE_DATASET_THRESHOLD = 1000


@dataclass(frozen=True, slots=True)
class PreviewSample:
    """Header, leading data rows and total row count of a CSV input.

    Example:
        ```python
        sample = PreviewSample(header=("Name",), rows=(("Acme",),), total_rows=1)
        ```
    """

    header: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    total_rows: int

    @property
    def remaining(self) -> int:
        """Data rows not included in the sample.

        Example:
            ```python
            assert sample.remaining == sample.total_rows - len(sample.rows)
            ```
        """
        return max(0, self.total_rows - len(self.rows))


def _non_blank_lines(rows: str | Iterable[str]) -> list[str]:
    """Split text or an iterable of lines, dropping blank lines anywhere.

    Example:
        ```python
        assert _non_blank_lines("a\\n\\nb\\n") == ["a", "b"]
        ```
    """
    lines = rows.splitlines() if isinstance(rows, str) else [line.rstrip("\r\n") for line in rows]
    return [line for line in lines if line.strip()]


def preview(rows: str | Iterable[str], sample_size: int = DEFAULT_SAMPLE_SIZE) -> PreviewSample:
    """Compute a bounded preview of comma-delimited text.

    Example:
        ```python
        sample = preview("Name,Industry\\nAcme,Tech\\n")
        ```
    """
    if sample_size < 0:
        raise ValueError("sample_size must be zero or positive")
    records = list(csv.reader(_non_blank_lines(rows)))
    if not records:
        return PreviewSample(header=(), rows=(), total_rows=0)
    header = tuple(field.strip() for field in records[0])
    data = records[1:]
    return PreviewSample(
        header=header,
        rows=tuple(tuple(record) for record in data[:sample_size]),
        total_rows=len(data),
    )


def preview_file(path: str | Path, sample_size: int = DEFAULT_SAMPLE_SIZE) -> PreviewSample:
    """Read a UTF-8 CSV file and preview it.

    Example:
        ```python
        sample = preview_file("accounts.csv")
        ```
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise ValidationError(f"File not found: {path}")
    try:
        text = file_path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationError(f"File is not valid UTF-8: {path} ({exc.reason})") from None
    return preview(text, sample_size)


def requires_explicit_warning(row_count: int, threshold: int = LARGE_DATASET_THRESHOLD) -> bool:
    """True when a mutating call touches more rows than the threshold.

    Example:
        ```python
        assert not requires_explicit_warning(1000)
        assert requires_explicit_warning(1001)
        ```
    """
    return row_count > threshold


def require_column(sample: PreviewSample, column: str) -> None:
    """Ensure the CSV header declares a column, case-sensitively.

    Example:
        ```python
        require_column(sample, "External_Id__c")
        ```
    """
    if column not in sample.header:
        declared = ", ".join(sample.header) or "<empty header>"
        raise ValidationError(f"CSV header is missing the '{column}' column (found: {declared})")
