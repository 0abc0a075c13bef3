"""Pre-upload checks for telemetry CSV files."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

ACCEPTED_EXTENSION = ".csv"
MAX_FILE_SIZE_MB = 50
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024
MIN_FILE_SIZE_BYTES = 1000


@dataclass(frozen=True)
class CsvUpload:
    """A telemetry file held in memory, ready to be posted."""

    filename: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: str | Path) -> CsvUpload:
        p = Path(path)
        return cls(filename=p.name, content=p.read_bytes())


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: str | None = None


def validate_csv(
    upload: CsvUpload,
    max_size_bytes: int = MAX_FILE_SIZE_BYTES,
) -> ValidationResult:
    """Check extension and size bounds of *upload*.

    Rules are applied in order: extension, maximum size, minimum size.
    The first violated rule wins.
    """
    if not upload.filename.lower().endswith(ACCEPTED_EXTENSION):
        return ValidationResult(False, "The file must be a CSV (.csv)")

    if upload.size > max_size_bytes:
        size_mb = upload.size / (1024 * 1024)
        max_mb = max_size_bytes / (1024 * 1024)
        return ValidationResult(
            False, f"File too large ({size_mb:.2f}MB). Maximum: {max_mb:g}MB"
        )

    if upload.size < MIN_FILE_SIZE_BYTES:
        return ValidationResult(
            False,
            f"File too small ({upload.size} bytes, minimum {MIN_FILE_SIZE_BYTES}). "
            "Check that it is a valid CSV export.",
        )

    return ValidationResult(True)
