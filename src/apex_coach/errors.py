"""Structured error type shared by the transport client and the result store."""

from __future__ import annotations

from typing import Any

VALIDATION = "validation"
TIMEOUT = "timeout"
NETWORK = "network"
HTTP_ERROR = "http_error"
ANALYSIS_FAILED = "analysis_failed"
INVALID_RESPONSE = "invalid_response"
STORAGE_UNAVAILABLE = "storage_unavailable"
SERIALIZATION_ERROR = "serialization_error"
NOT_FOUND = "not_found"
UNKNOWN = "unknown"

ERROR_KINDS = frozenset({
    VALIDATION,
    TIMEOUT,
    NETWORK,
    HTTP_ERROR,
    ANALYSIS_FAILED,
    INVALID_RESPONSE,
    STORAGE_UNAVAILABLE,
    SERIALIZATION_ERROR,
    NOT_FOUND,
    UNKNOWN,
})

ERROR_HINTS: dict[str, str] = {
    VALIDATION: "Check the file: it must be a .csv between 1 KB and 50 MB.",
    TIMEOUT: "The analysis server took too long to answer. Check your connection and retry.",
    NETWORK: "Could not reach the analysis server. Check your connection and that the backend is running.",
    HTTP_ERROR: "The analysis server rejected the request.",
    ANALYSIS_FAILED: "The analysis failed. Check that the CSV file is a valid telemetry export.",
    INVALID_RESPONSE: "The analysis server sent an unexpected response.",
    STORAGE_UNAVAILABLE: "Local storage is unavailable. The result is still available for viewing and download.",
    SERIALIZATION_ERROR: "The result could not be saved. It is still available for viewing and download.",
    NOT_FOUND: "This analysis no longer exists.",
    UNKNOWN: "An unexpected error occurred.",
}


class ApexError(Exception):
    """A failure with a machine-readable ``kind`` and a human-readable ``message``.

    Args:
        kind: One of :data:`ERROR_KINDS`.
        message: Text suitable for showing to the user.
        details: Optional extra payload (e.g. the backend's ``details`` field).
    """

    def __init__(self, kind: str, message: str, details: Any = None) -> None:
        if kind not in ERROR_KINDS:
            raise ValueError(f"Unknown error kind: {kind!r}")
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details

    @property
    def hint(self) -> str:
        """User-facing suggestion for this kind of failure."""
        return ERROR_HINTS[self.kind]

    def to_dict(self) -> dict:
        data = {"kind": self.kind, "message": self.message}
        if self.details is not None:
            data["details"] = self.details
        return data

    def __repr__(self) -> str:
        return f"ApexError(kind={self.kind!r}, message={self.message!r})"
