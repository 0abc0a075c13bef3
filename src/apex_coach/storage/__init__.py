"""Local persistence of analysis results, partitioned by identity."""

from apex_coach.storage.backends import BackendError, MemoryBackend, SqliteBackend
from apex_coach.storage.store import GUEST, AnalysisStore, resolve_identity

__all__ = [
    "GUEST",
    "AnalysisStore",
    "BackendError",
    "MemoryBackend",
    "SqliteBackend",
    "resolve_identity",
]
