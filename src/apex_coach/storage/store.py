"""AnalysisStore: per-identity persistence of analysis results.

Key layout on the backend:
  - ``{prefix}_{identity}`` holds the identity's index: a JSON list of ids.
  - ``{prefix}_{identity}_{id}`` holds one JSON-encoded :class:`StoredAnalysis`.

``identity`` is the caller's user id, or ``guest`` when none is given.
Underscores and percent signs in the identity are percent-encoded so that
two identities can never produce the same key.

Retention: after every save, if an identity holds more than ``max_entries``
results the oldest (by store-write time) are deleted.  The index is always
written last in a mutating sequence, so an interruption can leave an entry
without an index slot but never an index slot pointing at a half-written
entry.
"""

from __future__ import annotations

import contextlib
import dataclasses
import json
import logging
import random
import string
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from apex_coach.api.models import AnalysisResult, AnalysisSummary, StoredAnalysis
from apex_coach.errors import (
    NOT_FOUND,
    SERIALIZATION_ERROR,
    STORAGE_UNAVAILABLE,
    ApexError,
)
from apex_coach.storage.backends import BackendError, KeyValueBackend

_logger = logging.getLogger(__name__)

GUEST = "guest"
DEFAULT_PREFIX = "apex_analyses"
DEFAULT_MAX_ENTRIES = 20

_ID_ALPHABET = string.ascii_lowercase + string.digits
_ID_SUFFIX_LEN = 7
_MAX_ID_ATTEMPTS = 5

# Raised while decoding a damaged entry.  Timestamps that are infinite or
# outside datetime's range surface as OverflowError or OSError.
_CORRUPT_ENTRY_ERRORS = (
    json.JSONDecodeError,
    KeyError,
    TypeError,
    ValueError,
    AttributeError,
    OverflowError,
    OSError,
)

# One lock per (medium, prefix, identity), shared by every store instance.
_identity_locks: dict[tuple[str, str, str], threading.Lock] = {}
_identity_locks_guard = threading.Lock()


def _identity_lock(location: str, prefix: str, identity: str) -> threading.Lock:
    key = (location, prefix, identity)
    with _identity_locks_guard:
        lock = _identity_locks.get(key)
        if lock is None:
            lock = _identity_locks[key] = threading.Lock()
        return lock


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def resolve_identity(identity: str | None) -> str:
    """Return the storage partition for *identity*: stripped, or ``guest`` if blank."""
    if identity and identity.strip():
        return identity.strip()
    return GUEST


def now_millis() -> int:
    return int(time.time() * 1000)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives (78.5 → 79)."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def iso_from_millis(timestamp: int) -> str:
    """Epoch millis → ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (UTC)."""
    dt = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def summarize(stored: StoredAnalysis) -> AnalysisSummary:
    """Project a stored analysis onto its listing summary."""
    result = stored.result
    return AnalysisSummary(
        id=stored.id,
        date=iso_from_millis(stored.timestamp),
        timestamp=stored.timestamp,
        score=round_half_up(result.performance_score.overall_score),
        corner_count=result.corners_detected,
        lap_time=result.lap_time,
        grade=result.performance_score.grade,
        filename=f"{result.analysis_id}.json" if result.analysis_id else None,
    )


def _escape_identity(identity: str) -> str:
    return identity.replace("%", "%25").replace("_", "%5F")


@contextlib.contextmanager
def _storage_errors():
    """Turn a medium failure into a ``storage_unavailable`` :class:`ApexError`."""
    try:
        yield
    except BackendError as exc:
        _logger.error("Storage unavailable: %s", exc)
        raise ApexError(STORAGE_UNAVAILABLE, f"Storage unavailable: {exc}") from exc


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class AnalysisStore:
    """Saves, lists and evicts analysis results, partitioned by identity.

    Parameters
    ----------
    backend:
        The key-value medium (:class:`~apex_coach.storage.backends.SqliteBackend`
        in production, :class:`~apex_coach.storage.backends.MemoryBackend` in tests).
    max_entries:
        Retention cap per identity.
    prefix:
        Namespace for every key this store writes.
    clock:
        Returns the current time in epoch milliseconds.  Injected for testing.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        prefix: str = DEFAULT_PREFIX,
        clock: Callable[[], int] | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self._backend = backend
        self._max_entries = max_entries
        self._prefix = prefix
        self._clock = clock or now_millis

    @property
    def max_entries(self) -> int:
        return self._max_entries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def save(self, result: AnalysisResult, identity: str | None = None) -> str:
        """Persist *result* and return its id.

        The id is ``result.analysis_id`` when set, otherwise a generated
        ``{millis}_{suffix}``.  The stored copy has ``analysis_id`` forced
        to that id; *result* itself is not modified.

        Raises
        ------
        ApexError
            ``storage_unavailable`` if the medium cannot be written,
            ``serialization_error`` if the result cannot be encoded.
        """
        suffix = resolve_identity(identity)
        with self._lock(suffix), _storage_errors():
            now = self._clock()
            analysis_id = (result.analysis_id or "").strip()
            if not analysis_id:
                analysis_id = self._generate_id(suffix, now)
            stored = StoredAnalysis(
                id=analysis_id,
                timestamp=now,
                result=dataclasses.replace(result, analysis_id=analysis_id),
            )
            payload = self._encode(stored.to_dict())

            self._backend.set(self._item_key(suffix, analysis_id), payload)
            index = self._read_index(suffix)
            if analysis_id not in index:
                index.append(analysis_id)
            index = self._evict_excess(suffix, index)
            self._write_index(suffix, index)

        _logger.info("Saved analysis %s for %s (%d stored)", analysis_id, suffix, len(index))
        return analysis_id

    def list_summaries(self, identity: str | None = None) -> list[AnalysisSummary]:
        """Return summaries of every readable entry, most recent first.

        Missing or corrupt entries are skipped with a warning.
        """
        suffix = resolve_identity(identity)
        summaries: list[AnalysisSummary] = []
        with _storage_errors():
            for analysis_id in self._read_index(suffix):
                raw = self._backend.get(self._item_key(suffix, analysis_id))
                if raw is None:
                    _logger.warning("Analysis %s is indexed for %s but missing", analysis_id, suffix)
                    continue
                try:
                    summaries.append(summarize(StoredAnalysis.from_dict(json.loads(raw))))
                except _CORRUPT_ENTRY_ERRORS as exc:
                    _logger.warning("Error reading analysis %s: %s", analysis_id, exc)

        summaries.sort(key=lambda s: s.timestamp, reverse=True)
        return summaries

    def get_by_id(self, analysis_id: str, identity: str | None = None) -> AnalysisResult | None:
        """Return the stored result, or None for a blank, unknown or corrupt id."""
        stored = self._load(analysis_id, resolve_identity(identity))
        return stored.result if stored else None

    def delete_by_id(self, analysis_id: str, identity: str | None = None) -> bool:
        """Remove one entry.  Returns True iff it existed."""
        if not analysis_id or not analysis_id.strip():
            return False
        suffix = resolve_identity(identity)
        key = self._item_key(suffix, analysis_id)
        with self._lock(suffix), _storage_errors():
            if self._backend.get(key) is None:
                return False
            self._backend.remove(key)
            index = [i for i in self._read_index(suffix) if i != analysis_id]
            self._write_index(suffix, index)
        _logger.info("Deleted analysis %s for %s", analysis_id, suffix)
        return True

    def count(self, identity: str | None = None) -> int:
        with _storage_errors():
            return len(self._read_index(resolve_identity(identity)))

    def clear_all(self, identity: str | None = None) -> int:
        """Remove every entry for *identity* and return how many were indexed."""
        suffix = resolve_identity(identity)
        with self._lock(suffix), _storage_errors():
            index = self._read_index(suffix)
            for analysis_id in index:
                self._backend.remove(self._item_key(suffix, analysis_id))
            self._backend.remove(self._index_key(suffix))
        _logger.info("Cleared %d analyses for %s", len(index), suffix)
        return len(index)

    def exists(self, analysis_id: str, identity: str | None = None) -> bool:
        if not analysis_id or not analysis_id.strip():
            return False
        key = self._item_key(resolve_identity(identity), analysis_id)
        with _storage_errors():
            return self._backend.get(key) is not None

    def export_as_blob(self, analysis_id: str, identity: str | None = None) -> bytes:
        """Return the stored result as indented UTF-8 JSON.

        Raises
        ------
        ApexError
            ``not_found`` if *analysis_id* does not resolve.
        """
        result = self.get_by_id(analysis_id, identity)
        if result is None:
            raise ApexError(NOT_FOUND, f"Analysis not found: {analysis_id}")
        return self._encode(result.to_dict(), indent=2).encode("utf-8")

    def write_export(
        self,
        analysis_id: str,
        path: str | Path | None = None,
        identity: str | None = None,
    ) -> Path:
        """Write :meth:`export_as_blob` to *path* (default ``apex-analysis-{id}.json``)."""
        blob = self.export_as_blob(analysis_id, identity)
        target = Path(path) if path is not None else Path(f"apex-analysis-{analysis_id}.json")
        target.write_bytes(blob)
        return target

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _index_key(self, suffix: str) -> str:
        return f"{self._prefix}_{_escape_identity(suffix)}"

    def _item_key(self, suffix: str, analysis_id: str) -> str:
        return f"{self._prefix}_{_escape_identity(suffix)}_{analysis_id}"

    def _lock(self, suffix: str) -> threading.Lock:
        return _identity_lock(self._backend.location, self._prefix, suffix)

    @staticmethod
    def _encode(data: dict, indent: int | None = None) -> str:
        try:
            return json.dumps(data, allow_nan=False, ensure_ascii=False, indent=indent)
        except (TypeError, ValueError) as exc:
            raise ApexError(SERIALIZATION_ERROR, f"Cannot encode analysis: {exc}") from exc

    def _generate_id(self, suffix: str, now: int) -> str:
        """``{millis}_{7 random base-36 chars}``, retried if the key is already taken."""
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = f"{now}_{''.join(random.choices(_ID_ALPHABET, k=_ID_SUFFIX_LEN))}"
            if self._backend.get(self._item_key(suffix, candidate)) is None:
                return candidate
            _logger.warning("Generated analysis id %s already taken; retrying", candidate)
        return candidate

    def _read_index(self, suffix: str) -> list[str]:
        raw = self._backend.get(self._index_key(suffix))
        if not raw:
            return []
        try:
            index = json.loads(raw)
        except json.JSONDecodeError as exc:
            _logger.error("Error reading analyses index for %s: %s", suffix, exc)
            return []
        if not isinstance(index, list):
            _logger.error("Analyses index for %s is not a list", suffix)
            return []
        return [str(i) for i in index]

    def _write_index(self, suffix: str, index: list[str]) -> None:
        self._backend.set(self._index_key(suffix), json.dumps(index))

    def _load(self, analysis_id: str, suffix: str) -> StoredAnalysis | None:
        if not analysis_id or not analysis_id.strip():
            return None
        with _storage_errors():
            raw = self._backend.get(self._item_key(suffix, analysis_id))
        if raw is None:
            return None
        try:
            return StoredAnalysis.from_dict(json.loads(raw))
        except _CORRUPT_ENTRY_ERRORS as exc:
            _logger.error("Error getting analysis %s: %s", analysis_id, exc)
            return None

    def _write_timestamp(self, suffix: str, analysis_id: str) -> int:
        """Store-write time of an entry; 0 when it is missing or unreadable."""
        raw = self._backend.get(self._item_key(suffix, analysis_id))
        if raw is None:
            return 0
        try:
            return int(json.loads(raw)["timestamp"])
        except _CORRUPT_ENTRY_ERRORS:
            return 0

    def _evict_excess(self, suffix: str, index: list[str]) -> list[str]:
        """Delete the oldest entries beyond ``max_entries``; return the surviving index.

        Ranking is by write time ascending, ties keep index order.
        """
        excess = len(index) - self._max_entries
        if excess <= 0:
            return index
        ranked = sorted(index, key=lambda i: self._write_timestamp(suffix, i))
        evicted = set(ranked[:excess])
        for analysis_id in ranked[:excess]:
            self._backend.remove(self._item_key(suffix, analysis_id))
        _logger.info("Evicted %d old analyses for %s", excess, suffix)
        return [i for i in index if i not in evicted]

