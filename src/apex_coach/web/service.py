"""AnalysisService: submit a session, then save it without blocking the result."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from apex_coach.api.client import ApexClient
from apex_coach.api.models import AnalysisResult
from apex_coach.api.validator import CsvUpload
from apex_coach.errors import UNKNOWN, ApexError
from apex_coach.storage.store import AnalysisStore

_logger = logging.getLogger(__name__)


@dataclass
class AnalysisOutcome:
    """A successful analysis plus the outcome of the follow-up save.

    ``saved_id`` is None and ``save_error`` set when persistence failed;
    the result is still complete and usable.
    """

    result: AnalysisResult
    saved_id: str | None = None
    save_error: ApexError | None = None

    @property
    def saved(self) -> bool:
        return self.saved_id is not None


class AnalysisService:
    """Composes the two steps of an upload: ``submit`` then ``save``.

    Parameters
    ----------
    client:
        Transport client for the analysis backend.
    store:
        Result store; when None the result is returned without saving.
    """

    def __init__(self, client: ApexClient, store: AnalysisStore | None = None) -> None:
        self._client = client
        self._store = store

    def run_analysis(
        self,
        upload: CsvUpload,
        identity: str | None = None,
        lap_filter: list[int] | None = None,
        track_condition: str | None = None,
        track_temperature: float | None = None,
    ) -> AnalysisOutcome:
        """Submit *upload* and persist the result for *identity*.

        Raises
        ------
        ApexError
            Whatever :meth:`ApexClient.submit` raises.  Save failures,
            expected or not, are never raised; they are reported on the
            returned outcome.
        """
        result = self._client.submit(
            upload,
            lap_filter=lap_filter,
            track_condition=track_condition,
            track_temperature=track_temperature,
        )
        outcome = AnalysisOutcome(result=result)
        if self._store is None:
            return outcome

        try:
            outcome.saved_id = self._store.save(result, identity)
        except ApexError as exc:
            _logger.warning("Auto-save of analysis %s failed (%s): %s", result.analysis_id, exc.kind, exc.message)
            outcome.save_error = exc
        except Exception as exc:
            _logger.exception("Auto-save of analysis %s failed unexpectedly", result.analysis_id)
            outcome.save_error = ApexError(UNKNOWN, f"Could not save the analysis: {exc}")
        return outcome
