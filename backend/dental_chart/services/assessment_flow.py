from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from dental_chart.models.assessment import AssessmentDomain
from dental_chart.services.codec.common import PayloadShape
from dental_chart.services.codec.registry import (
    coerce_state,
    decode_payload,
    encode_state,
    get_codec,
)
from dental_chart.services.drafts import DraftAutosaver, DraftCache, DraftKey
from dental_chart.services.report_decoder import ParsedAssessment, parse_snapshot
from dental_chart.services.snapshot_store import AssessmentSnapshot, SnapshotStore, StorageError

logger = logging.getLogger("dental_chart.assessments")


@dataclass(frozen=True)
class HistoryEntry:
    snapshot_id: int
    domain: AssessmentDomain
    created_at_ms: int
    summary: str
    details: list[str] = field(default_factory=list)
    shape: PayloadShape = PayloadShape.unknown
    degraded: bool = False


@dataclass(frozen=True)
class EditingState:
    state: BaseModel
    source: str
    snapshot_id: int | None = None


def _history_entry(snapshot: AssessmentSnapshot, parsed: ParsedAssessment) -> HistoryEntry:
    return HistoryEntry(
        snapshot_id=snapshot.id,
        domain=snapshot.domain,
        created_at_ms=snapshot.created_at_ms,
        summary=parsed.summary,
        details=list(parsed.details),
        shape=parsed.shape,
        degraded=parsed.degraded,
    )


class AssessmentService:
    """Draft, save and review flow for one patient chart at a time."""

    def __init__(
        self,
        store: SnapshotStore,
        drafts: DraftCache,
        autosaver: DraftAutosaver | None = None,
    ) -> None:
        self.store = store
        self.drafts = drafts
        self.autosaver = autosaver

    def save(self, patient_id: str, domain: AssessmentDomain | str, state: Any) -> int:
        """Append a new snapshot, then drop the draft.

        On ``StorageError`` the draft is left in place so the chart can be
        saved again.
        """
        domain = AssessmentDomain(domain)
        key = DraftKey(patient_id, domain)
        payload = encode_state(domain, state)
        with self.drafts.lock_for(key):
            try:
                snapshot_id = self.store.append_snapshot(patient_id, domain, payload)
            except StorageError:
                logger.error(
                    "Save of %s assessment for patient %s failed; draft kept",
                    domain.value,
                    patient_id,
                )
                raise
            if self.autosaver is not None:
                self.autosaver.cancel(key)
            self.drafts.clear_draft(key)
        return snapshot_id

    def load_for_editing(self, patient_id: str, domain: AssessmentDomain | str) -> EditingState:
        domain = AssessmentDomain(domain)
        draft = self.drafts.load_draft(DraftKey(patient_id, domain))
        if draft is not None:
            return EditingState(coerce_state(domain, draft), "draft")
        latest = self.store.latest_snapshot(patient_id, domain)
        if latest is not None:
            result = decode_payload(domain, latest.encoded_payload)
            if result.shape is not PayloadShape.unknown:
                return EditingState(result.state, "snapshot", latest.id)
            logger.warning(
                "Latest %s snapshot %s unreadable; starting from defaults", domain.value, latest.id
            )
        return EditingState(get_codec(domain).default_state(), "default")

    def latest_report(self, patient_id: str, domain: AssessmentDomain | str) -> HistoryEntry | None:
        latest = self.store.latest_snapshot(patient_id, AssessmentDomain(domain))
        if latest is None:
            return None
        return _history_entry(latest, parse_snapshot(latest))

    def history(
        self, patient_id: str, domain: AssessmentDomain | str, *, limit: int | None = None
    ) -> list[HistoryEntry]:
        snapshots = self.store.all_snapshots(patient_id, AssessmentDomain(domain), limit=limit)
        return [_history_entry(snapshot, parse_snapshot(snapshot)) for snapshot in snapshots]
