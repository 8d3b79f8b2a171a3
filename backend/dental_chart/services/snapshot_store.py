"""Append-only snapshot storage for saved assessments.

Every save inserts a new row. The adapter only ever creates and queries
assessment records; existing rows are never updated or upserted, which keeps
the full revision history of each chart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dental_chart.models.assessment import ASSESSMENT_MODELS, ASSESSMENT_TABLES, AssessmentDomain
from dental_chart.services.clock import Clock, SystemClock

logger = logging.getLogger("dental_chart.store")

SortSpec = Sequence[tuple[str, bool]]

NEWEST_FIRST: SortSpec = (("created_at", True), ("id", True))


class StorageError(RuntimeError):
    pass


class DocumentStore(Protocol):
    def create(self, table: str, fields: Mapping[str, Any]) -> Any:
        raise NotImplementedError

    def query(
        self,
        table: str,
        filters: Mapping[str, Any],
        sort: SortSpec = (),
        limit: int | None = None,
    ) -> list[Any]:
        raise NotImplementedError

    def update(self, record: Any, mutator: Callable[[Any], None]) -> Any:
        raise NotImplementedError


class SqlAlchemyDocumentStore:
    """Document-store view of the assessment tables over one session."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self._models = {
            table: ASSESSMENT_MODELS[domain] for domain, table in ASSESSMENT_TABLES.items()
        }

    def _model(self, table: str):
        try:
            return self._models[table]
        except KeyError as exc:
            raise StorageError(f"Unknown table: {table}") from exc

    def create(self, table: str, fields: Mapping[str, Any]) -> Any:
        model = self._model(table)
        record = model(**fields)
        try:
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError(f"Failed to write {table}") from exc
        return record

    def query(
        self,
        table: str,
        filters: Mapping[str, Any],
        sort: SortSpec = (),
        limit: int | None = None,
    ) -> list[Any]:
        model = self._model(table)
        stmt = select(model)
        for field_name, value in filters.items():
            stmt = stmt.where(getattr(model, field_name) == value)
        for field_name, descending in sort:
            column = getattr(model, field_name)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            return list(self.session.scalars(stmt))
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError(f"Failed to read {table}") from exc

    def update(self, record: Any, mutator: Callable[[Any], None]) -> Any:
        mutator(record)
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError("Failed to update record") from exc
        return record


@dataclass(frozen=True)
class AssessmentSnapshot:
    id: int
    patient_id: str
    domain: AssessmentDomain
    encoded_payload: str
    created_at_ms: int
    updated_at_ms: int


def _to_snapshot(domain: AssessmentDomain, record: Any) -> AssessmentSnapshot:
    return AssessmentSnapshot(
        id=int(record.id),
        patient_id=str(record.patient_id),
        domain=domain,
        encoded_payload=record.data,
        created_at_ms=int(record.created_at),
        updated_at_ms=int(record.updated_at),
    )


class SnapshotHistory:
    """Newest-first history; each iteration runs a fresh query."""

    def __init__(
        self,
        store: SnapshotStore,
        patient_id: str,
        domain: AssessmentDomain,
        limit: int | None,
    ) -> None:
        self._store = store
        self.patient_id = patient_id
        self.domain = domain
        self.limit = limit

    def __iter__(self) -> Iterator[AssessmentSnapshot]:
        return iter(self._store._query(self.patient_id, self.domain, self.limit))


class SnapshotStore:
    def __init__(self, documents: DocumentStore, clock: Clock | None = None) -> None:
        self.documents = documents
        self.clock = clock or SystemClock()

    def append_snapshot(
        self, patient_id: str, domain: AssessmentDomain, encoded_payload: str
    ) -> int:
        domain = AssessmentDomain(domain)
        now = self.clock.now_ms()
        record = self.documents.create(
            ASSESSMENT_TABLES[domain],
            {
                "patient_id": patient_id,
                "data": encoded_payload,
                "created_at": now,
                "updated_at": now,
            },
        )
        logger.info("Appended %s snapshot %s for patient %s", domain.value, record.id, patient_id)
        return int(record.id)

    def latest_snapshot(
        self, patient_id: str, domain: AssessmentDomain
    ) -> AssessmentSnapshot | None:
        snapshots = self._query(patient_id, AssessmentDomain(domain), 1)
        return snapshots[0] if snapshots else None

    def all_snapshots(
        self, patient_id: str, domain: AssessmentDomain, *, limit: int | None = None
    ) -> SnapshotHistory:
        return SnapshotHistory(self, patient_id, AssessmentDomain(domain), limit)

    def _query(
        self, patient_id: str, domain: AssessmentDomain, limit: int | None
    ) -> list[AssessmentSnapshot]:
        records = self.documents.query(
            ASSESSMENT_TABLES[domain],
            {"patient_id": patient_id},
            NEWEST_FIRST,
            limit,
        )
        return [_to_snapshot(domain, record) for record in records]
