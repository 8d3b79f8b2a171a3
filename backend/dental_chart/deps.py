from fastapi import Depends, Request
from sqlalchemy.orm import Session

from dental_chart.db.session import get_db
from dental_chart.services.assessment_flow import AssessmentService
from dental_chart.services.drafts import DraftAutosaver, DraftCache
from dental_chart.services.snapshot_store import SnapshotStore, SqlAlchemyDocumentStore


def get_draft_cache(request: Request) -> DraftCache:
    return request.app.state.draft_cache


def get_draft_autosaver(request: Request) -> DraftAutosaver:
    return request.app.state.draft_autosaver


def get_snapshot_store(db: Session = Depends(get_db)) -> SnapshotStore:
    return SnapshotStore(SqlAlchemyDocumentStore(db))


def get_assessment_service(
    store: SnapshotStore = Depends(get_snapshot_store),
    drafts: DraftCache = Depends(get_draft_cache),
    autosaver: DraftAutosaver = Depends(get_draft_autosaver),
) -> AssessmentService:
    return AssessmentService(store, drafts, autosaver)
