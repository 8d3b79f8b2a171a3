import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import ValidationError

from dental_chart.core.settings import settings
from dental_chart.deps import get_assessment_service, get_draft_autosaver, get_draft_cache
from dental_chart.models.assessment import AssessmentDomain
from dental_chart.schemas.assessment import (
    AssessmentReportOut,
    AssessmentStateIn,
    DraftOut,
    EditStateOut,
    SnapshotCreated,
)
from dental_chart.services.assessment_flow import AssessmentService
from dental_chart.services.codec.registry import coerce_state
from dental_chart.services.drafts import DraftAutosaver, DraftCache, DraftKey
from dental_chart.services.history_csv import history_csv_text
from dental_chart.services.snapshot_store import StorageError

router = APIRouter(prefix="/patients/{patient_id}/assessments/{domain}", tags=["assessments"])
logger = logging.getLogger("dental_chart.assessments")


def _validated_state(domain: AssessmentDomain, payload: AssessmentStateIn):
    try:
        return coerce_state(domain, payload.state)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False),
        )


@router.get("/draft", response_model=DraftOut)
def get_draft(
    patient_id: str,
    domain: AssessmentDomain,
    drafts: DraftCache = Depends(get_draft_cache),
):
    entry = drafts.entry(DraftKey(patient_id, domain))
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No draft")
    state = coerce_state(domain, entry.state)
    return DraftOut(domain=domain, state=state.model_dump(), saved_at_ms=entry.saved_at_ms)


@router.put("/draft", status_code=status.HTTP_202_ACCEPTED)
def put_draft(
    patient_id: str,
    domain: AssessmentDomain,
    payload: AssessmentStateIn,
    debounce: bool = Query(default=False),
    drafts: DraftCache = Depends(get_draft_cache),
    autosaver: DraftAutosaver = Depends(get_draft_autosaver),
):
    state = _validated_state(domain, payload)
    key = DraftKey(patient_id, domain)
    if debounce:
        autosaver.schedule(key, state)
    else:
        autosaver.cancel(key)
        drafts.save_draft(key, state)
    return {"status": "scheduled" if debounce else "stored"}


@router.delete("/draft", status_code=status.HTTP_204_NO_CONTENT)
def delete_draft(
    patient_id: str,
    domain: AssessmentDomain,
    drafts: DraftCache = Depends(get_draft_cache),
    autosaver: DraftAutosaver = Depends(get_draft_autosaver),
):
    key = DraftKey(patient_id, domain)
    autosaver.cancel(key)
    drafts.clear_draft(key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("", response_model=SnapshotCreated, status_code=status.HTTP_201_CREATED)
def save_assessment(
    patient_id: str,
    domain: AssessmentDomain,
    payload: AssessmentStateIn,
    service: AssessmentService = Depends(get_assessment_service),
):
    state = _validated_state(domain, payload)
    try:
        snapshot_id = service.save(patient_id, domain, state)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assessment could not be saved; the draft was kept",
        )
    return SnapshotCreated(snapshot_id=snapshot_id)


@router.get("/latest", response_model=AssessmentReportOut)
def latest_assessment(
    patient_id: str,
    domain: AssessmentDomain,
    service: AssessmentService = Depends(get_assessment_service),
):
    entry = service.latest_report(patient_id, domain)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No saved assessment")
    return entry


@router.get("/history", response_model=list[AssessmentReportOut])
def assessment_history(
    patient_id: str,
    domain: AssessmentDomain,
    limit: int = Query(default=settings.history_page_limit, ge=1),
    service: AssessmentService = Depends(get_assessment_service),
):
    return service.history(patient_id, domain, limit=limit)


@router.get("/history.csv")
def assessment_history_csv(
    patient_id: str,
    domain: AssessmentDomain,
    service: AssessmentService = Depends(get_assessment_service),
):
    entries = service.history(patient_id, domain)
    filename = f"{domain.value}-history-{patient_id}.csv"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    logger.info("history export: domain=%s rows=%d", domain.value, len(entries))
    return Response(content=history_csv_text(entries), media_type="text/csv", headers=headers)


@router.get("/edit-state", response_model=EditStateOut)
def edit_state(
    patient_id: str,
    domain: AssessmentDomain,
    service: AssessmentService = Depends(get_assessment_service),
):
    editing = service.load_for_editing(patient_id, domain)
    return EditStateOut(
        domain=domain,
        source=editing.source,
        snapshot_id=editing.snapshot_id,
        state=editing.state.model_dump(),
    )


drafts_router = APIRouter(prefix="/drafts", tags=["assessments"])


@drafts_router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def clear_all_drafts(
    drafts: DraftCache = Depends(get_draft_cache),
    autosaver: DraftAutosaver = Depends(get_draft_autosaver),
):
    autosaver.cancel_all()
    drafts.clear_all()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
