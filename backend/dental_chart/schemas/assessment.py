from typing import Any

from pydantic import BaseModel, ConfigDict

from dental_chart.models.assessment import AssessmentDomain
from dental_chart.services.codec.common import PayloadShape


class AssessmentStateIn(BaseModel):
    state: dict[str, Any]


class DraftOut(BaseModel):
    domain: AssessmentDomain
    state: dict[str, Any]
    saved_at_ms: int


class SnapshotCreated(BaseModel):
    snapshot_id: int


class AssessmentReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    snapshot_id: int
    domain: AssessmentDomain
    created_at_ms: int
    summary: str
    details: list[str]
    shape: PayloadShape
    degraded: bool


class EditStateOut(BaseModel):
    domain: AssessmentDomain
    source: str
    snapshot_id: int | None = None
    state: dict[str, Any]
