from __future__ import annotations

import enum

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from dental_chart.models.base import Base, EpochMillisMixin


class AssessmentDomain(str, enum.Enum):
    dentition = "dentition"
    hygiene = "hygiene"
    fillings = "fillings"
    extractions = "extractions"
    denture = "denture"
    implant = "implant"


class AssessmentRecordMixin(EpochMillisMixin):
    """One immutable row per saved chart. Rows are inserted, never updated."""

    @declared_attr
    def id(cls) -> Mapped[int]:
        return mapped_column(Integer, primary_key=True, autoincrement=True)

    @declared_attr
    def patient_id(cls) -> Mapped[str]:
        return mapped_column(String(64), nullable=False, index=True)

    @declared_attr
    def data(cls) -> Mapped[str]:
        return mapped_column(Text, nullable=False)


class DentitionAssessment(AssessmentRecordMixin, Base):
    __tablename__ = "dentition_assessments"


class HygieneAssessment(AssessmentRecordMixin, Base):
    __tablename__ = "hygiene_assessments"


class FillingsAssessment(AssessmentRecordMixin, Base):
    __tablename__ = "fillings_assessments"


class ExtractionsAssessment(AssessmentRecordMixin, Base):
    __tablename__ = "extractions_assessments"


class DentureAssessment(AssessmentRecordMixin, Base):
    __tablename__ = "denture_assessments"


class ImplantAssessment(AssessmentRecordMixin, Base):
    __tablename__ = "implant_assessments"


ASSESSMENT_MODELS: dict[AssessmentDomain, type[AssessmentRecordMixin]] = {
    AssessmentDomain.dentition: DentitionAssessment,
    AssessmentDomain.hygiene: HygieneAssessment,
    AssessmentDomain.fillings: FillingsAssessment,
    AssessmentDomain.extractions: ExtractionsAssessment,
    AssessmentDomain.denture: DentureAssessment,
    AssessmentDomain.implant: ImplantAssessment,
}

ASSESSMENT_TABLES: dict[AssessmentDomain, str] = {
    domain: model.__tablename__ for domain, model in ASSESSMENT_MODELS.items()
}
