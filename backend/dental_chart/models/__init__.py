from dental_chart.models.base import Base
from dental_chart.models.assessment import (
    ASSESSMENT_MODELS,
    ASSESSMENT_TABLES,
    AssessmentDomain,
    DentitionAssessment,
    DentureAssessment,
    ExtractionsAssessment,
    FillingsAssessment,
    HygieneAssessment,
    ImplantAssessment,
)
