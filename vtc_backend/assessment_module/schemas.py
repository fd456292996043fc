from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from ..schemas import ORMModel
from .models import (
    ApprovalAction,
    CompetencyStatus,
    ComponentType,
    DurationUnit,
    GradebookStatus,
    QualificationApprovalStatus,
    QualificationType,
)


# --- Qualifications ---

class QualificationCreateRequest(BaseModel):
    qualification_title: str = Field(min_length=2, max_length=255)
    qualification_code: str = Field(min_length=1, max_length=64)
    qualification_type: QualificationType
    nqf_level: int = Field(ge=1, le=10)
    duration_value: int = Field(gt=0)
    duration_unit: DurationUnit
    description: str | None = None
    organization_id: int | None = None


class QualificationUpdateRequest(BaseModel):
    qualification_title: str | None = Field(default=None, min_length=2, max_length=255)
    qualification_type: QualificationType | None = None
    nqf_level: int | None = Field(default=None, ge=1, le=10)
    duration_value: int | None = Field(default=None, gt=0)
    duration_unit: DurationUnit | None = None
    description: str | None = None


class QualificationOut(ORMModel):
    id: int
    organization_id: int
    qualification_title: str
    qualification_code: str
    qualification_type: QualificationType
    nqf_level: int
    duration_value: int
    duration_unit: DurationUnit
    description: str | None
    status: QualificationApprovalStatus
    version_number: int
    approved_by: int | None
    approval_date: datetime | None
    rejection_reason: str | None
    created_at: datetime


class ApprovalDecisionRequest(BaseModel):
    comments: str | None = None


class QualificationApprovalOut(ORMModel):
    id: int
    qualification_id: int
    action: ApprovalAction
    performed_by: int
    comments: str | None
    created_at: datetime


class ImportRowError(BaseModel):
    row: int | None = None
    code: str
    error: str


class BulkImportResponse(BaseModel):
    success: int
    failed: int
    errors: list[ImportRowError]


# --- Unit standards ---

class UnitStandardCreateRequest(BaseModel):
    qualification_id: int
    unit_standard_code: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=2, max_length=255)
    credit_value: int = Field(default=0, ge=0)
    level: int | None = Field(default=None, ge=1, le=10)
    is_mandatory: bool = True


class UnitStandardUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=2, max_length=255)
    credit_value: int | None = Field(default=None, ge=0)
    level: int | None = Field(default=None, ge=1, le=10)
    is_mandatory: bool | None = None


class UnitStandardOut(ORMModel):
    id: int
    qualification_id: int
    unit_standard_code: str
    title: str
    credit_value: int
    level: int | None
    is_mandatory: bool


# --- Assessment results ---

class InitialiseResultsRequest(BaseModel):
    trainee_id: int


class InitialiseResultsResponse(BaseModel):
    success: bool = True
    message: str
    created: int


class RecordResultRequest(BaseModel):
    marks_obtained: float | None = Field(default=None, ge=0, le=100)
    competency_status: CompetencyStatus
    assessment_date: date | None = None
    remarks: str | None = None


class ApproveResultsRequest(BaseModel):
    result_ids: list[int] = Field(min_length=1)


class ApproveResultsResponse(BaseModel):
    success: bool = True
    message: str
    approved: int


class AssessmentResultOut(ORMModel):
    id: int
    trainee_id: int
    unit_standard_id: int
    qualification_id: int
    marks_obtained: float | None
    competency_status: CompetencyStatus
    assessed_by: int | None
    assessment_date: date | None
    remarks: str | None
    approved_by: int | None
    approved_at: datetime | None
    is_locked: bool


class CreditSummaryOut(BaseModel):
    trainee_id: int
    qualification_id: int
    total_units: int
    competent_units: int
    pending_units: int
    not_yet_competent_units: int
    total_credits: int
    credits_earned: int
    completion_percentage: float


# --- Gradebooks ---

class GradebookCreateRequest(BaseModel):
    qualification_id: int
    title: str = Field(min_length=2, max_length=255)
    academic_year: str = Field(min_length=4, max_length=16)
    intake_label: str | None = None
    level: int = Field(default=1, ge=1, le=10)
    test_weight: float = Field(default=40, ge=0, le=100)
    mock_weight: float = Field(default=60, ge=0, le=100)
    trainer_id: int | None = None


class GradebookUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=2, max_length=255)
    academic_year: str | None = None
    intake_label: str | None = None
    level: int | None = Field(default=None, ge=1, le=10)
    test_weight: float | None = Field(default=None, ge=0, le=100)
    mock_weight: float | None = Field(default=None, ge=0, le=100)


class GradebookOut(ORMModel):
    id: int
    organization_id: int
    qualification_id: int
    trainer_id: int
    academic_year: str
    intake_label: str | None
    level: int
    title: str
    test_weight: float
    mock_weight: float
    status: GradebookStatus
    is_locked: bool
    locked_at: datetime | None
    submitted_at: datetime | None
    hot_approved_at: datetime | None
    ac_approved_at: datetime | None
    finalised_at: datetime | None
    return_reason: str | None


class ComponentCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    component_type: ComponentType
    max_marks: float = Field(default=100, gt=0)
    sort_order: int = 0


class ComponentOut(ORMModel):
    id: int
    gradebook_id: int
    name: str
    component_type: ComponentType
    max_marks: float
    sort_order: int


class GradebookTraineesRequest(BaseModel):
    trainee_ids: list[int] = Field(min_length=1)


class GradebookTraineeOut(ORMModel):
    id: int
    gradebook_id: int
    trainee_id: int


class MarkEntry(BaseModel):
    component_id: int
    trainee_id: int
    marks_obtained: float | None = Field(default=None, ge=0)
    competency_status: CompetencyStatus = CompetencyStatus.PENDING


class MarksRequest(BaseModel):
    marks: list[MarkEntry] = Field(min_length=1)


class MarkOut(ORMModel):
    id: int
    gradebook_id: int
    component_id: int
    trainee_id: int
    marks_obtained: float | None
    competency_status: CompetencyStatus
    entered_by: int
    entered_at: datetime


class ReturnGradebookRequest(BaseModel):
    return_to: Literal["draft", "submitted"]
    reason: str | None = None


class CAScoreOut(BaseModel):
    trainee_id: int
    test_percentage: float | None
    mock_percentage: float | None
    ca_score: float | None
