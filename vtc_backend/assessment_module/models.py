import enum
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base, enum_column, utcnow


class QualificationType(str, enum.Enum):
    NVC = "nvc"
    DIPLOMA = "diploma"


class DurationUnit(str, enum.Enum):
    MONTHS = "months"
    YEARS = "years"


class QualificationApprovalStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalAction(str, enum.Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned"


class CompetencyStatus(str, enum.Enum):
    PENDING = "pending"
    COMPETENT = "competent"
    NOT_YET_COMPETENT = "not_yet_competent"


class GradebookStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    HOT_APPROVED = "hot_approved"
    AC_APPROVED = "ac_approved"
    FINALISED = "finalised"


class ComponentType(str, enum.Enum):
    TEST = "test"
    MOCK = "mock"
    ASSIGNMENT = "assignment"
    PRACTICAL = "practical"


class Qualification(Base):
    __tablename__ = "qualifications"
    __table_args__ = (UniqueConstraint("organization_id", "qualification_code", name="uq_qualification_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    qualification_title: Mapped[str] = mapped_column(String(255), nullable=False)
    qualification_code: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    qualification_type: Mapped[QualificationType] = mapped_column(enum_column(QualificationType), nullable=False)
    nqf_level: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_value: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_unit: Mapped[DurationUnit] = mapped_column(enum_column(DurationUnit), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[QualificationApprovalStatus] = mapped_column(
        enum_column(QualificationApprovalStatus), default=QualificationApprovalStatus.DRAFT, nullable=False, index=True
    )
    version_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approval_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    unit_standards: Mapped[list["UnitStandard"]] = relationship(
        "UnitStandard", back_populates="qualification", order_by="UnitStandard.unit_standard_code"
    )


class QualificationApproval(Base):
    __tablename__ = "qualification_approvals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    qualification_id: Mapped[int] = mapped_column(ForeignKey("qualifications.id"), nullable=False, index=True)
    action: Mapped[ApprovalAction] = mapped_column(enum_column(ApprovalAction), nullable=False)
    performed_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class UnitStandard(Base):
    __tablename__ = "unit_standards"
    __table_args__ = (UniqueConstraint("qualification_id", "unit_standard_code", name="uq_unit_standard_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    qualification_id: Mapped[int] = mapped_column(ForeignKey("qualifications.id"), nullable=False, index=True)
    unit_standard_code: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    credit_value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_mandatory: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    qualification: Mapped[Qualification] = relationship("Qualification", back_populates="unit_standards")


class AssessmentResult(Base):
    __tablename__ = "assessment_results"
    __table_args__ = (UniqueConstraint("trainee_id", "unit_standard_id", name="uq_result_per_unit"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    trainee_id: Mapped[int] = mapped_column(ForeignKey("trainees.id"), nullable=False, index=True)
    unit_standard_id: Mapped[int] = mapped_column(ForeignKey("unit_standards.id"), nullable=False)
    qualification_id: Mapped[int] = mapped_column(ForeignKey("qualifications.id"), nullable=False, index=True)
    marks_obtained: Mapped[float | None] = mapped_column(Float, nullable=True)
    competency_status: Mapped[CompetencyStatus] = mapped_column(
        enum_column(CompetencyStatus), default=CompetencyStatus.PENDING, nullable=False
    )
    assessed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    assessment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    unit_standard: Mapped[UnitStandard] = relationship("UnitStandard")


class Gradebook(Base):
    __tablename__ = "gradebooks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    qualification_id: Mapped[int] = mapped_column(ForeignKey("qualifications.id"), nullable=False)
    trainer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    academic_year: Mapped[str] = mapped_column(String(16), nullable=False)
    intake_label: Mapped[str | None] = mapped_column(String(64), nullable=True)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    test_weight: Mapped[float] = mapped_column(Float, default=40, nullable=False)
    mock_weight: Mapped[float] = mapped_column(Float, default=60, nullable=False)
    status: Mapped[GradebookStatus] = mapped_column(
        enum_column(GradebookStatus), default=GradebookStatus.DRAFT, nullable=False, index=True
    )
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    submitted_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    hot_approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    ac_approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finalised_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    return_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    components: Mapped[list["GradebookComponent"]] = relationship(
        "GradebookComponent", order_by="GradebookComponent.sort_order", cascade="all, delete-orphan"
    )
    trainees: Mapped[list["GradebookTrainee"]] = relationship("GradebookTrainee", cascade="all, delete-orphan")


class GradebookComponent(Base):
    __tablename__ = "gradebook_components"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    gradebook_id: Mapped[int] = mapped_column(ForeignKey("gradebooks.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    component_type: Mapped[ComponentType] = mapped_column(enum_column(ComponentType), nullable=False)
    max_marks: Mapped[float] = mapped_column(Float, default=100, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class GradebookTrainee(Base):
    __tablename__ = "gradebook_trainees"
    __table_args__ = (UniqueConstraint("gradebook_id", "trainee_id", name="uq_gradebook_trainee"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    gradebook_id: Mapped[int] = mapped_column(ForeignKey("gradebooks.id"), nullable=False, index=True)
    trainee_id: Mapped[int] = mapped_column(ForeignKey("trainees.id"), nullable=False)


class GradebookMark(Base):
    __tablename__ = "gradebook_marks"
    __table_args__ = (UniqueConstraint("component_id", "trainee_id", name="uq_mark_per_component"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    gradebook_id: Mapped[int] = mapped_column(ForeignKey("gradebooks.id"), nullable=False, index=True)
    component_id: Mapped[int] = mapped_column(ForeignKey("gradebook_components.id"), nullable=False)
    trainee_id: Mapped[int] = mapped_column(ForeignKey("trainees.id"), nullable=False)
    marks_obtained: Mapped[float | None] = mapped_column(Float, nullable=True)
    competency_status: Mapped[CompetencyStatus] = mapped_column(
        enum_column(CompetencyStatus), default=CompetencyStatus.PENDING, nullable=False
    )
    entered_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    entered_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
