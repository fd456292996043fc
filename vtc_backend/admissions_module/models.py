import enum
from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base, enum_column, utcnow


class QualificationStatus(str, enum.Enum):
    PENDING = "pending"
    PROVISIONALLY_QUALIFIED = "provisionally_qualified"
    DOES_NOT_QUALIFY = "does_not_qualify"


class RegistrationStatus(str, enum.Enum):
    APPLIED = "applied"
    PROVISIONALLY_ADMITTED = "provisionally_admitted"
    REGISTERED = "registered"


class HostelApplicationStatus(str, enum.Enum):
    NOT_APPLIED = "not_applied"
    APPLIED = "applied"
    PROVISIONALLY_ALLOCATED = "provisionally_allocated"
    ALLOCATED = "allocated"


class ProvisioningStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    AUTO_PROVISIONED = "auto_provisioned"
    MANUALLY_PROVISIONED = "manually_provisioned"
    FAILED = "failed"


class TraineeStatus(str, enum.Enum):
    PROVISIONAL = "provisional"
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFERRED = "deferred"
    WITHDRAWN = "withdrawn"
    ARCHIVED = "archived"


class RegistrationRecordStatus(str, enum.Enum):
    FEE_PENDING = "fee_pending"
    REGISTERED = "registered"
    CANCELLED = "cancelled"


class TraineeApplication(Base):
    __tablename__ = "trainee_applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    application_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    national_id: Mapped[str | None] = mapped_column(String(40), nullable=True, index=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(String(16), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    qualification_id: Mapped[int | None] = mapped_column(ForeignKey("qualifications.id"), nullable=True)
    preferred_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    preferred_training_mode: Mapped[str] = mapped_column(String(32), default="fulltime", nullable=False)
    academic_year: Mapped[str | None] = mapped_column(String(16), nullable=True)
    needs_hostel_accommodation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    qualification_status: Mapped[QualificationStatus] = mapped_column(
        enum_column(QualificationStatus), default=QualificationStatus.PENDING, nullable=False
    )
    registration_status: Mapped[RegistrationStatus] = mapped_column(
        enum_column(RegistrationStatus), default=RegistrationStatus.APPLIED, nullable=False, index=True
    )
    hostel_application_status: Mapped[HostelApplicationStatus] = mapped_column(
        enum_column(HostelApplicationStatus), default=HostelApplicationStatus.NOT_APPLIED, nullable=False
    )
    account_provisioning_status: Mapped[ProvisioningStatus] = mapped_column(
        enum_column(ProvisioningStatus), default=ProvisioningStatus.NOT_STARTED, nullable=False
    )

    screened_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    screened_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    screening_remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Identity artifacts, filled in once the application fee clears.
    trainee_number: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    system_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    payment_cleared_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    payment_cleared_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Trainee(Base):
    __tablename__ = "trainees"
    __table_args__ = (UniqueConstraint("organization_id", "trainee_number", name="uq_trainee_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    application_id: Mapped[int | None] = mapped_column(ForeignKey("trainee_applications.id"), nullable=True)
    trainee_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    national_id: Mapped[str | None] = mapped_column(String(40), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str] = mapped_column(String(16), default="male", nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    qualification_id: Mapped[int | None] = mapped_column(ForeignKey("qualifications.id"), nullable=True)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    training_mode: Mapped[str] = mapped_column(String(32), default="fulltime", nullable=False)
    academic_year: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[TraineeStatus] = mapped_column(
        enum_column(TraineeStatus), default=TraineeStatus.PROVISIONAL, nullable=False, index=True
    )
    system_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Registration(Base):
    __tablename__ = "registrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    trainee_id: Mapped[int] = mapped_column(ForeignKey("trainees.id"), nullable=False, index=True)
    application_id: Mapped[int | None] = mapped_column(ForeignKey("trainee_applications.id"), nullable=True)
    qualification_id: Mapped[int] = mapped_column(ForeignKey("qualifications.id"), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(16), nullable=False)
    hostel_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[RegistrationRecordStatus] = mapped_column(
        enum_column(RegistrationRecordStatus), default=RegistrationRecordStatus.FEE_PENDING, nullable=False
    )
    registered_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    registered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    trainee: Mapped[Trainee] = relationship("Trainee")


class ProvisioningLog(Base):
    __tablename__ = "provisioning_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    application_id: Mapped[int | None] = mapped_column(ForeignKey("trainee_applications.id"), nullable=True)
    trainee_id: Mapped[int | None] = mapped_column(ForeignKey("trainees.id"), nullable=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    # manual (screening) or auto (fee clearance)
    trigger_type: Mapped[str] = mapped_column(String(16), nullable=False)
    result: Mapped[str] = mapped_column(String(32), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
