from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from ..schemas import ORMModel
from .models import (
    HostelApplicationStatus,
    ProvisioningStatus,
    QualificationStatus,
    RegistrationRecordStatus,
    RegistrationStatus,
    TraineeStatus,
)


class ApplicationCreateRequest(BaseModel):
    first_name: str = Field(min_length=1, max_length=120)
    last_name: str = Field(min_length=1, max_length=120)
    email: str | None = None
    phone: str | None = None
    national_id: str | None = None
    date_of_birth: date | None = None
    gender: Literal["male", "female"] | None = None
    address: str | None = None
    qualification_id: int | None = None
    preferred_level: int = Field(default=1, ge=1, le=10)
    preferred_training_mode: str = "fulltime"
    academic_year: str | None = None
    needs_hostel_accommodation: bool = False
    organization_id: int | None = None


class ApplicationUpdateRequest(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    national_id: str | None = None
    date_of_birth: date | None = None
    gender: Literal["male", "female"] | None = None
    address: str | None = None
    qualification_id: int | None = None
    preferred_level: int | None = Field(default=None, ge=1, le=10)
    preferred_training_mode: str | None = None
    academic_year: str | None = None
    needs_hostel_accommodation: bool | None = None


class ApplicationOut(ORMModel):
    id: int
    organization_id: int
    application_number: str
    first_name: str
    last_name: str
    full_name: str
    email: str | None
    phone: str | None
    national_id: str | None
    date_of_birth: date | None
    gender: str | None
    qualification_id: int | None
    preferred_level: int
    preferred_training_mode: str
    academic_year: str | None
    needs_hostel_accommodation: bool
    qualification_status: QualificationStatus
    registration_status: RegistrationStatus
    hostel_application_status: HostelApplicationStatus
    account_provisioning_status: ProvisioningStatus
    screening_remarks: str | None
    screened_at: datetime | None
    trainee_number: str | None
    system_email: str | None
    user_id: int | None
    created_at: datetime


class ScreenApplicationRequest(BaseModel):
    application_id: int
    qualification_status: Literal["provisionally_qualified", "does_not_qualify"]
    screening_remarks: str | None = None


class ScreenApplicationResponse(BaseModel):
    success: bool = True
    message: str
    qualification_status: QualificationStatus
    queue_entry_id: int | None = None


class RegisterTraineeRequest(BaseModel):
    application_id: int
    qualification_id: int
    academic_year: str | None = None


class RegisterTraineeResponse(BaseModel):
    success: bool = True
    message: str
    registration_id: int
    registration_status: RegistrationRecordStatus
    queue_entry_id: int


class TraineeOut(ORMModel):
    id: int
    organization_id: int
    application_id: int | None
    trainee_number: str
    first_name: str
    last_name: str
    full_name: str
    email: str | None
    phone: str | None
    gender: str
    qualification_id: int | None
    level: int
    training_mode: str
    academic_year: str
    status: TraineeStatus
    system_email: str | None
    user_id: int | None


class TraineeUpdateRequest(BaseModel):
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    level: int | None = Field(default=None, ge=1, le=10)
    training_mode: str | None = None
    qualification_id: int | None = None
    status: TraineeStatus | None = None


class RegistrationOut(ORMModel):
    id: int
    organization_id: int
    trainee_id: int
    application_id: int | None
    qualification_id: int
    academic_year: str
    hostel_required: bool
    status: RegistrationRecordStatus
    registered_by: int | None
    registered_at: datetime | None
    created_at: datetime


class ProvisioningLogOut(ORMModel):
    id: int
    application_id: int | None
    trainee_id: int | None
    user_id: int | None
    trigger_type: str
    result: str
    email: str | None
    error_message: str | None
    details: dict | None
    created_at: datetime
