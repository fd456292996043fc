from datetime import date, datetime

from pydantic import BaseModel, Field

from ..schemas import ORMModel
from .models import AllocationStatus, BedStatus, GenderType, HostelFeeStatus, RoomStatus


class BuildingCreateRequest(BaseModel):
    building_code: str = Field(min_length=1, max_length=32)
    building_name: str = Field(min_length=2, max_length=255)
    gender_type: GenderType = GenderType.MIXED
    total_floors: int = Field(default=1, ge=1)
    location: str | None = None
    warden_name: str | None = None
    warden_phone: str | None = None
    organization_id: int | None = None


class BuildingUpdateRequest(BaseModel):
    building_name: str | None = None
    gender_type: GenderType | None = None
    total_floors: int | None = Field(default=None, ge=1)
    location: str | None = None
    warden_name: str | None = None
    warden_phone: str | None = None
    active: bool | None = None


class BuildingOut(ORMModel):
    id: int
    organization_id: int
    building_code: str
    building_name: str
    gender_type: GenderType
    total_floors: int
    location: str | None
    warden_name: str | None
    warden_phone: str | None
    active: bool


class RoomCreateRequest(BaseModel):
    building_id: int
    room_number: str = Field(min_length=1, max_length=32)
    floor: int = Field(default=0, ge=0)
    room_type: str = "shared"
    capacity: int = Field(default=1, ge=1)
    monthly_fee: float = Field(default=0, ge=0)


class RoomUpdateRequest(BaseModel):
    room_type: str | None = None
    capacity: int | None = Field(default=None, ge=1)
    monthly_fee: float | None = Field(default=None, ge=0)
    status: RoomStatus | None = None


class RoomOut(ORMModel):
    id: int
    building_id: int
    room_number: str
    floor: int
    room_type: str
    capacity: int
    monthly_fee: float
    status: RoomStatus


class BedCreateRequest(BaseModel):
    room_id: int
    count: int = Field(default=1, ge=1, le=50)


class BedUpdateRequest(BaseModel):
    status: BedStatus


class BedOut(ORMModel):
    id: int
    room_id: int
    bed_number: str
    status: BedStatus


class AllocationCreateRequest(BaseModel):
    trainee_id: int
    bed_id: int
    check_in_date: date | None = None
    expected_check_out_date: date | None = None
    monthly_fee: float | None = Field(default=None, ge=0)
    notes: str | None = None


class CheckoutRequest(BaseModel):
    check_out_date: date | None = None
    notes: str | None = None


class AllocationOut(ORMModel):
    id: int
    organization_id: int
    trainee_id: int
    building_id: int
    room_id: int
    bed_id: int
    check_in_date: date
    expected_check_out_date: date | None
    actual_check_out_date: date | None
    monthly_fee: float
    status: AllocationStatus
    notes: str | None


class HostelFeeCreateRequest(BaseModel):
    trainee_id: int
    allocation_id: int | None = None
    fee_month: date
    fee_amount: float = Field(gt=0)
    due_date: date
    notes: str | None = None


class HostelFeePaymentRequest(BaseModel):
    amount: float
    payment_method: str = Field(min_length=1, max_length=40)
    notes: str | None = None


class HostelFeeOut(ORMModel):
    id: int
    organization_id: int
    trainee_id: int
    allocation_id: int | None
    fee_month: date
    fee_amount: float
    amount_paid: float
    balance: float
    due_date: date
    paid_date: date | None
    payment_status: HostelFeeStatus
    payment_method: str | None
    notes: str | None
    created_at: datetime


class GenerateFeesResponse(BaseModel):
    success: bool = True
    message: str
    generated: int
    fee_month: date


class OverdueCheckResponse(BaseModel):
    success: bool = True
    message: str
    overdue_count: int
    organizations_notified: int = 0
    notification_failures: int = 0


class OccupancyOut(BaseModel):
    building_id: int
    building_name: str
    total_beds: int
    occupied_beds: int
    available_beds: int
    occupancy_rate: float
