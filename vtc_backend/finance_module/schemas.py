from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from ..admissions_module.models import ProvisioningStatus
from ..schemas import ORMModel
from .models import FeeCategory, QueueEntityType, QueueStatus, TransactionType


class FeeTypeCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    category: FeeCategory
    amount: float = Field(ge=0)
    description: str | None = None
    organization_id: int | None = None


class FeeTypeUpdateRequest(BaseModel):
    name: str | None = None
    amount: float | None = Field(default=None, ge=0)
    description: str | None = None
    active: bool | None = None


class FeeTypeOut(ORMModel):
    id: int
    organization_id: int
    name: str
    category: FeeCategory
    description: str | None
    amount: float
    active: bool


class QueueEntryOut(ORMModel):
    id: int
    organization_id: int
    entity_type: QueueEntityType
    entity_id: int
    fee_type_id: int | None
    description: str | None
    amount: float
    amount_paid: float
    balance: float
    status: QueueStatus
    payment_method: str | None
    requested_by: int | None
    cleared_by: int | None
    cleared_at: datetime | None
    created_at: datetime


class QueueStatsOut(BaseModel):
    pending: int = 0
    partial: int = 0
    cleared: int = 0
    pending_by_entity: dict[str, int] = Field(default_factory=dict)
    amount_outstanding: float = 0
    cleared_today: int = 0


class ClearFeeRequest(BaseModel):
    queue_id: int
    amount: float
    payment_method: str = Field(min_length=1, max_length=40)
    notes: str | None = None


class ProvisioningOut(BaseModel):
    user_id: int
    trainee_id: int
    trainee_number: str
    system_email: str
    account_existed: bool


class ClearFeeResponse(BaseModel):
    success: bool = True
    message: str
    payment_status: QueueStatus
    amount_paid: float
    balance: float
    provisioning: ProvisioningOut | None = None
    final_status: str | None = None
    warning: str | None = None


class TransactionOut(ORMModel):
    id: int
    fee_type_id: int | None
    transaction_type: TransactionType
    amount: float
    balance_after: float
    payment_method: str | None
    description: str | None
    notes: str | None
    created_at: datetime


class AccountStatementOut(ORMModel):
    id: int
    organization_id: int
    trainee_id: int | None
    application_id: int | None
    total_fees: float
    total_paid: float
    balance: float
    transactions: list[TransactionOut]


class ProvisionTraineeRequest(BaseModel):
    trainee_id: int | None = None
    application_id: int | None = None
    trigger_type: Literal["auto", "manual", "bulk"] = "manual"
    force_provision: bool = False


class ProvisionTraineeResponse(BaseModel):
    success: bool = True
    message: str
    user_id: int
    email: str
    account_existed: bool
    provisioning_status: ProvisioningStatus | None = None
