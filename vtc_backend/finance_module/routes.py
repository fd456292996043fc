from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..admissions_module.services import get_own_trainee
from ..database import get_db_session
from ..middleware import ADMIN_ROLES, get_current_user, require_permission, require_roles
from ..rbac_module.models import AppRole, User
from .models import FeeCategory, QueueEntityType, QueueStatus
from .schemas import (
    AccountStatementOut,
    ClearFeeRequest,
    ClearFeeResponse,
    FeeTypeCreateRequest,
    FeeTypeOut,
    FeeTypeUpdateRequest,
    ProvisionTraineeRequest,
    ProvisionTraineeResponse,
    QueueEntryOut,
    QueueStatsOut,
)
from .services import (
    account_statement,
    clear_application_fee,
    clear_hostel_fee,
    clear_registration_fee,
    create_fee_type,
    list_fee_types,
    list_queue,
    provision_trainee_auth,
    queue_stats,
    update_fee_type,
)


router = APIRouter(prefix="/api/v1", tags=["Finance"])

debtor_staff = require_roles(*ADMIN_ROLES, AppRole.DEBTOR_OFFICER)
finance_viewers = require_permission("fee_management", "view", AppRole.DEBTOR_OFFICER, AppRole.REGISTRATION_OFFICER)


@router.get("/fee-types", response_model=list[FeeTypeOut])
def get_fee_types(
    category: FeeCategory | None = None,
    active_only: bool = False,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(finance_viewers),
):
    return list_fee_types(db, current_user, category, active_only)


@router.post("/fee-types", response_model=FeeTypeOut, status_code=status.HTTP_201_CREATED)
def add_fee_type(
    payload: FeeTypeCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("fee_management", "create", AppRole.DEBTOR_OFFICER)),
):
    return create_fee_type(db, current_user, payload)


@router.patch("/fee-types/{fee_type_id}", response_model=FeeTypeOut)
def edit_fee_type(
    fee_type_id: int,
    payload: FeeTypeUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("fee_management", "edit", AppRole.DEBTOR_OFFICER)),
):
    return update_fee_type(db, current_user, fee_type_id, payload)


@router.get("/financial-queue", response_model=list[QueueEntryOut])
def get_queue(
    status_filter: QueueStatus | None = None,
    entity_type: QueueEntityType | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(finance_viewers),
):
    return list_queue(db, current_user, status_filter=status_filter, entity_type=entity_type)


@router.get("/financial-queue/stats", response_model=QueueStatsOut)
def get_queue_stats(db: Session = Depends(get_db_session), current_user: User = Depends(finance_viewers)):
    return queue_stats(db, current_user)


@router.post("/functions/clear-application-fee", response_model=ClearFeeResponse)
def application_fee(
    payload: ClearFeeRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(debtor_staff),
):
    return clear_application_fee(db, current_user, payload)


@router.post("/functions/clear-registration-fee", response_model=ClearFeeResponse)
def registration_fee(
    payload: ClearFeeRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(debtor_staff),
):
    return clear_registration_fee(db, current_user, payload)


@router.post("/functions/clear-hostel-fee", response_model=ClearFeeResponse)
def hostel_fee(
    payload: ClearFeeRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(debtor_staff),
):
    return clear_hostel_fee(db, current_user, payload)


@router.post("/functions/provision-trainee-auth", response_model=ProvisionTraineeResponse)
def provision_login(
    payload: ProvisionTraineeRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(*ADMIN_ROLES, AppRole.REGISTRATION_OFFICER)),
):
    return provision_trainee_auth(db, current_user, payload)


@router.get("/accounts/{trainee_id}", response_model=AccountStatementOut)
def get_account(
    trainee_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(finance_viewers),
):
    return account_statement(db, current_user, trainee_id)


@router.get("/trainees/me/account", response_model=AccountStatementOut)
def my_account(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    trainee = get_own_trainee(db, current_user)
    return account_statement(db, current_user, trainee.id)
