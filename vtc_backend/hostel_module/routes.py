from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import ADMIN_ROLES, require_permission, require_roles, scope_to_organization
from ..rbac_module.models import AppRole, User
from .models import AllocationStatus, BedStatus, HostelBed, HostelBuilding, HostelFeeStatus, HostelRoom
from .schemas import (
    AllocationCreateRequest,
    AllocationOut,
    BedCreateRequest,
    BedOut,
    BedUpdateRequest,
    BuildingCreateRequest,
    BuildingOut,
    BuildingUpdateRequest,
    CheckoutRequest,
    GenerateFeesResponse,
    HostelFeeCreateRequest,
    HostelFeeOut,
    HostelFeePaymentRequest,
    OccupancyOut,
    OverdueCheckResponse,
    RoomCreateRequest,
    RoomOut,
    RoomUpdateRequest,
)
from .services import (
    add_beds,
    allocate_bed,
    check_out,
    check_overdue_fees,
    create_building,
    create_fee,
    create_room,
    generate_monthly_fees,
    list_allocations,
    list_fees,
    occupancy_summary,
    pay_fee,
    set_bed_status,
    update_building,
    update_room,
)


router = APIRouter(prefix="/api/v1/hostel", tags=["Hostel"])

hostel_viewers = require_permission("hostel_management", "view", AppRole.HOSTEL_COORDINATOR, AppRole.DEBTOR_OFFICER)
hostel_editors = require_permission("hostel_management", "edit", AppRole.HOSTEL_COORDINATOR)
fee_runners = require_roles(*ADMIN_ROLES, AppRole.HOSTEL_COORDINATOR, AppRole.DEBTOR_OFFICER)


@router.get("/buildings", response_model=list[BuildingOut])
def get_buildings(db: Session = Depends(get_db_session), current_user: User = Depends(hostel_viewers)):
    query = scope_to_organization(db.query(HostelBuilding), HostelBuilding, current_user)
    return query.order_by(HostelBuilding.building_code).all()


@router.post("/buildings", response_model=BuildingOut, status_code=status.HTTP_201_CREATED)
def add_building(
    payload: BuildingCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(hostel_editors),
):
    return create_building(db, current_user, payload)


@router.patch("/buildings/{building_id}", response_model=BuildingOut)
def edit_building(
    building_id: int,
    payload: BuildingUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(hostel_editors),
):
    return update_building(db, current_user, building_id, payload)


@router.get("/rooms", response_model=list[RoomOut])
def get_rooms(
    building_id: int | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(hostel_viewers),
):
    query = scope_to_organization(db.query(HostelRoom), HostelRoom, current_user)
    if building_id:
        query = query.filter(HostelRoom.building_id == building_id)
    return query.order_by(HostelRoom.building_id, HostelRoom.room_number).all()


@router.post("/rooms", response_model=RoomOut, status_code=status.HTTP_201_CREATED)
def add_room(payload: RoomCreateRequest, db: Session = Depends(get_db_session), current_user: User = Depends(hostel_editors)):
    return create_room(db, current_user, payload)


@router.patch("/rooms/{room_id}", response_model=RoomOut)
def edit_room(
    room_id: int,
    payload: RoomUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(hostel_editors),
):
    return update_room(db, current_user, room_id, payload)


@router.get("/beds", response_model=list[BedOut])
def get_beds(
    room_id: int | None = None,
    available_only: bool = False,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(hostel_viewers),
):
    query = scope_to_organization(db.query(HostelBed), HostelBed, current_user)
    if room_id:
        query = query.filter(HostelBed.room_id == room_id)
    if available_only:
        query = query.filter(HostelBed.status == BedStatus.AVAILABLE)
    return query.order_by(HostelBed.room_id, HostelBed.id).all()


@router.post("/beds", response_model=list[BedOut], status_code=status.HTTP_201_CREATED)
def create_beds(payload: BedCreateRequest, db: Session = Depends(get_db_session), current_user: User = Depends(hostel_editors)):
    return add_beds(db, current_user, payload)


@router.patch("/beds/{bed_id}", response_model=BedOut)
def edit_bed(
    bed_id: int,
    payload: BedUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(hostel_editors),
):
    return set_bed_status(db, current_user, bed_id, payload.status)


@router.get("/allocations", response_model=list[AllocationOut])
def get_allocations(
    status_filter: AllocationStatus | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(hostel_viewers),
):
    return list_allocations(db, current_user, status_filter)


@router.post("/allocations", response_model=AllocationOut, status_code=status.HTTP_201_CREATED)
def allocate(
    payload: AllocationCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(hostel_editors),
):
    return allocate_bed(db, current_user, payload)


@router.post("/allocations/{allocation_id}/checkout", response_model=AllocationOut)
def checkout(
    allocation_id: int,
    payload: CheckoutRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(hostel_editors),
):
    return check_out(db, current_user, allocation_id, payload)


@router.get("/occupancy", response_model=list[OccupancyOut])
def occupancy(db: Session = Depends(get_db_session), current_user: User = Depends(hostel_viewers)):
    return occupancy_summary(db, current_user)


@router.get("/fees", response_model=list[HostelFeeOut])
def get_fees(
    status_filter: HostelFeeStatus | None = None,
    trainee_id: int | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(hostel_viewers),
):
    return list_fees(db, current_user, status_filter=status_filter, trainee_id=trainee_id)


@router.post("/fees", response_model=HostelFeeOut, status_code=status.HTTP_201_CREATED)
def add_fee(payload: HostelFeeCreateRequest, db: Session = Depends(get_db_session), current_user: User = Depends(fee_runners)):
    return create_fee(db, current_user, payload)


@router.post("/fees/{fee_id}/pay", response_model=HostelFeeOut)
def record_fee_payment(
    fee_id: int,
    payload: HostelFeePaymentRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(fee_runners),
):
    return pay_fee(db, current_user, fee_id, payload)


functions_router = APIRouter(prefix="/api/v1/functions", tags=["Hostel"])


@functions_router.post("/generate-hostel-fees", response_model=GenerateFeesResponse)
def generate_fees(db: Session = Depends(get_db_session), current_user: User = Depends(fee_runners)):
    return generate_monthly_fees(db, current_user)


@functions_router.post("/check-overdue-hostel-fees", response_model=OverdueCheckResponse)
def overdue_fees(db: Session = Depends(get_db_session), current_user: User = Depends(fee_runners)):
    return check_overdue_fees(db, current_user)
