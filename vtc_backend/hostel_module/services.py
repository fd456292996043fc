import logging
from collections import defaultdict
from datetime import date

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..admissions_module.models import HostelApplicationStatus, Trainee, TraineeApplication
from ..audit import log_audit_event, notify
from ..config import settings
from ..database import today
from ..finance_module.models import FeeCategory, QueueEntityType, TransactionType
from ..finance_module.schemas import ClearFeeRequest
from ..finance_module.services import (
    apply_hostel_fee_payment,
    clear_hostel_fee,
    ensure_account,
    find_fee_type,
    open_queue_entry,
    raise_queue_entry,
    record_transaction,
)
from ..mailer import MailDispatchError, overdue_fees_body, send_email, smtp_configured
from ..middleware import get_scoped_or_404, resolve_organization_id, scope_to_organization
from ..rbac_module.models import AppRole, Organization, User
from .models import (
    AllocationStatus,
    BedStatus,
    GenderType,
    HostelAllocation,
    HostelBed,
    HostelBuilding,
    HostelFee,
    HostelFeeStatus,
    HostelRoom,
    RoomStatus,
)
from .schemas import (
    AllocationCreateRequest,
    BedCreateRequest,
    BuildingCreateRequest,
    BuildingUpdateRequest,
    CheckoutRequest,
    HostelFeeCreateRequest,
    HostelFeePaymentRequest,
    RoomCreateRequest,
    RoomUpdateRequest,
)


logger = logging.getLogger(__name__)


# --- Buildings, rooms, beds ---

def create_building(db: Session, actor: User, payload: BuildingCreateRequest) -> HostelBuilding:
    organization_id = resolve_organization_id(actor, payload.organization_id)
    code = payload.building_code.strip().upper()
    exists = (
        db.query(HostelBuilding)
        .filter(HostelBuilding.organization_id == organization_id, HostelBuilding.building_code == code)
        .first()
    )
    if exists:
        raise HTTPException(status_code=409, detail="Building code already exists")
    building = HostelBuilding(
        organization_id=organization_id,
        building_code=code,
        **payload.model_dump(exclude={"organization_id", "building_code"}),
    )
    db.add(building)
    db.commit()
    db.refresh(building)
    return building


def update_building(db: Session, actor: User, building_id: int, payload: BuildingUpdateRequest) -> HostelBuilding:
    building = get_scoped_or_404(db, HostelBuilding, building_id, actor, "Building")
    for key, value in payload.model_dump(exclude_none=True).items():
        setattr(building, key, value)
    db.commit()
    db.refresh(building)
    return building


def create_room(db: Session, actor: User, payload: RoomCreateRequest) -> HostelRoom:
    building = get_scoped_or_404(db, HostelBuilding, payload.building_id, actor, "Building")
    exists = (
        db.query(HostelRoom)
        .filter(HostelRoom.building_id == building.id, HostelRoom.room_number == payload.room_number)
        .first()
    )
    if exists:
        raise HTTPException(status_code=409, detail="Room number already exists in this building")
    if payload.floor >= building.total_floors:
        raise HTTPException(status_code=400, detail="Floor is outside the building")
    room = HostelRoom(organization_id=building.organization_id, **payload.model_dump())
    db.add(room)
    db.commit()
    db.refresh(room)
    return room


def update_room(db: Session, actor: User, room_id: int, payload: RoomUpdateRequest) -> HostelRoom:
    room = get_scoped_or_404(db, HostelRoom, room_id, actor, "Room")
    changes = payload.model_dump(exclude_none=True)
    if "capacity" in changes and changes["capacity"] < len(room.beds):
        raise HTTPException(status_code=400, detail="Capacity cannot be lower than the number of beds")
    for key, value in changes.items():
        setattr(room, key, value)
    db.commit()
    db.refresh(room)
    return room


def add_beds(db: Session, actor: User, payload: BedCreateRequest) -> list[HostelBed]:
    room = get_scoped_or_404(db, HostelRoom, payload.room_id, actor, "Room")
    existing = len(room.beds)
    if existing + payload.count > room.capacity:
        raise HTTPException(
            status_code=400,
            detail=f"Room capacity is {room.capacity}; it already has {existing} bed(s)",
        )
    beds = [
        HostelBed(organization_id=room.organization_id, room_id=room.id, bed_number=str(existing + offset))
        for offset in range(1, payload.count + 1)
    ]
    db.add_all(beds)
    db.commit()
    for bed in beds:
        db.refresh(bed)
    return beds


def set_bed_status(db: Session, actor: User, bed_id: int, new_status: BedStatus) -> HostelBed:
    bed = get_scoped_or_404(db, HostelBed, bed_id, actor, "Bed")
    if bed.status == BedStatus.OCCUPIED or new_status == BedStatus.OCCUPIED:
        raise HTTPException(status_code=400, detail="Occupancy is changed through allocations")
    bed.status = new_status
    db.commit()
    db.refresh(bed)
    return bed


def _refresh_room_status(room: HostelRoom) -> None:
    if room.status in (RoomStatus.MAINTENANCE, RoomStatus.RESERVED):
        return
    if room.beds and all(bed.status == BedStatus.OCCUPIED for bed in room.beds):
        room.status = RoomStatus.OCCUPIED
    else:
        room.status = RoomStatus.AVAILABLE


# --- Allocations ---

def allocate_bed(db: Session, actor: User, payload: AllocationCreateRequest) -> HostelAllocation:
    trainee = get_scoped_or_404(db, Trainee, payload.trainee_id, actor, "Trainee")
    bed = get_scoped_or_404(db, HostelBed, payload.bed_id, actor, "Bed")
    if bed.organization_id != trainee.organization_id:
        raise HTTPException(status_code=400, detail="Bed and trainee belong to different organizations")
    if bed.status != BedStatus.AVAILABLE:
        raise HTTPException(status_code=400, detail="Bed is not available")

    housed = (
        db.query(HostelAllocation)
        .filter(HostelAllocation.trainee_id == trainee.id, HostelAllocation.status == AllocationStatus.ACTIVE)
        .first()
    )
    if housed:
        raise HTTPException(status_code=400, detail="Trainee already has an active allocation")

    room = bed.room
    building = room.building
    if not building.active:
        raise HTTPException(status_code=400, detail="Building is inactive")
    if room.status == RoomStatus.MAINTENANCE:
        raise HTTPException(status_code=400, detail="Room is under maintenance")
    if building.gender_type != GenderType.MIXED and trainee.gender != building.gender_type.value:
        raise HTTPException(status_code=400, detail=f"Building is reserved for {building.gender_type.value} trainees")

    allocation = HostelAllocation(
        organization_id=trainee.organization_id,
        trainee_id=trainee.id,
        building_id=building.id,
        room_id=room.id,
        bed_id=bed.id,
        check_in_date=payload.check_in_date or today(),
        expected_check_out_date=payload.expected_check_out_date,
        monthly_fee=payload.monthly_fee if payload.monthly_fee is not None else room.monthly_fee,
        status=AllocationStatus.ACTIVE,
        notes=payload.notes,
        allocated_by=actor.id,
    )
    db.add(allocation)
    bed.status = BedStatus.OCCUPIED
    _refresh_room_status(room)

    if trainee.application_id:
        application = db.get(TraineeApplication, trainee.application_id)
        if application is not None:
            application.hostel_application_status = HostelApplicationStatus.ALLOCATED

    db.commit()
    db.refresh(allocation)
    logger.info("Trainee %s allocated bed %s in %s", trainee.trainee_number, bed.bed_number, building.building_code)
    return allocation


def check_out(db: Session, actor: User, allocation_id: int, payload: CheckoutRequest) -> HostelAllocation:
    allocation = get_scoped_or_404(db, HostelAllocation, allocation_id, actor, "Allocation")
    if allocation.status != AllocationStatus.ACTIVE:
        raise HTTPException(status_code=400, detail="Only active allocations can be checked out")
    allocation.status = AllocationStatus.CHECKED_OUT
    allocation.actual_check_out_date = payload.check_out_date or today()
    if payload.notes:
        allocation.notes = payload.notes
    allocation.bed.status = BedStatus.AVAILABLE
    _refresh_room_status(allocation.bed.room)
    db.commit()
    db.refresh(allocation)
    return allocation


def list_allocations(db: Session, actor: User, status_filter: AllocationStatus | None = None) -> list[HostelAllocation]:
    query = scope_to_organization(db.query(HostelAllocation), HostelAllocation, actor)
    if status_filter:
        query = query.filter(HostelAllocation.status == status_filter)
    return query.order_by(HostelAllocation.created_at.desc(), HostelAllocation.id.desc()).all()


def occupancy_summary(db: Session, actor: User) -> list[dict]:
    summary = []
    buildings = scope_to_organization(db.query(HostelBuilding), HostelBuilding, actor).order_by(HostelBuilding.building_code)
    for building in buildings:
        beds = [bed for room in building.rooms for bed in room.beds]
        occupied = sum(1 for bed in beds if bed.status == BedStatus.OCCUPIED)
        available = sum(1 for bed in beds if bed.status == BedStatus.AVAILABLE)
        summary.append(
            {
                "building_id": building.id,
                "building_name": building.building_name,
                "total_beds": len(beds),
                "occupied_beds": occupied,
                "available_beds": available,
                "occupancy_rate": round(occupied * 100 / len(beds), 1) if beds else 0.0,
            }
        )
    return summary


# --- Fees ---

def _month_start(reference: date) -> date:
    return reference.replace(day=1)


def _due_date_for(fee_month: date) -> date:
    return fee_month.replace(day=min(max(settings.hostel_fee_due_day, 1), 28))


def _book_fee(db: Session, actor: User, fee: HostelFee) -> None:
    """Charges the fee to the trainee account and raises its HOSTEL queue entry."""
    fee_type = find_fee_type(db, fee.organization_id, FeeCategory.HOSTEL)
    account = ensure_account(db, fee.organization_id, trainee_id=fee.trainee_id)
    record_transaction(
        db,
        account,
        transaction_type=TransactionType.CHARGE,
        amount=fee.fee_amount,
        fee_type_id=fee_type.id if fee_type else None,
        description=f"Hostel fee {fee.fee_month:%Y-%m}",
        processed_by=actor.id,
    )
    raise_queue_entry(
        db,
        organization_id=fee.organization_id,
        entity_type=QueueEntityType.HOSTEL,
        entity_id=fee.id,
        amount=fee.fee_amount,
        description=f"Hostel fee for {fee.fee_month:%B %Y}",
        requested_by=actor.id,
        fee_type_id=fee_type.id if fee_type else None,
    )


def create_fee(db: Session, actor: User, payload: HostelFeeCreateRequest) -> HostelFee:
    trainee = get_scoped_or_404(db, Trainee, payload.trainee_id, actor, "Trainee")
    if payload.allocation_id is not None:
        allocation = get_scoped_or_404(db, HostelAllocation, payload.allocation_id, actor, "Allocation")
        if allocation.trainee_id != trainee.id:
            raise HTTPException(status_code=400, detail="Allocation belongs to another trainee")
    fee = HostelFee(
        organization_id=trainee.organization_id,
        trainee_id=trainee.id,
        allocation_id=payload.allocation_id,
        fee_month=_month_start(payload.fee_month),
        fee_amount=round(payload.fee_amount, 2),
        amount_paid=0,
        balance=round(payload.fee_amount, 2),
        due_date=payload.due_date,
        payment_status=HostelFeeStatus.PENDING,
        notes=payload.notes,
    )
    db.add(fee)
    db.flush()
    _book_fee(db, actor, fee)
    db.commit()
    db.refresh(fee)
    return fee


def list_fees(
    db: Session,
    actor: User,
    *,
    status_filter: HostelFeeStatus | None = None,
    trainee_id: int | None = None,
) -> list[HostelFee]:
    query = scope_to_organization(db.query(HostelFee), HostelFee, actor)
    if status_filter:
        query = query.filter(HostelFee.payment_status == status_filter)
    if trainee_id:
        query = query.filter(HostelFee.trainee_id == trainee_id)
    return query.order_by(HostelFee.fee_month.desc(), HostelFee.id.desc()).all()


def pay_fee(db: Session, actor: User, fee_id: int, payload: HostelFeePaymentRequest) -> HostelFee:
    fee = get_scoped_or_404(db, HostelFee, fee_id, actor, "Hostel fee")
    if fee.payment_status == HostelFeeStatus.PAID:
        raise HTTPException(status_code=400, detail="This fee has already been paid")

    entry = open_queue_entry(db, QueueEntityType.HOSTEL, fee.id)
    if entry is not None:
        # Keeps the financial queue and the fee record in step.
        clear_hostel_fee(
            db,
            actor,
            ClearFeeRequest(
                queue_id=entry.id, amount=payload.amount, payment_method=payload.payment_method, notes=payload.notes
            ),
        )
    else:
        apply_hostel_fee_payment(fee, payload.amount, payload.payment_method)
        record_transaction(
            db,
            ensure_account(db, fee.organization_id, trainee_id=fee.trainee_id),
            transaction_type=TransactionType.PAYMENT,
            amount=payload.amount,
            fee_type_id=None,
            description=f"Hostel fee payment {fee.fee_month:%Y-%m}",
            processed_by=actor.id,
            payment_method=payload.payment_method,
            notes=payload.notes,
        )
        log_audit_event(
            db,
            action="hostel_fee_payment",
            table_name="hostel_fees",
            record_id=fee.id,
            new_data={"amount": payload.amount, "status": fee.payment_status.value},
            user_id=actor.id,
            organization_id=fee.organization_id,
        )
        db.commit()
    db.refresh(fee)
    return fee


def generate_monthly_fees(db: Session, actor: User, reference: date | None = None) -> dict:
    fee_month = _month_start(reference or today())
    due_date = _due_date_for(fee_month)

    allocations = scope_to_organization(
        db.query(HostelAllocation).filter(HostelAllocation.status == AllocationStatus.ACTIVE),
        HostelAllocation,
        actor,
    ).all()
    if not allocations:
        return {"success": True, "message": "No active allocations found", "generated": 0, "fee_month": fee_month}

    billed = db.query(HostelFee.allocation_id, HostelFee.trainee_id).filter(HostelFee.fee_month == fee_month).all()
    billed_allocations = {row.allocation_id for row in billed if row.allocation_id}
    billed_trainees = {row.trainee_id for row in billed}

    generated: dict[int, list[HostelFee]] = defaultdict(list)
    for allocation in allocations:
        if allocation.id in billed_allocations or allocation.trainee_id in billed_trainees:
            continue
        if allocation.monthly_fee <= 0:
            continue
        fee = HostelFee(
            organization_id=allocation.organization_id,
            trainee_id=allocation.trainee_id,
            allocation_id=allocation.id,
            fee_month=fee_month,
            fee_amount=allocation.monthly_fee,
            amount_paid=0,
            balance=allocation.monthly_fee,
            due_date=due_date,
            payment_status=HostelFeeStatus.PENDING,
            notes=f"Auto-generated fee for {fee_month:%B %Y}",
        )
        db.add(fee)
        db.flush()
        _book_fee(db, actor, fee)
        generated[allocation.organization_id].append(fee)

    total = sum(len(fees) for fees in generated.values())
    if total == 0:
        return {
            "success": True,
            "message": "All allocations already have fees for this month",
            "generated": 0,
            "fee_month": fee_month,
        }

    for organization_id, fees in generated.items():
        amount = sum(fee.fee_amount for fee in fees)
        notify(
            db,
            organization_id=organization_id,
            role=AppRole.HOSTEL_COORDINATOR.value,
            type="fee_generated",
            title="Monthly Hostel Fees Generated",
            message=f"{len(fees)} hostel fee records for {fee_month:%B %Y} have been generated. Total amount: {amount:.2f}",
        )
    db.commit()
    logger.info("Generated %d hostel fee(s) for %s", total, fee_month)
    return {
        "success": True,
        "message": f"Generated {total} hostel fee record(s) for {fee_month:%B %Y}",
        "generated": total,
        "fee_month": fee_month,
    }


def check_overdue_fees(db: Session, actor: User) -> dict:
    current_day = today()
    overdue = (
        scope_to_organization(db.query(HostelFee), HostelFee, actor)
        .filter(
            HostelFee.due_date < current_day,
            HostelFee.payment_status.in_([HostelFeeStatus.PENDING, HostelFeeStatus.PARTIAL]),
        )
        .order_by(HostelFee.due_date)
        .all()
    )
    if not overdue:
        return {"success": True, "message": "No overdue fees found", "overdue_count": 0}

    by_organization: dict[int, list[HostelFee]] = defaultdict(list)
    for fee in overdue:
        by_organization[fee.organization_id].append(fee)

    notified = 0
    failures = 0
    for organization_id, fees in by_organization.items():
        organization = db.get(Organization, organization_id)
        total_amount = round(sum(fee.balance for fee in fees), 2)
        details = [
            {
                "trainee_id": fee.trainee_id,
                "fee_amount": fee.fee_amount,
                "balance": fee.balance,
                "due_date": fee.due_date.isoformat(),
                "days_overdue": (current_day - fee.due_date).days,
            }
            for fee in fees
        ]
        notify(
            db,
            organization_id=organization_id,
            role=AppRole.HOSTEL_COORDINATOR.value,
            type="fees_overdue",
            title="Overdue Hostel Fees",
            message=f"{len(fees)} hostel fee record(s) are overdue, totalling {total_amount:.2f}.",
        )

        if smtp_configured():
            recipients = [
                user.email
                for user in db.query(User).filter(
                    User.organization_id == organization_id,
                    User.role == AppRole.HOSTEL_COORDINATOR.value,
                    User.is_active.is_(True),
                )
            ]
            try:
                send_email(
                    recipients=recipients,
                    subject="Overdue hostel fees",
                    body=overdue_fees_body(organization.name, details, total_amount),
                )
            except MailDispatchError as exc:
                logger.warning("Overdue fee email for organization %s failed: %s", organization_id, exc)
                failures += 1
                continue
        notified += 1

    db.commit()
    logger.info("Overdue check: %d fee(s) across %d organization(s)", len(overdue), len(by_organization))
    return {
        "success": True,
        "message": f"Processed {len(overdue)} overdue fees across {len(by_organization)} organizations",
        "overdue_count": len(overdue),
        "organizations_notified": notified,
        "notification_failures": failures,
    }
