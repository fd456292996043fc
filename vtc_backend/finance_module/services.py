import logging

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ..admissions_module.models import (
    HostelApplicationStatus,
    ProvisioningLog,
    ProvisioningStatus,
    QualificationStatus,
    Registration,
    RegistrationRecordStatus,
    RegistrationStatus,
    Trainee,
    TraineeApplication,
    TraineeStatus,
)
from ..audit import log_audit_event, notify
from ..database import today, utcnow
from ..hostel_module.models import HostelFee, HostelFeeStatus
from ..middleware import ensure_same_organization, get_scoped_or_404, resolve_organization_id, scope_to_organization
from ..rbac_module.models import AppRole, Organization, User
from ..security import generate_secure_password, hash_password
from .models import (
    FeeCategory,
    FeeType,
    FinancialQueueEntry,
    FinancialTransaction,
    QueueEntityType,
    QueueStatus,
    TraineeFinancialAccount,
    TransactionType,
)
from .schemas import ClearFeeRequest, FeeTypeCreateRequest, FeeTypeUpdateRequest, ProvisionTraineeRequest


logger = logging.getLogger(__name__)


def queue_status_for(amount: float, amount_paid: float) -> QueueStatus:
    if amount_paid >= amount:
        return QueueStatus.CLEARED
    if amount_paid > 0:
        return QueueStatus.PARTIAL
    return QueueStatus.PENDING


# --- Fee types ---

def list_fee_types(db: Session, actor: User, category: FeeCategory | None = None, active_only: bool = False) -> list[FeeType]:
    query = scope_to_organization(db.query(FeeType), FeeType, actor)
    if category:
        query = query.filter(FeeType.category == category)
    if active_only:
        query = query.filter(FeeType.active.is_(True))
    return query.order_by(FeeType.category, FeeType.name).all()


def create_fee_type(db: Session, actor: User, payload: FeeTypeCreateRequest) -> FeeType:
    fee_type = FeeType(
        organization_id=resolve_organization_id(actor, payload.organization_id),
        name=payload.name.strip(),
        category=payload.category,
        amount=round(payload.amount, 2),
        description=payload.description,
    )
    db.add(fee_type)
    db.commit()
    db.refresh(fee_type)
    return fee_type


def update_fee_type(db: Session, actor: User, fee_type_id: int, payload: FeeTypeUpdateRequest) -> FeeType:
    fee_type = get_scoped_or_404(db, FeeType, fee_type_id, actor, "Fee type")
    for key, value in payload.model_dump(exclude_none=True).items():
        setattr(fee_type, key, value)
    db.commit()
    db.refresh(fee_type)
    return fee_type


def find_fee_type(db: Session, organization_id: int, category: FeeCategory) -> FeeType | None:
    return (
        db.query(FeeType)
        .filter(
            FeeType.organization_id == organization_id,
            FeeType.category == category,
            FeeType.active.is_(True),
        )
        .order_by(FeeType.id.desc())
        .first()
    )


# --- Financial queue ---

def raise_queue_entry(
    db: Session,
    *,
    organization_id: int,
    entity_type: QueueEntityType,
    entity_id: int,
    amount: float,
    description: str,
    requested_by: int | None,
    fee_type_id: int | None = None,
) -> FinancialQueueEntry:
    if amount <= 0:
        raise HTTPException(status_code=400, detail="Fee amount must be greater than zero")
    entry = FinancialQueueEntry(
        organization_id=organization_id,
        entity_type=entity_type,
        entity_id=entity_id,
        fee_type_id=fee_type_id,
        amount=round(amount, 2),
        amount_paid=0,
        balance=round(amount, 2),
        status=QueueStatus.PENDING,
        description=description,
        requested_by=requested_by,
    )
    db.add(entry)
    db.flush()
    return entry


def raise_fee_from_type(
    db: Session,
    *,
    organization_id: int,
    category: FeeCategory,
    entity_type: QueueEntityType,
    entity_id: int,
    description: str,
    requested_by: int | None,
) -> FinancialQueueEntry:
    fee_type = find_fee_type(db, organization_id, category)
    if fee_type is None:
        raise HTTPException(status_code=400, detail=f"No active {category.value} fee type is configured")
    return raise_queue_entry(
        db,
        organization_id=organization_id,
        entity_type=entity_type,
        entity_id=entity_id,
        amount=fee_type.amount,
        description=description,
        requested_by=requested_by,
        fee_type_id=fee_type.id,
    )


def open_queue_entry(
    db: Session, entity_type: QueueEntityType, entity_id: int
) -> FinancialQueueEntry | None:
    return (
        db.query(FinancialQueueEntry)
        .filter(
            FinancialQueueEntry.entity_type == entity_type,
            FinancialQueueEntry.entity_id == entity_id,
            FinancialQueueEntry.status != QueueStatus.CLEARED,
        )
        .first()
    )


def list_queue(
    db: Session,
    actor: User,
    *,
    status_filter: QueueStatus | None = None,
    entity_type: QueueEntityType | None = None,
) -> list[FinancialQueueEntry]:
    query = scope_to_organization(db.query(FinancialQueueEntry), FinancialQueueEntry, actor)
    if status_filter:
        query = query.filter(FinancialQueueEntry.status == status_filter)
    if entity_type:
        query = query.filter(FinancialQueueEntry.entity_type == entity_type)
    return query.order_by(FinancialQueueEntry.created_at.desc(), FinancialQueueEntry.id.desc()).all()


def queue_stats(db: Session, actor: User) -> dict:
    entries = scope_to_organization(db.query(FinancialQueueEntry), FinancialQueueEntry, actor).all()
    stats = {
        "pending": 0,
        "partial": 0,
        "cleared": 0,
        "pending_by_entity": {entity.value: 0 for entity in QueueEntityType},
        "amount_outstanding": 0.0,
        "cleared_today": 0,
    }
    current_day = today()
    for entry in entries:
        stats[entry.status.value] += 1
        if entry.status == QueueStatus.CLEARED:
            if entry.cleared_at and entry.cleared_at.date() == current_day:
                stats["cleared_today"] += 1
            continue
        stats["pending_by_entity"][entry.entity_type.value] += 1
        stats["amount_outstanding"] += entry.balance
    stats["amount_outstanding"] = round(stats["amount_outstanding"], 2)
    return stats


def _load_entry_for_payment(
    db: Session, actor: User, queue_id: int, expected: QueueEntityType
) -> FinancialQueueEntry:
    entry = db.get(FinancialQueueEntry, queue_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Queue entry not found")
    ensure_same_organization(actor, entry.organization_id, "Cannot process payments for other organizations")
    if entry.entity_type != expected:
        raise HTTPException(
            status_code=400, detail=f"This operation only handles {expected.value.lower()} fees"
        )
    if entry.status == QueueStatus.CLEARED:
        raise HTTPException(status_code=400, detail="This fee has already been cleared")
    return entry


def apply_payment(entry: FinancialQueueEntry, actor: User, payload: ClearFeeRequest) -> bool:
    """Books ``payload.amount`` against the entry and returns True once it is cleared."""
    if payload.amount <= 0:
        raise HTTPException(status_code=400, detail="Payment amount must be greater than zero")
    entry.amount_paid = round(entry.amount_paid + payload.amount, 2)
    entry.balance = round(max(0.0, entry.amount - entry.amount_paid), 2)
    entry.status = queue_status_for(entry.amount, entry.amount_paid)
    entry.payment_method = payload.payment_method
    if payload.notes:
        entry.notes = payload.notes
    if entry.status == QueueStatus.CLEARED:
        entry.cleared_by = actor.id
        entry.cleared_at = utcnow()
    logger.info(
        "Queue entry %s: paid %.2f of %.2f, status %s",
        entry.id,
        entry.amount_paid,
        entry.amount,
        entry.status.value,
    )
    return entry.status == QueueStatus.CLEARED


# --- Accounts ---

def ensure_account(
    db: Session, organization_id: int, *, trainee_id: int | None = None, application_id: int | None = None
) -> TraineeFinancialAccount:
    account = None
    if trainee_id is not None:
        account = db.query(TraineeFinancialAccount).filter(TraineeFinancialAccount.trainee_id == trainee_id).first()
    if account is None and application_id is not None:
        account = (
            db.query(TraineeFinancialAccount)
            .filter(TraineeFinancialAccount.application_id == application_id)
            .first()
        )
    if account is None:
        account = TraineeFinancialAccount(
            organization_id=organization_id,
            trainee_id=trainee_id,
            application_id=application_id,
            total_fees=0,
            total_paid=0,
            balance=0,
        )
        db.add(account)
        db.flush()
    elif trainee_id is not None and account.trainee_id is None:
        account.trainee_id = trainee_id
    return account


def record_transaction(
    db: Session,
    account: TraineeFinancialAccount,
    *,
    transaction_type: TransactionType,
    amount: float,
    fee_type_id: int | None,
    description: str,
    processed_by: int | None,
    payment_method: str | None = None,
    notes: str | None = None,
) -> FinancialTransaction:
    if transaction_type == TransactionType.CHARGE:
        account.total_fees = round(account.total_fees + amount, 2)
    else:
        account.total_paid = round(account.total_paid + amount, 2)
    account.balance = round(account.total_fees - account.total_paid, 2)
    transaction = FinancialTransaction(
        organization_id=account.organization_id,
        account_id=account.id,
        fee_type_id=fee_type_id,
        transaction_type=transaction_type,
        amount=round(amount, 2),
        balance_after=account.balance,
        payment_method=payment_method,
        description=description,
        notes=notes,
        processed_by=processed_by,
    )
    db.add(transaction)
    return transaction


def account_statement(db: Session, actor: User, trainee_id: int) -> TraineeFinancialAccount:
    trainee = get_scoped_or_404(db, Trainee, trainee_id, actor, "Trainee")
    if actor.role == AppRole.TRAINEE.value and trainee.user_id != actor.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    account = db.query(TraineeFinancialAccount).filter(TraineeFinancialAccount.trainee_id == trainee.id).first()
    if account is None:
        raise HTTPException(status_code=404, detail="Financial account not found")
    return account


# --- Trainee identity ---

def next_trainee_number(db: Session, organization: Organization) -> str:
    year = today().year
    while True:
        sequence = organization.next_trainee_sequence
        organization.next_trainee_sequence = sequence + 1
        candidate = f"{organization.trainee_id_prefix}{year}{sequence:04d}"
        taken = (
            db.query(Trainee.id)
            .filter(Trainee.organization_id == organization.id, Trainee.trainee_number == candidate)
            .first()
        )
        if not taken:
            return candidate


def system_email_for(trainee_number: str, organization: Organization) -> str:
    return f"{trainee_number.lower()}@{organization.email_domain}"


def _ensure_trainee_login(
    db: Session, organization: Organization, system_email: str, *, first_name: str, last_name: str, phone: str | None
) -> tuple[User, bool]:
    user = db.query(User).filter(User.email == system_email).first()
    if user is not None:
        return user, True
    # The trainee sets a real password on first login.
    user = User(
        email=system_email,
        password_hash=hash_password(generate_secure_password()),
        firstname=first_name,
        surname=last_name,
        phone=phone,
        role=AppRole.TRAINEE.value,
        organization_id=organization.id,
        is_active=True,
        password_reset_required=True,
    )
    db.add(user)
    db.flush()
    return user, False


def _provision_trainee(
    db: Session, actor: User, application: TraineeApplication, entry: FinancialQueueEntry, payload: ClearFeeRequest
) -> dict:
    organization = db.get(Organization, application.organization_id)
    if organization is None:
        raise HTTPException(status_code=404, detail="Organization not found")

    trainee_number = application.trainee_number or next_trainee_number(db, organization)
    system_email = application.system_email or system_email_for(trainee_number, organization)

    user, account_existed = _ensure_trainee_login(
        db,
        organization,
        system_email,
        first_name=application.first_name,
        last_name=application.last_name,
        phone=application.phone,
    )

    trainee = db.query(Trainee).filter(Trainee.application_id == application.id).first()
    if trainee is None:
        trainee = Trainee(
            organization_id=organization.id,
            application_id=application.id,
            trainee_number=trainee_number,
            first_name=application.first_name,
            last_name=application.last_name,
            email=application.email,
            phone=application.phone,
            national_id=application.national_id,
            date_of_birth=application.date_of_birth,
            gender=application.gender or "male",
            address=application.address,
            qualification_id=application.qualification_id,
            level=application.preferred_level or 1,
            training_mode=application.preferred_training_mode or "fulltime",
            academic_year=application.academic_year or str(today().year),
            status=TraineeStatus.PROVISIONAL,
            system_email=system_email,
            user_id=user.id,
        )
        db.add(trainee)
        db.flush()

    account = ensure_account(db, organization.id, trainee_id=trainee.id, application_id=application.id)
    record_transaction(
        db,
        account,
        transaction_type=TransactionType.CHARGE,
        amount=entry.amount,
        fee_type_id=entry.fee_type_id,
        description="Application fee",
        processed_by=actor.id,
    )
    record_transaction(
        db,
        account,
        transaction_type=TransactionType.PAYMENT,
        amount=entry.amount_paid,
        fee_type_id=entry.fee_type_id,
        description="Application fee payment",
        processed_by=actor.id,
        payment_method=payload.payment_method,
        notes=payload.notes,
    )

    application.trainee_number = trainee_number
    application.system_email = system_email
    application.user_id = user.id
    application.registration_status = RegistrationStatus.PROVISIONALLY_ADMITTED
    application.account_provisioning_status = ProvisioningStatus.AUTO_PROVISIONED
    application.payment_cleared_at = utcnow()
    application.payment_cleared_by = actor.id

    db.add(
        ProvisioningLog(
            organization_id=organization.id,
            application_id=application.id,
            trainee_id=trainee.id,
            user_id=user.id,
            trigger_type="auto",
            result="success",
            email=system_email,
            details={
                "account_existed": account_existed,
                "payment_cleared_by": actor.id,
                "trainee_number": trainee_number,
                "workflow_step": "clear-application-fee",
            },
        )
    )
    logger.info("Application %s cleared, trainee %s provisioned", application.id, trainee_number)
    return {
        "user_id": user.id,
        "trainee_id": trainee.id,
        "trainee_number": trainee_number,
        "system_email": system_email,
        "account_existed": account_existed,
    }


def clear_application_fee(db: Session, actor: User, payload: ClearFeeRequest) -> dict:
    entry = _load_entry_for_payment(db, actor, payload.queue_id, QueueEntityType.APPLICATION)
    application = db.get(TraineeApplication, entry.entity_id)
    if application is not None and application.qualification_status != QualificationStatus.PROVISIONALLY_QUALIFIED:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot clear fee: application is {application.qualification_status.value}",
        )
    cleared = apply_payment(entry, actor, payload)

    result = {
        "success": True,
        "message": "Partial payment recorded",
        "payment_status": entry.status,
        "amount_paid": entry.amount_paid,
        "balance": entry.balance,
        "provisioning": None,
    }

    if cleared:
        if application is None:
            # The payment stands; the login is created later through provision-trainee-auth.
            db.add(
                ProvisioningLog(
                    organization_id=entry.organization_id,
                    trigger_type="auto",
                    result="failed",
                    email="unknown",
                    error_message=f"Application not found for entity_id: {entry.entity_id}",
                )
            )
            logger.warning("Queue entry %s cleared but application %s is missing", entry.id, entry.entity_id)
            result["warning"] = "Payment cleared but application not found for identity creation"
        else:
            result["provisioning"] = _provision_trainee(db, actor, application, entry, payload)
            result["message"] = (
                "Payment cleared - trainee account created and status set to PROVISIONALLY_ADMITTED"
            )

    log_audit_event(
        db,
        action="application_fee_payment",
        table_name="financial_queue",
        record_id=entry.id,
        new_data={"amount": payload.amount, "status": entry.status.value},
        user_id=actor.id,
        organization_id=entry.organization_id,
    )
    db.commit()
    return result


def _provisioning_failed(
    db: Session,
    *,
    organization_id: int,
    application: TraineeApplication | None,
    trainee: Trainee | None,
    trigger_type: str,
    email: str | None,
    error: str,
):
    """Commits a failed log entry, then raises so the caller sees the error."""
    if application is not None:
        application.account_provisioning_status = ProvisioningStatus.FAILED
    db.add(
        ProvisioningLog(
            organization_id=organization_id,
            application_id=application.id if application else None,
            trainee_id=trainee.id if trainee else None,
            trigger_type=trigger_type,
            result="failed",
            email=email or "unknown",
            error_message=error,
        )
    )
    db.commit()
    logger.warning("Provisioning failed for application %s: %s", application.id if application else None, error)
    raise HTTPException(status_code=400, detail=error)


def provision_trainee_auth(db: Session, actor: User, payload: ProvisionTraineeRequest) -> dict:
    """Creates or links the login of an admitted trainee outside the fee workflow."""
    if payload.trainee_id is None and payload.application_id is None:
        raise HTTPException(status_code=400, detail="Either trainee_id or application_id is required")

    if payload.application_id is not None:
        application = db.get(TraineeApplication, payload.application_id)
        if application is None:
            raise HTTPException(status_code=404, detail="Application not found")
        trainee = db.query(Trainee).filter(Trainee.application_id == application.id).first()
    else:
        trainee = db.get(Trainee, payload.trainee_id)
        if trainee is None:
            raise HTTPException(status_code=404, detail="Trainee not found")
        application = db.get(TraineeApplication, trainee.application_id) if trainee.application_id else None
    record = application or trainee
    ensure_same_organization(actor, record.organization_id, "Cannot provision trainees from other organizations")
    organization = db.get(Organization, record.organization_id)

    trainee_number = trainee.trainee_number if trainee else application.trainee_number
    system_email = (trainee.system_email if trainee else None) or (application.system_email if application else None)
    failure = dict(
        organization_id=organization.id,
        application=application,
        trainee=trainee,
        trigger_type=payload.trigger_type,
        email=system_email,
    )
    if not trainee_number:
        _provisioning_failed(db, error="Trainee number not yet assigned", **failure)
    if (
        application is not None
        and not payload.force_provision
        and application.qualification_status != QualificationStatus.PROVISIONALLY_QUALIFIED
    ):
        _provisioning_failed(
            db,
            error=(
                f"Invalid qualification status for provisioning: {application.qualification_status.value}. "
                f"Must be one of: {QualificationStatus.PROVISIONALLY_QUALIFIED.value}"
            ),
            **failure,
        )
    system_email = system_email or system_email_for(trainee_number, organization)

    existing_user_id = (trainee.user_id if trainee else None) or (application.user_id if application else None)
    if existing_user_id and not payload.force_provision:
        db.add(
            ProvisioningLog(
                organization_id=organization.id,
                application_id=application.id if application else None,
                trainee_id=trainee.id if trainee else None,
                user_id=existing_user_id,
                trigger_type=payload.trigger_type,
                result="skipped",
                email=system_email,
                details={"reason": "account already exists"},
            )
        )
        db.commit()
        return {
            "success": True,
            "message": "Account already exists",
            "user_id": existing_user_id,
            "email": system_email,
            "account_existed": True,
            "provisioning_status": application.account_provisioning_status if application else None,
        }

    person = application or trainee
    user, account_existed = _ensure_trainee_login(
        db,
        organization,
        system_email,
        first_name=person.first_name,
        last_name=person.last_name,
        phone=person.phone,
    )
    provisioning_status = ProvisioningStatus.MANUALLY_PROVISIONED
    if payload.trigger_type == "auto":
        provisioning_status = ProvisioningStatus.AUTO_PROVISIONED
    if trainee is not None:
        trainee.user_id = user.id
        trainee.system_email = system_email
    if application is not None:
        application.user_id = user.id
        application.system_email = system_email
        application.account_provisioning_status = provisioning_status

    db.add(
        ProvisioningLog(
            organization_id=organization.id,
            application_id=application.id if application else None,
            trainee_id=trainee.id if trainee else None,
            user_id=user.id,
            trigger_type=payload.trigger_type,
            result="success",
            email=system_email,
            details={
                "account_existed": account_existed,
                "force_provision": payload.force_provision,
                "provisioned_by": actor.id,
            },
        )
    )
    log_audit_event(
        db,
        action="trainee_login_provisioned",
        table_name="users",
        record_id=user.id,
        new_data={"email": system_email, "trigger_type": payload.trigger_type},
        user_id=actor.id,
        organization_id=organization.id,
    )
    db.commit()
    logger.info("Login %s provisioned (%s) by user %s", system_email, payload.trigger_type, actor.id)
    return {
        "success": True,
        "message": (
            "Account already existed, linked to trainee" if account_existed else "Account created with default password"
        ),
        "user_id": user.id,
        "email": system_email,
        "account_existed": account_existed,
        "provisioning_status": provisioning_status,
    }


def clear_registration_fee(db: Session, actor: User, payload: ClearFeeRequest) -> dict:
    entry = _load_entry_for_payment(db, actor, payload.queue_id, QueueEntityType.REGISTRATION)
    cleared = apply_payment(entry, actor, payload)

    result = {
        "success": True,
        "message": "Partial payment recorded",
        "payment_status": entry.status,
        "amount_paid": entry.amount_paid,
        "balance": entry.balance,
    }

    if cleared:
        registration = db.get(Registration, entry.entity_id)
        if registration is None:
            raise HTTPException(status_code=404, detail="Registration record not found")

        registration.status = RegistrationRecordStatus.REGISTERED
        registration.registered_at = utcnow()

        trainee = db.get(Trainee, registration.trainee_id)
        trainee.status = TraineeStatus.ACTIVE

        if registration.application_id:
            application = db.get(TraineeApplication, registration.application_id)
            if application is not None:
                application.registration_status = RegistrationStatus.REGISTERED
                application.hostel_application_status = (
                    HostelApplicationStatus.ALLOCATED
                    if registration.hostel_required
                    else HostelApplicationStatus.NOT_APPLIED
                )

        account = ensure_account(db, entry.organization_id, trainee_id=trainee.id)
        record_transaction(
            db,
            account,
            transaction_type=TransactionType.CHARGE,
            amount=entry.amount,
            fee_type_id=entry.fee_type_id,
            description="Registration fee",
            processed_by=actor.id,
        )
        record_transaction(
            db,
            account,
            transaction_type=TransactionType.PAYMENT,
            amount=entry.amount_paid,
            fee_type_id=entry.fee_type_id,
            description="Registration fee payment",
            processed_by=actor.id,
            payment_method=payload.payment_method,
            notes=payload.notes,
        )

        if trainee.user_id:
            notify(
                db,
                user_id=trainee.user_id,
                organization_id=entry.organization_id,
                title="Registration Complete",
                message="Your registration fee has been cleared. You are now fully REGISTERED.",
                type="success",
            )
        result["message"] = "Registration fee cleared - trainee status set to REGISTERED"
        result["final_status"] = "REGISTERED"
        logger.info("Registration %s fee cleared, trainee %s registered", registration.id, trainee.trainee_number)

    log_audit_event(
        db,
        action="registration_fee_payment",
        table_name="financial_queue",
        record_id=entry.id,
        new_data={"amount": payload.amount, "status": entry.status.value},
        user_id=actor.id,
        organization_id=entry.organization_id,
    )
    db.commit()
    return result


def clear_hostel_fee(db: Session, actor: User, payload: ClearFeeRequest) -> dict:
    entry = _load_entry_for_payment(db, actor, payload.queue_id, QueueEntityType.HOSTEL)
    cleared = apply_payment(entry, actor, payload)

    fee = db.get(HostelFee, entry.entity_id)
    if fee is not None:
        apply_hostel_fee_payment(fee, payload.amount, payload.payment_method)
        account = ensure_account(db, entry.organization_id, trainee_id=fee.trainee_id)
        record_transaction(
            db,
            account,
            transaction_type=TransactionType.PAYMENT,
            amount=payload.amount,
            fee_type_id=entry.fee_type_id,
            description=f"Hostel fee payment {fee.fee_month:%Y-%m}",
            processed_by=actor.id,
            payment_method=payload.payment_method,
            notes=payload.notes,
        )

    log_audit_event(
        db,
        action="hostel_fee_payment",
        table_name="financial_queue",
        record_id=entry.id,
        new_data={"amount": payload.amount, "status": entry.status.value, "hostel_fee_id": entry.entity_id},
        user_id=actor.id,
        organization_id=entry.organization_id,
    )
    db.commit()
    return {
        "success": True,
        "message": "Hostel fee cleared" if cleared else "Partial payment recorded",
        "payment_status": entry.status,
        "amount_paid": entry.amount_paid,
        "balance": entry.balance,
    }


def apply_hostel_fee_payment(fee: HostelFee, amount: float, payment_method: str | None) -> None:
    if amount <= 0:
        raise HTTPException(status_code=400, detail="Payment amount must be greater than zero")
    fee.amount_paid = round(fee.amount_paid + amount, 2)
    fee.balance = round(max(0.0, fee.fee_amount - fee.amount_paid), 2)
    if fee.amount_paid >= fee.fee_amount:
        fee.payment_status = HostelFeeStatus.PAID
        fee.paid_date = today()
    else:
        fee.payment_status = HostelFeeStatus.PARTIAL
    if payment_method:
        fee.payment_method = payment_method
