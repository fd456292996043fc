import logging

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..assessment_module.models import Qualification, QualificationApprovalStatus
from ..audit import log_audit_event
from ..database import today, utcnow
from ..finance_module.models import FeeCategory, QueueEntityType
from ..finance_module.services import open_queue_entry, raise_fee_from_type
from ..middleware import ensure_same_organization, get_scoped_or_404, resolve_organization_id, scope_to_organization
from ..rbac_module.models import User
from .models import (
    HostelApplicationStatus,
    ProvisioningLog,
    QualificationStatus,
    Registration,
    RegistrationRecordStatus,
    RegistrationStatus,
    Trainee,
    TraineeApplication,
)
from .schemas import (
    ApplicationCreateRequest,
    ApplicationUpdateRequest,
    RegisterTraineeRequest,
    ScreenApplicationRequest,
    TraineeUpdateRequest,
)


logger = logging.getLogger(__name__)


def _next_application_number(db: Session, organization_id: int) -> str:
    year = today().year
    count = db.query(TraineeApplication).filter(TraineeApplication.organization_id == organization_id).count()
    while True:
        count += 1
        candidate = f"APP{year}{count:05d}"
        exists = (
            db.query(TraineeApplication.id)
            .filter(
                TraineeApplication.organization_id == organization_id,
                TraineeApplication.application_number == candidate,
            )
            .first()
        )
        if not exists:
            return candidate


def _check_qualification(db: Session, actor: User, qualification_id: int | None) -> Qualification | None:
    if qualification_id is None:
        return None
    return get_scoped_or_404(db, Qualification, qualification_id, actor, "Qualification")


def create_application(db: Session, actor: User, payload: ApplicationCreateRequest) -> TraineeApplication:
    organization_id = resolve_organization_id(actor, payload.organization_id)
    _check_qualification(db, actor, payload.qualification_id)
    data = payload.model_dump(exclude={"organization_id"})
    if data.get("email"):
        data["email"] = data["email"].strip().lower()
    application = TraineeApplication(
        organization_id=organization_id,
        application_number=_next_application_number(db, organization_id),
        created_by=actor.id,
        **data,
    )
    db.add(application)
    db.commit()
    db.refresh(application)
    logger.info("Application %s captured by %s", application.application_number, actor.email)
    return application


def list_applications(
    db: Session,
    actor: User,
    *,
    qualification_status: QualificationStatus | None = None,
    registration_status: RegistrationStatus | None = None,
    search: str | None = None,
) -> list[TraineeApplication]:
    query = scope_to_organization(db.query(TraineeApplication), TraineeApplication, actor)
    if qualification_status:
        query = query.filter(TraineeApplication.qualification_status == qualification_status)
    if registration_status:
        query = query.filter(TraineeApplication.registration_status == registration_status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                TraineeApplication.first_name.ilike(pattern),
                TraineeApplication.last_name.ilike(pattern),
                TraineeApplication.national_id.ilike(pattern),
                TraineeApplication.application_number.ilike(pattern),
            )
        )
    return query.order_by(TraineeApplication.created_at.desc(), TraineeApplication.id.desc()).all()


def update_application(
    db: Session, actor: User, application_id: int, payload: ApplicationUpdateRequest
) -> TraineeApplication:
    application = get_scoped_or_404(db, TraineeApplication, application_id, actor, "Application")
    if application.registration_status != RegistrationStatus.APPLIED:
        raise HTTPException(status_code=400, detail="Admitted applications can no longer be edited")
    changes = payload.model_dump(exclude_none=True)
    if "qualification_id" in changes:
        _check_qualification(db, actor, changes["qualification_id"])
    for key, value in changes.items():
        setattr(application, key, value)
    db.commit()
    db.refresh(application)
    return application


def screen_application(db: Session, actor: User, payload: ScreenApplicationRequest) -> dict:
    application = db.get(TraineeApplication, payload.application_id)
    if application is None:
        raise HTTPException(status_code=404, detail="Application not found")
    ensure_same_organization(actor, application.organization_id, "Cannot screen applications from other organizations")
    if application.registration_status != RegistrationStatus.APPLIED:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot screen: application status is {application.registration_status.value}",
        )

    outcome = QualificationStatus(payload.qualification_status)
    application.qualification_status = outcome
    application.screened_by = actor.id
    application.screened_at = utcnow()
    application.screening_remarks = payload.screening_remarks

    queue_entry = None
    if outcome == QualificationStatus.PROVISIONALLY_QUALIFIED:
        if application.needs_hostel_accommodation:
            application.hostel_application_status = HostelApplicationStatus.APPLIED
        queue_entry = open_queue_entry(db, QueueEntityType.APPLICATION, application.id)
        if queue_entry is None:
            queue_entry = raise_fee_from_type(
                db,
                organization_id=application.organization_id,
                category=FeeCategory.APPLICATION,
                entity_type=QueueEntityType.APPLICATION,
                entity_id=application.id,
                description=f"Application fee for {application.full_name}",
                requested_by=actor.id,
            )
    else:
        stale_entry = open_queue_entry(db, QueueEntityType.APPLICATION, application.id)
        if stale_entry is not None:
            if stale_entry.amount_paid > 0:
                raise HTTPException(
                    status_code=400,
                    detail="Application fee payments exist; the screening outcome can no longer change",
                )
            db.delete(stale_entry)

    db.add(
        ProvisioningLog(
            organization_id=application.organization_id,
            application_id=application.id,
            trigger_type="manual",
            result="screening_complete",
            email=application.system_email or application.email,
            details={"qualification_status": outcome.value, "screened_by": actor.id},
        )
    )
    db.commit()
    logger.info("Application %s screened: %s", application.id, outcome.value)
    return {
        "success": True,
        "message": f"Application screened as {outcome.value}",
        "qualification_status": outcome,
        "queue_entry_id": queue_entry.id if queue_entry else None,
    }


def register_trainee(db: Session, actor: User, payload: RegisterTraineeRequest) -> dict:
    application = db.get(TraineeApplication, payload.application_id)
    if application is None:
        raise HTTPException(status_code=404, detail="Application not found")
    ensure_same_organization(actor, application.organization_id, "Cannot register trainees from other organizations")
    if application.registration_status != RegistrationStatus.PROVISIONALLY_ADMITTED:
        raise HTTPException(
            status_code=400,
            detail=(
                f"Cannot register: application status is {application.registration_status.value}, "
                "expected provisionally_admitted"
            ),
        )

    qualification = get_scoped_or_404(db, Qualification, payload.qualification_id, actor, "Qualification")
    if qualification.status != QualificationApprovalStatus.APPROVED:
        raise HTTPException(status_code=400, detail="Trainees can only be registered on approved qualifications")

    trainee = db.query(Trainee).filter(Trainee.application_id == application.id).first()
    if trainee is None:
        raise HTTPException(status_code=404, detail="Trainee record not found")

    academic_year = payload.academic_year or application.academic_year or str(today().year)
    registration = Registration(
        organization_id=application.organization_id,
        trainee_id=trainee.id,
        application_id=application.id,
        qualification_id=qualification.id,
        academic_year=academic_year,
        hostel_required=application.needs_hostel_accommodation,
        status=RegistrationRecordStatus.FEE_PENDING,
        registered_by=actor.id,
    )
    db.add(registration)
    db.flush()

    queue_entry = raise_fee_from_type(
        db,
        organization_id=application.organization_id,
        category=FeeCategory.REGISTRATION,
        entity_type=QueueEntityType.REGISTRATION,
        entity_id=registration.id,
        description=f"Registration fee for {application.full_name}",
        requested_by=actor.id,
    )

    trainee.qualification_id = qualification.id
    trainee.academic_year = academic_year
    application.registration_status = RegistrationStatus.REGISTERED
    application.hostel_application_status = (
        HostelApplicationStatus.PROVISIONALLY_ALLOCATED
        if application.needs_hostel_accommodation
        else HostelApplicationStatus.NOT_APPLIED
    )

    log_audit_event(
        db,
        action="trainee_registered",
        table_name="registrations",
        record_id=registration.id,
        new_data={"trainee_id": trainee.id, "qualification_id": qualification.id, "academic_year": academic_year},
        user_id=actor.id,
        organization_id=application.organization_id,
    )
    db.commit()
    logger.info("Trainee %s registered for qualification %s", trainee.trainee_number, qualification.id)
    return {
        "success": True,
        "message": "Trainee registered successfully",
        "registration_id": registration.id,
        "registration_status": registration.status,
        "queue_entry_id": queue_entry.id,
    }


# --- Trainees ---

def list_trainees(
    db: Session,
    actor: User,
    *,
    status_filter=None,
    qualification_id: int | None = None,
    search: str | None = None,
) -> list[Trainee]:
    query = scope_to_organization(db.query(Trainee), Trainee, actor)
    if status_filter:
        query = query.filter(Trainee.status == status_filter)
    if qualification_id:
        query = query.filter(Trainee.qualification_id == qualification_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Trainee.first_name.ilike(pattern),
                Trainee.last_name.ilike(pattern),
                Trainee.trainee_number.ilike(pattern),
            )
        )
    return query.order_by(Trainee.trainee_number).all()


def get_own_trainee(db: Session, user: User) -> Trainee:
    trainee = db.query(Trainee).filter(Trainee.user_id == user.id).first()
    if trainee is None:
        raise HTTPException(status_code=404, detail="Trainee record not found")
    return trainee


def update_trainee(db: Session, actor: User, trainee_id: int, payload: TraineeUpdateRequest) -> Trainee:
    trainee = get_scoped_or_404(db, Trainee, trainee_id, actor, "Trainee")
    changes = payload.model_dump(exclude_none=True)
    if "qualification_id" in changes:
        _check_qualification(db, actor, changes["qualification_id"])
    old_status = trainee.status.value
    for key, value in changes.items():
        setattr(trainee, key, value)
    if "status" in changes and changes["status"] != old_status:
        log_audit_event(
            db,
            action="trainee_status_changed",
            table_name="trainees",
            record_id=trainee.id,
            old_data={"status": old_status},
            new_data={"status": trainee.status.value},
            user_id=actor.id,
            organization_id=trainee.organization_id,
        )
    db.commit()
    db.refresh(trainee)
    return trainee


def list_registrations(db: Session, actor: User, status_filter: RegistrationRecordStatus | None = None) -> list[Registration]:
    query = scope_to_organization(db.query(Registration), Registration, actor)
    if status_filter:
        query = query.filter(Registration.status == status_filter)
    return query.order_by(Registration.created_at.desc(), Registration.id.desc()).all()


def list_provisioning_logs(db: Session, actor: User, application_id: int | None = None) -> list[ProvisioningLog]:
    query = scope_to_organization(db.query(ProvisioningLog), ProvisioningLog, actor)
    if application_id:
        query = query.filter(ProvisioningLog.application_id == application_id)
    return query.order_by(ProvisioningLog.created_at.desc(), ProvisioningLog.id.desc()).all()
