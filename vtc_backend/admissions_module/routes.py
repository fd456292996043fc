from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import ADMIN_ROLES, get_current_user, get_scoped_or_404, require_permission, require_roles
from ..rbac_module.models import AppRole, User
from .models import (
    QualificationStatus,
    RegistrationRecordStatus,
    RegistrationStatus,
    Trainee,
    TraineeApplication,
    TraineeStatus,
)
from .schemas import (
    ApplicationCreateRequest,
    ApplicationOut,
    ApplicationUpdateRequest,
    ProvisioningLogOut,
    RegisterTraineeRequest,
    RegisterTraineeResponse,
    RegistrationOut,
    ScreenApplicationRequest,
    ScreenApplicationResponse,
    TraineeOut,
    TraineeUpdateRequest,
)
from .services import (
    create_application,
    get_own_trainee,
    list_applications,
    list_provisioning_logs,
    list_registrations,
    list_trainees,
    register_trainee,
    screen_application,
    update_application,
    update_trainee,
)


router = APIRouter(prefix="/api/v1", tags=["Admissions"])

registration_staff = require_roles(*ADMIN_ROLES, AppRole.REGISTRATION_OFFICER)

TRAINEE_VIEWERS = (
    AppRole.REGISTRATION_OFFICER,
    AppRole.DEBTOR_OFFICER,
    AppRole.TRAINER,
    AppRole.HOD,
    AppRole.HEAD_OF_TRAINING,
    AppRole.ASSESSMENT_COORDINATOR,
    AppRole.HOSTEL_COORDINATOR,
)


@router.post("/applications", response_model=ApplicationOut, status_code=status.HTTP_201_CREATED)
def capture_application(
    payload: ApplicationCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("trainee_registration", "create", AppRole.REGISTRATION_OFFICER)),
):
    return create_application(db, current_user, payload)


@router.get("/applications", response_model=list[ApplicationOut])
def get_applications(
    qualification_status: QualificationStatus | None = None,
    registration_status: RegistrationStatus | None = None,
    search: str | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("trainee_registration", "view", AppRole.REGISTRATION_OFFICER)),
):
    return list_applications(
        db,
        current_user,
        qualification_status=qualification_status,
        registration_status=registration_status,
        search=search,
    )


@router.get("/applications/{application_id}", response_model=ApplicationOut)
def get_application(
    application_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("trainee_registration", "view", AppRole.REGISTRATION_OFFICER)),
):
    return get_scoped_or_404(db, TraineeApplication, application_id, current_user, "Application")


@router.patch("/applications/{application_id}", response_model=ApplicationOut)
def edit_application(
    application_id: int,
    payload: ApplicationUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("trainee_registration", "edit", AppRole.REGISTRATION_OFFICER)),
):
    return update_application(db, current_user, application_id, payload)


@router.post("/functions/screen-application", response_model=ScreenApplicationResponse)
def screen(
    payload: ScreenApplicationRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(registration_staff),
):
    return screen_application(db, current_user, payload)


@router.post("/functions/register-trainee", response_model=RegisterTraineeResponse)
def register(
    payload: RegisterTraineeRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(registration_staff),
):
    return register_trainee(db, current_user, payload)


@router.get("/registrations", response_model=list[RegistrationOut])
def get_registrations(
    status_filter: RegistrationRecordStatus | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("trainee_registration", "view", AppRole.REGISTRATION_OFFICER)),
):
    return list_registrations(db, current_user, status_filter)


@router.get("/provisioning-logs", response_model=list[ProvisioningLogOut])
def get_provisioning_logs(
    application_id: int | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(registration_staff),
):
    return list_provisioning_logs(db, current_user, application_id)


@router.get("/trainees", response_model=list[TraineeOut])
def get_trainees(
    status_filter: TraineeStatus | None = None,
    qualification_id: int | None = None,
    search: str | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("trainee_management", "view", *TRAINEE_VIEWERS)),
):
    return list_trainees(
        db, current_user, status_filter=status_filter, qualification_id=qualification_id, search=search
    )


@router.get("/trainees/me", response_model=TraineeOut)
def my_trainee_record(
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return get_own_trainee(db, current_user)


@router.get("/trainees/{trainee_id}", response_model=TraineeOut)
def get_trainee(
    trainee_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("trainee_management", "view", *TRAINEE_VIEWERS)),
):
    return get_scoped_or_404(db, Trainee, trainee_id, current_user, "Trainee")


@router.patch("/trainees/{trainee_id}", response_model=TraineeOut)
def edit_trainee(
    trainee_id: int,
    payload: TraineeUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("trainee_management", "edit", AppRole.REGISTRATION_OFFICER)),
):
    return update_trainee(db, current_user, trainee_id, payload)
