from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ..admissions_module.services import get_own_trainee
from ..database import get_db_session
from ..middleware import ADMIN_ROLES, get_current_user, get_scoped_or_404, require_permission, require_roles
from ..rbac_module.models import AppRole, User
from ..schemas import SuccessResponse
from . import services
from .models import GradebookStatus, Qualification, QualificationApprovalStatus
from .schemas import (
    ApprovalDecisionRequest,
    ApproveResultsRequest,
    ApproveResultsResponse,
    AssessmentResultOut,
    BulkImportResponse,
    CAScoreOut,
    ComponentCreateRequest,
    ComponentOut,
    CreditSummaryOut,
    GradebookCreateRequest,
    GradebookOut,
    GradebookTraineeOut,
    GradebookTraineesRequest,
    GradebookUpdateRequest,
    InitialiseResultsRequest,
    InitialiseResultsResponse,
    MarkOut,
    MarksRequest,
    QualificationApprovalOut,
    QualificationCreateRequest,
    QualificationOut,
    QualificationUpdateRequest,
    RecordResultRequest,
    ReturnGradebookRequest,
    UnitStandardCreateRequest,
    UnitStandardOut,
    UnitStandardUpdateRequest,
)


router = APIRouter(prefix="/api/v1", tags=["Assessment"])

ACADEMIC_STAFF = (AppRole.TRAINER, AppRole.HOD, AppRole.HEAD_OF_TRAINING, AppRole.ASSESSMENT_COORDINATOR)

qualification_viewers = require_permission(
    "qualification_management", "view", AppRole.REGISTRATION_OFFICER, *ACADEMIC_STAFF
)
qualification_editors = require_permission("qualification_management", "edit", AppRole.HOD, AppRole.HEAD_OF_TRAINING)
qualification_approvers = require_roles(*ADMIN_ROLES, AppRole.HEAD_OF_TRAINING)

result_viewers = require_permission("assessment_results", "view", *ACADEMIC_STAFF)
result_editors = require_permission("assessment_results", "edit", AppRole.TRAINER, AppRole.ASSESSMENT_COORDINATOR)
result_approvers = require_roles(*ADMIN_ROLES, AppRole.ASSESSMENT_COORDINATOR, AppRole.HEAD_OF_TRAINING)

gradebook_viewers = require_permission("gradebooks", "view", *ACADEMIC_STAFF)
gradebook_editors = require_permission("gradebooks", "edit", AppRole.TRAINER)
hot_staff = require_roles(*ADMIN_ROLES, AppRole.HEAD_OF_TRAINING)
ac_staff = require_roles(*ADMIN_ROLES, AppRole.ASSESSMENT_COORDINATOR)
gradebook_reviewers = require_roles(*ADMIN_ROLES, AppRole.HEAD_OF_TRAINING, AppRole.ASSESSMENT_COORDINATOR)


def _csv_response(content: str, filename: str) -> StreamingResponse:
    response = StreamingResponse(iter([content]), media_type="text/csv")
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return response


# --- Qualifications ---

@router.get("/qualifications", response_model=list[QualificationOut])
def get_qualifications(
    status_filter: QualificationApprovalStatus | None = None,
    search: str | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_viewers),
):
    return services.list_qualifications(db, current_user, status_filter=status_filter, search=search)


@router.post("/qualifications", response_model=QualificationOut, status_code=status.HTTP_201_CREATED)
def add_qualification(
    payload: QualificationCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_editors),
):
    return services.create_qualification(db, current_user, payload)


@router.get("/qualifications/template")
def qualification_template(_: User = Depends(qualification_viewers)):
    return _csv_response(services.qualification_template_csv(), "qualifications_import_template.csv")


@router.get("/qualifications/export")
def export_qualifications(db: Session = Depends(get_db_session), current_user: User = Depends(qualification_viewers)):
    return _csv_response(services.export_qualifications_csv(db, current_user), "qualifications_export.csv")


@router.post("/qualifications/import", response_model=BulkImportResponse)
def import_qualifications(
    file: UploadFile = File(...),
    organization_id: int | None = Form(default=None),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_editors),
):
    return services.import_qualifications(db, current_user, file.file.read(), organization_id)


@router.get("/qualifications/{qualification_id}", response_model=QualificationOut)
def get_qualification(
    qualification_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_viewers),
):
    return get_scoped_or_404(db, Qualification, qualification_id, current_user, "Qualification")


@router.patch("/qualifications/{qualification_id}", response_model=QualificationOut)
def edit_qualification(
    qualification_id: int,
    payload: QualificationUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_editors),
):
    return services.update_qualification(db, current_user, qualification_id, payload)


@router.delete("/qualifications/{qualification_id}", response_model=SuccessResponse)
def remove_qualification(
    qualification_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("qualification_management", "delete")),
):
    services.delete_qualification(db, current_user, qualification_id)
    return SuccessResponse(message="Qualification deleted")


@router.post("/qualifications/{qualification_id}/submit", response_model=QualificationOut)
def submit_qualification(
    qualification_id: int,
    payload: ApprovalDecisionRequest | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_editors),
):
    return services.submit_qualification(db, current_user, qualification_id, payload.comments if payload else None)


@router.post("/qualifications/{qualification_id}/approve", response_model=QualificationOut)
def approve_qualification(
    qualification_id: int,
    payload: ApprovalDecisionRequest | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_approvers),
):
    return services.approve_qualification(db, current_user, qualification_id, payload.comments if payload else None)


@router.post("/qualifications/{qualification_id}/reject", response_model=QualificationOut)
def reject_qualification(
    qualification_id: int,
    payload: ApprovalDecisionRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_approvers),
):
    return services.reject_qualification(db, current_user, qualification_id, payload.comments)


@router.post("/qualifications/{qualification_id}/return", response_model=QualificationOut)
def return_qualification(
    qualification_id: int,
    payload: ApprovalDecisionRequest | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_approvers),
):
    return services.return_qualification(db, current_user, qualification_id, payload.comments if payload else None)


@router.get("/qualifications/{qualification_id}/approvals", response_model=list[QualificationApprovalOut])
def qualification_history(
    qualification_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_viewers),
):
    return services.list_approvals(db, current_user, qualification_id)


# --- Unit standards ---

@router.get("/qualifications/{qualification_id}/unit-standards", response_model=list[UnitStandardOut])
def get_unit_standards(
    qualification_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_viewers),
):
    return services.list_unit_standards(db, current_user, qualification_id)


@router.post("/unit-standards", response_model=UnitStandardOut, status_code=status.HTTP_201_CREATED)
def add_unit_standard(
    payload: UnitStandardCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_editors),
):
    return services.create_unit_standard(db, current_user, payload)


@router.patch("/unit-standards/{unit_id}", response_model=UnitStandardOut)
def edit_unit_standard(
    unit_id: int,
    payload: UnitStandardUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_editors),
):
    return services.update_unit_standard(db, current_user, unit_id, payload)


@router.delete("/unit-standards/{unit_id}", response_model=SuccessResponse)
def remove_unit_standard(
    unit_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(qualification_editors),
):
    services.delete_unit_standard(db, current_user, unit_id)
    return SuccessResponse(message="Unit standard deleted")


# --- Assessment results ---

@router.post("/assessment-results/initialise", response_model=InitialiseResultsResponse)
def initialise_results(
    payload: InitialiseResultsRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(result_editors),
):
    created = services.initialise_results(db, current_user, payload.trainee_id)
    return InitialiseResultsResponse(message=f"{created} result(s) initialised", created=created)


@router.get("/assessment-results", response_model=list[AssessmentResultOut])
def get_results(
    trainee_id: int | None = None,
    qualification_id: int | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(result_viewers),
):
    return services.list_results(db, current_user, trainee_id=trainee_id, qualification_id=qualification_id)


@router.put("/assessment-results/{result_id}", response_model=AssessmentResultOut)
def record_result(
    result_id: int,
    payload: RecordResultRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(result_editors),
):
    return services.record_result(db, current_user, result_id, payload)


@router.post("/assessment-results/approve", response_model=ApproveResultsResponse)
def approve_results(
    payload: ApproveResultsRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(result_approvers),
):
    approved = services.approve_results(db, current_user, payload.result_ids)
    return ApproveResultsResponse(message=f"{approved} result(s) approved", approved=approved)


@router.get("/trainees/me/results", response_model=list[AssessmentResultOut])
def my_results(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    trainee = get_own_trainee(db, current_user)
    return services.list_results(db, current_user, trainee_id=trainee.id)


@router.get("/trainees/me/credits", response_model=CreditSummaryOut)
def my_credits(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    trainee = get_own_trainee(db, current_user)
    return services.credit_summary(db, current_user, trainee.id)


@router.get("/trainees/{trainee_id}/credits", response_model=CreditSummaryOut)
def trainee_credits(
    trainee_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(result_viewers),
):
    return services.credit_summary(db, current_user, trainee_id)


# --- Gradebooks ---

@router.get("/gradebooks", response_model=list[GradebookOut])
def get_gradebooks(
    status_filter: GradebookStatus | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_viewers),
):
    return services.list_gradebooks(db, current_user, status_filter)


@router.post("/gradebooks", response_model=GradebookOut, status_code=status.HTTP_201_CREATED)
def add_gradebook(
    payload: GradebookCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_editors),
):
    return services.create_gradebook(db, current_user, payload)


@router.get("/gradebooks/{gradebook_id}", response_model=GradebookOut)
def get_gradebook(
    gradebook_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_viewers),
):
    return services.get_gradebook(db, current_user, gradebook_id)


@router.patch("/gradebooks/{gradebook_id}", response_model=GradebookOut)
def edit_gradebook(
    gradebook_id: int,
    payload: GradebookUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_editors),
):
    return services.update_gradebook(db, current_user, gradebook_id, payload)


@router.delete("/gradebooks/{gradebook_id}", response_model=SuccessResponse)
def remove_gradebook(
    gradebook_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_editors),
):
    services.delete_gradebook(db, current_user, gradebook_id)
    return SuccessResponse(message="Gradebook deleted")


@router.post("/gradebooks/{gradebook_id}/components", response_model=ComponentOut, status_code=status.HTTP_201_CREATED)
def add_component(
    gradebook_id: int,
    payload: ComponentCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_editors),
):
    return services.add_component(db, current_user, gradebook_id, payload)


@router.get("/gradebooks/{gradebook_id}/components", response_model=list[ComponentOut])
def get_components(
    gradebook_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_viewers),
):
    return services.get_gradebook(db, current_user, gradebook_id).components


@router.delete("/gradebooks/{gradebook_id}/components/{component_id}", response_model=SuccessResponse)
def remove_component(
    gradebook_id: int,
    component_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_editors),
):
    services.remove_component(db, current_user, gradebook_id, component_id)
    return SuccessResponse(message="Component removed")


@router.post("/gradebooks/{gradebook_id}/trainees", response_model=list[GradebookTraineeOut])
def add_trainees(
    gradebook_id: int,
    payload: GradebookTraineesRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_editors),
):
    return services.add_gradebook_trainees(db, current_user, gradebook_id, payload.trainee_ids)


@router.get("/gradebooks/{gradebook_id}/trainees", response_model=list[GradebookTraineeOut])
def get_gradebook_trainees(
    gradebook_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_viewers),
):
    return services.get_gradebook(db, current_user, gradebook_id).trainees


@router.put("/gradebooks/{gradebook_id}/marks", response_model=list[MarkOut])
def save_marks(
    gradebook_id: int,
    payload: MarksRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_editors),
):
    return services.save_marks(db, current_user, gradebook_id, payload.marks)


@router.get("/gradebooks/{gradebook_id}/marks", response_model=list[MarkOut])
def get_marks(
    gradebook_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_viewers),
):
    return services.list_marks(db, current_user, gradebook_id)


@router.get("/gradebooks/{gradebook_id}/ca-scores", response_model=list[CAScoreOut])
def get_ca_scores(
    gradebook_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_viewers),
):
    return services.ca_scores(db, current_user, gradebook_id)


@router.post("/gradebooks/{gradebook_id}/submit", response_model=GradebookOut)
def submit_gradebook(
    gradebook_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_editors),
):
    return services.submit_gradebook(db, current_user, gradebook_id)


@router.post("/gradebooks/{gradebook_id}/hot-approve", response_model=GradebookOut)
def hot_approve(gradebook_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(hot_staff)):
    return services.hot_approve_gradebook(db, current_user, gradebook_id)


@router.post("/gradebooks/{gradebook_id}/ac-approve", response_model=GradebookOut)
def ac_approve(gradebook_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(ac_staff)):
    return services.ac_approve_gradebook(db, current_user, gradebook_id)


@router.post("/gradebooks/{gradebook_id}/finalise", response_model=GradebookOut)
def finalise(gradebook_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(ac_staff)):
    return services.finalise_gradebook(db, current_user, gradebook_id)


@router.post("/gradebooks/{gradebook_id}/return", response_model=GradebookOut)
def return_gradebook(
    gradebook_id: int,
    payload: ReturnGradebookRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(gradebook_reviewers),
):
    return services.return_gradebook(db, current_user, gradebook_id, payload)
