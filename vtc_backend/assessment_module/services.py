import csv
import io
import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..admissions_module.models import Trainee
from ..audit import log_audit_event, notify
from ..database import today, utcnow
from ..middleware import ensure_same_organization, get_scoped_or_404, resolve_organization_id, scope_to_organization
from ..rbac_module.models import AppRole, User
from .models import (
    ApprovalAction,
    AssessmentResult,
    CompetencyStatus,
    ComponentType,
    DurationUnit,
    Gradebook,
    GradebookComponent,
    GradebookMark,
    GradebookStatus,
    GradebookTrainee,
    Qualification,
    QualificationApproval,
    QualificationApprovalStatus,
    QualificationType,
    UnitStandard,
)
from .schemas import (
    ComponentCreateRequest,
    GradebookCreateRequest,
    GradebookUpdateRequest,
    MarkEntry,
    QualificationCreateRequest,
    QualificationUpdateRequest,
    RecordResultRequest,
    ReturnGradebookRequest,
    UnitStandardCreateRequest,
    UnitStandardUpdateRequest,
)


logger = logging.getLogger(__name__)

QUALIFICATION_CSV_HEADERS = [
    "qualification_title",
    "qualification_code",
    "qualification_type",
    "nqf_level",
    "duration_value",
    "duration_unit",
]


# --- Qualifications ---

def list_qualifications(
    db: Session,
    actor: User,
    status_filter: QualificationApprovalStatus | None = None,
    search: str | None = None,
) -> list[Qualification]:
    query = scope_to_organization(db.query(Qualification), Qualification, actor)
    if status_filter:
        query = query.filter(Qualification.status == status_filter)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            Qualification.qualification_title.ilike(pattern) | Qualification.qualification_code.ilike(pattern)
        )
    return query.order_by(Qualification.qualification_code).all()


def _code_taken(db: Session, organization_id: int, code: str) -> bool:
    return (
        db.query(Qualification.id)
        .filter(Qualification.organization_id == organization_id, Qualification.qualification_code == code)
        .first()
        is not None
    )


def create_qualification(db: Session, actor: User, payload: QualificationCreateRequest) -> Qualification:
    organization_id = resolve_organization_id(actor, payload.organization_id)
    code = payload.qualification_code.strip().upper()
    if _code_taken(db, organization_id, code):
        raise HTTPException(status_code=409, detail=f"Qualification code {code} already exists")
    qualification = Qualification(
        organization_id=organization_id,
        qualification_code=code,
        created_by=actor.id,
        status=QualificationApprovalStatus.DRAFT,
        **payload.model_dump(exclude={"organization_id", "qualification_code"}),
    )
    db.add(qualification)
    db.commit()
    db.refresh(qualification)
    return qualification


def update_qualification(
    db: Session, actor: User, qualification_id: int, payload: QualificationUpdateRequest
) -> Qualification:
    """Edits a qualification. An approved one drops back to draft as a new version."""
    qualification = get_scoped_or_404(db, Qualification, qualification_id, actor, "Qualification")
    if qualification.status == QualificationApprovalStatus.PENDING_APPROVAL:
        raise HTTPException(status_code=400, detail="Qualification is awaiting approval and cannot be edited")
    changes = payload.model_dump(exclude_none=True)
    if not changes:
        return qualification
    for key, value in changes.items():
        setattr(qualification, key, value)
    if qualification.status == QualificationApprovalStatus.APPROVED:
        qualification.status = QualificationApprovalStatus.DRAFT
        qualification.approved_by = None
        qualification.approval_date = None
        qualification.version_number += 1
        logger.info(
            "Qualification %s edited after approval; now version %s",
            qualification.qualification_code,
            qualification.version_number,
        )
    db.commit()
    db.refresh(qualification)
    return qualification


def delete_qualification(db: Session, actor: User, qualification_id: int) -> None:
    qualification = get_scoped_or_404(db, Qualification, qualification_id, actor, "Qualification")
    if qualification.status == QualificationApprovalStatus.APPROVED:
        raise HTTPException(status_code=400, detail="Approved qualifications cannot be deleted")
    if qualification.unit_standards:
        raise HTTPException(status_code=400, detail="Remove the unit standards before deleting the qualification")
    if db.query(Trainee.id).filter(Trainee.qualification_id == qualification.id).first():
        raise HTTPException(status_code=400, detail="Qualification has enrolled trainees")
    if db.query(Gradebook.id).filter(Gradebook.qualification_id == qualification.id).first():
        raise HTTPException(status_code=400, detail="Qualification has gradebooks")
    db.query(QualificationApproval).filter(QualificationApproval.qualification_id == qualification.id).delete()
    db.delete(qualification)
    db.commit()


def _record_approval(
    db: Session, qualification: Qualification, action: ApprovalAction, actor: User, comments: str | None
) -> None:
    db.add(
        QualificationApproval(
            qualification_id=qualification.id,
            action=action,
            performed_by=actor.id,
            comments=comments,
        )
    )
    log_audit_event(
        db,
        action=f"qualification_{action.value}",
        table_name="qualifications",
        record_id=qualification.id,
        new_data={"status": qualification.status.value, "comments": comments},
        user_id=actor.id,
        organization_id=qualification.organization_id,
    )


def submit_qualification(db: Session, actor: User, qualification_id: int, comments: str | None = None) -> Qualification:
    qualification = get_scoped_or_404(db, Qualification, qualification_id, actor, "Qualification")
    if qualification.status not in (QualificationApprovalStatus.DRAFT, QualificationApprovalStatus.REJECTED):
        raise HTTPException(
            status_code=400, detail=f"Only draft or rejected qualifications can be submitted (status is {qualification.status.value})"
        )
    qualification.status = QualificationApprovalStatus.PENDING_APPROVAL
    qualification.rejection_reason = None
    _record_approval(db, qualification, ApprovalAction.SUBMITTED, actor, comments)
    notify(
        db,
        title="Qualification awaiting approval",
        message=f"{qualification.qualification_code} {qualification.qualification_title} was submitted for approval.",
        organization_id=qualification.organization_id,
        role=AppRole.HEAD_OF_TRAINING.value,
    )
    db.commit()
    db.refresh(qualification)
    return qualification


def _pending_or_400(db: Session, actor: User, qualification_id: int) -> Qualification:
    qualification = get_scoped_or_404(db, Qualification, qualification_id, actor, "Qualification")
    if qualification.status != QualificationApprovalStatus.PENDING_APPROVAL:
        raise HTTPException(status_code=400, detail="Qualification is not pending approval")
    return qualification


def approve_qualification(db: Session, actor: User, qualification_id: int, comments: str | None = None) -> Qualification:
    qualification = _pending_or_400(db, actor, qualification_id)
    qualification.status = QualificationApprovalStatus.APPROVED
    qualification.approved_by = actor.id
    qualification.approval_date = utcnow()
    _record_approval(db, qualification, ApprovalAction.APPROVED, actor, comments)
    if qualification.created_by:
        notify(
            db,
            title="Qualification approved",
            message=f"{qualification.qualification_code} version {qualification.version_number} is approved.",
            organization_id=qualification.organization_id,
            user_id=qualification.created_by,
            type="success",
        )
    db.commit()
    db.refresh(qualification)
    return qualification


def reject_qualification(db: Session, actor: User, qualification_id: int, comments: str | None) -> Qualification:
    if not comments or not comments.strip():
        raise HTTPException(status_code=400, detail="A reason is required to reject a qualification")
    qualification = _pending_or_400(db, actor, qualification_id)
    qualification.status = QualificationApprovalStatus.REJECTED
    qualification.rejection_reason = comments.strip()
    _record_approval(db, qualification, ApprovalAction.REJECTED, actor, qualification.rejection_reason)
    if qualification.created_by:
        notify(
            db,
            title="Qualification rejected",
            message=f"{qualification.qualification_code} was rejected: {qualification.rejection_reason}",
            organization_id=qualification.organization_id,
            user_id=qualification.created_by,
            type="warning",
        )
    db.commit()
    db.refresh(qualification)
    return qualification


def return_qualification(db: Session, actor: User, qualification_id: int, comments: str | None = None) -> Qualification:
    qualification = _pending_or_400(db, actor, qualification_id)
    qualification.status = QualificationApprovalStatus.DRAFT
    _record_approval(db, qualification, ApprovalAction.RETURNED, actor, comments)
    db.commit()
    db.refresh(qualification)
    return qualification


def list_approvals(db: Session, actor: User, qualification_id: int) -> list[QualificationApproval]:
    qualification = get_scoped_or_404(db, Qualification, qualification_id, actor, "Qualification")
    return (
        db.query(QualificationApproval)
        .filter(QualificationApproval.qualification_id == qualification.id)
        .order_by(QualificationApproval.created_at, QualificationApproval.id)
        .all()
    )


# --- CSV import / export ---

def qualification_template_csv() -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(QUALIFICATION_CSV_HEADERS)
    writer.writerow(["National Vocational Certificate in Welding", "NVC-WLD-01", "nvc", 3, 12, "months"])
    writer.writerow(["Diploma in Electrical Engineering", "DIP-ELE-01", "diploma", 5, 2, "years"])
    return output.getvalue()


def _validate_row(row: dict) -> tuple[dict, list[str]]:
    errors = []
    title = (row.get("qualification_title") or "").strip()
    code = (row.get("qualification_code") or "").strip().upper()
    qualification_type = (row.get("qualification_type") or "").strip().lower()
    duration_unit = (row.get("duration_unit") or "").strip().lower()

    if not title:
        errors.append("Title is required")
    if not code:
        errors.append("Code is required")
    if qualification_type not in {member.value for member in QualificationType}:
        errors.append("Invalid type: must be 'nvc' or 'diploma'")
    try:
        nqf_level = int(row.get("nqf_level") or "")
    except ValueError:
        nqf_level = None
    if nqf_level is None or not 1 <= nqf_level <= 10:
        errors.append("NQF level must be between 1 and 10")
    try:
        duration_value = int(row.get("duration_value") or "")
    except ValueError:
        duration_value = None
    if duration_value is None or duration_value <= 0:
        errors.append("Duration must be a positive number")
    if duration_unit not in {member.value for member in DurationUnit}:
        errors.append("Invalid duration unit: must be 'months' or 'years'")

    cleaned = {
        "qualification_title": title,
        "qualification_code": code,
        "qualification_type": qualification_type,
        "nqf_level": nqf_level,
        "duration_value": duration_value,
        "duration_unit": duration_unit,
    }
    return cleaned, errors


def parse_qualification_csv(content: bytes) -> list[tuple[int, dict, list[str]]]:
    """Returns (row number, cleaned row, errors) for every data row of an upload."""
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="CSV file must be UTF-8 encoded") from exc

    reader = csv.reader(io.StringIO(text.strip()))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if len(rows) < 2:
        raise HTTPException(status_code=400, detail="CSV must have a header row and at least one data row")

    headers = [header.strip().lower().replace('"', "") for header in rows[0]]
    missing = [header for header in QUALIFICATION_CSV_HEADERS if header not in headers]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required columns: {', '.join(missing)}")

    parsed = []
    # Row 1 is the header line.
    for row_number, values in enumerate(rows[1:], start=2):
        record = {header: (values[index].strip() if index < len(values) else "") for index, header in enumerate(headers)}
        cleaned, errors = _validate_row(record)
        parsed.append((row_number, cleaned, errors))
    return parsed


def import_qualifications(db: Session, actor: User, content: bytes, organization_id: int | None = None) -> dict:
    organization_id = resolve_organization_id(actor, organization_id)
    parsed = parse_qualification_csv(content)

    result = {"success": 0, "failed": 0, "errors": []}
    valid = []
    for row_number, cleaned, errors in parsed:
        if errors:
            result["failed"] += 1
            result["errors"].append(
                {"row": row_number, "code": cleaned["qualification_code"], "error": "; ".join(errors)}
            )
        else:
            valid.append((row_number, cleaned))

    codes = [cleaned["qualification_code"] for _, cleaned in valid]
    duplicates = sorted({code for code in codes if codes.count(code) > 1})
    if duplicates:
        raise HTTPException(status_code=400, detail=f"Duplicate codes found in import: {', '.join(duplicates)}")

    existing = {
        code
        for (code,) in db.query(Qualification.qualification_code)
        .filter(Qualification.organization_id == organization_id, Qualification.qualification_code.in_(codes))
        .all()
    }
    for row_number, cleaned in valid:
        if cleaned["qualification_code"] in existing:
            result["failed"] += 1
            result["errors"].append(
                {"row": row_number, "code": cleaned["qualification_code"], "error": "Code already exists"}
            )
            continue
        db.add(
            Qualification(
                organization_id=organization_id,
                created_by=actor.id,
                status=QualificationApprovalStatus.DRAFT,
                qualification_title=cleaned["qualification_title"],
                qualification_code=cleaned["qualification_code"],
                qualification_type=QualificationType(cleaned["qualification_type"]),
                nqf_level=cleaned["nqf_level"],
                duration_value=cleaned["duration_value"],
                duration_unit=DurationUnit(cleaned["duration_unit"]),
            )
        )
        result["success"] += 1

    db.commit()
    logger.info(
        "Qualification import for org %s: %s imported, %s failed", organization_id, result["success"], result["failed"]
    )
    return result


def export_qualifications_csv(db: Session, actor: User) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(QUALIFICATION_CSV_HEADERS + ["status", "version_number"])
    for qualification in list_qualifications(db, actor):
        writer.writerow(
            [
                qualification.qualification_title,
                qualification.qualification_code,
                qualification.qualification_type.value,
                qualification.nqf_level,
                qualification.duration_value,
                qualification.duration_unit.value,
                qualification.status.value,
                qualification.version_number,
            ]
        )
    return output.getvalue()


# --- Unit standards ---

def list_unit_standards(db: Session, actor: User, qualification_id: int) -> list[UnitStandard]:
    qualification = get_scoped_or_404(db, Qualification, qualification_id, actor, "Qualification")
    return qualification.unit_standards


def create_unit_standard(db: Session, actor: User, payload: UnitStandardCreateRequest) -> UnitStandard:
    qualification = get_scoped_or_404(db, Qualification, payload.qualification_id, actor, "Qualification")
    code = payload.unit_standard_code.strip().upper()
    exists = (
        db.query(UnitStandard.id)
        .filter(UnitStandard.qualification_id == qualification.id, UnitStandard.unit_standard_code == code)
        .first()
    )
    if exists:
        raise HTTPException(status_code=409, detail=f"Unit standard {code} already exists on this qualification")
    unit = UnitStandard(
        organization_id=qualification.organization_id,
        unit_standard_code=code,
        **payload.model_dump(exclude={"unit_standard_code"}),
    )
    db.add(unit)
    db.commit()
    db.refresh(unit)
    return unit


def update_unit_standard(db: Session, actor: User, unit_id: int, payload: UnitStandardUpdateRequest) -> UnitStandard:
    unit = get_scoped_or_404(db, UnitStandard, unit_id, actor, "Unit standard")
    for key, value in payload.model_dump(exclude_none=True).items():
        setattr(unit, key, value)
    db.commit()
    db.refresh(unit)
    return unit


def delete_unit_standard(db: Session, actor: User, unit_id: int) -> None:
    unit = get_scoped_or_404(db, UnitStandard, unit_id, actor, "Unit standard")
    if db.query(AssessmentResult.id).filter(AssessmentResult.unit_standard_id == unit.id).first():
        raise HTTPException(status_code=400, detail="Unit standard has assessment results")
    db.delete(unit)
    db.commit()


# --- Assessment results ---

def initialise_results(db: Session, actor: User, trainee_id: int) -> int:
    """Creates a pending result for each unit standard the trainee has none for."""
    trainee = get_scoped_or_404(db, Trainee, trainee_id, actor, "Trainee")
    if trainee.qualification_id is None:
        raise HTTPException(status_code=400, detail="Trainee has no qualification")
    units = db.query(UnitStandard).filter(UnitStandard.qualification_id == trainee.qualification_id).all()
    if not units:
        raise HTTPException(status_code=400, detail="Qualification has no unit standards")
    existing = {
        unit_id
        for (unit_id,) in db.query(AssessmentResult.unit_standard_id).filter(AssessmentResult.trainee_id == trainee.id)
    }
    created = 0
    for unit in units:
        if unit.id in existing:
            continue
        db.add(
            AssessmentResult(
                organization_id=trainee.organization_id,
                trainee_id=trainee.id,
                unit_standard_id=unit.id,
                qualification_id=trainee.qualification_id,
                competency_status=CompetencyStatus.PENDING,
            )
        )
        created += 1
    db.commit()
    return created


def list_results(
    db: Session, actor: User, trainee_id: int | None = None, qualification_id: int | None = None
) -> list[AssessmentResult]:
    query = scope_to_organization(db.query(AssessmentResult), AssessmentResult, actor)
    if trainee_id:
        query = query.filter(AssessmentResult.trainee_id == trainee_id)
    if qualification_id:
        query = query.filter(AssessmentResult.qualification_id == qualification_id)
    return query.order_by(AssessmentResult.trainee_id, AssessmentResult.unit_standard_id).all()


def record_result(db: Session, actor: User, result_id: int, payload: RecordResultRequest) -> AssessmentResult:
    result = get_scoped_or_404(db, AssessmentResult, result_id, actor, "Assessment result")
    if result.is_locked:
        raise HTTPException(status_code=400, detail="Result is approved and locked")
    result.marks_obtained = payload.marks_obtained
    result.competency_status = payload.competency_status
    result.assessment_date = payload.assessment_date or today()
    result.remarks = payload.remarks
    result.assessed_by = actor.id
    db.commit()
    db.refresh(result)
    return result


def approve_results(db: Session, actor: User, result_ids: list[int]) -> int:
    results = [get_scoped_or_404(db, AssessmentResult, result_id, actor, "Assessment result") for result_id in result_ids]
    approved = 0
    for result in results:
        if result.is_locked:
            continue
        if result.competency_status == CompetencyStatus.PENDING:
            raise HTTPException(status_code=400, detail=f"Result {result.id} has not been assessed")
        result.approved_by = actor.id
        result.approved_at = utcnow()
        result.is_locked = True
        approved += 1
    db.commit()
    return approved


def credit_summary(db: Session, actor: User, trainee_id: int) -> dict:
    trainee = get_scoped_or_404(db, Trainee, trainee_id, actor, "Trainee")
    if trainee.qualification_id is None:
        raise HTTPException(status_code=400, detail="Trainee has no qualification")
    units = db.query(UnitStandard).filter(UnitStandard.qualification_id == trainee.qualification_id).all()
    results = {
        result.unit_standard_id: result
        for result in db.query(AssessmentResult).filter(AssessmentResult.trainee_id == trainee.id)
    }
    counts = {status: 0 for status in CompetencyStatus}
    credits_earned = 0
    for unit in units:
        result = results.get(unit.id)
        status = result.competency_status if result else CompetencyStatus.PENDING
        counts[status] += 1
        if status == CompetencyStatus.COMPETENT:
            credits_earned += unit.credit_value
    total_credits = sum(unit.credit_value for unit in units)
    return {
        "trainee_id": trainee.id,
        "qualification_id": trainee.qualification_id,
        "total_units": len(units),
        "competent_units": counts[CompetencyStatus.COMPETENT],
        "pending_units": counts[CompetencyStatus.PENDING],
        "not_yet_competent_units": counts[CompetencyStatus.NOT_YET_COMPETENT],
        "total_credits": total_credits,
        "credits_earned": credits_earned,
        "completion_percentage": round(credits_earned / total_credits * 100, 2) if total_credits else 0.0,
    }


# --- Gradebooks ---

def _check_weights(test_weight: float, mock_weight: float) -> None:
    if round(test_weight + mock_weight, 2) != 100:
        raise HTTPException(status_code=400, detail="Test and mock weights must add up to 100")


def get_gradebook(db: Session, actor: User, gradebook_id: int) -> Gradebook:
    gradebook = get_scoped_or_404(db, Gradebook, gradebook_id, actor, "Gradebook")
    if actor.role == AppRole.TRAINER.value and gradebook.trainer_id != actor.id:
        raise HTTPException(status_code=403, detail="Gradebook belongs to another trainer")
    return gradebook


def _has_marks(db: Session, gradebook: Gradebook) -> bool:
    return db.query(GradebookMark.id).filter(GradebookMark.gradebook_id == gradebook.id).first() is not None


def _ensure_editable(gradebook: Gradebook) -> None:
    if gradebook.is_locked:
        raise HTTPException(status_code=400, detail="Gradebook is locked")
    if gradebook.status != GradebookStatus.DRAFT:
        raise HTTPException(status_code=400, detail="Gradebook can only be changed while in draft")


def list_gradebooks(db: Session, actor: User, status_filter: GradebookStatus | None = None) -> list[Gradebook]:
    query = scope_to_organization(db.query(Gradebook), Gradebook, actor)
    if actor.role == AppRole.TRAINER.value:
        query = query.filter(Gradebook.trainer_id == actor.id)
    if status_filter:
        query = query.filter(Gradebook.status == status_filter)
    return query.order_by(Gradebook.created_at.desc()).all()


def create_gradebook(db: Session, actor: User, payload: GradebookCreateRequest) -> Gradebook:
    qualification = get_scoped_or_404(db, Qualification, payload.qualification_id, actor, "Qualification")
    if qualification.status != QualificationApprovalStatus.APPROVED:
        raise HTTPException(status_code=400, detail="Gradebooks can only be created for approved qualifications")
    _check_weights(payload.test_weight, payload.mock_weight)

    trainer_id = actor.id
    if payload.trainer_id and payload.trainer_id != actor.id:
        if actor.role == AppRole.TRAINER.value:
            raise HTTPException(status_code=403, detail="Trainers can only create their own gradebooks")
        trainer = db.get(User, payload.trainer_id)
        if trainer is None or trainer.role != AppRole.TRAINER.value:
            raise HTTPException(status_code=400, detail="Trainer not found")
        ensure_same_organization(actor, trainer.organization_id, "Trainer belongs to another organization")
        trainer_id = trainer.id

    gradebook = Gradebook(
        organization_id=qualification.organization_id,
        trainer_id=trainer_id,
        status=GradebookStatus.DRAFT,
        **payload.model_dump(exclude={"trainer_id"}),
    )
    db.add(gradebook)
    db.commit()
    db.refresh(gradebook)
    return gradebook


def update_gradebook(db: Session, actor: User, gradebook_id: int, payload: GradebookUpdateRequest) -> Gradebook:
    gradebook = get_gradebook(db, actor, gradebook_id)
    _ensure_editable(gradebook)
    if _has_marks(db, gradebook):
        raise HTTPException(status_code=400, detail="Cannot edit a gradebook with recorded marks")
    changes = payload.model_dump(exclude_none=True)
    _check_weights(
        changes.get("test_weight", gradebook.test_weight),
        changes.get("mock_weight", gradebook.mock_weight),
    )
    for key, value in changes.items():
        setattr(gradebook, key, value)
    db.commit()
    db.refresh(gradebook)
    return gradebook


def delete_gradebook(db: Session, actor: User, gradebook_id: int) -> None:
    gradebook = get_gradebook(db, actor, gradebook_id)
    if _has_marks(db, gradebook):
        raise HTTPException(status_code=400, detail="Cannot delete a gradebook with recorded marks")
    db.delete(gradebook)
    db.commit()


def add_component(db: Session, actor: User, gradebook_id: int, payload: ComponentCreateRequest) -> GradebookComponent:
    gradebook = get_gradebook(db, actor, gradebook_id)
    _ensure_editable(gradebook)
    component = GradebookComponent(gradebook_id=gradebook.id, **payload.model_dump())
    db.add(component)
    db.commit()
    db.refresh(component)
    return component


def remove_component(db: Session, actor: User, gradebook_id: int, component_id: int) -> None:
    gradebook = get_gradebook(db, actor, gradebook_id)
    _ensure_editable(gradebook)
    component = db.get(GradebookComponent, component_id)
    if component is None or component.gradebook_id != gradebook.id:
        raise HTTPException(status_code=404, detail="Component not found")
    if db.query(GradebookMark.id).filter(GradebookMark.component_id == component.id).first():
        raise HTTPException(status_code=400, detail="Component has recorded marks")
    db.delete(component)
    db.commit()


def add_gradebook_trainees(db: Session, actor: User, gradebook_id: int, trainee_ids: list[int]) -> list[GradebookTrainee]:
    gradebook = get_gradebook(db, actor, gradebook_id)
    _ensure_editable(gradebook)
    enrolled = {link.trainee_id for link in gradebook.trainees}
    for trainee_id in trainee_ids:
        trainee = get_scoped_or_404(db, Trainee, trainee_id, actor, "Trainee")
        if trainee.organization_id != gradebook.organization_id:
            raise HTTPException(status_code=400, detail="Trainee belongs to another organization")
        if trainee.qualification_id != gradebook.qualification_id:
            raise HTTPException(
                status_code=400, detail=f"Trainee {trainee.trainee_number} is not enrolled on this qualification"
            )
        if trainee.id in enrolled:
            continue
        gradebook.trainees.append(GradebookTrainee(trainee_id=trainee.id))
        enrolled.add(trainee.id)
    db.commit()
    db.refresh(gradebook)
    return gradebook.trainees


def save_marks(db: Session, actor: User, gradebook_id: int, entries: list[MarkEntry]) -> list[GradebookMark]:
    gradebook = get_gradebook(db, actor, gradebook_id)
    _ensure_editable(gradebook)
    components = {component.id: component for component in gradebook.components}
    enrolled = {link.trainee_id for link in gradebook.trainees}

    saved = {}
    for entry in entries:
        component = components.get(entry.component_id)
        if component is None:
            raise HTTPException(status_code=400, detail=f"Component {entry.component_id} is not on this gradebook")
        if entry.trainee_id not in enrolled:
            raise HTTPException(status_code=400, detail=f"Trainee {entry.trainee_id} is not on this gradebook")
        if entry.marks_obtained is not None and entry.marks_obtained > component.max_marks:
            raise HTTPException(
                status_code=400, detail=f"Marks for {component.name} cannot exceed {component.max_marks:g}"
            )
        key = (component.id, entry.trainee_id)
        mark = saved.get(key) or (
            db.query(GradebookMark)
            .filter(GradebookMark.component_id == component.id, GradebookMark.trainee_id == entry.trainee_id)
            .first()
        )
        if mark is None:
            mark = GradebookMark(gradebook_id=gradebook.id, component_id=component.id, trainee_id=entry.trainee_id)
            db.add(mark)
        mark.marks_obtained = entry.marks_obtained
        mark.competency_status = entry.competency_status
        mark.entered_by = actor.id
        saved[key] = mark
    db.commit()
    for mark in saved.values():
        db.refresh(mark)
    return list(saved.values())


def list_marks(db: Session, actor: User, gradebook_id: int) -> list[GradebookMark]:
    gradebook = get_gradebook(db, actor, gradebook_id)
    return (
        db.query(GradebookMark)
        .filter(GradebookMark.gradebook_id == gradebook.id)
        .order_by(GradebookMark.trainee_id, GradebookMark.component_id)
        .all()
    )


def _move(gradebook: Gradebook, expected: GradebookStatus, target: GradebookStatus) -> None:
    if gradebook.status != expected:
        raise HTTPException(
            status_code=400,
            detail=f"Gradebook is {gradebook.status.value}; expected {expected.value} to move to {target.value}",
        )
    gradebook.status = target


def submit_gradebook(db: Session, actor: User, gradebook_id: int) -> Gradebook:
    gradebook = get_gradebook(db, actor, gradebook_id)
    if not gradebook.components or not gradebook.trainees:
        raise HTTPException(status_code=400, detail="Gradebook needs components and trainees before submission")
    _move(gradebook, GradebookStatus.DRAFT, GradebookStatus.SUBMITTED)
    gradebook.submitted_by = actor.id
    gradebook.submitted_at = utcnow()
    gradebook.return_reason = None
    notify(
        db,
        title="Gradebook submitted",
        message=f"{gradebook.title} ({gradebook.academic_year}) is awaiting Head of Training approval.",
        organization_id=gradebook.organization_id,
        role=AppRole.HEAD_OF_TRAINING.value,
    )
    db.commit()
    db.refresh(gradebook)
    return gradebook


def hot_approve_gradebook(db: Session, actor: User, gradebook_id: int) -> Gradebook:
    gradebook = get_gradebook(db, actor, gradebook_id)
    _move(gradebook, GradebookStatus.SUBMITTED, GradebookStatus.HOT_APPROVED)
    gradebook.hot_approved_at = utcnow()
    notify(
        db,
        title="Gradebook ready for moderation",
        message=f"{gradebook.title} was approved by the Head of Training.",
        organization_id=gradebook.organization_id,
        role=AppRole.ASSESSMENT_COORDINATOR.value,
    )
    db.commit()
    db.refresh(gradebook)
    return gradebook


def ac_approve_gradebook(db: Session, actor: User, gradebook_id: int) -> Gradebook:
    gradebook = get_gradebook(db, actor, gradebook_id)
    _move(gradebook, GradebookStatus.HOT_APPROVED, GradebookStatus.AC_APPROVED)
    gradebook.ac_approved_at = utcnow()
    notify(
        db,
        title="Gradebook approved",
        message=f"{gradebook.title} was approved by the Assessment Coordinator.",
        organization_id=gradebook.organization_id,
        user_id=gradebook.trainer_id,
        type="success",
    )
    db.commit()
    db.refresh(gradebook)
    return gradebook


def finalise_gradebook(db: Session, actor: User, gradebook_id: int) -> Gradebook:
    gradebook = get_gradebook(db, actor, gradebook_id)
    _move(gradebook, GradebookStatus.AC_APPROVED, GradebookStatus.FINALISED)
    now = utcnow()
    gradebook.finalised_at = now
    gradebook.is_locked = True
    gradebook.locked_at = now
    notify(
        db,
        title="Gradebook Finalised",
        message="Your gradebook has been finalised. Marks are now the official record.",
        organization_id=gradebook.organization_id,
        user_id=gradebook.trainer_id,
        type="success",
    )
    notify(
        db,
        title="Your Marks Are Available",
        message="Final marks have been published. Check your Results page.",
        organization_id=gradebook.organization_id,
        role=AppRole.TRAINEE.value,
    )
    log_audit_event(
        db,
        action="gradebook_finalised",
        table_name="gradebooks",
        record_id=gradebook.id,
        new_data={"status": gradebook.status.value},
        user_id=actor.id,
        organization_id=gradebook.organization_id,
    )
    db.commit()
    db.refresh(gradebook)
    return gradebook


def return_gradebook(db: Session, actor: User, gradebook_id: int, payload: ReturnGradebookRequest) -> Gradebook:
    gradebook = get_gradebook(db, actor, gradebook_id)
    if payload.return_to == "draft":
        allowed = (GradebookStatus.SUBMITTED, GradebookStatus.HOT_APPROVED, GradebookStatus.AC_APPROVED)
    else:
        allowed = (GradebookStatus.HOT_APPROVED, GradebookStatus.AC_APPROVED)
    if gradebook.status not in allowed:
        raise HTTPException(
            status_code=400, detail=f"A {gradebook.status.value} gradebook cannot be returned to {payload.return_to}"
        )

    gradebook.status = GradebookStatus(payload.return_to)
    gradebook.return_reason = payload.reason
    gradebook.hot_approved_at = None
    gradebook.ac_approved_at = None
    if gradebook.status == GradebookStatus.DRAFT:
        gradebook.submitted_at = None
        gradebook.submitted_by = None
    notify(
        db,
        title="Gradebook Returned",
        message="Your gradebook has been returned for revision. Please review the feedback.",
        organization_id=gradebook.organization_id,
        user_id=gradebook.trainer_id,
        type="warning",
    )
    db.commit()
    db.refresh(gradebook)
    return gradebook


def _percentage(marks: list[GradebookMark], components: list[GradebookComponent]) -> float | None:
    by_component = {mark.component_id: mark for mark in marks}
    obtained = 0.0
    possible = 0.0
    for component in components:
        mark = by_component.get(component.id)
        if mark is None or mark.marks_obtained is None:
            continue
        obtained += mark.marks_obtained
        possible += component.max_marks
    if not possible:
        return None
    return obtained / possible * 100


def ca_scores(db: Session, actor: User, gradebook_id: int) -> list[dict]:
    """Continuous assessment score per trainee: weighted test and mock percentages.

    Only components with a recorded mark count. When a trainee has marks on one
    side only, that side carries the whole score.
    """
    gradebook = get_gradebook(db, actor, gradebook_id)
    tests = [c for c in gradebook.components if c.component_type == ComponentType.TEST]
    mocks = [c for c in gradebook.components if c.component_type == ComponentType.MOCK]
    marks = db.query(GradebookMark).filter(GradebookMark.gradebook_id == gradebook.id).all()

    scores = []
    for link in gradebook.trainees:
        trainee_marks = [mark for mark in marks if mark.trainee_id == link.trainee_id]
        test_pct = _percentage(trainee_marks, tests)
        mock_pct = _percentage(trainee_marks, mocks)
        sides = ((test_pct, gradebook.test_weight), (mock_pct, gradebook.mock_weight))
        weighted = [(pct, weight) for pct, weight in sides if pct is not None]
        total_weight = sum(weight for _, weight in weighted)
        ca_score = round(sum(pct * weight for pct, weight in weighted) / total_weight, 2) if total_weight else None
        scores.append(
            {
                "trainee_id": link.trainee_id,
                "test_percentage": round(test_pct, 2) if test_pct is not None else None,
                "mock_percentage": round(mock_pct, 2) if mock_pct is not None else None,
                "ca_score": ca_score,
            }
        )
    return scores
