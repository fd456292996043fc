from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import ADMIN_ROLES, get_current_user, require_roles, scope_to_organization
from ..schemas import SuccessResponse
from .models import AVAILABLE_MODULES, AppRole, AuditLog, Organization, User
from .schemas import (
    AuditLogOut,
    BulkRoleAssignRequest,
    BulkRoleAssignResponse,
    CustomRoleCreateRequest,
    CustomRoleOut,
    CustomRoleUpdateRequest,
    LoginRequest,
    LoginResponse,
    ModuleOut,
    NotificationOut,
    OrganizationCreateRequest,
    OrganizationOut,
    OrganizationUpdateRequest,
    PasswordChangeRequest,
    RolePermissionOut,
    RolePermissionRequest,
    UserCreateRequest,
    UserMutationResponse,
    UserOut,
    UserUpdateRequest,
)
from . import services


router = APIRouter(prefix="/api/v1", tags=["RBAC"])

admin_only = require_roles(*ADMIN_ROLES)


@router.post("/auth/login", response_model=LoginResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db_session)):
    user, token = services.login_user(db, email=payload.email, password=payload.password)
    return LoginResponse(
        access_token=token,
        role=user.role,
        organization_id=user.organization_id,
        password_reset_required=user.password_reset_required,
    )


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/auth/change-password", response_model=UserOut)
def change_password(
    payload: PasswordChangeRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return services.change_password(
        db, current_user, current_password=payload.current_password, new_password=payload.new_password
    )


@router.post("/functions/create-user", response_model=UserMutationResponse)
def create_user(
    payload: UserCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    user = services.create_user(db, current_user, payload)
    return UserMutationResponse(user=UserOut.model_validate(user))


@router.post("/functions/update-user", response_model=UserMutationResponse)
def update_user(
    payload: UserUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    user = services.update_user(db, current_user, payload)
    return UserMutationResponse(user=UserOut.model_validate(user))


@router.get("/users", response_model=list[UserOut])
def list_users(
    role: str | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(admin_only),
):
    return services.list_users(db, current_user, role=role)


@router.post("/users/bulk-role", response_model=BulkRoleAssignResponse)
def bulk_assign_roles(
    payload: BulkRoleAssignRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(admin_only),
):
    assigned = services.bulk_assign_roles(db, current_user, user_ids=payload.user_ids, role_code=payload.role_code)
    return BulkRoleAssignResponse(assigned=assigned)


@router.get("/organizations", response_model=list[OrganizationOut])
def list_organizations(
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Organization)
    if not current_user.is_super_admin:
        query = query.filter(Organization.id == current_user.organization_id)
    return query.order_by(Organization.name).all()


@router.post("/organizations", response_model=OrganizationOut, status_code=status.HTTP_201_CREATED)
def create_organization(
    payload: OrganizationCreateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(AppRole.SUPER_ADMIN)),
):
    return services.create_organization(db, payload)


@router.patch("/organizations/{organization_id}", response_model=OrganizationOut)
def update_organization(
    organization_id: int,
    payload: OrganizationUpdateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(AppRole.SUPER_ADMIN)),
):
    return services.update_organization(db, organization_id, payload)


@router.get("/roles", response_model=list[CustomRoleOut])
def list_roles(db: Session = Depends(get_db_session), current_user: User = Depends(admin_only)):
    return services.list_custom_roles(db, current_user)


@router.post("/roles", response_model=CustomRoleOut, status_code=status.HTTP_201_CREATED)
def create_role(
    payload: CustomRoleCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(admin_only),
):
    return services.create_custom_role(db, current_user, payload)


@router.patch("/roles/{role_id}", response_model=CustomRoleOut)
def update_role(
    role_id: int,
    payload: CustomRoleUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(admin_only),
):
    return services.update_custom_role(db, current_user, role_id, payload)


@router.delete("/roles/{role_id}", response_model=SuccessResponse)
def delete_role(role_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(admin_only)):
    services.delete_custom_role(db, current_user, role_id)
    return SuccessResponse(message="Role deleted")


@router.get("/modules", response_model=list[ModuleOut])
def list_modules(_: User = Depends(get_current_user)):
    return [
        ModuleOut(code=code, name=name, description=description, category=category)
        for code, (name, description, category) in AVAILABLE_MODULES.items()
    ]


@router.get("/permissions", response_model=list[RolePermissionOut])
def list_permissions(
    role_code: str | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(admin_only),
):
    return services.list_role_permissions(db, current_user, role_code)


@router.put("/permissions", response_model=RolePermissionOut)
def upsert_permission(
    payload: RolePermissionRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(admin_only),
):
    return services.upsert_role_permission(db, current_user, payload)


@router.delete("/permissions/{permission_id}", response_model=SuccessResponse)
def delete_permission(
    permission_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(admin_only)
):
    services.delete_role_permission(db, current_user, permission_id)
    return SuccessResponse(message="Permission removed")


@router.get("/notifications", response_model=list[NotificationOut])
def list_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return services.list_notifications(db, current_user, unread_only=unread_only)


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return services.mark_notification_read(db, current_user, notification_id)


@router.get("/audit-logs", response_model=list[AuditLogOut])
def list_audit_logs(
    action: str | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(admin_only),
):
    query = scope_to_organization(db.query(AuditLog), AuditLog, current_user)
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
