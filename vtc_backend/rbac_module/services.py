import logging
import re

from fastapi import HTTPException, status
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from ..audit import log_audit_event
from ..config import settings
from ..middleware import ADMIN_ROLES, ensure_same_organization, resolve_organization_id
from ..security import create_access_token, hash_password, verify_password
from .models import (
    AVAILABLE_MODULES,
    ROLE_DISPLAY_NAMES,
    AppRole,
    CustomRole,
    Notification,
    NotificationRead,
    Organization,
    RolePermission,
    User,
)
from .schemas import (
    CustomRoleCreateRequest,
    CustomRoleUpdateRequest,
    NotificationOut,
    OrganizationCreateRequest,
    OrganizationUpdateRequest,
    RolePermissionRequest,
    UserCreateRequest,
    UserUpdateRequest,
)


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def normalize_email(value: str) -> str:
    normalized = value.lower().strip()
    if not EMAIL_PATTERN.match(normalized):
        raise HTTPException(status_code=400, detail="Invalid email format")
    return normalized


def login_user(db: Session, *, email: str, password: str) -> tuple[User, str]:
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    token = create_access_token(subject=user.email, role=user.role, organization_id=user.organization_id)
    return user, token


def change_password(db: Session, user: User, *, current_password: str, new_password: str) -> User:
    if not verify_password(current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.password_hash = hash_password(new_password)
    user.password_reset_required = False
    db.commit()
    db.refresh(user)
    return user


def _require_admin(actor: User, verb: str) -> None:
    if actor.role not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Only admins can {verb} users")


def role_exists(db: Session, role_code: str, organization_id: int | None) -> bool:
    if role_code in {role.value for role in AppRole}:
        return True
    return (
        db.query(CustomRole)
        .filter(
            CustomRole.role_code == role_code,
            CustomRole.active.is_(True),
            or_(CustomRole.organization_id == organization_id, CustomRole.organization_id.is_(None)),
        )
        .first()
        is not None
    )


def _validate_role_assignment(db: Session, actor: User, role_code: str, organization_id: int | None) -> None:
    if role_code == AppRole.SUPER_ADMIN.value and not actor.is_super_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only super admins can assign super admin role")
    if not role_exists(db, role_code, organization_id):
        raise HTTPException(status_code=400, detail=f"Unknown role: {role_code}")


def list_users(db: Session, actor: User, role: str | None = None) -> list[User]:
    query = db.query(User)
    if not actor.is_super_admin:
        query = query.filter(User.organization_id == actor.organization_id)
    if role:
        query = query.filter(User.role == role)
    return query.order_by(User.surname, User.firstname, User.id).all()


def create_user(db: Session, actor: User, payload: UserCreateRequest) -> User:
    _require_admin(actor, "create")
    email = normalize_email(payload.email)

    if payload.role == AppRole.SUPER_ADMIN.value and not actor.is_super_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only super admins can create super admin users")

    # Org admins are pinned to their own organization.
    target_org_id = payload.organization_id if actor.is_super_admin else actor.organization_id
    _validate_role_assignment(db, actor, payload.role, target_org_id)

    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="A user with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        firstname=payload.firstname,
        surname=payload.surname,
        phone=payload.phone,
        role=payload.role,
        organization_id=target_org_id,
        is_active=True,
    )
    db.add(user)
    db.flush()
    log_audit_event(
        db,
        action="user_created",
        table_name="users",
        record_id=user.id,
        new_data={"email": email, "role": payload.role, "organization_id": target_org_id},
        user_id=actor.id,
        organization_id=target_org_id,
    )
    db.commit()
    db.refresh(user)
    logger.info("User %s created with role %s by %s", email, payload.role, actor.email)
    return user


def update_user(db: Session, actor: User, payload: UserUpdateRequest) -> User:
    _require_admin(actor, "update")

    target = db.get(User, payload.user_id)
    if target is None:
        raise HTTPException(status_code=404, detail="User not found")

    if not actor.is_super_admin:
        if target.organization_id != actor.organization_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only update users in your organization")
        if target.is_super_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot update super admin users")

    old_data = {
        "firstname": target.firstname,
        "surname": target.surname,
        "phone": target.phone,
        "role": target.role,
        "active": target.is_active,
        "organization_id": target.organization_id,
    }

    if payload.firstname is not None:
        target.firstname = payload.firstname
    if payload.surname is not None:
        target.surname = payload.surname
    if payload.phone is not None:
        target.phone = payload.phone

    if payload.role is not None:
        target_org_id = (
            (payload.organization_id or target.organization_id) if actor.is_super_admin else actor.organization_id
        )
        _validate_role_assignment(db, actor, payload.role, target_org_id)
        target.role = payload.role
        target.organization_id = target_org_id

    if payload.active is not None:
        if payload.active is False and target.id == actor.id:
            raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
        target.is_active = payload.active

    log_audit_event(
        db,
        action="user_updated",
        table_name="users",
        record_id=target.id,
        old_data=old_data,
        new_data=payload.model_dump(exclude_none=True, exclude={"user_id"}),
        user_id=actor.id,
        organization_id=target.organization_id,
    )
    db.commit()
    db.refresh(target)
    logger.info("User %s updated by %s", target.email, actor.email)
    return target


def bulk_assign_roles(db: Session, actor: User, *, user_ids: list[int], role_code: str) -> int:
    _require_admin(actor, "update")
    users = db.query(User).filter(User.id.in_(user_ids)).all()
    missing = set(user_ids) - {u.id for u in users}
    if missing:
        raise HTTPException(status_code=404, detail=f"Users not found: {sorted(missing)}")

    for user in users:
        ensure_same_organization(actor, user.organization_id, "You can only update users in your organization")
        if user.is_super_admin and not actor.is_super_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot update super admin users")
        _validate_role_assignment(db, actor, role_code, user.organization_id)

    for user in users:
        user.role = role_code
    log_audit_event(
        db,
        action="roles_bulk_assigned",
        table_name="users",
        new_data={"user_ids": sorted(user_ids), "role": role_code},
        user_id=actor.id,
        organization_id=actor.organization_id,
    )
    db.commit()
    return len(users)


# --- Organizations ---

def create_organization(db: Session, payload: OrganizationCreateRequest) -> Organization:
    code = payload.code.strip().upper()
    if db.query(Organization).filter(Organization.code == code).first():
        raise HTTPException(status_code=409, detail="Organization code already exists")
    organization = Organization(
        name=payload.name.strip(),
        code=code,
        email_domain=payload.email_domain.strip().lower(),
        trainee_id_prefix=payload.trainee_id_prefix.strip().upper(),
    )
    db.add(organization)
    db.commit()
    db.refresh(organization)
    return organization


def update_organization(db: Session, organization_id: int, payload: OrganizationUpdateRequest) -> Organization:
    organization = db.get(Organization, organization_id)
    if organization is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    for key, value in payload.model_dump(exclude_none=True).items():
        setattr(organization, key, value)
    db.commit()
    db.refresh(organization)
    return organization


# --- Custom roles and the permission matrix ---

def list_custom_roles(db: Session, actor: User) -> list[CustomRole]:
    query = db.query(CustomRole)
    if not actor.is_super_admin:
        query = query.filter(
            or_(CustomRole.organization_id == actor.organization_id, CustomRole.organization_id.is_(None))
        )
    return query.order_by(CustomRole.is_system_role.desc(), CustomRole.role_name).all()


def create_custom_role(db: Session, actor: User, payload: CustomRoleCreateRequest) -> CustomRole:
    if payload.role_code in {role.value for role in AppRole}:
        raise HTTPException(status_code=409, detail="Role code clashes with a built-in role")
    organization_id = resolve_organization_id(actor, payload.organization_id)
    exists = (
        db.query(CustomRole)
        .filter(CustomRole.role_code == payload.role_code, CustomRole.organization_id == organization_id)
        .first()
    )
    if exists:
        raise HTTPException(status_code=409, detail="Role code already exists")
    role = CustomRole(
        role_code=payload.role_code,
        role_name=payload.role_name.strip(),
        description=payload.description,
        organization_id=organization_id,
        created_by=actor.id,
    )
    db.add(role)
    db.commit()
    db.refresh(role)
    return role


def _get_custom_role(db: Session, actor: User, role_id: int) -> CustomRole:
    role = db.get(CustomRole, role_id)
    if role is None:
        raise HTTPException(status_code=404, detail="Role not found")
    if role.organization_id is not None:
        ensure_same_organization(actor, role.organization_id)
    elif not actor.is_super_admin:
        raise HTTPException(status_code=403, detail="Only super admins can change global roles")
    return role


def update_custom_role(db: Session, actor: User, role_id: int, payload: CustomRoleUpdateRequest) -> CustomRole:
    role = _get_custom_role(db, actor, role_id)
    for key, value in payload.model_dump(exclude_none=True).items():
        setattr(role, key, value)
    db.commit()
    db.refresh(role)
    return role


def delete_custom_role(db: Session, actor: User, role_id: int) -> None:
    role = _get_custom_role(db, actor, role_id)
    if role.is_system_role:
        raise HTTPException(status_code=403, detail="Cannot delete system roles.")
    if db.query(User).filter(User.role == role.role_code, User.organization_id == role.organization_id).count():
        raise HTTPException(status_code=400, detail="Role is still assigned to users")
    db.query(RolePermission).filter(
        RolePermission.role_code == role.role_code, RolePermission.organization_id == role.organization_id
    ).delete()
    db.delete(role)
    db.commit()


def list_role_permissions(db: Session, actor: User, role_code: str | None = None) -> list[RolePermission]:
    query = db.query(RolePermission)
    if not actor.is_super_admin:
        query = query.filter(
            or_(RolePermission.organization_id == actor.organization_id, RolePermission.organization_id.is_(None))
        )
    if role_code:
        query = query.filter(RolePermission.role_code == role_code)
    return query.order_by(RolePermission.role_code, RolePermission.module_code, RolePermission.id).all()


def upsert_role_permission(db: Session, actor: User, payload: RolePermissionRequest) -> RolePermission:
    if payload.module_code not in AVAILABLE_MODULES:
        raise HTTPException(status_code=400, detail=f"Unknown module: {payload.module_code}")
    if payload.role_code in ADMIN_ROLES:
        raise HTTPException(status_code=400, detail="Admin roles always hold every permission")
    organization_id = payload.organization_id if actor.is_super_admin else actor.organization_id
    if organization_id is None and not actor.is_super_admin:
        raise HTTPException(status_code=400, detail="No organization context")
    if not role_exists(db, payload.role_code, organization_id):
        raise HTTPException(status_code=400, detail=f"Unknown role: {payload.role_code}")

    permission = (
        db.query(RolePermission)
        .filter(
            RolePermission.organization_id == organization_id,
            RolePermission.role_code == payload.role_code,
            RolePermission.module_code == payload.module_code,
        )
        .first()
    )
    if permission is None:
        permission = RolePermission(
            organization_id=organization_id, role_code=payload.role_code, module_code=payload.module_code
        )
        db.add(permission)
    permission.can_view = payload.can_view
    permission.can_create = payload.can_create
    permission.can_edit = payload.can_edit
    permission.can_delete = payload.can_delete
    db.commit()
    db.refresh(permission)
    return permission


def delete_role_permission(db: Session, actor: User, permission_id: int) -> None:
    permission = db.get(RolePermission, permission_id)
    if permission is None:
        raise HTTPException(status_code=404, detail="Permission not found")
    if permission.organization_id is None:
        if not actor.is_super_admin:
            raise HTTPException(status_code=403, detail="Only super admins can change default permissions")
    else:
        ensure_same_organization(actor, permission.organization_id)
    db.delete(permission)
    db.commit()


def _visible_notifications(db: Session, user: User):
    return db.query(Notification).filter(
        or_(
            Notification.user_id == user.id,
            and_(Notification.role == user.role, Notification.organization_id == user.organization_id),
        )
    )


def _notification_out(notification: Notification, is_read: bool) -> NotificationOut:
    return NotificationOut.model_validate(notification).model_copy(update={"is_read": is_read})


def list_notifications(db: Session, user: User, unread_only: bool = False) -> list[NotificationOut]:
    read_ids = select(NotificationRead.notification_id).where(NotificationRead.user_id == user.id)
    query = _visible_notifications(db, user)
    if unread_only:
        query = query.filter(Notification.id.not_in(read_ids))
    notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
    read = set(db.scalars(read_ids))
    return [_notification_out(notification, notification.id in read) for notification in notifications]


def mark_notification_read(db: Session, user: User, notification_id: int) -> NotificationOut:
    notification = _visible_notifications(db, user).filter(Notification.id == notification_id).first()
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    receipt = (
        db.query(NotificationRead)
        .filter(NotificationRead.notification_id == notification.id, NotificationRead.user_id == user.id)
        .first()
    )
    if receipt is None:
        db.add(NotificationRead(notification_id=notification.id, user_id=user.id))
        db.commit()
    return _notification_out(notification, True)


def seed_defaults(db: Session) -> None:
    for role, display_name in ROLE_DISPLAY_NAMES.items():
        exists = (
            db.query(CustomRole)
            .filter(CustomRole.role_code == role.value, CustomRole.organization_id.is_(None))
            .first()
        )
        if exists:
            continue
        db.add(CustomRole(role_code=role.value, role_name=display_name, is_system_role=True))

    email = settings.default_admin_email.strip().lower()
    if not db.query(User).filter(User.email == email).first():
        db.add(
            User(
                email=email,
                password_hash=hash_password(settings.default_admin_password),
                firstname="System",
                surname="Administrator",
                role=AppRole.SUPER_ADMIN.value,
                is_active=True,
                password_reset_required=True,
            )
        )
        logger.info("Seeded default super admin %s", email)
    db.commit()
