from collections.abc import Callable

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from .database import get_db_session
from .rbac_module.models import AppRole, RolePermission, User
from .security import AuthError, decode_access_token


ADMIN_ROLES = {AppRole.SUPER_ADMIN.value, AppRole.ORGANIZATION_ADMIN.value, AppRole.ADMIN.value}

PERMISSION_ACTIONS = {"view": "can_view", "create": "can_create", "edit": "can_edit", "delete": "can_delete"}


def _parse_token(auth_header: str | None) -> str:
    if not auth_header:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid auth scheme")
    return parts[1].strip()


def get_current_user(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> User:
    token = _parse_token(authorization)
    try:
        payload = decode_access_token(token)
    except AuthError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    user = db.query(User).filter(User.email == payload["sub"]).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


def _role_values(roles) -> set[str]:
    return {role.value if isinstance(role, AppRole) else role for role in roles}


def require_roles(*allowed_roles: AppRole | str) -> Callable:
    """Dependency admitting the listed roles. Super admins always pass."""
    allowed = _role_values(allowed_roles) | {AppRole.SUPER_ADMIN.value}

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return dependency


def has_permission(db: Session, user: User, module_code: str, action: str = "view") -> bool:
    if user.role in ADMIN_ROLES:
        return True
    # An organization row overrides the default row for the same role and module.
    permission = (
        db.query(RolePermission)
        .filter(
            RolePermission.role_code == user.role,
            RolePermission.module_code == module_code,
            or_(RolePermission.organization_id == user.organization_id, RolePermission.organization_id.is_(None)),
        )
        .order_by(RolePermission.organization_id.is_(None))
        .first()
    )
    return bool(permission and getattr(permission, PERMISSION_ACTIONS[action]))


def require_permission(module_code: str, action: str = "view", *extra_roles: AppRole | str) -> Callable:
    """Dependency checking the module permission matrix.

    Roles in ``extra_roles`` pass without a RolePermission row; they are the
    officers a module was built for.
    """
    if action not in PERMISSION_ACTIONS:
        raise ValueError(f"Unknown permission action: {action}")
    bypass = _role_values(extra_roles)

    def dependency(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db_session),
    ) -> User:
        if current_user.role in bypass or has_permission(db, current_user, module_code, action):
            return current_user
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

    return dependency


def ensure_same_organization(user: User, organization_id: int | None, detail: str = "Record belongs to another organization") -> None:
    if user.is_super_admin:
        return
    if organization_id != user.organization_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def resolve_organization_id(user: User, requested: int | None = None) -> int:
    """Organization a write should land in: super admins choose, everyone else is pinned."""
    if user.is_super_admin:
        org_id = requested or user.organization_id
    else:
        org_id = user.organization_id
    if org_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No organization context")
    return org_id


def scope_to_organization(query: Query, model, user: User) -> Query:
    if user.is_super_admin:
        return query
    return query.filter(model.organization_id == user.organization_id)


def get_scoped_or_404(db: Session, model, record_id: int, user: User, label: str):
    record = db.get(model, record_id)
    if record is None or (not user.is_super_admin and record.organization_id != user.organization_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return record
