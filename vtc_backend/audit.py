import logging
from typing import Any

from sqlalchemy.orm import Session

from .rbac_module.models import AuditLog, Notification


logger = logging.getLogger(__name__)


def log_audit_event(
    db: Session,
    *,
    action: str,
    table_name: str,
    record_id: Any = None,
    old_data: dict | None = None,
    new_data: dict | None = None,
    user_id: int | None = None,
    organization_id: int | None = None,
) -> AuditLog:
    entry = AuditLog(
        action=action,
        table_name=table_name,
        record_id=str(record_id) if record_id is not None else None,
        old_data=old_data,
        new_data=new_data,
        user_id=user_id,
        organization_id=organization_id,
    )
    db.add(entry)
    return entry


def notify(
    db: Session,
    *,
    title: str,
    message: str,
    organization_id: int | None = None,
    user_id: int | None = None,
    role: str | None = None,
    type: str = "info",
) -> Notification:
    if user_id is None and role is None:
        raise ValueError("A notification needs a user_id or a role")
    notification = Notification(
        organization_id=organization_id,
        user_id=user_id,
        role=role,
        title=title,
        message=message,
        type=type,
    )
    db.add(notification)
    logger.info("Notification queued for %s: %s", f"user {user_id}" if user_id else f"role {role}", title)
    return notification
