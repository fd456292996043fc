import enum
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base, utcnow


class AppRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    ORGANIZATION_ADMIN = "organization_admin"
    ADMIN = "admin"
    REGISTRATION_OFFICER = "registration_officer"
    DEBTOR_OFFICER = "debtor_officer"
    TRAINER = "trainer"
    HOD = "hod"
    HEAD_OF_TRAINING = "head_of_training"
    ASSESSMENT_COORDINATOR = "assessment_coordinator"
    HOSTEL_COORDINATOR = "hostel_coordinator"
    STOCK_CONTROL_OFFICER = "stock_control_officer"
    ASSET_MAINTENANCE_COORDINATOR = "asset_maintenance_coordinator"
    PROCUREMENT_OFFICER = "procurement_officer"
    VIEWER = "viewer"
    TRAINEE = "trainee"


ROLE_DISPLAY_NAMES = {
    AppRole.SUPER_ADMIN: "Super Admin",
    AppRole.ORGANIZATION_ADMIN: "Organization Admin",
    AppRole.ADMIN: "Admin",
    AppRole.REGISTRATION_OFFICER: "Registration Officer",
    AppRole.DEBTOR_OFFICER: "Debtor Officer",
    AppRole.TRAINER: "Trainer",
    AppRole.HOD: "Head of Department",
    AppRole.HEAD_OF_TRAINING: "Head of Training",
    AppRole.ASSESSMENT_COORDINATOR: "Assessment Coordinator",
    AppRole.HOSTEL_COORDINATOR: "Hostel Coordinator",
    AppRole.STOCK_CONTROL_OFFICER: "Stock Control Officer",
    AppRole.ASSET_MAINTENANCE_COORDINATOR: "Asset Maintenance Coordinator",
    AppRole.PROCUREMENT_OFFICER: "Procurement Officer",
    AppRole.VIEWER: "Viewer",
    AppRole.TRAINEE: "Trainee",
}


# code -> (name, description, category)
AVAILABLE_MODULES = {
    "user_management": ("User Management", "Manage system users", "Administration"),
    "role_management": ("Role Management", "Manage roles and permissions", "Administration"),
    "trainee_registration": ("Trainee Registration", "Capture and screen applications", "Academic"),
    "trainee_management": ("Trainee Management", "View and manage trainees", "Academic"),
    "qualification_management": ("Qualification Management", "Manage qualifications", "Academic"),
    "assessment_results": ("Assessment Results", "Manage assessment results", "Academic"),
    "gradebooks": ("Gradebooks", "Continuous assessment gradebooks", "Academic"),
    "fee_management": ("Fee Management", "Manage trainee fees", "Financial"),
    "hostel_management": ("Hostel Management", "Buildings, rooms and allocations", "Operations"),
    "stock_management": ("Stock Management", "Manage inventory", "Operations"),
    "asset_management": ("Asset Management", "Manage assets", "Operations"),
    "procurement": ("Procurement", "Purchase orders and requisitions", "Operations"),
    "supplier_management": ("Supplier Management", "Manage suppliers", "Operations"),
    "reports": ("Reports", "Generate reports", "Reporting"),
}


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    email_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    trainee_id_prefix: Mapped[str] = mapped_column(String(16), nullable=False)
    next_trainee_sequence: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    firstname: Mapped[str | None] = mapped_column(String(120), nullable=True)
    surname: Mapped[str | None] = mapped_column(String(120), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    # Built-in AppRole values or the role_code of an organization's CustomRole.
    role: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    organization_id: Mapped[int | None] = mapped_column(ForeignKey("organizations.id"), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    password_reset_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    organization: Mapped[Organization | None] = relationship("Organization")

    @property
    def full_name(self) -> str:
        return f"{self.firstname or ''} {self.surname or ''}".strip()

    @property
    def is_super_admin(self) -> bool:
        return self.role == AppRole.SUPER_ADMIN.value


class CustomRole(Base):
    __tablename__ = "custom_roles"
    __table_args__ = (UniqueConstraint("organization_id", "role_code", name="uq_custom_role_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    role_code: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role_name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_system_role: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    organization_id: Mapped[int | None] = mapped_column(ForeignKey("organizations.id"), nullable=True, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class RolePermission(Base):
    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("organization_id", "role_code", "module_code", name="uq_role_module"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    # NULL rows are the defaults every organization falls back to.
    organization_id: Mapped[int | None] = mapped_column(ForeignKey("organizations.id"), nullable=True, index=True)
    role_code: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    module_code: Mapped[str] = mapped_column(String(64), nullable=False)
    can_view: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_create: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_edit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    table_name: Mapped[str] = mapped_column(String(64), nullable=False)
    record_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    old_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    organization_id: Mapped[int | None] = mapped_column(ForeignKey("organizations.id"), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int | None] = mapped_column(ForeignKey("organizations.id"), nullable=True, index=True)
    # Either a single recipient or every user holding `role` in the organization.
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    role: Mapped[str | None] = mapped_column(String(64), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(40), default="info", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class NotificationRead(Base):
    """Read receipt; a role notification is read by each recipient separately."""

    __tablename__ = "notification_reads"
    __table_args__ = (UniqueConstraint("notification_id", "user_id", name="uq_notification_reader"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    notification_id: Mapped[int] = mapped_column(ForeignKey("notifications.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    read_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
