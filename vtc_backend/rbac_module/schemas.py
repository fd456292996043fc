from datetime import datetime

from pydantic import BaseModel, Field

from ..schemas import ORMModel


class LoginRequest(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=8)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    organization_id: int | None = None
    password_reset_required: bool = False


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)


class UserOut(ORMModel):
    id: int
    email: str
    firstname: str | None = None
    surname: str | None = None
    full_name: str
    phone: str | None = None
    role: str
    organization_id: int | None = None
    is_active: bool
    password_reset_required: bool


class UserCreateRequest(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=8)
    role: str = Field(min_length=2, max_length=64)
    firstname: str | None = None
    surname: str | None = None
    phone: str | None = None
    organization_id: int | None = None


class UserUpdateRequest(BaseModel):
    user_id: int = Field(alias="userId")
    firstname: str | None = None
    surname: str | None = None
    phone: str | None = None
    role: str | None = None
    active: bool | None = None
    organization_id: int | None = None

    model_config = {"populate_by_name": True}


class UserMutationResponse(BaseModel):
    success: bool = True
    user: UserOut


class OrganizationCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    code: str = Field(min_length=2, max_length=32)
    email_domain: str = Field(min_length=3, max_length=255)
    trainee_id_prefix: str = Field(min_length=1, max_length=16)


class OrganizationUpdateRequest(BaseModel):
    name: str | None = None
    email_domain: str | None = None
    trainee_id_prefix: str | None = None
    active: bool | None = None


class OrganizationOut(ORMModel):
    id: int
    name: str
    code: str
    email_domain: str
    trainee_id_prefix: str
    next_trainee_sequence: int
    active: bool
    created_at: datetime


class CustomRoleCreateRequest(BaseModel):
    role_code: str = Field(min_length=2, max_length=64, pattern=r"^[a-z][a-z0-9_]*$")
    role_name: str = Field(min_length=2, max_length=120)
    description: str | None = None
    organization_id: int | None = None


class CustomRoleUpdateRequest(BaseModel):
    role_name: str | None = None
    description: str | None = None
    active: bool | None = None


class CustomRoleOut(ORMModel):
    id: int
    role_code: str
    role_name: str
    description: str | None
    is_system_role: bool
    organization_id: int | None
    active: bool


class RolePermissionRequest(BaseModel):
    role_code: str
    # Super admins only; left empty they edit the default row.
    organization_id: int | None = None
    module_code: str
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False


class RolePermissionOut(ORMModel):
    id: int
    organization_id: int | None
    role_code: str
    module_code: str
    can_view: bool
    can_create: bool
    can_edit: bool
    can_delete: bool


class ModuleOut(BaseModel):
    code: str
    name: str
    description: str
    category: str


class BulkRoleAssignRequest(BaseModel):
    user_ids: list[int] = Field(min_length=1)
    role_code: str


class BulkRoleAssignResponse(BaseModel):
    success: bool = True
    assigned: int


class NotificationOut(ORMModel):
    id: int
    organization_id: int | None
    user_id: int | None
    role: str | None
    title: str
    message: str
    type: str
    is_read: bool = False
    created_at: datetime


class AuditLogOut(ORMModel):
    id: int
    action: str
    table_name: str
    record_id: str | None
    old_data: dict | None
    new_data: dict | None
    user_id: int | None
    organization_id: int | None
    created_at: datetime
