import uuid
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field


class RoleRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    name: str
    description: str | None
    is_system_role: bool
    created_at: datetime


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str | None = None
    employee_id: str | None = None
    job_title: str | None = None
    department_id: uuid.UUID | None = None
    role_names: list[str] = Field(default_factory=list)


class UserUpdate(BaseModel):
    full_name: str | None = None
    employee_id: str | None = None
    job_title: str | None = None
    phone: str | None = None
    department_id: uuid.UUID | None = None
    is_active: bool | None = None


class UserRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    email: str
    full_name: str | None
    employee_id: str | None
    job_title: str | None
    department_id: uuid.UUID | None
    is_active: bool
    created_at: datetime


class UserWithRoles(UserRead):
    roles: list[str] = Field(default_factory=list)


class RoleAssignRequest(BaseModel):
    role_id: uuid.UUID


class UserRoleRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    user_id: uuid.UUID
    role_id: uuid.UUID
    assigned_by: uuid.UUID | None
    created_at: datetime
