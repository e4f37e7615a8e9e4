from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import RecordStatus, UserRole


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class LoginRequest(CamelModel):
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=1)


class LoginResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    role: UserRole


class UserCreateRequest(CamelModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=8)
    role: UserRole
    department_id: int | None = None
    hire_date: date | None = None


class UserOut(CamelModel):
    id: int
    first_name: str
    last_name: str
    email: str
    role: UserRole
    status: RecordStatus
    department_id: int | None = None


class DepartmentCreateRequest(CamelModel):
    name: str = Field(min_length=2, max_length=255)
    code: str = Field(min_length=1, max_length=50)
    description: str | None = None
    head_id: int | None = None


class DepartmentUpdateRequest(CamelModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    code: str | None = Field(default=None, min_length=1, max_length=50)
    description: str | None = None
    status: RecordStatus | None = None
    head_id: int | None = None


class DepartmentSummary(CamelModel):
    id: int
    name: str
    code: str


class DepartmentOut(CamelModel):
    id: int
    name: str
    code: str
    description: str | None = None
    status: RecordStatus
    head_id: int | None = None
    teacher_ids: list[int] = []
    created_at: datetime


class DepartmentMembershipOut(CamelModel):
    department_id: int
    name: str
    code: str
    is_primary: bool
    assigned_date: date


class DepartmentTeacherOut(CamelModel):
    id: int
    first_name: str
    last_name: str
    name: str
    email: str
    status: RecordStatus
    is_primary: bool
    assigned_date: date
    departments: list[DepartmentMembershipOut]
    primary_department: DepartmentMembershipOut | None = None
    total_departments: int


class DepartmentTeachersResponse(CamelModel):
    department: DepartmentSummary
    teachers: list[DepartmentTeacherOut]
    total: int


class TeacherDepartmentsResponse(CamelModel):
    teacher_id: int
    departments: list[DepartmentMembershipOut]
    primary_department: DepartmentMembershipOut | None = None
    total_departments: int


class TeacherAssignRequest(CamelModel):
    # Elements are validated one by one so a malformed ID only fails its own entry.
    teachers: list[Any]
    set_primary: bool = False
    department_id: int | None = None


class TeacherRemoveRequest(CamelModel):
    teachers: list[Any]
    department_id: int | None = None


class AssignedTeacherOut(CamelModel):
    teacher_id: int
    name: str
    is_primary: bool


class RemovedTeacherOut(CamelModel):
    teacher_id: int
    name: str


class AssignTeachersResponse(CamelModel):
    message: str
    assigned: list[AssignedTeacherOut]
    errors: list[str]


class RemoveTeachersResponse(CamelModel):
    message: str
    removed: list[RemovedTeacherOut]
    errors: list[str]


class ReconcileResponse(CamelModel):
    teachers_checked: int
    orphans_removed: int
    dangling_cleared: int
    legacy_backfilled: int
    primaries_demoted: int
    primaries_restored: int
    pointers_synced: int
    repairs: int


class MessageResponse(CamelModel):
    message: str
