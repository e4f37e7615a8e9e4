from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db_session
from .middleware import authorize_department, get_current_user, require_roles
from .models import User, UserRole
from .registry import BatchResult, TeacherDepartmentRegistry
from .schemas import (
    AssignedTeacherOut,
    AssignTeachersResponse,
    DepartmentCreateRequest,
    DepartmentMembershipOut,
    DepartmentOut,
    DepartmentSummary,
    DepartmentTeacherOut,
    DepartmentTeachersResponse,
    DepartmentUpdateRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ReconcileResponse,
    RemovedTeacherOut,
    RemoveTeachersResponse,
    TeacherAssignRequest,
    TeacherDepartmentsResponse,
    TeacherRemoveRequest,
    UserCreateRequest,
    UserOut,
)
from .services import (
    DepartmentScope,
    create_department,
    create_user,
    delete_department,
    get_department,
    list_departments,
    login_user,
    resolve_department_scope,
    update_department,
)


auth_router = APIRouter(prefix="/auth", tags=["Auth"])
hod_router = APIRouter(prefix="/hod", tags=["HOD"])
admin_router = APIRouter(prefix="/admin", tags=["Admin"])


@auth_router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db_session)):
    user, token = login_user(db, email=payload.email, password=payload.password)
    return LoginResponse(access_token=token, role=user.role)


@auth_router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user


def _department_teachers(db: Session, department_id: int) -> DepartmentTeachersResponse:
    department = get_department(db, department_id)
    teachers = TeacherDepartmentRegistry(db).list_teachers_for_department(department.id)
    return DepartmentTeachersResponse(
        department=DepartmentSummary.model_validate(department),
        teachers=[DepartmentTeacherOut.model_validate(teacher) for teacher in teachers],
        total=len(teachers),
    )


def _assign_response(result: BatchResult) -> AssignTeachersResponse:
    return AssignTeachersResponse(
        message=f"Assigned {len(result.succeeded)} teacher(s) to department",
        assigned=[AssignedTeacherOut.model_validate(item) for item in result.succeeded],
        errors=result.errors,
    )


def _remove_response(result: BatchResult) -> RemoveTeachersResponse:
    return RemoveTeachersResponse(
        message=f"Removed {len(result.succeeded)} teacher(s) from department",
        removed=[RemovedTeacherOut.model_validate(item) for item in result.succeeded],
        errors=result.errors,
    )


@hod_router.get("/teachers", response_model=DepartmentTeachersResponse)
def department_teachers(
    scope: DepartmentScope = Depends(authorize_department),
    db: Session = Depends(get_db_session),
):
    return _department_teachers(db, scope.id)


@hod_router.get("/teachers/{teacher_id}/departments", response_model=TeacherDepartmentsResponse)
def teacher_departments(
    teacher_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(UserRole.HOD)),
):
    if current_user.role == UserRole.HOD:
        # Any department will do; an HOD heading none is refused.
        resolve_department_scope(db, current_user, None)
    departments = TeacherDepartmentRegistry(db).list_departments_for_teacher(teacher_id)
    primary = next((membership for membership in departments if membership.is_primary), None)
    return TeacherDepartmentsResponse(
        teacher_id=teacher_id,
        departments=[DepartmentMembershipOut.model_validate(membership) for membership in departments],
        primary_department=DepartmentMembershipOut.model_validate(primary) if primary else None,
        total_departments=len(departments),
    )


@hod_router.post("/teachers/assign", response_model=AssignTeachersResponse)
def assign_teachers(
    payload: TeacherAssignRequest,
    department_id: int | None = Query(default=None, alias="departmentId"),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(UserRole.HOD)),
):
    requested = payload.department_id if payload.department_id is not None else department_id
    scope = resolve_department_scope(db, current_user, requested)
    result = TeacherDepartmentRegistry(db).assign_many(scope.id, payload.teachers, set_primary=payload.set_primary)
    return _assign_response(result)


@hod_router.post("/teachers/remove", response_model=RemoveTeachersResponse)
def remove_teachers(
    payload: TeacherRemoveRequest,
    department_id: int | None = Query(default=None, alias="departmentId"),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(UserRole.HOD)),
):
    requested = payload.department_id if payload.department_id is not None else department_id
    scope = resolve_department_scope(db, current_user, requested)
    result = TeacherDepartmentRegistry(db).remove_many(scope.id, payload.teachers)
    return _remove_response(result)


@hod_router.post("/departments/add-teachers", response_model=AssignTeachersResponse)
def add_teachers_alias(
    payload: TeacherAssignRequest,
    department_id: int | None = Query(default=None, alias="departmentId"),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(UserRole.HOD)),
):
    """Older path for /hod/teachers/assign, still used by the department pages."""
    return assign_teachers(payload=payload, department_id=department_id, db=db, current_user=current_user)


@hod_router.post("/departments/remove-teachers", response_model=RemoveTeachersResponse)
def remove_teachers_alias(
    payload: TeacherRemoveRequest,
    department_id: int | None = Query(default=None, alias="departmentId"),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(UserRole.HOD)),
):
    """Older path for /hod/teachers/remove."""
    return remove_teachers(payload=payload, department_id=department_id, db=db, current_user=current_user)


@admin_router.post("/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def admin_create_user(
    payload: UserCreateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    return create_user(
        db,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        raw_password=payload.password,
        role=payload.role,
        department_id=payload.department_id,
        hire_date=payload.hire_date,
    )


@admin_router.get("/departments", response_model=list[DepartmentOut])
def admin_list_departments(
    limit: int = Query(default=settings.default_page_limit),
    offset: int = Query(default=0),
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    return list_departments(db, limit=limit, offset=offset)


@admin_router.post("/departments", response_model=DepartmentOut, status_code=status.HTTP_201_CREATED)
def admin_create_department(
    payload: DepartmentCreateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    return create_department(
        db,
        name=payload.name,
        code=payload.code,
        description=payload.description,
        head_id=payload.head_id,
    )


@admin_router.get("/departments/{department_id}", response_model=DepartmentOut)
def admin_get_department(
    department_id: int,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    return get_department(db, department_id)


@admin_router.put("/departments/{department_id}", response_model=DepartmentOut)
def admin_update_department(
    department_id: int,
    payload: DepartmentUpdateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    return update_department(db, department_id, payload.model_dump(exclude_unset=True))


@admin_router.delete("/departments/{department_id}", response_model=MessageResponse)
def admin_delete_department(
    department_id: int,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    delete_department(db, department_id)
    return MessageResponse(message=f"Department {department_id} deleted")


@admin_router.get("/departments/{department_id}/teachers", response_model=DepartmentTeachersResponse)
def admin_department_teachers(
    department_id: int,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    return _department_teachers(db, department_id)


@admin_router.post("/maintenance/reconcile", response_model=ReconcileResponse)
def admin_reconcile(
    teacher_id: int | None = Query(default=None, alias="teacherId"),
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    report = TeacherDepartmentRegistry(db).reconcile(teacher_id=teacher_id)
    return ReconcileResponse.model_validate(report)


router = APIRouter(prefix="/api")
router.include_router(auth_router)
router.include_router(hod_router)
router.include_router(admin_router)
