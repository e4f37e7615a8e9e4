import logging
import re
from dataclasses import dataclass

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .config import settings
from .errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from .models import Department, RecordStatus, User, UserRole
from .registry import TeacherDepartmentRegistry
from .security import create_access_token, hash_password, verify_password


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def _normalize_email(value: str) -> str:
    normalized = value.lower().strip()
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError("Invalid email format")
    return normalized


def login_user(db: Session, *, email: str, password: str) -> tuple[User, str]:
    user = db.query(User).filter(User.email == _normalize_email(email)).first()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return user, create_access_token(user.id, role=user.role.value)


def create_user(db: Session, *, first_name: str, last_name: str, email: str, raw_password: str,
                role: UserRole, department_id: int | None = None, hire_date=None) -> User:
    email = _normalize_email(email)
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("User email already exists")
    if department_id is not None and db.get(Department, department_id) is None:
        raise NotFoundError(f"Department {department_id} not found")

    user = User(
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        email=email,
        password_hash=hash_password(raw_password),
        role=role,
        hire_date=hire_date,
    )
    db.add(user)
    db.flush()
    logger.info(f"Created {role.value} user {user.id} ({email})")

    if role == UserRole.TEACHER and department_id is not None:
        db.commit()
        # A department given at creation becomes the teacher's primary membership.
        TeacherDepartmentRegistry(db).assign(department_id, user.id, set_primary=True)
    else:
        user.department_id = department_id
        db.commit()
    db.refresh(user)
    return user


def _validate_head(db: Session, head_id: int | None, department_id: int | None = None) -> None:
    if head_id is None:
        return
    head = db.get(User, head_id)
    if head is None:
        raise NotFoundError(f"User {head_id} not found")
    if head.role != UserRole.HOD:
        raise ValidationError(f"User {head_id} is not an HOD")
    # One department per head.
    query = db.query(Department).filter(Department.head_id == head_id)
    if department_id is not None:
        query = query.filter(Department.id != department_id)
    headed = query.first()
    if headed is not None:
        raise ConflictError(f"User {head_id} already heads department {headed.code}")


def _ensure_code_free(db: Session, code: str, department_id: int | None = None) -> str:
    code = code.strip().upper()
    query = db.query(Department).filter(Department.code == code)
    if department_id is not None:
        query = query.filter(Department.id != department_id)
    if query.first():
        raise ConflictError(f"Department code {code} already exists")
    return code


def create_department(db: Session, *, name: str, code: str, description: str | None = None,
                      head_id: int | None = None) -> Department:
    code = _ensure_code_free(db, code)
    _validate_head(db, head_id)
    department = Department(name=name.strip(), code=code, description=description, head_id=head_id)
    db.add(department)
    db.commit()
    db.refresh(department)
    logger.info(f"Created department {department.id} ({department.code})")
    return department


def get_department(db: Session, department_id: int) -> Department:
    department = db.get(Department, department_id)
    if department is None:
        raise NotFoundError(f"Department {department_id} not found")
    return department


def list_departments(db: Session, *, limit: int, offset: int) -> list[Department]:
    limit = min(max(limit, 1), settings.max_page_limit)
    offset = max(offset, 0)
    return list(db.scalars(select(Department).order_by(Department.name).limit(limit).offset(offset)).all())


def update_department(db: Session, department_id: int, changes: dict) -> Department:
    department = get_department(db, department_id)
    if "code" in changes and changes["code"] is not None:
        changes["code"] = _ensure_code_free(db, changes["code"], department_id=department.id)
    if "head_id" in changes:
        _validate_head(db, changes["head_id"], department_id=department.id)
    for key in ("name", "code", "description", "status", "head_id"):
        if key not in changes:
            continue
        if changes[key] is None and key in ("name", "code", "status"):
            continue
        setattr(department, key, changes[key])
    db.commit()
    db.refresh(department)
    return department


def delete_department(db: Session, department_id: int) -> None:
    department = get_department(db, department_id)
    try:
        cleared = db.execute(
            update(User).where(User.department_id == department.id).values(department_id=None)
        ).rowcount
        db.delete(department)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Deleted department {department_id}; cleared department pointer on {cleared} user(s)")


@dataclass(frozen=True)
class DepartmentScope:
    id: int
    hod_id: int | None


def resolve_department_scope(db: Session, user: User, requested_department_id: int | None) -> DepartmentScope:
    """Work out which department a request may act on.

    An HOD acts on a department they head; ``requested_department_id`` picks
    one when older data has them heading several. An admin must name the
    department.
    """
    if user.role == UserRole.ADMIN:
        if requested_department_id is None:
            raise ValidationError("departmentId is required for admin requests")
        department = get_department(db, requested_department_id)
        return DepartmentScope(id=department.id, hod_id=department.head_id)

    if user.role != UserRole.HOD:
        raise AuthorizationError("Access denied. Not an HOD.")

    headed = list(
        db.scalars(select(Department).where(Department.head_id == user.id).order_by(Department.id)).all()
    )
    if not headed:
        raise AuthorizationError("Access denied. Not an HOD.")
    if requested_department_id is None:
        return DepartmentScope(id=headed[0].id, hod_id=user.id)
    for department in headed:
        if department.id == requested_department_id:
            return DepartmentScope(id=department.id, hod_id=user.id)
    raise AuthorizationError("Access denied. You are not the HOD of this department.")


def seed_default_admin(db: Session) -> None:
    email = settings.seed_admin_email.lower().strip()
    if not email:
        return
    if db.query(User).filter(User.email == email).first():
        return
    db.add(
        User(
            first_name="System",
            last_name="Administrator",
            email=email,
            password_hash=hash_password(settings.seed_admin_password),
            role=UserRole.ADMIN,
            status=RecordStatus.ACTIVE,
        )
    )
    db.commit()
    logger.info(f"Seeded default admin user {email}")
