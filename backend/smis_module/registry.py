"""Teacher <-> department assignments.

Membership lives in ``teacher_departments``; the teacher's ``users.department_id``
column mirrors whichever membership is flagged primary. Every write goes
through :class:`TeacherDepartmentRegistry` so both stay in one transaction.
"""
import logging
from collections.abc import Iterable
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ConflictError, NotFoundError, ValidationError
from .models import Department, RecordStatus, TeacherDepartment, User, UserRole


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DepartmentMembership:
    department_id: int
    name: str
    code: str
    is_primary: bool
    assigned_date: date


@dataclass
class DepartmentTeacher:
    id: int
    first_name: str
    last_name: str
    email: str
    status: RecordStatus
    is_primary: bool
    assigned_date: date
    departments: list[DepartmentMembership] = field(default_factory=list)

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def primary_department(self) -> DepartmentMembership | None:
        return next((membership for membership in self.departments if membership.is_primary), None)

    @property
    def total_departments(self) -> int:
        return len(self.departments)


@dataclass(frozen=True)
class BatchItem:
    teacher_id: int
    name: str
    is_primary: bool = False


@dataclass
class BatchResult:
    succeeded: list[BatchItem] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class ReconcileReport:
    teachers_checked: int = 0
    orphans_removed: int = 0
    dangling_cleared: int = 0
    legacy_backfilled: int = 0
    primaries_demoted: int = 0
    primaries_restored: int = 0
    pointers_synced: int = 0

    @property
    def repairs(self) -> int:
        return sum(value for key, value in asdict(self).items() if key != "teachers_checked")


def _is_teacher_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _normalize_teacher_ids(teacher_ids) -> list:
    """Validate the batch shape; malformed entries are kept for per-item reporting."""
    if isinstance(teacher_ids, (str, bytes)) or not isinstance(teacher_ids, Iterable):
        raise ValidationError("Teachers must be provided as a list of IDs")
    items = list(teacher_ids)
    if not items:
        raise ValidationError("Teachers array is required and must not be empty")
    # Repeated IDs in one request are handled once, in first-seen order.
    seen: set[int] = set()
    normalized = []
    for item in items:
        if _is_teacher_id(item):
            if item in seen:
                continue
            seen.add(item)
        normalized.append(item)
    return normalized


class TeacherDepartmentRegistry:
    """Assigns teachers to departments and answers both directions of the relation.

    A teacher may belong to any number of departments, at most one of them
    primary. ``list_departments_for_teacher`` and ``list_teachers_for_department``
    are inverse views of the same rows.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _unit_of_work(self):
        try:
            yield
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning(f"Assignment write rejected by constraint, rolled back: {exc.orig}")
            raise ConflictError("Teacher assignment changed concurrently, please retry") from exc
        except Exception:
            self.db.rollback()
            raise

    def _get_department(self, department_id: int) -> Department:
        department = self.db.get(Department, department_id)
        if department is None:
            raise NotFoundError(f"Department {department_id} not found")
        return department

    def _get_teacher(self, teacher_id: int, lock: bool = False) -> User:
        stmt = select(User).where(User.id == teacher_id)
        if lock:
            # Serializes concurrent writers for the same teacher where row locks exist.
            stmt = stmt.with_for_update()
        teacher = self.db.scalars(stmt).first()
        if teacher is None or teacher.role != UserRole.TEACHER:
            raise NotFoundError(f"Invalid teacher ID: {teacher_id}")
        return teacher

    def _find_link(self, teacher_id: int, department_id: int) -> TeacherDepartment | None:
        return self.db.scalars(
            select(TeacherDepartment).where(
                TeacherDepartment.teacher_id == teacher_id,
                TeacherDepartment.department_id == department_id,
            )
        ).first()

    def _promote(self, teacher: User, link: TeacherDepartment) -> None:
        self.db.execute(
            update(TeacherDepartment)
            .where(
                TeacherDepartment.teacher_id == teacher.id,
                TeacherDepartment.id != link.id,
                TeacherDepartment.is_primary.is_(True),
            )
            .values(is_primary=False)
            .execution_options(synchronize_session="fetch")
        )
        link.is_primary = True
        if teacher.department_id != link.department_id:
            logger.info(
                f"Primary department of teacher {teacher.id} moved from {teacher.department_id} to {link.department_id}"
            )
        teacher.department_id = link.department_id

    def _assign(self, department_id: int, teacher_id: int, set_primary: bool) -> TeacherDepartment:
        with self._unit_of_work():
            department = self._get_department(department_id)
            teacher = self._get_teacher(teacher_id, lock=True)
            link = self._find_link(teacher.id, department.id)
            if link is None:
                link = TeacherDepartment(teacher_id=teacher.id, department_id=department.id, is_primary=False)
                self.db.add(link)
                self.db.flush()
                logger.info(f"Assigned teacher {teacher.id} to department {department.id}")
            if set_primary:
                self._promote(teacher, link)
        return link

    def assign(self, department_id: int, teacher_id: int, set_primary: bool = False) -> bool:
        self._assign(department_id, teacher_id, set_primary)
        return True

    def remove(self, department_id: int, teacher_id: int) -> bool:
        """Drop a membership; returns False when the teacher was not a member."""
        with self._unit_of_work():
            department = self._get_department(department_id)
            teacher = self._get_teacher(teacher_id, lock=True)
            link = self._find_link(teacher.id, department.id)
            if link is None:
                return False
            self.db.delete(link)
            if link.is_primary or teacher.department_id == department.id:
                teacher.department_id = None
                logger.info(f"Cleared primary department {department.id} of teacher {teacher.id}")
            logger.info(f"Removed teacher {teacher.id} from department {department.id}")
        return True

    def list_departments_for_teacher(self, teacher_id: int) -> list[DepartmentMembership]:
        teacher = self._get_teacher(teacher_id)
        return self._memberships_by_teacher([teacher.id]).get(teacher.id, [])

    def list_teachers_for_department(self, department_id: int) -> list[DepartmentTeacher]:
        # Two queries regardless of size: the department's members, then all of their memberships.
        department = self._get_department(department_id)
        rows = self.db.execute(
            select(TeacherDepartment, User)
            .join(User, User.id == TeacherDepartment.teacher_id)
            .where(TeacherDepartment.department_id == department.id, User.role == UserRole.TEACHER)
            .order_by(TeacherDepartment.id)
        ).all()
        memberships = self._memberships_by_teacher([teacher.id for _, teacher in rows])
        return [
            DepartmentTeacher(
                id=teacher.id,
                first_name=teacher.first_name,
                last_name=teacher.last_name,
                email=teacher.email,
                status=teacher.status,
                is_primary=link.is_primary,
                assigned_date=link.assigned_date,
                departments=memberships.get(teacher.id, []),
            )
            for link, teacher in rows
        ]

    def _memberships_by_teacher(self, teacher_ids: list[int]) -> dict[int, list[DepartmentMembership]]:
        if not teacher_ids:
            return {}
        rows = self.db.execute(
            select(TeacherDepartment, Department)
            .join(Department, Department.id == TeacherDepartment.department_id)
            .where(TeacherDepartment.teacher_id.in_(teacher_ids))
            .order_by(TeacherDepartment.teacher_id, TeacherDepartment.is_primary.desc(), Department.name)
        ).all()
        grouped: dict[int, list[DepartmentMembership]] = {}
        for link, department in rows:
            grouped.setdefault(link.teacher_id, []).append(
                DepartmentMembership(
                    department_id=department.id,
                    name=department.name,
                    code=department.code,
                    is_primary=link.is_primary,
                    assigned_date=link.assigned_date,
                )
            )
        return grouped

    def assign_many(self, department_id: int, teacher_ids, set_primary: bool = False) -> BatchResult:
        """Assign each teacher independently; bad IDs are reported, not fatal.

        A :class:`ConflictError` from a concurrent writer is not per-item and
        propagates; teachers handled before it stay committed.
        """
        ids = _normalize_teacher_ids(teacher_ids)
        department = self._get_department(department_id)
        result = BatchResult()
        for teacher_id in ids:
            if not _is_teacher_id(teacher_id):
                logger.warning(f"Skipping malformed teacher ID {teacher_id!r} for department {department.id}")
                result.errors.append(f"Invalid teacher ID: {teacher_id}")
                continue
            try:
                link = self._assign(department.id, teacher_id, set_primary)
            except (ValidationError, NotFoundError) as exc:
                logger.warning(f"Could not assign teacher {teacher_id} to department {department.id}: {exc.message}")
                result.errors.append(exc.message)
                continue
            teacher = link.teacher
            result.succeeded.append(BatchItem(teacher_id=teacher.id, name=teacher.full_name, is_primary=link.is_primary))
        return result

    def remove_many(self, department_id: int, teacher_ids) -> BatchResult:
        ids = _normalize_teacher_ids(teacher_ids)
        department = self._get_department(department_id)
        result = BatchResult()
        for teacher_id in ids:
            if not _is_teacher_id(teacher_id):
                logger.warning(f"Skipping malformed teacher ID {teacher_id!r} for department {department.id}")
                result.errors.append(f"Invalid teacher ID: {teacher_id}")
                continue
            try:
                removed = self.remove(department.id, teacher_id)
            except (ValidationError, NotFoundError) as exc:
                logger.warning(f"Could not remove teacher {teacher_id} from department {department.id}: {exc.message}")
                result.errors.append(exc.message)
                continue
            if not removed:
                result.errors.append(f"Teacher {teacher_id} was not assigned to this department")
                continue
            teacher = self.db.get(User, teacher_id)
            result.succeeded.append(BatchItem(teacher_id=teacher.id, name=teacher.full_name))
        return result

    def reconcile(self, teacher_id: int | None = None) -> ReconcileReport:
        """Repair assignment rows and primary pointers left inconsistent by older writes.

        Drops memberships held by users who are no longer teachers, backfills a
        membership for a legacy ``department_id`` with no matching row, clears
        pointers to deleted departments, keeps a single primary per teacher and
        re-syncs ``department_id`` with it.
        """
        report = ReconcileReport()
        with self._unit_of_work():
            orphans = select(TeacherDepartment).join(User, User.id == TeacherDepartment.teacher_id).where(
                User.role != UserRole.TEACHER
            )
            teachers = select(User).where(User.role == UserRole.TEACHER).order_by(User.id)
            if teacher_id is not None:
                self._get_teacher(teacher_id)
                orphans = orphans.where(TeacherDepartment.teacher_id == teacher_id)
                teachers = teachers.where(User.id == teacher_id)

            for link in self.db.scalars(orphans).all():
                logger.info(f"Dropping membership of non-teacher user {link.teacher_id} in department {link.department_id}")
                self.db.delete(link)
                report.orphans_removed += 1
            self.db.flush()

            for teacher in self.db.scalars(teachers).all():
                report.teachers_checked += 1
                self._reconcile_teacher(teacher, report)

        logger.info(f"Reconciled {report.teachers_checked} teacher(s), {report.repairs} repair(s): {asdict(report)}")
        return report

    def _reconcile_teacher(self, teacher: User, report: ReconcileReport) -> None:
        links = list(
            self.db.scalars(
                select(TeacherDepartment)
                .where(TeacherDepartment.teacher_id == teacher.id)
                .order_by(TeacherDepartment.id)
            ).all()
        )

        if teacher.department_id is not None and self.db.get(Department, teacher.department_id) is None:
            logger.info(f"Clearing dangling department pointer {teacher.department_id} on teacher {teacher.id}")
            teacher.department_id = None
            report.dangling_cleared += 1

        primaries = [link for link in links if link.is_primary]
        pointer_link = None
        if teacher.department_id is not None:
            pointer_link = next((link for link in links if link.department_id == teacher.department_id), None)
            if pointer_link is None:
                pointer_link = TeacherDepartment(
                    teacher_id=teacher.id,
                    department_id=teacher.department_id,
                    is_primary=not primaries,
                )
                self.db.add(pointer_link)
                if pointer_link.is_primary:
                    primaries.append(pointer_link)
                logger.info(f"Backfilled membership of teacher {teacher.id} in department {teacher.department_id}")
                report.legacy_backfilled += 1

        if len(primaries) > 1:
            keep = pointer_link if pointer_link in primaries else primaries[0]
            for link in primaries:
                if link is not keep:
                    link.is_primary = False
                    report.primaries_demoted += 1
            primaries = [keep]
        elif not primaries and pointer_link is not None:
            pointer_link.is_primary = True
            primaries = [pointer_link]
            report.primaries_restored += 1

        expected = primaries[0].department_id if primaries else None
        if teacher.department_id != expected:
            teacher.department_id = expected
            report.pointers_synced += 1
