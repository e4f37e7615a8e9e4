import pytest
from sqlalchemy import text

from smis_module.errors import NotFoundError
from smis_module.models import TeacherDepartment, User, UserRole
from smis_module.registry import TeacherDepartmentRegistry


@pytest.fixture()
def registry(db):
    return TeacherDepartmentRegistry(db)


def _links(db, teacher_id):
    db.expire_all()
    return sorted(
        (link.department_id, link.is_primary)
        for link in db.query(TeacherDepartment).filter_by(teacher_id=teacher_id)
    )


def test_legacy_pointer_is_backfilled_as_primary(registry, db, make_user, make_department):
    department = make_department(id=1, code="HIST")
    teacher = make_user(UserRole.TEACHER, department_id=department.id)

    report = registry.reconcile()

    assert report.legacy_backfilled == 1
    assert _links(db, teacher.id) == [(1, True)]
    assert db.get(User, teacher.id).department_id == 1


def test_legacy_pointer_backfilled_as_secondary_when_primary_exists(registry, db, make_user, make_department):
    make_department(id=1, code="HIST")
    make_department(id=2, code="GEO")
    teacher = make_user(UserRole.TEACHER)
    registry.assign(2, teacher.id, set_primary=True)
    teacher = db.get(User, teacher.id)
    teacher.department_id = 1
    db.commit()

    report = registry.reconcile(teacher_id=teacher.id)

    assert report.legacy_backfilled == 1
    assert report.pointers_synced == 1
    assert _links(db, teacher.id) == [(1, False), (2, True)]
    assert db.get(User, teacher.id).department_id == 2


def test_pointer_follows_primary_membership(registry, db, make_user, make_department):
    make_department(id=1, code="HIST")
    make_department(id=2, code="GEO")
    teacher = make_user(UserRole.TEACHER)
    registry.assign(1, teacher.id, set_primary=True)
    registry.assign(2, teacher.id)
    db.query(User).filter_by(id=teacher.id).update({"department_id": 2})
    db.commit()

    report = registry.reconcile()

    assert report.pointers_synced == 1
    assert report.primaries_demoted == 0
    assert _links(db, teacher.id) == [(1, True), (2, False)]
    assert db.get(User, teacher.id).department_id == 1


def test_extra_primaries_are_demoted(registry, db, make_user, make_department):
    make_department(id=1, code="HIST")
    make_department(id=2, code="GEO")
    teacher = make_user(UserRole.TEACHER)
    # A database created before the partial index existed can hold two primaries.
    db.execute(text("DROP INDEX uq_teacher_primary_department"))
    db.add(TeacherDepartment(teacher_id=teacher.id, department_id=1, is_primary=True))
    db.add(TeacherDepartment(teacher_id=teacher.id, department_id=2, is_primary=True))
    db.query(User).filter_by(id=teacher.id).update({"department_id": 2})
    db.commit()

    report = registry.reconcile()

    assert report.primaries_demoted == 1
    assert report.pointers_synced == 0
    assert _links(db, teacher.id) == [(1, False), (2, True)]


def test_membership_matching_pointer_is_promoted(registry, db, make_user, make_department):
    make_department(id=1, code="HIST")
    teacher = make_user(UserRole.TEACHER)
    registry.assign(1, teacher.id)
    db.query(User).filter_by(id=teacher.id).update({"department_id": 1})
    db.commit()

    report = registry.reconcile()

    assert report.primaries_restored == 1
    assert _links(db, teacher.id) == [(1, True)]


def test_orphaned_memberships_are_dropped(registry, db, make_user, make_department):
    make_department(id=1, code="HIST")
    teacher = make_user(UserRole.TEACHER)
    registry.assign(1, teacher.id, set_primary=True)
    db.query(User).filter_by(id=teacher.id).update({"role": UserRole.FINANCE})
    db.commit()

    report = registry.reconcile()

    assert report.orphans_removed == 1
    assert _links(db, teacher.id) == []
    assert registry.list_teachers_for_department(1) == []


def test_dangling_pointer_is_cleared(registry, db, make_user):
    teacher = make_user(UserRole.TEACHER)
    db.execute(text("PRAGMA foreign_keys = OFF"))
    db.execute(User.__table__.update().where(User.id == teacher.id).values(department_id=42))
    db.commit()
    db.execute(text("PRAGMA foreign_keys = ON"))
    db.commit()

    report = registry.reconcile()

    assert report.dangling_cleared == 1
    assert report.legacy_backfilled == 0
    assert _links(db, teacher.id) == []
    assert db.get(User, teacher.id).department_id is None


def test_second_run_is_clean(registry, make_user, make_department):
    department = make_department(id=1, code="HIST")
    make_user(UserRole.TEACHER, department_id=department.id)
    registry.reconcile()

    report = registry.reconcile()

    assert report.teachers_checked == 1
    assert report.repairs == 0


def test_reconcile_unknown_teacher(registry):
    with pytest.raises(NotFoundError):
        registry.reconcile(teacher_id=12345)
