"""Repair teacher department assignments against the configured database.

Usage: python fix_teacher_departments.py [teacher_id]
"""
import sys
from dataclasses import asdict

from sqlalchemy.orm import Session

from smis_module.database import Base, engine
from smis_module.registry import TeacherDepartmentRegistry


def main(argv: list[str]) -> int:
    teacher_id = int(argv[1]) if len(argv) > 1 else None
    Base.metadata.create_all(bind=engine)
    print(f"Checking DB: {engine.url.render_as_string(hide_password=True)}")

    with Session(bind=engine) as db:
        report = TeacherDepartmentRegistry(db).reconcile(teacher_id=teacher_id)

    for key, value in asdict(report).items():
        print(f"- {key}: {value}")
    if report.repairs:
        print(f"Repaired {report.repairs} inconsistency(ies).")
    else:
        print("No inconsistencies found.")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
