from sqlalchemy.orm import Session

from .database import Base, engine
from .middleware import install_error_handlers
from .registry import TeacherDepartmentRegistry
from .routes import router
from .services import seed_default_admin


def init_smis_module() -> None:
    Base.metadata.create_all(bind=engine)
    db = Session(bind=engine)
    try:
        seed_default_admin(db)
    finally:
        db.close()


__all__ = ["router", "init_smis_module", "install_error_handlers", "TeacherDepartmentRegistry"]
