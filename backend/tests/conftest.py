import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from smis_module import install_error_handlers, router
from smis_module.database import Base, get_db_session
from smis_module.models import Department, User, UserRole
from smis_module.security import create_access_token, hash_password


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    app = FastAPI()
    install_error_handlers(app)
    app.include_router(router)

    def override_db_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db_session] = override_db_session
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make_user(role=UserRole.TEACHER, id=None, first_name=None, last_name="Tester",
                   password="Password@123", department_id=None):
        counter["n"] += 1
        user = User(
            id=id,
            first_name=first_name or f"{role.value.title()}{counter['n']}",
            last_name=last_name,
            email=f"{role.value}{counter['n']}@school.local",
            password_hash=hash_password(password),
            role=role,
            department_id=department_id,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def make_department(db):
    def _make_department(id=None, name=None, code=None, head=None):
        department = Department(
            id=id,
            name=name or f"Department {code or id}",
            code=code or f"D{id if id is not None else len(db.query(Department).all()) + 1}",
            head_id=head.id if head is not None else None,
        )
        db.add(department)
        db.commit()
        db.refresh(department)
        return department

    return _make_department


@pytest.fixture()
def auth_headers():
    def _auth_headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role.value)}"}

    return _auth_headers
