import pytest

from smis_module.models import UserRole


@pytest.fixture()
def admin_headers(make_user, auth_headers):
    return auth_headers(make_user(UserRole.ADMIN))


def test_login_and_me(client, make_user):
    user = make_user(UserRole.HOD, password="Secret@123")

    response = client.post("/api/auth/login", json={"email": user.email.upper(), "password": "Secret@123"})
    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "hod"
    assert body["tokenType"] == "bearer"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['accessToken']}"})
    assert me.status_code == 200
    assert me.json()["email"] == user.email


def test_login_rejects_bad_password(client, make_user):
    user = make_user(UserRole.TEACHER, password="Secret@123")

    response = client.post("/api/auth/login", json={"email": user.email, "password": "wrong"})

    assert response.status_code == 401
    assert response.json() == {"message": "Invalid credentials"}


def test_department_crud(client, admin_headers, make_user):
    hod = make_user(UserRole.HOD)

    created = client.post(
        "/api/admin/departments",
        json={"name": "Chemistry", "code": "chem", "headId": hod.id},
        headers=admin_headers,
    )
    assert created.status_code == 201
    department = created.json()
    assert department["code"] == "CHEM"
    assert department["headId"] == hod.id
    assert department["teacherIds"] == []

    duplicate = client.post("/api/admin/departments", json={"name": "Chem 2", "code": "CHEM"}, headers=admin_headers)
    assert duplicate.status_code == 409

    updated = client.put(
        f"/api/admin/departments/{department['id']}",
        json={"description": "Labs", "headId": None},
        headers=admin_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["description"] == "Labs"
    assert updated.json()["headId"] is None
    assert updated.json()["name"] == "Chemistry"

    listing = client.get("/api/admin/departments", headers=admin_headers)
    assert [d["code"] for d in listing.json()] == ["CHEM"]

    deleted = client.delete(f"/api/admin/departments/{department['id']}", headers=admin_headers)
    assert deleted.status_code == 200
    assert client.get(f"/api/admin/departments/{department['id']}", headers=admin_headers).status_code == 404


def test_head_must_be_hod(client, admin_headers, make_user):
    teacher = make_user(UserRole.TEACHER)

    response = client.post(
        "/api/admin/departments",
        json={"name": "Biology", "code": "BIO", "headId": teacher.id},
        headers=admin_headers,
    )

    assert response.status_code == 400


def test_teacher_created_with_department_gets_primary(client, admin_headers, make_department):
    make_department(id=5, code="ART")

    created = client.post(
        "/api/admin/users",
        json={
            "firstName": "Frida",
            "lastName": "Kahlo",
            "email": "frida@school.local",
            "password": "Painter@123",
            "role": "teacher",
            "departmentId": 5,
        },
        headers=admin_headers,
    )
    assert created.status_code == 201
    assert created.json()["departmentId"] == 5

    listing = client.get("/api/admin/departments/5/teachers", headers=admin_headers).json()
    assert [(t["email"], t["isPrimary"]) for t in listing["teachers"]] == [("frida@school.local", True)]

    again = client.post(
        "/api/admin/users",
        json={"firstName": "F", "lastName": "K", "email": "FRIDA@school.local", "password": "Painter@123", "role": "teacher"},
        headers=admin_headers,
    )
    assert again.status_code == 409


def test_deleting_department_clears_teacher_pointer(client, admin_headers, make_user, make_department):
    make_department(id=5, code="ART")
    teacher = make_user(UserRole.TEACHER)
    client.post(
        "/api/hod/teachers/assign",
        json={"teachers": [teacher.id], "setPrimary": True, "departmentId": 5},
        headers=admin_headers,
    )

    client.delete("/api/admin/departments/5", headers=admin_headers)

    login = client.post("/api/auth/login", json={"email": teacher.email, "password": "Password@123"}).json()
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {login['accessToken']}"}).json()
    assert me["departmentId"] is None


def test_reconcile_endpoint(client, admin_headers, make_user, make_department):
    make_department(id=5, code="ART")
    make_user(UserRole.TEACHER, department_id=5)

    response = client.post("/api/admin/maintenance/reconcile", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["legacyBackfilled"] == 1
    assert response.json()["repairs"] == 1


def test_admin_routes_require_admin(client, auth_headers, make_user):
    hod = make_user(UserRole.HOD)

    response = client.get("/api/admin/departments", headers=auth_headers(hod))

    assert response.status_code == 403


def test_head_can_lead_one_department(client, admin_headers, make_user):
    hod = make_user(UserRole.HOD)
    first = client.post(
        "/api/admin/departments", json={"name": "History", "code": "HIST", "headId": hod.id}, headers=admin_headers
    ).json()

    second = client.post(
        "/api/admin/departments", json={"name": "Geography", "code": "GEO", "headId": hod.id}, headers=admin_headers
    )
    assert second.status_code == 409
    assert second.json() == {"message": f"User {hod.id} already heads department HIST"}

    geography = client.post("/api/admin/departments", json={"name": "Geography", "code": "GEO"}, headers=admin_headers)
    moved = client.put(
        f"/api/admin/departments/{geography.json()['id']}", json={"headId": hod.id}, headers=admin_headers
    )
    assert moved.status_code == 409

    renamed = client.put(
        f"/api/admin/departments/{first['id']}", json={"name": "World History", "headId": hod.id}, headers=admin_headers
    )
    assert renamed.status_code == 200
