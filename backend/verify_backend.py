import os

import requests

BASE_URL = os.getenv("SMIS_BASE_URL", "http://127.0.0.1:8000/api")


def login(email, password):
    res = requests.post(f"{BASE_URL}/auth/login", json={"email": email, "password": password}, timeout=10)
    print(f"Login {email}: {res.status_code}")
    res.raise_for_status()
    return {"Authorization": f"Bearer {res.json()['accessToken']}"}


def test_backend():
    try:
        health = requests.get(f"{BASE_URL}/health", timeout=10)
        print(f"Health: {health.status_code} {health.json()}")

        headers = login(
            os.getenv("SMIS_SEED_ADMIN_EMAIL", "admin@school.local"),
            os.getenv("SMIS_SEED_ADMIN_PASSWORD", "ChangeMe@123"),
        )
        departments = requests.get(f"{BASE_URL}/admin/departments", headers=headers, timeout=10).json()
        print(f"Departments: {len(departments)}")
        for department in departments:
            res = requests.get(f"{BASE_URL}/admin/departments/{department['id']}/teachers", headers=headers, timeout=10)
            body = res.json()
            print(f"- {department['code']} {department['name']}: {body.get('total', 0)} teacher(s)")
            for teacher in body.get("teachers", []):
                primary = teacher["primaryDepartment"]["code"] if teacher["primaryDepartment"] else "-"
                print(f"    {teacher['name']} (primary: {primary}, departments: {teacher['totalDepartments']})")
    except requests.RequestException as e:
        print(f"Connection Error: {e}")


if __name__ == "__main__":
    test_backend()
