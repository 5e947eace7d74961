import csv
import io
import pytest
from decimal import Decimal

from conftest import ADMIN_PIN, login

def salary_payload(user_id, **overrides):
    payload = {"user_id": user_id, "effective_from": "2025-01-01"}
    for key in ("mon", "tue", "wed", "thu", "fri", "sat", "sun"):
        payload[f"salary_{key}"] = "50"
        payload[f"overtime_{key}"] = "10"
    payload.update(overrides)
    return payload

def add_entry(client, headers, user_id, clock_in, clock_out):
    response = client.post("/time-entries", headers=headers, json={
        "user_id": user_id,
        "clock_in_time": clock_in,
        "clock_out_time": clock_out,
    })
    assert response.status_code == 200, response.text
    return response.json()

@pytest.fixture
def payroll_data(client, admin_headers):
    """User 4 paid hourly Monday to Friday; user 5 has entries but no salary setting"""
    response = client.post("/user-salary-settings", headers=admin_headers, json=salary_payload(
        4, user_type_id=3, away_work="5",
        works_mon=True, works_tue=True, works_wed=True, works_thu=True, works_fri=True,
    ))
    assert response.status_code == 200, response.text

    add_entry(client, admin_headers, 4, "2025-01-09T08:00:00", "2025-01-09T18:00:00")
    add_entry(client, admin_headers, 4, "2025-01-10T08:00:00", "2025-01-10T16:00:00")
    add_entry(client, admin_headers, 5, "2025-01-10T08:00:00", "2025-01-10T16:00:00")

def test_login_requires_pin(client):
    assert client.post("/auth/login", json={}).status_code == 400
    assert client.post("/auth/login", json={"pin": "0000"}).status_code == 401

def test_employees_cannot_log_in(client, admin_headers):
    response = client.put("/users/3/pin", headers=admin_headers, json={"new_pin": "4321"})
    assert response.status_code == 200

    assert client.post("/auth/login", json={"pin": "4321"}).status_code == 403

def test_pin_must_be_unique(client, admin_headers):
    response = client.put("/users/3/pin", headers=admin_headers, json={"new_pin": ADMIN_PIN})
    assert response.status_code == 409

def test_verify_and_logout(client):
    headers = login(client, ADMIN_PIN)

    verified = client.get("/auth/verify", headers=headers)
    assert verified.status_code == 200
    assert verified.json()["user"]["role"] == "admin"

    assert client.post("/auth/logout", headers=headers).status_code == 200
    assert client.get("/auth/verify", headers=headers).status_code == 401

def test_session_token_header_is_accepted(client):
    token = client.post("/auth/login", json={"pin": ADMIN_PIN}).json()["session_token"]
    assert client.get("/auth/verify", headers={"X-Session-Token": token}).status_code == 200

def test_requests_without_session_are_rejected(client):
    assert client.get("/users").status_code == 401
    assert client.get("/payroll-report", params={"start_date": "2025-01-09", "end_date": "2025-01-15"}).status_code == 401

def test_manager_sees_only_own_departments(client, manager_headers):
    users = client.get("/users", headers=manager_headers).json()
    assert sorted(u["id"] for u in users) == [2, 3, 4]

    assert client.get("/users/5", headers=manager_headers).status_code == 403
    assert client.get("/users/4", headers=manager_headers).status_code == 200
    assert client.post("/users", headers=manager_headers, json={"full_name": "Νέος"}).status_code == 403
    assert [d["id"] for d in client.get("/departments", headers=manager_headers).json()] == [1]

def test_create_user(client, admin_headers):
    response = client.post("/users", headers=admin_headers, json={
        "full_name": "Γιώργος Νέος",
        "department_id": 2,
        "user_type_id": 3,
    })
    assert response.status_code == 200, response.text
    assert response.json()["department_name"] == "Αποθήκη"
    assert not response.json()["has_pin"]

    assert client.post("/users", headers=admin_headers, json={"full_name": "  "}).status_code == 400
    assert client.post("/users", headers=admin_headers, json={"full_name": "X", "role": "owner"}).status_code == 400

def test_projects(client, manager_headers):
    created = client.post("/projects", headers=manager_headers, json={"title": "Αποθήκη Β"})
    assert created.status_code == 200
    project_id = created.json()["id"]

    assert client.post("/projects", headers=manager_headers, json={"title": " "}).status_code == 400
    assert client.put(f"/projects/{project_id}", headers=manager_headers, json={}).status_code == 400
    assert client.put("/projects/999", headers=manager_headers, json={"is_active": False}).status_code == 404

    closed = client.put(f"/projects/{project_id}", headers=manager_headers, json={"is_active": False})
    assert closed.status_code == 200
    assert not closed.json()["is_active"]
    assert project_id not in [p["id"] for p in client.get("/projects", headers=manager_headers).json()]

def test_payroll_report(client, admin_headers, payroll_data):
    response = client.get("/payroll-report", headers=admin_headers, params={
        "start_date": "2025-01-09",
        "end_date": "2025-01-15",
    })
    assert response.status_code == 200, response.text
    report = response.json()

    assert report["week_start_day"] == 3
    assert [e["user_id"] for e in report["entries"]] == [4]

    entry = report["entries"][0]
    days = {d["date"]: d for d in entry["days"]}
    assert Decimal(entry["totals"]["total_pay"]) == Decimal("115")
    assert Decimal(days["2025-01-09"]["pay"]["total_pay"]) == Decimal("65")
    assert Decimal(days["2025-01-10"]["pay"]["total_pay"]) == Decimal("50")
    assert days["2025-01-13"]["status"] == "DAYOFF"
    assert days["2025-01-11"]["status"] == "BLANK"
    assert entry["scheduled_workdays_count"] == 5

    assert len(report["warnings"]) == 1
    assert "Νίκος Αντωνίου" in report["warnings"][0]

def test_manager_report_is_scoped(client, manager_headers, payroll_data):
    report = client.get("/payroll-report", headers=manager_headers, params={
        "start_date": "2025-01-09",
        "end_date": "2025-01-15",
    }).json()

    assert [e["user_id"] for e in report["entries"]] == [4]
    assert report["warnings"] == []

def test_legacy_report_parameters(client, admin_headers, payroll_data):
    response = client.get("/payroll-report", headers=admin_headers, params={
        "year": 2025,
        "week_start": "09/01/2025 - 15/01/2025",
    })
    assert response.status_code == 200, response.text
    assert Decimal(response.json()["entries"][0]["totals"]["total_pay"]) == Decimal("115")

    missing_year = client.get("/payroll-report", headers=admin_headers, params={"week_start": "09/01/2025 - 15/01/2025"})
    assert missing_year.status_code == 400

    wrong_year = client.get("/payroll-report", headers=admin_headers, params={
        "year": 2024,
        "week_start": "09/01/2025 - 15/01/2025",
    })
    assert wrong_year.status_code == 400

def test_week_start_day_parameter(client, admin_headers, payroll_data):
    response = client.get("/payroll-report", headers=admin_headers, params={
        "start_date": "2025-01-06",
        "end_date": "2025-01-12",
        "week_start_day": "Δευτέρα",
    })
    assert response.status_code == 200, response.text
    entry = response.json()["entries"][0]
    assert entry["week_start"] == "2025-01-06"
    assert entry["days"][0]["day"] == "Δευτέρα"

    invalid = client.get("/payroll-report", headers=admin_headers, params={
        "start_date": "2025-01-06",
        "end_date": "2025-01-12",
        "week_start_day": "someday",
    })
    assert invalid.status_code == 400

def test_report_range_errors(client, admin_headers):
    assert client.get("/payroll-report", headers=admin_headers,
                      params={"start_date": "2025-01-09"}).status_code == 400
    assert client.get("/payroll-report", headers=admin_headers,
                      params={"start_date": "2025-01-15", "end_date": "2025-01-09"}).status_code == 400
    assert client.get("/payroll-report", headers=admin_headers,
                      params={"start_date": "2025-01-01", "end_date": "2025-12-31"}).status_code == 400

def test_available_weeks(client, admin_headers, payroll_data):
    response = client.get("/payroll-report/weeks", headers=admin_headers, params={"year": 2025})
    assert response.status_code == 200
    assert response.json()["weeks"] == [
        {"week_start": "2025-01-09", "week_end": "2025-01-15", "label": "09/01/2025 - 15/01/2025"}
    ]

def test_csv_export(client, admin_headers, payroll_data):
    response = client.get("/payroll-report/export", headers=admin_headers, params={
        "start_date": "2025-01-09",
        "end_date": "2025-01-15",
    })
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")

    rows = list(csv.reader(io.StringIO(response.text)))
    assert len(rows) == 2
    assert Decimal(rows[1][-1]) == Decimal("115")

def test_salary_setting_errors(client, admin_headers):
    assert client.post("/user-salary-settings", headers=admin_headers,
                       json=salary_payload(3)).status_code == 200
    assert client.post("/user-salary-settings", headers=admin_headers,
                       json=salary_payload(3)).status_code == 409
    assert client.post("/user-salary-settings", headers=admin_headers,
                       json=salary_payload(3, effective_from="2025-02-01", salary_sun=None)).status_code == 400
    assert client.post("/user-salary-settings", headers=admin_headers,
                       json=salary_payload(99)).status_code == 404

    history = client.get("/user-salary-settings", headers=admin_headers, params={"user_id": 3}).json()
    assert history[0]["workdays"] == ["mon", "tue", "wed", "thu", "fri"]

def test_overlapping_time_entry(client, admin_headers):
    add_entry(client, admin_headers, 3, "2025-01-09T08:00:00", "2025-01-09T16:00:00")
    response = client.post("/time-entries", headers=admin_headers, json={
        "user_id": 3,
        "clock_in_time": "2025-01-09T15:00:00",
        "clock_out_time": "2025-01-09T19:00:00",
    })
    assert response.status_code == 409

def test_clock_in_and_out(client, admin_headers):
    assert client.post("/time-entries/clock-in", json={"user_id": 3}).status_code == 200
    assert client.post("/time-entries/clock-in", json={"user_id": 3}).status_code == 409

    working = client.get("/who-is-working", headers=admin_headers).json()
    assert [w["user_id"] for w in working] == [3]

    assert client.post("/time-entries/clock-out", json={"user_id": 3}).status_code == 200
    assert client.post("/time-entries/clock-out", json={"user_id": 3}).status_code == 404

def test_bonus_workflow(client, admin_headers, manager_headers):
    bonus = {
        "user_id": 3,
        "week_start_date": "2025-01-09",
        "bonus_date": "2025-01-10",
        "amount": "50",
        "description": "Extra shift at the warehouse",
    }
    created = client.post("/bonuses", headers=manager_headers, json=bonus)
    assert created.status_code == 200, created.text
    bonus_id = created.json()["id"]
    assert created.json()["status"] == "pending"

    assert client.post("/bonuses", headers=manager_headers, json=bonus).status_code == 409
    assert client.post("/bonuses", headers=manager_headers,
                       json=dict(bonus, bonus_date="2025-01-11", amount="250")).status_code == 400
    assert client.post("/bonuses", headers=manager_headers,
                       json=dict(bonus, user_id=5, bonus_date="2025-01-11")).status_code == 403

    approved = client.put(f"/bonuses/{bonus_id}/status", headers=admin_headers, json={"status": "approved"})
    assert approved.status_code == 200
    assert approved.json()["approved_by"] == 1

    again = client.put(f"/bonuses/{bonus_id}/status", headers=admin_headers, json={"status": "rejected"})
    assert again.status_code == 409

    summary = client.get("/bonuses/summary/week/2025-01-09", headers=admin_headers).json()
    assert summary["approved_bonuses"] == 1
    assert Decimal(summary["total_approved_amount"]) == Decimal("50")

    audit = client.get(f"/bonuses/{bonus_id}/audit", headers=admin_headers).json()
    assert [r["action_type"] for r in audit] == ["approved", "created"]

    assert client.delete(f"/bonuses/{bonus_id}", headers=admin_headers).status_code == 200
    assert client.get(f"/bonuses/{bonus_id}/audit", headers=admin_headers).status_code == 404

def test_bonus_date_stays_in_week(client, admin_headers):
    bonus = {
        "user_id": 3,
        "week_start_date": "2025-01-09",
        "bonus_date": "2025-01-16",
        "amount": "30",
        "description": "Covered the night shift",
    }
    assert client.post("/bonuses", headers=admin_headers, json=bonus).status_code == 400

    created = client.post("/bonuses", headers=admin_headers, json=dict(bonus, bonus_date="2025-01-10"))
    assert created.status_code == 200, created.text

    moved = client.put(f"/bonuses/{created.json()['id']}", headers=admin_headers, json={"bonus_date": "2025-07-10"})
    assert moved.status_code == 400
    assert "2025-01-15" in moved.json()["detail"]

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["active_users"] == 5

@pytest.mark.parametrize("start_date, end_date", [
    ("0001-01-01", "0001-01-02"),
    ("9999-12-30", "9999-12-31"),
    ("2025-01-09", "9999-12-31"),
])
def test_report_dates_at_calendar_limits(client, admin_headers, start_date, end_date):
    for path in ("/payroll-report", "/payroll-report/export"):
        response = client.get(path, headers=admin_headers, params={"start_date": start_date, "end_date": end_date})
        assert response.status_code == 400, response.text

def test_update_user(client, admin_headers):
    groups = client.get("/groups", headers=admin_headers).json()
    group_id = groups[0]["id"]

    response = client.put("/users/4", headers=admin_headers, json={
        "full_name": "Μαρία Κ.",
        "department_id": 2,
        "group_id": group_id,
    })
    assert response.status_code == 200, response.text
    user = response.json()
    assert user["full_name"] == "Μαρία Κ."
    assert user["department_name"] == "Αποθήκη"
    assert user["group_name"] == groups[0]["name"]
    assert user["user_type_id"] == 3

    assert client.put("/users/4", headers=admin_headers, json={}).status_code == 400
    assert client.put("/users/4", headers=admin_headers, json={"full_name": " "}).status_code == 400
    assert client.put("/users/4", headers=admin_headers, json={"role": "owner"}).status_code == 400
    assert client.put("/users/4", headers=admin_headers, json={"department_id": 99}).status_code == 400
    assert client.put("/users/4", headers=admin_headers, json={"managed_department_ids": [1]}).status_code == 400
    assert client.put("/users/99", headers=admin_headers, json={"email": "x@example.com"}).status_code == 404

def test_manager_departments_follow_user_update(client, admin_headers):
    response = client.put("/users/2", headers=admin_headers, json={"managed_department_ids": [2]})
    assert response.status_code == 200

    manager = login(client, "5678")
    assert sorted(u["id"] for u in client.get("/users", headers=manager).json()) == [5]

def test_only_admins_edit_users(client, manager_headers):
    assert client.put("/users/3", headers=manager_headers, json={"email": "x@example.com"}).status_code == 403
    assert client.delete("/users/3", headers=manager_headers).status_code == 403

def test_deactivate_user(client, admin_headers, manager_headers):
    assert client.delete("/users/1", headers=admin_headers).status_code == 400
    assert client.delete("/users/99", headers=admin_headers).status_code == 404

    assert client.delete("/users/2", headers=admin_headers).status_code == 200
    assert client.get("/auth/verify", headers=manager_headers).status_code == 401
    assert client.post("/auth/login", json={"pin": "5678"}).status_code == 401

    active = [u["id"] for u in client.get("/users", headers=admin_headers).json()]
    assert 2 not in active
    everyone = client.get("/users", headers=admin_headers, params={"include_inactive": True}).json()
    assert next(u for u in everyone if u["id"] == 2)["is_active"] is False

    assert client.put("/users/2", headers=admin_headers, json={"is_active": True}).status_code == 200
    assert client.post("/auth/login", json={"pin": "5678"}).status_code == 200

def test_groups(client, admin_headers, manager_headers):
    assert len(client.get("/groups", headers=manager_headers).json()) == 2

    created = client.post("/groups", headers=admin_headers, json={"name": "Συνεργείο Γ"})
    assert created.status_code == 200
    assert client.post("/groups", headers=admin_headers, json={"name": "Συνεργείο Γ"}).status_code == 409
    assert client.post("/groups", headers=admin_headers, json={"name": " "}).status_code == 400
    assert client.post("/groups", headers=manager_headers, json={"name": "Άλλο"}).status_code == 403

    user = client.post("/users", headers=admin_headers, json={
        "full_name": "Πέτρος Νέος",
        "group_id": created.json()["id"],
    })
    assert user.json()["group_name"] == "Συνεργείο Γ"
