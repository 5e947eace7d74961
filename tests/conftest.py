import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal

from fastapi.testclient import TestClient

from payroll_admin.core.config import ServerConfig
from payroll_admin.core.database import init_database, seed_test_data
from payroll_admin.models.common import Principal, TimeEntry, User
from payroll_admin.models.payroll import SalarySetting, Weekday

MONDAY_TO_FRIDAY = frozenset([Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY])

# Seeded demo users: 1 admin, 2 manager of department 1, 3 and 4 employees
# of department 1, 5 employee of department 2
ADMIN_PIN = "1234"
MANAGER_PIN = "5678"

@pytest.fixture
def db(tmp_path):
    # Own MonkeyPatch so a test's monkeypatch.undo() does not revert the database path
    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(ServerConfig, "DATABASE_PATH", str(tmp_path / "payroll_test.db"))
        init_database()
        yield ServerConfig.DATABASE_PATH

@pytest.fixture
def seeded_db(db):
    seed_test_data()
    return db

@pytest.fixture
def admin(seeded_db):
    return Principal(id=1, full_name="Admin", role="admin")

@pytest.fixture
def manager(seeded_db):
    return Principal(id=2, full_name="Μανώλης Διευθυντής", role="manager", department_id=1, managed_department_ids=[1])

@pytest.fixture
def client(seeded_db):
    from payroll_admin.main import app
    with TestClient(app) as test_client:
        yield test_client

def login(client, pin):
    response = client.post("/auth/login", json={"pin": pin})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['session_token']}"}

@pytest.fixture
def admin_headers(client):
    return login(client, ADMIN_PIN)

@pytest.fixture
def manager_headers(client):
    return login(client, MANAGER_PIN)

@pytest.fixture
def worker():
    return User(id=3, full_name="Χρήστος Παπαδόπουλος", user_type="Εργατοτεχνίτης")

@pytest.fixture
def setting_factory():
    def make_setting(effective_from=date(2025, 1, 1), user_id=3, daily=Decimal("30"), overtime=Decimal("9"),
                     norm=Decimal("8"), monthly=False, workdays=MONDAY_TO_FRIDAY, **overrides):
        values = dict(
            user_id=user_id,
            effective_from=effective_from,
            daily_salary={day: daily for day in Weekday},
            overtime_rate={day: overtime for day in Weekday},
            norm_daily_hours=norm,
            has_monthly_salary=monthly,
            monthly_salary=Decimal("900") if monthly else None,
            monthly_periods=14 if monthly else None,
            workdays=workdays,
        )
        values.update(overrides)
        return SalarySetting(**values)
    return make_setting

@pytest.fixture
def entry_factory():
    def make_entry(day, hours, start_hour=8, user_id=3, open_shift=False):
        clock_in = datetime(day.year, day.month, day.day, start_hour, 0)
        return TimeEntry(
            user_id=user_id,
            clock_in_time=clock_in,
            clock_out_time=None if open_shift else clock_in + timedelta(hours=hours),
        )
    return make_entry
