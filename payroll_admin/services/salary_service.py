import logging
import sqlite3
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from payroll_admin.core.config import PayrollConfig
from payroll_admin.core.database import get_db
from payroll_admin.models.admin import SalarySettingCreate
from payroll_admin.models.common import Principal
from payroll_admin.models.payroll import (
    SalarySetting,
    Weekday,
    legacy_workdays,
    mask_to_workdays,
    workdays_to_mask,
)

logger = logging.getLogger(__name__)

DEFAULT_DAYS_PER_WEEK = 5
MONTHLY_PERIODS = (12, 14)

class DuplicateSalarySettingError(Exception):
    """A setting already exists for this user on this effective date"""

    def __init__(self, user_id: int, effective_from: date):
        self.user_id = user_id
        self.effective_from = effective_from
        super().__init__(f"Salary setting for user {user_id} already exists on {effective_from.isoformat()}")

def to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))

def setting_from_row(row) -> SalarySetting:
    """Build a SalarySetting from a user_salary_settings row"""
    return SalarySetting(
        id=row['id'],
        user_id=row['user_id'],
        effective_from=date.fromisoformat(str(row['effective_from'])[:10]),
        daily_salary={day: to_decimal(row[f"salary_{day.key}"]) or Decimal("0") for day in Weekday},
        overtime_rate={day: to_decimal(row[f"overtime_{day.key}"]) or Decimal("0") for day in Weekday},
        norm_daily_hours=to_decimal(row['norm_daily_hours']),
        has_monthly_salary=bool(row['has_monthly_salary']),
        monthly_salary=to_decimal(row['monthly_salary']),
        monthly_periods=row['monthly_periods'],
        workdays=mask_to_workdays(row['workdays'] or 0),
        user_type_id=row['user_type_id'],
        away_work=to_decimal(row['away_work']),
        is_driver=bool(row['is_driver']),
    )

def _requested_workdays(request: SalarySettingCreate):
    flags = {day: getattr(request, f"works_{day.key}") for day in Weekday}
    if any(flag is not None for flag in flags.values()):
        return frozenset(day for day, flag in flags.items() if flag)
    if request.days_per_week is not None:
        return legacy_workdays(request.days_per_week)
    return legacy_workdays(DEFAULT_DAYS_PER_WEEK)

def build_setting(request: SalarySettingCreate, user_type=None) -> SalarySetting:
    """
    Validate a salary settings form and fill in user-type defaults.

    Args:
        request: the submitted form
        user_type: the user_type row for request.user_type_id, if any

    Raises:
        ValueError with a field-level message when the form is incomplete.
    """
    daily_salary = {}
    overtime_rate = {}
    for day in Weekday:
        salary = getattr(request, f"salary_{day.key}")
        if salary is None:
            raise ValueError(f"Base salary for {day.key.upper()} is required.")
        if salary < 0:
            raise ValueError(f"salary_{day.key} must not be negative")
        daily_salary[day] = salary

        overtime = getattr(request, f"overtime_{day.key}")
        if overtime is None:
            overtime = Decimal("0")
        if overtime < 0:
            raise ValueError(f"overtime_{day.key} must not be negative")
        overtime_rate[day] = overtime

    has_monthly_salary = bool(request.has_monthly_salary)
    monthly_periods = request.monthly_periods
    norm_daily_hours = request.norm_daily_hours

    if user_type is not None:
        has_monthly_salary = bool(user_type['has_monthly_salary'])
        if monthly_periods is None:
            monthly_periods = user_type['default_monthly_periods']
        if norm_daily_hours is None and user_type['default_norm_hours'] is not None:
            norm_daily_hours = to_decimal(user_type['default_norm_hours'])

        if not has_monthly_salary and request.away_work is None:
            raise ValueError(f"Away Work is required for user type '{user_type['title']}'.")

    if norm_daily_hours is None:
        norm_daily_hours = PayrollConfig.DEFAULT_NORM_DAILY_HOURS
    if norm_daily_hours < 0:
        raise ValueError("norm_daily_hours must not be negative")

    monthly_salary = request.monthly_salary if has_monthly_salary else None
    if has_monthly_salary:
        if monthly_salary is None:
            raise ValueError("Monthly salary is required for this user type.")
        if monthly_periods is None:
            monthly_periods = 12
        if monthly_periods not in MONTHLY_PERIODS:
            raise ValueError("monthly_periods must be 12 or 14")

    workdays = _requested_workdays(request)

    return SalarySetting(
        user_id=request.user_id,
        effective_from=request.effective_from,
        daily_salary=daily_salary,
        overtime_rate=overtime_rate,
        norm_daily_hours=norm_daily_hours,
        has_monthly_salary=has_monthly_salary,
        monthly_salary=monthly_salary,
        monthly_periods=monthly_periods,
        workdays=workdays,
        user_type_id=request.user_type_id,
        away_work=request.away_work,
        is_driver=request.is_driver,
    )

def get_user_type(user_type_id: Optional[int]):
    if user_type_id is None:
        return None
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM user_type WHERE id = ?", (user_type_id,))
        row = cursor.fetchone()
    if row is None:
        raise ValueError(f"Unknown user type {user_type_id}")
    return row

def create_salary_setting(request: SalarySettingCreate, principal: Principal) -> SalarySetting:
    """Append a new dated salary setting; existing rows are never updated"""
    setting = build_setting(request, get_user_type(request.user_type_id))

    salary_columns = [f"salary_{day.key}" for day in Weekday]
    overtime_columns = [f"overtime_{day.key}" for day in Weekday]
    columns = ["user_id", "effective_from"] + salary_columns + overtime_columns + [
        "norm_daily_hours", "has_monthly_salary", "monthly_salary", "monthly_periods",
        "user_type_id", "away_work", "is_driver", "workdays", "created_by", "created_at",
    ]
    values = [setting.user_id, setting.effective_from.isoformat()]
    values += [str(setting.daily_salary_for(day)) for day in Weekday]
    values += [str(setting.overtime_rate_for(day)) for day in Weekday]
    values += [
        str(setting.norm_daily_hours),
        setting.has_monthly_salary,
        str(setting.monthly_salary) if setting.monthly_salary is not None else None,
        setting.monthly_periods,
        setting.user_type_id,
        str(setting.away_work) if setting.away_work is not None else None,
        setting.is_driver,
        workdays_to_mask(setting.workdays),
        principal.id,
        datetime.now().isoformat(),
    ]

    with get_db() as conn:
        cursor = conn.cursor()
        try:
            cursor.execute(
                f"INSERT INTO user_salary_settings ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                values
            )
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise DuplicateSalarySettingError(setting.user_id, setting.effective_from)
            raise
        conn.commit()
        setting.id = cursor.lastrowid

    logger.info(
        f"Salary setting {setting.id} created for user {setting.user_id} "
        f"effective {setting.effective_from.isoformat()} by {principal.full_name} ({principal.id})"
    )
    return setting

def get_salary_history(user_id: int, until: Optional[date] = None) -> List[SalarySetting]:
    """A user's salary settings, most recent first, optionally only those effective by `until`"""
    return get_salary_histories([user_id], until).get(user_id, [])

def get_salary_histories(user_ids: Iterable[int], until: Optional[date] = None) -> Dict[int, List[SalarySetting]]:
    user_ids = list(user_ids)
    histories: Dict[int, List[SalarySetting]] = {user_id: [] for user_id in user_ids}
    if not user_ids:
        return histories

    placeholders = ", ".join("?" for _ in user_ids)
    query = f"SELECT * FROM user_salary_settings WHERE user_id IN ({placeholders})"
    params: list = list(user_ids)
    if until is not None:
        query += " AND effective_from <= ?"
        params.append(until.isoformat())
    query += " ORDER BY user_id, effective_from DESC"

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        for row in cursor.fetchall():
            histories[row['user_id']].append(setting_from_row(row))

    return histories
