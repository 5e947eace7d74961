import logging
from datetime import date, datetime, timedelta
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Response
from payroll_admin.api.endpoints.users import USER_SELECT, user_from_row
from payroll_admin.core.config import PayrollConfig
from payroll_admin.core.database import get_db
from payroll_admin.core.security import require_staff
from payroll_admin.models.common import Principal
from payroll_admin.models.payroll import PayrollReport, Weekday
from payroll_admin.services.auth_service import accessible_user_ids
from payroll_admin.services.payroll_service import (
    available_weeks,
    build_payroll_report,
    count_report_weeks,
    generate_payroll_csv,
    report_week_starts,
)
from payroll_admin.services.salary_service import get_salary_histories
from payroll_admin.services.time_entry_service import get_entry_dates, get_time_entries

router = APIRouter()
logger = logging.getLogger(__name__)

LEGACY_DATE_FORMAT = '%d/%m/%Y'

def resolve_week_start_day(week_start_day: Optional[str]) -> Weekday:
    """Query value to Weekday; accepts 0-6, English or Greek day names"""
    if week_start_day is None or not week_start_day.strip():
        return Weekday(PayrollConfig.WEEK_START_DAY)
    try:
        return Weekday.parse(week_start_day)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid week_start_day '{week_start_day}'")

def parse_week_range(label: str) -> Tuple[date, date]:
    """Parse 'DD/MM/YYYY - DD/MM/YYYY' as sent by older clients"""
    try:
        start_text, end_text = [part.strip() for part in label.split(' - ')]
        start = datetime.strptime(start_text, LEGACY_DATE_FORMAT).date()
        end = datetime.strptime(end_text, LEGACY_DATE_FORMAT).date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid week_start format. Use DD/MM/YYYY - DD/MM/YYYY")
    return start, end

def resolve_report_range(
    start_date: Optional[date],
    end_date: Optional[date],
    year: Optional[int],
    week_start: Optional[str],
) -> Tuple[date, date]:
    """Normalize both request forms into a [start_date, end_date] pair"""
    if start_date is not None or end_date is not None:
        if start_date is None or end_date is None:
            raise HTTPException(status_code=400, detail="Both start_date and end_date are required")
    elif week_start:
        if year is None:
            raise HTTPException(status_code=400, detail="Year and week_start parameters are required")
        start_date, end_date = parse_week_range(week_start)
        if year not in (start_date.year, end_date.year):
            raise HTTPException(status_code=400, detail=f"week_start does not fall in year {year}")
    else:
        raise HTTPException(status_code=400, detail="start_date and end_date parameters are required")

    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    return start_date, end_date

def load_users(user_ids):
    user_ids = list(user_ids)
    if not user_ids:
        return []
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            USER_SELECT + f" WHERE u.id IN ({', '.join('?' for _ in user_ids)})",
            user_ids
        )
        return [user_from_row(row) for row in cursor.fetchall()]

def generate_report(start_date: date, end_date: date, week_start_day: Weekday, principal: Principal) -> PayrollReport:
    weeks = count_report_weeks(start_date, end_date, week_start_day)
    if weeks > PayrollConfig.MAX_REPORT_WEEKS:
        raise HTTPException(
            status_code=400,
            detail=f"Date range spans {weeks} weeks, the maximum is {PayrollConfig.MAX_REPORT_WEEKS}"
        )

    try:
        week_starts = report_week_starts(start_date, end_date, week_start_day)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    window_start = week_starts[0]
    window_end = week_starts[-1] + timedelta(days=6)

    entries = get_time_entries(window_start, window_end, accessible_user_ids(principal))
    user_ids = {entry.user_id for entry in entries}
    users = load_users(user_ids)
    histories = get_salary_histories(user_ids, until=window_end)

    return build_payroll_report(users, entries, histories, start_date, end_date, week_start_day)

@router.get("/payroll-report", response_model=PayrollReport)
async def get_payroll_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    year: Optional[int] = None,
    week_start: Optional[str] = None,
    week_start_day: Optional[str] = None,
    principal: Principal = Depends(require_staff)
):
    """
    Weekly payroll report.

    Accepts either start_date/end_date (YYYY-MM-DD) or the older
    year + week_start ("DD/MM/YYYY - DD/MM/YYYY") form.
    """
    weekday = resolve_week_start_day(week_start_day)
    start, end = resolve_report_range(start_date, end_date, year, week_start)

    try:
        report = generate_report(start, end, weekday, principal)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error generating payroll report: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate payroll report")

    logger.info(f"Payroll report {start} to {end} for {principal.full_name}: {len(report.entries)} entries")
    return report

@router.get("/payroll-report/weeks")
async def get_available_weeks(
    year: int,
    week_start_day: Optional[str] = None,
    principal: Principal = Depends(require_staff)
):
    """Week ranges of a year that contain completed time entries"""
    weekday = resolve_week_start_day(week_start_day)
    dates = get_entry_dates(year, accessible_user_ids(principal))
    weeks = available_weeks(dates, weekday)

    return {
        "year": year,
        "week_start_day": int(weekday),
        "weeks": weeks,
    }

@router.get("/payroll-report/export")
async def export_payroll_report(
    start_date: date,
    end_date: date,
    week_start_day: Optional[str] = None,
    principal: Principal = Depends(require_staff)
):
    """Payroll report as CSV, one row per user and week"""
    weekday = resolve_week_start_day(week_start_day)
    start, end = resolve_report_range(start_date, end_date, None, None)

    try:
        report = generate_report(start, end, weekday, principal)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error exporting payroll report: {e}")
        raise HTTPException(status_code=500, detail="Failed to export payroll report")

    return Response(
        content=generate_payroll_csv(report.entries),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=payroll_{start}_to_{end}.csv"}
    )
