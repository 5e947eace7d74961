import csv
import io
import logging
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Set, Union

from payroll_admin.models.common import TimeEntry, User
from payroll_admin.models.payroll import (
    AvailableWeek,
    DailyPayResult,
    DailyWorkSummary,
    PayrollDay,
    PayrollReport,
    PayrollTotals,
    SalarySetting,
    Weekday,
    WeeklyPayrollEntry,
    ZERO,
)
from payroll_admin.services.schedule_resolver import EffectiveDatedCollection

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
DAYS_PER_WEEK = 7

def round_hours(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)

def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)

# Week bucketing. Every caller that groups dates into payroll weeks goes
# through weekday_offset so the report and the week picker agree.

def weekday_offset(day: date, start_weekday: int) -> int:
    """Position of day inside a week that starts on start_weekday (0-6)"""
    return (day.weekday() - int(start_weekday) + 7) % 7

def week_start_for(day: date, start_weekday: int) -> date:
    return day - timedelta(days=weekday_offset(day, start_weekday))

def week_dates(week_start: date) -> List[date]:
    return [week_start + timedelta(days=i) for i in range(DAYS_PER_WEEK)]

def count_report_weeks(start_date: date, end_date: date, start_weekday: int) -> int:
    """Number of week windows touching [start_date, end_date], without building them"""
    if end_date < start_date:
        raise ValueError("end_date must not be before start_date")
    return (weekday_offset(start_date, start_weekday) + (end_date - start_date).days) // DAYS_PER_WEEK + 1

def report_week_starts(start_date: date, end_date: date, start_weekday: int) -> List[date]:
    """
    Starts of every week window touching [start_date, end_date].

    Raises ValueError for a reversed range, or when a window would start
    before date.min or end after date.max.
    """
    weeks = count_report_weeks(start_date, end_date, start_weekday)
    out_of_range = ValueError(
        f"Week windows for {start_date.isoformat()} to {end_date.isoformat()} fall outside the supported calendar"
    )

    try:
        first = week_start_for(start_date, start_weekday)
        starts = [first + timedelta(days=DAYS_PER_WEEK * i) for i in range(weeks)]
    except OverflowError:
        raise out_of_range
    if starts[-1] > date.max - timedelta(days=DAYS_PER_WEEK - 1):
        raise out_of_range
    return starts

def format_week_label(week_start: date) -> str:
    week_end = week_start + timedelta(days=DAYS_PER_WEEK - 1)
    return f"{week_start.strftime('%d/%m/%Y')} - {week_end.strftime('%d/%m/%Y')}"

def available_weeks(dates: Iterable[date], start_weekday: int) -> List[AvailableWeek]:
    """Week windows containing at least one of the given dates, most recent first"""
    starts = sorted({week_start_for(day, start_weekday) for day in dates}, reverse=True)
    return [
        AvailableWeek(
            week_start=start,
            week_end=start + timedelta(days=DAYS_PER_WEEK - 1),
            label=format_week_label(start),
        )
        for start in starts
    ]

# Time entries -> worked hours

def entry_worked_hours(entry: TimeEntry) -> Decimal:
    """Duration of a completed entry in hours, rounded to 2 decimals"""
    if not entry.is_complete:
        return ZERO
    seconds = Decimal(str((entry.clock_out_time - entry.clock_in_time).total_seconds()))
    return round_hours(seconds / Decimal(3600))

def daily_worked_hours(entries: Iterable[TimeEntry]) -> Dict[date, Decimal]:
    """Sum completed entries per clock-in date; open shifts are left out"""
    totals: Dict[date, Decimal] = {}
    for entry in entries:
        if not entry.is_complete:
            continue
        work_date = entry.clock_in_time.date()
        totals[work_date] = totals.get(work_date, ZERO) + entry_worked_hours(entry)
    return {work_date: round_hours(hours) for work_date, hours in totals.items()}

def open_entry_dates(entries: Iterable[TimeEntry]) -> Set[date]:
    return {entry.clock_in_time.date() for entry in entries if not entry.is_complete}

# Daily calculation

def summarize_day(work_date: date, worked_hours: Decimal, setting: SalarySetting) -> DailyWorkSummary:
    """Build the day's summary; overtime only counts once a non-zero norm is reached"""
    norm_hours = setting.norm_daily_hours
    overtime_hours = ZERO
    if norm_hours > 0 and worked_hours >= norm_hours:
        overtime_hours = round_hours(worked_hours - norm_hours)

    return DailyWorkSummary(
        work_date=work_date,
        weekday=Weekday.of(work_date),
        worked_hours=worked_hours,
        norm_hours=norm_hours,
        overtime_hours=overtime_hours,
    )

def calculate_daily_pay(summary: DailyWorkSummary, setting: SalarySetting,
                        was_scheduled_workday: bool) -> DailyPayResult:
    """
    Pay for one worked day.

    Monthly-salaried users are already paid for their scheduled days, so only
    days outside their schedule are paid, as extra pay. Everyone else is paid
    the day rate plus overtime for every worked day.
    """
    daily_salary = setting.daily_salary_for(summary.weekday)
    overtime_rate = setting.overtime_rate_for(summary.weekday)

    eligible = summary.norm_hours > 0 and summary.worked_hours >= summary.norm_hours
    actual_overtime = summary.overtime_hours if eligible else ZERO
    day_pay = round_money(daily_salary + actual_overtime * overtime_rate)

    regular_pay = ZERO
    extra_pay = ZERO
    overtime_pay = round_money(actual_overtime * overtime_rate)
    is_regular_day = False
    is_extra_day = False

    if setting.has_monthly_salary:
        if was_scheduled_workday:
            overtime_pay = ZERO
            is_regular_day = True
        else:
            extra_pay = day_pay
            is_extra_day = True
    else:
        regular_pay = day_pay
        is_regular_day = True

    return DailyPayResult(
        daily_salary=daily_salary,
        overtime_rate=overtime_rate,
        overtime_hours=actual_overtime,
        overtime_pay=round_money(overtime_pay),
        regular_pay=round_money(regular_pay),
        extra_pay=round_money(extra_pay),
        total_pay=round_money(regular_pay + extra_pay),
        is_regular_day=is_regular_day,
        is_extra_day=is_extra_day,
    )

# Weekly aggregation

def build_week(
    user: User,
    time_entries: Sequence[TimeEntry],
    salary_history: Union[Sequence[SalarySetting], EffectiveDatedCollection],
    week_start_date: date,
    week_start_weekday: int,
) -> WeeklyPayrollEntry:
    """Weekly payroll entry for one user over the 7 days starting at week_start_date"""
    if weekday_offset(week_start_date, week_start_weekday) != 0:
        raise ValueError(
            f"Week start {week_start_date.isoformat()} is a {Weekday.of(week_start_date).name.title()}, "
            f"expected {Weekday(int(week_start_weekday)).name.title()}"
        )

    if isinstance(salary_history, EffectiveDatedCollection):
        schedule = salary_history
    else:
        schedule = EffectiveDatedCollection(salary_history, subject_id=user.id)

    dates = week_dates(week_start_date)
    week_end = dates[-1]
    entries = [e for e in time_entries if week_start_date <= e.clock_in_time.date() <= week_end]
    worked = daily_worked_hours(entries)
    open_dates = open_entry_dates(entries)

    days: List[PayrollDay] = []
    warnings: List[str] = []
    totals = PayrollTotals()

    for day in dates:
        weekday = Weekday.of(day)
        setting = schedule.find_at(day)
        has_entries = day in worked

        if setting is None:
            if has_entries:
                message = f"No salary setting effective on {day.isoformat()} for {user.full_name}, day excluded"
                logger.warning(f"{message} (user {user.id})")
                warnings.append(message)
            days.append(PayrollDay(
                date=day.isoformat(),
                day=weekday.display_name,
                weekday=weekday,
                has_entries=has_entries,
                has_open_entry=day in open_dates,
                schedule_resolved=False,
            ))
            continue

        scheduled = setting.works_on(weekday)
        summary: Optional[DailyWorkSummary] = None
        pay: Optional[DailyPayResult] = None

        if has_entries:
            summary = summarize_day(day, worked[day], setting)
            pay = calculate_daily_pay(summary, setting, scheduled)

            totals.worked_hours += summary.worked_hours
            totals.overtime_hours += pay.overtime_hours
            totals.regular_pay += pay.regular_pay
            totals.extra_pay += pay.extra_pay
            totals.total_pay += pay.total_pay

        days.append(PayrollDay(
            date=day.isoformat(),
            day=weekday.display_name,
            weekday=weekday,
            has_entries=has_entries,
            has_open_entry=day in open_dates,
            was_scheduled_workday=scheduled,
            summary=summary,
            pay=pay,
        ))

    latest = schedule.find_at(week_end)

    return WeeklyPayrollEntry(
        user_id=user.id,
        user_name=user.full_name,
        user_type=user.user_type,
        week_start=week_start_date,
        week_end=week_end,
        scheduled_workdays_count=latest.scheduled_workdays_count if latest else 0,
        salary_settings=schedule.effective_until(week_end),
        days=days,
        totals=totals,
        warnings=warnings,
    )

def build_payroll_report(
    users: Sequence[User],
    time_entries: Sequence[TimeEntry],
    salary_histories: Dict[int, Sequence[SalarySetting]],
    start_date: date,
    end_date: date,
    week_start_weekday: int,
) -> PayrollReport:
    """
    Weekly payroll entries for every user with completed work in the range.

    The range is split into week windows aligned to week_start_weekday. A user
    whose worked days in a window have no effective salary setting at all is
    left out of that window and reported in the report warnings.
    """
    week_starts = report_week_starts(start_date, end_date, week_start_weekday)

    entries_by_user: Dict[int, List[TimeEntry]] = {}
    for entry in time_entries:
        entries_by_user.setdefault(entry.user_id, []).append(entry)

    weekly_entries: List[WeeklyPayrollEntry] = []
    warnings: List[str] = []

    for user in sorted(users, key=lambda u: (u.full_name, u.id)):
        user_entries = entries_by_user.get(user.id, [])
        if not user_entries:
            continue

        schedule = EffectiveDatedCollection(salary_histories.get(user.id, []), subject_id=user.id)

        for week_start in week_starts:
            week_end = week_start + timedelta(days=DAYS_PER_WEEK - 1)
            in_week = [e for e in user_entries if week_start <= e.clock_in_time.date() <= week_end]
            worked_dates = daily_worked_hours(in_week)
            if not worked_dates:
                continue

            if all(schedule.find_at(day) is None for day in worked_dates):
                message = (
                    f"{user.full_name} excluded from week {format_week_label(week_start)}: "
                    f"no salary setting effective on any worked day"
                )
                logger.warning(f"{message} (user {user.id})")
                warnings.append(message)
                continue

            weekly_entries.append(build_week(user, in_week, schedule, week_start, week_start_weekday))

    logger.info(
        f"Payroll report {start_date.isoformat()} to {end_date.isoformat()}: "
        f"{len(weekly_entries)} entries over {len(week_starts)} weeks, {len(warnings)} warnings"
    )
    return PayrollReport(
        start_date=start_date,
        end_date=end_date,
        week_start_day=Weekday(int(week_start_weekday)),
        entries=weekly_entries,
        warnings=warnings,
    )

def generate_payroll_csv(entries: List[WeeklyPayrollEntry]) -> str:
    """Generate CSV format for payroll export"""

    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow([
        'User ID', 'User Name', 'User Type', 'Week Start', 'Week End',
        'Worked Hours', 'Overtime Hours', 'Regular Pay', 'Extra Pay', 'Total Pay'
    ])

    for entry in entries:
        writer.writerow([
            entry.user_id,
            entry.user_name,
            entry.user_type or '',
            entry.week_start.isoformat(),
            entry.week_end.isoformat(),
            entry.totals.worked_hours,
            entry.totals.overtime_hours,
            entry.totals.regular_pay,
            entry.totals.extra_pay,
            entry.totals.total_pay
        ])

    return output.getvalue()
