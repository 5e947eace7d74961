import csv
import io
import pytest
from datetime import date, timedelta
from decimal import Decimal

from payroll_admin.models.common import User
from payroll_admin.models.payroll import DayStatus, Weekday
from payroll_admin.services.payroll_service import (
    available_weeks,
    build_payroll_report,
    build_week,
    count_report_weeks,
    generate_payroll_csv,
    report_week_starts,
    week_start_for,
    weekday_offset,
)

WEEK_OF_MONDAY = date(2025, 1, 6)  # Monday
THURSDAY = date(2025, 1, 9)

def day_of(entry, iso_day):
    return next(d for d in entry.days if d.date == iso_day)

def test_week_start_for_always_lands_on_start_day():
    for start in Weekday:
        for offset in range(21):
            day = date(2025, 1, 1) + timedelta(days=offset)
            start_date = week_start_for(day, start)
            assert start_date.weekday() == start
            assert 0 <= (day - start_date).days < 7
            assert weekday_offset(day, start) == (day - start_date).days

def test_report_week_starts_covers_range():
    starts = report_week_starts(date(2025, 1, 6), date(2025, 1, 20), Weekday.THURSDAY)
    assert starts == [date(2025, 1, 2), date(2025, 1, 9), date(2025, 1, 16)]

def test_report_week_starts_rejects_reversed_range():
    with pytest.raises(ValueError):
        report_week_starts(date(2025, 1, 20), date(2025, 1, 6), Weekday.MONDAY)

@pytest.mark.parametrize("start, end", [
    (date(2025, 1, 6), date(2025, 1, 6)),
    (date(2025, 1, 8), date(2025, 1, 9)),
    (date(2025, 1, 1), date(2025, 3, 31)),
])
def test_week_count_matches_windows(start, end):
    for weekday in Weekday:
        assert count_report_weeks(start, end, weekday) == len(report_week_starts(start, end, weekday))

def test_week_count_of_huge_range_is_not_built():
    assert count_report_weeks(date(2025, 1, 6), date(9999, 12, 26), Weekday.MONDAY) > 400000

@pytest.mark.parametrize("start, end", [
    (date.min, date(1, 1, 2)),
    (date(9999, 12, 30), date.max),
])
def test_week_windows_outside_calendar_are_rejected(start, end):
    with pytest.raises(ValueError, match="outside the supported calendar"):
        report_week_starts(start, end, Weekday.THURSDAY)

def test_available_weeks_most_recent_first():
    dates = [date(2025, 1, 6), date(2025, 1, 8), date(2025, 1, 9), date(2025, 1, 10)]
    weeks = available_weeks(dates, Weekday.THURSDAY)

    assert [w.week_start for w in weeks] == [date(2025, 1, 9), date(2025, 1, 2)]
    assert weeks[0].week_end == date(2025, 1, 15)
    assert weeks[0].label == "09/01/2025 - 15/01/2025"

def test_misaligned_week_start_is_rejected(worker, setting_factory):
    with pytest.raises(ValueError):
        build_week(worker, [], [setting_factory()], WEEK_OF_MONDAY, Weekday.THURSDAY)

def test_scheduled_day_without_entries_is_dayoff(worker, setting_factory, entry_factory):
    entries = [entry_factory(WEEK_OF_MONDAY, 8)]
    week = build_week(worker, entries, [setting_factory()], WEEK_OF_MONDAY, Weekday.MONDAY)

    monday = day_of(week, "2025-01-06")
    tuesday = day_of(week, "2025-01-07")
    saturday = day_of(week, "2025-01-11")

    assert monday.status == DayStatus.WORKED
    assert tuesday.status == DayStatus.DAYOFF
    assert tuesday.pay is None
    assert tuesday.was_scheduled_workday
    assert saturday.status == DayStatus.BLANK
    assert not saturday.was_scheduled_workday
    assert week.totals.total_pay == Decimal("30")

def test_week_days_are_in_order_from_start_day(worker, setting_factory):
    week = build_week(worker, [], [setting_factory()], THURSDAY, Weekday.THURSDAY)

    assert [d.date for d in week.days][0] == "2025-01-09"
    assert [d.weekday for d in week.days] == [3, 4, 5, 6, 0, 1, 2]
    assert week.days[0].day == "Πέμπτη"
    assert week.week_end == date(2025, 1, 15)

def test_week_total_is_sum_of_days(worker, setting_factory, entry_factory):
    setting = setting_factory(daily=Decimal("31.37"), overtime=Decimal("7.33"))
    entries = [
        entry_factory(WEEK_OF_MONDAY, 9.5),
        entry_factory(date(2025, 1, 7), 8.25),
        entry_factory(date(2025, 1, 8), 6),
        entry_factory(date(2025, 1, 11), 10.75),
    ]
    week = build_week(worker, entries, [setting], WEEK_OF_MONDAY, Weekday.MONDAY)

    paid_days = [d.pay for d in week.days if d.pay is not None]
    assert week.totals.total_pay == sum((p.total_pay for p in paid_days), Decimal("0"))
    assert week.totals.regular_pay + week.totals.extra_pay == week.totals.total_pay
    assert week.totals.worked_hours == Decimal("34.50")

def test_multiple_entries_on_one_day_are_summed(worker, setting_factory, entry_factory):
    entries = [
        entry_factory(WEEK_OF_MONDAY, 4, start_hour=7),
        entry_factory(WEEK_OF_MONDAY, 5, start_hour=12),
    ]
    week = build_week(worker, entries, [setting_factory()], WEEK_OF_MONDAY, Weekday.MONDAY)
    monday = day_of(week, "2025-01-06")

    assert monday.summary.worked_hours == Decimal("9")
    assert monday.pay.total_pay == Decimal("39")

def test_open_shift_is_not_paid(worker, setting_factory, entry_factory):
    entries = [entry_factory(WEEK_OF_MONDAY, 0, open_shift=True)]
    week = build_week(worker, entries, [setting_factory()], WEEK_OF_MONDAY, Weekday.MONDAY)
    monday = day_of(week, "2025-01-06")

    assert monday.has_open_entry
    assert not monday.has_entries
    assert monday.status == DayStatus.DAYOFF
    assert week.totals.total_pay == Decimal("0")

def test_days_before_first_setting_have_no_schedule(worker, setting_factory, entry_factory):
    setting = setting_factory(effective_from=date(2025, 1, 8))
    entries = [entry_factory(WEEK_OF_MONDAY, 8), entry_factory(date(2025, 1, 8), 8)]
    week = build_week(worker, entries, [setting], WEEK_OF_MONDAY, Weekday.MONDAY)

    assert day_of(week, "2025-01-06").status == DayStatus.NO_SCHEDULE
    assert day_of(week, "2025-01-07").status == DayStatus.NO_SCHEDULE
    assert day_of(week, "2025-01-08").status == DayStatus.WORKED
    assert week.totals.total_pay == Decimal("30")
    assert len(week.warnings) == 1
    assert "2025-01-06" in week.warnings[0]

def test_setting_change_mid_week(worker, setting_factory, entry_factory):
    history = [
        setting_factory(effective_from=date(2025, 1, 1), daily=Decimal("30")),
        setting_factory(effective_from=date(2025, 1, 9), daily=Decimal("40"),
                        workdays=[Weekday.MONDAY, Weekday.THURSDAY]),
        setting_factory(effective_from=date(2025, 2, 1), daily=Decimal("99")),
    ]
    entries = [entry_factory(WEEK_OF_MONDAY, 8), entry_factory(THURSDAY, 8)]
    week = build_week(worker, entries, history, WEEK_OF_MONDAY, Weekday.MONDAY)

    assert day_of(week, "2025-01-06").pay.total_pay == Decimal("30")
    assert day_of(week, "2025-01-09").pay.total_pay == Decimal("40")
    # Friday is no longer scheduled under the new setting
    assert day_of(week, "2025-01-10").status == DayStatus.BLANK
    assert week.scheduled_workdays_count == 2
    assert [s.effective_from for s in week.salary_settings] == [date(2025, 1, 9), date(2025, 1, 1)]

def test_underworked_flag_is_display_only(worker, setting_factory, entry_factory):
    entries = [entry_factory(WEEK_OF_MONDAY, 7)]
    week = build_week(worker, entries, [setting_factory(monthly=True)], WEEK_OF_MONDAY, Weekday.MONDAY)
    monday = day_of(week, "2025-01-06")

    assert monday.underworked
    assert monday.pay.total_pay == Decimal("0")
    assert "underworked" in monday.model_dump()
    assert monday.model_dump()["status"] == DayStatus.WORKED

def test_report_splits_range_into_weeks(worker, setting_factory, entry_factory):
    entries = [entry_factory(WEEK_OF_MONDAY, 8), entry_factory(date(2025, 1, 14), 9)]
    report = build_payroll_report(
        [worker], entries, {worker.id: [setting_factory()]},
        date(2025, 1, 6), date(2025, 1, 19), Weekday.MONDAY,
    )

    assert [e.week_start for e in report.entries] == [date(2025, 1, 6), date(2025, 1, 13)]
    assert report.entries[1].totals.total_pay == Decimal("39")
    assert report.warnings == []

def test_report_excludes_users_without_any_setting(worker, setting_factory, entry_factory):
    other = User(id=5, full_name="Νίκος Αντωνίου")
    entries = [entry_factory(WEEK_OF_MONDAY, 8), entry_factory(WEEK_OF_MONDAY, 8, user_id=5)]
    report = build_payroll_report(
        [worker, other], entries, {worker.id: [setting_factory()]},
        WEEK_OF_MONDAY, WEEK_OF_MONDAY, Weekday.MONDAY,
    )

    assert [e.user_id for e in report.entries] == [worker.id]
    assert len(report.warnings) == 1
    assert "Νίκος Αντωνίου" in report.warnings[0]

def test_report_skips_users_without_completed_entries(worker, setting_factory, entry_factory):
    entries = [entry_factory(WEEK_OF_MONDAY, 0, open_shift=True)]
    report = build_payroll_report(
        [worker], entries, {worker.id: [setting_factory()]},
        WEEK_OF_MONDAY, WEEK_OF_MONDAY, Weekday.MONDAY,
    )
    assert report.entries == []

def test_csv_has_one_row_per_user_week(worker, setting_factory, entry_factory):
    entries = [entry_factory(WEEK_OF_MONDAY, 9), entry_factory(date(2025, 1, 14), 8)]
    report = build_payroll_report(
        [worker], entries, {worker.id: [setting_factory()]},
        date(2025, 1, 6), date(2025, 1, 19), Weekday.MONDAY,
    )

    rows = list(csv.reader(io.StringIO(generate_payroll_csv(report.entries))))
    assert rows[0][0] == "User ID"
    assert len(rows) == 3
    assert rows[1][3] == "2025-01-06"
    assert Decimal(rows[1][-1]) == Decimal("39")
