import pytest
from datetime import date
from decimal import Decimal

from payroll_admin.models.payroll import (
    SalarySetting,
    Weekday,
    WEEKDAY_KEYS,
    legacy_workdays,
    mask_to_workdays,
    workdays_to_mask,
)

@pytest.mark.parametrize("value", [3, "3", "thu", "THU", "Thursday", "thursday", "Πέμπτη", Weekday.THURSDAY])
def test_weekday_parse_accepts_all_forms(value):
    assert Weekday.parse(value) == Weekday.THURSDAY

@pytest.mark.parametrize("value", [7, "7", "thursdays", "", None, True])
def test_weekday_parse_rejects_unknown(value):
    with pytest.raises(ValueError):
        Weekday.parse(value)

def test_weekday_matches_date_weekday():
    assert Weekday.of(date(2025, 1, 6)) == Weekday.MONDAY
    assert Weekday.of(date(2025, 1, 12)) == Weekday.SUNDAY
    assert Weekday.SUNDAY.key == "sun"
    assert Weekday.MONDAY.display_name == "Δευτέρα"

def test_workday_mask():
    assert workdays_to_mask([Weekday.MONDAY, Weekday.FRIDAY]) == 0b10001
    assert mask_to_workdays(0b1100000) == {Weekday.SATURDAY, Weekday.SUNDAY}
    assert mask_to_workdays(0) == frozenset()
    with pytest.raises(ValueError):
        mask_to_workdays(128)

def test_legacy_days_per_week_starts_on_monday():
    assert legacy_workdays(5) == {Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY,
                                  Weekday.THURSDAY, Weekday.FRIDAY}
    assert legacy_workdays(0) == frozenset()
    with pytest.raises(ValueError):
        legacy_workdays(8)

def test_salary_setting_accepts_day_keys_and_mask():
    setting = SalarySetting(
        user_id=3,
        effective_from=date(2025, 1, 1),
        daily_salary={key: "30" for key in WEEKDAY_KEYS},
        overtime_rate={"mon": "9"},
        workdays=0b0011111,
    )

    assert setting.daily_salary_for(Weekday.SUNDAY) == Decimal("30")
    assert setting.overtime_rate_for(Weekday.MONDAY) == Decimal("9")
    assert setting.overtime_rate_for(Weekday.TUESDAY) == Decimal("0")
    assert setting.works_on(Weekday.FRIDAY)
    assert not setting.works_on(Weekday.SATURDAY)
    assert setting.scheduled_workdays_count == 5

def test_salary_setting_serializes_day_keys():
    setting = SalarySetting(
        user_id=3,
        effective_from=date(2025, 1, 1),
        daily_salary={"mon": "30", "fri": "32"},
        overtime_rate={},
        workdays=["fri", "mon"],
    )
    dumped = setting.model_dump(mode="json")

    assert list(dumped["daily_salary"]) == ["mon", "fri"]
    assert dumped["workdays"] == ["mon", "fri"]
