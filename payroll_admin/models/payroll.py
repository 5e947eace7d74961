from pydantic import BaseModel, Field, computed_field, field_serializer, field_validator
from datetime import date
from decimal import Decimal
from enum import IntEnum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

WEEKDAY_KEYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
ENGLISH_DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
GREEK_DAY_NAMES = ("Δευτέρα", "Τρίτη", "Τετάρτη", "Πέμπτη", "Παρασκευή", "Σάββατο", "Κυριακή")

ZERO = Decimal("0")

class Weekday(IntEnum):
    """Day of week, numbered like date.weekday() (Monday = 0)"""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def key(self) -> str:
        """Short column suffix, e.g. 'mon' for salary_mon"""
        return WEEKDAY_KEYS[self.value]

    @property
    def display_name(self) -> str:
        return GREEK_DAY_NAMES[self.value]

    @classmethod
    def of(cls, day: date) -> "Weekday":
        return cls(day.weekday())

    @classmethod
    def parse(cls, value: Any) -> "Weekday":
        """
        Parse a weekday from an int (0-6), a digit string, a short key ('thu'),
        an English name ('Thursday') or a Greek name ('Πέμπτη').
        """
        if isinstance(value, Weekday):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls(int(text))
            lowered = text.lower()
            if lowered in WEEKDAY_KEYS:
                return cls(WEEKDAY_KEYS.index(lowered))
            if lowered in ENGLISH_DAY_NAMES:
                return cls(ENGLISH_DAY_NAMES.index(lowered))
            if text in GREEK_DAY_NAMES:
                return cls(GREEK_DAY_NAMES.index(text))
        raise ValueError(f"Unknown weekday '{value}'")

def workdays_to_mask(workdays: Iterable[Weekday]) -> int:
    """Pack a set of weekdays into a 7-bit mask (bit n = Weekday(n))"""
    mask = 0
    for day in workdays:
        mask |= 1 << int(day)
    return mask

def mask_to_workdays(mask: int) -> FrozenSet[Weekday]:
    if mask < 0 or mask > 0b1111111:
        raise ValueError(f"Workday mask out of range: {mask}")
    return frozenset(day for day in Weekday if mask & (1 << int(day)))

def legacy_workdays(days_per_week: int) -> FrozenSet[Weekday]:
    """Convert the old days_per_week count into a schedule starting on Monday"""
    if days_per_week < 0 or days_per_week > 7:
        raise ValueError(f"days_per_week must be between 0 and 7, got {days_per_week}")
    return frozenset(Weekday(i) for i in range(days_per_week))

def _by_weekday(value: Any) -> Any:
    if isinstance(value, dict):
        return {Weekday.parse(day): amount for day, amount in value.items()}
    return value

class SalarySetting(BaseModel):
    """One effective-dated salary configuration for one user"""
    id: Optional[int] = None
    user_id: int
    effective_from: date
    daily_salary: Dict[Weekday, Decimal]
    overtime_rate: Dict[Weekday, Decimal]
    norm_daily_hours: Decimal = Decimal("8")
    has_monthly_salary: bool = False
    monthly_salary: Optional[Decimal] = None
    monthly_periods: Optional[int] = None
    workdays: FrozenSet[Weekday] = frozenset()
    user_type_id: Optional[int] = None
    away_work: Optional[Decimal] = None
    is_driver: bool = False

    @field_validator("daily_salary", "overtime_rate", mode="before")
    @classmethod
    def _parse_day_keys(cls, value: Any) -> Any:
        return _by_weekday(value)

    @field_validator("workdays", mode="before")
    @classmethod
    def _parse_workdays(cls, value: Any) -> Any:
        if isinstance(value, int):
            return mask_to_workdays(value)
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(Weekday.parse(day) for day in value)
        return value

    @field_serializer("daily_salary", "overtime_rate")
    def _serialize_by_day_key(self, value: Dict[Weekday, Decimal]) -> Dict[str, Decimal]:
        return {day.key: value[day] for day in sorted(value)}

    @field_serializer("workdays")
    def _serialize_workdays(self, value: FrozenSet[Weekday]) -> List[str]:
        return [day.key for day in sorted(value)]

    def works_on(self, weekday: Weekday) -> bool:
        return weekday in self.workdays

    def daily_salary_for(self, weekday: Weekday) -> Decimal:
        return self.daily_salary.get(weekday, ZERO)

    def overtime_rate_for(self, weekday: Weekday) -> Decimal:
        return self.overtime_rate.get(weekday, ZERO)

    @property
    def scheduled_workdays_count(self) -> int:
        return len(self.workdays)

class DailyWorkSummary(BaseModel):
    """Hours worked by one user on one calendar day"""
    work_date: date
    weekday: Weekday
    worked_hours: Decimal
    norm_hours: Decimal
    overtime_hours: Decimal = ZERO

class DailyPayResult(BaseModel):
    """Pay computed for one worked day"""
    daily_salary: Decimal
    overtime_rate: Decimal
    overtime_hours: Decimal
    overtime_pay: Decimal
    regular_pay: Decimal
    extra_pay: Decimal
    total_pay: Decimal
    is_regular_day: bool = False
    is_extra_day: bool = False

class DayStatus:
    WORKED = "WORKED"
    DAYOFF = "DAYOFF"
    BLANK = "BLANK"
    NO_SCHEDULE = "NO_SCHEDULE"

class PayrollDay(BaseModel):
    """One calendar day of a weekly payroll entry"""
    date: str  # YYYY-MM-DD
    day: str
    weekday: Weekday
    has_entries: bool = False
    has_open_entry: bool = False
    schedule_resolved: bool = True
    was_scheduled_workday: bool = False
    summary: Optional[DailyWorkSummary] = None
    pay: Optional[DailyPayResult] = None

    @computed_field
    @property
    def status(self) -> str:
        if not self.schedule_resolved:
            return DayStatus.NO_SCHEDULE
        if self.has_entries:
            return DayStatus.WORKED
        if self.was_scheduled_workday:
            return DayStatus.DAYOFF
        return DayStatus.BLANK

    @computed_field
    @property
    def underworked(self) -> bool:
        """Worked fewer hours than the norm; shown in the report, never deducted"""
        if self.summary is None:
            return False
        return self.summary.worked_hours < self.summary.norm_hours

class PayrollTotals(BaseModel):
    worked_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    regular_pay: Decimal = ZERO
    extra_pay: Decimal = ZERO
    total_pay: Decimal = ZERO

class WeeklyPayrollEntry(BaseModel):
    """Weekly payroll breakdown for one user"""
    user_id: int
    user_name: str
    user_type: Optional[str] = None
    week_start: date
    week_end: date
    scheduled_workdays_count: int = 0
    salary_settings: List[SalarySetting] = Field(default_factory=list)
    days: List[PayrollDay]
    totals: PayrollTotals
    warnings: List[str] = Field(default_factory=list)

class PayrollReport(BaseModel):
    """Payroll report for every accessible user with time entries in a date range"""
    start_date: date
    end_date: date
    week_start_day: Weekday
    entries: List[WeeklyPayrollEntry]
    warnings: List[str] = Field(default_factory=list)

class AvailableWeek(BaseModel):
    week_start: date
    week_end: date
    label: str  # DD/MM/YYYY - DD/MM/YYYY
