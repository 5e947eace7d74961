from pydantic import BaseModel
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List

from payroll_admin.models.common import Principal

class LoginRequest(BaseModel):
    pin: Optional[str] = None

class LoginResponse(BaseModel):
    success: bool
    session_token: str
    expires_at: datetime
    user: Principal

class UserCreate(BaseModel):
    full_name: str
    email: Optional[str] = None
    role: str = "employee"  # admin, manager or employee
    department_id: Optional[int] = None
    group_id: Optional[int] = None
    user_type_id: Optional[int] = None
    pin: Optional[str] = None
    managed_department_ids: List[int] = []

class UserUpdate(BaseModel):
    """Partial update; only the fields sent are changed"""
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    department_id: Optional[int] = None
    user_type_id: Optional[int] = None
    group_id: Optional[int] = None
    is_active: Optional[bool] = None
    managed_department_ids: Optional[List[int]] = None

class SetPINRequest(BaseModel):
    new_pin: str

class DepartmentCreate(BaseModel):
    name: str

class GroupCreate(BaseModel):
    name: str

class ProjectCreate(BaseModel):
    title: str
    description: Optional[str] = None

class ProjectUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None

class TimeEntryCreate(BaseModel):
    """Manual time entry created by an admin or manager"""
    user_id: int
    project_id: Optional[int] = None
    clock_in_time: datetime
    clock_out_time: Optional[datetime] = None
    notes: Optional[str] = None

class TimeEntryUpdate(BaseModel):
    project_id: Optional[int] = None
    clock_in_time: Optional[datetime] = None
    clock_out_time: Optional[datetime] = None
    is_approved: Optional[bool] = None
    notes: Optional[str] = None

class ClockInRequest(BaseModel):
    user_id: int
    project_id: Optional[int] = None

class ClockOutRequest(BaseModel):
    user_id: int

class SalarySettingCreate(BaseModel):
    """Salary settings form; one row per (user, effective_from)"""
    user_id: int
    effective_from: date
    salary_mon: Optional[Decimal] = None
    salary_tue: Optional[Decimal] = None
    salary_wed: Optional[Decimal] = None
    salary_thu: Optional[Decimal] = None
    salary_fri: Optional[Decimal] = None
    salary_sat: Optional[Decimal] = None
    salary_sun: Optional[Decimal] = None
    overtime_mon: Optional[Decimal] = None
    overtime_tue: Optional[Decimal] = None
    overtime_wed: Optional[Decimal] = None
    overtime_thu: Optional[Decimal] = None
    overtime_fri: Optional[Decimal] = None
    overtime_sat: Optional[Decimal] = None
    overtime_sun: Optional[Decimal] = None
    works_mon: Optional[bool] = None
    works_tue: Optional[bool] = None
    works_wed: Optional[bool] = None
    works_thu: Optional[bool] = None
    works_fri: Optional[bool] = None
    works_sat: Optional[bool] = None
    works_sun: Optional[bool] = None
    days_per_week: Optional[int] = None  # legacy clients only
    norm_daily_hours: Optional[Decimal] = None
    has_monthly_salary: Optional[bool] = None
    monthly_salary: Optional[Decimal] = None
    monthly_periods: Optional[int] = None
    user_type_id: Optional[int] = None
    away_work: Optional[Decimal] = None
    is_driver: bool = False

class BonusCreate(BaseModel):
    user_id: Optional[int] = None
    week_start_date: Optional[date] = None
    bonus_date: Optional[date] = None
    amount: Optional[Decimal] = None
    description: Optional[str] = None

class BonusUpdate(BaseModel):
    amount: Optional[Decimal] = None
    description: Optional[str] = None
    bonus_date: Optional[date] = None

class BonusStatusChange(BaseModel):
    status: str  # "approved" or "rejected"

class Bonus(BaseModel):
    id: int
    user_id: int
    user_name: Optional[str] = None
    week_start_date: date
    bonus_date: date
    amount: Decimal
    description: str
    status: str
    added_by: int
    added_by_name: Optional[str] = None
    approved_by: Optional[int] = None
    approved_by_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class BonusAuditRecord(BaseModel):
    action_type: str
    changed_by: int
    changed_by_name: Optional[str] = None
    changed_at: datetime
    old_amount: Optional[Decimal] = None
    new_amount: Optional[Decimal] = None
    old_description: Optional[str] = None
    new_description: Optional[str] = None
    old_bonus_date: Optional[date] = None
    new_bonus_date: Optional[date] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None

class BonusWeekSummary(BaseModel):
    week_start_date: date
    total_bonuses: int
    approved_bonuses: int
    pending_bonuses: int
    rejected_bonuses: int
    total_approved_amount: Decimal
    total_amount: Decimal

class ProblemTimeEntry(BaseModel):
    """Model for flagging problematic entries"""
    entry_id: int
    user_id: int
    user_name: str
    clock_in_time: datetime
    clock_out_time: Optional[datetime] = None
    problem_type: str
    problem_description: str
    suggested_action: str
