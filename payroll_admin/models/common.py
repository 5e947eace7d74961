from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List

class User(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None
    role: Optional[str] = None
    department_id: Optional[int] = None
    department_name: Optional[str] = None
    user_type_id: Optional[int] = None
    user_type: Optional[str] = None
    group_id: Optional[int] = None
    group_name: Optional[str] = None
    is_active: bool = True
    has_pin: bool = False

class UserType(BaseModel):
    id: int
    title: str
    has_monthly_salary: bool
    default_monthly_periods: Optional[int] = None
    default_norm_hours: Optional[float] = None

class Department(BaseModel):
    id: int
    name: str

class Group(BaseModel):
    id: int
    name: str

class Project(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

class TimeEntry(BaseModel):
    """A clock-in/clock-out interval; clock_out_time is None while the shift is open"""
    id: Optional[int] = None
    user_id: int
    project_id: Optional[int] = None
    project_name: Optional[str] = None
    clock_in_time: datetime
    clock_out_time: Optional[datetime] = None
    is_approved: bool = False
    notes: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.clock_out_time is not None

class WorkingNow(BaseModel):
    user_id: int
    full_name: str
    project_name: Optional[str] = None
    clock_in_time: datetime
    elapsed_minutes: int

class Principal(BaseModel):
    """The authenticated admin or manager making a request"""
    id: int
    full_name: str
    email: Optional[str] = None
    role: str
    department_id: Optional[int] = None
    department_name: Optional[str] = None
    managed_department_ids: List[int] = []
    session_token: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
