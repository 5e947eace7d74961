import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from payroll_admin.core.security import require_staff, ensure_user_access
from payroll_admin.models.admin import (
    TimeEntryCreate, TimeEntryUpdate, ClockInRequest, ClockOutRequest, ProblemTimeEntry
)
from payroll_admin.models.common import TimeEntry, WorkingNow, Principal
from payroll_admin.services.auth_service import accessible_user_ids
from payroll_admin.services import time_entry_service
from payroll_admin.services.time_entry_service import OverlappingTimeEntryError, TimeEntryNotFound

router = APIRouter()
logger = logging.getLogger(__name__)

def _overlap_error(e: OverlappingTimeEntryError) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail=f"Time entry overlaps an existing entry ({e.other_entry_id}) for this user"
    )

@router.get("/time-entries", response_model=List[TimeEntry])
async def list_time_entries(
    start_date: date,
    end_date: date,
    user_id: Optional[int] = None,
    principal: Principal = Depends(require_staff)
):
    """Time entries whose clock-in falls in [start_date, end_date]"""
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")

    if user_id is not None:
        ensure_user_access(principal, user_id)
        user_ids = [user_id]
    else:
        user_ids = accessible_user_ids(principal)

    return time_entry_service.get_time_entries(start_date, end_date, user_ids)

@router.post("/time-entries", response_model=TimeEntry)
async def create_time_entry(entry: TimeEntryCreate, principal: Principal = Depends(require_staff)):
    """Manual time entry; rejected when it overlaps another entry of the same user"""
    ensure_user_access(principal, entry.user_id)
    try:
        return time_entry_service.create_time_entry(entry, principal)
    except OverlappingTimeEntryError as e:
        raise _overlap_error(e)
    except TimeEntryNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.get("/time-entries/problems", response_model=List[ProblemTimeEntry])
async def get_time_entry_problems(
    user_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    days_back: int = 7,
    principal: Principal = Depends(require_staff)
):
    """Detect problematic time entries"""
    if not start_date or not end_date:
        end_date = date.today()
        start_date = end_date - timedelta(days=days_back)

    if user_id is not None:
        ensure_user_access(principal, user_id)
        user_ids = [user_id]
    else:
        allowed = accessible_user_ids(principal)
        entries = time_entry_service.get_time_entries(start_date, end_date, allowed)
        user_ids = sorted({entry.user_id for entry in entries})

    now = datetime.now()
    problems = []
    for uid in user_ids:
        problems.extend(time_entry_service.detect_time_entry_problems(uid, start_date, end_date, now))

    logger.info(f"Found {len(problems)} problematic time entries between {start_date} and {end_date}")
    return problems

@router.put("/time-entries/{entry_id}", response_model=TimeEntry)
async def update_time_entry(entry_id: int, changes: TimeEntryUpdate, principal: Principal = Depends(require_staff)):
    try:
        existing = time_entry_service.get_time_entry(entry_id)
        ensure_user_access(principal, existing.user_id)
        return time_entry_service.update_time_entry(entry_id, changes, principal)
    except OverlappingTimeEntryError as e:
        raise _overlap_error(e)
    except TimeEntryNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.delete("/time-entries/{entry_id}")
async def delete_time_entry(entry_id: int, principal: Principal = Depends(require_staff)):
    try:
        existing = time_entry_service.get_time_entry(entry_id)
        ensure_user_access(principal, existing.user_id)
        time_entry_service.delete_time_entry(entry_id, principal)
    except TimeEntryNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"success": True, "message": "Time entry deleted", "entry_id": entry_id}

@router.post("/time-entries/clock-in", response_model=TimeEntry)
async def clock_in(request: ClockInRequest):
    try:
        return time_entry_service.clock_in(request.user_id, request.project_id)
    except OverlappingTimeEntryError:
        raise HTTPException(status_code=409, detail="User is already clocked in")
    except TimeEntryNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.post("/time-entries/clock-out", response_model=TimeEntry)
async def clock_out(request: ClockOutRequest):
    try:
        return time_entry_service.clock_out(request.user_id)
    except TimeEntryNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.get("/who-is-working", response_model=List[WorkingNow])
async def who_is_working(principal: Principal = Depends(require_staff)):
    """Users with an open shift right now"""
    allowed = accessible_user_ids(principal)
    return [w for w in time_entry_service.who_is_working() if allowed is None or w.user_id in allowed]
