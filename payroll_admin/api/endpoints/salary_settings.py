import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from payroll_admin.core.database import get_db
from payroll_admin.core.security import require_staff, ensure_user_access
from payroll_admin.models.admin import SalarySettingCreate
from payroll_admin.models.common import Principal
from payroll_admin.models.payroll import SalarySetting
from payroll_admin.services.salary_service import (
    DuplicateSalarySettingError,
    create_salary_setting,
    get_salary_history,
)

router = APIRouter()
logger = logging.getLogger(__name__)

def _ensure_user_exists(user_id: int):
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT id FROM users WHERE id = ?", (user_id,))
        if not cursor.fetchone():
            raise HTTPException(status_code=404, detail="User not found")

@router.get("/user-salary-settings", response_model=List[SalarySetting])
async def list_salary_settings(
    user_id: int,
    until: Optional[date] = None,
    principal: Principal = Depends(require_staff)
):
    """Salary history of a user, most recent first"""
    ensure_user_access(principal, user_id)
    _ensure_user_exists(user_id)
    return get_salary_history(user_id, until)

@router.post("/user-salary-settings", response_model=SalarySetting)
async def add_salary_setting(request: SalarySettingCreate, principal: Principal = Depends(require_staff)):
    """Add a dated salary setting; settings are never edited in place"""
    ensure_user_access(principal, request.user_id)
    _ensure_user_exists(request.user_id)

    try:
        return create_salary_setting(request, principal)
    except DuplicateSalarySettingError as e:
        logger.warning(str(e))
        raise HTTPException(
            status_code=409,
            detail=f"A salary setting already exists for this user from {e.effective_from.isoformat()}"
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
