import logging
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from payroll_admin.core.security import require_staff, ensure_user_access
from payroll_admin.models.admin import (
    Bonus, BonusAuditRecord, BonusCreate, BonusUpdate, BonusStatusChange, BonusWeekSummary
)
from payroll_admin.models.common import Principal
from payroll_admin.services import bonus_service
from payroll_admin.services.auth_service import accessible_user_ids
from payroll_admin.services.bonus_service import (
    BonusNotFound, BonusValidationError, DuplicateBonusError, InvalidStatusTransition
)

router = APIRouter()
logger = logging.getLogger(__name__)

def _accessible_bonus(bonus_id: int, principal: Principal) -> Bonus:
    try:
        bonus = bonus_service.get_bonus(bonus_id)
    except BonusNotFound:
        raise HTTPException(status_code=404, detail="Bonus not found")
    ensure_user_access(principal, bonus.user_id)
    return bonus

@router.get("/bonuses/week/{week_start}", response_model=List[Bonus])
async def get_week_bonuses(week_start: date, principal: Principal = Depends(require_staff)):
    """All active bonuses of a payroll week"""
    return bonus_service.list_week_bonuses(week_start, accessible_user_ids(principal))

@router.get("/bonuses/user/{user_id}/week/{week_start}", response_model=List[Bonus])
async def get_user_week_bonuses(user_id: int, week_start: date, principal: Principal = Depends(require_staff)):
    ensure_user_access(principal, user_id)
    return bonus_service.list_user_week_bonuses(user_id, week_start)

@router.get("/bonuses/summary/week/{week_start}", response_model=BonusWeekSummary)
async def get_week_summary(week_start: date, principal: Principal = Depends(require_staff)):
    return bonus_service.week_summary(week_start, accessible_user_ids(principal))

@router.post("/bonuses", response_model=Bonus)
async def create_bonus(data: BonusCreate, principal: Principal = Depends(require_staff)):
    """Add a pending bonus for one user on one day"""
    if data.user_id is not None:
        ensure_user_access(principal, data.user_id)

    try:
        return bonus_service.create_bonus(data, principal)
    except BonusValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BonusNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DuplicateBonusError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating bonus: {e}")
        raise HTTPException(status_code=500, detail="Failed to create bonus")

@router.put("/bonuses/{bonus_id}", response_model=Bonus)
async def update_bonus(bonus_id: int, data: BonusUpdate, principal: Principal = Depends(require_staff)):
    _accessible_bonus(bonus_id, principal)

    try:
        return bonus_service.update_bonus(bonus_id, data, principal)
    except BonusValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BonusNotFound:
        raise HTTPException(status_code=404, detail="Bonus not found")
    except DuplicateBonusError as e:
        raise HTTPException(status_code=409, detail=str(e))

@router.put("/bonuses/{bonus_id}/status", response_model=Bonus)
async def change_bonus_status(bonus_id: int, data: BonusStatusChange, principal: Principal = Depends(require_staff)):
    """Approve or reject a pending bonus"""
    _accessible_bonus(bonus_id, principal)

    try:
        return bonus_service.change_status(bonus_id, data.status, principal)
    except BonusValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except BonusNotFound:
        raise HTTPException(status_code=404, detail="Bonus not found")

@router.delete("/bonuses/{bonus_id}")
async def delete_bonus(bonus_id: int, principal: Principal = Depends(require_staff)):
    _accessible_bonus(bonus_id, principal)

    try:
        bonus_service.delete_bonus(bonus_id, principal)
    except BonusNotFound:
        raise HTTPException(status_code=404, detail="Bonus not found")

    return {"success": True, "message": "Bonus deleted successfully"}

@router.get("/bonuses/{bonus_id}/audit", response_model=List[BonusAuditRecord])
async def get_bonus_audit(bonus_id: int, principal: Principal = Depends(require_staff)):
    """Change history of a bonus, newest first"""
    _accessible_bonus(bonus_id, principal)
    return bonus_service.get_audit_trail(bonus_id)
