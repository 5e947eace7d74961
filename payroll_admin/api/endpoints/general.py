import logging

from fastapi import APIRouter, HTTPException
from payroll_admin.core.config import ServerConfig, PayrollConfig
from payroll_admin.core.database import get_db
from payroll_admin.models.payroll import Weekday

router = APIRouter()
logger = logging.getLogger(__name__)

@router.get("/")
async def root():
    return {
        "message": ServerConfig.APP_NAME,
        "version": ServerConfig.APP_VERSION,
        "description": ServerConfig.APP_DESCRIPTION,
        "status": "running",
        "https_enabled": ServerConfig.USE_HTTPS,
    }

@router.get("/config")
async def get_public_config():
    """Get public configuration information"""
    week_start = Weekday(PayrollConfig.WEEK_START_DAY)
    return {
        "app_name": ServerConfig.APP_NAME,
        "app_version": ServerConfig.APP_VERSION,
        "week_start_day": int(week_start),
        "week_start_day_name": week_start.display_name,
        "max_bonus_amount": PayrollConfig.MAX_BONUS_AMOUNT,
        "min_bonus_description_length": PayrollConfig.MIN_BONUS_DESCRIPTION_LENGTH,
        "https_enabled": ServerConfig.USE_HTTPS,
        "development_mode": ServerConfig.DEVELOPMENT_MODE,
    }

@router.get("/health")
async def health_check():
    """Health check with database connectivity"""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT 1")
            cursor.execute("SELECT COUNT(*) FROM users WHERE is_active = TRUE")
            user_count = cursor.fetchone()[0]

            return {
                "status": "healthy",
                "database": "connected",
                "active_users": user_count,
            }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")
