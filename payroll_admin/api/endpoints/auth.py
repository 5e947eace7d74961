import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from payroll_admin.core.database import get_db
from payroll_admin.core.security import get_current_principal, require_admin
from payroll_admin.models.admin import LoginRequest, LoginResponse
from payroll_admin.models.common import Principal
from payroll_admin.services.auth_service import AuthenticationError, login_with_pin, logout

router = APIRouter()
logger = logging.getLogger(__name__)

def _client_ip(request: Request):
    return request.client.host if request.client else None

@router.post("/auth/login", response_model=LoginResponse)
async def login(body: LoginRequest, client_request: Request):
    """PIN login for admins and managers"""
    try:
        principal, expires_at = login_with_pin(
            body.pin,
            ip_address=_client_ip(client_request),
            user_agent=client_request.headers.get("user-agent"),
        )
    except AuthenticationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    logger.info(f"Login successful for {principal.full_name} ({principal.role}) from {_client_ip(client_request)}")
    return LoginResponse(
        success=True,
        session_token=principal.session_token,
        expires_at=expires_at,
        user=principal,
    )

@router.post("/auth/logout")
async def logout_session(client_request: Request, principal: Principal = Depends(get_current_principal)):
    logout(principal, ip_address=_client_ip(client_request), user_agent=client_request.headers.get("user-agent"))
    return {"success": True, "message": "Logged out successfully"}

@router.get("/auth/verify")
async def verify_session(principal: Principal = Depends(get_current_principal)):
    """Check the session token and return the current user"""
    return {"valid": True, "user": principal}

@router.get("/auth/sessions")
async def list_active_sessions(principal: Principal = Depends(require_admin)):
    """Active sessions, most recently used first (admin only)"""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT s.user_id, u.full_name, r.name as role_name,
                   s.created_at, s.last_activity, s.expires_at, s.ip_address
            FROM user_sessions s
            JOIN users u ON s.user_id = u.id
            LEFT JOIN roles r ON u.role = r.id
            WHERE s.is_active = TRUE
            ORDER BY s.last_activity DESC
        ''')
        sessions = [dict(row) for row in cursor.fetchall()]

    return {"success": True, "sessions": sessions}
