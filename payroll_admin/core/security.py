from fastapi import HTTPException, Request, Depends
import logging
from payroll_admin.models.common import Principal
from payroll_admin.services.auth_service import AuthenticationError, principal_for_token, can_access_user

logger = logging.getLogger(__name__)

def session_token_from_request(request: Request):
    """Read the session token from 'Authorization: Bearer' or X-Session-Token"""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip() or None
    return request.headers.get("X-Session-Token")

async def get_current_principal(request: Request) -> Principal:
    """Require a valid session token"""
    token = session_token_from_request(request)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    try:
        return principal_for_token(token)
    except AuthenticationError as e:
        logger.warning(f"Rejected session token from {request.client.host if request.client else 'unknown'}: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)

def require_role(*roles: str):
    """Dependency factory: the caller must hold one of the given roles"""
    async def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            logger.warning(f"User {principal.id} with role '{principal.role}' denied, needs {' or '.join(roles)}")
            raise HTTPException(status_code=403, detail=f"Access denied. Required role: {' or '.join(roles)}")
        return principal
    return dependency

require_admin = require_role("admin")
require_staff = require_role("admin", "manager")

def ensure_user_access(principal: Principal, user_id: int):
    """Managers may only act on users of the departments they manage"""
    if not can_access_user(principal, user_id):
        logger.warning(f"Manager {principal.id} denied access to user {user_id}")
        raise HTTPException(
            status_code=403,
            detail="Access denied. You can only manage users in your assigned departments."
        )
