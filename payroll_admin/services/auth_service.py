import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Set, Tuple

from payroll_admin.core.config import AuthConfig
from payroll_admin.core.database import get_db
from payroll_admin.models.common import Principal

logger = logging.getLogger(__name__)

class AuthenticationError(Exception):
    """Login or session check failed; status_code is the HTTP status to answer with"""

    def __init__(self, message: str, status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

def hash_pin(pin: str) -> str:
    """Hash a PIN using HMAC-SHA256 keyed with the server PIN secret"""
    return hmac.new(
        AuthConfig.PIN_SECRET.encode('utf-8'),
        pin.encode('utf-8'),
        hashlib.sha256
    ).hexdigest()

def validate_pin_format(pin: str) -> None:
    if not pin or not pin.isdigit() or len(pin) != AuthConfig.PIN_LENGTH:
        raise ValueError(f"PIN must be exactly {AuthConfig.PIN_LENGTH} digits")

def generate_session_token() -> str:
    return secrets.token_hex(32)

def log_auth_attempt(user_id: Optional[int], action: str, ip_address: Optional[str],
                     user_agent: Optional[str], success: bool, message: str):
    """Store every login/logout attempt for audit purposes"""
    if success:
        logger.info(f"Auth {action} SUCCESS - user {user_id} from {ip_address}")
    else:
        logger.warning(f"Auth {action} FAILED - user {user_id} from {ip_address}: {message}")

    with get_db() as conn:
        conn.execute('''
            INSERT INTO auth_log (user_id, action, ip_address, user_agent, success, message, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        ''', (user_id, action, ip_address, user_agent, success, message, datetime.now().isoformat()))
        conn.commit()

def _managed_departments(cursor, user_id: int) -> List[int]:
    cursor.execute(
        "SELECT department_id FROM manager_departments WHERE manager_id = ? ORDER BY department_id",
        (user_id,)
    )
    return [row['department_id'] for row in cursor.fetchall()]

def _principal_from_row(cursor, row, session_token: Optional[str] = None) -> Principal:
    return Principal(
        id=row['id'],
        full_name=row['full_name'],
        email=row['email'],
        role=row['role_name'],
        department_id=row['department_id'],
        department_name=row['department_name'],
        managed_department_ids=_managed_departments(cursor, row['id']),
        session_token=session_token,
    )

PRINCIPAL_COLUMNS = '''
    u.id, u.full_name, u.email, u.department_id, u.is_active,
    r.name as role_name, d.name as department_name
'''

def login_with_pin(pin: Optional[str], ip_address: Optional[str] = None,
                   user_agent: Optional[str] = None) -> Tuple[Principal, datetime]:
    """
    Authenticate an admin or manager by PIN and open a session.

    Returns:
        The principal (with its new session_token) and the session expiry.
    """
    if not pin:
        log_auth_attempt(None, 'failed_login', ip_address, user_agent, False, 'Missing PIN')
        raise AuthenticationError("PIN is required", status_code=400)

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f'''
            SELECT {PRINCIPAL_COLUMNS}
            FROM users u
            LEFT JOIN roles r ON u.role = r.id
            LEFT JOIN departments d ON u.department_id = d.id
            WHERE u.pin_hash = ? AND u.is_active = TRUE
        ''', (hash_pin(pin),))
        row = cursor.fetchone()

        if not row:
            log_auth_attempt(None, 'failed_login', ip_address, user_agent, False, 'Invalid PIN')
            raise AuthenticationError("Invalid PIN", status_code=401)

        if row['role_name'] not in AuthConfig.ALLOWED_LOGIN_ROLES:
            log_auth_attempt(row['id'], 'failed_login', ip_address, user_agent, False, 'Insufficient permissions')
            raise AuthenticationError("Access denied. Manager or Admin role required.", status_code=403)

        token = generate_session_token()
        now = datetime.now()
        expires_at = now + timedelta(hours=AuthConfig.SESSION_DURATION_HOURS)

        cursor.execute('''
            INSERT INTO user_sessions (session_token, user_id, created_at, expires_at, last_activity, ip_address, user_agent)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        ''', (token, row['id'], now.isoformat(), expires_at.isoformat(), now.isoformat(), ip_address, user_agent))
        conn.commit()

        principal = _principal_from_row(cursor, row, session_token=token)

    log_auth_attempt(principal.id, 'login', ip_address, user_agent, True, 'Login successful')
    return principal, expires_at

def principal_for_token(session_token: str) -> Principal:
    """Resolve an active, unexpired session token to its principal"""
    now = datetime.now()

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f'''
            SELECT {PRINCIPAL_COLUMNS}
            FROM user_sessions s
            JOIN users u ON s.user_id = u.id
            LEFT JOIN roles r ON u.role = r.id
            LEFT JOIN departments d ON u.department_id = d.id
            WHERE s.session_token = ?
              AND s.is_active = TRUE
              AND s.expires_at > ?
              AND u.is_active = TRUE
        ''', (session_token, now.isoformat()))
        row = cursor.fetchone()

        if not row:
            raise AuthenticationError("Invalid or expired session", status_code=401)

        cursor.execute(
            "UPDATE user_sessions SET last_activity = ? WHERE session_token = ?",
            (now.isoformat(), session_token)
        )
        conn.commit()

        return _principal_from_row(cursor, row, session_token=session_token)

def logout(principal: Principal, ip_address: Optional[str] = None, user_agent: Optional[str] = None):
    with get_db() as conn:
        conn.execute(
            "UPDATE user_sessions SET is_active = FALSE WHERE session_token = ?",
            (principal.session_token,)
        )
        conn.commit()
    log_auth_attempt(principal.id, 'logout', ip_address, user_agent, True, 'Logout successful')

def accessible_user_ids(principal: Principal) -> Optional[Set[int]]:
    """User ids the principal may manage; None means everyone (admins)"""
    if principal.is_admin:
        return None

    if not principal.managed_department_ids:
        return set()

    placeholders = ", ".join("?" for _ in principal.managed_department_ids)
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            f"SELECT id FROM users WHERE department_id IN ({placeholders})",
            principal.managed_department_ids
        )
        return {row['id'] for row in cursor.fetchall()}

def can_access_user(principal: Principal, user_id: int) -> bool:
    allowed = accessible_user_ids(principal)
    return allowed is None or user_id in allowed
