import logging
import sqlite3
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from payroll_admin.core.database import get_db
from payroll_admin.core.security import require_admin, require_staff, ensure_user_access
from payroll_admin.models.admin import UserCreate, UserUpdate, SetPINRequest, DepartmentCreate, GroupCreate
from payroll_admin.models.common import User, UserType, Department, Group, Principal
from payroll_admin.services.auth_service import accessible_user_ids, hash_pin, validate_pin_format

router = APIRouter()
logger = logging.getLogger(__name__)

USER_SELECT = '''
    SELECT u.id, u.full_name, u.email, u.department_id, u.user_type_id, u.group_id, u.is_active,
           u.pin_hash IS NOT NULL as has_pin,
           r.name as role_name, d.name as department_name, ut.title as user_type,
           g.name as group_name
    FROM users u
    LEFT JOIN roles r ON u.role = r.id
    LEFT JOIN departments d ON u.department_id = d.id
    LEFT JOIN user_type ut ON u.user_type_id = ut.id
    LEFT JOIN user_groups g ON u.group_id = g.id
'''

def user_from_row(row) -> User:
    return User(
        id=row['id'],
        full_name=row['full_name'],
        email=row['email'],
        role=row['role_name'],
        department_id=row['department_id'],
        department_name=row['department_name'],
        user_type_id=row['user_type_id'],
        user_type=row['user_type'],
        group_id=row['group_id'],
        group_name=row['group_name'],
        is_active=bool(row['is_active']),
        has_pin=bool(row['has_pin']),
    )

@router.get("/users", response_model=List[User])
async def list_users(include_inactive: bool = False, principal: Principal = Depends(require_staff)):
    """List users; managers only see their departments"""
    allowed = accessible_user_ids(principal)

    with get_db() as conn:
        cursor = conn.cursor()
        query = USER_SELECT
        if not include_inactive:
            query += " WHERE u.is_active = TRUE"
        cursor.execute(query + " ORDER BY u.full_name")
        rows = cursor.fetchall()

    return [user_from_row(row) for row in rows if allowed is None or row['id'] in allowed]

@router.get("/users/{user_id}", response_model=User)
async def get_user(user_id: int, principal: Principal = Depends(require_staff)):
    ensure_user_access(principal, user_id)

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(USER_SELECT + " WHERE u.id = ?", (user_id,))
        row = cursor.fetchone()

    if row is None:
        raise HTTPException(status_code=404, detail=f"User with ID {user_id} not found.")
    return user_from_row(row)

@router.post("/users", response_model=User)
async def create_user(user: UserCreate, principal: Principal = Depends(require_admin)):
    """Add a new user (admin only)"""
    if not user.full_name.strip():
        raise HTTPException(status_code=400, detail="full_name is required")

    try:
        if user.pin is not None:
            validate_pin_format(user.pin)

        with get_db() as conn:
            cursor = conn.cursor()

            cursor.execute("SELECT id FROM roles WHERE name = ?", (user.role,))
            role = cursor.fetchone()
            if not role:
                raise HTTPException(status_code=400, detail=f"Unknown role '{user.role}'")

            if user.user_type_id is not None:
                cursor.execute("SELECT id FROM user_type WHERE id = ?", (user.user_type_id,))
                if not cursor.fetchone():
                    raise HTTPException(status_code=400, detail=f"Unknown user type {user.user_type_id}")

            now = datetime.now().isoformat()
            cursor.execute('''
                INSERT INTO users (full_name, email, pin_hash, pin_set_at, role, department_id, user_type_id, group_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (user.full_name.strip(), user.email,
                  hash_pin(user.pin) if user.pin else None, now if user.pin else None,
                  role['id'], user.department_id, user.user_type_id, user.group_id, now))
            user_id = cursor.lastrowid

            if user.role == "manager":
                cursor.executemany(
                    "INSERT INTO manager_departments (manager_id, department_id) VALUES (?, ?)",
                    [(user_id, department_id) for department_id in set(user.managed_department_ids)]
                )

            conn.commit()

            cursor.execute(USER_SELECT + " WHERE u.id = ?", (user_id,))
            created = user_from_row(cursor.fetchone())

        logger.info(f"User '{created.full_name}' ({user_id}) created as {user.role} by {principal.full_name}")
        return created

    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except sqlite3.IntegrityError as e:
        if "pin_hash" in str(e):
            raise HTTPException(status_code=409, detail="PIN already in use")
        logger.error(f"Error creating user: {e}")
        raise HTTPException(status_code=400, detail="Invalid department or user reference")
    except Exception as e:
        logger.error(f"Error creating user: {e}")
        raise HTTPException(status_code=500, detail="Failed to create user")

@router.put("/users/{user_id}/pin")
async def set_user_pin(user_id: int, request: SetPINRequest, principal: Principal = Depends(require_admin)):
    """Set or update a user's PIN (admin only)"""
    try:
        validate_pin_format(request.new_pin)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute("SELECT full_name FROM users WHERE id = ?", (user_id,))
        user = cursor.fetchone()
        if not user:
            raise HTTPException(status_code=404, detail="User not found")

        try:
            cursor.execute('''
                UPDATE users
                SET pin_hash = ?, pin_set_at = ?
                WHERE id = ?
            ''', (hash_pin(request.new_pin), datetime.now().isoformat(), user_id))
        except sqlite3.IntegrityError:
            raise HTTPException(status_code=409, detail="PIN already in use")

        conn.commit()

    logger.info(f"PIN set for user {user['full_name']} ({user_id}) by {principal.full_name}")
    return {
        "success": True,
        "message": f"PIN set for {user['full_name']}",
        "user_id": user_id
    }

@router.put("/users/{user_id}", response_model=User)
async def update_user(user_id: int, update: UserUpdate, principal: Principal = Depends(require_admin)):
    """Edit an existing user (admin only); only the fields sent are changed"""
    changes = update.model_dump(exclude_unset=True)
    managed_department_ids = changes.pop('managed_department_ids', None)
    if changes.get('is_active', True) is None:
        del changes['is_active']
    if not changes and managed_department_ids is None:
        raise HTTPException(status_code=400, detail="No fields to update")

    if 'full_name' in changes:
        if not (changes['full_name'] or "").strip():
            raise HTTPException(status_code=400, detail="full_name is required")
        changes['full_name'] = changes['full_name'].strip()

    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute('''
            SELECT u.full_name, r.name as role_name
            FROM users u LEFT JOIN roles r ON u.role = r.id
            WHERE u.id = ?
        ''', (user_id,))
        existing = cursor.fetchone()
        if not existing:
            raise HTTPException(status_code=404, detail="User not found")
        role_name = existing['role_name']

        if 'role' in changes:
            cursor.execute("SELECT id FROM roles WHERE name = ?", (changes['role'],))
            role = cursor.fetchone()
            if not role:
                raise HTTPException(status_code=400, detail=f"Unknown role '{changes['role']}'")
            role_name = changes['role']
            changes['role'] = role['id']

        if changes.get('user_type_id') is not None:
            cursor.execute("SELECT id FROM user_type WHERE id = ?", (changes['user_type_id'],))
            if not cursor.fetchone():
                raise HTTPException(status_code=400, detail=f"Unknown user type {changes['user_type_id']}")

        if managed_department_ids is not None and role_name != "manager":
            raise HTTPException(status_code=400, detail="Only managers have managed departments")

        try:
            if changes:
                assignments = ", ".join(f"{column} = ?" for column in changes)
                cursor.execute(
                    f"UPDATE users SET {assignments} WHERE id = ?",
                    list(changes.values()) + [user_id]
                )

            if role_name != "manager" or managed_department_ids is not None:
                cursor.execute("DELETE FROM manager_departments WHERE manager_id = ?", (user_id,))
            if managed_department_ids:
                cursor.executemany(
                    "INSERT INTO manager_departments (manager_id, department_id) VALUES (?, ?)",
                    [(user_id, department_id) for department_id in set(managed_department_ids)]
                )
        except sqlite3.IntegrityError as e:
            logger.error(f"Error updating user {user_id}: {e}")
            raise HTTPException(status_code=400, detail="Invalid department, group or user type reference")

        if changes.get('is_active') is False:
            cursor.execute("UPDATE user_sessions SET is_active = FALSE WHERE user_id = ?", (user_id,))

        conn.commit()

        cursor.execute(USER_SELECT + " WHERE u.id = ?", (user_id,))
        updated = user_from_row(cursor.fetchone())

    logger.info(f"User {existing['full_name']} ({user_id}) updated by {principal.full_name}: {sorted(update.model_fields_set)}")
    return updated

@router.delete("/users/{user_id}")
async def deactivate_user(user_id: int, principal: Principal = Depends(require_admin)):
    """Deactivate a user and end their sessions; rows are kept for payroll history"""
    if user_id == principal.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT full_name FROM users WHERE id = ?", (user_id,))
        user = cursor.fetchone()
        if not user:
            raise HTTPException(status_code=404, detail="User not found")

        cursor.execute("UPDATE users SET is_active = FALSE WHERE id = ?", (user_id,))
        cursor.execute("UPDATE user_sessions SET is_active = FALSE WHERE user_id = ?", (user_id,))
        conn.commit()

    logger.info(f"User {user['full_name']} ({user_id}) deactivated by {principal.full_name}")
    return {"success": True, "message": f"{user['full_name']} deactivated", "user_id": user_id}

@router.get("/user-types", response_model=List[UserType])
async def list_user_types(principal: Principal = Depends(require_staff)):
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM user_type ORDER BY id")
        return [
            UserType(
                id=row['id'],
                title=row['title'],
                has_monthly_salary=bool(row['has_monthly_salary']),
                default_monthly_periods=row['default_monthly_periods'],
                default_norm_hours=row['default_norm_hours'],
            )
            for row in cursor.fetchall()
        ]

@router.get("/departments", response_model=List[Department])
async def list_departments(principal: Principal = Depends(require_staff)):
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT id, name FROM departments ORDER BY name")
        departments = [Department(id=row['id'], name=row['name']) for row in cursor.fetchall()]

    if principal.is_admin:
        return departments
    return [d for d in departments if d.id in principal.managed_department_ids]

@router.post("/departments", response_model=Department)
async def create_department(department: DepartmentCreate, principal: Principal = Depends(require_admin)):
    name = department.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Department name is required")

    with get_db() as conn:
        cursor = conn.cursor()
        try:
            cursor.execute("INSERT INTO departments (name) VALUES (?)", (name,))
        except sqlite3.IntegrityError:
            raise HTTPException(status_code=409, detail=f"Department '{name}' already exists")
        conn.commit()
        department_id = cursor.lastrowid

    logger.info(f"Department '{name}' created by {principal.full_name}")
    return Department(id=department_id, name=name)

@router.get("/groups", response_model=List[Group])
async def list_groups(principal: Principal = Depends(require_staff)):
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT id, name FROM user_groups ORDER BY name")
        return [Group(id=row['id'], name=row['name']) for row in cursor.fetchall()]

@router.post("/groups", response_model=Group)
async def create_group(group: GroupCreate, principal: Principal = Depends(require_admin)):
    name = group.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Group name is required")

    with get_db() as conn:
        cursor = conn.cursor()
        try:
            cursor.execute("INSERT INTO user_groups (name) VALUES (?)", (name,))
        except sqlite3.IntegrityError:
            raise HTTPException(status_code=409, detail=f"Group '{name}' already exists")
        conn.commit()
        group_id = cursor.lastrowid

    logger.info(f"Group '{name}' created by {principal.full_name}")
    return Group(id=group_id, name=name)
