import logging
import sqlite3
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Set

from payroll_admin.core.config import PayrollConfig
from payroll_admin.core.database import get_db
from payroll_admin.models.admin import Bonus, BonusAuditRecord, BonusCreate, BonusUpdate, BonusWeekSummary
from payroll_admin.models.common import Principal

logger = logging.getLogger(__name__)

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

# pending -> approved | rejected; decided bonuses are final
STATUS_TRANSITIONS = {
    PENDING: {APPROVED, REJECTED},
    APPROVED: set(),
    REJECTED: set(),
}

class BonusValidationError(ValueError):
    pass

class BonusNotFound(LookupError):
    pass

class DuplicateBonusError(Exception):
    pass

class InvalidStatusTransition(Exception):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change bonus status from '{current}' to '{requested}'")

def validate_amount(amount: Decimal):
    if amount <= 0 or amount > PayrollConfig.MAX_BONUS_AMOUNT:
        raise BonusValidationError(f"Amount must be between €0.01 and €{PayrollConfig.MAX_BONUS_AMOUNT:.2f}")

def validate_description(description: str):
    if len(description.strip()) < PayrollConfig.MIN_BONUS_DESCRIPTION_LENGTH:
        raise BonusValidationError(
            f"Description must be at least {PayrollConfig.MIN_BONUS_DESCRIPTION_LENGTH} characters"
        )

def validate_bonus_date(week_start_date: date, bonus_date: date):
    """A bonus date must fall inside the 7-day week it is filed under"""
    week_end = week_start_date + timedelta(days=6)
    if not week_start_date <= bonus_date <= week_end:
        raise BonusValidationError(
            f"bonus_date must be between {week_start_date.isoformat()} and {week_end.isoformat()}"
        )

def validate_new_bonus(data: BonusCreate):
    missing = [
        name for name in ("user_id", "week_start_date", "bonus_date", "amount", "description")
        if getattr(data, name) in (None, "")
    ]
    if missing:
        raise BonusValidationError(f"All fields are required, missing: {', '.join(missing)}")

    validate_amount(data.amount)
    validate_description(data.description)

    validate_bonus_date(data.week_start_date, data.bonus_date)

def next_status(current: str, requested: str) -> str:
    if requested not in (APPROVED, REJECTED):
        raise BonusValidationError('Status must be "approved" or "rejected"')
    if requested not in STATUS_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransition(current, requested)
    return requested

def _decimal(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None

def _str_or_none(value) -> Optional[str]:
    return str(value) if value is not None else None

BONUS_SELECT = '''
    SELECT ub.*, u.full_name as user_name,
           admin.full_name as added_by_name,
           approver.full_name as approved_by_name
    FROM user_bonuses ub
    JOIN users u ON ub.user_id = u.id
    JOIN users admin ON ub.added_by = admin.id
    LEFT JOIN users approver ON ub.approved_by = approver.id
'''

def bonus_from_row(row) -> Bonus:
    return Bonus(
        id=row['id'],
        user_id=row['user_id'],
        user_name=row['user_name'],
        week_start_date=row['week_start_date'],
        bonus_date=row['bonus_date'],
        amount=_decimal(row['amount']),
        description=row['description'],
        status=row['status'],
        added_by=row['added_by'],
        added_by_name=row['added_by_name'],
        approved_by=row['approved_by'],
        approved_by_name=row['approved_by_name'],
        approved_at=row['approved_at'],
        created_at=row['created_at'],
        updated_at=row['updated_at'],
    )

def _audit(cursor, bonus_id: int, action_type: str, changed_by: int, **values):
    columns = ["bonus_id", "action_type", "changed_by", "changed_at"] + list(values)
    params = [bonus_id, action_type, changed_by, datetime.now().isoformat()] + list(values.values())
    cursor.execute(
        f"INSERT INTO user_bonus_audit ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
        params
    )

def get_bonus(bonus_id: int) -> Bonus:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(BONUS_SELECT + " WHERE ub.id = ? AND ub.is_active = TRUE", (bonus_id,))
        row = cursor.fetchone()
    if not row:
        raise BonusNotFound(f"Bonus {bonus_id} not found")
    return bonus_from_row(row)

def list_week_bonuses(week_start: date, user_ids: Optional[Set[int]] = None) -> List[Bonus]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            BONUS_SELECT + '''
            WHERE ub.week_start_date = ? AND ub.is_active = TRUE
            ORDER BY ub.bonus_date, u.full_name
            ''',
            (week_start.isoformat(),)
        )
        rows = cursor.fetchall()

    logger.info(f"Found {len(rows)} bonuses for week {week_start.isoformat()}")
    return [bonus_from_row(row) for row in rows if user_ids is None or row['user_id'] in user_ids]

def list_user_week_bonuses(user_id: int, week_start: date) -> List[Bonus]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            BONUS_SELECT + '''
            WHERE ub.user_id = ? AND ub.week_start_date = ? AND ub.is_active = TRUE
            ORDER BY ub.bonus_date
            ''',
            (user_id, week_start.isoformat())
        )
        return [bonus_from_row(row) for row in cursor.fetchall()]

def create_bonus(data: BonusCreate, principal: Principal) -> Bonus:
    validate_new_bonus(data)

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT id FROM users WHERE id = ? AND is_active = TRUE", (data.user_id,))
        if not cursor.fetchone():
            raise BonusNotFound("User not found or inactive")

        try:
            cursor.execute('''
                INSERT INTO user_bonuses (user_id, week_start_date, bonus_date, amount, description, added_by, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', (data.user_id, data.week_start_date.isoformat(), data.bonus_date.isoformat(),
                  str(data.amount), data.description.strip(), principal.id, datetime.now().isoformat()))
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise DuplicateBonusError("Bonus already exists for this user on this date")
            raise

        bonus_id = cursor.lastrowid
        _audit(cursor, bonus_id, "created", principal.id,
               new_amount=str(data.amount), new_description=data.description.strip(),
               new_bonus_date=data.bonus_date.isoformat(), new_status=PENDING)
        conn.commit()

    logger.info(f"Bonus {bonus_id} created: user {data.user_id}, amount €{data.amount} by {principal.full_name}")
    return get_bonus(bonus_id)

def update_bonus(bonus_id: int, data: BonusUpdate, principal: Principal) -> Bonus:
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise BonusValidationError("No fields to update")
    if 'amount' in changes:
        validate_amount(changes['amount'])
    if 'description' in changes:
        validate_description(changes['description'])

    current = get_bonus(bonus_id)
    amount = changes.get('amount', current.amount)
    description = changes.get('description', current.description)
    bonus_date = changes.get('bonus_date', current.bonus_date)
    validate_bonus_date(current.week_start_date, bonus_date)

    with get_db() as conn:
        cursor = conn.cursor()
        try:
            cursor.execute('''
                UPDATE user_bonuses
                SET amount = ?, description = ?, bonus_date = ?, updated_at = ?
                WHERE id = ?
            ''', (str(amount), description, bonus_date.isoformat(), datetime.now().isoformat(), bonus_id))
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise DuplicateBonusError("Bonus already exists for this user on this date")
            raise

        _audit(cursor, bonus_id, "updated", principal.id,
               old_amount=str(current.amount), old_description=current.description,
               old_bonus_date=current.bonus_date.isoformat(),
               new_amount=str(amount), new_description=description,
               new_bonus_date=bonus_date.isoformat())
        conn.commit()

    logger.info(f"Bonus {bonus_id} updated by {principal.full_name} ({principal.id})")
    return get_bonus(bonus_id)

def change_status(bonus_id: int, status: str, principal: Principal) -> Bonus:
    current = get_bonus(bonus_id)
    status = next_status(current.status, status)

    with get_db() as conn:
        cursor = conn.cursor()
        # Only move from the status that was validated; a concurrent decision wins
        cursor.execute('''
            UPDATE user_bonuses
            SET status = ?, approved_by = ?, approved_at = ?
            WHERE id = ? AND is_active = TRUE AND status = ?
        ''', (status, principal.id, datetime.now().isoformat(), bonus_id, current.status))

        if cursor.rowcount == 0:
            cursor.execute("SELECT status, is_active FROM user_bonuses WHERE id = ?", (bonus_id,))
            row = cursor.fetchone()
            if not row or not row['is_active']:
                raise BonusNotFound(f"Bonus {bonus_id} not found")
            logger.warning(f"Bonus {bonus_id} was already {row['status']}, {status} by {principal.full_name} rejected")
            raise InvalidStatusTransition(row['status'], status)

        _audit(cursor, bonus_id, status, principal.id, old_status=current.status, new_status=status)
        conn.commit()

    logger.info(f"Bonus {bonus_id} {status} by {principal.full_name} ({principal.id})")
    return get_bonus(bonus_id)

def delete_bonus(bonus_id: int, principal: Principal):
    """Soft delete; the row and its audit trail are kept"""
    get_bonus(bonus_id)

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE user_bonuses SET is_active = FALSE, updated_at = ? WHERE id = ?",
            (datetime.now().isoformat(), bonus_id)
        )
        _audit(cursor, bonus_id, "deleted", principal.id)
        conn.commit()

    logger.info(f"Bonus {bonus_id} deleted by {principal.full_name} ({principal.id})")

def get_audit_trail(bonus_id: int) -> List[BonusAuditRecord]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT uba.*, u.full_name as changed_by_name
            FROM user_bonus_audit uba
            JOIN users u ON uba.changed_by = u.id
            WHERE uba.bonus_id = ?
            ORDER BY uba.changed_at DESC, uba.id DESC
        ''', (bonus_id,))
        rows = cursor.fetchall()

    return [
        BonusAuditRecord(
            action_type=row['action_type'],
            changed_by=row['changed_by'],
            changed_by_name=row['changed_by_name'],
            changed_at=row['changed_at'],
            old_amount=_decimal(row['old_amount']),
            new_amount=_decimal(row['new_amount']),
            old_description=row['old_description'],
            new_description=row['new_description'],
            old_bonus_date=_str_or_none(row['old_bonus_date']),
            new_bonus_date=_str_or_none(row['new_bonus_date']),
            old_status=row['old_status'],
            new_status=row['new_status'],
        )
        for row in rows
    ]

def week_summary(week_start: date, user_ids: Optional[Set[int]] = None) -> BonusWeekSummary:
    bonuses = list_week_bonuses(week_start, user_ids)
    approved = [b for b in bonuses if b.status == APPROVED]

    return BonusWeekSummary(
        week_start_date=week_start,
        total_bonuses=len(bonuses),
        approved_bonuses=len(approved),
        pending_bonuses=sum(1 for b in bonuses if b.status == PENDING),
        rejected_bonuses=sum(1 for b in bonuses if b.status == REJECTED),
        total_approved_amount=sum((b.amount for b in approved), Decimal("0")),
        total_amount=sum((b.amount for b in bonuses), Decimal("0")),
    )
