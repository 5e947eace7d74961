import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Set

from payroll_admin.core.database import get_db
from payroll_admin.models.admin import ProblemTimeEntry, TimeEntryCreate, TimeEntryUpdate
from payroll_admin.models.common import Principal, TimeEntry, WorkingNow

logger = logging.getLogger(__name__)

LONG_SESSION_HOURS = 12

class OverlappingTimeEntryError(Exception):
    """The interval overlaps another entry of the same user"""

    def __init__(self, user_id: int, other_entry_id: int):
        self.user_id = user_id
        self.other_entry_id = other_entry_id
        super().__init__(f"Time entry overlaps existing entry {other_entry_id} for user {user_id}")

class TimeEntryNotFound(LookupError):
    pass

def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Timestamps are stored as local naive ISO strings with second precision"""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.isoformat(timespec="seconds")

def _parse_timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(str(value))

def entry_from_row(row) -> TimeEntry:
    keys = row.keys()
    return TimeEntry(
        id=row['id'],
        user_id=row['user_id'],
        project_id=row['project_id'],
        project_name=row['project_name'] if 'project_name' in keys else None,
        clock_in_time=_parse_timestamp(row['clock_in_time']),
        clock_out_time=_parse_timestamp(row['clock_out_time']),
        is_approved=bool(row['is_approved']),
        notes=row['notes'],
    )

def find_overlap(cursor, user_id: int, clock_in: datetime, clock_out: Optional[datetime],
                 exclude_id: Optional[int] = None):
    """First entry of the user overlapping [clock_in, clock_out); an open interval runs forever"""
    query = '''
        SELECT id FROM time_entries
        WHERE user_id = ?
        AND (clock_out_time IS NULL OR clock_out_time > ?)
    '''
    params: list = [user_id, to_db_timestamp(clock_in)]

    if clock_out is not None:
        query += " AND clock_in_time < ?"
        params.append(to_db_timestamp(clock_out))
    if exclude_id is not None:
        query += " AND id != ?"
        params.append(exclude_id)

    query += " ORDER BY clock_in_time LIMIT 1"
    cursor.execute(query, params)
    return cursor.fetchone()

def _validate_interval(clock_in: datetime, clock_out: Optional[datetime]):
    if clock_out is not None and to_db_timestamp(clock_out) <= to_db_timestamp(clock_in):
        raise ValueError("clock_out_time must be after clock_in_time")

def get_time_entries(start_date: date, end_date: date, user_ids: Optional[Iterable[int]] = None) -> List[TimeEntry]:
    """Entries whose clock-in falls on a date in [start_date, end_date]"""
    query = '''
        SELECT te.*, p.title as project_name
        FROM time_entries te
        LEFT JOIN projects p ON te.project_id = p.id
        WHERE date(te.clock_in_time) BETWEEN ? AND ?
    '''
    params: list = [start_date.isoformat(), end_date.isoformat()]

    if user_ids is not None:
        user_ids = list(user_ids)
        if not user_ids:
            return []
        query += f" AND te.user_id IN ({', '.join('?' for _ in user_ids)})"
        params.extend(user_ids)

    query += " ORDER BY te.user_id, te.clock_in_time"

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return [entry_from_row(row) for row in cursor.fetchall()]

def get_entry_dates(year: int, user_ids: Optional[Set[int]] = None) -> List[date]:
    """Distinct clock-in dates in a year, for the week picker"""
    query = '''
        SELECT DISTINCT date(clock_in_time) as work_date, user_id
        FROM time_entries
        WHERE clock_out_time IS NOT NULL
        AND strftime('%Y', clock_in_time) = ?
    '''
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(query, (str(year),))
        rows = cursor.fetchall()

    return sorted({
        date.fromisoformat(row['work_date'])
        for row in rows
        if user_ids is None or row['user_id'] in user_ids
    })

def _ensure_active_user(cursor, user_id: int):
    cursor.execute("SELECT id, full_name FROM users WHERE id = ? AND is_active = TRUE", (user_id,))
    user = cursor.fetchone()
    if not user:
        raise TimeEntryNotFound(f"User {user_id} not found or inactive")
    return user

def create_time_entry(data: TimeEntryCreate, principal: Principal) -> TimeEntry:
    """Create a manual entry; overlapping entries for the same user are rejected"""
    _validate_interval(data.clock_in_time, data.clock_out_time)

    with get_db() as conn:
        cursor = conn.cursor()
        user = _ensure_active_user(cursor, data.user_id)

        overlap = find_overlap(cursor, data.user_id, data.clock_in_time, data.clock_out_time)
        if overlap:
            raise OverlappingTimeEntryError(data.user_id, overlap['id'])

        cursor.execute('''
            INSERT INTO time_entries (user_id, project_id, clock_in_time, clock_out_time, notes, created_by)
            VALUES (?, ?, ?, ?, ?, ?)
        ''', (data.user_id, data.project_id, to_db_timestamp(data.clock_in_time),
              to_db_timestamp(data.clock_out_time), data.notes, principal.id))
        entry_id = cursor.lastrowid
        conn.commit()

        logger.info(f"{principal.full_name} ({principal.id}) created time entry {entry_id} for {user['full_name']}")
        cursor.execute("SELECT * FROM time_entries WHERE id = ?", (entry_id,))
        return entry_from_row(cursor.fetchone())

def get_time_entry(entry_id: int) -> TimeEntry:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM time_entries WHERE id = ?", (entry_id,))
        row = cursor.fetchone()
    if not row:
        raise TimeEntryNotFound(f"Time entry {entry_id} not found")
    return entry_from_row(row)

def update_time_entry(entry_id: int, data: TimeEntryUpdate, principal: Principal) -> TimeEntry:
    existing = get_time_entry(entry_id)
    changes = data.model_dump(exclude_unset=True)

    clock_in = changes.get('clock_in_time', existing.clock_in_time)
    clock_out = changes.get('clock_out_time', existing.clock_out_time)
    _validate_interval(clock_in, clock_out)

    with get_db() as conn:
        cursor = conn.cursor()
        overlap = find_overlap(cursor, existing.user_id, clock_in, clock_out, exclude_id=entry_id)
        if overlap:
            raise OverlappingTimeEntryError(existing.user_id, overlap['id'])

        cursor.execute('''
            UPDATE time_entries
            SET project_id = ?, clock_in_time = ?, clock_out_time = ?, is_approved = ?, notes = ?
            WHERE id = ?
        ''', (
            changes.get('project_id', existing.project_id),
            to_db_timestamp(clock_in),
            to_db_timestamp(clock_out),
            changes.get('is_approved', existing.is_approved),
            changes.get('notes', existing.notes),
            entry_id
        ))
        conn.commit()

    logger.info(f"{principal.full_name} ({principal.id}) edited time entry {entry_id}: {sorted(changes)}")
    return get_time_entry(entry_id)

def delete_time_entry(entry_id: int, principal: Principal) -> TimeEntry:
    existing = get_time_entry(entry_id)
    with get_db() as conn:
        conn.execute("DELETE FROM time_entries WHERE id = ?", (entry_id,))
        conn.commit()
    logger.info(f"{principal.full_name} ({principal.id}) deleted time entry {entry_id} of user {existing.user_id}")
    return existing

def clock_in(user_id: int, project_id: Optional[int] = None, now: Optional[datetime] = None) -> TimeEntry:
    """Open a shift; fails while the user still has an open shift"""
    now = now or datetime.now()

    with get_db() as conn:
        cursor = conn.cursor()
        user = _ensure_active_user(cursor, user_id)

        overlap = find_overlap(cursor, user_id, now, None)
        if overlap:
            raise OverlappingTimeEntryError(user_id, overlap['id'])

        cursor.execute('''
            INSERT INTO time_entries (user_id, project_id, clock_in_time)
            VALUES (?, ?, ?)
        ''', (user_id, project_id, to_db_timestamp(now)))
        entry_id = cursor.lastrowid
        conn.commit()

    logger.info(f"Clock IN for {user['full_name']} ({user_id}) at {now}")
    return get_time_entry(entry_id)

def clock_out(user_id: int, now: Optional[datetime] = None) -> TimeEntry:
    """Close the user's open shift"""
    now = now or datetime.now()

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT * FROM time_entries
            WHERE user_id = ? AND clock_out_time IS NULL
            ORDER BY clock_in_time DESC LIMIT 1
        ''', (user_id,))
        open_entry = cursor.fetchone()

        if not open_entry:
            raise TimeEntryNotFound(f"User {user_id} is not clocked in")

        cursor.execute(
            "UPDATE time_entries SET clock_out_time = ? WHERE id = ?",
            (to_db_timestamp(now), open_entry['id'])
        )
        conn.commit()

    logger.info(f"Clock OUT for user {user_id} at {now}")
    return get_time_entry(open_entry['id'])

def who_is_working(now: Optional[datetime] = None) -> List[WorkingNow]:
    now = now or datetime.now()

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT te.user_id, u.full_name, p.title as project_name, te.clock_in_time
            FROM time_entries te
            JOIN users u ON te.user_id = u.id
            LEFT JOIN projects p ON te.project_id = p.id
            WHERE te.clock_out_time IS NULL
            ORDER BY u.full_name
        ''')
        rows = cursor.fetchall()

    working = []
    for row in rows:
        started = _parse_timestamp(row['clock_in_time'])
        working.append(WorkingNow(
            user_id=row['user_id'],
            full_name=row['full_name'],
            project_name=row['project_name'],
            clock_in_time=started,
            elapsed_minutes=max(0, int((now - started).total_seconds() / 60)),
        ))
    return working

def detect_time_entry_problems(user_id: int, start_date: date, end_date: date,
                               now: Optional[datetime] = None) -> List[ProblemTimeEntry]:
    """Detect entries that would distort payroll: forgotten clock-outs and very long shifts"""
    now = now or datetime.now()
    problems = []

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT full_name FROM users WHERE id = ?", (user_id,))
        user = cursor.fetchone()
        if not user:
            return problems

    for entry in get_time_entries(start_date, end_date, [user_id]):
        if entry.clock_out_time is None:
            open_hours = (now - entry.clock_in_time).total_seconds() / 3600
            if open_hours > LONG_SESSION_HOURS:
                problems.append(ProblemTimeEntry(
                    entry_id=entry.id,
                    user_id=user_id,
                    user_name=user['full_name'],
                    clock_in_time=entry.clock_in_time,
                    clock_out_time=None,
                    problem_type="OPEN_SHIFT",
                    problem_description=f"Shift open for {open_hours:.1f} hours, excluded from payroll",
                    suggested_action="Add the missing clock-out time"
                ))
            continue

        session_hours = (entry.clock_out_time - entry.clock_in_time).total_seconds() / 3600
        if session_hours > LONG_SESSION_HOURS:
            problems.append(ProblemTimeEntry(
                entry_id=entry.id,
                user_id=user_id,
                user_name=user['full_name'],
                clock_in_time=entry.clock_in_time,
                clock_out_time=entry.clock_out_time,
                problem_type="LONG_SESSION",
                problem_description=f"Work session of {session_hours:.1f} hours",
                suggested_action="Check if the user forgot to clock out"
            ))

        if entry.clock_out_time.date() != entry.clock_in_time.date():
            problems.append(ProblemTimeEntry(
                entry_id=entry.id,
                user_id=user_id,
                user_name=user['full_name'],
                clock_in_time=entry.clock_in_time,
                clock_out_time=entry.clock_out_time,
                problem_type="CROSSES_MIDNIGHT",
                problem_description="Shift ends on a later day, all hours count on the clock-in date",
                suggested_action="Verify or split the entry"
            ))

    return problems
