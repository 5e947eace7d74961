import sqlite3
from contextlib import contextmanager
import logging
from payroll_admin.core.config import ServerConfig
from payroll_admin.models.payroll import legacy_workdays, workdays_to_mask

logger = logging.getLogger(__name__)

@contextmanager
def get_db():
    conn = sqlite3.connect(ServerConfig.DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    except Exception as e:
        conn.rollback()
        raise e
    finally:
        conn.close()

USER_TYPES = [
    # id, title, has_monthly_salary, default_monthly_periods, default_norm_hours
    (1, "Υπάλληλος", True, 14, 8.0),
    (2, "Παροχής υπηρεσίας", True, 12, 8.0),
    (3, "Εργατοτεχνίτης", False, 14, 8.5),
]

ROLES = ["admin", "manager", "employee"]

def init_database():
    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS roles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS departments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL
            )
        ''')

        # Crews or shifts a user belongs to, independent of department
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS user_groups (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS user_type (
                id INTEGER PRIMARY KEY,
                title TEXT NOT NULL,
                has_monthly_salary BOOLEAN NOT NULL DEFAULT FALSE,
                default_monthly_periods INTEGER,
                default_norm_hours NUMERIC
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                full_name TEXT NOT NULL,
                email TEXT,
                pin_hash TEXT UNIQUE,
                pin_set_at TIMESTAMP,
                role INTEGER REFERENCES roles (id),
                department_id INTEGER REFERENCES departments (id),
                user_type_id INTEGER REFERENCES user_type (id),
                group_id INTEGER REFERENCES user_groups (id),
                is_active BOOLEAN DEFAULT TRUE,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        try:
            cursor.execute("ALTER TABLE users ADD COLUMN group_id INTEGER REFERENCES user_groups (id)")
        except sqlite3.OperationalError:
            # Column already exists
            pass

        # Departments a manager may administer
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS manager_departments (
                manager_id INTEGER NOT NULL REFERENCES users (id),
                department_id INTEGER NOT NULL REFERENCES departments (id),
                PRIMARY KEY (manager_id, department_id)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS user_sessions (
                session_token TEXT PRIMARY KEY,
                user_id INTEGER NOT NULL REFERENCES users (id),
                created_at TIMESTAMP NOT NULL,
                expires_at TIMESTAMP NOT NULL,
                last_activity TIMESTAMP,
                ip_address TEXT,
                user_agent TEXT,
                is_active BOOLEAN DEFAULT TRUE
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS auth_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER,
                action TEXT NOT NULL,
                ip_address TEXT,
                user_agent TEXT,
                success BOOLEAN NOT NULL,
                message TEXT,
                timestamp TIMESTAMP NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS projects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                description TEXT,
                is_active BOOLEAN DEFAULT TRUE,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS time_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users (id),
                project_id INTEGER REFERENCES projects (id),
                clock_in_time TIMESTAMP NOT NULL,
                clock_out_time TIMESTAMP,
                is_approved BOOLEAN DEFAULT FALSE,
                notes TEXT,
                created_by INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        # Index for payroll range queries
        cursor.execute('''
            CREATE INDEX IF NOT EXISTS idx_time_entries_lookup
            ON time_entries (user_id, clock_in_time)
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS user_salary_settings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users (id),
                effective_from DATE NOT NULL,
                salary_mon NUMERIC NOT NULL DEFAULT 0,
                salary_tue NUMERIC NOT NULL DEFAULT 0,
                salary_wed NUMERIC NOT NULL DEFAULT 0,
                salary_thu NUMERIC NOT NULL DEFAULT 0,
                salary_fri NUMERIC NOT NULL DEFAULT 0,
                salary_sat NUMERIC NOT NULL DEFAULT 0,
                salary_sun NUMERIC NOT NULL DEFAULT 0,
                overtime_mon NUMERIC NOT NULL DEFAULT 0,
                overtime_tue NUMERIC NOT NULL DEFAULT 0,
                overtime_wed NUMERIC NOT NULL DEFAULT 0,
                overtime_thu NUMERIC NOT NULL DEFAULT 0,
                overtime_fri NUMERIC NOT NULL DEFAULT 0,
                overtime_sat NUMERIC NOT NULL DEFAULT 0,
                overtime_sun NUMERIC NOT NULL DEFAULT 0,
                norm_daily_hours NUMERIC NOT NULL DEFAULT 8,
                has_monthly_salary BOOLEAN NOT NULL DEFAULT FALSE,
                monthly_salary NUMERIC,
                monthly_periods INTEGER,
                user_type_id INTEGER REFERENCES user_type (id),
                away_work NUMERIC,
                is_driver BOOLEAN DEFAULT FALSE,
                created_by INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (user_id, effective_from)
            )
        ''')

        # Explicit workday schedule, replaces the legacy days_per_week count
        try:
            cursor.execute("ALTER TABLE user_salary_settings ADD COLUMN workdays INTEGER")
        except sqlite3.OperationalError:
            # Column already exists
            pass

        migrate_legacy_workdays(cursor)

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS user_bonuses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users (id),
                week_start_date DATE NOT NULL,
                bonus_date DATE NOT NULL,
                amount NUMERIC NOT NULL,
                description TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK(status IN ('pending', 'approved', 'rejected')),
                added_by INTEGER NOT NULL REFERENCES users (id),
                approved_by INTEGER REFERENCES users (id),
                approved_at TIMESTAMP,
                is_active BOOLEAN DEFAULT TRUE,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP
            )
        ''')

        # One active bonus per user per day
        cursor.execute('''
            CREATE UNIQUE INDEX IF NOT EXISTS no_duplicate_bonus_per_day
            ON user_bonuses (user_id, bonus_date) WHERE is_active = 1
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS user_bonus_audit (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                bonus_id INTEGER NOT NULL REFERENCES user_bonuses (id),
                action_type TEXT NOT NULL,
                changed_by INTEGER NOT NULL REFERENCES users (id),
                changed_at TIMESTAMP NOT NULL,
                old_amount NUMERIC,
                new_amount NUMERIC,
                old_description TEXT,
                new_description TEXT,
                old_bonus_date DATE,
                new_bonus_date DATE,
                old_status TEXT,
                new_status TEXT
            )
        ''')

        cursor.executemany("INSERT OR IGNORE INTO roles (name) VALUES (?)", [(role,) for role in ROLES])
        cursor.executemany('''
            INSERT OR IGNORE INTO user_type (id, title, has_monthly_salary, default_monthly_periods, default_norm_hours)
            VALUES (?, ?, ?, ?, ?)
        ''', USER_TYPES)

        conn.commit()
        logger.info("Database initialized successfully")

def migrate_legacy_workdays(cursor):
    """Convert days_per_week counts from older databases into workday masks, once"""
    cursor.execute("PRAGMA table_info(user_salary_settings)")
    columns = {row['name'] for row in cursor.fetchall()}
    if "days_per_week" not in columns:
        return

    cursor.execute('''
        SELECT id, days_per_week FROM user_salary_settings
        WHERE workdays IS NULL
    ''')
    rows = cursor.fetchall()

    for row in rows:
        days_per_week = row['days_per_week'] if row['days_per_week'] is not None else 5
        mask = workdays_to_mask(legacy_workdays(int(days_per_week)))
        cursor.execute("UPDATE user_salary_settings SET workdays = ? WHERE id = ?", (mask, row['id']))

    if rows:
        logger.info(f"Migrated {len(rows)} salary settings from days_per_week to workday schedules")

def seed_test_data():
    """Add demo users, departments and projects for development"""
    from payroll_admin.services.auth_service import hash_pin  # Import here to avoid circular imports
    from datetime import datetime

    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute("SELECT COUNT(*) FROM users")
        count = cursor.fetchone()[0]

        if count > 0:
            logger.info(f"Database already has {count} users")
            return

        cursor.executemany("INSERT INTO departments (name) VALUES (?)", [("Παραγωγή",), ("Αποθήκη",)])
        cursor.executemany("INSERT INTO user_groups (name) VALUES (?)", [("Συνεργείο Α",), ("Συνεργείο Β",)])

        cursor.execute("SELECT id, name FROM roles")
        role_ids = {row['name']: row['id'] for row in cursor.fetchall()}

        demo_users = [
            # full_name, email, role, department_id, user_type_id, pin
            ("Admin", "admin@example.com", "admin", None, None, "1234"),
            ("Μανώλης Διευθυντής", "manager@example.com", "manager", 1, None, "5678"),
            ("Χρήστος Παπαδόπουλος", None, "employee", 1, 1, None),
            ("Μαρία Κωνσταντίνου", None, "employee", 1, 3, None),
            ("Νίκος Αντωνίου", None, "employee", 2, 3, None),
        ]

        now = datetime.now().isoformat()
        for full_name, email, role, department_id, user_type_id, pin in demo_users:
            cursor.execute('''
                INSERT INTO users (full_name, email, pin_hash, pin_set_at, role, department_id, user_type_id)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', (full_name, email, hash_pin(pin) if pin else None, now if pin else None,
                  role_ids[role], department_id, user_type_id))

        cursor.execute("INSERT INTO manager_departments (manager_id, department_id) VALUES (2, 1)")
        cursor.executemany("INSERT INTO projects (title, description) VALUES (?, ?)", [
            ("Γενικές εργασίες", "Default project"),
            ("Συντήρηση", "Maintenance work"),
        ])

        conn.commit()
        logger.info(f"Added {len(demo_users)} demo users to database")
