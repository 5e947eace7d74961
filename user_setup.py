#!/usr/bin/env python3
"""
Payroll Admin User Setup Script
Run this to initialize the database and add admins, managers and employees
"""

import sqlite3
import sys
from datetime import datetime

from payroll_admin.core.config import ServerConfig
from payroll_admin.core.database import get_db, init_database, seed_test_data
from payroll_admin.services.auth_service import hash_pin, validate_pin_format

def role_id(cursor, role: str) -> int:
    cursor.execute("SELECT id FROM roles WHERE name = ?", (role,))
    row = cursor.fetchone()
    if not row:
        raise ValueError(f"Unknown role '{role}', use admin, manager or employee")
    return row['id']

def department_id(cursor, name: str) -> int:
    """Department id by name, created when missing"""
    cursor.execute("SELECT id FROM departments WHERE name = ?", (name,))
    row = cursor.fetchone()
    if row:
        return row['id']
    cursor.execute("INSERT INTO departments (name) VALUES (?)", (name,))
    return cursor.lastrowid

def add_user(full_name, role="employee", pin=None, department=None, user_type_id=None):
    """Add a new user; managers manage their own department"""
    with get_db() as conn:
        cursor = conn.cursor()
        try:
            if pin:
                validate_pin_format(pin)
            dept_id = department_id(cursor, department) if department else None

            cursor.execute('''
                INSERT INTO users (full_name, pin_hash, pin_set_at, role, department_id, user_type_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', (full_name, hash_pin(pin) if pin else None, datetime.now().isoformat() if pin else None,
                  role_id(cursor, role), dept_id, user_type_id, datetime.now().isoformat()))
            user_id = cursor.lastrowid

            if role == "manager" and dept_id:
                cursor.execute(
                    "INSERT INTO manager_departments (manager_id, department_id) VALUES (?, ?)",
                    (user_id, dept_id)
                )
            conn.commit()

        except ValueError as e:
            print(f"❌ Error adding user {full_name}: {e}")
            return None
        except sqlite3.IntegrityError as e:
            print(f"❌ Error adding user {full_name}: {e}")
            return None

    print(f"✅ Added {role}: {full_name} (ID: {user_id})")
    if not pin and role in ("admin", "manager"):
        print("   ⚠️  No PIN set - this user cannot log in yet")
    return user_id

def set_pin_for_user(user_id, pin):
    """Set or update PIN for an existing user"""
    try:
        validate_pin_format(pin)
    except ValueError as e:
        print(f"❌ {e}")
        return False

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT full_name FROM users WHERE id = ?", (user_id,))
        user = cursor.fetchone()
        if not user:
            print(f"❌ User {user_id} not found")
            return False

        try:
            cursor.execute(
                "UPDATE users SET pin_hash = ?, pin_set_at = ? WHERE id = ?",
                (hash_pin(pin), datetime.now().isoformat(), user_id)
            )
        except sqlite3.IntegrityError:
            print("❌ PIN already in use by another user")
            return False
        conn.commit()

    print(f"✅ PIN set for {user['full_name']} (ID: {user_id})")
    return True

def deactivate_user(user_id):
    """Deactivate a user (don't delete, preserve history)"""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("UPDATE users SET is_active = FALSE WHERE id = ?", (user_id,))
        if cursor.rowcount > 0:
            conn.commit()
            print(f"✅ User {user_id} deactivated")
        else:
            print(f"❌ User {user_id} not found")

def list_users():
    """List all users in the database"""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT u.id, u.full_name, r.name as role_name, d.name as department_name,
                   u.is_active, u.pin_hash
            FROM users u
            LEFT JOIN roles r ON u.role = r.id
            LEFT JOIN departments d ON u.department_id = d.id
            ORDER BY u.id
        ''')
        users = cursor.fetchall()

    if not users:
        print("No users found in database")
        return

    print("\nCurrent Users:")
    print("-" * 80)
    print(f"{'ID':<4} {'Name':<28} {'Role':<10} {'Department':<16} {'Active':<8} {'PIN'}")
    print("-" * 80)

    for user in users:
        active_status = "✅ Yes" if user['is_active'] else "❌ No"
        has_pin = "✅ Set" if user['pin_hash'] else "❌ None"
        department = user['department_name'] or "-"
        print(f"{user['id']:<4} {user['full_name']:<28} {user['role_name'] or '-':<10} {department:<16} {active_status:<8} {has_pin}")

def interactive_setup():
    """Interactive user setup"""
    print("Payroll Admin - User Setup")
    print("=" * 40)

    while True:
        print("\nOptions:")
        print("1. Add new user")
        print("2. List all users")
        print("3. Deactivate user")
        print("4. Set/update user PIN")
        print("5. Quick demo setup")
        print("6. Exit")

        choice = input("\nSelect option (1-6): ").strip()

        if choice == '1':
            full_name = input("Full name: ").strip()
            role = input("Role (admin/manager/employee) [employee]: ").strip() or "employee"
            department = input("Department (or press Enter to skip): ").strip() or None
            pin = input("4-digit PIN (or press Enter to skip): ").strip() or None

            if full_name:
                add_user(full_name, role, pin, department)
            else:
                print("❌ Full name is required")

        elif choice == '2':
            list_users()

        elif choice == '3':
            try:
                user_id = int(input("User ID to deactivate: "))
                deactivate_user(user_id)
            except ValueError:
                print("❌ Please enter a valid user ID number")

        elif choice == '4':
            try:
                user_id = int(input("User ID: "))
                pin = input("New 4-digit PIN: ").strip()
                set_pin_for_user(user_id, pin)
            except ValueError:
                print("❌ Please enter a valid user ID number")

        elif choice == '5':
            seed_test_data()
            list_users()

        elif choice == '6':
            break

        else:
            print("❌ Invalid option")

def print_usage():
    print("Usage:")
    print("  python user_setup.py                                  # Interactive setup")
    print("  python user_setup.py --demo                           # Add demo users")
    print("  python user_setup.py --list                           # List current users")
    print("  python user_setup.py --add-admin NAME PIN             # Add an admin")
    print("  python user_setup.py --add-manager NAME PIN DEPT      # Add a manager for a department")
    print("  python user_setup.py --set-pin ID PIN                 # Set PIN for a user")

if __name__ == "__main__":
    print("Payroll Admin User Setup")
    print(f"Database: {ServerConfig.DATABASE_PATH}")
    print("=" * 30)

    init_database()

    args = sys.argv[1:]
    if not args:
        interactive_setup()
    elif args[0] == "--demo":
        seed_test_data()
        list_users()
    elif args[0] == "--list":
        list_users()
    elif args[0] == "--add-admin" and len(args) == 3:
        add_user(args[1], "admin", args[2])
    elif args[0] == "--add-manager" and len(args) == 4:
        add_user(args[1], "manager", args[2], args[3])
    elif args[0] == "--set-pin" and len(args) == 3:
        try:
            set_pin_for_user(int(args[1]), args[2])
        except ValueError:
            print("❌ User ID must be a number")
    else:
        print_usage()
        sys.exit(1)

    print("\n✅ Setup complete! You can now start the payroll server.")
