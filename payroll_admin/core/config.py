import os
from decimal import Decimal
from typing import List
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

def parse_list_env(env_var: str, default: List[str] = None) -> List[str]:
    """Parse comma-separated environment variable into list"""
    if default is None:
        default = []

    value = os.getenv(env_var, "")
    if not value.strip():
        return default

    return [item.strip() for item in value.split(",") if item.strip()]

def parse_bool_env(env_var: str, default: bool = False) -> bool:
    """Parse boolean environment variable"""
    return os.getenv(env_var, str(default)).lower() in ("true", "1", "yes", "on")

class AuthConfig:
    """PIN login and session settings from Environment"""

    # Secret used to key the PIN hashes
    PIN_SECRET = os.getenv("PAYROLL_PIN_SECRET", "change-this-pin-secret")
    PIN_LENGTH = int(os.getenv("PAYROLL_PIN_LENGTH", "4"))

    # Sessions
    SESSION_DURATION_HOURS = int(os.getenv("PAYROLL_SESSION_HOURS", "8"))
    ALLOWED_LOGIN_ROLES = parse_list_env("PAYROLL_LOGIN_ROLES", ["admin", "manager"])

class PayrollConfig:
    """Payroll calculation settings from Environment"""

    # 0 = Monday ... 6 = Sunday, payroll weeks run Thursday to Wednesday
    WEEK_START_DAY = int(os.getenv("PAYROLL_WEEK_START_DAY", "3"))
    DEFAULT_NORM_DAILY_HOURS = Decimal(os.getenv("PAYROLL_DEFAULT_NORM_HOURS", "8"))

    # Bonus rules
    MAX_BONUS_AMOUNT = Decimal(os.getenv("PAYROLL_MAX_BONUS_AMOUNT", "200"))
    MIN_BONUS_DESCRIPTION_LENGTH = int(os.getenv("PAYROLL_MIN_BONUS_DESCRIPTION", "10"))

    # Reports
    MAX_REPORT_WEEKS = int(os.getenv("PAYROLL_MAX_REPORT_WEEKS", "12"))

class ServerConfig:
    """Server Configuration from Environment"""

    # Server settings
    HOST = os.getenv("PAYROLL_HOST", "0.0.0.0")
    PORT = int(os.getenv("PAYROLL_PORT", "3000"))
    WORKERS = int(os.getenv("PAYROLL_WORKERS", "1"))
    LOG_LEVEL = os.getenv("PAYROLL_LOG_LEVEL", "info")

    # SSL/HTTPS settings, certificates are provisioned outside the app
    USE_HTTPS = parse_bool_env("USE_HTTPS", False)
    SSL_CERT_FILE = os.getenv("SSL_CERT_FILE", "./certs/cert.pem")
    SSL_KEY_FILE = os.getenv("SSL_KEY_FILE", "./certs/key.pem")

    # Database settings
    DATABASE_PATH = os.getenv("DATABASE_PATH", "payroll.db")

    # Development settings
    SEED_TEST_DATA = parse_bool_env("SEED_TEST_DATA", False)
    DEVELOPMENT_MODE = parse_bool_env("DEVELOPMENT_MODE", False)
    ENABLE_API_DOCS = parse_bool_env("ENABLE_API_DOCS", True)

    # CORS settings
    CORS_ORIGINS = parse_list_env("CORS_ORIGINS", ["http://localhost:4000", "http://localhost:4001"])
    CORS_ALLOW_CREDENTIALS = parse_bool_env("CORS_ALLOW_CREDENTIALS", True)

    # App metadata
    APP_NAME = os.getenv("APP_NAME", "Timesheet & Payroll Admin")
    APP_VERSION = os.getenv("APP_VERSION", "2.0.0")
    APP_DESCRIPTION = os.getenv("APP_DESCRIPTION", "Timesheets, projects, salary settings, bonuses and weekly payroll")
