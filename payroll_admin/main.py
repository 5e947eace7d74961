import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from payroll_admin.core.config import ServerConfig, PayrollConfig
from payroll_admin.core.database import init_database, seed_test_data
from payroll_admin.api.endpoints import general, auth, users, projects, time_entries, salary_settings, payroll, bonuses
from payroll_admin.models.payroll import Weekday

# Configure logging
log_level = getattr(logging, ServerConfig.LOG_LEVEL.upper())
logging.basicConfig(level=log_level)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup logic
    logger.info("=" * 60)
    logger.info(f"🚀 {ServerConfig.APP_NAME.upper()}")
    logger.info(f"Version: {ServerConfig.APP_VERSION}")
    logger.info("=" * 60)

    init_database()

    if ServerConfig.SEED_TEST_DATA:
        seed_test_data()

    logger.info(f"Payroll week starts on {Weekday(PayrollConfig.WEEK_START_DAY).display_name}")
    logger.info(f"Database: {ServerConfig.DATABASE_PATH}")
    logger.info(f"HTTPS: {'ENABLED' if ServerConfig.USE_HTTPS else 'DISABLED'}")
    if ServerConfig.DEVELOPMENT_MODE:
        logger.warning("⚠️  Development mode is ON")
    logger.info("=" * 60)
    logger.info("Payroll server started successfully!")

    yield  # Server is running

    logger.info("Shutting down payroll server...")


app = FastAPI(
    title=ServerConfig.APP_NAME,
    version=ServerConfig.APP_VERSION,
    description=ServerConfig.APP_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs" if ServerConfig.ENABLE_API_DOCS else None,
    redoc_url="/redoc" if ServerConfig.ENABLE_API_DOCS else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ServerConfig.CORS_ORIGINS,
    allow_credentials=ServerConfig.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(general.router, tags=["General"])
app.include_router(auth.router, tags=["Authentication"])
app.include_router(users.router, tags=["Users"])
app.include_router(projects.router, tags=["Projects"])
app.include_router(time_entries.router, tags=["Time Entries"])
app.include_router(salary_settings.router, tags=["Salary Settings"])
app.include_router(payroll.router, tags=["Payroll"])
app.include_router(bonuses.router, tags=["Bonuses"])
