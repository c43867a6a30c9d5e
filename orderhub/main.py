"""
Order orchestration service
Creates and deletes logistics orders across the courier, credit, catalog and webhook integrations
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from pathlib import Path
import os
from alembic import command
from alembic.config import Config
from sqlalchemy.exc import SQLAlchemyError

from shared.core import HealthStatus, ServiceHealth, check_result, setup_logging, RequestLoggingMiddleware, get_logger
from orderhub.api.routes import router as orders_router
from orderhub.core_settings import get_settings
from orderhub.infrastructure.credits import CreditLedger
from orderhub.infrastructure.db import get_engine, get_session_factory, init_models

settings = get_settings()

# Service configuration
SERVICE_NAME = "orderhub"
SERVICE_VERSION = settings.SERVICE_VERSION
SERVICE_DESCRIPTION = "Multi-tenant logistics order orchestration"

setup_logging(service_name=SERVICE_NAME, level=settings.LOG_LEVEL)

logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent

def run_migrations() -> None:
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", settings.database_url)
    config.attributes["configure_logger"] = False
    command.upgrade(config, "head")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    logger.info(f"Starting {SERVICE_NAME} version {SERVICE_VERSION}")

    if settings.RUN_MIGRATIONS:
        logger.info("Running database migrations")
        run_migrations()
        logger.info("Database migrations completed")

    try:
        init_models()
        logger.info("Database models initialized")
    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize database models: {e}")
        raise

    logger.info(f"{SERVICE_NAME} started successfully")

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")

app = FastAPI(
    title=SERVICE_NAME,
    description=SERVICE_DESCRIPTION,
    version=SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

def owed_debits_check():
    """Unsettled debits mean orderhub-reconcile has work to do; the service still serves."""
    pending = CreditLedger(get_session_factory()).pending_owed_debits()
    verdict = HealthStatus.WARN if pending else HealthStatus.PASS
    return check_result(verdict, "ledger", pending, "entries")

health_service = ServiceHealth(
    SERVICE_NAME,
    SERVICE_VERSION,
    engine_factory=get_engine,
    required_tables=("orders", "client_credits", "owed_credit_debits"),
    extra_checks={"credits:owed_debits": owed_debits_check},
)
app.include_router(health_service.create_health_router())

app.include_router(orders_router)

@app.get("/")
async def root():
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "running",
        "docs": "/api/docs"
    }

@app.get("/info")
async def info():
    """Service information endpoint"""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "description": SERVICE_DESCRIPTION,
        "environment": os.getenv("ENVIRONMENT", "development"),
        "endpoints": {
            "orders": "/orders",
            "health": "/health",
            "ready": "/health/ready",
            "live": "/health/live",
            "metrics": "/metrics",
            "docs": "/api/docs"
        }
    }
