"""
Application startup validation and initialization.

This module performs startup checks and wires the optional Redis backends
before the application starts serving requests.
"""

import logging
import sys
from typing import List, Tuple
from sqlalchemy import text
import sqlalchemy as sa

from core.config import settings, validate_production_config
from core.database import engine, Base

logger = logging.getLogger(__name__)

REQUIRED_TABLES = [
    "outlets",
    "floors",
    "sections",
    "floor_sections",
    "day_sessions",
    "tables",
    "table_layouts",
    "table_sessions",
    "table_merges",
    "table_history",
]


class StartupValidator:
    """Validates application startup requirements"""

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def check_database_connection(self) -> bool:
        """Check database connectivity"""
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection successful")
            return True
        except Exception as e:
            self.errors.append(f"Database connection failed: {str(e)}")
            return False

    def check_redis_connection(self) -> bool:
        """Check Redis configuration; reachability is checked when the client connects"""
        if settings.broadcast_backend != "redis" and not settings.redis_enabled:
            self.warnings.append("Redis not configured - using in-memory cache and local broadcast")
        return True

    def check_environment_config(self) -> bool:
        """Validate environment configuration"""
        try:
            validate_production_config()
            return True
        except ValueError as e:
            self.errors.append(f"Configuration validation failed: {str(e)}")
            return False

    def check_required_tables(self) -> bool:
        """Check if required database tables exist"""
        try:
            existing_tables = sa.inspect(engine).get_table_names()
            missing_tables = [t for t in REQUIRED_TABLES if t not in existing_tables]
            if missing_tables:
                self.warnings.append(
                    f"Missing database tables: {', '.join(missing_tables)}"
                )
            return True
        except Exception as e:
            self.warnings.append(f"Could not check database tables: {str(e)}")
            return True

    def validate_all(self) -> Tuple[bool, List[str], List[str]]:
        """Run all validation checks"""
        checks = [
            ("Environment Configuration", self.check_environment_config),
            ("Database Connection", self.check_database_connection),
            ("Redis Connection", self.check_redis_connection),
            ("Database Tables", self.check_required_tables),
        ]

        all_passed = True
        for check_name, check_func in checks:
            logger.info(f"Running check: {check_name}")
            try:
                if not check_func():
                    all_passed = False
            except Exception as e:
                self.errors.append(f"{check_name} check failed with error: {str(e)}")
                all_passed = False

        return all_passed, self.errors, self.warnings


def init_db():
    """Create missing tables outside production"""
    # Import models so they register on Base.metadata
    import modules.core.models  # noqa: F401
    import modules.tables.models.table_models  # noqa: F401

    if settings.is_production:
        return
    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ensured")


def run_startup_checks():
    """Run all startup validation checks"""
    logger.info("=" * 60)
    logger.info("Starting FloorState")
    logger.info(f"Environment: {settings.environment}")
    logger.info("=" * 60)

    validator = StartupValidator()
    passed, errors, warnings = validator.validate_all()

    if warnings:
        logger.warning("Startup Warnings:")
        for warning in warnings:
            logger.warning(f"  {warning}")

    if errors:
        logger.error("Startup Errors:")
        for error in errors:
            logger.error(f"  {error}")

    if not passed and settings.is_production:
        logger.error("Cannot start in production with errors!")
        sys.exit(1)
    elif not passed:
        logger.warning("Starting in development mode despite errors")
    else:
        logger.info("All startup checks passed")

    return passed, warnings


def configure_startup_logging():
    """Configure logging for startup"""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
