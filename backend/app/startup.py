# backend/app/startup.py

"""
Startup helpers: logging setup and development schema bootstrap.
"""

import logging

from core.config import get_settings
from core.database import init_models

logger = logging.getLogger(__name__)


def configure_logging():
    """Configure root logging from settings"""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


async def run_startup_checks():
    """Create tables for local sqlite databases; real deployments run migrations"""
    settings = get_settings()

    if settings.is_production and settings.debug:
        logger.warning("DEBUG is enabled in production")

    if settings.is_sqlite:
        # Models must be imported so they are registered on Base.
        from modules.menus import models  # noqa: F401

        await init_models()
        logger.info("SQLite schema initialised")

    logger.info(f"Starting in {settings.environment.upper()} mode")
