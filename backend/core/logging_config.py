# backend/core/logging_config.py

import logging

from .config import settings


def configure_logging(level: str = None):
    """Configure root logging for worker processes"""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # SQL echo is controlled by LOG_SQL_QUERIES, keep the engine logger quiet otherwise
    if not settings.log_sql_queries:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
