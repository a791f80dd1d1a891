# backend/core/database.py

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import settings


def build_engine(database_url: str, echo: bool = False):
    """Create an engine with pool settings suited to the backend."""
    engine_kwargs = {
        "echo": echo,
        "pool_pre_ping": True,
    }

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in {"sqlite://", "sqlite:///:memory:"}:
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_max_overflow
        engine_kwargs["pool_timeout"] = settings.store_timeout_seconds

    return create_engine(database_url, **engine_kwargs)


engine = build_engine(settings.database_url, echo=settings.log_sql_queries)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def load_models():
    """Import every model module so string relationships between modules resolve"""
    from modules.core import models as core_models
    from modules.notifications import models as notification_models
    from modules.scheduling import models as scheduling_models
    from modules.shift_pool import models as shift_pool_models

    return [core_models, scheduling_models, shift_pool_models, notification_models]


def init_db(bind=None):
    """Create any missing tables"""
    load_models()
    Base.metadata.create_all(bind=bind or engine)
