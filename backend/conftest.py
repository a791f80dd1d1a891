"""
Pytest configuration file for backend testing.
"""
import os
import sys
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

# Add the backend directory to Python path so imports work correctly
backend_dir = Path(__file__).parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Keep the import-time engine off any real database
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import fakeredis
import pytest
from sqlalchemy.orm import sessionmaker

from core.config import Settings
from core.database import Base, build_engine, load_models

# Import all models to register them with SQLAlchemy
load_models()

from modules.notifications.enums import DeliveryStatus, NotificationChannel
from modules.notifications.services import ChannelRegistry, ChannelResult, NotificationCache, NotificationPipeline
from tests.factories import BASE_TIME, Session


class FrozenClock:
    """Injectable clock that only moves when told to"""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now):
        self.now = now


class RecordingNotifier:
    """Collects notification intents instead of delivering them"""

    def __init__(self):
        self.intents = []

    def __call__(self, intent):
        self.intents.append(intent)

    def of_type(self, notification_type):
        return [i for i in self.intents if i.type == notification_type]

    def clear(self):
        self.intents = []


@pytest.fixture
def engine(tmp_path):
    # File backed so a second session sees committed rows
    engine = build_engine(f"sqlite:///{tmp_path / 'shift_pool.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    Session.configure(bind=engine)
    session = Session()
    yield session
    Session.remove()


@pytest.fixture
def other_session(engine):
    """An independent session, standing in for a second worker process"""
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(BASE_TIME)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def test_settings():
    return Settings(
        database_url="sqlite://",
        enabled_channels=["PUSH", "SMS", "EMAIL"],
        notification_max_per_hour=20,
        default_timezone="UTC",
    )


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def notification_cache(redis_client):
    return NotificationCache(redis_client, key_prefix="test")


@pytest.fixture
def channel_senders():
    """One mock sender per channel, each reporting success"""
    senders = {}
    for channel in NotificationChannel:
        sender = MagicMock(name=f"{channel.value.lower()}_sender")
        sender.deliver.return_value = ChannelResult(channel=channel, status=DeliveryStatus.SENT)
        senders[channel] = sender
    return senders


@pytest.fixture
def pipeline(db, notification_cache, channel_senders, clock, test_settings):
    return NotificationPipeline(
        db,
        notification_cache,
        ChannelRegistry(channel_senders),
        clock=clock,
        settings=test_settings,
    )
