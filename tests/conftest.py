import pytest
from unittest.mock import AsyncMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from wabot import gemini_service
from wabot.database import Base
from wabot import models  # noqa: F401  (registers sender_states)
from wabot.session_store import SessionStore
from wabot.whatsapp_service import BaileysBridgeClient


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(clock=clock)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def bridge():
    client = AsyncMock(spec=BaileysBridgeClient)
    client.on_whatsapp.side_effect = lambda jid: jid
    client.send_message.return_value = {"status": "sent"}
    return client


@pytest.fixture(autouse=True)
def _reset_gemini_limiter():
    gemini_service._call_timestamps.clear()
    yield
    gemini_service._call_timestamps.clear()
