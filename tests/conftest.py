import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import uuid
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from nexusflow.db.models import (
    Base,
    Board,
    Note,
    NoteType,
    NotificationSettings,
    PushSubscription,
    RecurrenceType,
    Task,
    User,
)
from nexusflow.services.notifications.engine import EngineConfig

from tests.factories import (
    FakeClock,
    FakeMessagingApi,
    FakeWebPushSender,
    local_time,
)


@pytest.fixture
def test_engine():
    """In-memory SQLite engine shared across threads for one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(test_engine) -> Session:
    """Create a database session for each test."""
    session_maker = sessionmaker(bind=test_engine, class_=Session, expire_on_commit=False)
    session = session_maker()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(local_time(8, 50))


@pytest.fixture
def messaging_api() -> FakeMessagingApi:
    return FakeMessagingApi()


@pytest.fixture
def webpush_sender() -> FakeWebPushSender:
    return FakeWebPushSender()


@pytest.fixture
def engine_config(fake_clock, messaging_api, webpush_sender) -> EngineConfig:
    return EngineConfig(
        default_timezone="America/Sao_Paulo",
        vapid_private_key="test-vapid-private-key",
        vapid_subject="admin@nexusflow.test",
        evolution_api_url="https://evolution.test",
        telegram_api_url="https://telegram.test",
        channel_send_timeout_seconds=2.0,
        now_fn=fake_clock,
        http_transport=messaging_api.transport,
        webpush_sender=webpush_sender,
    )


# Test data factories
@pytest.fixture
def make_user(db_session: Session):
    def _make_user(timezone_name: Optional[str] = "America/Sao_Paulo", **kwargs) -> User:
        user = User(
            id=uuid.uuid4(),
            email=kwargs.pop("email", f"{uuid.uuid4().hex[:8]}@nexusflow.test"),
            timezone=timezone_name,
            **kwargs,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_settings(db_session: Session):
    def _make_settings(user: User, **kwargs) -> NotificationSettings:
        values = {
            "webpush_enabled": True,
            "telegram_enabled": False,
            "whatsapp_enabled": False,
        }
        values.update(kwargs)
        settings_row = NotificationSettings(id=uuid.uuid4(), user_id=user.id, **values)
        db_session.add(settings_row)
        db_session.commit()
        return settings_row

    return _make_settings


@pytest.fixture
def make_task(db_session: Session):
    def _make_task(user: User, **kwargs) -> Task:
        values = {
            "title": "Enviar relatório",
            "recurrence_type": RecurrenceType.NONE,
            "is_completed": False,
            "is_priority": False,
            "current_board": Board.GENERAL,
        }
        values.update(kwargs)
        task = Task(id=uuid.uuid4(), user_id=user.id, **values)
        db_session.add(task)
        db_session.commit()
        return task

    return _make_task


@pytest.fixture
def make_subscription(db_session: Session):
    def _make_subscription(user: User, endpoint: str) -> PushSubscription:
        subscription = PushSubscription(
            id=uuid.uuid4(),
            user_id=user.id,
            endpoint=endpoint,
            p256dh="BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM",
            auth="tBHItJI5svbpez7KI4CCXg",
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription

    return _make_subscription


@pytest.fixture
def make_note(db_session: Session):
    def _make_note(user: User, **kwargs) -> Note:
        values = {
            "title": "Lista de compras",
            "type": NoteType.TEXT,
            "content": "Comprar pão e leite",
        }
        values.update(kwargs)
        note = Note(id=uuid.uuid4(), user_id=user.id, **values)
        db_session.add(note)
        db_session.commit()
        return note

    return _make_note
