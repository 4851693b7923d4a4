from typing import Any, List, Optional
from datetime import datetime, date
import uuid
from sqlalchemy import (
    String,
    Boolean,
    Integer,
    JSON,
    Text,
    ForeignKey,
    Enum,
    Index,
    func,
    DateTime,
    Date,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import enum


class Base(DeclarativeBase):
    pass


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# Enums
class RecurrenceType(enum.Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Board(enum.Enum):
    GENERAL = "general"
    TODAY_PRIORITY = "today_priority"
    TODAY_NO_PRIORITY = "today_no_priority"
    OVERDUE = "overdue"
    COMPLETED = "completed"
    RECURRENT = "recurrent"
    JOBS_WOE_TODAY = "jobs_woe_today"
    CLIENT_TASKS = "client_tasks"


class TaskType(enum.Enum):
    GENERAL = "general"
    READING = "reading"
    EXERCISE = "exercise"
    STUDY = "study"


class NoteType(enum.Enum):
    TEXT = "text"
    CHECKLIST = "checklist"


class ChannelType(enum.Enum):
    WEB_PUSH = "web_push"
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


# Models
class User(Base, AuditMixin):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(320), unique=True)
    timezone: Mapped[Optional[str]] = mapped_column(String(64))

    # Relationships
    tasks: Mapped[List["Task"]] = relationship(back_populates="user")
    notification_settings: Mapped[Optional["NotificationSettings"]] = relationship(
        back_populates="user", uselist=False
    )
    push_subscriptions: Mapped[List["PushSubscription"]] = relationship(
        back_populates="user"
    )
    notes: Mapped[List["Note"]] = relationship(back_populates="user")


class Task(Base, AuditMixin):
    """
    Subset of the tasks table the scheduling engine reads.

    `is_completed` is authoritative only for one-off tasks; recurring tasks
    are judged by `last_successful_completion_date` against their current
    cycle. All timestamps are naive UTC.
    """

    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    time: Mapped[Optional[str]] = mapped_column(String(8))
    recurrence_type: Mapped[RecurrenceType] = mapped_column(
        Enum(RecurrenceType, values_callable=_enum_values, native_enum=False),
        default=RecurrenceType.NONE,
        nullable=False,
    )
    recurrence_details: Mapped[Optional[str]] = mapped_column(String(255))
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_successful_completion_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime
    )
    last_notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_priority: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    current_board: Mapped[Board] = mapped_column(
        Enum(Board, values_callable=_enum_values, native_enum=False),
        default=Board.GENERAL,
        nullable=False,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Habit targets: `current_daily_target` is recomputed once per local day
    task_type: Mapped[TaskType] = mapped_column(
        Enum(TaskType, values_callable=_enum_values, native_enum=False),
        default=TaskType.GENERAL,
        nullable=False,
    )
    target_value: Mapped[Optional[int]] = mapped_column(Integer)
    current_daily_target: Mapped[Optional[int]] = mapped_column(Integer)
    current_daily_target_date: Mapped[Optional[date]] = mapped_column(Date)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="tasks")

    __table_args__ = (
        Index("IX_tasks_user_due_date", "user_id", "due_date"),
        Index("IX_tasks_user_recurrence", "user_id", "recurrence_type"),
    )


class NotificationSettings(Base, AuditMixin):
    __tablename__ = "notification_settings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    # Telegram
    telegram_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    telegram_bot_token: Mapped[Optional[str]] = mapped_column(String(255))
    telegram_chat_id: Mapped[Optional[str]] = mapped_column(String(64))

    # Web push (subscriptions live in push_subscriptions)
    webpush_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    # WhatsApp through the Evolution API gateway
    whatsapp_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    evolution_api_key: Mapped[Optional[str]] = mapped_column(String(255))
    evolution_instance: Mapped[Optional[str]] = mapped_column(String(100))
    whatsapp_phone_number: Mapped[Optional[str]] = mapped_column(String(32))

    # Briefs, HH:MM in the user's timezone
    daily_brief_morning_time: Mapped[Optional[str]] = mapped_column(String(8))
    daily_brief_evening_time: Mapped[Optional[str]] = mapped_column(String(8))
    weekly_brief_day: Mapped[Optional[str]] = mapped_column(String(16))
    weekly_brief_time: Mapped[Optional[str]] = mapped_column(String(8))
    last_daily_morning_brief_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime
    )
    last_daily_evening_brief_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime
    )
    last_weekly_brief_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="notification_settings")


class PushSubscription(Base):
    __tablename__ = "push_subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    p256dh: Mapped[str] = mapped_column(String(255), nullable=False)
    auth: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="push_subscriptions")

    __table_args__ = (Index("IX_push_subscriptions_user_id", "user_id"),)


class Note(Base, AuditMixin):
    """
    Notes with an optional reminder. Checklist notes keep their items in
    `content` as a list of `{"text": ..., "completed": ...}`.
    """

    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[Optional[str]] = mapped_column(String(255))
    type: Mapped[NoteType] = mapped_column(
        Enum(NoteType, values_callable=_enum_values, native_enum=False),
        default=NoteType.TEXT,
        nullable=False,
    )
    content: Mapped[Optional[Any]] = mapped_column(JSON)
    reminder_date: Mapped[Optional[date]] = mapped_column(Date)
    reminder_time: Mapped[Optional[str]] = mapped_column(String(8))
    last_notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="notes")

    __table_args__ = (Index("IX_notes_user_reminder_date", "user_id", "reminder_date"),)
