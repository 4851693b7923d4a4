import uuid
from datetime import date, datetime, timedelta
from typing import List, Optional, Union

from sqlalchemy import select, update, delete, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from nexusflow.db.models import (
    Board,
    Note,
    NotificationSettings,
    PushSubscription,
    RecurrenceType,
    Task,
    User,
)
from nexusflow.services.notifications.brief_composer import BriefKind
from nexusflow.services.notifications.watermark import WatermarkWriter
from nexusflow.utils.datetime_utils import to_naive_utc
from nexusflow.utils.errors import BusinessLogicError, DatabaseError
from nexusflow.utils.logging import get_logger

logger = get_logger()

UserId = Union[uuid.UUID, str]

BRIEF_WATERMARK_COLUMNS = {
    BriefKind.MORNING: "last_daily_morning_brief_sent_at",
    BriefKind.EVENING: "last_daily_evening_brief_sent_at",
    BriefKind.WEEKLY: "last_weekly_brief_sent_at",
}


def as_uuid(value: UserId) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class TaskStore:
    """Read access to tasks plus the watermark write"""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def list_candidate_tasks(self, user_id: UserId, day: date) -> List[Task]:
        """
        Tasks that may need attention on `day`: one-off tasks due that day or
        the day before or after (reminder windows cross midnight), every
        recurring task, and anything sitting on the overdue board.
        """
        result = self.db.execute(
            select(Task)
            .where(
                Task.user_id == as_uuid(user_id),
                or_(
                    Task.due_date.between(day - timedelta(days=1), day + timedelta(days=1)),
                    Task.recurrence_type != RecurrenceType.NONE,
                    Task.current_board == Board.OVERDUE,
                ),
            )
            .order_by(Task.time, Task.created_at)
        )
        return list(result.scalars().all())

    async def list_recent_tasks(self, user_id: UserId, since: datetime) -> List[Task]:
        """Tasks created or finished since `since`, plus overdue ones."""
        since = to_naive_utc(since)
        result = self.db.execute(
            select(Task).where(
                Task.user_id == as_uuid(user_id),
                or_(
                    Task.created_at >= since,
                    Task.completed_at >= since,
                    Task.last_successful_completion_date >= since,
                    Task.current_board == Board.OVERDUE,
                ),
            )
        )
        return list(result.scalars().all())

    async def update_watermark(self, task_id: uuid.UUID, instant: datetime, **values) -> bool:
        return await WatermarkWriter(self.db).commit(task_id, instant, **values)


class NoteStore:
    def __init__(self, db_session: Session):
        self.db = db_session

    async def list_reminder_notes(self, user_id: UserId, day: date) -> List[Note]:
        """Notes with a reminder set for `day` or the day before."""
        result = self.db.execute(
            select(Note)
            .where(
                Note.user_id == as_uuid(user_id),
                Note.reminder_date.between(day - timedelta(days=1), day),
                Note.reminder_time.is_not(None),
            )
            .order_by(Note.reminder_date, Note.reminder_time)
        )
        return list(result.scalars().all())

    async def get_note(self, user_id: UserId, note_id: uuid.UUID) -> Optional[Note]:
        result = self.db.execute(
            select(Note).where(Note.id == note_id, Note.user_id == as_uuid(user_id))
        )
        return result.scalar_one_or_none()

    async def mark_reminded(self, note_id: uuid.UUID, instant: datetime) -> bool:
        return await WatermarkWriter(self.db, Note).commit(note_id, instant)


class SettingsStore:
    def __init__(self, db_session: Session):
        self.db = db_session

    async def get_user_notification_settings(
        self, user_id: UserId
    ) -> Optional[NotificationSettings]:
        result = self.db.execute(
            select(NotificationSettings).where(
                NotificationSettings.user_id == as_uuid(user_id)
            )
        )
        return result.scalar_one_or_none()

    async def get_user_timezone(self, user_id: UserId) -> Optional[str]:
        result = self.db.execute(select(User.timezone).where(User.id == as_uuid(user_id)))
        return result.scalar_one_or_none()

    async def user_exists(self, user_id: UserId) -> bool:
        result = self.db.execute(select(User.id).where(User.id == as_uuid(user_id)))
        return result.scalar_one_or_none() is not None

    async def list_users_with_enabled_channels(self) -> List[uuid.UUID]:
        result = self.db.execute(
            select(NotificationSettings.user_id)
            .where(
                or_(
                    NotificationSettings.webpush_enabled.is_(True),
                    NotificationSettings.telegram_enabled.is_(True),
                    NotificationSettings.whatsapp_enabled.is_(True),
                )
            )
            .order_by(NotificationSettings.user_id)
        )
        return list(result.scalars().all())

    async def mark_brief_sent(self, user_id: UserId, kind: BriefKind, sent_at: datetime) -> None:
        column = BRIEF_WATERMARK_COLUMNS.get(kind)
        if column is None:
            raise BusinessLogicError(
                f"Brief kind '{kind.value}' has no sent watermark", "INVALID_BRIEF_KIND"
            )

        try:
            self.db.execute(
                update(NotificationSettings)
                .where(NotificationSettings.user_id == as_uuid(user_id))
                .values({column: to_naive_utc(sent_at)})
                .execution_options(synchronize_session="fetch")
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to stamp {kind.value} brief for user {user_id}: {str(e)}")
            raise DatabaseError(f"Failed to stamp {kind.value} brief for user {user_id}")


class SubscriptionStore:
    def __init__(self, db_session: Session):
        self.db = db_session

    async def list_subscriptions(self, user_id: UserId) -> List[PushSubscription]:
        result = self.db.execute(
            select(PushSubscription)
            .where(PushSubscription.user_id == as_uuid(user_id))
            .order_by(PushSubscription.created_at)
        )
        return list(result.scalars().all())

    async def delete_subscription(self, subscription_id: uuid.UUID) -> None:
        try:
            self.db.execute(
                delete(PushSubscription).where(PushSubscription.id == subscription_id)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to delete push subscription {subscription_id}: {str(e)}")
            raise DatabaseError(f"Failed to delete push subscription {subscription_id}")
