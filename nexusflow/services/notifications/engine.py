import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

import httpx
from sqlalchemy.orm import Session

from nexusflow.config.settings import Settings, settings as app_settings
from nexusflow.db.models import ChannelType, Note, NotificationSettings, Task
from nexusflow.schemas.notification_schemas import PassReport, UserPassSummary
from nexusflow.services.notifications.brief_composer import (
    BriefKind,
    collect_brief_stats,
    collect_weekly_stats,
    compose_brief,
    compose_weekly_brief,
)
from nexusflow.services.notifications.channels.registry import (
    NotificationChannelRegistry,
)
from nexusflow.services.notifications.composer import compose, compose_note_reminder
from nexusflow.services.notifications.dispatcher import ChannelDispatcher, DispatchReport
from nexusflow.services.notifications.stores import (
    NoteStore,
    SettingsStore,
    SubscriptionStore,
    TaskStore,
    UserId,
)
from nexusflow.services.scheduling.clock import UserClock
from nexusflow.services.scheduling.daily_target import resolve_daily_target
from nexusflow.services.scheduling.recurrence import Weekday
from nexusflow.services.scheduling.triggers import (
    due_occurrences,
    expired_unnotified,
    fired_triggers,
    has_fired,
    note_reminder_trigger,
)
from nexusflow.utils.context import set_user_id
from nexusflow.utils.datetime_utils import parse_time_of_day
from nexusflow.utils.errors import BusinessLogicError, NotFoundError
from nexusflow.utils.logging import get_logger

logger = get_logger()

ON_DEMAND_BRIEFS = (BriefKind.MORNING, BriefKind.EVENING, BriefKind.TEST_NOTIFICATION)
SCHEDULED_BRIEFS = (BriefKind.MORNING, BriefKind.EVENING, BriefKind.WEEKLY)
NOTE_CHANNELS = (ChannelType.WEB_PUSH,)


class EngineConfig:
    """
    Everything one notification pass needs, resolved up front.

    Built from application settings in production; tests construct it
    directly to pin the clock and swap the HTTP / web push transports.
    """

    def __init__(
        self,
        default_timezone: str = "America/Sao_Paulo",
        task_url: str = "/tasks",
        brief_url: str = "/dashboard",
        note_url: str = "/notes",
        telegram_api_url: str = "https://api.telegram.org",
        evolution_api_url: str = "https://api.evolution-api.com",
        evolution_instance_name: str = "",
        whatsapp_send_delay_ms: int = 1200,
        vapid_private_key: str = "",
        vapid_subject: str = "mailto:admin@example.com",
        webpush_ttl_seconds: int = 3600,
        http_timeout_seconds: float = 10.0,
        channel_send_timeout_seconds: float = 20.0,
        max_concurrency: int = 5,
        brief_grace_minutes: int = 30,
        pass_interval: timedelta = timedelta(minutes=5),
        now_fn: Optional[Callable[[], datetime]] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        webpush_sender: Optional[Callable] = None,
    ):
        self.default_timezone = default_timezone
        self.task_url = task_url
        self.brief_url = brief_url
        self.note_url = note_url
        self.telegram_api_url = telegram_api_url
        self.evolution_api_url = evolution_api_url
        self.evolution_instance_name = evolution_instance_name
        self.whatsapp_send_delay_ms = whatsapp_send_delay_ms
        self.vapid_private_key = vapid_private_key
        self.vapid_subject = vapid_subject
        self.webpush_ttl_seconds = webpush_ttl_seconds
        self.http_timeout_seconds = http_timeout_seconds
        self.channel_send_timeout_seconds = channel_send_timeout_seconds
        self.max_concurrency = max_concurrency
        self.brief_grace = timedelta(minutes=brief_grace_minutes)
        self.pass_interval = pass_interval
        self.now_fn = now_fn
        self.http_transport = http_transport
        self.webpush_sender = webpush_sender

    @classmethod
    def from_settings(cls, settings: Settings = app_settings, **overrides) -> "EngineConfig":
        options = dict(
            default_timezone=settings.DEFAULT_TIMEZONE,
            task_url=settings.TASK_DEEP_LINK,
            brief_url=settings.BRIEF_DEEP_LINK,
            note_url=settings.NOTE_DEEP_LINK,
            telegram_api_url=settings.TELEGRAM_API_URL,
            evolution_api_url=settings.EVOLUTION_API_URL,
            evolution_instance_name=settings.EVOLUTION_INSTANCE_NAME,
            whatsapp_send_delay_ms=settings.WHATSAPP_SEND_DELAY_MS,
            vapid_private_key=settings.VAPID_PRIVATE_KEY,
            vapid_subject=settings.VAPID_SUBJECT,
            webpush_ttl_seconds=settings.WEBPUSH_TTL_SECONDS,
            http_timeout_seconds=settings.HTTP_TIMEOUT_SECONDS,
            channel_send_timeout_seconds=settings.CHANNEL_SEND_TIMEOUT_SECONDS,
            max_concurrency=settings.NOTIFICATION_MAX_CONCURRENCY,
            brief_grace_minutes=settings.BRIEF_GRACE_MINUTES,
        )
        options.update(overrides)
        return cls(**options)

    def clock_for(self, timezone_name: Optional[str]) -> UserClock:
        return UserClock.for_timezone(timezone_name, self.default_timezone, self.now_fn)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.http_timeout_seconds, transport=self.http_transport
        )


def parse_brief_kind(time_of_day: str) -> BriefKind:
    try:
        kind = BriefKind(time_of_day)
    except ValueError:
        kind = None
    if kind not in ON_DEMAND_BRIEFS:
        raise BusinessLogicError(
            f"Invalid time_of_day '{time_of_day}', expected one of: "
            f"{', '.join(k.value for k in ON_DEMAND_BRIEFS)}",
            "INVALID_TIME_OF_DAY",
        )
    return kind


def _merge_failures(summary: UserPassSummary, report: DispatchReport) -> None:
    for channel, count in report.failures.items():
        summary.channel_failures[channel] = summary.channel_failures.get(channel, 0) + count


class NotificationEngine:
    """One pass over the users' tasks and briefs. Holds no state between passes."""

    def __init__(self, db_session: Session, config: EngineConfig):
        self.db = db_session
        self.config = config
        self.task_store = TaskStore(db_session)
        self.settings_store = SettingsStore(db_session)
        self.subscription_store = SubscriptionStore(db_session)
        self.note_store = NoteStore(db_session)

    async def _select_users(self, user_id: Optional[UserId]) -> List[UserId]:
        if user_id is None:
            return await self.settings_store.list_users_with_enabled_channels()
        if not await self.settings_store.user_exists(user_id):
            raise NotFoundError(f"User {user_id} not found", "USER_NOT_FOUND")
        return [user_id]

    async def _clock_for(self, user_id: UserId) -> UserClock:
        timezone_name = await self.settings_store.get_user_timezone(user_id)
        return self.config.clock_for(timezone_name)

    def _dispatcher(
        self,
        settings_row: Optional[NotificationSettings],
        client: httpx.AsyncClient,
        only: Optional[Tuple[ChannelType, ...]] = None,
    ) -> ChannelDispatcher:
        channels = NotificationChannelRegistry.build_channels(
            settings_row, self.config, client, self.subscription_store, only=only
        )
        return ChannelDispatcher(
            channels,
            max_concurrency=self.config.max_concurrency,
            timeout=self.config.channel_send_timeout_seconds,
        )

    async def run(
        self, user_id: Optional[UserId] = None, time_of_day: Optional[str] = None
    ) -> PassReport:
        brief_kind = parse_brief_kind(time_of_day) if time_of_day else None
        user_ids = await self._select_users(user_id)
        report = PassReport()

        async with self.config.http_client() as client:
            for current_user_id in user_ids:
                set_user_id(str(current_user_id))
                summary = UserPassSummary(user_id=str(current_user_id))
                try:
                    if brief_kind is not None:
                        await self._send_brief(current_user_id, brief_kind, client, summary)
                    else:
                        await self._process_user_tasks(current_user_id, client, summary)
                except Exception as e:
                    logger.error(f"Notification pass failed for user {current_user_id}: {str(e)}")
                    summary.errors.append(str(e))
                finally:
                    set_user_id(None)
                report.add(summary)

        logger.info(
            f"Notification pass finished: {report.users_processed} users, "
            f"{report.notifications_sent} notifications sent"
        )
        return report

    async def _process_user_tasks(
        self, user_id: UserId, client: httpx.AsyncClient, summary: UserPassSummary
    ) -> None:
        log = get_logger()
        clock = await self._clock_for(user_id)
        settings_row = await self.settings_store.get_user_notification_settings(user_id)
        dispatcher = self._dispatcher(settings_row, client)
        if not dispatcher.channels:
            log.info(f"User {user_id} has no usable notification channel, skipping")
            return

        now_local = clock.now()
        tasks = await self.task_store.list_candidate_tasks(user_id, now_local.date())
        log.debug(f"Evaluating {len(tasks)} candidate tasks for user {user_id}")

        for task in tasks:
            summary.tasks_evaluated += 1
            try:
                await self._process_task(task, user_id, clock, now_local, dispatcher, summary)
            except Exception as e:
                log.error(f"Error processing task {task.id} for user {user_id}: {str(e)}")
                summary.errors.append(f"{task.id}: {str(e)}")
                continue

        await self._process_user_notes(user_id, clock, now_local, settings_row, client, summary)

    async def _process_user_notes(
        self,
        user_id: UserId,
        clock: UserClock,
        now_local: datetime,
        settings_row: Optional[NotificationSettings],
        client: httpx.AsyncClient,
        summary: UserPassSummary,
    ) -> None:
        notes = await self.note_store.list_reminder_notes(user_id, now_local.date())
        if not notes:
            return

        dispatcher = self._dispatcher(settings_row, client, only=NOTE_CHANNELS)
        if not dispatcher.channels:
            logger.info(f"User {user_id} has no web push channel, skipping note reminders")
            return

        for note in notes:
            try:
                trigger = note_reminder_trigger(note, clock)
                if trigger is None or not has_fired(trigger, now_local, note.last_notified_at):
                    continue

                dispatch_report = await self._send_note_reminder(
                    note, user_id, dispatcher, summary
                )
                if dispatch_report.should_advance_watermark:
                    await self.note_store.mark_reminded(note.id, trigger.instant)
                else:
                    logger.warning(
                        f"Reminder for note {note.id} not delivered, "
                        f"will retry while its window is open"
                    )
            except Exception as e:
                logger.error(f"Error processing note {note.id} for user {user_id}: {str(e)}")
                summary.errors.append(f"{note.id}: {str(e)}")
                continue

    async def _send_note_reminder(
        self,
        note: Note,
        user_id: UserId,
        dispatcher: ChannelDispatcher,
        summary: UserPassSummary,
    ) -> DispatchReport:
        payload = compose_note_reminder(note, url=self.config.note_url)
        dispatch_report = await dispatcher.dispatch(str(user_id), payload)
        _merge_failures(summary, dispatch_report)
        if dispatch_report.delivered:
            summary.notifications_sent += 1
            summary.notes_reminded += 1
            logger.info(f"Reminder for note {note.id} sent to user {user_id}")
        return dispatch_report

    async def remind_note(self, user_id: UserId, note_id: uuid.UUID) -> PassReport:
        """
        Send the reminder of one note now, through web push only. A note
        without a reminder date and time is left alone. Does not stamp the
        note, so the scheduled reminder still goes out.
        """
        user_ids = await self._select_users(user_id)
        note = await self.note_store.get_note(user_id, note_id)
        if note is None:
            raise NotFoundError(f"Note {note_id} not found", "NOTE_NOT_FOUND")

        report = PassReport()
        summary = UserPassSummary(user_id=str(user_ids[0]))
        if not note.reminder_date or not note.reminder_time:
            logger.info(f"Note {note_id} has no reminder set, nothing to send")
            report.add(summary)
            return report

        settings_row = await self.settings_store.get_user_notification_settings(user_id)
        async with self.config.http_client() as client:
            dispatcher = self._dispatcher(settings_row, client, only=NOTE_CHANNELS)
            if dispatcher.channels:
                await self._send_note_reminder(note, user_id, dispatcher, summary)
            else:
                logger.info(f"User {user_id} has no web push channel, note {note_id} not sent")

        report.add(summary)
        return report

    async def _process_task(
        self,
        task: Task,
        user_id: UserId,
        clock: UserClock,
        now_local: datetime,
        dispatcher: ChannelDispatcher,
        summary: UserPassSummary,
    ) -> None:
        fired = []
        for occurrence in due_occurrences(task, clock, now_local):
            if occurrence.cycle_state.satisfied_for_cycle:
                continue
            for missed in expired_unnotified(
                occurrence.triggers, now_local, task.last_notified_at, self.config.pass_interval
            ):
                logger.info(
                    f"Reminder {missed.kind.value} for task {task.id} "
                    f"({occurrence.day.isoformat()}) expired without being sent"
                )
            for trigger in fired_triggers(
                occurrence.triggers, now_local, task.last_notified_at, occurrence.cycle_state
            ):
                fired.append((trigger, occurrence.cycle_state))

        if not fired:
            return

        daily_target = resolve_daily_target(task, now_local)
        advance_to: Optional[datetime] = None
        for trigger, cycle_state in sorted(fired, key=lambda item: item[0].instant):
            payload = compose(
                task,
                trigger,
                cycle_state,
                url=self.config.task_url,
                daily_target=daily_target,
            )
            dispatch_report = await dispatcher.dispatch(str(user_id), payload)
            _merge_failures(summary, dispatch_report)
            if dispatch_report.delivered:
                summary.notifications_sent += 1

            if dispatch_report.should_advance_watermark:
                if advance_to is None or trigger.instant > advance_to:
                    advance_to = trigger.instant
            else:
                logger.warning(
                    f"Reminder {trigger.kind.value} for task {task.id} not delivered, "
                    f"will retry while its window is open"
                )

        if advance_to is None:
            return

        # the recomputed target is stored with the watermark so it moves once a day
        target_values = {}
        if daily_target is not None and daily_target.recomputed:
            target_values = {
                "current_daily_target": daily_target.value,
                "current_daily_target_date": now_local.date(),
            }
        if await self.task_store.update_watermark(task.id, advance_to, **target_values):
            summary.watermarks_advanced += 1

    async def _compose_brief_payload(self, user_id: UserId, kind: BriefKind, clock: UserClock):
        if kind == BriefKind.TEST_NOTIFICATION:
            return compose_brief(kind, url=self.config.brief_url)

        now_local = clock.now()
        if kind == BriefKind.WEEKLY:
            tasks = await self.task_store.list_recent_tasks(
                user_id, now_local - timedelta(days=7)
            )
            return compose_weekly_brief(
                collect_weekly_stats(tasks, now_local), url=self.config.brief_url
            )

        tasks = await self.task_store.list_candidate_tasks(user_id, now_local.date())
        return compose_brief(
            kind, collect_brief_stats(tasks, now_local), url=self.config.brief_url
        )

    async def _send_brief(
        self,
        user_id: UserId,
        kind: BriefKind,
        client: httpx.AsyncClient,
        summary: UserPassSummary,
        clock: Optional[UserClock] = None,
        settings_row: Optional[NotificationSettings] = None,
    ) -> DispatchReport:
        clock = clock or await self._clock_for(user_id)
        if settings_row is None:
            settings_row = await self.settings_store.get_user_notification_settings(user_id)

        payload = await self._compose_brief_payload(user_id, kind, clock)
        dispatch_report = await self._dispatcher(settings_row, client).dispatch(
            str(user_id), payload
        )
        _merge_failures(summary, dispatch_report)
        if dispatch_report.delivered:
            summary.notifications_sent += 1
            summary.briefs_sent.append(kind.value)
            logger.info(f"{kind.value} brief sent to user {user_id}")
        return dispatch_report

    def brief_is_due(
        self, kind: BriefKind, settings_row: NotificationSettings, clock: UserClock
    ) -> bool:
        """
        A scheduled brief is due once its local time is reached, for
        `brief_grace` afterwards, and only if it was not already sent in the
        current cycle (today, or today's weekday for the weekly brief).
        """
        if kind == BriefKind.MORNING:
            scheduled_at = settings_row.daily_brief_morning_time
            last_sent_at = settings_row.last_daily_morning_brief_sent_at
        elif kind == BriefKind.EVENING:
            scheduled_at = settings_row.daily_brief_evening_time
            last_sent_at = settings_row.last_daily_evening_brief_sent_at
        else:
            scheduled_at = settings_row.weekly_brief_time
            last_sent_at = settings_row.last_weekly_brief_sent_at

        scheduled_time = parse_time_of_day(scheduled_at)
        if scheduled_time is None:
            return False

        now_local = clock.now()
        today = now_local.date()
        if kind == BriefKind.WEEKLY:
            brief_day = Weekday.from_name(settings_row.weekly_brief_day or "")
            if brief_day is None or Weekday.of(today) != brief_day:
                return False

        scheduled = clock.combine(today, scheduled_time)
        if not (scheduled <= now_local < scheduled + self.config.brief_grace):
            return False

        last_sent_local = clock.localize(last_sent_at)
        return last_sent_local is None or last_sent_local.date() < today

    async def run_scheduled_briefs(self) -> PassReport:
        report = PassReport()
        user_ids = await self.settings_store.list_users_with_enabled_channels()

        async with self.config.http_client() as client:
            for user_id in user_ids:
                set_user_id(str(user_id))
                summary = UserPassSummary(user_id=str(user_id))
                try:
                    settings_row = await self.settings_store.get_user_notification_settings(
                        user_id
                    )
                    clock = await self._clock_for(user_id)
                    for kind in SCHEDULED_BRIEFS:
                        if not self.brief_is_due(kind, settings_row, clock):
                            continue
                        dispatch_report = await self._send_brief(
                            user_id, kind, client, summary, clock, settings_row
                        )
                        if dispatch_report.results and dispatch_report.should_advance_watermark:
                            await self.settings_store.mark_brief_sent(
                                user_id, kind, clock.now()
                            )
                except Exception as e:
                    logger.error(f"Scheduled briefs failed for user {user_id}: {str(e)}")
                    summary.errors.append(str(e))
                finally:
                    set_user_id(None)
                report.add(summary)

        return report


async def run_notification_pass(
    session: Session,
    config: Optional[EngineConfig] = None,
    user_id: Optional[UserId] = None,
    time_of_day: Optional[str] = None,
) -> PassReport:
    """
    Evaluate every selected user's tasks once and send the reminders that
    newly fired. With `time_of_day` the on-demand brief of that kind is sent
    instead. Unknown `time_of_day` values raise `BusinessLogicError`.
    """
    engine = NotificationEngine(session, config or EngineConfig.from_settings())
    return await engine.run(user_id=user_id, time_of_day=time_of_day)


async def run_scheduled_briefs(
    session: Session, config: Optional[EngineConfig] = None
) -> PassReport:
    engine = NotificationEngine(session, config or EngineConfig.from_settings())
    return await engine.run_scheduled_briefs()


async def send_note_reminder(
    session: Session,
    config: Optional[EngineConfig],
    user_id: UserId,
    note_id: uuid.UUID,
) -> PassReport:
    """Send one note's reminder now. Unknown users or notes raise `NotFoundError`."""
    engine = NotificationEngine(session, config or EngineConfig.from_settings())
    return await engine.remind_note(user_id, note_id)
