from .engine import (
    EngineConfig,
    NotificationEngine,
    run_notification_pass,
    run_scheduled_briefs,
    send_note_reminder,
)
from .dispatcher import ChannelDispatcher, DispatchReport
from .watermark import WatermarkWriter
from .stores import NoteStore, TaskStore, SettingsStore, SubscriptionStore

__all__ = [
    "EngineConfig",
    "NotificationEngine",
    "run_notification_pass",
    "run_scheduled_briefs",
    "send_note_reminder",
    "ChannelDispatcher",
    "DispatchReport",
    "WatermarkWriter",
    "NoteStore",
    "TaskStore",
    "SettingsStore",
    "SubscriptionStore",
]
