from .notification_pass import notification_pass_task, daily_brief_task

__all__ = [
    "notification_pass_task",
    "daily_brief_task",
]
