from .cron import *

__all__ = [
    # Scheduled/Cron Tasks
    "notification_pass_task",
    "daily_brief_task",
]
