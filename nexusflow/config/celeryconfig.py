from celery.schedules import crontab
from .settings import settings

# Basic Celery Configuration
broker_url = f"redis://:{settings.REDIS_PASSWORD}@{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"
result_backend = f"redis://:{settings.REDIS_PASSWORD}@{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"

# Task Discovery
include = ["nexusflow.tasks"]

# Timezone Configuration. Users' own timezones are applied by the engine.
timezone = "UTC"
enable_utc = True

# Task Result Configuration
result_expires = 3600

# Task Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

# Task Execution Configuration
task_track_started = True
task_time_limit = 4 * 60  # a pass must end before the next one starts
task_soft_time_limit = 3 * 60

# Worker Configuration
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Task Retry Configuration
task_acks_late = True
task_reject_on_worker_lost = True
task_default_retry_delay = 30
task_max_retries = 3

# Exponential Backoff Settings
task_retry_backoff = True
task_retry_backoff_max = 120
task_retry_jitter = False

beat_schedule = {
    # Reminders and scheduled briefs - every 5 minutes
    "notification-pass": {
        "task": "nexusflow.tasks.cron.notification_pass.notification_pass_task",
        "schedule": crontab(minute="*/5"),
        "args": ("notification_pass_cron",),
    },
}

# Default Queue
task_default_queue = "nexusflow"

# Beat Scheduler Configuration
beat_schedule_filename = "tmp/celerybeat-schedule"
