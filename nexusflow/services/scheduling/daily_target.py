from datetime import datetime, timedelta
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict

from nexusflow.db.models import TaskType
from nexusflow.utils.datetime_utils import to_utc

TARGET_UNITS: Dict[TaskType, str] = {
    TaskType.READING: "páginas",
    TaskType.EXERCISE: "minutos/reps",
    TaskType.STUDY: "minutos de estudo",
}


class DailyTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: int
    unit: str
    # False when the stored target already belongs to today
    recomputed: bool


def _task_type(task) -> Optional[TaskType]:
    value = task.task_type
    if value is None or isinstance(value, TaskType):
        return value
    try:
        return TaskType(value)
    except ValueError:
        return None


def completed_on(task, day, tzinfo) -> bool:
    completed_at = task.last_successful_completion_date
    if completed_at is None:
        return False
    return to_utc(completed_at).astimezone(tzinfo).date() == day


def resolve_daily_target(task, now_local: datetime) -> Optional[DailyTarget]:
    """
    Today's target for a habit task, or None for general tasks and tasks
    without a `target_value`.

    The target resets to `target_value` after a day whose occurrence was
    completed and doubles after a missed one. It is recomputed at most once
    per local day: a stored target dated today is returned unchanged.
    """
    task_type = _task_type(task)
    if task_type is None or task_type == TaskType.GENERAL or task.target_value is None:
        return None

    unit = TARGET_UNITS.get(task_type, "")
    today = now_local.date()

    if task.current_daily_target is not None and task.current_daily_target_date == today:
        return DailyTarget(value=task.current_daily_target, unit=unit, recomputed=False)

    yesterday = today - timedelta(days=1)
    if task.current_daily_target is None or completed_on(task, yesterday, now_local.tzinfo):
        value = task.target_value
    else:
        value = task.current_daily_target * 2

    return DailyTarget(value=value, unit=unit, recomputed=True)
