from datetime import datetime, date, time, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict

from nexusflow.db.models import RecurrenceType
from nexusflow.services.scheduling.recurrence import (
    Weekday,
    parse_weekly_details,
    parse_monthly_details,
    most_recent_occurrence,
)
from nexusflow.utils.datetime_utils import to_utc
from nexusflow.utils.logging import get_logger

logger = get_logger()


class CycleState(BaseModel):
    """Whether a task is due today and whether the current cycle is already done."""

    model_config = ConfigDict(frozen=True)

    due_today: bool
    satisfied_for_cycle: bool
    cycle_start: Optional[datetime] = None


def _start_of_day(day: date, now_local: datetime) -> datetime:
    return datetime.combine(day, time.min, tzinfo=now_local.tzinfo)


def _completed_since(task, cycle_start: datetime) -> bool:
    completed_at = task.last_successful_completion_date
    if completed_at is None:
        return False
    return to_utc(completed_at) >= cycle_start


def _recurrence_type(task) -> Optional[RecurrenceType]:
    value = task.recurrence_type
    if isinstance(value, RecurrenceType):
        return value
    try:
        return RecurrenceType(value or RecurrenceType.NONE.value)
    except ValueError:
        logger.warning(
            f"Task {task.id} has unknown recurrence type '{value}', treating as not due"
        )
        return None


def resolve_cycle(task, now_local: datetime, day: Optional[date] = None) -> CycleState:
    """
    Resolve the recurrence cycle of `task` at `now_local`, or of its
    occurrence on `day` when given (the neighbouring days of a trigger
    window that crosses midnight).

    `now_local` must be an aware datetime in the user's timezone; calendar
    boundaries (day, week, month) are taken in that zone.

    - none: due when `due_date` is today, satisfied by `is_completed`.
    - daily: always due, satisfied by a completion since local midnight.
    - weekly: due on the listed weekdays, satisfied by a completion since the
      start of the most recent listed weekday (on or before today).
    - monthly: due on the stored day of month, satisfied by a completion in
      the current calendar month.

    Malformed weekly/monthly details never make a task due.
    """
    today = day or now_local.date()
    recurrence_type = _recurrence_type(task)

    if recurrence_type is None:
        return CycleState(due_today=False, satisfied_for_cycle=False)

    if recurrence_type == RecurrenceType.NONE:
        return CycleState(
            due_today=task.due_date is not None and task.due_date == today,
            satisfied_for_cycle=bool(task.is_completed),
        )

    if recurrence_type == RecurrenceType.DAILY:
        cycle_start = _start_of_day(today, now_local)
        return CycleState(
            due_today=True,
            satisfied_for_cycle=_completed_since(task, cycle_start),
            cycle_start=cycle_start,
        )

    if recurrence_type == RecurrenceType.WEEKLY:
        weekdays = parse_weekly_details(task.recurrence_details)
        if weekdays is None:
            logger.warning(
                f"Task {task.id} has malformed weekly recurrence details "
                f"'{task.recurrence_details}', treating as not due"
            )
            # Calendar week (Sunday start) when no weekday can anchor the cycle
            days_since_sunday = (today.weekday() + 1) % 7
            cycle_start = _start_of_day(today - timedelta(days=days_since_sunday), now_local)
            return CycleState(
                due_today=False,
                satisfied_for_cycle=_completed_since(task, cycle_start),
                cycle_start=cycle_start,
            )

        cycle_start = _start_of_day(most_recent_occurrence(weekdays, today), now_local)
        return CycleState(
            due_today=Weekday.of(today) in weekdays,
            satisfied_for_cycle=_completed_since(task, cycle_start),
            cycle_start=cycle_start,
        )

    # RecurrenceType.MONTHLY
    cycle_start = _start_of_day(today.replace(day=1), now_local)
    day_of_month = parse_monthly_details(task.recurrence_details)
    if day_of_month is None:
        logger.warning(
            f"Task {task.id} has malformed monthly recurrence details "
            f"'{task.recurrence_details}', treating as not due"
        )

    return CycleState(
        due_today=day_of_month is not None and today.day == day_of_month,
        satisfied_for_cycle=_completed_since(task, cycle_start),
        cycle_start=cycle_start,
    )
