import enum
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from nexusflow.services.scheduling.clock import UserClock
from nexusflow.services.scheduling.cycle_resolver import CycleState, resolve_cycle
from nexusflow.utils.datetime_utils import parse_time_of_day, to_utc
from nexusflow.utils.logging import get_logger

logger = get_logger()


class TriggerKind(str, enum.Enum):
    PRE_DUE_15M = "pre_due_15m"
    AT_DUE = "at_due"
    POST_DUE_60M = "post_due_60m"
    NOTE_REMINDER = "note_reminder"


# kind -> (offset from the due instant, how long the trigger stays eligible)
TRIGGER_WINDOWS: Dict[TriggerKind, Tuple[timedelta, timedelta]] = {
    TriggerKind.PRE_DUE_15M: (timedelta(minutes=-15), timedelta(minutes=15)),
    TriggerKind.AT_DUE: (timedelta(0), timedelta(minutes=5)),
    TriggerKind.POST_DUE_60M: (timedelta(minutes=60), timedelta(minutes=60)),
}

NOTE_REMINDER_WINDOW = timedelta(minutes=15)


class Trigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: TriggerKind
    instant: datetime
    window_end: datetime


def compute_triggers(
    task, cycle_state: CycleState, clock: UserClock, day: Optional[date] = None
) -> List[Trigger]:
    """
    Reminder triggers for the occurrence of `task` on `day` (default: today),
    ordered by instant.

    Empty when that occurrence is not due or the task has no usable `time`.
    """
    if not cycle_state.due_today or not task.time:
        return []

    time_of_day = parse_time_of_day(task.time)
    if time_of_day is None:
        logger.warning(f"Task {task.id} has malformed time '{task.time}', skipping reminders")
        return []

    at_due = clock.combine(day or clock.today(), time_of_day)

    triggers = []
    for kind, (offset, window) in TRIGGER_WINDOWS.items():
        instant = at_due + offset
        triggers.append(Trigger(kind=kind, instant=instant, window_end=instant + window))
    return sorted(triggers, key=lambda trigger: trigger.instant)


class Occurrence(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: date
    cycle_state: CycleState
    triggers: List[Trigger]


def due_occurrences(task, clock: UserClock, now_local: datetime) -> List[Occurrence]:
    """
    Due occurrences of `task` on the previous, current and next local day.

    A late-evening task keeps its post-due window open past midnight and an
    early-morning task opens its pre-due window the evening before, so the
    neighbouring days can hold the trigger that is open right now.
    """
    today = now_local.date()
    occurrences = []
    for offset in (-1, 0, 1):
        day = today + timedelta(days=offset)
        cycle_state = resolve_cycle(task, now_local, day=day)
        if not cycle_state.due_today:
            continue
        occurrences.append(
            Occurrence(
                day=day,
                cycle_state=cycle_state,
                triggers=compute_triggers(task, cycle_state, clock, day=day),
            )
        )
    return occurrences


def note_reminder_trigger(note, clock: UserClock) -> Optional[Trigger]:
    """The single reminder of a note, or None when no reminder is set."""
    if not note.reminder_date or not note.reminder_time:
        return None

    time_of_day = parse_time_of_day(note.reminder_time)
    if time_of_day is None:
        logger.warning(
            f"Note {note.id} has malformed reminder time '{note.reminder_time}', skipping"
        )
        return None

    instant = clock.combine(note.reminder_date, time_of_day)
    return Trigger(
        kind=TriggerKind.NOTE_REMINDER,
        instant=instant,
        window_end=instant + NOTE_REMINDER_WINDOW,
    )


def has_fired(
    trigger: Trigger, now: datetime, last_notified_at: Optional[datetime]
) -> bool:
    """
    True when `now` is inside the trigger's window and the watermark has not
    yet reached the trigger instant. Naive datetimes are read as UTC.
    """
    now = to_utc(now)
    if not (to_utc(trigger.instant) <= now < to_utc(trigger.window_end)):
        return False
    return last_notified_at is None or to_utc(last_notified_at) < to_utc(trigger.instant)


def fired_triggers(
    triggers: Iterable[Trigger],
    now: datetime,
    last_notified_at: Optional[datetime],
    cycle_state: CycleState,
) -> List[Trigger]:
    """Triggers that newly fired; post-due reminders only for unfinished cycles."""
    fired = []
    for trigger in triggers:
        if trigger.kind == TriggerKind.POST_DUE_60M and cycle_state.satisfied_for_cycle:
            continue
        if has_fired(trigger, now, last_notified_at):
            fired.append(trigger)
    return fired


def expired_unnotified(
    triggers: Iterable[Trigger],
    now: datetime,
    last_notified_at: Optional[datetime],
    lookback: timedelta,
) -> List[Trigger]:
    """
    Triggers whose window closed within the last `lookback` without the
    watermark ever reaching them, i.e. reminders that will never be sent.
    """
    now = to_utc(now)
    return [
        trigger
        for trigger in triggers
        if now - lookback < to_utc(trigger.window_end) <= now
        and (last_notified_at is None or to_utc(last_notified_at) < to_utc(trigger.instant))
    ]
