from datetime import timedelta

from nexusflow.db.models import RecurrenceType
from nexusflow.services.scheduling.clock import UserClock
from nexusflow.services.scheduling.cycle_resolver import CycleState, resolve_cycle
from nexusflow.services.scheduling.triggers import (
    TriggerKind,
    compute_triggers,
    due_occurrences,
    expired_unnotified,
    fired_triggers,
    has_fired,
    note_reminder_trigger,
)

from tests.factories import (
    SCENARIO_DAY,
    FakeClock,
    local_time,
    make_note_stub,
    make_task_stub,
    naive_utc,
)

NEXT_DAY = SCENARIO_DAY + timedelta(days=1)
DUE = CycleState(due_today=True, satisfied_for_cycle=False)


def _clock(now) -> UserClock:
    return UserClock("America/Sao_Paulo", FakeClock(now))


def _scenario_task(**overrides):
    values = {"due_date": SCENARIO_DAY, "time": "09:00"}
    values.update(overrides)
    return make_task_stub(**values)


class TestComputeTriggers:
    """Test trigger instants and windows."""

    def test_three_triggers_around_due_time(self):
        triggers = compute_triggers(_scenario_task(), DUE, _clock(local_time(8, 50)))

        assert [t.kind for t in triggers] == [
            TriggerKind.PRE_DUE_15M,
            TriggerKind.AT_DUE,
            TriggerKind.POST_DUE_60M,
        ]
        pre, at, post = triggers
        assert pre.instant == local_time(8, 45)
        assert pre.window_end == local_time(9, 0)
        assert at.instant == local_time(9, 0)
        assert at.window_end == local_time(9, 5)
        assert post.instant == local_time(10, 0)
        assert post.window_end == local_time(11, 0)

    def test_seconds_in_stored_time_are_accepted(self):
        triggers = compute_triggers(
            _scenario_task(time="09:00:00"), DUE, _clock(local_time(8, 50))
        )
        assert triggers[1].instant == local_time(9, 0)

    def test_no_triggers_without_time(self):
        assert compute_triggers(_scenario_task(time=None), DUE, _clock(local_time(8))) == []

    def test_no_triggers_for_malformed_time(self):
        assert compute_triggers(_scenario_task(time="nine"), DUE, _clock(local_time(8))) == []

    def test_no_triggers_when_not_due(self):
        not_due = CycleState(due_today=False, satisfied_for_cycle=False)
        assert compute_triggers(_scenario_task(), not_due, _clock(local_time(8))) == []

    def test_instants_use_user_timezone(self):
        clock = UserClock("Asia/Tokyo", FakeClock(local_time(8, 50)))
        task = make_task_stub(recurrence_type=RecurrenceType.DAILY, time="09:00")
        at_due = compute_triggers(task, DUE, clock)[1]

        assert at_due.instant.utcoffset() == timedelta(hours=9)
        assert at_due.instant.hour == 9


class TestScenarios:
    """End-to-end trigger selection scenarios."""

    def test_pre_due_fires_at_0850(self):
        task = _scenario_task()
        now = local_time(8, 50)
        state = resolve_cycle(task, now)
        fired = fired_triggers(compute_triggers(task, state, _clock(now)), now, None, state)

        assert [t.kind for t in fired] == [TriggerKind.PRE_DUE_15M]

    def test_at_due_fires_after_pre_due_was_notified(self):
        task = _scenario_task(last_notified_at=naive_utc(local_time(8, 45)))
        now = local_time(9, 2)
        state = resolve_cycle(task, now)
        fired = fired_triggers(
            compute_triggers(task, state, _clock(now)), now, task.last_notified_at, state
        )

        assert [t.kind for t in fired] == [TriggerKind.AT_DUE]

    def test_nothing_fires_between_windows(self):
        task = _scenario_task()
        now = local_time(9, 30)
        state = resolve_cycle(task, now)
        assert fired_triggers(compute_triggers(task, state, _clock(now)), now, None, state) == []

    def test_post_due_fires_for_unfinished_task(self):
        task = _scenario_task(last_notified_at=naive_utc(local_time(9, 0)))
        now = local_time(10, 20)
        state = resolve_cycle(task, now)
        fired = fired_triggers(
            compute_triggers(task, state, _clock(now)), now, task.last_notified_at, state
        )

        assert [t.kind for t in fired] == [TriggerKind.POST_DUE_60M]

    def test_post_due_skipped_for_satisfied_cycle(self):
        task = _scenario_task(time="09:00")
        now = local_time(10, 20)
        satisfied = CycleState(due_today=True, satisfied_for_cycle=True)
        triggers = compute_triggers(task, satisfied, _clock(now))

        assert fired_triggers(triggers, now, None, satisfied) == []


class TestIdempotency:
    """The watermark prevents a trigger from firing twice."""

    def test_has_fired_then_not_after_watermark_commit(self):
        now = local_time(8, 50)
        pre = compute_triggers(_scenario_task(), DUE, _clock(now))[0]

        assert has_fired(pre, now, None) is True
        watermark = naive_utc(pre.instant)
        assert has_fired(pre, now, watermark) is False

    def test_at_due_never_refires_while_watermark_holds(self):
        at_due = compute_triggers(_scenario_task(), DUE, _clock(local_time(9)))[1]
        watermark = naive_utc(at_due.instant)

        for minute in range(0, 5):
            assert has_fired(at_due, local_time(9, minute), watermark) is False

    def test_window_end_is_exclusive(self):
        at_due = compute_triggers(_scenario_task(), DUE, _clock(local_time(9)))[1]

        assert has_fired(at_due, local_time(9, 4), None) is True
        assert has_fired(at_due, local_time(9, 5), None) is False

    def test_naive_now_is_read_as_utc(self):
        pre = compute_triggers(_scenario_task(), DUE, _clock(local_time(8, 50)))[0]
        assert has_fired(pre, naive_utc(local_time(8, 50)), None) is True


class TestExpiredTriggers:
    """Triggers whose window closed without a notification."""

    def test_expired_within_lookback_is_reported_once(self):
        triggers = compute_triggers(_scenario_task(), DUE, _clock(local_time(9, 7)))
        lookback = timedelta(minutes=5)

        missed = expired_unnotified(triggers, local_time(9, 7), None, lookback)
        assert [t.kind for t in missed] == [TriggerKind.AT_DUE]

        # A later pass no longer reports it
        assert expired_unnotified(triggers, local_time(9, 12), None, lookback) == []

    def test_notified_triggers_are_not_reported(self):
        triggers = compute_triggers(_scenario_task(), DUE, _clock(local_time(9, 7)))
        watermark = naive_utc(local_time(9, 0))

        assert expired_unnotified(
            triggers, local_time(9, 7), watermark, timedelta(minutes=5)
        ) == []


class TestMidnightCrossing:
    """Occurrences on neighbouring days keep their windows across midnight."""

    def test_compute_triggers_for_another_day(self):
        triggers = compute_triggers(
            _scenario_task(), DUE, _clock(local_time(8)), day=NEXT_DAY
        )
        assert triggers[1].instant == local_time(9, day=NEXT_DAY)

    def test_late_task_post_due_after_midnight(self):
        task = _scenario_task(time="23:30", last_notified_at=naive_utc(local_time(23, 30)))
        now = local_time(0, 35, day=NEXT_DAY)

        occurrences = due_occurrences(task, _clock(now), now)

        assert [o.day for o in occurrences] == [SCENARIO_DAY]
        fired = fired_triggers(
            occurrences[0].triggers, now, task.last_notified_at, occurrences[0].cycle_state
        )
        assert [t.kind for t in fired] == [TriggerKind.POST_DUE_60M]
        assert fired[0].instant == local_time(0, 30, day=NEXT_DAY)

    def test_early_task_pre_due_the_evening_before(self):
        task = _scenario_task(due_date=NEXT_DAY, time="00:05")
        now = local_time(23, 50)

        occurrences = due_occurrences(task, _clock(now), now)

        assert [o.day for o in occurrences] == [NEXT_DAY]
        fired = fired_triggers(occurrences[0].triggers, now, None, occurrences[0].cycle_state)
        assert [t.kind for t in fired] == [TriggerKind.PRE_DUE_15M]

    def test_daily_task_has_three_occurrences(self):
        task = make_task_stub(recurrence_type=RecurrenceType.DAILY, time="23:30")
        now = local_time(0, 35, day=NEXT_DAY)

        occurrences = due_occurrences(task, _clock(now), now)

        assert [o.day for o in occurrences] == [
            SCENARIO_DAY,
            NEXT_DAY,
            NEXT_DAY + timedelta(days=1),
        ]
        watermark = naive_utc(local_time(23, 30))
        fired = fired_triggers(
            occurrences[0].triggers, now, watermark, occurrences[0].cycle_state
        )
        assert [t.kind for t in fired] == [TriggerKind.POST_DUE_60M]


class TestNoteReminderTrigger:
    def test_window_opens_at_reminder_time(self):
        note = make_note_stub(reminder_date=SCENARIO_DAY, reminder_time="09:00")
        trigger = note_reminder_trigger(note, _clock(local_time(8)))

        assert trigger.kind == TriggerKind.NOTE_REMINDER
        assert trigger.instant == local_time(9)
        assert trigger.window_end == local_time(9, 15)
        assert has_fired(trigger, local_time(9, 10), None) is True
        assert has_fired(trigger, local_time(9, 15), None) is False

    def test_no_trigger_without_reminder(self):
        assert note_reminder_trigger(make_note_stub(), _clock(local_time(8))) is None

    def test_no_trigger_for_malformed_time(self):
        note = make_note_stub(reminder_date=SCENARIO_DAY, reminder_time="nove")
        assert note_reminder_trigger(note, _clock(local_time(8))) is None
