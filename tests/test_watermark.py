from datetime import datetime

import pytest

from nexusflow.db.models import Note
from nexusflow.services.notifications.watermark import WatermarkWriter

from tests.factories import SCENARIO_DAY, local_time, naive_utc


class TestWatermarkWriter:
    """The watermark only ever moves forward."""

    @pytest.mark.asyncio
    async def test_sets_watermark_from_empty(self, db_session, make_user, make_task):
        task = make_task(make_user(), due_date=SCENARIO_DAY, time="09:00")

        advanced = await WatermarkWriter(db_session).commit(task.id, local_time(8, 45))

        assert advanced is True
        db_session.refresh(task)
        assert task.last_notified_at == naive_utc(local_time(8, 45))

    @pytest.mark.asyncio
    async def test_never_regresses(self, db_session, make_user, make_task):
        task = make_task(
            make_user(), due_date=SCENARIO_DAY, last_notified_at=naive_utc(local_time(9))
        )

        advanced = await WatermarkWriter(db_session).commit(task.id, local_time(8, 45))

        assert advanced is False
        db_session.refresh(task)
        assert task.last_notified_at == naive_utc(local_time(9))

    @pytest.mark.asyncio
    async def test_same_instant_is_a_no_op(self, db_session, make_user, make_task):
        task = make_task(
            make_user(), due_date=SCENARIO_DAY, last_notified_at=naive_utc(local_time(9))
        )
        assert await WatermarkWriter(db_session).commit(task.id, local_time(9)) is False

    @pytest.mark.asyncio
    async def test_stores_naive_utc(self, db_session, make_user, make_task):
        task = make_task(make_user(), due_date=SCENARIO_DAY)

        await WatermarkWriter(db_session).commit(task.id, local_time(10))

        db_session.refresh(task)
        # 10:00 in Sao Paulo is 13:00 UTC
        assert task.last_notified_at == datetime(2024, 6, 10, 13, 0)
        assert task.last_notified_at.tzinfo is None

    @pytest.mark.asyncio
    async def test_extra_values_only_written_with_the_watermark(
        self, db_session, make_user, make_task
    ):
        task = make_task(
            make_user(), due_date=SCENARIO_DAY, last_notified_at=naive_utc(local_time(9))
        )
        writer = WatermarkWriter(db_session)

        assert await writer.commit(task.id, local_time(8, 45), current_daily_target=20) is False
        db_session.refresh(task)
        assert task.current_daily_target is None

        assert await writer.commit(task.id, local_time(10), current_daily_target=20) is True
        db_session.refresh(task)
        assert task.current_daily_target == 20

    @pytest.mark.asyncio
    async def test_note_watermark(self, db_session, make_user, make_note):
        note = make_note(make_user(), reminder_date=SCENARIO_DAY, reminder_time="09:00")
        writer = WatermarkWriter(db_session, Note)

        assert await writer.commit(note.id, local_time(9)) is True
        assert await writer.commit(note.id, local_time(9)) is False
        db_session.refresh(note)
        assert note.last_notified_at == naive_utc(local_time(9))
