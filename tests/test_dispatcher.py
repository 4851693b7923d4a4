import asyncio

import pytest

from nexusflow.db.models import ChannelType
from nexusflow.schemas.notification_schemas import NotificationPayload
from nexusflow.services.notifications.channels.base import (
    ChannelResult,
    DeliveryStatus,
    NotificationChannel,
)
from nexusflow.services.notifications.dispatcher import ChannelDispatcher, DispatchReport

PAYLOAD = NotificationPayload(title="Lembrete: X", body="*X*", url="/tasks")


class RecordingChannel(NotificationChannel):
    def __init__(self, channel_type: ChannelType, result: ChannelResult = None):
        self.channel_type = channel_type
        self.result = result or ChannelResult.sent(channel_type)
        self.calls = []

    async def send(self, user_id, payload):
        self.calls.append((user_id, payload))
        return self.result


class RaisingChannel(NotificationChannel):
    def __init__(self, channel_type: ChannelType):
        self.channel_type = channel_type

    async def send(self, user_id, payload):
        raise RuntimeError("bot blocked by user")


class SlowChannel(NotificationChannel):
    def __init__(self, channel_type: ChannelType, delay: float):
        self.channel_type = channel_type
        self.delay = delay

    async def send(self, user_id, payload):
        await asyncio.sleep(self.delay)
        return ChannelResult.sent(self.channel_type)


class TestChannelIndependence:
    """One channel's failure never affects the others."""

    @pytest.mark.asyncio
    async def test_exception_in_telegram_does_not_stop_web_push(self):
        web_push = RecordingChannel(ChannelType.WEB_PUSH)
        dispatcher = ChannelDispatcher([RaisingChannel(ChannelType.TELEGRAM), web_push])

        report = await dispatcher.dispatch("user-1", PAYLOAD)

        assert web_push.calls == [("user-1", PAYLOAD)]
        statuses = {result.channel: result.status for result in report.results}
        assert statuses == {
            ChannelType.TELEGRAM: DeliveryStatus.FAILED,
            ChannelType.WEB_PUSH: DeliveryStatus.SENT,
        }
        assert report.should_advance_watermark is True
        assert report.failures == {"telegram": 1}

    @pytest.mark.asyncio
    async def test_timeout_becomes_failed_result(self):
        dispatcher = ChannelDispatcher(
            [SlowChannel(ChannelType.WHATSAPP, delay=1.0), RecordingChannel(ChannelType.WEB_PUSH)],
            timeout=0.05,
        )

        report = await dispatcher.dispatch("user-1", PAYLOAD)

        whatsapp = next(r for r in report.results if r.channel == ChannelType.WHATSAPP)
        assert whatsapp.status == DeliveryStatus.FAILED
        assert "Timed out" in whatsapp.detail
        assert report.delivered is True

    @pytest.mark.asyncio
    async def test_channels_run_concurrently(self):
        channels = [SlowChannel(channel_type, delay=0.2) for channel_type in ChannelType]
        dispatcher = ChannelDispatcher(channels, max_concurrency=5, timeout=5)

        loop = asyncio.get_running_loop()
        started = loop.time()
        report = await dispatcher.dispatch("user-1", PAYLOAD)

        assert len(report.results) == 3
        assert loop.time() - started < 0.5


class TestWatermarkDecision:
    """When a dispatch may move the shared watermark."""

    def test_advances_when_any_channel_sent(self):
        report = DispatchReport(
            results=[
                ChannelResult.failed(ChannelType.TELEGRAM, "502"),
                ChannelResult.sent(ChannelType.WEB_PUSH),
            ]
        )
        assert report.should_advance_watermark is True

    def test_holds_when_only_retryable_failures(self):
        report = DispatchReport(
            results=[
                ChannelResult.failed(ChannelType.TELEGRAM, "502"),
                ChannelResult.skipped(ChannelType.WEB_PUSH, "No push subscriptions"),
            ]
        )
        assert report.should_advance_watermark is False

    def test_advances_after_permanent_failures(self):
        report = DispatchReport(
            results=[
                ChannelResult.failed(ChannelType.WEB_PUSH, "gone", retryable=False, pruned=1)
            ]
        )
        assert report.should_advance_watermark is True

    @pytest.mark.asyncio
    async def test_no_channels_dispatches_nothing(self):
        report = await ChannelDispatcher([]).dispatch("user-1", PAYLOAD)
        assert report.results == []
        assert report.delivered is False
