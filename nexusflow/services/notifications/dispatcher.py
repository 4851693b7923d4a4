import asyncio
from typing import Dict, List, Sequence

from pydantic import BaseModel, Field

from nexusflow.schemas.notification_schemas import NotificationPayload
from nexusflow.services.notifications.channels.base import (
    NotificationChannel,
    ChannelResult,
    DeliveryStatus,
)
from nexusflow.utils.logging import get_logger

logger = get_logger()


class DispatchReport(BaseModel):
    results: List[ChannelResult] = Field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return any(result.status == DeliveryStatus.SENT for result in self.results)

    @property
    def should_advance_watermark(self) -> bool:
        """
        Advance when something was delivered, or when nothing failed in a way
        worth retrying. One watermark is shared by all channels.
        """
        if self.delivered:
            return True
        return not any(result.is_retryable_failure for result in self.results)

    @property
    def failures(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for result in self.results:
            if result.status == DeliveryStatus.FAILED:
                key = result.channel.value
                counts[key] = counts.get(key, 0) + 1
        return counts


class ChannelDispatcher:
    """Fans one payload out to all of a user's channels concurrently"""

    def __init__(
        self,
        channels: Sequence[NotificationChannel],
        max_concurrency: int = 5,
        timeout: float = 20.0,
    ):
        self.channels = list(channels)
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _send_one(
        self, channel: NotificationChannel, user_id: str, payload: NotificationPayload
    ) -> ChannelResult:
        async with self._semaphore:
            try:
                return await asyncio.wait_for(
                    channel.send(user_id, payload), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Channel {channel.name} timed out after {self.timeout}s for user {user_id}"
                )
                return ChannelResult.failed(
                    channel.channel_type, f"Timed out after {self.timeout}s"
                )
            except Exception as e:
                logger.error(f"Channel {channel.name} raised for user {user_id}: {str(e)}")
                return ChannelResult.failed(channel.channel_type, str(e))

    async def dispatch(self, user_id: str, payload: NotificationPayload) -> DispatchReport:
        if not self.channels:
            logger.info(f"No channels available for user {user_id}, nothing dispatched")
            return DispatchReport()

        results = await asyncio.gather(
            *(self._send_one(channel, user_id, payload) for channel in self.channels)
        )
        return DispatchReport(results=list(results))
