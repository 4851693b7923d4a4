import enum
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel

from nexusflow.db.models import ChannelType
from nexusflow.schemas.notification_schemas import NotificationPayload


class DeliveryStatus(str, enum.Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


class ChannelResult(BaseModel):
    channel: ChannelType
    status: DeliveryStatus
    retryable: bool = False
    detail: Optional[str] = None
    delivered: int = 0
    pruned: int = 0

    @classmethod
    def sent(cls, channel: ChannelType, delivered: int = 1, **kwargs) -> "ChannelResult":
        return cls(channel=channel, status=DeliveryStatus.SENT, delivered=delivered, **kwargs)

    @classmethod
    def skipped(cls, channel: ChannelType, detail: str, **kwargs) -> "ChannelResult":
        return cls(channel=channel, status=DeliveryStatus.SKIPPED, detail=detail, **kwargs)

    @classmethod
    def failed(
        cls, channel: ChannelType, detail: str, retryable: bool = True, **kwargs
    ) -> "ChannelResult":
        return cls(
            channel=channel,
            status=DeliveryStatus.FAILED,
            detail=detail,
            retryable=retryable,
            **kwargs,
        )

    @property
    def is_retryable_failure(self) -> bool:
        return self.status == DeliveryStatus.FAILED and self.retryable


class NotificationChannel(ABC):
    """One notification transport configured for one user."""

    channel_type: ChannelType

    @property
    def name(self) -> str:
        return self.channel_type.value

    @abstractmethod
    async def send(self, user_id: str, payload: NotificationPayload) -> ChannelResult:
        """
        Deliver `payload`. Implementations report delivery problems in the
        returned result instead of raising.
        """
        pass
