from .base import NotificationChannel, ChannelResult, DeliveryStatus
from .telegram import TelegramChannel
from .whatsapp import WhatsAppChannel
from .web_push import WebPushChannel
from .registry import NotificationChannelRegistry

__all__ = [
    "NotificationChannel",
    "ChannelResult",
    "DeliveryStatus",
    "TelegramChannel",
    "WhatsAppChannel",
    "WebPushChannel",
    "NotificationChannelRegistry",
]
