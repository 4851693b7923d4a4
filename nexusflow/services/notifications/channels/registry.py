from typing import Callable, Dict, Iterable, List, Optional

import httpx

from nexusflow.db.models import ChannelType, NotificationSettings
from nexusflow.services.notifications.channels.base import NotificationChannel
from nexusflow.services.notifications.channels.telegram import TelegramChannel
from nexusflow.services.notifications.channels.web_push import WebPushChannel
from nexusflow.services.notifications.channels.whatsapp import WhatsAppChannel
from nexusflow.utils.errors import ChannelConfigurationError
from nexusflow.utils.logging import get_logger

logger = get_logger()

ChannelFactory = Callable[..., NotificationChannel]


def _is_enabled(settings_row: Optional[NotificationSettings], attr: str, default: bool) -> bool:
    if settings_row is None:
        return default
    value = getattr(settings_row, attr)
    return default if value is None else bool(value)


def create_web_push_channel(settings_row, config, client, subscription_store) -> WebPushChannel:
    return WebPushChannel(
        subscription_store=subscription_store,
        vapid_private_key=config.vapid_private_key,
        vapid_subject=config.vapid_subject,
        ttl=config.webpush_ttl_seconds,
        send_fn=config.webpush_sender,
    )


def create_telegram_channel(settings_row, config, client, subscription_store) -> TelegramChannel:
    return TelegramChannel(
        client=client,
        bot_token=settings_row.telegram_bot_token,
        chat_id=settings_row.telegram_chat_id,
        api_url=config.telegram_api_url,
    )


def create_whatsapp_channel(settings_row, config, client, subscription_store) -> WhatsAppChannel:
    return WhatsAppChannel(
        client=client,
        api_key=settings_row.evolution_api_key,
        instance=settings_row.evolution_instance or config.evolution_instance_name,
        phone_number=settings_row.whatsapp_phone_number,
        api_url=config.evolution_api_url,
        send_delay_ms=config.whatsapp_send_delay_ms,
    )


class NotificationChannelRegistry:
    """Registry mapping channel types to the factories that build them for one user"""

    _factories: Dict[ChannelType, ChannelFactory] = {
        ChannelType.WEB_PUSH: create_web_push_channel,
        ChannelType.TELEGRAM: create_telegram_channel,
        ChannelType.WHATSAPP: create_whatsapp_channel,
    }

    # settings column -> enabled when the user has no settings row
    _enabled_flags: Dict[ChannelType, tuple] = {
        ChannelType.WEB_PUSH: ("webpush_enabled", True),
        ChannelType.TELEGRAM: ("telegram_enabled", False),
        ChannelType.WHATSAPP: ("whatsapp_enabled", False),
    }

    @classmethod
    def enabled_channel_types(
        cls, settings_row: Optional[NotificationSettings]
    ) -> List[ChannelType]:
        enabled = []
        for channel_type in cls._factories:
            attr, default = cls._enabled_flags.get(channel_type, (None, False))
            if attr and _is_enabled(settings_row, attr, default):
                enabled.append(channel_type)
        return enabled

    @classmethod
    def build_channels(
        cls,
        settings_row: Optional[NotificationSettings],
        config,
        client: httpx.AsyncClient,
        subscription_store,
        only: Optional[Iterable[ChannelType]] = None,
    ) -> List[NotificationChannel]:
        """
        Instantiate every channel the user enabled, restricted to `only` when
        given. A channel whose credentials are incomplete is logged and left
        out of this run.
        """
        allowed = set(only) if only is not None else None
        channels = []
        for channel_type in cls.enabled_channel_types(settings_row):
            if allowed is not None and channel_type not in allowed:
                continue
            factory = cls._factories[channel_type]
            try:
                channels.append(factory(settings_row, config, client, subscription_store))
            except ChannelConfigurationError as e:
                logger.warning(f"Channel {e.channel} disabled for this run: {e.message}")
        return channels

    @classmethod
    def register_channel(
        cls,
        channel_type: ChannelType,
        factory: ChannelFactory,
        enabled_flag: str,
        enabled_by_default: bool = False,
    ):
        """Register (or replace) the factory for a channel type"""
        cls._factories[channel_type] = factory
        cls._enabled_flags[channel_type] = (enabled_flag, enabled_by_default)
        logger.info(f"Registered factory for channel: {channel_type.value}")

    @classmethod
    def list_registered_channels(cls) -> list:
        return list(cls._factories.keys())

    @classmethod
    def is_registered(cls, channel_type: ChannelType) -> bool:
        return channel_type in cls._factories
