import httpx

from nexusflow.db.models import ChannelType
from nexusflow.schemas.notification_schemas import NotificationPayload
from nexusflow.services.notifications.channels.base import (
    NotificationChannel,
    ChannelResult,
)
from nexusflow.services.notifications.markup import strip_markup
from nexusflow.utils.errors import ChannelConfigurationError, DeliveryError
from nexusflow.utils.logging import get_logger

logger = get_logger()


class WhatsAppChannel(NotificationChannel):
    """Sends plain text through an Evolution API instance."""

    channel_type = ChannelType.WHATSAPP

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        instance: str,
        phone_number: str,
        api_url: str = "https://api.evolution-api.com",
        send_delay_ms: int = 1200,
    ):
        if not api_key or not instance or not phone_number:
            raise ChannelConfigurationError(
                "Evolution API key, instance or WhatsApp number not configured",
                self.name,
            )
        self.client = client
        self.api_key = api_key
        self.instance = instance
        self.phone_number = phone_number
        self.api_url = api_url.rstrip("/")
        self.send_delay_ms = send_delay_ms

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/message/sendText/{self.instance}"

    def build_body(self, payload: NotificationPayload) -> dict:
        return {
            "number": self.phone_number,
            "options": {
                "delay": self.send_delay_ms,
                "presence": "composing",
                "linkPreview": False,
            },
            "textMessage": {"text": strip_markup(payload.body)},
        }

    async def send(self, user_id: str, payload: NotificationPayload) -> ChannelResult:
        try:
            response = await self.client.post(
                self.endpoint,
                headers={"apikey": self.api_key},
                json=self.build_body(payload),
            )
            if not response.is_success:
                raise DeliveryError(
                    f"Evolution API error {response.status_code}: {response.text}",
                    self.name,
                    retryable=True,
                    status_code=response.status_code,
                )
        except DeliveryError as e:
            logger.warning(f"WhatsApp delivery failed for user {user_id}: {e.message}")
            return ChannelResult.failed(self.channel_type, e.message, retryable=e.retryable)
        except httpx.HTTPError as e:
            logger.warning(f"WhatsApp request error for user {user_id}: {str(e)}")
            return ChannelResult.failed(self.channel_type, f"Request error: {str(e)}")

        logger.info(f"WhatsApp notification sent to user {user_id}")
        return ChannelResult.sent(self.channel_type)
