import httpx

from nexusflow.db.models import ChannelType
from nexusflow.schemas.notification_schemas import NotificationPayload
from nexusflow.services.notifications.markup import TELEGRAM_PARSE_MODE
from nexusflow.services.notifications.channels.base import (
    NotificationChannel,
    ChannelResult,
)
from nexusflow.utils.errors import ChannelConfigurationError, DeliveryError
from nexusflow.utils.logging import get_logger

logger = get_logger()


class TelegramChannel(NotificationChannel):
    """Sends through the Telegram Bot API `sendMessage` method."""

    channel_type = ChannelType.TELEGRAM

    def __init__(
        self,
        client: httpx.AsyncClient,
        bot_token: str,
        chat_id: str,
        api_url: str = "https://api.telegram.org",
    ):
        if not bot_token or not chat_id:
            raise ChannelConfigurationError(
                "Telegram bot token or chat id not configured", self.name
            )
        self.client = client
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_url = api_url.rstrip("/")

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/bot{self.bot_token}/sendMessage"

    async def _post_message(self, text: str) -> None:
        response = await self.client.post(
            self.endpoint,
            json={"chat_id": self.chat_id, "text": text, "parse_mode": TELEGRAM_PARSE_MODE},
        )
        if not response.is_success:
            try:
                description = response.json().get("description", response.text)
            except ValueError:
                description = response.text
            raise DeliveryError(
                f"Telegram API error {response.status_code}: {description}",
                self.name,
                # rejected requests (bad markup, blocked bot) fail the same way on retry
                retryable=response.status_code == 429 or response.status_code >= 500,
                status_code=response.status_code,
            )

    async def send(self, user_id: str, payload: NotificationPayload) -> ChannelResult:
        try:
            await self._post_message(payload.body)
        except DeliveryError as e:
            logger.warning(f"Telegram delivery failed for user {user_id}: {e.message}")
            return ChannelResult.failed(self.channel_type, e.message, retryable=e.retryable)
        except httpx.HTTPError as e:
            logger.warning(f"Telegram request error for user {user_id}: {str(e)}")
            return ChannelResult.failed(self.channel_type, f"Request error: {str(e)}")

        logger.info(f"Telegram notification sent to user {user_id}")
        return ChannelResult.sent(self.channel_type)
