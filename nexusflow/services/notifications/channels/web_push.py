import json
from typing import Callable, Dict, Optional

from pywebpush import webpush, WebPushException
from starlette.concurrency import run_in_threadpool

from nexusflow.db.models import ChannelType, PushSubscription
from nexusflow.schemas.notification_schemas import NotificationPayload
from nexusflow.services.notifications.channels.base import (
    NotificationChannel,
    ChannelResult,
)
from nexusflow.services.notifications.markup import strip_markup
from nexusflow.utils.errors import (
    ChannelConfigurationError,
    DeliveryError,
    SubscriptionGoneError,
)
from nexusflow.utils.logging import get_logger

logger = get_logger()

GONE_STATUS_CODES = (404, 410)


class WebPushChannel(NotificationChannel):
    """
    Delivers to every browser subscription a user registered.

    Each subscription is tried independently. Subscriptions the push
    service reports as gone (404/410) are deleted through the subscription
    store; any other failure leaves them in place.
    """

    channel_type = ChannelType.WEB_PUSH

    def __init__(
        self,
        subscription_store,
        vapid_private_key: str,
        vapid_subject: str,
        ttl: int = 3600,
        send_fn: Optional[Callable] = None,
    ):
        if not vapid_private_key:
            raise ChannelConfigurationError("VAPID private key not configured", self.name)
        self.subscription_store = subscription_store
        self.vapid_private_key = vapid_private_key
        self.vapid_claims = {"sub": self._normalize_subject(vapid_subject)}
        self.ttl = ttl
        self.send_fn = send_fn or webpush

    @staticmethod
    def _normalize_subject(subject: str) -> str:
        if subject.startswith(("mailto:", "https://")):
            return subject
        return f"mailto:{subject}"

    @staticmethod
    def build_data(payload: NotificationPayload) -> str:
        return json.dumps(
            {
                "title": payload.title,
                "body": strip_markup(payload.body),
                "url": payload.url,
            }
        )

    def _push(self, subscription: PushSubscription, data: str) -> None:
        try:
            self.send_fn(
                subscription_info={
                    "endpoint": subscription.endpoint,
                    "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
                },
                data=data,
                vapid_private_key=self.vapid_private_key,
                vapid_claims=dict(self.vapid_claims),
                ttl=self.ttl,
                headers={"Urgency": "high"},
            )
        except WebPushException as e:
            status_code = e.response.status_code if e.response is not None else None
            if status_code in GONE_STATUS_CODES:
                raise SubscriptionGoneError(str(e), status_code=status_code)
            raise DeliveryError(str(e), self.name, retryable=True, status_code=status_code)

    async def send(self, user_id: str, payload: NotificationPayload) -> ChannelResult:
        subscriptions = await self.subscription_store.list_subscriptions(user_id)
        if not subscriptions:
            return ChannelResult.skipped(self.channel_type, "No push subscriptions")

        data = self.build_data(payload)
        delivered = 0
        pruned = 0
        failures: Dict[str, bool] = {}

        for subscription in subscriptions:
            try:
                await run_in_threadpool(self._push, subscription, data)
                delivered += 1
            except SubscriptionGoneError as e:
                logger.warning(
                    f"Deleting push subscription {subscription.id} for user {user_id}: "
                    f"push service answered {e.status_code}"
                )
                await self.subscription_store.delete_subscription(subscription.id)
                pruned += 1
                failures[str(subscription.id)] = False
            except DeliveryError as e:
                logger.warning(
                    f"Web push to subscription {subscription.id} failed: {e.message}"
                )
                failures[str(subscription.id)] = True
            except Exception as e:
                logger.error(
                    f"Unexpected web push error for subscription {subscription.id}: {str(e)}"
                )
                failures[str(subscription.id)] = True

        if delivered:
            logger.info(
                f"Web push delivered to {delivered}/{len(subscriptions)} subscriptions "
                f"for user {user_id}"
            )
            return ChannelResult.sent(self.channel_type, delivered=delivered, pruned=pruned)

        return ChannelResult.failed(
            self.channel_type,
            f"No subscription accepted the push ({len(failures)} failed)",
            retryable=any(failures.values()),
            pruned=pruned,
        )
