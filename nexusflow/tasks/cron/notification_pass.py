import asyncio

from nexusflow.celery import celery
from nexusflow.db.session import get_sync_session
from nexusflow.services.notifications.engine import (
    EngineConfig,
    run_notification_pass,
    run_scheduled_briefs,
)
from nexusflow.utils.context import set_request_id
from nexusflow.utils.logging import get_logger


@celery.task(bind=True, max_retries=3, default_retry_delay=30)
def notification_pass_task(self, request_id: str):
    """
    Periodic pass (every 5 minutes): send task reminders whose trigger
    window is open, then any morning/evening/weekly brief that came due.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    return asyncio.run(_async_notification_pass(request_id))


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def daily_brief_task(self, request_id: str, time_of_day: str):
    """
    Send the `time_of_day` brief (morning, evening or test_notification) to
    every user with an enabled channel, regardless of their brief schedule.
    """
    return asyncio.run(_async_daily_brief(request_id, time_of_day))


async def _async_notification_pass(request_id: str):
    set_request_id(request_id)
    logger = get_logger().bind(request_id=request_id)

    for db_session in get_sync_session():
        try:
            config = EngineConfig.from_settings()
            reminders = await run_notification_pass(db_session, config)
            briefs = await run_scheduled_briefs(db_session, config)

            logger.info(
                f"Notification pass completed: {reminders.notifications_sent} reminders, "
                f"{briefs.notifications_sent} briefs for {reminders.users_processed} users"
            )

            return {
                "success": True,
                "users_processed": reminders.users_processed,
                "reminders_sent": reminders.notifications_sent,
                "briefs_sent": briefs.notifications_sent,
                "has_failures": reminders.has_failures or briefs.has_failures,
                "request_id": request_id,
            }

        except Exception as e:
            logger.error(f"Notification pass task exception: {str(e)}")

            return {
                "success": False,
                "error": str(e),
                "request_id": request_id,
            }


async def _async_daily_brief(request_id: str, time_of_day: str):
    set_request_id(request_id)
    logger = get_logger().bind(request_id=request_id)

    for db_session in get_sync_session():
        try:
            report = await run_notification_pass(
                db_session, EngineConfig.from_settings(), time_of_day=time_of_day
            )

            logger.info(
                f"{time_of_day} brief completed: {report.notifications_sent} sent "
                f"to {report.users_processed} users"
            )

            return {
                "success": True,
                "time_of_day": time_of_day,
                "users_processed": report.users_processed,
                "briefs_sent": report.notifications_sent,
                "request_id": request_id,
            }

        except Exception as e:
            logger.error(f"{time_of_day} brief task exception: {str(e)}")

            return {
                "success": False,
                "error": str(e),
                "time_of_day": time_of_day,
                "request_id": request_id,
            }
