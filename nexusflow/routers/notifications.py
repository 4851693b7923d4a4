import uuid
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Request, Body
from sqlalchemy.orm import Session

from nexusflow.db.session import get_sync_session
from nexusflow.middlewares.auth_middleware import get_current_user, AuthState
from nexusflow.schemas.notification_schemas import PassReport, RunNotificationPassRequest
from nexusflow.services.notifications.brief_composer import BriefKind
from nexusflow.services.notifications.engine import (
    EngineConfig,
    run_notification_pass,
    send_note_reminder,
)
from nexusflow.utils.errors import AuthenticationError
from nexusflow.utils.responses import ResponseBuilder
from nexusflow.utils.logging import get_logger

notifications_router = APIRouter()
logger = get_logger()


def get_engine_config() -> EngineConfig:
    """Per-request engine configuration built from application settings"""
    return EngineConfig.from_settings()


def _token_user_id(current_user: AuthState) -> uuid.UUID:
    try:
        return uuid.UUID(current_user.user_id)
    except ValueError:
        raise AuthenticationError("Token subject is not a user id", "INVALID_SUBJECT")


def _failure_warnings(report: PassReport) -> List[str]:
    warnings = []
    for summary in report.users:
        for channel, count in summary.channel_failures.items():
            warnings.append(f"{channel}: {count} failed deliveries")
        warnings.extend(summary.errors)
    return warnings


@notifications_router.post("/run")
async def run_notifications(
    request: Request,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
    config: Annotated[EngineConfig, Depends(get_engine_config)],
    body: Annotated[Optional[RunNotificationPassRequest], Body()] = None,
):
    """
    Run a notification pass for the authenticated user.

    Without `timeOfDay` the user's task reminders are evaluated; with
    `morning`, `evening` or `test_notification` that brief is sent now.
    """
    user_id = _token_user_id(current_user)
    time_of_day = body.time_of_day if body else None

    report = await run_notification_pass(
        db, config, user_id=user_id, time_of_day=time_of_day
    )
    logger.info(
        f"Manual notification pass for user {user_id} sent {report.notifications_sent} notifications"
    )

    if report.has_failures:
        return ResponseBuilder.warning(
            request=request,
            data=report.model_dump(by_alias=True),
            message=f"Sent {report.notifications_sent} notifications with delivery failures",
            warnings=_failure_warnings(report),
        )

    return ResponseBuilder.success(
        request=request,
        data=report.model_dump(by_alias=True),
        message=f"Sent {report.notifications_sent} notifications",
    )


@notifications_router.post("/test")
async def send_test_notification(
    request: Request,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
    config: Annotated[EngineConfig, Depends(get_engine_config)],
):
    """Send the fixed test notification through every enabled channel."""
    user_id = _token_user_id(current_user)
    report = await run_notification_pass(
        db, config, user_id=user_id, time_of_day=BriefKind.TEST_NOTIFICATION.value
    )

    return ResponseBuilder.success(
        request=request,
        data=report.model_dump(by_alias=True),
        message="Test notification sent"
        if report.notifications_sent
        else "Test notification was not delivered by any channel",
    )


@notifications_router.post("/notes/{note_id}/remind")
async def remind_note(
    request: Request,
    note_id: uuid.UUID,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
    config: Annotated[EngineConfig, Depends(get_engine_config)],
):
    """Push the reminder of one of the user's notes to their browsers now."""
    user_id = _token_user_id(current_user)
    report = await send_note_reminder(db, config, user_id, note_id)

    if report.has_failures:
        return ResponseBuilder.warning(
            request=request,
            data=report.model_dump(by_alias=True),
            message="Note reminder had delivery failures",
            warnings=_failure_warnings(report),
        )

    return ResponseBuilder.success(
        request=request,
        data=report.model_dump(by_alias=True),
        message="Note reminder sent"
        if report.notifications_sent
        else "Note reminder was not delivered",
    )
