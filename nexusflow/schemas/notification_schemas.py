from typing import Dict, List, Optional
from pydantic import Field

from nexusflow.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class NotificationPayload(BaseModel):
    """Channel-agnostic notification. `body` may carry Telegram Markdown."""

    title: str = Field(..., description="Notification title")
    body: str = Field(..., description="Notification body, Markdown emphasis allowed")
    url: str = Field(..., description="Deep link opened from the notification")


class RunNotificationPassRequest(BaseModel):
    time_of_day: Optional[str] = Field(
        default=None,
        description="morning | evening | test_notification; omit for task reminders",
    )


class UserPassSummary(BaseModel):
    user_id: str = Field(..., description="User processed")
    tasks_evaluated: int = Field(0, description="Candidate tasks examined")
    notifications_sent: int = Field(0, description="Payloads dispatched")
    watermarks_advanced: int = Field(0, description="Tasks whose watermark moved")
    notes_reminded: int = Field(0, description="Note reminders delivered")
    briefs_sent: List[str] = Field(default_factory=list, description="Brief kinds sent")
    channel_failures: Dict[str, int] = Field(
        default_factory=dict, description="Failed deliveries per channel"
    )
    errors: List[str] = Field(default_factory=list, description="Per-task errors")


class PassReport(BaseModel):
    users_processed: int = Field(0, description="Number of users processed")
    notifications_sent: int = Field(0, description="Total payloads dispatched")
    users: List[UserPassSummary] = Field(default_factory=list)

    def add(self, summary: UserPassSummary) -> None:
        self.users.append(summary)
        self.users_processed += 1
        self.notifications_sent += summary.notifications_sent

    @property
    def has_failures(self) -> bool:
        return any(user.channel_failures or user.errors for user in self.users)
