import uuid
from contextvars import ContextVar
from typing import Optional

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_context: ContextVar[Optional[str]] = ContextVar("user_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_context.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request ID in context, generating one when missing."""
    request_id = request_id or str(uuid.uuid4())
    request_id_context.set(request_id)
    return request_id


def get_user_id() -> Optional[str]:
    """User currently being processed by a notification pass, if any."""
    return user_id_context.get()


def set_user_id(user_id: Optional[str]) -> None:
    user_id_context.set(user_id)
