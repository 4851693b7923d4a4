from typing import Optional, Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from nexusflow.config.settings import settings
from nexusflow.utils.auth import AuthUtils
from nexusflow.utils.errors import AuthenticationError
from nexusflow.utils.responses import ResponseBuilder
from nexusflow.utils.logging import get_logger

logger = get_logger()


class AuthState:
    """Authentication state to be stored in request.state"""

    def __init__(self, user_id: str, is_authenticated: bool = True):
        self.user_id = user_id
        self.is_authenticated = is_authenticated


class AuthMiddleware(BaseHTTPMiddleware):
    """Rejects requests without a valid bearer JWT before they reach a route"""

    EXCLUDED_PATHS = {
        "/docs",
        "/redoc",
        "/openapi.json",
        f"{settings.API_PREFIX}/health",
    }

    def __init__(self, app, excluded_paths: Optional[set] = None):
        super().__init__(app)
        self.excluded_paths = set(self.EXCLUDED_PATHS)
        if excluded_paths:
            self.excluded_paths.update(excluded_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self._should_skip_auth(request):
            return await call_next(request)

        try:
            token = AuthUtils.extract_bearer_token(request.headers.get("authorization"))
            if not token:
                raise AuthenticationError("No bearer token found", "AUTH_ERROR")

            payload = AuthUtils.verify_access_token(token)
            if not payload:
                raise AuthenticationError("Invalid or expired token", "AUTH_ERROR")

            request.state.auth = AuthState(user_id=str(payload["sub"]))
            return await call_next(request)

        except AuthenticationError as e:
            logger.warning(f"Rejected request to {request.url.path}: {e.message}")
            return ResponseBuilder.error(
                request=request,
                message=e.message,
                error_code=e.error_code,
                status_code=401,
            )

    def _should_skip_auth(self, request: Request) -> bool:
        """Check if the request should skip authentication."""
        return request.method == "OPTIONS" or any(
            request.url.path.startswith(excluded) for excluded in self.excluded_paths
        )


# Dependency for getting current user from request state
def get_current_user(request: Request) -> AuthState:
    """Dependency to get current authenticated user from request state"""
    auth_state = getattr(request.state, "auth", None)

    if not auth_state or not auth_state.is_authenticated:
        raise AuthenticationError("Not authenticated", "NOT_AUTHENTICATED")

    return auth_state
