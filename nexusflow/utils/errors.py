from fastapi import FastAPI, Request, status
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
import traceback
from .logging import get_logger
from .responses import ResponseBuilder

logger = get_logger()


class DatabaseError(Exception):
    """Custom exception for database-related errors."""

    def __init__(self, message: str, error_code: str = "DB_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class BusinessLogicError(Exception):
    """Custom exception for business logic errors."""

    def __init__(self, message: str, error_code: str = "BLOC_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class AuthenticationError(Exception):
    """Custom exception for authentication errors."""

    def __init__(
        self, message: str = "Authentication failed", error_code: str = "AUTH_ERROR"
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class NotFoundError(Exception):
    """Custom exception for resource not found errors."""

    def __init__(
        self, message: str = "Resource not found", error_code: str = "NOT_FOUND"
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class NotificationChannelError(Exception):
    """Base exception for notification channel failures."""

    def __init__(
        self, message: str, channel: str, error_code: str = "CHANNEL_ERROR"
    ):
        super().__init__(message)
        self.message = message
        self.channel = channel
        self.error_code = error_code


class ChannelConfigurationError(NotificationChannelError):
    """A channel is enabled for a user but its credentials are incomplete."""

    def __init__(self, message: str, channel: str):
        super().__init__(message, channel, error_code="CHANNEL_CONFIG_ERROR")


class DeliveryError(NotificationChannelError):
    """A delivery attempt failed. Retryable failures keep the watermark in place."""

    def __init__(
        self,
        message: str,
        channel: str,
        retryable: bool = True,
        status_code: int | None = None,
    ):
        super().__init__(message, channel, error_code="DELIVERY_ERROR")
        self.retryable = retryable
        self.status_code = status_code


class SubscriptionGoneError(DeliveryError):
    """Push service answered 404/410: the subscription is permanently invalid."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, "web_push", retryable=False, status_code=status_code)


def setup_error_handlers(app: FastAPI):
    """Setup custom error handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
        return ResponseBuilder.error(
            request=request,
            message=str(exc.detail),
            error_code="HTTP_ERROR",
            status_code=exc.status_code,
            meta={"http_status": exc.status_code},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.error(f"Request Validation Error: {exc.errors()}")

        formatted_errors = []
        for error in exc.errors():
            field_path = " -> ".join(str(loc) for loc in error["loc"])
            formatted_errors.append(
                {
                    "field": field_path,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )

        return ResponseBuilder.error(
            request=request,
            message="Request validation failed",
            errors=formatted_errors,
            error_code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    # exception class -> (HTTP status, error_type, log level)
    domain_errors = {
        DatabaseError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_ERROR", "error"),
        BusinessLogicError: (status.HTTP_400_BAD_REQUEST, "BUSINESS_ERROR", "error"),
        AuthenticationError: (
            status.HTTP_401_UNAUTHORIZED,
            "AUTHENTICATION_ERROR",
            "warning",
        ),
        NotFoundError: (status.HTTP_404_NOT_FOUND, "NOT_FOUND_ERROR", "error"),
        NotificationChannelError: (status.HTTP_502_BAD_GATEWAY, "CHANNEL_ERROR", "error"),
    }

    async def domain_exception_handler(request: Request, exc: Exception):
        status_code, error_type, level = next(
            value for cls, value in domain_errors.items() if isinstance(exc, cls)
        )
        logger.log(level.upper(), f"{type(exc).__name__}: {exc.message}")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=status_code,
            meta={"error_type": error_type},
        )

    for exc_class in domain_errors:
        app.add_exception_handler(exc_class, domain_exception_handler)

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"SQLAlchemy Error: {str(exc)}")

        # Don't expose internal database errors to users
        return ResponseBuilder.error(
            request=request,
            message="A database error occurred",
            error_code="DATABASE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "SQLALCHEMY_ERROR"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other unhandled exceptions"""
        logger.error(f"Unhandled Exception: {str(exc)}")
        logger.error(f"Traceback: {traceback.format_exc()}")

        return ResponseBuilder.error(
            request=request,
            message="An internal server error occurred",
            error_code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "INTERNAL_ERROR"},
        )
