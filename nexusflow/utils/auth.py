from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import uuid
import jwt

from nexusflow.config.settings import settings


class AuthUtils:
    """Bearer token helpers. Tokens are issued by the app's auth provider; the
    notifier only verifies them (issuing is kept for tooling and tests)."""

    @staticmethod
    def generate_access_token(user_id: str, expires_minutes: int = 60) -> str:
        """Generate JWT access token for a user"""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),  # Subject (user ID)
            "iat": now,  # Issued at
            "exp": now + timedelta(minutes=expires_minutes),  # Expiration
            "jti": str(uuid.uuid4()),  # JWT ID for uniqueness
        }
        if settings.JWT_AUDIENCE:
            payload["aud"] = settings.JWT_AUDIENCE

        return jwt.encode(
            payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
        )

    @staticmethod
    def verify_access_token(token: str) -> Optional[Dict[str, Any]]:
        """Verify and decode access token"""
        try:
            if settings.JWT_AUDIENCE:
                payload = jwt.decode(
                    token,
                    settings.JWT_SECRET_KEY,
                    algorithms=[settings.JWT_ALGORITHM],
                    audience=settings.JWT_AUDIENCE,
                )
            else:
                payload = jwt.decode(
                    token,
                    settings.JWT_SECRET_KEY,
                    algorithms=[settings.JWT_ALGORITHM],
                    options={"verify_aud": False},
                )

            if not payload.get("sub"):
                return None

            return payload
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    @staticmethod
    def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
        """Return the token of an `Authorization: Bearer <token>` header"""
        if not authorization:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return token.strip()
