"""
JWT access token utilities for tenant-scoped API access.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, status

from schoolsync.core.config import settings


class JWTManager:
    """Signs and verifies bearer tokens carrying the caller's school."""

    def __init__(self, secret_key: str = None, algorithm: str = "HS256", expiration_minutes: int = 60):
        self.secret_key = secret_key or secrets.token_urlsafe(32)
        self.algorithm = algorithm
        self.default_expiration_minutes = expiration_minutes

    def create_access_token(
        self,
        subject: str,
        username: str,
        role: str,
        school_id: str,
        expiration_minutes: Optional[int] = None
    ) -> str:
        """Create an access token bound to a single school."""
        expiration_minutes = expiration_minutes or self.default_expiration_minutes
        now = datetime.now(timezone.utc)

        payload = {
            "sub": subject,
            "username": username,
            "role": role,
            "schoolId": school_id,
            "iat": now,
            "exp": now + timedelta(minutes=expiration_minutes),
            "type": "access",
            "jti": secrets.token_urlsafe(16)
        }

        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """Verify and decode an access token."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired"
            )
        except JWTError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token"
            )

        if payload.get("type") != "access":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token type"
            )

        return payload


# Global instance
jwt_manager = JWTManager(
    secret_key=settings.JWT_SECRET_KEY,
    algorithm=settings.JWT_ALGORITHM,
    expiration_minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
)
