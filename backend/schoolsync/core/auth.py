"""
Request authentication: resolves the calling user and tenant from a bearer token.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from schoolsync.core.security import jwt_manager

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthUser:
    """Identity carried by a verified access token."""
    sub: str
    username: str
    role: str
    school_id: str


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> AuthUser:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"}
        )

    payload = jwt_manager.verify_access_token(credentials.credentials)

    school_id = payload.get("schoolId")
    if not school_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is not bound to a school",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return AuthUser(
        sub=str(payload.get("sub", "")),
        username=str(payload.get("username", "")),
        role=str(payload.get("role", "")),
        school_id=str(school_id)
    )
