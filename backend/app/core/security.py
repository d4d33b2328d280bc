"""
Identity gateway: turns a bearer JWT into the caller's user id and role.

Tokens are issued elsewhere (login is not part of this service);
create_access_token exists for tests and load-testing tools.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.roles import Capability, Role, has_capability

logger = get_logger(__name__)
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: Role


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Identity:
    """Raises 401 for expired, forged or malformed tokens and unknown roles."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id = int(payload["sub"])
        role = Role(payload["role"])
    except (jwt.PyJWTError, KeyError, TypeError, ValueError) as e:
        logger.warning("token_rejected", error=str(e))
        raise credentials_exception
    return Identity(user_id=user_id, role=role)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_access_token(credentials.credentials)


def require_capability(capability: Capability):
    """Dependency factory: 403 unless the caller's role grants `capability`."""

    async def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        if not has_capability(identity.role, capability):
            logger.warning(
                "capability_denied",
                user_id=identity.user_id,
                role=identity.role.value,
                capability=capability.value,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Your role is not permitted to perform this action",
            )
        return identity

    return dependency
