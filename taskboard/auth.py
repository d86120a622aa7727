import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from uuid import UUID

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import Settings, get_settings
from .errors import AuthenticationError
from .utils import utcnow

logger = logging.getLogger(__name__)

# auto_error=False: a missing header is "no identity", which the actions
# report in the regular result shape instead of a bare 403
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller"""
    user_id: UUID
    email: Optional[str] = None


def decode_access_token(token: str, settings: Settings) -> Identity:
    """Verify signature, expiry and audience; raises AuthenticationError"""
    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience,
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as e:
        raise AuthenticationError(str(e)) from e

    try:
        user_id = UUID(str(payload["sub"]))
    except ValueError as e:
        raise AuthenticationError("token subject is not a user id") from e

    return Identity(user_id=user_id, email=payload.get("email"))


def resolve_identity(token: Optional[str], settings: Settings) -> Optional[Identity]:
    """Identity for a bearer token, or None when absent or invalid"""
    if not token:
        return None
    try:
        return decode_access_token(token, settings)
    except AuthenticationError as e:
        logger.warning(f"Rejected bearer token: {e.reason}", extra={"error_code": e.code})
        return None


def create_access_token(
    user_id: UUID,
    settings: Settings,
    email: Optional[str] = None,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Mint a token the way the auth provider does (local development and tests)"""
    now = utcnow()
    payload = {
        "sub": str(user_id),
        "aud": settings.auth_jwt_audience,
        "iat": now,
        "exp": now + expires_in,
        "role": "authenticated",
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.auth_jwt_secret, algorithm=settings.auth_jwt_algorithm)


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Optional[Identity]:
    """Dependency: resolve the caller from the Authorization header"""
    token = credentials.credentials if credentials else None
    return resolve_identity(token, settings)
