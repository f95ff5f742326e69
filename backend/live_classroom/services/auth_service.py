"""Authentication service: JWT tokens carrying the classroom identity."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from live_classroom.config import Settings, settings as default_settings
from live_classroom.exceptions import AuthRejected
from live_classroom.models.user import UserRole


@dataclass(frozen=True)
class Identity:
    """Verified identity attached to one live connection."""
    user_id: str
    name: str
    role: UserRole

    @property
    def is_teacher(self) -> bool:
        return self.role == UserRole.TEACHER


def create_access_token(
    user_id: str,
    name: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
    config: Optional[Settings] = None,
) -> str:
    """Create a JWT access token."""
    config = config or default_settings
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {
        "sub": str(user_id),
        "name": name,
        "role": role,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": "access",
    }
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_access_token(token: str, config: Optional[Settings] = None) -> dict:
    """Decode and validate a JWT token. Raises JWTError on failure."""
    config = config or default_settings
    payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    if payload.get("type") != "access":
        raise JWTError("Invalid token type")
    return payload


def verify_token(token: Optional[str], config: Optional[Settings] = None) -> Identity:
    """
    Turn a bearer token into a verified Identity.
    Raises AuthRejected for missing, malformed, expired or role-less tokens.
    """
    if not token:
        raise AuthRejected("Authentication required")
    try:
        payload = decode_access_token(token, config)
    except JWTError as exc:
        raise AuthRejected("Invalid or expired token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise AuthRejected("Invalid token subject")
    try:
        role = UserRole(str(payload.get("role") or "").lower())
    except ValueError as exc:
        raise AuthRejected("Invalid token role") from exc

    return Identity(user_id=str(user_id), name=str(payload.get("name") or user_id), role=role)
