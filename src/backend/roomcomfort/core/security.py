"""Password hashing and the JWTs handed to RoomComfort clients.

Both token types carry the user id (``sub``) and the user's row version
(``ver``). Renaming a user bumps that version, so every token issued before
the rename stops resolving to the account.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import bcrypt
from jose import JWTError, jwt

from roomcomfort.core.config import settings

ALGORITHM = "HS256"


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """Claims read back from a verified token."""

    user_id: int
    version: int
    token_type: TokenType
    username: str | None = None
    role: str | None = None


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Check a password against a stored bcrypt hash; a malformed hash never matches."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def _lifetime(token_type: TokenType) -> timedelta:
    if token_type == TokenType.ACCESS:
        return timedelta(minutes=settings.access_token_expire_minutes)
    return timedelta(days=settings.refresh_token_expire_days)


def issue_token(
    token_type: TokenType,
    user_id: int,
    version: int,
    username: str | None = None,
    role: str | None = None,
    expires_in: timedelta | None = None,
) -> str:
    """Sign a token for a user at a given row version."""
    now = datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "sub": str(user_id),
        "ver": version,
        "type": token_type.value,
        "iat": now,
        "exp": now + (expires_in if expires_in is not None else _lifetime(token_type)),
    }
    if username is not None:
        claims["username"] = username
    if role is not None:
        claims["role"] = role
    return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def read_token(token: str, expected: TokenType) -> TokenClaims | None:
    """Verify signature, expiry and type.

    Returns None for any token that fails a check, including one of the
    other type or one without a numeric subject and version.
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None

    if payload.get("type") != expected.value:
        return None
    subject, version = payload.get("sub"), payload.get("ver")
    if not str(subject).isdigit() or not isinstance(version, int):
        return None

    return TokenClaims(
        user_id=int(subject),
        version=version,
        token_type=expected,
        username=payload.get("username"),
        role=payload.get("role"),
    )
