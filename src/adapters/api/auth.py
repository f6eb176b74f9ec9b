from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from src.domain.exceptions import AuthError

ROLES = ("student", "driver", "coordinator", "admin")


@dataclass(frozen=True, slots=True)
class Principal:
    user_id: str
    role: str


def issue_token(
    user_id: str,
    role: str,
    *,
    secret: str,
    algorithm: str = "HS256",
    expires_in: timedelta = timedelta(days=7),
) -> str:
    """Sign a token with the `userId`/`role` claims the auth service issues."""

    claims = {
        "userId": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_token(token: str | None, *, secret: str, algorithm: str = "HS256") -> Principal:
    if not token:
        raise AuthError("No token provided")
    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as exc:
        raise AuthError("Invalid token") from exc

    user_id = claims.get("userId") or claims.get("sub")
    role = claims.get("role")
    if not user_id or role not in ROLES:
        raise AuthError("Invalid token claims")
    return Principal(user_id=str(user_id), role=str(role))


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()
