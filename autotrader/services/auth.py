"""Bearer tokens. Users are provisioned elsewhere; we only issue and verify JWTs."""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from autotrader.config import settings


def create_access_token(user_id: int, expire_minutes: int | None = None) -> str:
    minutes = expire_minutes or settings.jwt_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {"sub": str(user_id), "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> int | None:
    """Decode JWT and return the subject as a user id. Returns None on failure."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        return None
