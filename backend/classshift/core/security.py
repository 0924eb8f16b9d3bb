from datetime import datetime, timedelta, timezone

from jose import jwt

from classshift.core.config import get_settings


def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    # Tokens are normally minted by the identity service; this helper serves tooling and tests.
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload = {"sub": subject, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
