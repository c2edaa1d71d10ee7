"""
InvoiceFlow - Security Utilities

Password hashing and JWT tokens. Tokens carry a `type` claim
("access" or "refresh") so one cannot be replayed as the other.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from invoiceflow.config import settings


ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _issue(claims: dict, token_type: str, lifetime: timedelta) -> str:
    payload = {**claims, "type": token_type, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign an access token.

    `data["sub"]` is the user id as a string; `email` and `role` are
    informational copies, the user row stays authoritative.
    """
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    return _issue(data, ACCESS_TOKEN, lifetime)


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    lifetime = expires_delta or timedelta(days=settings.refresh_token_expire_days)
    return _issue(data, REFRESH_TOKEN, lifetime)


def decode_token(token: str) -> Optional[dict]:
    """Payload of a validly signed, unexpired token, else None."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def _verify(token: str, token_type: str) -> Optional[dict]:
    payload = decode_token(token)
    if payload is None or payload.get("type") != token_type:
        return None
    return payload


def verify_access_token(token: str) -> Optional[dict]:
    return _verify(token, ACCESS_TOKEN)


def verify_refresh_token(token: str) -> Optional[dict]:
    return _verify(token, REFRESH_TOKEN)
