import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import bcrypt
from fastapi import Depends, Header
from jose import ExpiredSignatureError, JWTError, jwt
from pymongo.database import Database

from config import settings
from database import get_db, to_object_id
from exceptions import AuthenticationError, InvalidTokenError, TokenExpiredError
from logging_config import set_user_id


def get_password_hash(password: str) -> str:
    """Hash password with BCRYPT_ROUNDS rounds"""
    # Bcrypt has a 72 byte limit
    password_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    password_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
    """JWT with ``{id, email}`` claims, valid for JWT_EXPIRES_IN by default"""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or settings.jwt_expires_delta)
    payload = {"id": user_id, "email": email, "iat": now, "exp": expire}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise InvalidTokenError()


def utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_reset_token() -> Tuple[str, str, datetime]:
    """
    Returns ``(raw_token, token_hash, expires_at)``. Only the hash is
    stored; the raw token goes out by email.
    """
    raw_token = secrets.token_hex(32)
    # Stored as naive UTC, the form the driver hands back and compares
    expires_at = utcnow_naive() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
    return raw_token, hash_reset_token(raw_token), expires_at


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: Database = Depends(get_db),
) -> Dict[str, str]:
    """Authenticated caller as ``{"id", "email"}``"""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Authorization token required", code="TOKEN_REQUIRED")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise AuthenticationError("Authorization token required", code="TOKEN_REQUIRED")

    payload = decode_token(token)
    user_oid = to_object_id(payload.get("id", ""))
    if user_oid is None:
        raise InvalidTokenError()
    if db["user"].find_one({"_id": user_oid}, {"_id": 1}) is None:
        raise AuthenticationError("User no longer exists", code="USER_GONE")

    set_user_id(str(user_oid))
    return {"id": str(user_oid), "email": payload.get("email", "")}
