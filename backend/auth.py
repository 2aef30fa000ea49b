"""Password hashing, JWT access tokens and the FastAPI auth dependencies."""

from datetime import datetime, timedelta, UTC
from typing import Any, Callable, Dict, Optional
import logging
import uuid

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from backend.cache import cache
from backend.config import ACCESS_TOKEN_EXPIRE_DAYS, JWT_ALGORITHM, JWT_SECRET
from backend.db import User, get_db

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

ROLES = ("STUDENT", "TEACHER", "ADMIN")


def hash_password(password: str) -> str:
    # bcrypt only looks at the first 72 bytes
    password_bytes = password.encode("utf-8")[:72]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8")[:72], hashed_password.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(UTC) + (expires_delta or timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS))
    payload = {
        "sub": user.id,
        "email": user.email,
        "role": user.role,
        "jti": uuid.uuid4().hex,
        "exp": expire,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except JWTError:
        raise _unauthorized("Invalid token")


def _revoked_key(jti: str) -> str:
    return f"revoked_token:{jti}"


def revoke_token(payload: Dict[str, Any]) -> None:
    """Remember a token's jti until the token would have expired anyway."""
    jti = payload.get("jti")
    if not jti:
        return
    remaining = int(payload.get("exp", 0) - datetime.now(UTC).timestamp())
    if remaining > 0:
        cache.set(_revoked_key(jti), True, ttl=remaining)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Dict[str, Any]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Access token required")
    payload = decode_access_token(credentials.credentials)
    if payload.get("jti") and cache.exists(_revoked_key(payload["jti"])):
        raise _unauthorized("Token has been revoked")
    return payload


def get_current_user(
    payload: Dict[str, Any] = Depends(get_token_payload),
    db: Session = Depends(get_db),
) -> User:
    user = db.query(User).filter(User.id == payload.get("sub")).first()
    if user is None:
        logger.info("Token for unknown user %s rejected", payload.get("sub"))
        raise _unauthorized("User not found")
    return user


def require_roles(*roles: str) -> Callable[..., User]:
    """Dependency factory allowing only users whose role is in ``roles``."""

    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return dependency
