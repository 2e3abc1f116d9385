"""
Authorization gate.

Bearer tokens identify a user and nothing more. The role is looked up in the
``auth_users`` table on every request, so no value a caller can write into a
token or profile ever decides admin access.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select

from . import config
from .errors import AuthUnavailableError, UnauthorizedError
from .models import AuthUser

pwd_context = CryptContext(schemes=["bcrypt"], bcrypt__rounds=config.BCRYPT_ROUNDS)


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str
    role: str
    name: str | None = None


def _revoked_key(jti: str) -> str:
    return f"revoked_token:{jti}"


def auth_secret() -> str:
    if not config.JWT_SECRET:
        raise AuthUnavailableError("Authentication is not configured")
    return config.JWT_SECRET


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def issue_token(user: AuthUser, now: datetime | None = None) -> tuple[str, datetime]:
    now = now or datetime.now(timezone.utc)
    expires_at = now + timedelta(minutes=config.JWT_EXPIRE_MINUTES)
    token = jwt.encode(
        {
            "sub": user.id,
            "email": user.email,
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        },
        auth_secret(),
        algorithm=config.JWT_ALGORITHM,
    )
    return token, expires_at


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, auth_secret(), algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise UnauthorizedError("Invalid or expired token") from None


async def revoke_token(redis_client, claims: dict) -> None:
    jti = claims.get("jti")
    if not jti:
        return
    ttl = int(claims.get("exp", 0) - datetime.now(timezone.utc).timestamp())
    if ttl > 0:
        await redis_client.set(_revoked_key(jti), "1", ex=ttl)


async def authenticate(token: str | None, db, redis_client) -> tuple[Principal, dict]:
    if not token:
        raise UnauthorizedError("Missing Bearer token")

    claims = decode_token(token)
    user_id = claims.get("sub")
    jti = claims.get("jti")
    if not user_id or not jti:
        raise UnauthorizedError("Invalid or expired token")

    if await redis_client.exists(_revoked_key(jti)):
        raise UnauthorizedError("Invalid or expired token")

    res = await db.execute(select(AuthUser).where(AuthUser.id == user_id))
    user = res.scalar_one_or_none()
    if not user:
        raise UnauthorizedError("Invalid or expired token")

    return Principal(user_id=user.id, email=user.email, role=user.role, name=user.name), claims
