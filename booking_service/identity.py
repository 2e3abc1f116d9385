import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import UnauthorizedError, ValidationError
from .models import AuthUser, ROLE_ADMIN, ROLE_USER
from .security import hash_password, verify_password

logger = logging.getLogger(__name__)

_ALLOWED_ROLES = {ROLE_ADMIN, ROLE_USER}


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


async def get_user_by_email(db: AsyncSession, email: str) -> AuthUser | None:
    res = await db.execute(select(AuthUser).where(AuthUser.email == normalize_email(email)))
    return res.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    email: str,
    password: str,
    name: str | None = None,
    role: str = ROLE_USER,
) -> AuthUser:
    """
    Create an account with a fixed role.

    This is the only place a role is written. Public signup always passes
    ``ROLE_USER``; only the admin-gated endpoint passes ``ROLE_ADMIN``.
    """
    if role not in _ALLOWED_ROLES:
        raise ValueError(f"Invalid role: {role}. Allowed: {sorted(_ALLOWED_ROLES)}")

    email = normalize_email(email)
    if "@" not in email:
        raise ValidationError("Invalid signup details", {"email": "must be an email address"})

    # same message whether or not the email is taken
    if await get_user_by_email(db, email):
        raise ValidationError("Unable to create an account with these details")

    user = AuthUser(
        id=str(uuid.uuid4()),
        email=email,
        password=hash_password(password),
        name=name,
        role=role,
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationError("Unable to create an account with these details") from None

    logger.info("account created id=%s role=%s", user.id, role)
    return user


async def check_credentials(db: AsyncSession, email: str, password: str) -> AuthUser:
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password):
        raise UnauthorizedError("Invalid credentials")
    return user


async def ensure_bootstrap_admin(session_factory, email: str | None, password: str | None) -> None:
    if not email or not password:
        return

    async with session_factory() as db:
        existing = await get_user_by_email(db, email)
        if existing:
            if existing.role != ROLE_ADMIN:
                logger.warning("bootstrap admin %s exists without admin role; leaving unchanged", existing.id)
            return
        await create_user(db, email, password, name="Administrator", role=ROLE_ADMIN)
