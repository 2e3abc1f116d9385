import json
import logging

from .config import RESERVATION_WINDOW_SECONDS
from .session import ReservationSession

logger = logging.getLogger(__name__)

RES_GRACE_SECONDS = 30
# held at least as long as any session window
PAYMENT_GUARD_SECONDS = RESERVATION_WINDOW_SECONDS + RES_GRACE_SECONDS
EXPIRY_ZSET = "reservation_expiry"


def _res_key(reservation_id: str) -> str:
    return f"reservation:{reservation_id}"


def _paying_key(reservation_id: str) -> str:
    return f"reservation_paying:{reservation_id}"


async def save_reservation(redis_client, session: ReservationSession) -> None:
    """
    Store (or overwrite) a reservation session.

    The key TTL is only garbage collection; expiry decisions always compare
    the session's own expires_at with the server clock.
    """
    window = int((session.expires_at - session.created_at).total_seconds())
    pipe = redis_client.pipeline()
    pipe.set(_res_key(session.id), json.dumps(session.to_dict()), ex=window + RES_GRACE_SECONDS)
    pipe.zadd(EXPIRY_ZSET, {session.id: session.expires_at.timestamp()})
    await pipe.execute()


async def update_reservation(redis_client, session: ReservationSession) -> None:
    # keep the original TTL so retries never extend the window
    await redis_client.set(_res_key(session.id), json.dumps(session.to_dict()), keepttl=True)


async def get_reservation(redis_client, reservation_id: str) -> ReservationSession | None:
    raw = await redis_client.get(_res_key(reservation_id))
    if not raw:
        return None
    try:
        return ReservationSession.from_dict(json.loads(raw))
    except (ValueError, TypeError, KeyError):
        logger.warning("discarding unreadable reservation %s", reservation_id)
        await delete_reservation(redis_client, reservation_id)
        return None


async def delete_reservation(redis_client, reservation_id: str) -> None:
    pipe = redis_client.pipeline()
    pipe.delete(_res_key(reservation_id))
    pipe.delete(_paying_key(reservation_id))
    pipe.zrem(EXPIRY_ZSET, reservation_id)
    await pipe.execute()


async def acquire_payment_guard(redis_client, reservation_id: str) -> bool:
    """One in-flight payment per reservation; False if another submission holds it."""
    ok = await redis_client.set(_paying_key(reservation_id), "1", nx=True, ex=PAYMENT_GUARD_SECONDS)
    return bool(ok)


async def release_payment_guard(redis_client, reservation_id: str) -> None:
    await redis_client.delete(_paying_key(reservation_id))
