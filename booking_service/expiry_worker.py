import asyncio
import logging
from datetime import datetime
from typing import Callable

from .reservations import EXPIRY_ZSET, delete_reservation

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 2.0
SWEEP_BATCH = 50


async def sweep_expired(redis_client, now: datetime) -> list[str]:
    # pop up to N expired per tick
    expired = await redis_client.zrangebyscore(
        EXPIRY_ZSET, 0, now.timestamp(), start=0, num=SWEEP_BATCH
    )
    for reservation_id in expired:
        await delete_reservation(redis_client, reservation_id)
        logger.info("reservation expired id=%s", reservation_id)
    return list(expired)


async def expiry_loop(redis_client, stop_event: asyncio.Event, clock: Callable[[], datetime]):
    while not stop_event.is_set():
        try:
            await sweep_expired(redis_client, clock())
        except Exception:
            logger.exception("reservation sweep failed")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=SWEEP_INTERVAL_SECONDS)
        except asyncio.TimeoutError:
            continue
