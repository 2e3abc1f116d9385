import asyncio
import logging
import uuid
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from .conflicts import SlotCandidate, is_claimable
from .errors import ConflictError
from .models import Booking, CANCELLED, CONFIRMED
from .pricing import RUSH_TIME, TIME_SLOTS

logger = logging.getLogger(__name__)

ID_PREFIX = "booking:"


def booking_id_for(date: str, time: str, created_at: datetime) -> str:
    created_ms = int(created_at.timestamp() * 1000)
    return f"{ID_PREFIX}{date}:{time}:{created_ms}:{uuid.uuid4().hex[:6]}"


def date_prefix(date: str) -> str:
    return f"{ID_PREFIX}{date}:"


def _slot_order(time: str) -> int:
    if time == RUSH_TIME:
        return -1
    try:
        return TIME_SLOTS.index(time)
    except ValueError:
        return len(TIME_SLOTS)


def _sort_key(b: Booking):
    return (b.date, _slot_order(b.time), b.created_at)


class BookingStore:
    """
    Durable booking persistence keyed by prefix-structured ids.

    ``put`` is the only way a confirmed booking enters the table. It runs the
    slot predicate and the insert under one process-wide write lock and one
    transaction; the partial unique index on (date, time) rejects anything a
    second process manages to race past the predicate.
    """

    def __init__(self, session_factory):
        self._sessions = session_factory
        self._write_lock = asyncio.Lock()

    def session(self):
        return self._sessions()

    async def put(self, booking: Booking) -> Booking:
        candidate = SlotCandidate(booking.date, booking.time, bool(booking.is_rush))

        async with self._write_lock:
            async with self._sessions() as db:
                try:
                    async with db.begin():
                        if booking.status == CONFIRMED and not await is_claimable(db, candidate):
                            raise ConflictError(
                                f"Slot {booking.date} {booking.time} is already booked"
                            )
                        db.add(booking)
                except IntegrityError:
                    logger.warning("slot index rejected booking %s", booking.id)
                    raise ConflictError(
                        f"Slot {booking.date} {booking.time} is already booked"
                    ) from None

        logger.info("booking stored id=%s rush=%s", booking.id, booking.is_rush)
        return booking

    async def is_claimable(self, candidate: SlotCandidate) -> bool:
        async with self._sessions() as db:
            return await is_claimable(db, candidate)

    async def get(self, booking_id: str) -> Booking | None:
        async with self._sessions() as db:
            res = await db.execute(select(Booking).where(Booking.id == booking_id))
            return res.scalar_one_or_none()

    async def get_by_prefix(self, prefix: str, status: str | None = None) -> list[Booking]:
        stmt = select(Booking).where(Booking.id.startswith(prefix, autoescape=True))
        if status:
            stmt = stmt.where(Booking.status == status)

        async with self._sessions() as db:
            res = await db.execute(stmt)
            bookings = list(res.scalars().all())

        bookings.sort(key=_sort_key)
        return bookings

    async def delete(self, booking_id: str) -> bool:
        async with self._write_lock:
            async with self._sessions() as db:
                async with db.begin():
                    res = await db.execute(delete(Booking).where(Booking.id == booking_id))
        removed = (res.rowcount or 0) > 0
        if removed:
            logger.info("booking deleted id=%s", booking_id)
        return removed

    async def cancel(self, booking_id: str) -> Booking | None:
        async with self._write_lock:
            async with self._sessions() as db:
                async with db.begin():
                    res = await db.execute(select(Booking).where(Booking.id == booking_id))
                    booking = res.scalar_one_or_none()
                    if not booking:
                        return None
                    booking.status = CANCELLED
        logger.info("booking cancelled id=%s", booking_id)
        return booking
