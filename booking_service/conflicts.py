from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Booking, CONFIRMED


@dataclass(frozen=True)
class SlotCandidate:
    date: str
    time: str
    is_rush: bool


async def is_claimable(db: AsyncSession, candidate: SlotCandidate) -> bool:
    """
    Slot predicate evaluated against the current store state.

    Rush candidates never occupy a slot, so they are always claimable.
    Callers that need the decision to hold must evaluate it inside the
    store's serialized write (see ``BookingStore.put``).
    """
    if candidate.is_rush:
        return True

    res = await db.execute(
        select(Booking.id)
        .where(
            Booking.date == candidate.date,
            Booking.time == candidate.time,
            Booking.is_rush.is_(False),
            Booking.status == CONFIRMED,
        )
        .limit(1)
    )
    return res.scalar_one_or_none() is None
