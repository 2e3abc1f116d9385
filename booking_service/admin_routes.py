import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Response

from .deps import get_clock, get_db, get_notifier, get_store, require_admin
from .errors import NotFoundError, NotificationError
from .events import booking_confirmed_event
from .identity import create_user
from .models import Booking, ROLE_ADMIN
from .routes import parse_date
from .schemas import AdminBookingListResponse, BookingResponse, CreateAdmin, UserResponse
from .store import ID_PREFIX, date_prefix

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/bookings", response_model=AdminBookingListResponse)
async def admin_list_bookings(
    date: Optional[str] = None,
    status: Optional[Literal["confirmed", "cancelled"]] = None,
    store=Depends(get_store),
    admin=Depends(require_admin),
):
    prefix = date_prefix(parse_date(date)) if date else ID_PREFIX
    bookings = await store.get_by_prefix(prefix, status=status)
    return {"bookings": bookings}


@router.delete("/bookings/{booking_id}", status_code=204)
async def admin_delete_booking(booking_id: str, store=Depends(get_store), admin=Depends(require_admin)):
    removed = await store.delete(booking_id)
    logger.info("admin %s deleted booking %s (existed=%s)", admin.user_id, booking_id, removed)
    return Response(status_code=204)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def admin_cancel_booking(booking_id: str, store=Depends(get_store), admin=Depends(require_admin)):
    booking = await store.cancel(booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


@router.post("/users", status_code=201, response_model=UserResponse)
async def admin_create_user(data: CreateAdmin, db=Depends(get_db), admin=Depends(require_admin)):
    user = await create_user(db, data.email, data.password, name=data.name, role=ROLE_ADMIN)
    logger.info("admin %s created admin account %s", admin.user_id, user.id)
    return UserResponse(id=user.id, email=user.email, name=user.name, role=user.role)


@router.post("/notifications/test")
async def admin_test_notification(
    notifier=Depends(get_notifier),
    clock=Depends(get_clock),
    admin=Depends(require_admin),
):
    if not notifier.enabled:
        return {"enabled": False, "delivered": False}

    now = clock()
    sample = Booking(
        id=f"{ID_PREFIX}{now.date().isoformat()}:ASAP:test",
        service_type="optimization",
        date=now.date().isoformat(),
        time="ASAP",
        is_rush=True,
        customer_handle="TestUser#1234",
        customer_email="test@example.com",
        total_price=0,
        created_at=now,
        status="confirmed",
    )
    event = booking_confirmed_event(sample)
    event["event_type"] = "booking.test"

    try:
        await notifier.send(event)
    except NotificationError as e:
        return {"enabled": True, "delivered": False, "error": e.detail}
    return {"enabled": True, "delivered": True, "event_id": event["event_id"]}
