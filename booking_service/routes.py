import logging

from dateutil import parser
from fastapi import APIRouter, BackgroundTasks, Depends, Response

from .conflicts import SlotCandidate
from .deps import (
    get_clock,
    get_notifier,
    get_payment_adapter,
    get_redis,
    get_store,
    require_admin,
)
from .errors import (
    BookingError,
    ConflictError,
    PaymentInProgressError,
    SessionExpiredError,
    ValidationError,
)
from .models import Booking, CONFIRMED
from .payments import CardFields
from .pricing import RUSH_TIME, catalogue, is_offered_slot, total_for
from .reservations import (
    acquire_payment_guard,
    delete_reservation,
    get_reservation,
    release_payment_guard,
    save_reservation,
    update_reservation,
)
from .schemas import (
    BookingListResponse,
    BookingResponse,
    CardDetails,
    CreateBookingRequest,
    CreateReservationRequest,
    ReservationResponse,
)
from .session import BookingFlow, Selection, SessionState
from .store import ID_PREFIX, booking_id_for, date_prefix

logger = logging.getLogger(__name__)

router = APIRouter()


def parse_date(value: str, field: str = "date") -> str:
    try:
        return parser.isoparse(value).date().isoformat()
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("Invalid date", {field: "expected YYYY-MM-DD"}) from None


def _reservation_response(flow: BookingFlow) -> ReservationResponse:
    s = flow.session
    return ReservationResponse(
        reservation_id=s.id,
        state=flow.state.value,
        service_type=s.service_type,
        is_rush=s.is_rush,
        date=s.date,
        time=s.time,
        total_price=s.total_price,
        created_at=s.created_at,
        expires_at=s.expires_at,
        remaining_seconds=flow.remaining_seconds(),
        attempts=s.attempts,
        last_failure=s.last_failure,
        payment_captured=bool(s.captured_auth),
    )


async def _resume(redis, reservation_id: str, clock) -> BookingFlow:
    session = await get_reservation(redis, reservation_id)
    if not session:
        raise SessionExpiredError("Reservation not found or expired. Please start again.")

    flow = BookingFlow.resume(session, clock=clock)
    if flow.tick() == SessionState.EXPIRED:
        await delete_reservation(redis, reservation_id)
        raise SessionExpiredError("Payment time expired. Please try booking again.")
    return flow


# ================= CATALOGUE =================

@router.get("/services", tags=["Bookings"])
async def list_services():
    return catalogue()


# ================= BOOKINGS =================

@router.get("/bookings", response_model=BookingListResponse, tags=["Bookings"])
async def list_bookings(store=Depends(get_store)):
    bookings = await store.get_by_prefix(ID_PREFIX, status=CONFIRMED)
    return {"bookings": bookings}


@router.get("/bookings/{date}", response_model=BookingListResponse, tags=["Bookings"])
async def list_bookings_for_date(date: str, store=Depends(get_store)):
    day = parse_date(date)
    bookings = await store.get_by_prefix(date_prefix(day), status=CONFIRMED)
    return {"bookings": bookings}


@router.post("/bookings", status_code=201, response_model=BookingResponse, tags=["Bookings"])
async def create_booking(
    data: CreateBookingRequest,
    background_tasks: BackgroundTasks,
    store=Depends(get_store),
    notifier=Depends(get_notifier),
    clock=Depends(get_clock),
    admin=Depends(require_admin),
):
    """Operator-entered booking, e.g. one paid outside the online flow."""
    now = clock()

    if data.is_rush:
        day = parse_date(data.date) if data.date else now.date().isoformat()
        time = RUSH_TIME
    else:
        fields = {}
        if not data.date:
            fields["date"] = "required unless rush"
        if not (data.time or "").strip():
            fields["time"] = "required unless rush"
        elif not is_offered_slot(data.time.strip()):
            fields["time"] = "not an offered time slot"
        if fields:
            raise ValidationError("Please select both date and time", fields)
        day = parse_date(data.date)
        time = data.time.strip()

    booking = Booking(
        id=booking_id_for(day, time, now),
        service_type=data.service_type,
        date=day,
        time=time,
        is_rush=data.is_rush,
        customer_handle=data.contact.handle.strip(),
        customer_email=data.contact.email.strip(),
        total_price=total_for(data.service_type, data.is_rush),
        created_at=now,
        status=CONFIRMED,
    )
    await store.put(booking)
    logger.info("operator booking created id=%s by=%s", booking.id, admin.user_id)

    background_tasks.add_task(notifier.notify, booking)
    return booking


@router.delete("/bookings/{booking_id}", status_code=204, tags=["Bookings"])
async def delete_booking(booking_id: str, store=Depends(get_store), admin=Depends(require_admin)):
    await store.delete(booking_id)
    return Response(status_code=204)


# ================= RESERVATIONS =================

@router.post("/reservations", status_code=201, response_model=ReservationResponse, tags=["Reservations"])
async def create_reservation(
    data: CreateReservationRequest,
    store=Depends(get_store),
    redis=Depends(get_redis),
    clock=Depends(get_clock),
):
    flow = BookingFlow(clock=clock)
    session = flow.open_payment(
        Selection(
            service_type=data.service_type,
            customer_handle=data.contact.handle,
            customer_email=data.contact.email,
            is_rush=data.is_rush,
            date=data.date,
            time=data.time,
        )
    )

    # early, non-authoritative: lets the customer pick another slot before paying
    if not session.is_rush:
        if not await store.is_claimable(SlotCandidate(session.date, session.time, False)):
            raise ConflictError(f"Slot {session.date} {session.time} is already booked")

    await save_reservation(redis, session)
    return _reservation_response(flow)


@router.get("/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation_status(
    reservation_id: str,
    redis=Depends(get_redis),
    clock=Depends(get_clock),
):
    flow = await _resume(redis, reservation_id, clock)
    return _reservation_response(flow)


@router.post(
    "/reservations/{reservation_id}/payment",
    status_code=201,
    response_model=BookingResponse,
    tags=["Reservations"],
)
async def submit_payment(
    reservation_id: str,
    card: CardDetails,
    background_tasks: BackgroundTasks,
    store=Depends(get_store),
    redis=Depends(get_redis),
    adapter=Depends(get_payment_adapter),
    notifier=Depends(get_notifier),
    clock=Depends(get_clock),
):
    # guard first, then load: a submission that loses the race sees the deleted session
    if not await acquire_payment_guard(redis, reservation_id):
        raise PaymentInProgressError("A payment for this reservation is already being processed")

    try:
        flow = await _resume(redis, reservation_id, clock)
        try:
            booking = await flow.submit_payment(
                CardFields(number=card.number, expiry=card.expiry, cvc=card.cvc),
                adapter,
                store,
            )
        except SessionExpiredError:
            await delete_reservation(redis, reservation_id)
            raise
        except BookingError:
            if flow.state == SessionState.FAILED and flow.session:
                await update_reservation(redis, flow.session)
            raise
        await delete_reservation(redis, reservation_id)
    finally:
        await release_payment_guard(redis, reservation_id)

    background_tasks.add_task(notifier.notify, booking)
    return booking


@router.delete("/reservations/{reservation_id}", status_code=204, tags=["Reservations"])
async def cancel_reservation(reservation_id: str, redis=Depends(get_redis), clock=Depends(get_clock)):
    session = await get_reservation(redis, reservation_id)
    if session:
        flow = BookingFlow.resume(session, clock=clock)
        flow.cancel()
        await delete_reservation(redis, reservation_id)
    return Response(status_code=204)
