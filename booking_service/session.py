"""
Booking session state machine.

A session walks Selection -> Payment -> {Success, Expired, Failed}. Failed is
not terminal: the customer may retry payment until the session window runs
out. The window is fixed at creation and is never extended by retries.

Usage:
    flow = BookingFlow(clock=utc_now)
    session = flow.open_payment(selection)
    booking = await flow.submit_payment(card, adapter, store)
    assert flow.state == SessionState.SUCCESS
"""

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import date as date_cls, datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from dateutil import parser

from .config import RESERVATION_WINDOW_SECONDS
from .conflicts import SlotCandidate
from .errors import (
    BookingError,
    CommitFailedError,
    ConflictError,
    PaymentDeclinedError,
    PaymentOutcomeUnknownError,
    SessionExpiredError,
    ValidationError,
)
from .models import Booking, CONFIRMED
from .payments import CardFields, PaymentAdapter, validate_card
from .pricing import BOOKING_HORIZON_DAYS, RUSH_TIME, SERVICES, bookable_dates, is_offered_slot, total_for
from .store import BookingStore, booking_id_for

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    SELECTION = "selection"
    PAYMENT = "payment"
    SUCCESS = "success"
    EXPIRED = "expired"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = {SessionState.SUCCESS, SessionState.EXPIRED, SessionState.CANCELLED}


class InvalidTransitionError(BookingError):
    status_code = 409
    code = "invalid_state"


@dataclass
class Selection:
    service_type: str
    customer_handle: str
    customer_email: str
    is_rush: bool = False
    date: Optional[str] = None
    time: Optional[str] = None


@dataclass
class ReservationSession:
    id: str
    service_type: str
    is_rush: bool
    date: Optional[str]
    time: Optional[str]
    customer_handle: str
    customer_email: str
    created_at: datetime
    expires_at: datetime
    attempts: int = 0
    last_failure: Optional[str] = None
    # set once a charge was approved but no booking was stored
    captured_auth: Optional[str] = None

    @property
    def total_price(self) -> int:
        return total_for(self.service_type, self.is_rush)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def remaining_seconds(self, now: datetime) -> int:
        return max(0, int((self.expires_at - now).total_seconds()))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["expires_at"] = self.expires_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ReservationSession":
        data = dict(data)
        data["created_at"] = parser.isoparse(data["created_at"])
        data["expires_at"] = parser.isoparse(data["expires_at"])
        return cls(**data)


@dataclass
class StateEntry:
    state: SessionState
    entered_at: datetime
    reason: Optional[str] = None


def validate_selection(selection: Selection, today: date_cls) -> Optional[str]:
    """Check a selection; return its date normalized to YYYY-MM-DD (None for rush)."""
    fields = {}
    day = None

    if selection.service_type not in SERVICES:
        fields["service_type"] = f"Unknown service. Allowed: {sorted(SERVICES)}"

    if not (selection.customer_handle or "").strip():
        fields["customer_handle"] = "required"
    if not (selection.customer_email or "").strip():
        fields["customer_email"] = "required"

    if not selection.is_rush:
        if not selection.date:
            fields["date"] = "required unless rush"
        else:
            try:
                chosen = parser.isoparse(selection.date).date()
            except (ValueError, OverflowError):
                fields["date"] = "expected YYYY-MM-DD"
            else:
                if chosen < today:
                    fields["date"] = "date is in the past"
                elif chosen not in bookable_dates(today):
                    fields["date"] = f"date must be within {BOOKING_HORIZON_DAYS} days"
                else:
                    day = chosen.isoformat()

        if not selection.time:
            fields["time"] = "required unless rush"
        elif not is_offered_slot(selection.time):
            fields["time"] = "not an offered time slot"

    if fields:
        raise ValidationError("Please select both date and time and enter your contact details", fields)
    return day


class BookingFlow:
    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        window_seconds: int = RESERVATION_WINDOW_SECONDS,
    ):
        self._clock = clock
        self.window = timedelta(seconds=window_seconds)
        self.state = SessionState.SELECTION
        self.session: Optional[ReservationSession] = None
        self.booking: Optional[Booking] = None
        self.failure_reason: Optional[str] = None
        self._history: list[StateEntry] = [StateEntry(self.state, clock())]

    @classmethod
    def resume(
        cls,
        session: ReservationSession,
        clock: Callable[[], datetime] = utc_now,
    ) -> "BookingFlow":
        """Rebuild a flow for a session loaded back from the reservation store."""
        flow = cls(clock=clock)
        flow.session = session
        flow.window = session.expires_at - session.created_at
        if session.last_failure:
            flow._enter(SessionState.FAILED, session.last_failure)
        else:
            flow._enter(SessionState.PAYMENT)
        return flow

    def get_history(self) -> list[StateEntry]:
        return list(self._history)

    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _enter(self, state: SessionState, reason: Optional[str] = None) -> None:
        logger.debug("session %s: %s -> %s (%s)", self.session and self.session.id, self.state.value, state.value, reason)
        self.state = state
        self._history.append(StateEntry(state, self._clock(), reason))

    def _require(self, *allowed: SessionState) -> None:
        if self.state not in allowed:
            raise InvalidTransitionError(f"Cannot do that while session is {self.state.value}")

    def _fail(self, reason: str) -> None:
        self.failure_reason = reason
        if self.session:
            self.session.last_failure = reason
        self._enter(SessionState.FAILED, reason)

    # -------- transitions --------

    def open_payment(self, selection: Selection) -> ReservationSession:
        self._require(SessionState.SELECTION)
        now = self._clock()
        day = validate_selection(selection, now.date())

        self.session = ReservationSession(
            id=uuid.uuid4().hex,
            service_type=selection.service_type,
            is_rush=selection.is_rush,
            date=day,
            time=RUSH_TIME if selection.is_rush else selection.time,
            customer_handle=selection.customer_handle.strip(),
            customer_email=selection.customer_email.strip(),
            created_at=now,
            expires_at=now + self.window,
        )
        self._enter(SessionState.PAYMENT)
        logger.info(
            "reservation opened id=%s service=%s rush=%s slot=%s %s",
            self.session.id, self.session.service_type, self.session.is_rush,
            self.session.date, self.session.time,
        )
        return self.session

    def tick(self) -> SessionState:
        if self.state in (SessionState.PAYMENT, SessionState.FAILED):
            if self.session is None or self.session.is_expired(self._clock()):
                self._enter(SessionState.EXPIRED)
                logger.info("reservation expired id=%s", self.session and self.session.id)
                self.session = None
        return self.state

    def remaining_seconds(self) -> int:
        if self.session is None:
            return 0
        return self.session.remaining_seconds(self._clock())

    def cancel(self) -> None:
        if self.is_terminal():
            return
        logger.info("reservation cancelled id=%s", self.session and self.session.id)
        self.session = None
        self._enter(SessionState.CANCELLED)

    async def submit_payment(
        self,
        card: CardFields,
        adapter: PaymentAdapter,
        store: BookingStore,
    ) -> Booking:
        if self.state == SessionState.EXPIRED or self.tick() == SessionState.EXPIRED:
            raise SessionExpiredError("Payment time expired. Please try booking again.")
        self._require(SessionState.PAYMENT, SessionState.FAILED)
        session = self.session
        if session.captured_auth:
            raise InvalidTransitionError(
                "A payment for this reservation was already taken. Please contact support."
            )
        now = self._clock()

        try:
            validate_card(card, now.date())
        except PaymentDeclinedError as e:
            self._fail(e.reason)
            raise

        # early rejection only; the store write below is what decides
        if not session.is_rush:
            candidate = SlotCandidate(session.date, session.time, False)
            if not await store.is_claimable(candidate):
                self._fail("slot_conflict")
                raise ConflictError(f"Slot {session.date} {session.time} is already booked")

        session.attempts += 1
        amount = session.total_price
        try:
            result = await adapter.authorize(amount, card)
        except (PaymentOutcomeUnknownError, asyncio.TimeoutError):
            self._fail("payment_unknown")
            logger.warning(
                "payment outcome unknown reservation=%s amount=%s card=*%s; needs reconciliation",
                session.id, amount, card.last4,
            )
            raise PaymentOutcomeUnknownError(
                "We could not confirm your payment. You have not been booked; please contact support before retrying."
            ) from None

        if not result.approved:
            self._fail("declined")
            raise PaymentDeclinedError(result.reason, reason="declined")

        committed_at = self._clock()
        booking_date = committed_at.date().isoformat() if session.is_rush else session.date
        booking = Booking(
            id=booking_id_for(booking_date, session.time, committed_at),
            service_type=session.service_type,
            date=booking_date,
            time=session.time,
            is_rush=session.is_rush,
            customer_handle=session.customer_handle,
            customer_email=session.customer_email,
            total_price=amount,
            created_at=committed_at,
            status=CONFIRMED,
        )

        try:
            await store.put(booking)
        except ConflictError:
            session.captured_auth = result.authorization_id
            self._fail("slot_conflict")
            logger.error(
                "slot taken after payment approval reservation=%s auth=%s amount=%s; void required",
                session.id, result.authorization_id, amount,
            )
            raise ConflictError(
                f"Slot {session.date} {session.time} was taken while you were paying. "
                "Your payment will be refunded.",
                payment_captured=True,
            ) from None
        except Exception:
            session.captured_auth = result.authorization_id
            self._fail("commit_failed")
            logger.exception(
                "booking not stored after payment approval reservation=%s auth=%s amount=%s; void required",
                session.id, result.authorization_id, amount,
            )
            raise CommitFailedError(
                "Your payment was taken but the booking could not be saved. "
                "It will be refunded; please contact support."
            ) from None

        self.booking = booking
        self.failure_reason = None
        self._enter(SessionState.SUCCESS)
        logger.info("booking confirmed id=%s auth=%s total=%s", booking.id, result.authorization_id, amount)
        return booking
