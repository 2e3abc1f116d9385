import json
import uuid
from datetime import datetime, timezone

from .models import Booking
from .pricing import SERVICES


def build_event(event_type: str, data: dict) -> dict:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def booking_summary(booking: Booking) -> dict:
    return {
        "booking_id": booking.id,
        "service": booking.service_type,
        "service_title": SERVICES.get(booking.service_type, {}).get("title", booking.service_type),
        "total_price": booking.total_price,
        "is_rush": booking.is_rush,
        "customer_handle": booking.customer_handle,
        "customer_email": booking.customer_email,
        "date": booking.date,
        "time": booking.time,
        "created_at": booking.created_at.isoformat() if booking.created_at else None,
    }


def booking_confirmed_event(booking: Booking) -> dict:
    data = booking_summary(booking)
    event = build_event("booking.confirmed", data)
    rush = " (RUSH)" if booking.is_rush else ""
    # plain-text line for chat webhooks that only render "content"
    event["content"] = (
        f"New booking{rush}: {data['service_title']} for {booking.customer_handle} "
        f"<{booking.customer_email}> on {booking.date} at {booking.time}, "
        f"total ${booking.total_price} [{booking.id}]"
    )
    return event


def to_json(event: dict) -> str:
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False)
