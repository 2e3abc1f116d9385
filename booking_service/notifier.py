import logging

import httpx

from .errors import NotificationError
from .events import booking_confirmed_event, to_json
from .models import Booking

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """
    Best-effort webhook dispatch for confirmed bookings.

    Without a configured URL every call is a no-op. Delivery failures are
    logged and dropped after at most ``retries`` extra attempts; they never
    reach the code that committed the booking.
    """

    def __init__(
        self,
        url: str | None,
        timeout: float = 3.0,
        retries: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.enabled = bool(url)
        self.timeout = timeout
        self.retries = retries
        self._transport = transport

    async def send(self, event: dict) -> None:
        if not self.enabled:
            return

        body = to_json(event)
        last_error = None
        for attempt in range(1 + self.retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                    resp = await client.post(
                        self.url,
                        content=body,
                        headers={"Content-Type": "application/json"},
                    )
                    resp.raise_for_status()
                return
            except httpx.TimeoutException as e:
                last_error = f"timeout: {e}"
            except httpx.HTTPStatusError as e:
                last_error = f"status {e.response.status_code}"
                if e.response.status_code < 500 and e.response.status_code != 429:
                    break
            except httpx.HTTPError as e:
                last_error = str(e) or e.__class__.__name__
            logger.debug("webhook attempt %s failed: %s", attempt + 1, last_error)

        raise NotificationError(f"webhook delivery failed for {event.get('event_id')}: {last_error}")

    async def notify(self, booking: Booking) -> None:
        try:
            await self.send(booking_confirmed_event(booking))
        except NotificationError as e:
            logger.warning("notification dropped booking=%s: %s", booking.id, e.detail)
