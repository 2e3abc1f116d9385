"""
Payment adapter contract, local card-field checks, and the simulated processor.

The adapter is the only authority on whether a charge is accepted; the
checks in ``validate_card`` merely reject input that could never succeed,
before the adapter is called.
"""

import asyncio
import logging
import random
import re
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Protocol, Union

from .errors import PaymentDeclinedError

logger = logging.getLogger(__name__)

_EXPIRY_RE = re.compile(r"^(0[1-9]|1[0-2])/(\d{2})$")


@dataclass(frozen=True)
class CardFields:
    number: str
    expiry: str
    cvc: str

    @property
    def last4(self) -> str:
        digits = re.sub(r"[\s-]", "", self.number or "")
        return digits[-4:]


@dataclass(frozen=True)
class Approved:
    authorization_id: str
    approved: bool = True


@dataclass(frozen=True)
class Declined:
    reason: str
    approved: bool = False


AuthorizationResult = Union[Approved, Declined]


class PaymentAdapter(Protocol):
    async def authorize(self, amount: int, card: CardFields) -> AuthorizationResult:
        """Authorize ``amount``; raise PaymentOutcomeUnknownError if the outcome cannot be known."""
        ...


def validate_card(card: CardFields, today: date) -> None:
    if not card.number or not card.expiry or not card.cvc:
        raise PaymentDeclinedError(
            "Please fill in all payment details",
            reason="invalid_card",
            fields={
                name: "required"
                for name, value in (("number", card.number), ("expiry", card.expiry), ("cvc", card.cvc))
                if not value
            },
        )

    fields = {}

    number = re.sub(r"[\s-]", "", card.number)
    if not re.fullmatch(r"\d{16}", number):
        fields["number"] = "Please enter a valid 16-digit card number"

    m = _EXPIRY_RE.match(card.expiry.strip())
    if not m:
        fields["expiry"] = "Please enter expiry in MM/YY format"
    else:
        month, year = int(m.group(1)), int(m.group(2))
        if (year, month) < (today.year % 100, today.month):
            fields["expiry"] = "Card has expired"

    if not re.fullmatch(r"\d{3}", card.cvc.strip()):
        fields["cvc"] = "Please enter a valid 3-digit CVC"

    if fields:
        raise PaymentDeclinedError(
            next(iter(fields.values())),
            reason="invalid_card",
            fields=fields,
        )


class SimulatedProcessor:
    """
    Stand-in for the hosted card processor.

    Declines a configurable share of charges. Pass a seeded ``random.Random``
    to make its behaviour reproducible.
    """

    def __init__(
        self,
        decline_rate: float = 0.1,
        rng: random.Random | None = None,
        delay_seconds: float = 0.0,
    ):
        self.decline_rate = decline_rate
        self._rng = rng or random.Random()
        self.delay_seconds = delay_seconds

    async def authorize(self, amount: int, card: CardFields) -> AuthorizationResult:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        if self._rng.random() < self.decline_rate:
            logger.info("simulated decline amount=%s card=*%s", amount, card.last4)
            return Declined(reason="Payment declined. Please check your card details and try again.")

        auth_id = f"auth_{uuid.uuid4().hex[:16]}"
        logger.info("simulated approval amount=%s card=*%s auth=%s", amount, card.last4, auth_id)
        return Approved(authorization_id=auth_id)
