"""
Turn provider rate text into validated decimal amounts
"""

from typing import Any, List, Tuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from pydantic import BaseModel
from schemas.refresh import FetchedRoom, DroppedPoint
from core.exceptions import RateParseError
import logging
import re

logger = logging.getLogger(__name__)

# First number in the text with its sign, allowing a currency prefix
# between the sign and the digits ("-$20", "-US$ 5") and thousands separators
_AMOUNT_PATTERN = re.compile(
    r"(?P<sign>-)?(?:[^\w\s.,-]|[A-Za-z]{1,3}\$?)?\s*"
    r"(?P<number>\d[\d,]*(?:\.\d+)?(?:[eE][+-]?\d+)?|\.\d+)"
)
_CENTS = Decimal("0.01")

# Largest amount the Numeric(10, 2) rate column can hold is below this
MAX_RATE = Decimal("100000000")


class NormalizedPoint(BaseModel):
    """A room offer whose rate parsed cleanly"""
    room_label: str
    rate: Decimal
    rate_text: str


class RateNormalizer:
    """
    Normalize fetched room offers before they are persisted.

    Handles:
    - Currency symbols and trailing words ("$199.00 nightly")
    - Thousands separators ("1,299")
    - Rejection of unparseable and negative amounts
    """

    def normalize(self, rooms: List[FetchedRoom]) -> Tuple[List[NormalizedPoint], List[DroppedPoint]]:
        """
        Split offers into valid points and dropped ones.

        Returns:
            (valid points, dropped points with a reason)
        """
        valid: List[NormalizedPoint] = []
        dropped: List[DroppedPoint] = []

        for room in rooms:
            if not room.room_label:
                dropped.append(DroppedPoint(
                    room_label=room.room_label,
                    rate_text=room.rate_text,
                    reason="missing room label"
                ))
                continue

            try:
                rate = self.parse_rate(room.rate_text)
            except RateParseError as e:
                logger.warning(f"Dropping offer '{room.room_label}': {e.message}")
                dropped.append(DroppedPoint(
                    room_label=room.room_label,
                    rate_text=room.rate_text,
                    reason=e.message
                ))
                continue

            valid.append(NormalizedPoint(
                room_label=room.room_label,
                rate=rate,
                rate_text=room.rate_text
            ))

        return valid, dropped

    @staticmethod
    def parse_rate(value: Any) -> Decimal:
        """
        Parse a provider rate into a non-negative amount rounded to cents.

        Raises:
            RateParseError: If no amount can be read, it is negative or it
                does not fit the rate column
        """
        context = {"rate_text": value}

        if value is None or (isinstance(value, str) and not value.strip()):
            raise RateParseError("rate is empty", context=context)

        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            # Fixed-point text so exponents ("1e+20") keep their magnitude
            text = format(Decimal(str(value)), "f")
        else:
            text = str(value).strip()

        match = _AMOUNT_PATTERN.search(text)
        if match is None:
            raise RateParseError(f"no amount found in '{text}'", context=context)

        try:
            amount = Decimal((match.group("sign") or "") + match.group("number").replace(",", ""))
        except InvalidOperation as e:
            raise RateParseError(
                f"invalid amount in '{text}'",
                context=context,
                original_exception=e
            )

        if not amount.is_finite():
            raise RateParseError(f"invalid amount in '{text}'", context=context)

        if amount < 0:
            raise RateParseError(f"negative rate '{text}'", context=context)

        if amount >= MAX_RATE:
            raise RateParseError(f"rate out of range '{text}'", context=context)

        try:
            rate = amount.quantize(_CENTS, rounding=ROUND_HALF_UP)
        except InvalidOperation as e:
            raise RateParseError(
                f"invalid amount in '{text}'",
                context=context,
                original_exception=e
            )

        if rate >= MAX_RATE:
            raise RateParseError(f"rate out of range '{text}'", context=context)

        return rate
