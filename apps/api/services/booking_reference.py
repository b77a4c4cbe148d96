"""
Booking reference generator
Short, shareable, roughly time-ordered identifiers for OPD bookings.

Format: last 4 base36 characters of the millisecond timestamp followed by
3 random hex characters, e.g. "k3f9a1c".

The existence check below is best effort. Two requests can still pick the
same reference between check and insert; the unique constraint on
opd_bookings.booking_reference rejects the second commit.
"""

import logging
import secrets
import threading
import time
from typing import Callable, Optional

from sqlmodel import Session, select

from models import OPDBooking

logger = logging.getLogger(__name__)

BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding expects a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def _current_millis() -> int:
    return int(time.time() * 1000)


def reference_exists(session: Session, reference: str) -> bool:
    existing = session.exec(
        select(OPDBooking.id).where(OPDBooking.booking_reference == reference)
    ).first()
    return existing is not None


class BookingReferenceGenerator:
    """
    Generates booking references.

    The timestamp part never repeats within one generator: when the clock
    has not advanced since the previous call it is bumped by one millisecond.
    """

    TIMESTAMP_CHARS = 4
    RANDOM_CHARS = 3
    FALLBACK_TIMESTAMP_CHARS = 6
    FALLBACK_RANDOM_CHARS = 6

    def __init__(self, max_retries: int = 3, clock: Optional[Callable[[], int]] = None):
        self.max_retries = max_retries
        self._clock = clock or _current_millis
        self._lock = threading.Lock()
        self._last_millis = -1

    def _next_millis(self) -> int:
        with self._lock:
            millis = self._clock()
            if millis <= self._last_millis:
                millis = self._last_millis + 1
            self._last_millis = millis
            return millis

    def _random_hex(self, length: int) -> str:
        return secrets.token_hex((length + 1) // 2)[:length]

    def generate(self) -> str:
        """Candidate reference, not checked against the store"""
        timestamp_part = to_base36(self._next_millis())[-self.TIMESTAMP_CHARS:]
        random_part = self._random_hex(self.RANDOM_CHARS)
        return (timestamp_part + random_part).lower()

    def generate_fallback(self) -> str:
        """Longer reference used once the short form keeps colliding"""
        timestamp_part = to_base36(self._next_millis())[-self.FALLBACK_TIMESTAMP_CHARS:]
        random_part = self._random_hex(self.FALLBACK_RANDOM_CHARS)
        return (timestamp_part + random_part).lower()

    def generate_unique(self, session: Session) -> str:
        """Reference that is not present in opd_bookings at the time of the check"""
        for attempt in range(self.max_retries):
            reference = self.generate()
            if not reference_exists(session, reference):
                return reference
            logger.warning(f"Booking reference collision detected (attempt {attempt + 1}): {reference}")

        reference = self.generate_fallback()
        logger.warning(f"Booking reference retries exhausted, using extended reference {reference}")
        return reference
