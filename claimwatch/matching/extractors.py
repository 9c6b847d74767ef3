"""Signal extraction from on-screen text.

Turns raw node text into the four signals the matcher compares against the
active criteria: a price candidate, a zone identifier, a start hour and a
duration in hours.
"""

import re
from dataclasses import dataclass
from typing import Optional

# "9:30", "09:30 AM", "1:00p.m."
_TIME_RE = re.compile(
    r"(?<!\d)(\d{1,2})\s*:\s*(\d{2})(?!\d)\s*([AaPp]\.?\s?[Mm]\.?)?"
)
# "4 hrs", "3.5 hours", "2h"
_HOURS_NEAR_NUMBER_RE = re.compile(
    r"(\d+)(?:\.\d+)?\s*(?:hours?|hrs?|h)(?![A-Za-z])", re.IGNORECASE
)
_HOURS_MARKER_RE = re.compile(
    r"(?<![A-Za-z])(?:hours?|hrs?|h|duration)(?![A-Za-z])", re.IGNORECASE
)
_FIRST_INT_RE = re.compile(r"\d+")
_NUMERIC_FRAGMENT_RE = re.compile(r"(?=.*\d)[\d.]+")


@dataclass(frozen=True)
class PriceCandidate:
    """A price read from the screen; ranges keep both bounds."""

    text: str
    lower: float
    upper: Optional[float] = None

    def satisfies(self, min_price: int) -> bool:
        """Ranges are judged on their lower bound, inclusively."""
        return self.lower >= min_price


@dataclass(frozen=True)
class StartTime:
    hour: int
    minute: int
    meridiem: Optional[str] = None


class SignalExtractor:
    """Parse price, zone, start-time and duration signals out of text."""

    def __init__(self, currency_marker: str = "$", zone_marker: str = "Delivery Area"):
        self.currency_marker = currency_marker
        self.zone_marker = zone_marker
        marker = re.escape(currency_marker)
        self._price_re = re.compile(
            marker + r"\s*(\d+(?:\.\d+)?)"
            r"(?:\s*[-–]\s*(?:" + marker + r")?\s*(\d+(?:\.\d+)?))?"
        )

    # ── Split prices ─────────────────────────────────────────────────────

    def is_marker_only(self, text: Optional[str]) -> bool:
        """True for a node that holds nothing but the currency marker."""
        return text is not None and text.strip() == self.currency_marker

    def is_numeric_fragment(self, text: Optional[str]) -> bool:
        """True for digits/decimal-point-only text such as ``40`` or ``12.50``."""
        return text is not None and _NUMERIC_FRAGMENT_RE.fullmatch(text.strip()) is not None

    def combine(self, numeric_text: str) -> str:
        return f"{self.currency_marker}{numeric_text.strip()}"

    # ── Signals ──────────────────────────────────────────────────────────

    def has_currency(self, text: Optional[str]) -> bool:
        return text is not None and self.currency_marker in text

    def price(self, text: Optional[str]) -> Optional[PriceCandidate]:
        """First price in ``text``; ``$20-$35`` gives lower=20, upper=35."""
        if not self.has_currency(text):
            return None
        match = self._price_re.search(text)
        if match is None:
            return None
        lower = float(match.group(1))
        upper = float(match.group(2)) if match.group(2) else None
        return PriceCandidate(text=match.group(0), lower=lower, upper=upper)

    def zone(self, text: Optional[str]) -> Optional[str]:
        """Digits of a text carrying the zone marker phrase (``Delivery Area 3`` -> ``3``)."""
        if not text or self.zone_marker.lower() not in text.lower():
            return None
        digits = "".join(ch for ch in text if ch.isdigit())
        return digits or None

    def start_time(self, text: Optional[str]) -> Optional[StartTime]:
        """First time of day in ``text``, with the hour on a 24-hour clock.

        ``12:30 AM`` gives hour 0 and ``1:00 PM`` gives 13. Without a
        meridiem the hour is taken as displayed.
        """
        if not text:
            return None
        match = _TIME_RE.search(text)
        if match is None:
            return None
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            return None
        meridiem = match.group(3)
        if meridiem:
            meridiem = meridiem.replace(".", "").replace(" ", "").upper()
            if not 1 <= hour <= 12:
                return None
            hour = hour % 12 + (12 if meridiem == "PM" else 0)
        return StartTime(hour=hour, minute=minute, meridiem=meridiem)

    def start_hour(self, text: Optional[str]) -> Optional[int]:
        start = self.start_time(text)
        return start.hour if start is not None else None

    def duration_hours(self, text: Optional[str]) -> Optional[int]:
        """Whole hours of a duration text (``4 hrs`` -> 4, ``Hours: 3`` -> 3)."""
        # Number next to the marker first: the first digit of "10:00 (3 hrs)" is the start time.
        if not text or not _HOURS_MARKER_RE.search(text):
            return None
        near = _HOURS_NEAR_NUMBER_RE.search(text)
        if near is not None:
            return int(near.group(1))
        first = _FIRST_INT_RE.search(text)
        return int(first.group(0)) if first is not None else None
