"""Calendar-quarter (CYQ) earnings schedule helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

logger = logging.getLogger(__name__)

# Second report inside one calendar quarter goes to "<CYQ>L"
LATE_SUFFIX = "L"


@dataclass(frozen=True, slots=True)
class EarningsSlot:
    cyq: str  # e.g. "2024Q1" or "2024Q1L"
    earnings_date: str  # YYYY-MM-DD


def parse_date(value: str) -> date | None:
    """Strict ``YYYY-MM-DD``; anything else is None."""
    text = str(value or "")
    if len(text) != 10:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def to_cyq(value: str | date) -> str | None:
    """``"2024-05-02" -> "2024Q2"``."""
    day = value if isinstance(value, date) else parse_date(value)
    if day is None:
        return None
    return f"{day.year}Q{(day.month - 1) // 3 + 1}"


def relevant_dates(dates: list[str], today: date | None = None) -> list[str]:
    """Keep dates from the last twelve months onward, sorted ascending."""
    today = today or date.today()
    try:
        cutoff = today.replace(year=today.year - 1)
    except ValueError:  # Feb 29
        cutoff = today.replace(year=today.year - 1, day=28)

    kept = []
    for value in dates:
        day = parse_date(value)
        if day is not None and day >= cutoff:
            kept.append(day)
    return [d.isoformat() for d in sorted(set(kept))]


def assign_cyq_slots(dates: list[str]) -> list[EarningsSlot]:
    """Map dates to calendar-quarter slots in chronological order.

    The first report in a quarter takes the plain slot; any later one in the
    same quarter takes the ``L`` slot (a third report replaces the second).
    """
    slots: dict[str, EarningsSlot] = {}
    for value in sorted(d for d in dates if parse_date(d) is not None):
        base = to_cyq(value)
        cyq = base
        if cyq in slots:
            cyq = base + LATE_SUFFIX
            logger.debug("Multiple earnings in %s, using %s for %s", base, cyq, value)
        slots[cyq] = EarningsSlot(cyq=cyq, earnings_date=value)
    return list(slots.values())
