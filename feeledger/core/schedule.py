"""Billing calendar for fee structures: which months are billed and when each is due."""

import calendar
import re
from datetime import date
from typing import List, Optional

from feeledger.core.enums import FeeFrequency

_STEP = {
    FeeFrequency.monthly.value: 1,
    FeeFrequency.quarterly.value: 3,
}


def base_year(academic_year: Optional[str], today: date) -> int:
    """First calendar year of an academic year label ("2026-2027" -> 2026); today's year otherwise."""
    if academic_year:
        match = re.match(r"\s*(\d{4})", academic_year)
        if match:
            return int(match.group(1))
    return today.year


def _add_months(d: date, months: int) -> date:
    index = d.month - 1 + months
    return date(d.year + index // 12, index % 12 + 1, 1)


def billing_months(start_month: int, end_month: int, frequency: str, year: int) -> List[date]:
    """
    First day of every billed month.

    A range whose end month precedes its start month runs into the following
    calendar year (April to March). Yearly structures bill once, at the start.
    """
    start = date(year, start_month, 1)
    end_year = year + 1 if end_month < start_month else year
    end = date(end_year, end_month, 1)

    if frequency == FeeFrequency.yearly.value:
        return [start]

    step = _STEP.get(frequency)
    if step is None:
        raise ValueError(f"Unknown frequency: {frequency}")

    months = []
    current = start
    while current <= end:
        months.append(current)
        current = _add_months(current, step)
    return months


def due_date_for(month: date, due_day: Optional[int], default_day: int = 15) -> date:
    """Due date inside the billed month; the day is clamped to 1..31 and to the month's length."""
    day = max(1, min(31, due_day)) if due_day else default_day
    last_day = calendar.monthrange(month.year, month.month)[1]
    return date(month.year, month.month, min(day, last_day))
