"""Reporting time windows shared by the statistics endpoints."""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Optional

from ..errors import BadRequestError

PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}
DEFAULT_PERIOD = "month"


def resolve_window(
    period: Optional[str],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    today: Optional[date] = None,
) -> tuple[date, Optional[date]]:
    """Return the inclusive `(start, end)` dates for a period name.

    `day` is today only; `week`/`month`/`year` reach back 7/30/365 days
    with no upper bound (`end` is None);
    `custom` uses the explicit bounds. Anything else falls back to
    `month`.
    """
    today = today or date.today()
    period = (period or DEFAULT_PERIOD).lower()
    if period == "day":
        return today, today
    if period == "custom":
        if start_date is None or end_date is None:
            raise BadRequestError("start_date and end_date are required for a custom period")
        if end_date < start_date:
            raise BadRequestError("end_date must not be before start_date")
        return start_date, end_date
    days = PERIOD_DAYS.get(period, PERIOD_DAYS[DEFAULT_PERIOD])
    return today - timedelta(days=days), None


def _round_half_up(value) -> int:
    return int(math.floor(value + 0.5))


def minutes_to_hours(minutes) -> int:
    return _round_half_up((minutes or 0) / 60)


def percent(part, whole) -> int:
    return _round_half_up((part or 0) * 100 / whole) if whole else 0
