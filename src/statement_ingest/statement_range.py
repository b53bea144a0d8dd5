"""Infer the date range a statement covers from its header metadata."""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Final, Optional, Tuple

from statement_ingest.models import StatementMeta

__all__ = ["FALLBACK_WINDOW_DAYS", "infer_statement_date_range"]

FALLBACK_WINDOW_DAYS: Final = 35


def _parse_iso(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _previous_cut_off(cut_off: date, cut_off_day: int) -> date:
    year, month = (cut_off.year, cut_off.month - 1) if cut_off.month > 1 else (
        cut_off.year - 1,
        12,
    )
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(max(cut_off_day, 1), last_day))


def infer_statement_date_range(
    meta: StatementMeta, cut_off_day: Optional[int] = None
) -> Optional[Tuple[str, str]]:
    """Return ``(start, end)`` ISO dates or ``None`` when nothing is known.

    1. the period printed on the statement (its end defaults to the cut-off);
    2. with the account's *cut_off_day*, the day after the previous month's
       cut-off through the cut-off;
    3. a fixed window ending at the cut-off or, failing that, the due date.
    """

    start = _parse_iso(meta.statement_period_start)
    cut_off = _parse_iso(meta.cut_off_date)
    end = _parse_iso(meta.statement_period_end) or cut_off
    if start and end:
        return start.isoformat(), end.isoformat()

    if cut_off and cut_off_day:
        previous = _previous_cut_off(cut_off, cut_off_day)
        return (previous + timedelta(days=1)).isoformat(), cut_off.isoformat()

    window_end = cut_off or _parse_iso(meta.due_date)
    if window_end is None:
        return None
    window_start = window_end - timedelta(days=FALLBACK_WINDOW_DAYS)
    return window_start.isoformat(), window_end.isoformat()
