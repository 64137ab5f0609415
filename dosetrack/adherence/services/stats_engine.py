"""
Adherence statistics.

Pure functions deriving streak, completion rate and monthly aggregates
from a record set. Nothing here raises on malformed or empty input:
records with unparseable dates are skipped and empty input yields
all-zero defaults. Percentages stay unrounded; use round_percentage()
at the presentation boundary.
"""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from dosetrack.adherence.models import (
    DailyRecord,
    DerivedStats,
    MonthlyProgress,
    PeriodStats,
)

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"
COMPLETION_WINDOW_DAYS = 30


def parse_date(value: str) -> Optional[date]:
    """Parse YYYY-MM-DD, returning None for anything else."""
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError):
        return None


def completed_by_date(records: Iterable[DailyRecord]) -> Dict[date, DailyRecord]:
    """
    Index completed records by calendar date.

    A date with more than one completed record counts once; the first
    record encountered wins.
    """
    by_date: Dict[date, DailyRecord] = {}
    for record in records:
        if not record.completed:
            continue
        day = parse_date(record.date)
        if day is None:
            continue
        by_date.setdefault(day, record)
    return by_date


def _dose(record: DailyRecord) -> int:
    return record.doseAmount if record.doseAmount > 0 else 0


def current_streak(records: List[DailyRecord], today: date) -> int:
    """
    Count consecutive completed days ending today.

    Algorithm:
        1. Today completed -> start at today
        2. Today has a record that is not completed -> 0
        3. No record for today -> start at yesterday (today is still open)
        4. Walk backward one day at a time until the first gap
    """
    completed = completed_by_date(records)

    if today in completed:
        cursor = today
    elif any(parse_date(r.date) == today for r in records):
        return 0
    else:
        cursor = today - timedelta(days=1)

    streak = 0
    while cursor in completed:
        streak += 1
        cursor -= timedelta(days=1)

    return streak


def completion_rate(records: List[DailyRecord], today: date) -> float:
    """
    Percentage of the trailing window with a completed record.

    Window is [today - 30 days, today]; the denominator stays 30 whatever
    the account age, and the result is capped at 100.
    """
    window_start = today - timedelta(days=COMPLETION_WINDOW_DAYS)
    completed_days = sum(
        1 for day in completed_by_date(records) if window_start <= day <= today
    )

    rate = completed_days * 100 / COMPLETION_WINDOW_DAYS
    return min(rate, 100.0)


def _month_bounds(year: int, month: int) -> Tuple[date, date, int]:
    days_in_month = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, days_in_month), days_in_month


def _completed_in_month(
    records: List[DailyRecord],
    year: int,
    month: int
) -> List[DailyRecord]:
    first_day, last_day, _ = _month_bounds(year, month)
    return [
        record
        for day, record in completed_by_date(records).items()
        if first_day <= day <= last_day
    ]


def _consistency(completed_days: int, total_days: int) -> float:
    if total_days <= 0:
        return 0.0
    # Multiply first so a full month is exactly 100.0
    return completed_days * 100 / total_days


def _average(total: int, count: int) -> float:
    return total / count if count > 0 else 0.0


def monthly_progress(records: List[DailyRecord], year: int, month: int) -> MonthlyProgress:
    """Completion and dose aggregates for one calendar month."""
    _, _, total_days = _month_bounds(year, month)
    completed = _completed_in_month(records, year, month)

    completed_days = len(completed)
    total_dose = sum(_dose(r) for r in completed)

    return MonthlyProgress(
        month=f"{year:04d}-{month:02d}",
        completedDays=completed_days,
        totalDaysInMonth=total_days,
        consistency=_consistency(completed_days, total_days),
        totalDoseAmount=total_dose,
        averageDoseAmount=_average(total_dose, completed_days),
    )


def best_day(records: List[DailyRecord]) -> Optional[DailyRecord]:
    """
    Completed record with the highest dose.

    Ties go to the first record encountered.
    """
    best: Optional[DailyRecord] = None
    for record in records:
        if not record.completed:
            continue
        if best is None or _dose(record) > _dose(best):
            best = record
    return best


def period_stats(records: List[DailyRecord], year: int, month: int) -> PeriodStats:
    """Aggregates for the selected period (a calendar month)."""
    progress = monthly_progress(records, year, month)
    top = best_day(_completed_in_month(records, year, month))

    return PeriodStats(
        month=progress.month,
        totalDoseAmount=progress.totalDoseAmount,
        averageDoseAmount=progress.averageDoseAmount,
        bestDay=top.date if top else None,
        consistency=progress.consistency,
        completedDays=progress.completedDays,
        totalDays=progress.totalDaysInMonth,
    )


def derive_stats(
    records: List[DailyRecord],
    today: date,
    selected_month: Optional[Tuple[int, int]] = None
) -> DerivedStats:
    """
    Recompute every derived statistic.

    Args:
        records: The user's full record set
        today: Current local date
        selected_month: (year, month) for periodStats; defaults to today's month

    Returns:
        DerivedStats, or all-zero defaults if the input cannot be read
    """
    try:
        completed = completed_by_date(records)
        total_dose = sum(_dose(r) for r in completed.values())
        year, month = selected_month or (today.year, today.month)

        return DerivedStats(
            totalCompletedDays=len(completed),
            currentStreak=current_streak(records, today),
            averageDoseAmount=_average(total_dose, len(completed)),
            totalDoseAmount=total_dose,
            completionRate=completion_rate(records, today),
            monthlyProgress=monthly_progress(records, today.year, today.month),
            periodStats=period_stats(records, year, month),
        )
    except (AttributeError, TypeError, ValueError) as e:
        logger.error(f"Failed to derive stats from {len(records or [])} records: {e}")
        return DerivedStats()


def round_percentage(value: float, digits: int = 1) -> float:
    """Round a percentage for display."""
    return round(value, digits)
