"""Reset policy: when does a task become eligible again?

All calendar-aligned categories (Daily, WeeklyMonday, SpecificDay) are
evaluated in the fixed RESET_TIMEZONE (UTC+7), independent of the caller's
locale. Flat-duration categories (Countdown24h, SpecificHours) are plain
offsets from the base instant.

`compute_next_eligible` and `evaluate_reset` are pure: same inputs always
produce the same output and nothing is logged. `reschedule` is the caller-side
wrapper used by the cascade and the reconciliation pass; it logs data-quality
fallbacks.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from taskreset.errors import DataQualityFallback
from taskreset.models.constants import (
    COUNTDOWN_DURATION,
    DAILY_BOUNDARY_TIME,
    LOCAL_MIDNIGHT,
    MONDAY,
    RESET_TIMEZONE,
    SPECIFIC_DAY_FALLBACK,
    SPECIFIC_HOURS_FALLBACK,
)
from taskreset.models.task import ResetParams, TaskCategory, ensure_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResetOutcome:
    """Result of a policy evaluation."""

    next_eligible_at: Optional[datetime]
    fallback: Optional[DataQualityFallback] = None


def local_weekday(day: date) -> int:
    """Weekday index with 0=Sunday ... 6=Saturday."""
    # Python isoweekday: Monday=1 ... Sunday=7
    return day.isoweekday() % 7


def _local_at(day: date, wall_time) -> datetime:
    """The instant of `wall_time` on local calendar day `day`, returned in UTC."""
    return datetime.combine(day, wall_time, tzinfo=RESET_TIMEZONE).astimezone(timezone.utc)


def _valid_hours(hours) -> bool:
    # bool is an int subclass; True is not "1 hour"
    return isinstance(hours, int) and not isinstance(hours, bool) and hours > 0


def _valid_days(days) -> List[int]:
    out: List[int] = []
    for day in days or []:
        if isinstance(day, int) and not isinstance(day, bool) and 0 <= day <= 6 and day not in out:
            out.append(day)
    return out


def _daily(base: datetime, just_completed: bool) -> datetime:
    local_day = base.astimezone(RESET_TIMEZONE).date()
    boundary = _local_at(local_day, DAILY_BOUNDARY_TIME)
    if just_completed or base >= boundary:
        return _local_at(local_day + timedelta(days=1), DAILY_BOUNDARY_TIME)
    return boundary


def _next_weekday_midnight(base: datetime, target_days: List[int]) -> datetime:
    local_day = base.astimezone(RESET_TIMEZONE).date()
    today = local_weekday(local_day)

    candidates = []
    for target in target_days:
        days_ahead = (target - today) % 7
        if days_ahead == 0:
            # base is always at/after today's local midnight, so today's
            # occurrence has already started: aim for next week's.
            days_ahead = 7
        candidates.append(_local_at(local_day + timedelta(days=days_ahead), LOCAL_MIDNIGHT))
    return min(candidates)


def evaluate_reset(
    category: TaskCategory,
    params: Optional[ResetParams],
    base: datetime,
    just_completed: bool = False,
) -> ResetOutcome:
    """Compute the next eligibility instant and report any fallback used.

    Args:
        category: Reset category
        params: Category parameters (days for SpecificDay, hours for SpecificHours)
        base: Instant to compute from (naive values are taken as UTC)
        just_completed: Whether the task was completed at `base`

    Returns:
        ResetOutcome with the UTC instant (None for Ended) and the fallback, if any
    """
    base = ensure_utc(base)
    params = params or ResetParams()

    if category == TaskCategory.ENDED:
        return ResetOutcome(None)

    if category == TaskCategory.COUNTDOWN_24H:
        return ResetOutcome(base + COUNTDOWN_DURATION)

    if category == TaskCategory.SPECIFIC_HOURS:
        if _valid_hours(params.hours):
            return ResetOutcome(base + timedelta(hours=params.hours))
        return ResetOutcome(
            base + SPECIFIC_HOURS_FALLBACK,
            DataQualityFallback(category.value, f"invalid reset hours {params.hours!r}", "24 hours"),
        )

    if category == TaskCategory.DAILY:
        return ResetOutcome(_daily(base, just_completed))

    if category == TaskCategory.WEEKLY_MONDAY:
        return ResetOutcome(_next_weekday_midnight(base, [MONDAY]))

    if category == TaskCategory.SPECIFIC_DAY:
        days = _valid_days(params.days)
        if not days:
            return ResetOutcome(
                base + SPECIFIC_DAY_FALLBACK,
                DataQualityFallback(category.value, f"no valid reset days in {params.days!r}", "7 days"),
            )
        return ResetOutcome(_next_weekday_midnight(base, days))

    raise TypeError(f"Unhandled task category: {category!r}")


def compute_next_eligible(
    category: TaskCategory,
    params: Optional[ResetParams],
    base: datetime,
    just_completed: bool = False,
) -> Optional[datetime]:
    """Next eligibility instant for a category, or None for Ended."""
    return evaluate_reset(category, params, base, just_completed).next_eligible_at


def reschedule(
    category: TaskCategory,
    params: Optional[ResetParams],
    base: datetime,
    just_completed: bool,
    *,
    subject: str,
) -> Optional[datetime]:
    """Like compute_next_eligible, but logs data-quality fallbacks.

    Args:
        subject: Human-readable identification of the task/sub-task, for the log
    """
    outcome = evaluate_reset(category, params, base, just_completed)
    if outcome.fallback is not None:
        logger.warning(f"Data-quality fallback for {subject}: {outcome.fallback}")
    return outcome.next_eligible_at
