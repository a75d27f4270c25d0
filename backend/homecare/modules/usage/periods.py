"""Billing period arithmetic.

Periods are calendar months in UTC. Rollover is lazy: every read or write
first asks ``effective_period`` which period it should touch, so there is
no scheduled reset job. All functions here are pure given a clock reading.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol


class PeriodLike(Protocol):
    period_start: datetime
    period_end: datetime


class PeriodState(str, Enum):
    """Lifecycle of a usage period.

    EMPTY -> ACCUMULATING -> (NORMAL | WARNING, revisited on every
    mutation) -> EXPIRED -> superseded by a new EMPTY period.
    """
    EMPTY = "empty"
    NORMAL = "normal"
    WARNING = "warning"
    EXPIRED = "expired"


@dataclass(frozen=True)
class PeriodBounds:
    """Half-open interval [start, end)."""
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


@dataclass(frozen=True)
class EffectivePeriod:
    bounds: PeriodBounds
    # True when no stored period covers ``now`` and a new one must be opened
    is_new: bool


def month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def next_month_start(moment: datetime) -> datetime:
    start = month_start(moment)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def period_bounds_for(now: datetime) -> PeriodBounds:
    """Calendar-month bounds containing ``now``."""
    return PeriodBounds(start=month_start(now), end=next_month_start(now))


def effective_period(
    now: datetime,
    current: Optional[PeriodLike],
) -> EffectivePeriod:
    """Decide which period a read or write at ``now`` applies to.

    A stored period stays active until ``now`` reaches its ``period_end``.
    Once expired (or when there is none) the caller opens the calendar
    period containing ``now`` directly, however many periods were skipped.
    The new period never starts before the expired one ended, so a
    shortened legacy period cannot collide with its successor.

    Args:
        now: Current naive-UTC time
        current: The user's most recent stored period, if any

    Returns:
        EffectivePeriod with the bounds to use
    """
    if current is not None and now < current.period_end:
        return EffectivePeriod(
            bounds=PeriodBounds(start=current.period_start, end=current.period_end),
            is_new=False,
        )

    bounds = period_bounds_for(now)
    if current is not None and current.period_end > bounds.start:
        bounds = PeriodBounds(start=current.period_end, end=bounds.end)
    return EffectivePeriod(bounds=bounds, is_new=True)


def period_state(
    now: datetime,
    period: PeriodLike,
    total_usage: float,
    has_warnings: bool,
) -> PeriodState:
    """Classify a period for display."""
    if now >= period.period_end:
        return PeriodState.EXPIRED
    if total_usage <= 0:
        return PeriodState.EMPTY
    if has_warnings:
        return PeriodState.WARNING
    return PeriodState.NORMAL
