"""Schedule gate, lookback window and processing budgets for scheduled runs."""

from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from typing import Callable

from deposit_reconciler.core.constants import ScheduleFrequency


def should_run(
    configuration,
    now: datetime,
    min_interval: timedelta = timedelta(hours=1),
) -> bool:
    """Whether a configuration is due at ``now``.

    Due means scheduling is enabled, the hour matches, the weekday matches for
    weekly schedules, and the previous run is at least ``min_interval`` old.
    """
    if not configuration.schedule_enabled:
        return False
    if now.hour != configuration.schedule_hour:
        return False
    if (
        configuration.schedule_frequency == ScheduleFrequency.WEEKLY.value
        and now.isoweekday() != configuration.schedule_day
    ):
        return False
    last_run = configuration.last_run_at
    if last_run is not None and now - last_run < min_interval:
        return False
    return True


def lookback_window(configuration, today: date) -> tuple[date, date]:
    """``[today - lookback_days, today]`` for a configuration."""
    days = configuration.lookback_days if configuration.lookback_days is not None else 1
    return today - timedelta(days=days), today


class ProcessingBudget(ABC):
    """Cooperative quota checked between units of work."""

    @abstractmethod
    def remaining(self) -> float:
        raise NotImplementedError


class UnlimitedBudget(ProcessingBudget):
    def remaining(self) -> float:
        return math.inf


class DeadlineBudget(ProcessingBudget):
    """Seconds left before a wall-clock deadline."""

    def __init__(
        self,
        seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.clock = clock
        self.deadline = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self.deadline - self.clock())
