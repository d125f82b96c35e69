"""
Review Clock

Converts interval time-units into absolute due timestamps.

One time-unit is ``unit_duration`` of wall-clock time (a day in
production). In accelerated mode the unit is divided by the
``acceleration_factor`` so that, with the default factor of 1440, a
scheduled "day" passes in one minute. The mode is chosen once when the
clock is built; the scheduling algorithm never looks at it.

Retired items are not scheduled with an offset: they are parked at the
fixed ``FAR_FUTURE`` timestamp.

Usage:
    from kanji_srs.services.learning.clock import create_clock

    clock = create_clock()                 # mode from settings
    due = clock.due_at(7, clock.now())     # now + 7 units
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from kanji_srs.config.settings import Settings, get_settings
from kanji_srs.enums.learning import ClockMode

logger = logging.getLogger(__name__)

FAR_FUTURE = datetime(9999, 12, 31, tzinfo=timezone.utc)

TimeSource = Callable[[], datetime]


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class ReviewClock:
    """
    Maps scheduling time-units onto wall-clock time.

    Attributes:
        unit_duration: Wall-clock length of one time-unit in production
        acceleration_factor: Divisor applied to the unit (1 = real time)
        time_source: Callable returning the current aware UTC datetime
    """

    def __init__(
        self,
        unit_duration: timedelta = timedelta(days=1),
        acceleration_factor: int = 1,
        time_source: Optional[TimeSource] = None,
    ):
        if unit_duration <= timedelta(0):
            raise ValueError("unit_duration must be positive")
        if acceleration_factor < 1:
            raise ValueError("acceleration_factor must be >= 1")
        self.unit_duration = unit_duration
        self.acceleration_factor = acceleration_factor
        self.time_source = time_source or utc_now

    @property
    def mode(self) -> ClockMode:
        if self.acceleration_factor == 1:
            return ClockMode.PRODUCTION
        return ClockMode.ACCELERATED

    @property
    def effective_unit(self) -> timedelta:
        """Wall-clock length of one time-unit after acceleration."""
        return self.unit_duration / self.acceleration_factor

    def now(self) -> datetime:
        return self.time_source()

    def due_at(self, interval_units: int, now: datetime) -> datetime:
        """Return ``now`` plus ``interval_units`` time-units."""
        return now + self.effective_unit * interval_units

    def far_future(self) -> datetime:
        return FAR_FUTURE


def create_clock(
    settings: Optional[Settings] = None,
    time_source: Optional[TimeSource] = None,
) -> ReviewClock:
    """
    Create a clock configured from settings.

    SRS_ACCELERATED_MODE is read here, once; the returned clock keeps the
    resulting factor for its lifetime.

    Args:
        settings: Settings to read (defaults to the cached app settings)
        time_source: Optional override for the current time (tests)

    Returns:
        Configured ReviewClock
    """
    settings = settings or get_settings()
    factor = settings.SRS_ACCELERATION_FACTOR if settings.SRS_ACCELERATED_MODE else 1
    clock = ReviewClock(
        unit_duration=timedelta(seconds=settings.SRS_UNIT_SECONDS),
        acceleration_factor=factor,
        time_source=time_source,
    )
    if clock.mode == ClockMode.ACCELERATED:
        logger.warning(
            f"Review clock running in accelerated mode: 1 unit = {clock.effective_unit}"
        )
    return clock
