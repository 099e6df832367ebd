"""Continuous sun-position model built from discrete sunrise/sunset samples.

The altitude signal is a display model, not astronomy: the day is mapped onto
half a sine wave between sunrise and sunset (peak at the midpoint, not true
solar noon) and the night onto a negative half wave. Yesterday's sunset is
approximated as today's sunset minus 24 hours.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from .datetime_utils import add_minutes, format_time_label, format_time_range, start_of_day
from .models import SunTimes

DAY_SECONDS = 24 * 3600
GOLDEN_HOUR_MINUTES = 60
BLUE_HOUR_MINUTES = 30


def _segment_progress(t: datetime, start: datetime, end: datetime) -> float | None:
    span = (end - start).total_seconds()
    if span <= 0:
        return None
    progress = (t - start).total_seconds() / span
    return max(0.0, min(1.0, progress))


def altitude(
    t: datetime,
    today_sunrise: datetime,
    today_sunset: datetime,
    next_sunrise: datetime | None = None,
) -> float | None:
    """Return a pseudo altitude in [-1, 1] for ``t``, or None for a degenerate day.

    0 at sunrise and sunset, 1 at the middle of the day, -1 at the middle of
    the night. ``next_sunrise`` defaults to today's sunrise plus 24 hours.
    """
    if today_sunset <= today_sunrise:
        return None
    if today_sunrise <= t <= today_sunset:
        progress = _segment_progress(t, today_sunrise, today_sunset)
        if progress is None:
            return None
        return math.sin(math.pi * progress)

    if t < today_sunrise:
        night_start = today_sunset - timedelta(days=1)
        night_end = today_sunrise
    else:
        night_start = today_sunset
        night_end = next_sunrise if next_sunrise is not None else today_sunrise + timedelta(days=1)
    night_progress = _segment_progress(t, night_start, night_end)
    if night_progress is None:
        return None
    return -math.sin(math.pi * night_progress)


def day_progress(t: datetime) -> float:
    """Fraction of the calendar day (midnight to midnight) elapsed at ``t``."""
    elapsed = (t - start_of_day(t)).total_seconds()
    return max(0.0, min(1.0, elapsed / DAY_SECONDS))


def sun_path(
    day: datetime,
    sun_times: SunTimes,
    next_sunrise: datetime | None = None,
    *,
    steps: int = 96,
) -> list[tuple[float, float]]:
    """Sample (day_progress, altitude) points across the calendar day of ``day``.

    Points whose altitude is undefined are omitted, so a degenerate day yields
    an empty path.
    """
    if steps <= 0:
        raise ValueError("steps must be positive")
    midnight = start_of_day(day)
    step = timedelta(seconds=DAY_SECONDS / steps)
    points: list[tuple[float, float]] = []
    for index in range(steps + 1):
        moment = midnight + step * index
        value = altitude(moment, sun_times.sunrise, sun_times.sunset, next_sunrise)
        if value is None:
            continue
        points.append((index / steps, value))
    return points


@dataclass(frozen=True, slots=True)
class TimeWindow:
    start: datetime
    end: datetime

    @property
    def label(self) -> str:
        return format_time_range(self.start, self.end)


def golden_hour(sun_times: SunTimes) -> tuple[TimeWindow, TimeWindow]:
    """Morning and evening golden hour windows."""
    morning = TimeWindow(sun_times.sunrise, add_minutes(sun_times.sunrise, GOLDEN_HOUR_MINUTES))
    evening = TimeWindow(add_minutes(sun_times.sunset, -GOLDEN_HOUR_MINUTES), sun_times.sunset)
    return morning, evening


def blue_hour(sun_times: SunTimes) -> tuple[TimeWindow, TimeWindow]:
    """Morning and evening blue hour windows."""
    morning = TimeWindow(add_minutes(sun_times.sunrise, -BLUE_HOUR_MINUTES), sun_times.sunrise)
    evening = TimeWindow(sun_times.sunset, add_minutes(sun_times.sunset, BLUE_HOUR_MINUTES))
    return morning, evening


@dataclass(frozen=True, slots=True)
class SunDetails:
    sunrise: str
    sunset: str
    golden_hour: str
    blue_hour: str


def sun_details(sun_times: SunTimes) -> SunDetails:
    golden_morning, golden_evening = golden_hour(sun_times)
    blue_morning, blue_evening = blue_hour(sun_times)
    return SunDetails(
        sunrise=format_time_label(sun_times.sunrise),
        sunset=format_time_label(sun_times.sunset),
        golden_hour=f"{golden_morning.label} / {golden_evening.label}",
        blue_hour=f"{blue_morning.label} / {blue_evening.label}",
    )
