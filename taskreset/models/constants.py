"""Constants for taskreset.

This module centralizes the fixed scheduling values used throughout the application.
"""

from datetime import time, timedelta, timezone


# All calendar-aligned policies use this zone (UTC+7, no daylight saving).
RESET_TZ_OFFSET_HOURS = 7
RESET_TIMEZONE = timezone(timedelta(hours=RESET_TZ_OFFSET_HOURS), name="UTC+07:00")

# Daily boundary (local wall-clock time)
DAILY_BOUNDARY_TIME = time(23, 59)
LOCAL_MIDNIGHT = time(0, 0)

# Flat durations
COUNTDOWN_DURATION = timedelta(hours=24)
SPECIFIC_HOURS_FALLBACK = timedelta(hours=24)
SPECIFIC_DAY_FALLBACK = timedelta(days=7)

# Weekday indices use 0=Sunday ... 6=Saturday
SUNDAY = 0
MONDAY = 1
SATURDAY = 6
WEEKDAY_NAMES = {
    0: "Sunday",
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
}

# Reconciliation
DEFAULT_RECONCILE_INTERVAL_SECONDS = 60.0
MIN_RECONCILE_INTERVAL_SECONDS = 0.01
