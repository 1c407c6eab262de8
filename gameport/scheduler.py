"""
gameport/scheduler.py - Service-availability window and recurring timers.

The service is open while the local hour, in a fixed UTC offset, falls in
[open_hour, close_hour). An admin override of online/offline wins over
the clock. The gate applies to player sessions only and is enforced by
whoever renders the screens; engine operations do not check it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from .config import ScheduleConfig
from .models import Override

logger = logging.getLogger(__name__)


class ServiceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass
class Availability:
    status: ServiceStatus
    next_opening: datetime | None = None  # local time in the reference zone; only when closed
    message: str = ""

    @property
    def is_open(self) -> bool:
        return self.status is ServiceStatus.ONLINE


def reference_zone(config: ScheduleConfig) -> timezone:
    return timezone(timedelta(minutes=config.utc_offset_minutes))


def evaluate(
    now: datetime,
    override: Override = Override.AUTO,
    config: ScheduleConfig | None = None,
    message: str = "",
) -> Availability:
    """Compute the service status at a given instant.

    Args:
        now: Current time. Naive values are taken as UTC.
        override: AUTO follows the clock; ONLINE/OFFLINE force the result.
        config: Service window and reference offset.
        message: Maintenance message to carry along.

    Returns:
        Availability. When closed on the clock, next_opening is the window
        start today if the local hour is still before it, otherwise
        tomorrow's window start.
    """
    config = config or ScheduleConfig()

    if override is Override.ONLINE:
        return Availability(ServiceStatus.ONLINE, message=message)
    if override is Override.OFFLINE:
        return Availability(ServiceStatus.OFFLINE, message=message)

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(reference_zone(config))
    hour = local.hour

    if config.open_hour <= hour < config.close_hour:
        return Availability(ServiceStatus.ONLINE, message=message)

    next_opening = local.replace(hour=config.open_hour, minute=0, second=0, microsecond=0)
    if hour >= config.open_hour:
        next_opening += timedelta(days=1)
    return Availability(ServiceStatus.OFFLINE, next_opening=next_opening, message=message)


# ============================================================================
# Recurring timers
# ============================================================================


class PeriodicTask:
    """A callback that becomes due every `interval_seconds`.

    Driven by tick(now) from a single loop; nothing here sleeps or spawns
    threads, so handlers never overlap.
    """

    def __init__(self, name: str, interval_seconds: float, callback: Callable[[datetime], object]):
        if interval_seconds <= 0:
            raise ValueError(f"{name}: interval must be positive, got {interval_seconds}")
        self.name = name
        self.interval = timedelta(seconds=interval_seconds)
        self.callback = callback
        self.last_run: datetime | None = None

    def start(self, now: datetime) -> None:
        """Begin counting the first interval from now."""
        self.last_run = now

    def is_due(self, now: datetime) -> bool:
        return self.last_run is None or now - self.last_run >= self.interval

    def tick(self, now: datetime) -> bool:
        """Run the callback if an interval has elapsed. Returns True if it ran."""
        if not self.is_due(now):
            return False
        self.last_run = now
        self.callback(now)
        return True

    def seconds_until_due(self, now: datetime) -> float:
        if self.last_run is None:
            return 0.0
        remaining = (self.last_run + self.interval - now).total_seconds()
        return max(0.0, remaining)
