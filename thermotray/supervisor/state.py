import time
from enum import Enum
from typing import NamedTuple, Optional


class SessionPhase(Enum):
    STARTING = "starting"
    CONNECTED = "connected"
    RECEIVING = "receiving"
    STALE = "stale"
    EXITED = "exited"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class TickOutcome(Enum):
    """What a single liveness check decided."""
    HEALTHY = "healthy"
    EXITED = "exited"
    STALE = "stale"
    MISSING = "missing"
    CLOSED = "closed"


class ReadingSnapshot(NamedTuple):
    reading: Optional[float]
    last_update: float


class ReadingState:
    """
    The latest reading and the time it arrived.

    Both fields are plain attributes with a single writer each (the channel
    listener, plus the supervisor resetting last_update when a session starts),
    so readers on other threads need no lock.
    """

    def __init__(self) -> None:
        self.current_reading: Optional[float] = None
        self.last_update: float = time.monotonic()

    def record(self, value: float, now: float) -> None:
        """Stores a decoded reading received at `now`."""
        self.current_reading = value
        self.last_update = now

    def touch(self, now: float) -> None:
        """Resets the silence timer without changing the reading."""
        self.last_update = now

    def silence(self, now: float) -> float:
        """Seconds since the last reading (or the last session start)."""
        return now - self.last_update

    def is_stale(self, now: float, max_silence: float) -> bool:
        return self.silence(now) > max_silence

    def snapshot(self) -> ReadingSnapshot:
        return ReadingSnapshot(self.current_reading, self.last_update)
