"""Exception types raised by the supervisor, the channel and the worker."""

from typing import Optional


class ThermoTrayError(Exception):
    """Base class for all application errors."""


class WorkerStartupError(ThermoTrayError):
    """The worker process was started with missing or invalid arguments."""


class SourceUnavailableError(ThermoTrayError):
    """The value source returned no reading or could not be opened."""


class ChannelError(ThermoTrayError):
    """A channel endpoint could not be created or used."""


class ChannelConnectTimeout(ChannelError):
    """The worker could not attach to the reader end in time."""


class SupervisorClosedError(ThermoTrayError):
    """A session was requested after the supervisor was shut down."""


class WorkerUnkillableError(ThermoTrayError):
    """
    The worker did not exit after being killed.

    This is fatal: the supervisor cannot account for a process it cannot
    control, so it is surfaced to the operator instead of being retried.
    """

    def __init__(self, pid: Optional[int], timeout: float):
        self.pid = pid
        self.timeout = timeout
        super().__init__(f"Worker process (PID {pid}) did not exit within {timeout:.1f}s after kill.")
