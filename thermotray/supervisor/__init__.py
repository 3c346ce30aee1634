"""
The Supervisor package.
Manages the lifecycle of the sensor worker process and its channel.

This package contains the ProcessSupervisor, the per-session ChannelListener
and the LivenessMonitor, which together start, watch and restart the worker.
"""
from .state import ReadingState, SessionPhase, TickOutcome
from .session import SupervisionSession
from .supervisor import ProcessSupervisor
from .monitor import LivenessMonitor

__all__ = [
    'ReadingState', 'SessionPhase', 'TickOutcome',
    'SupervisionSession', 'ProcessSupervisor', 'LivenessMonitor',
]
