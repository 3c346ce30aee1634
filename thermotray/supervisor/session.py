import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from thermotray.supervisor.state import SessionPhase

if TYPE_CHECKING:
    from .listener import ChannelListener
    from .process_utils import WorkerProcess


@dataclass
class SupervisionSession:
    """
    One (worker process, channel identity) pairing, from start to teardown.
    Owned exclusively by the ProcessSupervisor.
    """

    identity: str
    process: "WorkerProcess"
    listener: "ChannelListener"
    started_at: float = field(default_factory=time.monotonic)
    _marked: Optional[SessionPhase] = field(default=None, repr=False)

    @property
    def phase(self) -> SessionPhase:
        """
        The session's position in STARTING -> CONNECTED -> RECEIVING -> ...

        Progress is read from the listener until the monitor or the
        supervisor marks a later phase explicitly.
        """
        if self._marked is not None:
            return self._marked
        if self.listener.readings_received:
            return SessionPhase.RECEIVING
        if self.listener.connected.is_set():
            return SessionPhase.CONNECTED
        return SessionPhase.STARTING

    def mark(self, phase: SessionPhase) -> None:
        self._marked = phase
