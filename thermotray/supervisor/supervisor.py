import time
import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from thermotray.channel import new_channel_identity
from thermotray.config import effective_settings as config
from thermotray.errors import SupervisorClosedError, WorkerUnkillableError
from thermotray.supervisor import process_utils
from thermotray.supervisor.listener import ChannelListener
from thermotray.supervisor.session import SupervisionSession
from thermotray.supervisor.state import ReadingState, SessionPhase

log = logging.getLogger(__name__)

Launcher = Callable[[str], process_utils.WorkerProcess]


class ProcessSupervisor:
    """
    Owns the worker process, its channel and the restart policy.

    At most one SupervisionSession is live at a time. Every start tears the
    previous session down completely and opens a channel under a brand new
    identity, so a connection meant for an old session can never reach the
    new listener.
    """

    def __init__(
        self,
        state: Optional[ReadingState] = None,
        launcher: Optional[Launcher] = None,
        channel_dir: Optional[Path] = None,
        stop_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        on_reading: Optional[Callable[[float], None]] = None,
        on_session_started: Optional[Callable[[SupervisionSession], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.state = state or ReadingState()
        self.channel_dir = channel_dir
        self.stop_timeout = config.STOP_TIMEOUT_SECONDS if stop_timeout is None else stop_timeout
        self.poll_interval = poll_interval
        self.on_reading = on_reading
        self.on_session_started = on_session_started
        self.clock = clock
        self._launcher: Launcher = launcher or (
            lambda identity: process_utils.launch_worker(identity, channel_dir)
        )

        self._session: Optional[SupervisionSession] = None
        self._closed = False
        self._lock = threading.RLock()
        self.sessions_started = 0

    @property
    def session(self) -> Optional[SupervisionSession]:
        return self._session

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> SupervisionSession:
        """
        Tears down any existing session and starts a new worker on a new channel.

        :return SupervisionSession: The newly created session.
        :raises SupervisorClosedError: If close() was already called.
        :raises WorkerUnkillableError: If the previous worker could not be stopped.
        """
        with self._lock:
            if self._closed:
                raise SupervisorClosedError("Supervisor is shut down, refusing to start a worker.")
            self._teardown_session()

            identity = new_channel_identity()
            listener = ChannelListener(
                identity,
                self.state,
                channel_dir=self.channel_dir,
                poll_interval=self.poll_interval,
                on_reading=self.on_reading,
                clock=self.clock,
            )
            listener.start()

            # Give a slow-starting worker a full silence window.
            now = self.clock()
            self.state.touch(now)
            try:
                process = self._launcher(identity)
            except Exception:
                log.error(f"Failed to launch worker for channel '{identity}'.")
                listener.stop()
                raise

            self._session = SupervisionSession(identity, process, listener, started_at=now)
            self.sessions_started += 1
            log.info(f"Sensor process started with PID {process.pid} on channel '{identity}'.")

            if self.on_session_started:
                self.on_session_started(self._session)
            return self._session

    def stop(self) -> None:
        """
        Stops the current worker and cancels its listener. A no-op when stopped.

        :raises WorkerUnkillableError: If the worker is still alive after the stop timeout.
        """
        with self._lock:
            self._teardown_session()

    def restart(self, reason: str = "") -> SupervisionSession:
        """Stops the current session, then starts a fresh one."""
        with self._lock:
            if self._closed:
                raise SupervisorClosedError("Supervisor is shut down, refusing to restart the worker.")
            session = self._session
            if session is not None:
                session.mark(SessionPhase.RESTARTING)
            log.info(f"Restarting sensor process{': ' + reason if reason else ''}")
            return self.start()

    def close(self) -> None:
        """Stops the current session and refuses any further starts."""
        with self._lock:
            self._closed = True
            self._teardown_session()
        log.debug("Supervisor closed.")

    def _teardown_session(self) -> None:
        session = self._session
        if session is None:
            return
        self._session = None

        try:
            if session.process.is_running():
                log.debug(f"Stopping sensor process (PID {session.process.pid})...")
                if not session.process.kill_and_wait(self.stop_timeout):
                    log.critical(
                        f"Sensor process (PID {session.process.pid}) did not exit "
                        f"{self.stop_timeout:.1f}s after kill."
                    )
                    raise WorkerUnkillableError(session.process.pid, self.stop_timeout)
            session.mark(SessionPhase.STOPPED)
        finally:
            session.listener.stop()
