import logging
import threading
from typing import Callable, Optional

from thermotray.config import effective_settings as config
from thermotray.errors import SupervisorClosedError, WorkerUnkillableError
from thermotray.supervisor.state import SessionPhase, TickOutcome
from thermotray.supervisor.supervisor import ProcessSupervisor

log = logging.getLogger(__name__)


class LivenessMonitor:
    """
    Periodic control loop that restarts the worker when it exits or goes silent.

    Each tick checks, in order: is there a live session, has the worker
    exited, has the last reading gone stale. Restarts happen synchronously
    inside the tick. A worker that cannot be killed ends the loop; the error
    is kept in `fatal_error` and handed to `on_fatal`.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        interval: Optional[float] = None,
        max_silence: Optional[float] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
    ) -> None:
        self.supervisor = supervisor
        self.interval = config.MONITOR_INTERVAL_SECONDS if interval is None else interval
        self.max_silence = config.MAX_SILENCE_SECONDS if max_silence is None else max_silence
        self.on_fatal = on_fatal
        self.fatal_error: Optional[BaseException] = None
        self.restarts = 0

        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tick(self) -> TickOutcome:
        """
        Runs one liveness check and restarts the worker if needed.

        :raises WorkerUnkillableError: If the old worker could not be stopped.
        :raises SupervisorClosedError: If the supervisor was closed during the tick.
        """
        if self.supervisor.closed:
            return TickOutcome.CLOSED

        session = self.supervisor.session
        if session is None:
            log.warning("No sensor process running, starting one...")
            return self._restart(TickOutcome.MISSING, "no active session")

        exit_code = session.process.poll()
        if exit_code is not None:
            session.mark(SessionPhase.EXITED)
            log.warning(f"Sensor process exited unexpectedly with code {exit_code}, restarting...")
            return self._restart(TickOutcome.EXITED, f"exit code {exit_code}")

        silence = self.supervisor.state.silence(self.supervisor.clock())
        if silence > self.max_silence:
            session.mark(SessionPhase.STALE)
            log.warning(f"Sensor process silent for {silence:.1f}s, restarting...")
            return self._restart(TickOutcome.STALE, f"silent for {silence:.1f}s")

        return TickOutcome.HEALTHY

    def _restart(self, outcome: TickOutcome, reason: str) -> TickOutcome:
        self.restarts += 1
        try:
            self.supervisor.restart(reason)
        except (WorkerUnkillableError, SupervisorClosedError):
            raise
        except Exception as e:
            # Retried on the next tick through the missing-session branch.
            log.error(f"Failed to restart sensor process: {e}", exc_info=True)
        return outcome

    def run(self) -> None:
        """Starts the first session, then ticks until cancelled or a fatal error occurs."""
        log.info("Liveness monitor started.")
        try:
            try:
                self.supervisor.start()
            except (WorkerUnkillableError, SupervisorClosedError):
                raise
            except Exception as e:
                log.error(f"Initial sensor process start failed: {e}", exc_info=True)

            while not self._cancel.wait(self.interval):
                self.tick()
        except SupervisorClosedError:
            log.debug("Supervisor closed, liveness monitor exiting.")
        except Exception as e:
            self.fatal_error = e
            log.critical(f"Liveness monitor stopped on a fatal error: {e}", exc_info=True)
            if self.on_fatal:
                self.on_fatal(e)
        log.info("Liveness monitor stopped.")

    def start(self) -> None:
        """Runs the monitor loop in a background thread."""
        self._cancel.clear()
        self._thread = threading.Thread(target=self.run, daemon=True, name="LivenessMonitorThread")
        self._thread.start()

    def cancel(self) -> None:
        self._cancel.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        if self._thread is not None:
            self._thread.join(timeout)
            return not self._thread.is_alive()
        return True

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
