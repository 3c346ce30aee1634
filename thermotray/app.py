import os
import sys
import time
import signal
import logging
import threading
from pathlib import Path
from typing import Callable, Optional

import setproctitle

from thermotray.channel import check_platform_support
from thermotray.config import effective_settings as config
from thermotray.display import ConsoleIndicator, Display
from thermotray.errors import ChannelError, WorkerUnkillableError
from thermotray.supervisor import LivenessMonitor, ProcessSupervisor, ReadingState, SupervisionSession
from thermotray.supervisor import persistence

log = logging.getLogger(__name__)


class ThermometerApp:
    """
    Wires the supervisor, the liveness monitor and the display together.

    The calling thread acts as the UI thread: it refreshes the display until
    an exit is requested and then runs the shutdown sequence. Exit requests
    come from signals, the display's exit action or a fatal monitor error.
    """

    def __init__(
        self,
        display: Optional[Display] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        monitor: Optional[LivenessMonitor] = None,
        pid_file: Optional[Path] = None,
        refresh_interval: Optional[float] = None,
    ) -> None:
        if display is None:
            interactive = sys.stdin is not None and sys.stdin.isatty()
            display = ConsoleIndicator(input_stream=sys.stdin if interactive else None)
        self.display = display
        self.pid_file = pid_file
        self.refresh_interval = config.DISPLAY_REFRESH_INTERVAL if refresh_interval is None else refresh_interval
        self.supervisor = supervisor or ProcessSupervisor(
            state=ReadingState(),
            on_session_started=self._record_pids,
        )
        self.monitor = monitor or LivenessMonitor(self.supervisor, on_fatal=self._on_fatal)
        self.exit_requested = threading.Event()
        self._shutdown_error: Optional[BaseException] = None
        self.display.bind_exit(self.request_exit)

    @property
    def state(self) -> ReadingState:
        return self.supervisor.state

    @property
    def fatal_error(self) -> Optional[BaseException]:
        return self.monitor.fatal_error or self._shutdown_error

    def request_exit(self) -> None:
        """Routes the display's exit action to a full shutdown."""
        self.exit_requested.set()

    def _on_fatal(self, error: BaseException) -> None:
        self.exit_requested.set()

    def _record_pids(self, session: SupervisionSession) -> None:
        persistence.write_pid_file({"app": os.getpid(), "worker": session.process.pid}, self.pid_file)

    def refresh_display(self, clock: Callable[[], float] = time.monotonic) -> None:
        snapshot = self.state.snapshot()
        stale = self.state.is_stale(clock(), self.monitor.max_silence)
        self.display.update(snapshot.reading, stale)

    def _install_signal_handlers(self) -> None:
        def handle_shutdown_signal(signum, frame):
            log.info(f"Signal {signum} received, shutting down.")
            self.request_exit()

        signal.signal(signal.SIGTERM, handle_shutdown_signal)
        signal.signal(signal.SIGINT, handle_shutdown_signal)

    def run(self) -> int:
        """
        Runs the indicator until exit is requested.

        :return int: 0 on a clean exit, 1 if the platform is unsupported, another
            instance is running or a fatal error occurred.
        """
        try:
            check_platform_support()
        except ChannelError as e:
            log.critical(f"Cannot supervise the sensor process: {e}")
            self.display.show_failure(f"Sensor supervision unavailable: {e}")
            return 1

        if persistence.check_if_already_running(self.pid_file):
            return 1
        persistence.reap_orphaned_worker(self.pid_file)

        setproctitle.setproctitle(config.APP_PROCESS_TITLE)
        persistence.write_pid_file({"app": os.getpid()}, self.pid_file)
        if threading.current_thread() is threading.main_thread():
            self._install_signal_handlers()

        log.info("=" * 20 + " ThermoTray Starting " + "=" * 20)
        self.display.update(None, False)
        self.monitor.start()
        try:
            while not self.exit_requested.wait(self.refresh_interval):
                self.refresh_display()
        finally:
            self.shutdown()

        if self.fatal_error is not None:
            self.display.show_failure(f"Sensor supervision failed: {self.fatal_error}")
            return 1
        return 0

    def shutdown(self) -> None:
        """
        Stops the worker session first, then the monitor loop.

        Closing the supervisor before cancelling the monitor means a restart
        already in flight finishes first and no new one can begin.
        """
        log.info("Shutting down sensor supervision...")
        try:
            self.supervisor.close()
        except WorkerUnkillableError as e:
            log.critical(f"Sensor process could not be stopped during shutdown: {e}")
            self._shutdown_error = e
        finally:
            self.monitor.cancel()
            if not self.monitor.join(timeout=self.monitor.interval + self.supervisor.stop_timeout + 1):
                log.warning("Liveness monitor did not stop in time.")
            self.display.close()
            persistence.remove_pid_file(self.pid_file)
        log.info("ThermoTray stopped.")
