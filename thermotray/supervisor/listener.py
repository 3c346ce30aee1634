import time
import socket
import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from thermotray.channel import channel_address, decode_reading, open_reader_endpoint, remove_endpoint
from thermotray.config import effective_settings as config
from thermotray.supervisor.state import ReadingState

log = logging.getLogger(__name__)

# A writer that never sends a newline must not grow the buffer forever.
MAX_LINE_BYTES = 1024


class ChannelListener:
    """
    Reader end of one session's channel, running in its own thread.

    The endpoint is bound in start() so it exists before the worker is
    spawned. Exactly one connection is accepted; every decoded line updates
    the shared ReadingState. Malformed lines are dropped without touching it.
    """

    def __init__(
        self,
        identity: str,
        state: ReadingState,
        channel_dir: Optional[Path] = None,
        poll_interval: Optional[float] = None,
        on_reading: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.identity = identity
        self.address = channel_address(identity, channel_dir)
        self.state = state
        self.poll_interval = poll_interval or config.CHANNEL_POLL_INTERVAL
        self.on_reading = on_reading
        self._clock = clock

        self.connected = threading.Event()
        self.readings_received = 0
        self.discarded_lines = 0

        self._cancel = threading.Event()
        self._server: Optional[socket.socket] = None
        self._server_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Binds the channel endpoint and starts the reader thread."""
        self._server = open_reader_endpoint(self.address)
        self._server.settimeout(self.poll_interval)
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name=f"ChannelListener-{self.identity[-8:]}"
        )
        self._thread.start()
        log.debug(f"Listening on channel '{self.identity}' at {self.address}")

    def cancel(self) -> None:
        self._cancel.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Waits for the reader thread. Returns False if it is still running."""
        if self._thread is not None:
            self._thread.join(timeout)
        return not self.is_alive()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancels the listener and waits for its thread to finish."""
        self.cancel()
        if timeout is None:
            timeout = self.poll_interval * 4
        if not self.join(timeout):
            log.warning(f"Listener for channel '{self.identity}' did not stop within {timeout:.2f}s.")
        self._close_server()

    def _close_server(self) -> None:
        with self._server_lock:
            if self._server is None:
                return
            self._server.close()
            self._server = None
            remove_endpoint(self.address)

    def _run(self) -> None:
        try:
            conn = self._accept()
            if conn is None:
                return
            with conn:
                self._read_lines(conn)
        except OSError as e:
            if not self.cancelled:
                log.warning(f"Channel '{self.identity}' failed: {e}")
        finally:
            self._close_server()
            log.debug(f"Listener for channel '{self.identity}' exited.")

    def _accept(self) -> Optional[socket.socket]:
        server = self._server
        while not self.cancelled:
            try:
                conn, _ = server.accept()
            except socket.timeout:
                continue
            # One writer per channel: nobody else may attach after this.
            self._close_server()
            conn.settimeout(self.poll_interval)
            self.connected.set()
            log.debug(f"Worker connected to channel '{self.identity}'.")
            return conn
        return None

    def _read_lines(self, conn: socket.socket) -> None:
        buffer = b""
        while not self.cancelled:
            try:
                chunk = conn.recv(4096)
            except socket.timeout:
                continue
            if not chunk:
                break

            buffer += chunk
            *lines, buffer = buffer.split(b"\n")
            for line in lines:
                if self.cancelled:
                    return
                self._handle_line(line)
            if len(buffer) > MAX_LINE_BYTES:
                log.debug(f"Dropping {len(buffer)} bytes without a line break on '{self.identity}'.")
                self.discarded_lines += 1
                buffer = b""

        if buffer and not self.cancelled:
            self._handle_line(buffer)

    def _handle_line(self, raw: bytes) -> None:
        if not raw.strip():
            return
        value = decode_reading(raw)
        if value is None:
            self.discarded_lines += 1
            log.debug(f"Discarding malformed line on channel '{self.identity}': {raw!r}")
            return

        self.state.record(value, self._clock())
        self.readings_received += 1
        log.debug(f"Received temperature: {value}°C")

        if self.on_reading:
            try:
                self.on_reading(value)
            except Exception as e:
                log.error(f"Error in reading callback: {e}", exc_info=True)
