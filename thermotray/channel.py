"""
Per-session communication channel between the supervisor and the worker.

A channel is a Unix domain stream socket named after a unique identity. The
supervisor binds the reader end; the worker connects as the only writer and
sends one reading per line, UTF-8 encoded, with one fractional digit.
"""
import math
import time
import uuid
import socket
import logging
import threading
from pathlib import Path
from typing import Optional, Union

from thermotray.config import effective_settings as config
from thermotray.errors import ChannelError, ChannelConnectTimeout

log = logging.getLogger(__name__)

# sockaddr_un.sun_path is 104-108 bytes depending on the platform.
MAX_ADDRESS_LENGTH = 100


def new_channel_identity(prefix: Optional[str] = None) -> str:
    """Returns a channel name that is unique for one supervision attempt."""
    return f"{prefix or config.CHANNEL_PREFIX}-{uuid.uuid4().hex}"


def check_platform_support() -> None:
    """
    Verifies that this platform can host a channel.

    :raises ChannelError: If Unix domain sockets are not available.
    """
    if not hasattr(socket, "AF_UNIX"):
        raise ChannelError("Local channels require Unix domain socket support on this platform.")


def channel_address(identity: str, channel_dir: Optional[Path] = None) -> Path:
    """
    Resolves a channel identity to its socket path.

    :param identity: The channel identity passed to the worker.
    :param channel_dir: Directory holding channel sockets, defaults to CHANNEL_DIR.
    :return Path: The socket path for this identity.
    :raises ChannelError: If the identity or platform cannot host a channel.
    """
    check_platform_support()
    if not identity or "/" in identity or "\\" in identity or identity in (".", ".."):
        raise ChannelError(f"Invalid channel identity '{identity}'.")

    address = Path(channel_dir or config.CHANNEL_DIR) / f"{identity}.sock"
    if len(str(address)) > MAX_ADDRESS_LENGTH:
        raise ChannelError(f"Channel address '{address}' exceeds {MAX_ADDRESS_LENGTH} characters.")
    return address


def remove_endpoint(address: Path) -> None:
    """Removes a socket file left behind by a reader end."""
    try:
        address.unlink(missing_ok=True)
    except OSError as e:
        log.warning(f"Could not remove channel endpoint '{address}': {e}")


def open_reader_endpoint(address: Path) -> socket.socket:
    """
    Binds the reader end of a channel and starts listening for its single writer.

    :param address: The socket path returned by channel_address().
    :return socket.socket: The bound, listening server socket.
    """
    remove_endpoint(address)
    server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        server.bind(str(address))
        server.listen(1)
    except OSError as e:
        server.close()
        raise ChannelError(f"Could not open channel endpoint '{address}': {e}") from e
    return server


def format_reading(value: float) -> bytes:
    """Encodes a reading as one wire line."""
    return f"{value:.1f}\n".encode("utf-8")


def decode_reading(line: Union[bytes, str]) -> Optional[float]:
    """
    Decodes one wire line into a reading.

    :return float or None: The reading, or None if the line is not a finite number.
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError:
            return None
    line = line.strip()
    if not line:
        return None
    try:
        value = float(line)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


class ChannelWriter:
    """The worker's end of a channel."""

    def __init__(self, sock: socket.socket, identity: str):
        self._sock = sock
        self.identity = identity

    def write_reading(self, value: float) -> None:
        self._sock.sendall(format_reading(value))

    def close(self) -> None:
        try:
            self._sock.shutdown(socket.SHUT_WR)
        except OSError:
            pass
        self._sock.close()

    def __enter__(self) -> "ChannelWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def connect_writer(
    identity: str,
    timeout: Optional[float] = None,
    channel_dir: Optional[Path] = None,
    retry_interval: float = 0.1,
    stop_event: Optional[threading.Event] = None,
) -> Optional[ChannelWriter]:
    """
    Connects to the reader end of a channel as its writer.

    The reader may not have bound its endpoint yet, so connection attempts are
    retried until the timeout expires.

    :param identity: The channel identity received on the command line.
    :param timeout: Seconds to wait for the reader, defaults to CONNECT_TIMEOUT_SECONDS.
    :param channel_dir: Directory holding channel sockets.
    :param retry_interval: Pause between connection attempts.
    :param stop_event: Ends the retries early when set.
    :return ChannelWriter or None: The connected writer, or None if stop_event was set first.
    :raises ChannelConnectTimeout: If no reader accepted in time.
    """
    address = channel_address(identity, channel_dir)
    timeout = config.CONNECT_TIMEOUT_SECONDS if timeout is None else timeout
    deadline = time.monotonic() + timeout
    last_error: Optional[OSError] = None

    while stop_event is None or not stop_event.is_set():
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(remaining)
        try:
            sock.connect(str(address))
            sock.settimeout(None)
            log.debug(f"Connected to channel '{identity}'.")
            return ChannelWriter(sock, identity)
        except (FileNotFoundError, ConnectionRefusedError, socket.timeout) as e:
            sock.close()
            last_error = e
            pause = min(retry_interval, max(deadline - time.monotonic(), 0))
            if stop_event is not None:
                stop_event.wait(pause)
            else:
                time.sleep(pause)
        except OSError:
            sock.close()
            raise

    if stop_event is not None and stop_event.is_set():
        log.debug(f"Stopped before connecting to channel '{identity}'.")
        return None
    raise ChannelConnectTimeout(
        f"No reader attached to channel '{identity}' within {timeout:.1f}s ({last_error})."
    )
