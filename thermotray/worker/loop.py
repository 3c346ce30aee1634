import signal
import logging
import threading
from typing import Callable, List, Optional

import setproctitle

from thermotray.config import effective_settings as config
from thermotray.channel import ChannelWriter, channel_address, connect_writer
from thermotray.errors import ChannelError, SourceUnavailableError, WorkerStartupError
from thermotray.log.setup import setup_worker_logging
from thermotray.worker.sources import ValueSource, create_source

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BAD_ARGS = 2
EXIT_CONNECT_FAILED = 3
EXIT_SOURCE_UNAVAILABLE = 4
EXIT_CHANNEL_BROKEN = 5


def run_worker(writer: ChannelWriter, source: ValueSource, interval: float, stop_event: threading.Event) -> None:
    """
    Polls the source and writes one line per reading until stopped.

    There is no internal retry: a source that cannot produce a reading ends
    the worker and the supervisor starts a fresh one.

    :raises SourceUnavailableError: If the source fails or returns nothing.
    :raises OSError: If the reader end of the channel went away.
    """
    while not stop_event.is_set():
        try:
            value = source.poll()
        except SourceUnavailableError:
            raise
        except Exception as e:
            raise SourceUnavailableError(f"Sensor read failed: {e}") from e
        if value is None:
            raise SourceUnavailableError("Sensor returned no reading.")

        writer.write_reading(value)
        if stop_event.wait(interval):
            break


def parse_identity(argv: List[str]) -> str:
    """
    Extracts the channel identity from the worker arguments.

    :raises WorkerStartupError: If the identity is missing or cannot name a channel.
    """
    if not argv:
        raise WorkerStartupError("Missing channel identity argument.")
    identity = argv[0]
    try:
        channel_address(identity)
    except ChannelError as e:
        raise WorkerStartupError(f"Cannot use channel '{identity}': {e}") from e
    return identity


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def handle_shutdown_signal(signum, frame):
        log.debug(f"Signal {signum} received, stopping sensor worker.")
        stop_event.set()

    signal.signal(signal.SIGTERM, handle_shutdown_signal)
    signal.signal(signal.SIGINT, handle_shutdown_signal)


def worker_main(
    argv: List[str],
    source_factory: Callable[[], ValueSource] = create_source,
    stop_event: Optional[threading.Event] = None,
    connect_timeout: Optional[float] = None,
    interval: Optional[float] = None,
) -> int:
    """
    Entry point of the worker process.

    :param argv: Arguments following the worker flag; the first is the channel identity.
    :return int: The process exit code.
    """
    setproctitle.setproctitle(config.WORKER_PROCESS_TITLE)
    setup_worker_logging()

    try:
        identity = parse_identity(argv)
    except WorkerStartupError as e:
        log.critical(str(e))
        return EXIT_BAD_ARGS

    if stop_event is None:
        stop_event = threading.Event()
        if threading.current_thread() is threading.main_thread():
            _install_signal_handlers(stop_event)

    try:
        writer = connect_writer(identity, timeout=connect_timeout, stop_event=stop_event)
    except ChannelError as e:
        log.critical(str(e))
        return EXIT_CONNECT_FAILED
    if writer is None:
        log.info("Sensor worker stopped before the channel was connected.")
        return EXIT_OK

    with writer:
        source = None
        try:
            source = source_factory()
            run_worker(writer, source, config.QUERY_INTERVAL_SECONDS if interval is None else interval, stop_event)
        except SourceUnavailableError as e:
            log.critical(f"Sensor unavailable: {e}")
            return EXIT_SOURCE_UNAVAILABLE
        except OSError as e:
            log.error(f"Channel '{identity}' closed by the reader: {e}")
            return EXIT_CHANNEL_BROKEN
        finally:
            if source is not None:
                source.close()

    log.info("Sensor worker stopped.")
    return EXIT_OK
