import sys
import logging
from typing import List, Optional

from thermotray.config import effective_settings as config
from thermotray.log.setup import setup_logging
from thermotray.supervisor.process_utils import WORKER_FLAG

log = logging.getLogger(__name__)

USAGE = """Usage: thermotray [run|read|logs [N]|config <cmd>|help] [--verbose]

  run           Show the CPU temperature indicator (default). Type q to exit.
  read          Read the configured sensor once and print it.
  logs [N]      Print the last N entries of the log database.
  config <cmd>  Show or change settings. Use 'config help' for details.
  help          Show this message.
"""


def read_once() -> int:
    """Polls the configured sensor a single time and prints the result."""
    from thermotray.display import render_label
    from thermotray.errors import SourceUnavailableError
    from thermotray.worker.sources import create_source

    try:
        source = create_source()
        value = source.poll()
    except SourceUnavailableError as e:
        log.error(f"Sensor unavailable: {e}")
        return 1
    print(render_label(value))
    return 0 if value is not None else 1


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the indicator and the worker process."""
    args = list(sys.argv[1:] if argv is None else argv)

    # Started by the supervisor as the sensor worker.
    if args and args[0] == WORKER_FLAG:
        from thermotray.worker import worker_main
        return worker_main(args[1:])

    verbose = config.VERBOSE_LOGGING
    if "--verbose" in args:
        verbose = True
        args.remove("--verbose")
    setup_logging(logging.DEBUG if verbose else logging.INFO)

    command = args[0].lower() if args else "run"
    log.debug(f"Executing command: {command}, args: {args[1:]}")

    if command == "run":
        from thermotray.app import ThermometerApp
        return ThermometerApp().run()
    if command == "read":
        return read_once()
    if command == "logs":
        from thermotray.console import show_logs
        return show_logs(args[1:], verbose=verbose)
    if command == "config":
        from thermotray.console import handle_config_command
        return handle_config_command(args[1:])
    if command == "help":
        print(USAGE)
        return 0

    log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
    return 2


if __name__ == "__main__":
    sys.exit(main())
