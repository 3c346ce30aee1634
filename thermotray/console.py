import logging
from pathlib import Path
from typing import List, Optional

from thermotray.config import MergedSettings, effective_settings
from thermotray.log.database import LogDBManager

log = logging.getLogger(__name__)


def show_logs(args: List[str], db_path: Optional[Path] = None, verbose: bool = False) -> int:
    """
    Prints the most recent entries from the log database.

    :param args: Optional entry count, defaults to LOG_HISTORY_COUNT.
    :param db_path: Log database to read, defaults to LOG_DB_PATH.
    :param verbose: Include DEBUG entries.
    :return int: The command's exit code.
    """
    db_path = Path(db_path or effective_settings.LOG_DB_PATH)
    try:
        count = int(args[0]) if args else effective_settings.LOG_HISTORY_COUNT
    except ValueError:
        print(f"Invalid entry count '{args[0]}'.")
        return 2

    if not db_path.exists():
        print(f"No log database at '{db_path}'.")
        return 1

    print(f"\n--- Displaying last {count} log entries ---")
    for entry in LogDBManager(db_path).fetch_last_entries(count):
        if entry.level == "DEBUG" and not verbose:
            continue
        print(entry.message)
    return 0


def _config_show(settings: MergedSettings) -> None:
    print("\n--- Current ThermoTray Configuration ---")
    print(f"(Overrides file: {settings.OVERRIDES_JSON_PATH})")
    for key in sorted(settings.MODIFIABLE_SETTINGS):
        print(f"  {key} = {settings.get(key, 'N/A')}")
    print("---")
    print("Use 'config set <KEY> <VALUE>' to change a setting.")
    print("A running indicator picks up changes after a restart.")


def _config_set(args: List[str], settings: MergedSettings) -> int:
    if len(args) < 2:
        print("Usage: config set <SETTING_NAME> <VALUE>")
        return 2

    key, value_str = args[0].upper(), " ".join(args[1:])
    if not settings.set_override(key, value_str):
        print(f"Failed to update '{key}'. Check logs for details.")
        return 1
    print(f"{key} = {settings.get(key)}")
    return 0


def handle_config_command(args: List[str], settings: Optional[MergedSettings] = None) -> int:
    """
    Handles the sub-commands of 'config': show (default), set and help.

    :param args: Arguments following the 'config' command.
    :param settings: Settings to operate on, defaults to the process-wide ones.
    :return int: The command's exit code.
    """
    settings = settings or effective_settings
    sub_command = args[0].lower() if args else "show"

    if sub_command == "show":
        _config_show(settings)
        return 0
    if sub_command == "set":
        return _config_set(args[1:], settings)
    if sub_command == "help":
        print("\nConfig Command Help:")
        print("  config show                - Display all modifiable settings.")
        print("  config set KEY VALUE       - Change a setting in the overrides file.")
        print("  config help                - Show this help message.")
        return 0

    print(f"Unknown config sub-command: '{sub_command}'. Type 'config help' for available commands.")
    return 2
