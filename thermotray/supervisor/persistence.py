import os
import json
import psutil
import logging
from pathlib import Path
from typing import Dict, Optional

from thermotray.config import effective_settings as config
from thermotray.supervisor.process_utils import WORKER_FLAG

log = logging.getLogger(__name__)


def _pid_path(pid_file: Optional[Path]) -> Path:
    return Path(pid_file or config.PID_FILE_PATH)


def get_pid_info(pid_file: Optional[Path] = None) -> Optional[Dict[str, int]]:
    """
    Reads the PID file from disk and returns its contents.

    :param pid_file: Alternate PID file location.
    :return: A dictionary of PIDs if the file exists and is valid, else None.
    """
    path = _pid_path(pid_file)
    if not path.exists():
        return None
    try:
        with path.open("r") as f:
            pids = json.load(f)
        if not isinstance(pids, dict):
            path.unlink(missing_ok=True)
            return None
        return {name: int(pid) for name, pid in pids.items()}
    except (json.JSONDecodeError, IOError, ValueError, TypeError):
        path.unlink(missing_ok=True)
        return None


def write_pid_file(pids: Dict[str, int], pid_file: Optional[Path] = None) -> None:
    """
    Atomically writes the application and worker PIDs to the PID file.

    :param pids: Mapping of logical process name to PID.
    :param pid_file: Alternate PID file location.
    """
    path = _pid_path(pid_file)
    temp_pid_path = path.with_suffix(".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with temp_pid_path.open("w") as f:
            json.dump(pids, f, indent=4)
        temp_pid_path.replace(path)
    except (IOError, OSError) as e:
        log.error(f"Failed to write PID file: {e}", exc_info=True)
    finally:
        temp_pid_path.unlink(missing_ok=True)


def remove_pid_file(pid_file: Optional[Path] = None) -> None:
    _pid_path(pid_file).unlink(missing_ok=True)


def check_if_already_running(pid_file: Optional[Path] = None) -> bool:
    """
    Checks if another application instance is alive according to the PID file.

    :return: True if already running, False otherwise.
    """
    pid_info = get_pid_info(pid_file) or {}
    app_pid = pid_info.get("app")
    if app_pid and app_pid != os.getpid() and psutil.pid_exists(app_pid):
        log.error(f"ThermoTray appears to be running already (PID {app_pid}).")
        return True
    return False


def reap_orphaned_worker(pid_file: Optional[Path] = None, timeout: float = 1.0) -> bool:
    """
    Kills a worker left behind by a previous instance that died without cleanup.

    Only a process whose command line still carries the worker flag is killed,
    so a recycled PID belonging to something else is left alone.

    :return: True if an orphaned worker was found and killed.
    """
    worker_pid = (get_pid_info(pid_file) or {}).get("worker")
    if not worker_pid or not psutil.pid_exists(worker_pid):
        return False

    try:
        proc = psutil.Process(worker_pid)
        if WORKER_FLAG not in proc.cmdline():
            return False
        log.warning(f"Killing orphaned sensor process (PID {worker_pid}) from a previous run.")
        proc.kill()
        proc.wait(timeout=timeout)
        return True
    except psutil.NoSuchProcess:
        return False
    except (psutil.AccessDenied, psutil.TimeoutExpired) as e:
        log.error(f"Could not kill orphaned sensor process (PID {worker_pid}): {e}")
        return False
