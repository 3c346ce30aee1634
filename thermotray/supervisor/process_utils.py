import os
import psutil
import logging
import threading
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

from thermotray.config import effective_settings as config

log = logging.getLogger(__name__)

WORKER_FLAG = "--sensor"


#* --- Process Handles ---
class WorkerProcess:
    """
    Owned handle to a spawned worker OS process.

    Wraps the Popen object (exit status) and uses psutil to find and kill
    any descendants the worker may have started.
    """

    def __init__(self, popen: subprocess.Popen, name: str = "worker"):
        self.popen = popen
        self.name = name

    @property
    def pid(self) -> int:
        return self.popen.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.popen.returncode

    def poll(self) -> Optional[int]:
        """Returns the exit code if the process has exited, else None."""
        return self.popen.poll()

    def is_running(self) -> bool:
        return self.popen.poll() is None

    def kill_and_wait(self, timeout: float) -> bool:
        """
        Kills the process and its descendants and waits for them to exit.

        :param timeout: Seconds to wait for the worker to exit.
        :return: True if the worker exited in time, False otherwise.
        """
        descendants = _get_descendants(self.pid)
        if self.popen.poll() is None:
            log.debug(f"Killing {self.name} process (PID {self.pid})")
            self.popen.kill()
        try:
            self.popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return False
        _forceful_kill(descendants, timeout)
        return True


def _get_descendants(pid: int) -> List[psutil.Process]:
    try:
        return psutil.Process(pid).children(recursive=True)
    except psutil.Error:
        return []


def _forceful_kill(processes: List[psutil.Process], timeout: float) -> None:
    """Kills leftover child processes of a worker and waits for them."""
    if not processes:
        return

    for proc in processes:
        try:
            log.warning(f"Killing leftover worker child {proc.pid}.")
            proc.kill()
        except psutil.NoSuchProcess:
            continue
    _, alive = psutil.wait_procs(processes, timeout=timeout)
    for proc in alive:
        log.error(f"Worker child process {proc.pid} survived kill.")


#* --- Process Creation ---
def get_popen_creation_flags() -> Dict[str, Any]:
    """
    Returns keyword arguments for subprocess.Popen.

    The worker is put in its own session so terminal signals aimed at the app
    do not reach it.
    """
    return {"start_new_session": True}


def get_worker_args(identity: str) -> List[str]:
    """Returns the command line that starts a worker bound to a channel identity."""
    return [config.PYTHON_EXECUTABLE, "-m", "thermotray", WORKER_FLAG, identity]


def _read_pipe(pipe, process_name: str, level: int) -> None:
    """Target function for reader threads. Reads and logs lines from a subprocess pipe."""
    proc_logger = logging.getLogger(f"proc.{process_name}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").rstrip()
            if line:
                proc_logger.log(level, line)
    except Exception as e:
        proc_logger.debug(f"Pipe reader for {process_name} stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(process: subprocess.Popen, name: str) -> None:
    """
    Starts background threads to consume and log a process's stdout/stderr.

    The worker logs to stderr in its own format, so both streams are
    forwarded at INFO level under the 'proc.<name>' logger.
    """
    for stream_name, pipe in (("stdout", process.stdout), ("stderr", process.stderr)):
        if pipe:
            threading.Thread(
                target=_read_pipe,
                args=(pipe, name, logging.INFO),
                daemon=True,
                name=f"{name}-{stream_name}-reader"
            ).start()


def spawn_process(args: List[str], name: str = "worker", env: Optional[Dict[str, str]] = None,
                  cwd: Optional[Path] = None) -> WorkerProcess:
    """
    Starts a process with piped output and returns its handle.

    :param args: Command line of the process.
    :param name: Logical name used for log forwarding.
    :param env: Environment for the process, defaults to the current one.
    :param cwd: Working directory for the process.
    :return WorkerProcess: The owned process handle.
    """
    try:
        p = subprocess.Popen(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            env=env,
            cwd=str(cwd) if cwd else None,
            **get_popen_creation_flags()
        )
    except OSError as e:
        log.critical(f"Failed to start process '{name}': {e}", exc_info=True)
        raise

    log_process_output(p, name)
    return WorkerProcess(p, name)


def launch_worker(identity: str, channel_dir: Optional[Path] = None) -> WorkerProcess:
    """
    Launches the worker process for a channel identity.

    The channel directory is passed through the environment so the worker
    resolves the same socket path as the supervisor.
    """
    env = os.environ.copy()
    env["THERMOTRAY_CHANNEL_DIR"] = str(channel_dir or config.CHANNEL_DIR)
    return spawn_process(get_worker_args(identity), name="worker", env=env, cwd=config.BASE_DIR)
