import socket
import time
from pathlib import Path
from typing import Callable, List, Optional


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def raw_connect(address: Path) -> socket.socket:
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.connect(str(address))
    return sock


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProcess:
    """Stands in for WorkerProcess; exit and kill behaviour are set by the test."""

    _next_pid = 40000

    def __init__(self, killable: bool = True):
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.exit_code: Optional[int] = None
        self.killable = killable
        self.kill_calls = 0

    def poll(self) -> Optional[int]:
        return self.exit_code

    def is_running(self) -> bool:
        return self.exit_code is None

    def kill_and_wait(self, timeout: float) -> bool:
        self.kill_calls += 1
        if self.killable:
            self.exit_code = -9
            return True
        return False


class FakeLauncher:
    """Records every channel identity a worker was launched for."""

    def __init__(self, killable: bool = True):
        self.killable = killable
        self.identities: List[str] = []
        self.processes: List[FakeProcess] = []
        self.fail_next = 0

    def __call__(self, identity: str) -> FakeProcess:
        if self.fail_next:
            self.fail_next -= 1
            raise OSError("spawn failed")
        process = FakeProcess(killable=self.killable)
        self.identities.append(identity)
        self.processes.append(process)
        return process


class FakeSource:
    def __init__(self, values):
        self.values = list(values)
        self.closed = False

    def poll(self):
        if not self.values:
            return None
        value = self.values.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    def close(self):
        self.closed = True
