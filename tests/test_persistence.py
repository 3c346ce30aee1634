import os
import subprocess
import sys

import pytest

from thermotray.supervisor import persistence

SLEEPER = "import time; time.sleep(30)"


@pytest.fixture
def pid_file(tmp_path):
    return tmp_path / "thermotray.pid"


@pytest.fixture
def spawn():
    procs = []

    def _spawn(*extra_args):
        proc = subprocess.Popen([sys.executable, "-c", SLEEPER, *extra_args])
        procs.append(proc)
        return proc

    yield _spawn
    for proc in procs:
        if proc.poll() is None:
            proc.kill()
            proc.wait()


def test_pid_file_is_written_and_read_back(pid_file):
    persistence.write_pid_file({"app": 123, "worker": 456}, pid_file)

    assert persistence.get_pid_info(pid_file) == {"app": 123, "worker": 456}
    assert not pid_file.with_suffix(".tmp").exists()


def test_corrupt_pid_file_is_discarded(pid_file):
    pid_file.write_text("[1, 2")

    assert persistence.get_pid_info(pid_file) is None
    assert not pid_file.exists()


def test_running_instance_is_detected(pid_file, spawn):
    other = spawn()
    persistence.write_pid_file({"app": other.pid}, pid_file)

    assert persistence.check_if_already_running(pid_file)


def test_own_pid_does_not_count_as_running_instance(pid_file):
    persistence.write_pid_file({"app": os.getpid()}, pid_file)

    assert not persistence.check_if_already_running(pid_file)


def test_orphaned_worker_is_reaped(pid_file, spawn):
    orphan = spawn("--sensor", "thermotray-old")
    persistence.write_pid_file({"app": 1, "worker": orphan.pid}, pid_file)

    assert persistence.reap_orphaned_worker(pid_file, timeout=5)
    orphan.wait(timeout=5)
    assert orphan.returncode is not None


def test_unrelated_process_with_recycled_pid_is_left_alone(pid_file, spawn):
    unrelated = spawn()
    persistence.write_pid_file({"app": 1, "worker": unrelated.pid}, pid_file)

    assert not persistence.reap_orphaned_worker(pid_file)
    assert unrelated.poll() is None
