"""End-to-end supervision scenarios against real child processes and sockets."""
import logging
import sys

import pytest

from helpers import FakeClock, wait_for
from thermotray.channel import channel_address
from thermotray.errors import WorkerUnkillableError
from thermotray.supervisor import LivenessMonitor, ProcessSupervisor, TickOutcome
from thermotray.supervisor.process_utils import spawn_process
from thermotray.worker.loop import EXIT_SOURCE_UNAVAILABLE

EMIT_THEN_EXIT = """
import socket, sys
sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
sock.connect(sys.argv[1])
sock.sendall(b"42.0\\n")
sock.close()
sys.exit(1)
"""

CONNECT_THEN_HANG = """
import socket, sys, time
sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
sock.connect(sys.argv[1])
time.sleep(60)
"""


def script_launcher(script, channel_dir):
    def launch(identity):
        return spawn_process([sys.executable, "-c", script, str(channel_address(identity, channel_dir))])
    return launch


@pytest.fixture
def supervisors():
    created = []
    yield created
    for supervisor in created:
        supervisor.close()


def test_reading_then_exit_triggers_restart_within_one_tick(channel_dir, supervisors, caplog):
    supervisor = ProcessSupervisor(
        launcher=script_launcher(EMIT_THEN_EXIT, channel_dir), channel_dir=channel_dir, poll_interval=0.05
    )
    supervisors.append(supervisor)
    monitor = LivenessMonitor(supervisor, interval=1.0, max_silence=10.0)
    first = supervisor.start()

    assert wait_for(lambda: supervisor.state.current_reading == 42.0, timeout=10)
    assert wait_for(lambda: first.process.poll() is not None, timeout=10)

    with caplog.at_level(logging.WARNING):
        assert monitor.tick() is TickOutcome.EXITED

    assert "code 1" in caplog.text
    assert supervisor.session.identity != first.identity
    # The last known value survives the restart.
    assert supervisor.state.current_reading == 42.0


def test_connected_but_silent_worker_is_restarted(channel_dir, supervisors):
    clock = FakeClock()
    supervisor = ProcessSupervisor(
        launcher=script_launcher(CONNECT_THEN_HANG, channel_dir), channel_dir=channel_dir,
        poll_interval=0.05, clock=clock
    )
    supervisors.append(supervisor)
    monitor = LivenessMonitor(supervisor, interval=1.0, max_silence=10.0)
    first = supervisor.start()
    assert wait_for(first.listener.connected.is_set, timeout=10)

    clock.advance(10.5)

    assert first.process.poll() is None
    assert monitor.tick() is TickOutcome.STALE
    assert first.process.poll() is not None
    assert supervisor.session.identity != first.identity


def test_default_launcher_starts_module_worker_on_session_channel(channel_dir, tmp_path, supervisors, monkeypatch):
    # The worker resolves its settings from the inherited environment.
    monkeypatch.setenv("THERMOTRAY_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("THERMOTRAY_SENSOR_SOURCE", "no-such-sensor")
    supervisor = ProcessSupervisor(channel_dir=channel_dir, poll_interval=0.05)
    supervisors.append(supervisor)
    monitor = LivenessMonitor(supervisor, interval=1.0, max_silence=10.0)

    first = supervisor.start()

    assert wait_for(first.listener.connected.is_set, timeout=15)
    assert wait_for(lambda: first.process.poll() is not None, timeout=15)
    assert first.process.returncode == EXIT_SOURCE_UNAVAILABLE
    assert supervisor.state.current_reading is None
    assert monitor.tick() is TickOutcome.EXITED
    assert supervisor.session.identity != first.identity


def test_worker_that_ignores_kill_is_reported_unkillable(channel_dir):
    spawned = []

    def launch(identity):
        process = spawn_process([sys.executable, "-c", "import time; time.sleep(30)"])
        process.real_kill = process.popen.kill
        process.popen.kill = lambda: None
        spawned.append(process)
        return process

    supervisor = ProcessSupervisor(launcher=launch, channel_dir=channel_dir, poll_interval=0.05, stop_timeout=0.2)
    session = supervisor.start()
    try:
        with pytest.raises(WorkerUnkillableError) as excinfo:
            supervisor.stop()

        assert excinfo.value.pid == session.process.pid
        assert session.process.is_running()
        assert not session.listener.is_alive()
    finally:
        for process in spawned:
            process.real_kill()
            process.popen.wait(timeout=5)
