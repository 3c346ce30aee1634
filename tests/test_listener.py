import pytest

from helpers import raw_connect, wait_for
from thermotray.channel import connect_writer, new_channel_identity
from thermotray.supervisor.listener import ChannelListener
from thermotray.supervisor.state import ReadingState


def make_listener(channel_dir, clock, state=None, **kwargs):
    listener = ChannelListener(
        new_channel_identity(), state or ReadingState(),
        channel_dir=channel_dir, poll_interval=0.05, clock=clock, **kwargs
    )
    listener.start()
    return listener


def test_listener_records_readings(channel_dir, clock):
    listener = make_listener(channel_dir, clock)
    try:
        with connect_writer(listener.identity, timeout=2, channel_dir=channel_dir) as writer:
            writer.write_reading(42.0)
            writer.write_reading(43.26)
            assert wait_for(lambda: listener.readings_received == 2)

        assert listener.state.current_reading == 43.3
        assert listener.state.last_update == clock.now
        assert listener.connected.is_set()
    finally:
        listener.stop()


def test_malformed_lines_never_advance_last_update(channel_dir, clock):
    state = ReadingState()
    state.touch(100.0)
    listener = make_listener(channel_dir, clock, state=state)
    try:
        assert wait_for(lambda: listener.address.exists())
        sock = raw_connect(listener.address)
        sock.sendall(b"garbage\n\n\xff\xfe\nnan\n")
        assert wait_for(lambda: listener.discarded_lines == 3)

        assert state.last_update == 100.0
        assert state.current_reading is None
        assert listener.is_alive()

        sock.sendall(b"37.5\n")
        assert wait_for(lambda: listener.readings_received == 1)
        assert state.current_reading == 37.5
        assert state.last_update == clock.now
        sock.close()
    finally:
        listener.stop()


def test_lines_split_across_writes_are_reassembled(channel_dir, clock):
    listener = make_listener(channel_dir, clock)
    try:
        sock = raw_connect(listener.address)
        sock.sendall(b"4")
        sock.sendall(b"1.5\n50.")
        sock.sendall(b"0\n")
        assert wait_for(lambda: listener.readings_received == 2)
        assert listener.state.current_reading == 50.0
        sock.close()
    finally:
        listener.stop()


def test_listener_accepts_exactly_one_connection(channel_dir, clock):
    listener = make_listener(channel_dir, clock)
    try:
        first = raw_connect(listener.address)
        assert wait_for(listener.connected.is_set)
        assert wait_for(lambda: not listener.address.exists())

        with pytest.raises(OSError):
            raw_connect(listener.address)
        first.close()
    finally:
        listener.stop()


def test_cancel_stops_listener_waiting_for_connection(channel_dir, clock):
    listener = make_listener(channel_dir, clock)

    listener.stop(timeout=1.0)

    assert not listener.is_alive()
    assert not listener.address.exists()


def test_cancel_stops_listener_while_reading(channel_dir, clock):
    listener = make_listener(channel_dir, clock)
    sock = raw_connect(listener.address)
    assert wait_for(listener.connected.is_set)

    listener.stop(timeout=1.0)

    assert not listener.is_alive()
    sock.close()


def test_late_connection_on_old_identity_is_refused(channel_dir, clock):
    old = make_listener(channel_dir, clock)
    old.stop()
    new = make_listener(channel_dir, clock)
    try:
        assert old.identity != new.identity
        with pytest.raises(OSError):
            raw_connect(old.address)
        assert not new.connected.is_set()
    finally:
        new.stop()


def test_failing_reading_callback_does_not_stop_listener(channel_dir, clock):
    def explode(value):
        raise RuntimeError("boom")

    listener = make_listener(channel_dir, clock, on_reading=explode)
    try:
        with connect_writer(listener.identity, timeout=2, channel_dir=channel_dir) as writer:
            writer.write_reading(40.0)
            writer.write_reading(41.0)
            assert wait_for(lambda: listener.readings_received == 2)
        assert listener.state.current_reading == 41.0
    finally:
        listener.stop()


def test_cancel_drops_rest_of_a_received_chunk(channel_dir, clock):
    listeners = []
    listener = make_listener(channel_dir, clock, on_reading=lambda value: listeners[0].cancel())
    listeners.append(listener)
    try:
        sock = raw_connect(listener.address)
        with sock:
            sock.sendall(b"41.0\n42.0\n43.0\n")
            assert wait_for(lambda: not listener.is_alive())

        assert listener.readings_received == 1
        assert listener.state.current_reading == 41.0
    finally:
        listener.stop()
