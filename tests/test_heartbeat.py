import threading
import time

import pytest

from heartbeat import (
    Heartbeat,
    HeartbeatConfig,
    HeartbeatConfigError,
    HeartbeatError,
    new_heartbeat,
)
from tests.mocks.mock_http import MockResponse, MockSession, connection_refused

URL = "http://example/hb"


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now
    def __call__(self):
        return self.now
    def advance(self, seconds):
        self.now += seconds


class ErrorCollector:
    def __init__(self):
        self.errors = []
        self.called = threading.Event()
    def __call__(self, err):
        self.errors.append(err)
        self.called.set()


def make_heartbeat(session, clock=None, on_error=None, interval=1.0, threshold=3.0):
    config = HeartbeatConfig(
        heartbeat_interval=interval,
        liveness_threshold=threshold,
        heartbeat_url=URL,
        on_error=on_error,
    )
    return new_heartbeat(config, clock=clock or FakeClock(), session=session)


@pytest.mark.parametrize("kwargs, message", [
    ({"heartbeat_interval": 0}, "heartbeat interval must be positive"),
    ({"liveness_threshold": -1}, "liveness threshold must be positive"),
    ({"heartbeat_url": ""}, "heartbeat URL must be set"),
])
def test_invalid_config(kwargs, message):
    values = {"heartbeat_interval": 1, "liveness_threshold": 3, "heartbeat_url": URL}
    values.update(kwargs)
    with pytest.raises(HeartbeatConfigError, match=message):
        new_heartbeat(HeartbeatConfig(**values))


def test_client_timeout_is_capped():
    assert make_heartbeat(MockSession(), interval=1.0).timeout == 1.0
    assert make_heartbeat(MockSession(), interval=60.0, threshold=120.0).timeout == 15.0


def test_alive_keeps_latest_timestamp():
    hb = make_heartbeat(MockSession())
    assert hb.last_alive == 0.0
    hb.alive(100.0)
    hb.alive(50.0)
    hb.alive(100.0)
    assert hb.last_alive == 100.0
    hb.alive(150.0)
    assert hb.last_alive == 150.0


def test_concurrent_alive_keeps_max():
    hb = make_heartbeat(MockSession())
    stamps = [float(i) for i in range(1, 401)]
    chunks = [stamps[i::8] for i in range(8)]
    threads = [
        threading.Thread(target=lambda c=c: [hb.alive(t) for t in reversed(c)])
        for c in chunks
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert hb.last_alive == max(stamps)


def test_stale_tick_sends_nothing():
    clock = FakeClock()
    session = MockSession(MockResponse(200))
    hb = make_heartbeat(session, clock=clock)
    assert hb._tick() is False
    hb.alive(clock() - 3.0)
    assert hb._tick() is False
    assert session.calls == []


def test_older_alive_does_not_affect_freshness():
    clock = FakeClock()
    session = MockSession(MockResponse(200))
    hb = make_heartbeat(session, clock=clock)
    hb.alive(clock() - 10.0)
    hb.alive(clock() - 20.0)
    assert hb._tick() is False
    assert session.calls == []


def test_fresh_tick_success_does_not_call_back():
    clock = FakeClock()
    session = MockSession(MockResponse(200))
    errors = ErrorCollector()
    hb = make_heartbeat(session, clock=clock, on_error=errors)
    hb.alive(clock())
    assert hb._tick() is True
    assert session.calls == [("GET", URL, {"timeout": 1.0})]
    assert not errors.called.wait(0.2)


def test_non_2xx_reports_one_error():
    clock = FakeClock()
    errors = ErrorCollector()
    hb = make_heartbeat(MockSession(MockResponse(500, "Internal Server Error")), clock=clock, on_error=errors)
    hb.alive(clock())
    hb._tick()
    assert errors.called.wait(2)
    time.sleep(0.05)
    assert len(errors.errors) == 1
    err = errors.errors[0]
    assert isinstance(err, HeartbeatError)
    assert URL in str(err)
    assert "500 Internal Server Error" in str(err)


def test_connection_failure_reports_one_error():
    clock = FakeClock()
    errors = ErrorCollector()
    hb = make_heartbeat(MockSession(connection_refused()), clock=clock, on_error=errors)
    hb.alive(clock())
    assert hb._tick() is True
    assert errors.called.wait(2)
    time.sleep(0.05)
    assert len(errors.errors) == 1
    assert str(errors.errors[0]) == f"failed to send heartbeat to '{URL}': connection refused"


def test_failure_without_callback_is_silent():
    clock = FakeClock()
    hb = make_heartbeat(MockSession(connection_refused()), clock=clock)
    hb.alive(clock())
    assert hb._tick() is True


def test_slow_callback_does_not_block_ticks():
    clock = FakeClock()
    session = MockSession(MockResponse(503, "Service Unavailable"))
    release = threading.Event()
    calls = []

    def on_error(err):
        calls.append(err)
        release.wait(5)

    hb = make_heartbeat(session, clock=clock, on_error=on_error)
    hb.alive(clock())
    started = time.monotonic()
    hb._tick()
    hb._tick()
    assert time.monotonic() - started < 1
    assert len(session.calls) == 2
    release.set()


def test_stale_after_threshold_scenario():
    clock = FakeClock()
    session = MockSession(MockResponse(200))
    hb = make_heartbeat(session, clock=clock, interval=1.0, threshold=3.0)
    hb.alive(clock())
    clock.advance(1.0)
    assert hb._tick() is True
    clock.advance(3.0)
    assert hb._tick() is False
    assert len(session.calls) == 1


def test_concurrent_start_creates_one_timer(monkeypatch):
    runs = []
    monkeypatch.setattr(Heartbeat, "_run", lambda self: runs.append(self))
    hb = make_heartbeat(MockSession())
    barrier = threading.Barrier(10)

    def start():
        barrier.wait()
        hb.start()

    threads = [threading.Thread(target=start) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    hb._thread.join(2)
    hb.start()
    assert hb.started
    assert len(runs) == 1


def test_timer_sends_heartbeats_while_fresh():
    session = MockSession(MockResponse(200))
    hb = new_heartbeat(
        HeartbeatConfig(heartbeat_interval=0.05, liveness_threshold=60, heartbeat_url=URL),
        session=session,
    )
    hb.alive(time.time())
    hb.start()
    hb.start()
    deadline = time.monotonic() + 2
    while len(session.calls) < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    assert len(session.calls) >= 3
    assert hb._thread.daemon


def test_concurrent_start_ticks_at_one_cadence():
    interval, window = 0.05, 0.5
    session = MockSession(MockResponse(200))
    hb = new_heartbeat(
        HeartbeatConfig(heartbeat_interval=interval, liveness_threshold=60, heartbeat_url=URL),
        session=session,
    )
    hb.alive(time.time())
    barrier = threading.Barrier(8)

    def start():
        barrier.wait()
        hb.start()

    began = time.monotonic()
    threads = [threading.Thread(target=start) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    time.sleep(max(0.0, window - (time.monotonic() - began)))
    sent = len(session.calls)
    assert 2 <= sent <= window / interval + 1


def test_raising_callback_keeps_timer_running(monkeypatch):
    uncaught = []
    monkeypatch.setattr(threading, "excepthook", lambda args: uncaught.append(args.exc_type))
    session = MockSession(MockResponse(500, "Internal Server Error"))
    calls = []

    def on_error(err):
        calls.append(err)
        raise RuntimeError("callback blew up")

    clock = FakeClock()
    hb = new_heartbeat(
        HeartbeatConfig(heartbeat_interval=0.05, liveness_threshold=60, heartbeat_url=URL, on_error=on_error),
        clock=clock,
        session=session,
    )
    hb.alive(clock())
    hb.start()
    deadline = time.monotonic() + 2
    while len(calls) < 4 and time.monotonic() < deadline:
        time.sleep(0.01)
    assert len(calls) >= 4
    assert len(session.calls) >= 4
    assert hb._thread.is_alive()
    assert RuntimeError in uncaught
    # go stale so the timer stops calling back once the hook is restored
    clock.advance(120)
    time.sleep(0.2)
