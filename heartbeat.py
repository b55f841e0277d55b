"""
Module: heartbeat.py
Purpose: Tell an external watchdog that the pipeline is alive and shipping data.
Consumes:
- alive(at) calls from the poll loop after each successful InfluxDB write.
Produces:
- One HTTP GET to the heartbeat URL per tick while liveness evidence is fresh.
Behavior:
- A daemon timer thread started once by start() ticks every heartbeat_interval.
- A tick is skipped when the last alive() timestamp is older than liveness_threshold.
- Failed GETs are reported to the optional on_error callback on its own thread.
- Nothing is logged here; without a callback, failures are dropped.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests

MAX_HEARTBEAT_TIMEOUT = 15.0


class HeartbeatConfigError(ValueError):
    """Raised by new_heartbeat() for an unusable configuration."""


class HeartbeatError(Exception):
    """A heartbeat GET that failed in transport or returned a non-2xx status."""

    def __init__(self, url: str, cause: str) -> None:
        super().__init__(f"failed to send heartbeat to '{url}': {cause}")
        self.url = url
        self.cause = cause


@dataclass(frozen=True)
class HeartbeatConfig:
    # seconds between heartbeats
    heartbeat_interval: float
    # max age of the last alive() call before heartbeats are withheld
    liveness_threshold: float
    heartbeat_url: str
    on_error: Optional[Callable[[HeartbeatError], Any]] = None


class Heartbeat:
    """Sends heartbeats to a remote URL while alive() keeps being called."""

    def __init__(
        self,
        config: HeartbeatConfig,
        clock: Optional[Callable[[], float]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.interval = config.heartbeat_interval
        self.threshold = config.liveness_threshold
        self.url = config.heartbeat_url
        self.on_error = config.on_error
        self.timeout = min(config.heartbeat_interval, MAX_HEARTBEAT_TIMEOUT)
        self._clock = clock or time.time
        self._session = session or requests.Session()
        self._lock = threading.Lock()
        self._last_alive = 0.0
        self._started = False
        self._thread: Optional[threading.Thread] = None

    @property
    def last_alive(self) -> float:
        with self._lock:
            return self._last_alive

    @property
    def started(self) -> bool:
        with self._lock:
            return self._started

    def alive(self, at: float) -> None:
        """Record that the system did useful work at ``at`` (epoch seconds)."""
        with self._lock:
            if at > self._last_alive:
                self._last_alive = at

    def start(self) -> None:
        """Start the heartbeat timer. Calls after the first are no-ops.

        The timer thread is a daemon with no stop operation; it runs until
        the process exits.
        """
        with self._lock:
            if self._started:
                return
            self._started = True
            self._thread = threading.Thread(
                target=self._run, daemon=True, name="heartbeat"
            )
            self._thread.start()

    def _run(self) -> None:
        next_tick = time.monotonic() + self.interval
        while True:
            delay = next_tick - time.monotonic()
            if delay > 0:
                time.sleep(delay)
            self._tick()
            next_tick += self.interval
            # drop ticks missed while a slow request was in flight
            now = time.monotonic()
            while next_tick <= now:
                next_tick += self.interval

    def _is_fresh(self) -> bool:
        with self._lock:
            return self._clock() - self._last_alive < self.threshold

    def _tick(self) -> bool:
        """Run one timer firing. Returns True if a heartbeat was attempted."""
        if not self._is_fresh():
            return False
        err = self._send()
        if err is not None and self.on_error is not None:
            threading.Thread(
                target=self.on_error, args=(err,), daemon=True, name="heartbeat-on-error"
            ).start()
        return True

    def _send(self) -> Optional[HeartbeatError]:
        try:
            resp = self._session.get(self.url, timeout=self.timeout)
        except requests.RequestException as exc:
            return HeartbeatError(self.url, str(exc))
        try:
            if not 200 <= resp.status_code <= 299:
                return HeartbeatError(self.url, f"{resp.status_code} {resp.reason}")
        finally:
            resp.close()
        return None


def new_heartbeat(
    config: HeartbeatConfig,
    clock: Optional[Callable[[], float]] = None,
    session: Optional[requests.Session] = None,
) -> Heartbeat:
    """Validate ``config`` and build an unstarted Heartbeat."""
    if config.liveness_threshold <= 0:
        raise HeartbeatConfigError("liveness threshold must be positive")
    if config.heartbeat_interval <= 0:
        raise HeartbeatConfigError("heartbeat interval must be positive")
    if not config.heartbeat_url:
        raise HeartbeatConfigError("heartbeat URL must be set")
    return Heartbeat(config, clock=clock, session=session)
