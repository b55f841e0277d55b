"""InfluxDB writes for UPS statistics."""

from __future__ import annotations

import time
from typing import Any, Dict, Mapping, Optional

import requests

from logger import get_logger

WRITE_ATTEMPTS = 2
RETRY_DELAY_SEC = 0.1


class InfluxError(Exception):
    """InfluxDB rejected a request or could not be reached."""


def _escape(value: str, chars: str) -> str:
    value = value.replace("\\", "\\\\")
    for ch in chars:
        value = value.replace(ch, "\\" + ch)
    return value


def _format_field(value: Any) -> str:
    # bool is checked first since it is a subclass of int
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    return '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'


def encode_point(
    measurement: str,
    tags: Mapping[str, str],
    fields: Mapping[str, Any],
    at: float,
) -> str:
    """Encode one point as InfluxDB line protocol with a nanosecond timestamp."""
    if not fields:
        raise ValueError("a point needs at least one field")
    key = _escape(measurement, ", ")
    for tag, value in sorted(tags.items()):
        if value == "":
            continue
        key += f",{_escape(tag, ',= ')}={_escape(value, ',= ')}"
    field_set = ",".join(
        f"{_escape(name, ',= ')}={_format_field(value)}"
        for name, value in sorted(fields.items())
    )
    return f"{key} {field_set} {int(round(at * 1e9))}"


class InfluxWriter:
    """Write line-protocol points to an InfluxDB 2.x (or 1.8+ compat) server."""

    def __init__(
        self,
        server: str,
        bucket: str,
        username: str = "",
        password: str = "",
        timeout: float = 3,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.server = server.rstrip("/")
        self.bucket = bucket
        self.timeout = timeout
        self.logger = get_logger(__name__)
        self.session = session or requests.Session()
        if username or password:
            self.session.headers["Authorization"] = f"Token {username}:{password}"

    def health(self) -> Dict[str, Any]:
        """Return the server health report; raise InfluxError unless it passes."""
        try:
            r = self.session.get(f"{self.server}/health", timeout=self.timeout)
            data = r.json()
        except (requests.RequestException, ValueError) as exc:
            raise InfluxError(f"failed to check InfluxDB health: {exc}") from exc
        if data.get("status") != "pass":
            raise InfluxError(
                "InfluxDB did not pass health check: status %s; message '%s'"
                % (data.get("status"), data.get("message", ""))
            )
        return data

    def _post(self, line: str) -> None:
        try:
            r = self.session.post(
                f"{self.server}/api/v2/write",
                params={"bucket": self.bucket, "precision": "ns"},
                data=line.encode("utf-8"),
                headers={"Content-Type": "text/plain; charset=utf-8"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise InfluxError(str(exc)) from exc
        if not 200 <= r.status_code <= 299:
            raise InfluxError(f"status {r.status_code}: {r.text.strip()}")

    def write_point(self, line: str) -> None:
        """Write one encoded point, retrying once before raising InfluxError."""
        for attempt in range(WRITE_ATTEMPTS):
            try:
                self._post(line)
                return
            except InfluxError as exc:
                self.logger.warning("Influx write failed (%s): %s", attempt + 1, exc)
                if attempt + 1 == WRITE_ATTEMPTS:
                    raise
            time.sleep(RETRY_DELAY_SEC)
