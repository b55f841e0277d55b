"""nut-influx-connector entry point."""
import signal
import sys
import time

from config_loader import ConfigError, load_config
from heartbeat import HeartbeatConfig, HeartbeatConfigError, new_heartbeat
from influx_writer import InfluxError, InfluxWriter, encode_point
from logger import get_logger
from nut_reader import NutReadError, NutReader
from ups_stats import collect_fields

__version__ = "<dev>"


def build_heartbeat(config, logger):
    """Return a Heartbeat for config.heartbeat_url, or None if none is set."""
    if not config.heartbeat_url:
        return None

    def on_error(err):
        logger.error("heartbeat error: %s", err)

    return new_heartbeat(HeartbeatConfig(
        heartbeat_interval=config.heartbeat_interval,
        liveness_threshold=config.liveness_threshold,
        heartbeat_url=config.heartbeat_url,
        on_error=on_error,
    ))


def poll_once(config, reader, writer, heartbeat, logger):
    """Read the UPS and write one point. Returns True if the write succeeded."""
    at_time = time.time()
    try:
        fields = collect_fields(reader, print_usage=config.print_usage)
    except NutReadError as exc:
        logger.error(str(exc))
        return False

    point = encode_point(
        config.measurement_name,
        {"ups_name": config.ups_nametag},
        fields,
        at_time,
    )
    try:
        writer.write_point(point)
    except InfluxError as exc:
        logger.error("failed to write point to influx: %s", exc)
        return False
    if heartbeat is not None:
        heartbeat.alive(at_time)
    return True


def main(argv=None):
    try:
        config = load_config(argv)
    except ConfigError as exc:
        print(exc)
        return 1
    if config.print_version:
        print(__version__)
        return 0

    logger = get_logger(__name__)
    try:
        heartbeat = build_heartbeat(config, logger)
    except HeartbeatConfigError as exc:
        logger.critical("failed to create heartbeat client: %s", exc)
        return 1

    writer = InfluxWriter(
        config.influx_server,
        config.influx_bucket,
        config.influx_username,
        config.influx_password,
        timeout=config.influx_timeout,
    )
    try:
        writer.health()
    except InfluxError as exc:
        logger.critical(str(exc))
        return 1
    reader = NutReader(config.ups)

    running = True

    def handle_signal(sig, frame):
        nonlocal running
        running = False
    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    if heartbeat is not None:
        heartbeat.start()
    next_poll = time.monotonic()
    while running:
        poll_once(config, reader, writer, heartbeat, logger)
        next_poll += config.poll_interval
        time.sleep(max(0.0, next_poll - time.monotonic()))

    logger.info('Shutting down')
    return 0


if __name__ == '__main__':
    sys.exit(main())
