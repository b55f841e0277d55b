# /nut_influx_connector/config_loader.py

"""
Module: config_loader.py
Purpose: Build the runtime configuration from command-line flags and an optional INI file.
Consumes: argv; the file named by --config
Provides: load_config(argv) -> Config
Failure Mode: Raises ConfigError when required settings are missing or invalid.
INI sections [influx], [ups] and [heartbeat] supply defaults; flags given on the
command line take precedence.
"""

import argparse
import configparser
import os
from dataclasses import dataclass
from typing import Optional, Sequence


class ConfigError(Exception):
    """Configuration is missing or malformed."""


@dataclass(frozen=True)
class Config:
    influx_server: str
    influx_username: str
    influx_password: str
    influx_bucket: str
    measurement_name: str
    ups_nametag: str
    ups: str
    poll_interval: int
    print_usage: bool
    influx_timeout: int
    heartbeat_url: str
    heartbeat_interval: float
    liveness_threshold: float
    print_version: bool = False


# (dest, INI section, INI key, type, default)
_SETTINGS = (
    ("influx_server", "influx", "server", str, ""),
    ("influx_username", "influx", "username", str, ""),
    ("influx_password", "influx", "password", str, ""),
    ("influx_bucket", "influx", "bucket", str, ""),
    ("measurement_name", "influx", "measurement_name", str, "ups_stats"),
    ("influx_timeout", "influx", "timeout", int, 3),
    ("ups_nametag", "ups", "nametag", str, ""),
    ("ups", "ups", "name", str, ""),
    ("poll_interval", "ups", "poll_interval", int, 30),
    ("print_usage", "ups", "print_usage", bool, False),
    ("heartbeat_url", "heartbeat", "url", str, ""),
    ("heartbeat_interval", "heartbeat", "interval", float, 60.0),
    ("liveness_threshold", "heartbeat", "liveness_threshold", float, 120.0),
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nut-influx-connector",
        description="Ship NUT UPS statistics to InfluxDB.",
    )
    # Defaults are None so INI values can be told apart from explicit flags.
    parser.add_argument("--config", help="INI file supplying defaults for the options below.")
    parser.add_argument("--influx-server", help="InfluxDB server, including protocol and port, eg. 'http://192.168.1.1:8086'. Required.")
    parser.add_argument("--influx-username", help="InfluxDB username.")
    parser.add_argument("--influx-password", help="InfluxDB password.")
    parser.add_argument("--influx-bucket", help="InfluxDB bucket. Supply a string in the form 'database/retention-policy'. For the default retention policy, pass just a database name. Required.")
    parser.add_argument("--measurement-name", help="InfluxDB measurement name. Default: ups_stats.")
    parser.add_argument("--ups-nametag", help="Value for the ups_name tag in InfluxDB. Required.")
    parser.add_argument("--ups", help="UPS to read status from, format 'upsname[@hostname[:port]]'. Required.")
    parser.add_argument("--poll-interval", type=int, help="Polling interval, in seconds. Default: 30.")
    parser.add_argument("--print-usage", action="store_true", default=None, help="Log energy usage (in watts) to standard error.")
    parser.add_argument("--influx-timeout", type=int, help="Timeout for writing to InfluxDB, in seconds. Default: 3.")
    parser.add_argument("--heartbeat-url", help="URL to GET every heartbeat interval, if and only if statistics were written to InfluxDB within the liveness threshold.")
    parser.add_argument("--heartbeat-interval", type=float, help="Seconds between heartbeats. Default: 60.")
    parser.add_argument("--liveness-threshold", type=float, help="Seconds since the last successful write after which heartbeats stop. Default: 120.")
    parser.add_argument("--version", dest="print_version", action="store_true", help="Print version and exit.")
    return parser


def _read_ini(path: str) -> configparser.ConfigParser:
    parser = configparser.ConfigParser(interpolation=None)
    if not os.path.isfile(path):
        raise ConfigError(f"Config file not found at: {path}")
    try:
        parser.read(path)
    except configparser.Error as exc:
        raise ConfigError(f"Config file {path} is malformed: {exc}") from exc
    return parser


def _ini_value(ini: configparser.ConfigParser, section: str, key: str, kind):
    try:
        if kind is bool:
            return ini.getboolean(section, key)
        if kind is int:
            return ini.getint(section, key)
        if kind is float:
            return ini.getfloat(section, key)
        return ini.get(section, key)
    except (ValueError, configparser.Error) as exc:
        raise ConfigError(f"[{section}] {key}: {exc}") from exc


def load_config(argv: Optional[Sequence[str]] = None) -> Config:
    """Parse argv (and the --config file, if given) into a validated Config."""
    args = build_parser().parse_args(argv)
    ini = _read_ini(args.config) if args.config else None

    values = {}
    for dest, section, key, kind, default in _SETTINGS:
        value = getattr(args, dest)
        if value is None and ini is not None and ini.has_option(section, key):
            value = _ini_value(ini, section, key, kind)
        values[dest] = default if value is None else value
    config = Config(print_version=args.print_version, **values)
    if not config.print_version:
        validate(config)
    return config


def validate(config: Config) -> None:
    if not config.influx_server or not config.influx_bucket:
        raise ConfigError("--influx-bucket and --influx-server must be supplied.")
    if not config.ups_nametag or not config.ups:
        raise ConfigError("--ups and --ups-nametag must be supplied.")
    if config.poll_interval <= 0:
        raise ConfigError("--poll-interval must be positive.")
    if config.influx_timeout <= 0:
        raise ConfigError("--influx-timeout must be positive.")
