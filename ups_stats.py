# /nut_influx_connector/ups_stats.py

"""
Module: ups_stats.py
Purpose: Turn raw NUT variables into the field set written to InfluxDB.
Consumes:
- A reader exposing read_int(key), read_float(key) and ups (nut_reader.NutReader)
Produces:
- Dict of field name -> int | float for one UPS poll
Behavior:
- Required variables abort the poll with NutReadError when unreadable
- Nominal power falls back from ups.realpower.nominal to ups.power.nominal
- Output power is estimated from nominal power and load when ups.power is absent
- Optional variables are logged and skipped when unreadable
"""

import math

from logger import get_logger
from nut_reader import NutReadError

logger = get_logger(__name__)

REQUIRED_INT_FIELDS = (
    ("battery_charge_percent", "battery.charge"),
    ("battery_charge_low_percent", "battery.charge.low"),
    ("battery_runtime_s", "battery.runtime"),
)
REQUIRED_FLOAT_FIELDS = (
    ("battery_voltage", "battery.voltage"),
    ("battery_voltage_nominal", "battery.voltage.nominal"),
    ("input_voltage", "input.voltage"),
    ("input_voltage_nominal", "input.voltage.nominal"),
)
OPTIONAL_FLOAT_FIELDS = (
    ("output_voltage", "output.voltage"),
    ("output_voltage_nominal", "output.voltage.nominal"),
    ("output_current", "output.current"),
)
OPTIONAL_FREQUENCY_FIELDS = (
    ("input_frequency", "input.frequency"),
    ("output_frequency", "output.frequency"),
    ("output_frequency_nominal", "output.frequency.nominal"),
)


def round_half_away(value):
    """Round to the nearest whole number, halves away from zero."""
    whole = math.floor(abs(value))
    if abs(value) - whole >= 0.5:
        whole += 1
    return math.copysign(whole, value)


def celsius_to_fahrenheit(temp_c):
    return round_half_away(temp_c * 9.0 / 5.0 + 32.0)


def read_nominal_power(reader):
    """
    Read the UPS nominal power rating in watts.
    Tries ups.realpower.nominal first, then ups.power.nominal.
    """
    try:
        return reader.read_int("ups.realpower.nominal")
    except NutReadError as err:
        try:
            return reader.read_int("ups.power.nominal")
        except NutReadError as err2:
            logger.error(str(err))
            logger.error(str(err2))
            raise


def read_power(reader, ups, nominal_power, load, print_usage=False):
    """
    Return current output power in watts.
    Falls back to nominal_power * load% when the UPS does not report ups.power.
    """
    try:
        power = reader.read_float("ups.power")
    except NutReadError:
        power = round_half_away(nominal_power * load / 100.0)
        if print_usage:
            logger.info("current approx. output for '%s': %.f watts", ups, power)
    else:
        if print_usage:
            logger.info("current output for '%s': %.f watts", ups, power)
    return power


def collect_fields(reader, print_usage=False):
    """
    Read one full set of UPS statistics.
    reader must expose read_int(key), read_float(key) and the ups name it reads from.
    Raises NutReadError if any required variable is unavailable.
    """
    fields = {}
    for name, key in REQUIRED_INT_FIELDS:
        fields[name] = reader.read_int(key)
    for name, key in REQUIRED_FLOAT_FIELDS:
        fields[name] = reader.read_float(key)
    load = reader.read_int("ups.load")
    nominal_power = read_nominal_power(reader)
    power = read_power(reader, reader.ups, nominal_power, load, print_usage)

    fields.update({
        "watts": power,  # backward compatibility
        "power": power,
        "power_nominal": nominal_power,
        "load_percent": load,
    })

    # optional properties follow:
    for name, key in OPTIONAL_FLOAT_FIELDS:
        _read_optional(fields, name, reader.read_float, key)
    _read_optional(fields, "battery_charge_warning_percent", reader.read_int, "battery.charge.warning")
    if _read_optional(fields, "battery_temperature_c", reader.read_float, "battery.temperature"):
        fields["battery_temperature_f"] = celsius_to_fahrenheit(fields["battery_temperature_c"])
    for name, key in OPTIONAL_FREQUENCY_FIELDS:
        _read_optional(fields, name, reader.read_float, key)
    return fields


def _read_optional(fields, name, read, key):
    try:
        fields[name] = read(key)
    except NutReadError as err:
        logger.warning(str(err))
        return False
    return True
