"""Read UPS variables through the NUT ``upsc`` client."""
import subprocess

UPSC = "upsc"


class NutReadError(Exception):
    """A UPS variable could not be read or parsed."""


def read_nut(ups: str, key: str) -> str:
    """Return the stripped value of ``key`` for ``ups`` as reported by upsc."""
    try:
        result = subprocess.run(
            [UPSC, ups, key], capture_output=True, text=True, check=True
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise NutReadError(f"failed to read {key}: {exc}") from exc
    return result.stdout.strip()


def read_nut_int(ups: str, key: str) -> int:
    value = read_nut(ups, key)
    try:
        return int(value)
    except ValueError as exc:
        raise NutReadError(f"failed to parse {key} '{value}' to int: {exc}") from exc


def read_nut_float(ups: str, key: str) -> float:
    value = read_nut(ups, key)
    try:
        return float(value)
    except ValueError as exc:
        raise NutReadError(f"failed to parse {key} '{value}' to float: {exc}") from exc


class NutReader:
    """Typed reads against one UPS, formatted ``upsname[@hostname[:port]]``."""

    def __init__(self, ups: str):
        self.ups = ups

    def read_int(self, key: str) -> int:
        return read_nut_int(self.ups, key)

    def read_float(self, key: str) -> float:
        return read_nut_float(self.ups, key)
