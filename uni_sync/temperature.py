"""Temperature sensor reading via psutil.

Sensors are named ``<chip>/<label>``, e.g. ``k10temp/Tctl`` or
``coretemp/Package id 0``. A bare chip name selects the hottest reading
of that chip.
"""

import logging

import psutil

log = logging.getLogger(__name__)


class SensorUnavailableError(Exception):
    """A temperature sensor could not be read."""


def _read_all() -> dict[str, float]:
    """Return every temperature reading keyed by sensor name."""
    try:
        temps = psutil.sensors_temperatures()
    except (AttributeError, OSError) as e:
        raise SensorUnavailableError(f"Cannot read temperature sensors: {e}") from e

    readings: dict[str, float] = {}
    for chip, entries in (temps or {}).items():
        for index, entry in enumerate(entries):
            label = entry.label or f"temp{index + 1}"
            readings[f"{chip}/{label}"] = entry.current
    return readings


def list_available_sensors() -> list[str]:
    """Return the names of all readable temperature sensors."""
    try:
        return sorted(_read_all())
    except SensorUnavailableError as e:
        log.warning("%s", e)
        return []


def read_sensor_temperature(name: str) -> float:
    """Read a sensor's current temperature in degrees Celsius.

    Raises SensorUnavailableError if the sensor does not exist.
    """
    readings = _read_all()
    if name in readings:
        return readings[name]

    # Bare chip name: hottest reading of that chip
    chip_readings = [v for k, v in readings.items() if k.split("/", 1)[0] == name]
    if chip_readings:
        return max(chip_readings)

    raise SensorUnavailableError(f"Sensor '{name}' not found")
