"""Fan curves: temperature/speed point lists with linear interpolation."""

from dataclasses import dataclass
from pathlib import Path

import yaml


class CurveReadError(Exception):
    """A fan curve file is missing or malformed."""


@dataclass(frozen=True)
class FanCurve:
    """A piecewise linear fan curve driven by one temperature sensor."""

    sensor: str
    points: tuple[tuple[float, float], ...]  # (°C, speed %), sorted by temperature

    def compute_speed(self, temperature: float) -> float:
        """Compute fan speed for a given temperature using linear interpolation."""
        first_temp, first_speed = self.points[0]
        last_temp, last_speed = self.points[-1]
        if temperature <= first_temp:
            return first_speed
        if temperature >= last_temp:
            return last_speed

        for (t0, s0), (t1, s1) in zip(self.points, self.points[1:]):
            if t0 <= temperature <= t1:
                if t1 == t0:
                    return s1
                ratio = (temperature - t0) / (t1 - t0)
                return s0 + ratio * (s1 - s0)
        return last_speed


def interpolate(curve: FanCurve, temperature: float) -> int:
    """Fan speed (0-100) for a temperature, clamped to the curve's end points."""
    return max(0, min(100, int(curve.compute_speed(temperature))))


def read_curve(path: str | Path) -> FanCurve:
    """Read a fan curve definition.

    The file is JSON (YAML is accepted too)::

        {"sensor": "k10temp/Tctl", "points": [[30, 25], [60, 50], [80, 100]]}

    Raises CurveReadError if the file is missing or malformed.
    """
    path = Path(path)
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        # ValueError also covers UnicodeDecodeError and NUL bytes in the path
        raise CurveReadError(f"Cannot read fan curve {path}: {e}") from e

    if not isinstance(raw, dict):
        raise CurveReadError(f"Invalid fan curve {path}: expected an object")

    sensor = raw.get("sensor")
    if not isinstance(sensor, str) or not sensor:
        raise CurveReadError(f"Invalid fan curve {path}: missing sensor name")

    try:
        points = sorted((float(t), float(s)) for t, s in raw["points"])
    except (KeyError, TypeError, ValueError) as e:
        raise CurveReadError(f"Invalid fan curve {path}: bad points ({e})") from e

    if not points:
        raise CurveReadError(f"Invalid fan curve {path}: no points")
    if any(not 0 <= s <= 100 for _, s in points):
        raise CurveReadError(f"Invalid fan curve {path}: speeds must be 0-100")

    return FanCurve(sensor=sensor, points=tuple(points))
