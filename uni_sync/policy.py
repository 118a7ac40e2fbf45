"""Per-channel speed policy: decides which speed, if any, to send."""

import logging
from pathlib import Path

from uni_sync.curve import CurveReadError, interpolate, read_curve
from uni_sync.model import ChannelConfig, ChannelMode
from uni_sync.temperature import SensorUnavailableError, read_sensor_temperature

log = logging.getLogger(__name__)


def _curve_speed(index: int, channel: ChannelConfig, curve_dir: Path | None) -> int | None:
    if not channel.fan_curve:
        log.warning("Channel %d is in fan-curve mode but has no fan_curve file", index)
        return None

    path = Path(channel.fan_curve)
    if curve_dir is not None and not path.is_absolute():
        path = curve_dir / path

    try:
        curve = read_curve(path)
        temperature = read_sensor_temperature(curve.sensor)
    except (CurveReadError, SensorUnavailableError) as e:
        log.warning("Channel %d: %s, keeping speed at %d%%", index, e, channel.speed)
        return None

    speed = interpolate(curve, temperature)
    log.debug("Channel %d: %s at %.1f°C → %d%%", index, curve.sensor, temperature, speed)
    return speed


def evaluate_channel(
    index: int, channel: ChannelConfig, curve_dir: Path | None = None,
) -> int | None:
    """Return the speed to write for a channel, or None to leave it alone.

    In fan-curve mode the computed speed is stored back into ``channel.speed``.
    Relative curve paths are resolved against ``curve_dir``.
    """
    mode = channel.channel_mode

    if mode is ChannelMode.MANUAL:
        return channel.speed

    if mode is ChannelMode.PWM:
        # The controller follows the motherboard PWM signal once selected
        return None

    if mode is ChannelMode.FAN_CURVE:
        speed = _curve_speed(index, channel, curve_dir)
        if speed is not None:
            channel.speed = speed
        return speed

    log.warning("Unknown mode for channel %d: %s", index, channel.mode)
    return None
