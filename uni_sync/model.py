"""Persisted device configuration: data model and JSON storage.

File layout::

    {"configs": [{"device_id": "VID:3314/PID:41218/SN:...",
                  "sync_rgb": false,
                  "channels": [{"mode": "Manual", "speed": 50, "fan_curve": null}]}]}
"""

import enum
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger(__name__)

DEFAULT_CHANNEL_COUNT = 4
DEFAULT_SPEED = 50


class ConfigLoadError(Exception):
    """The persisted configuration could not be read or parsed."""


class ChannelMode(enum.Enum):
    """How a channel's fan speed is driven."""

    MANUAL = "Manual"
    PWM = "PWM"
    FAN_CURVE = "fan-curve"
    UNKNOWN = None

    @classmethod
    def parse(cls, raw: str) -> "ChannelMode":
        for mode in cls:
            if mode.value == raw:
                return mode
        return cls.UNKNOWN


@dataclass
class ChannelConfig:
    """Settings for one fan channel.

    ``mode`` keeps the string exactly as found in the file so unrecognized
    modes survive a load/save cycle.
    """

    mode: str = ChannelMode.MANUAL.value
    speed: int = DEFAULT_SPEED
    fan_curve: str | None = None

    @property
    def channel_mode(self) -> ChannelMode:
        return ChannelMode.parse(self.mode)

    @classmethod
    def from_dict(cls, raw: dict) -> "ChannelConfig":
        mode = raw["mode"]
        speed = raw.get("speed", DEFAULT_SPEED)
        fan_curve = raw.get("fan_curve")
        if not isinstance(mode, str):
            raise TypeError(f"mode must be a string, got {mode!r}")
        if isinstance(speed, bool) or not isinstance(speed, int):
            raise TypeError(f"speed must be an integer, got {speed!r}")
        if fan_curve is not None and not isinstance(fan_curve, str):
            raise TypeError(f"fan_curve must be a string or null, got {fan_curve!r}")
        if not 0 <= speed <= 100:
            log.warning("Speed %d out of range, clamping to 0-100", speed)
            speed = max(0, min(100, speed))
        return cls(mode=mode, speed=speed, fan_curve=fan_curve)

    def to_dict(self) -> dict:
        return {"mode": self.mode, "speed": self.speed, "fan_curve": self.fan_curve}


@dataclass
class DeviceConfig:
    """Settings for one controller, keyed by its device id."""

    device_id: str
    sync_rgb: bool = False
    channels: list[ChannelConfig] = field(default_factory=list)

    @classmethod
    def default(cls, device_id: str) -> "DeviceConfig":
        """Hardware-safe defaults for a newly seen controller."""
        return cls(
            device_id=device_id,
            sync_rgb=False,
            channels=[ChannelConfig() for _ in range(DEFAULT_CHANNEL_COUNT)],
        )

    @classmethod
    def from_dict(cls, raw: dict) -> "DeviceConfig":
        device_id = raw["device_id"]
        sync_rgb = raw.get("sync_rgb", False)
        if not isinstance(device_id, str):
            raise TypeError(f"device_id must be a string, got {device_id!r}")
        if not isinstance(sync_rgb, bool):
            raise TypeError(f"sync_rgb must be a boolean, got {sync_rgb!r}")
        return cls(
            device_id=device_id,
            sync_rgb=sync_rgb,
            channels=[ChannelConfig.from_dict(c) for c in raw.get("channels", [])],
        )

    def to_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "sync_rgb": self.sync_rgb,
            "channels": [c.to_dict() for c in self.channels],
        }


@dataclass
class ConfigSet:
    """All persisted device configurations, at most one per device id."""

    configs: list[DeviceConfig] = field(default_factory=list)

    def find(self, device_id: str) -> DeviceConfig | None:
        for config in self.configs:
            if config.device_id == device_id:
                return config
        return None

    @classmethod
    def from_dict(cls, raw: dict) -> "ConfigSet":
        return cls(configs=[DeviceConfig.from_dict(c) for c in raw.get("configs", [])])

    def to_dict(self) -> dict:
        return {"configs": [c.to_dict() for c in self.configs]}


def load_configs(path: str | Path) -> ConfigSet:
    """Load the device configurations from a JSON file.

    A missing file yields an empty set. Raises ConfigLoadError if the file
    cannot be read or does not have the expected shape.
    """
    path = Path(path)
    if not path.exists():
        log.info("No configuration at %s, starting empty", path)
        return ConfigSet()

    try:
        raw = json.loads(path.read_text())
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigLoadError(f"Cannot read {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigLoadError(f"Invalid configuration in {path}: expected an object")

    try:
        return ConfigSet.from_dict(raw)
    except (KeyError, TypeError, AttributeError) as e:
        raise ConfigLoadError(f"Invalid configuration in {path}: {e}") from e


def save_configs(path: str | Path, configs: ConfigSet) -> None:
    """Write the device configurations atomically. Raises OSError on failure."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(configs.to_dict(), f, indent=2)
            f.write("\n")
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    log.debug("Saved %d device configuration(s) to %s", len(configs.configs), path)
