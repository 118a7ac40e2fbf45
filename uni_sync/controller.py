"""USB HID connection to one fan controller."""

import logging
import time
from pathlib import Path

import hid

from uni_sync.identity import DiscoveredDevice
from uni_sync.model import DeviceConfig
from uni_sync.policy import evaluate_channel
from uni_sync.protocol import DELAY_SELECT, DELAY_SPEED, DELAY_SYNC, MAX_CHANNELS

log = logging.getLogger(__name__)


class Controller:
    """Manages USB HID communication with a single fan controller.

    Protocol-agnostic: all model-specific bytes come from the device's Protocol.
    Writes are strictly sequential and followed by the firmware settle delays.
    """

    def __init__(self, device: DiscoveredDevice) -> None:
        self._device_info = device
        self._protocol = device.protocol
        self._device: hid.device | None = None
        self.write_failures = 0

    @property
    def connected(self) -> bool:
        return self._device is not None

    def open(self) -> None:
        """Open the controller by its HID path. Raises OSError on failure."""
        if self._device is not None:
            return

        dev = hid.device()
        dev.open_path(self._device_info.path)
        self._device = dev
        log.debug(
            "Opened %s at %s (S/N: %s)",
            self._protocol.name,
            self._device_info.path.decode(errors="replace"),
            self._device_info.identity.serial,
        )

    def close(self) -> None:
        """Close the connection to the controller."""
        if self._device is not None:
            try:
                self._device.close()
            except OSError:
                pass
            self._device = None

    def __enter__(self) -> "Controller":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _write(self, data: list[int], delay: float) -> None:
        """Write one command, then wait for the controller to settle.

        Write errors are logged and counted but not raised: one lost frame
        must not abort programming of the remaining channels.
        """
        if self._device is None:
            raise OSError("Controller not connected")
        if log.isEnabledFor(logging.DEBUG):
            log.debug("%s <- %s", self._device_info.device_id,
                      " ".join(f"{b:02x}" for b in data))
        try:
            self._device.write(bytes(data))
        except (OSError, ValueError) as e:
            # hidapi raises ValueError for a closed handle or malformed buffer
            self.write_failures += 1
            log.warning("Write to %s failed: %s", self._device_info.device_id, e)
        time.sleep(delay)

    def apply(self, config: DeviceConfig, curve_dir: Path | None = None) -> None:
        """Send RGB sync, channel modes and speeds for a device configuration.

        Only the channels present in the configuration are programmed.
        """
        p = self._protocol

        self._write(p.build_sync(config.sync_rgb), DELAY_SYNC)

        for index, channel in enumerate(config.channels):
            if index >= MAX_CHANNELS:
                log.warning("%s: ignoring channels beyond %d", config.device_id, MAX_CHANNELS)
                break

            self._write(p.build_channel_select(index, channel.channel_mode), DELAY_SELECT)

            speed = evaluate_channel(index, channel, curve_dir)
            if speed is not None:
                log.debug(
                    "Channel %d: %d%% (byte value: %d)", index, speed, p.speed_to_byte(speed),
                )
                self._write(p.build_speed(index, speed), DELAY_SPEED)
