"""One reconciliation pass: merge persisted configs with attached controllers."""

import copy
import logging
from pathlib import Path

import hid

from uni_sync.controller import Controller
from uni_sync.identity import DiscoveredDevice, resolve_devices
from uni_sync.model import ConfigSet, DeviceConfig

log = logging.getLogger(__name__)


def reconcile(
    discovered: list[DiscoveredDevice],
    persisted: ConfigSet,
    curve_dir: Path | None = None,
) -> ConfigSet:
    """Program every discovered controller and return the updated configs.

    ``persisted`` is not modified. Controllers without a config get the
    defaults; configs of controllers not attached are passed through as is.
    """
    updated = copy.deepcopy(persisted)

    for device in discovered:
        controller = Controller(device)
        try:
            controller.open()
        except OSError as e:
            log.warning(
                "Cannot open %s (%s). Please run uni-sync with elevated permissions "
                "or install a udev rule granting access to the device.",
                device.device_id, e,
            )
            continue

        config = updated.find(device.device_id)
        if config is None:
            log.info("New controller %s (%s), using defaults", device.device_id,
                     device.protocol.name)
            config = DeviceConfig.default(device.device_id)
            updated.configs.append(config)

        try:
            controller.apply(config, curve_dir)
        except Exception:
            log.exception("Failed to program %s, skipping it this pass", device.device_id)
            continue
        finally:
            controller.close()

        if controller.write_failures:
            log.warning("%s: %d command(s) failed this pass", device.device_id,
                        controller.write_failures)
        else:
            log.debug("%s: configuration applied", device.device_id)

    return updated


def run(persisted: ConfigSet, curve_dir: Path | None = None) -> ConfigSet:
    """Enumerate the HID bus and reconcile all supported controllers."""
    try:
        records = hid.enumerate()
    except OSError as e:
        log.warning("Could not find any controllers: %s", e)
        return copy.deepcopy(persisted)

    return reconcile(resolve_devices(records), persisted, curve_dir)
