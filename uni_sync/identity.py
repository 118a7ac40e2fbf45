"""Controller discovery: filter HID enumeration records and derive device ids."""

import logging
from dataclasses import dataclass

from uni_sync.protocol import (
    SUPPORTED_VENDOR_IDS,
    Protocol,
    load_protocol,
    supported_product_ids,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceIdentity:
    """Identifies a controller across runs, independently of its OS path."""

    vendor_id: int
    product_id: int
    serial: str

    @property
    def device_id(self) -> str:
        """Persistence key, e.g. ``VID:3314/PID:41218/SN:6243168001``."""
        return f"VID:{self.vendor_id}/PID:{self.product_id}/SN:{self.serial}"


@dataclass(frozen=True)
class DiscoveredDevice:
    """A supported controller found on the bus, with its protocol resolved."""

    identity: DeviceIdentity
    protocol: Protocol
    path: bytes

    @property
    def device_id(self) -> str:
        return self.identity.device_id


def resolve_devices(records: list[dict]) -> list[DiscoveredDevice]:
    """Select supported controllers from ``hid.enumerate()`` records.

    Records without a serial number cannot be given a stable id and are
    skipped.
    """
    products = supported_product_ids()
    devices = []
    for info in records:
        vendor_id = info.get("vendor_id")
        product_id = info.get("product_id")
        if vendor_id not in SUPPORTED_VENDOR_IDS or product_id not in products:
            continue

        path = info.get("path", b"")
        serial = info.get("serial_number")
        if not serial:
            log.warning(
                "Controller 0x%04X:0x%04X at %s has no serial number, skipping",
                vendor_id, product_id, path.decode(errors="replace"),
            )
            continue

        identity = DeviceIdentity(vendor_id, product_id, serial)
        devices.append(DiscoveredDevice(identity, load_protocol(product_id, vendor_id), path))
    return devices
