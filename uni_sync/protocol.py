"""Fan controller protocol definitions.

Each Protocol instance encapsulates the USB identification, command format and
speed scaling for one controller model. Models are grouped into hardware
families that share an opcode set; per-model scaling data is loaded from
protocols.yaml, keyed by USB product id.

Lian-Li protocol reverse-engineered from https://github.com/EightB1ts/uni-sync.
"""

import enum
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml

from uni_sync.model import ChannelMode

log = logging.getLogger(__name__)

_PROTOCOLS_FILE = Path(__file__).parent / "protocols.yaml"

LIAN_LI_VENDOR_ID = 0x0CF2
SUPPORTED_VENDOR_IDS = frozenset({LIAN_LI_VENDOR_ID})

CMD_PREFIX = 0xE0
SUB_CMD = 0x10
SPEED_CHANNEL_BASE = 0x20
MAX_CHANNELS = 8

# Inter-command delays (seconds)
DELAY_SYNC = 0.2
DELAY_SELECT = 0.2
DELAY_SPEED = 0.1


class HardwareFamily(enum.Enum):
    """Controller generations sharing one opcode set."""

    LEGACY = "legacy"
    V1 = "v1"
    V2 = "v2"

    @property
    def sync_opcode(self) -> int:
        return _OPCODES[self][0]

    @property
    def select_opcode(self) -> int:
        return _OPCODES[self][1]


# family -> (sync RGB opcode, channel select opcode)
_OPCODES: dict[HardwareFamily, tuple[int, int]] = {
    HardwareFamily.LEGACY: (0x30, 0x31),
    HardwareFamily.V1: (0x41, 0x42),
    HardwareFamily.V2: (0x61, 0x62),
}


@dataclass(frozen=True)
class Protocol:
    """USB HID protocol definition for a fan controller model."""

    name: str
    vendor_id: int
    product_id: int
    family: HardwareFamily

    # Speed conversion: byte = int(rpm_min + rpm_scale * speed%) // rpm_divisor
    rpm_min: float
    rpm_scale: float
    rpm_divisor: int

    def speed_to_byte(self, speed_percent: float) -> int:
        """Convert a speed percentage (0-100) to the controller byte value.

        The numerator is truncated before the integer division; the firmware
        tables were calibrated against exactly this arithmetic.
        """
        clamped = max(0.0, min(100.0, speed_percent))
        numerator = int(self.rpm_min + self.rpm_scale * clamped)
        return (numerator // self.rpm_divisor) & 0xFF

    def build_sync(self, enabled: bool) -> list[int]:
        """Build the RGB sync command."""
        return [CMD_PREFIX, SUB_CMD, self.family.sync_opcode, 1 if enabled else 0,
                0x00, 0x00, 0x00]

    def build_channel_select(self, channel: int, mode: ChannelMode) -> list[int]:
        """Build the channel select command, setting the PWM bit if requested."""
        _check_channel(channel)
        # Single byte: the mode-select bit is shifted out for channels 4-7
        control = 0x10 << channel
        if mode is ChannelMode.PWM:
            control |= 0x1 << channel
        return [CMD_PREFIX, SUB_CMD, self.family.select_opcode, control & 0xFF]

    def build_speed(self, channel: int, speed_percent: float) -> list[int]:
        """Build the speed command for a channel."""
        return build_speed_frame(channel, self.speed_to_byte(speed_percent))


def build_speed_frame(channel: int, speed_byte: int) -> list[int]:
    """Build a raw speed command. The format is the same for every family."""
    _check_channel(channel)
    return [CMD_PREFIX, SPEED_CHANNEL_BASE + channel, 0x00, speed_byte & 0xFF]


def _check_channel(channel: int) -> None:
    if not 0 <= channel < MAX_CHANNELS:
        raise ValueError(f"Channel must be 0-{MAX_CHANNELS - 1}, got {channel}")


@lru_cache(maxsize=1)
def _load_all() -> dict[int, dict]:
    """Load raw protocol definitions from YAML."""
    with open(_PROTOCOLS_FILE) as f:
        return yaml.safe_load(f)


def supported_product_ids() -> frozenset[int]:
    """Return the product ids of all known controller models."""
    return frozenset(_load_all())


def load_protocol(product_id: int, vendor_id: int = LIAN_LI_VENDOR_ID) -> Protocol:
    """Load the Protocol for a product id from protocols.yaml.

    Unknown product ids fall back to the legacy SL protocol, which is what the
    earliest controllers speak.
    """
    protocols = _load_all()
    raw = protocols.get(product_id)
    if raw is None:
        log.debug("No protocol for product 0x%04X, using legacy protocol", product_id)
        raw = {**protocols[0xA100], "name": f"Unknown controller 0x{product_id:04X}"}

    return Protocol(
        name=raw["name"],
        vendor_id=vendor_id,
        product_id=product_id,
        family=HardwareFamily(raw["family"]),
        rpm_min=float(raw["rpm_min"]),
        rpm_scale=float(raw["rpm_scale"]),
        rpm_divisor=int(raw["rpm_divisor"]),
    )
