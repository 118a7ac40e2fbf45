"""Tests for the USB HID controller with mocked device."""

import logging
from unittest.mock import MagicMock, call, patch

import pytest

from uni_sync.controller import Controller
from uni_sync.identity import DeviceIdentity, DiscoveredDevice
from uni_sync.model import ChannelConfig, ChannelMode, DeviceConfig
from uni_sync.protocol import load_protocol

PROTO = load_protocol(0xA102)
DEVICE = DiscoveredDevice(DeviceIdentity(0x0CF2, 0xA102, "ABC123"), PROTO, b"/dev/hidraw0")


def _make_connected_controller() -> tuple[Controller, MagicMock]:
    """Create a Controller with a mocked HID device, already open."""
    mock_dev = MagicMock()
    ctrl = Controller(DEVICE)
    ctrl._device = mock_dev
    return ctrl, mock_dev


def _writes(mock_dev: MagicMock) -> list[bytes]:
    return [c.args[0] for c in mock_dev.write.call_args_list]


class TestControllerApply:
    @patch("uni_sync.controller.time.sleep")
    def test_default_config_sequence(self, mock_sleep: MagicMock) -> None:
        ctrl, mock_dev = _make_connected_controller()
        ctrl.apply(DeviceConfig.default(DEVICE.device_id))

        expected = [bytes(PROTO.build_sync(False))]
        for ch in range(4):
            expected.append(bytes(PROTO.build_channel_select(ch, ChannelMode.MANUAL)))
            expected.append(bytes(PROTO.build_speed(ch, 50)))
        assert _writes(mock_dev) == expected

    @patch("uni_sync.controller.time.sleep")
    def test_settle_delays(self, mock_sleep: MagicMock) -> None:
        ctrl, _ = _make_connected_controller()
        config = DeviceConfig(DEVICE.device_id, True, [ChannelConfig("Manual", 30)])
        ctrl.apply(config)
        assert mock_sleep.call_args_list == [call(0.2), call(0.2), call(0.1)]

    @patch("uni_sync.controller.time.sleep")
    def test_sync_rgb_enabled(self, mock_sleep: MagicMock) -> None:
        ctrl, mock_dev = _make_connected_controller()
        ctrl.apply(DeviceConfig(DEVICE.device_id, True, []))
        assert _writes(mock_dev) == [bytes([0xE0, 0x10, 0x61, 1, 0, 0, 0])]

    @patch("uni_sync.controller.time.sleep")
    def test_pwm_channel_select_only(self, mock_sleep: MagicMock) -> None:
        ctrl, mock_dev = _make_connected_controller()
        config = DeviceConfig(DEVICE.device_id, False, [
            ChannelConfig("Manual", 50), ChannelConfig("Manual", 50), ChannelConfig("PWM", 50),
        ])
        ctrl.apply(config)

        writes = _writes(mock_dev)
        assert writes[-1] == bytes([0xE0, 0x10, 0x62, 0x44])
        assert len(writes) == 1 + 2 * 2 + 1

    @patch("uni_sync.controller.time.sleep")
    def test_iterates_configured_channels_only(self, mock_sleep: MagicMock) -> None:
        ctrl, mock_dev = _make_connected_controller()
        config = DeviceConfig(DEVICE.device_id, False, [ChannelConfig("Manual", 80)] * 6)
        ctrl.apply(config)
        assert mock_dev.write.call_count == 1 + 6 * 2
        assert _writes(mock_dev)[-1] == bytes(PROTO.build_speed(5, 80))

    @patch("uni_sync.controller.time.sleep")
    def test_channels_beyond_eight_ignored(self, mock_sleep: MagicMock) -> None:
        ctrl, mock_dev = _make_connected_controller()
        config = DeviceConfig(DEVICE.device_id, False, [ChannelConfig("PWM", 50)] * 10)
        ctrl.apply(config)
        assert mock_dev.write.call_count == 1 + 8

    @patch("uni_sync.controller.time.sleep")
    def test_write_failure_does_not_stop_sequence(self, mock_sleep: MagicMock) -> None:
        ctrl, mock_dev = _make_connected_controller()
        mock_dev.write.side_effect = [OSError("pipe"), None, None, None, None]
        config = DeviceConfig(DEVICE.device_id, False,
                              [ChannelConfig("Manual", 50), ChannelConfig("Manual", 60)])
        ctrl.apply(config)
        assert mock_dev.write.call_count == 5
        assert ctrl.write_failures == 1

    @patch("uni_sync.controller.time.sleep")
    def test_value_error_from_write_counted(self, mock_sleep: MagicMock) -> None:
        ctrl, mock_dev = _make_connected_controller()
        mock_dev.write.side_effect = ValueError("not open")
        ctrl.apply(DeviceConfig(DEVICE.device_id, False, [ChannelConfig("Manual", 50)]))
        assert mock_dev.write.call_count == 3
        assert ctrl.write_failures == 3

    @patch("uni_sync.controller.time.sleep")
    def test_frames_logged_at_debug(
        self, mock_sleep: MagicMock, caplog: pytest.LogCaptureFixture,
    ) -> None:
        ctrl, _mock_dev = _make_connected_controller()
        with caplog.at_level(logging.DEBUG, logger="uni_sync.controller"):
            ctrl.apply(DeviceConfig(DEVICE.device_id, True, []))
        assert "e0 10 61 01 00 00 00" in caplog.text

    def test_apply_not_connected_raises(self) -> None:
        ctrl = Controller(DEVICE)
        with pytest.raises(OSError, match="not connected"):
            ctrl.apply(DeviceConfig.default(DEVICE.device_id))


class TestControllerConnection:
    @patch("uni_sync.controller.hid")
    def test_open_by_path(self, mock_hid: MagicMock) -> None:
        ctrl = Controller(DEVICE)
        ctrl.open()
        assert ctrl.connected is True
        mock_hid.device.return_value.open_path.assert_called_once_with(b"/dev/hidraw0")

    @patch("uni_sync.controller.hid")
    def test_open_failure_raises(self, mock_hid: MagicMock) -> None:
        mock_hid.device.return_value.open_path.side_effect = OSError("open failed")
        ctrl = Controller(DEVICE)
        with pytest.raises(OSError, match="open failed"):
            ctrl.open()
        assert ctrl.connected is False

    @patch("uni_sync.controller.hid")
    def test_context_manager_closes(self, mock_hid: MagicMock) -> None:
        with Controller(DEVICE) as ctrl:
            assert ctrl.connected is True
        assert ctrl.connected is False
        mock_hid.device.return_value.close.assert_called_once()

    def test_close_tolerates_os_error(self) -> None:
        ctrl, mock_dev = _make_connected_controller()
        mock_dev.close.side_effect = OSError("USB gone")

        ctrl.close()  # should not raise
        assert ctrl.connected is False
