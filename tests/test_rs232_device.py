import threading

import pytest

from k2controller.can_interface import CANInterface
from k2controller.device_protocol import DeviceStatus
from k2controller.rs232_device import RS232Device


@pytest.fixture(autouse=True)
def _work_in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


def test_identity():
    device = RS232Device("relay_1")
    assert device.id == "relay_1"
    assert device.type == "RS232"
    assert device.status is DeviceStatus.DISCONNECTED


def test_send_command_always_succeeds():
    device = RS232Device("relay_1")
    assert device.send_command(0x00) is True
    assert device.send_command(0xFF, b"\x01\x02", 0x10, 5) is True


def test_set_interface_leaves_device_usable():
    device = RS232Device("relay_1")
    device.set_interface(CANInterface("vcan-test"))
    assert device.send_command(0x01) is True
    assert device.status is DeviceStatus.DISCONNECTED


def test_connect_reports_connected_then_active():
    device = RS232Device("relay_1", heartbeat_interval_ms=10)
    seen = []
    active = threading.Event()

    def callback(dev_id, status):
        seen.append((dev_id, status))
        if status is DeviceStatus.ACTIVE:
            active.set()

    device.set_status_callback(callback)
    assert device.connect() is True
    assert active.wait(2.0)
    assert device.disconnect() is True
    assert seen[0] == ("relay_1", DeviceStatus.CONNECTED)
    assert ("relay_1", DeviceStatus.ACTIVE) in seen
    assert seen[-1] == ("relay_1", DeviceStatus.DISCONNECTED)
    assert device.status is DeviceStatus.DISCONNECTED


def test_disconnect_without_connect():
    device = RS232Device("relay_1")
    seen = []
    device.set_status_callback(lambda dev_id, status: seen.append(status))
    assert device.disconnect() is True
    assert seen == []
    assert device.status is DeviceStatus.DISCONNECTED


def test_reconnect():
    device = RS232Device("relay_1", heartbeat_interval_ms=10)
    device.connect()
    device.disconnect()
    seen = []
    device.set_status_callback(lambda dev_id, status: seen.append(status))
    assert device.connect() is True
    device.disconnect()
    assert seen[0] is DeviceStatus.CONNECTED
    assert seen[-1] is DeviceStatus.DISCONNECTED