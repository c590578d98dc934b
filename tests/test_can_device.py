import threading
from collections import deque

import pytest

from k2controller.can_device import (
    BrakeCommand,
    CANDevice,
    MotorCommand,
    MotorState,
    Status1,
)
from k2controller.can_interface import CANInterface, CanFrame, Interface
from k2controller.device_protocol import DeviceStatus


@pytest.fixture(autouse=True)
def _work_in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


class FakeBus(CANInterface):
    """Records sent frames and optionally answers each with a reply frame."""

    def __init__(self, auto_reply=True, payloads=None, reply_id=None):
        super().__init__("vcan-test")
        self.sent = []
        self.auto_reply = auto_reply
        self.payloads = payloads or {}
        self.reply_id = reply_id
        self._pending = deque()
        self._lock = threading.Lock()

    def init(self):
        return True

    def send_frame(self, frame):
        with self._lock:
            self.sent.append(frame)
            if self.auto_reply:
                payload = self.payloads.get(frame.data[0], frame.data)
                reply_id = self.reply_id if self.reply_id is not None else frame.can_id
                self._pending.append(CanFrame(reply_id, payload))
        return True

    def receive_frame(self, timeout_ms=250):
        with self._lock:
            return self._pending.popleft() if self._pending else None


class OtherInterface(Interface):
    def init(self):
        return True

    def send_frame(self, frame):
        return True

    def receive_frame(self, timeout_ms=250):
        return None


def make_device(device_id="motor_3", **bus_kwargs):
    bus = FakeBus(**bus_kwargs)
    device = CANDevice(device_id)
    device.set_interface(bus)
    return device, bus


@pytest.mark.parametrize(
    "cmd, byte",
    [
        (MotorCommand.MOTOR_RUN, 0x88),
        (MotorCommand.MOTOR_DISABLE, 0x80),
        (MotorCommand.MOTOR_STOP, 0x81),
    ],
)
def test_motor_ctrl_frame_layout(cmd, byte):
    device, bus = make_device()
    assert device.motor_ctrl(cmd) is True
    frame = bus.sent[0]
    assert frame.can_id == 0x143
    assert frame.dlc == 8
    assert frame.data == bytes([byte, 0, 0, 0, 0, 0, 0, 0])


def test_speed_control_positive():
    device, bus = make_device()
    assert device.motor_speed_feedback_control(100 * 100) is True
    assert bus.sent[0].data == bytes([0xA2, 0, 0, 0, 0x10, 0x27, 0x00, 0x00])


def test_speed_control_negative():
    device, bus = make_device()
    assert device.motor_speed_feedback_control(-100 * 100) is True
    assert bus.sent[0].data == bytes([0xA2, 0, 0, 0, 0xF0, 0xD8, 0xFF, 0xFF])


def test_torque_control_bytes():
    device, bus = make_device()
    assert device.motor_torque_feedback_control(100) is True
    assert device.motor_torque_feedback_control(-1) is True
    assert bus.sent[0].data == bytes([0xA1, 0, 0, 0, 0x64, 0x00, 0, 0])
    assert bus.sent[1].data == bytes([0xA1, 0, 0, 0, 0xFF, 0xFF, 0, 0])


@pytest.mark.parametrize("value", [2049, -2049])
def test_torque_out_of_range(value):
    device, bus = make_device()
    with pytest.raises(ValueError):
        device.motor_torque_feedback_control(value)
    assert bus.sent == []


def test_torque_limits_accepted():
    device, bus = make_device()
    assert device.motor_torque_feedback_control(2048) is True
    assert device.motor_torque_feedback_control(-2048) is True
    assert len(bus.sent) == 2


def test_sync_brake_carries_subcommand():
    device, bus = make_device()
    assert device.motor_sync_brake(BrakeCommand.BRAKE_OFF) is True
    assert bus.sent[0].data == bytes([0x8C, 0x01, 0, 0, 0, 0, 0, 0])


def test_data_byte_zero_is_replaced_by_command():
    device, bus = make_device()
    device.send_command(0x88, bytes([0xEE, 1, 2, 3, 4, 5, 6, 7]))
    assert bus.sent[0].data == bytes([0x88, 1, 2, 3, 4, 5, 6, 7])


def test_send_without_interface_fails():
    device = CANDevice("motor_1")
    assert device.send_command(0x88) is False


def test_timeout_without_reply():
    device, bus = make_device(auto_reply=False)
    assert device.send_command(0x88, timeout_ms=5) is False
    assert len(bus.sent) == 1


def test_reply_from_other_motor_ignored():
    device, _ = make_device(reply_id=0x141)
    assert device.send_command(0x88, timeout_ms=5) is False


def test_explicit_response_command():
    device, _ = make_device(payloads={0x88: bytes([0x9A, 0, 0, 0, 0, 0, 0, 0])})
    assert device.send_command(0x88, response_cmd=0x9A, timeout_ms=20) is True
    device2, _ = make_device(payloads={0x88: bytes([0x9A, 0, 0, 0, 0, 0, 0, 0])})
    assert device2.send_command(0x88, timeout_ms=5) is False


def test_status1_decoding():
    payload = bytes([0x9A, 0xE2, 0x10, 0x27, 0x2C, 0x01, 0x10, 0x08])
    device, _ = make_device(payloads={0x9A: payload})
    assert device.motor_get_status(MotorCommand.MOTOR_GET_STATUS1) is True
    assert device.status1 == Status1(-30, 10000, 300, MotorState.OFF, 0x08)


def test_status2_decoding():
    device, _ = make_device()
    device.handle_response(CanFrame(0x143, bytes([0x9C, 25, 0xFF, 0xFF, 0x00, 0x80, 0xFF, 0x3F])))
    s = device.status2
    assert (s.temperature, s.current, s.speed, s.encoder) == (25, -1, -32768, 16383)


def test_status3_decoding():
    device, _ = make_device()
    device.handle_response(CanFrame(0x143, bytes([0x9D, 0x80, 0x01, 0x00, 0xFE, 0xFF, 0x00, 0x01])))
    s = device.status3
    assert (s.temperature, s.current_a, s.current_b, s.current_c) == (-128, 1, -2, 256)


def test_multi_position_decoding():
    device, _ = make_device()
    device.handle_response(CanFrame(0x143, bytes([0x92, 1, 2, 3, 4, 5, 6, 7])))
    assert device.multi_position == 0x07060504030201


def test_unknown_response_changes_nothing():
    device, _ = make_device()
    device.handle_response(CanFrame(0x143, bytes([0x55, 1, 2, 3, 4, 5, 6, 7])))
    assert device.status1 == Status1()
    assert device.multi_position == 0


def test_response_handling_can_be_disabled():
    bus = FakeBus(payloads={0x9A: bytes([0x9A, 5, 0, 0, 0, 0, 0x10, 0])})
    device = CANDevice("motor_3", handle_responses=False)
    device.set_interface(bus)
    assert device.motor_get_status(MotorCommand.MOTOR_GET_STATUS1) is True
    assert device.status1 == Status1()


def test_invalid_commands_rejected():
    device, bus = make_device()
    with pytest.raises(ValueError):
        device.motor_ctrl(MotorCommand.MOTOR_GET_STATUS1)
    with pytest.raises(ValueError):
        device.motor_get_status(MotorCommand.MOTOR_CLEAR_ERROR)
    with pytest.raises(ValueError):
        device.motor_get_status(MotorCommand.MOTOR_TORQUE_FEEDBACK_CONTROL)
    with pytest.raises(ValueError):
        device.motor_get_position(MotorCommand.MOTOR_GET_STATUS1)
    assert bus.sent == []


def test_get_position_sends_request():
    device, bus = make_device()
    assert device.motor_get_position(MotorCommand.MOTOR_GET_SINGLE_POSITION) is True
    assert bus.sent[0].data[0] == 0x94


def test_check_device_alive_requests_all_statuses():
    device, bus = make_device()
    assert device.check_device_alive() is True
    assert [f.data[0] for f in bus.sent] == [0x9A, 0x9C, 0x9D]


def test_check_device_alive_fails_without_replies():
    device, _ = make_device(auto_reply=False)
    assert device.check_device_alive() is False


def test_set_interface_rejects_other_types():
    device = CANDevice("motor_1")
    with pytest.raises(TypeError):
        device.set_interface(OtherInterface())


def test_connect_and_disconnect():
    device, bus = make_device()
    seen = []
    device.set_status_callback(lambda dev_id, status: seen.append((dev_id, status)))
    assert device.connect() is True
    assert device.disconnect() is True
    assert bus.sent[0].data[0] == 0x88
    assert seen[0] == ("motor_3", DeviceStatus.CONNECTED)
    assert seen[-1] == ("motor_3", DeviceStatus.DISCONNECTED)
    assert device.status is DeviceStatus.DISCONNECTED


def test_connect_without_reply_stays_disconnected():
    device, _ = make_device(auto_reply=False)
    seen = []
    device.set_status_callback(lambda dev_id, status: seen.append(status))
    assert device.connect() is True
    device.disconnect()
    assert DeviceStatus.CONNECTED not in seen
    assert device.status is DeviceStatus.DISCONNECTED


def test_reconnect_after_disconnect():
    device, bus = make_device()
    device.connect()
    device.disconnect()
    assert device.connect() is True
    device.disconnect()
    assert [f.data[0] for f in bus.sent].count(0x88) == 2