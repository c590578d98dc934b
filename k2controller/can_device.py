"""CAN motor device: command frames, response polling and status decoding."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from typing import Optional, Union

from k2controller import logger
from k2controller.can_interface import CANInterface, CanFrame, Interface
from k2controller.device_protocol import Device, DeviceHeartbeat, DeviceStatus
from k2controller.device_util import get_device_id_from_string

CAN_DEVICE_HANDLE_RESPONSE_ENABLE = True
CAN_ID_BASE = 0x140
FRAME_LENGTH = 8
RECEIVE_POLL_MS = 50
TORQUE_LIMIT = 2048


class MotorCommand(enum.IntEnum):
    """Command bytes understood by the motor controller."""

    MOTOR_DISABLE = 0x80
    MOTOR_STOP = 0x81
    MOTOR_RUN = 0x88
    MOTOR_SYNC_BRAKE = 0x8C
    MOTOR_GET_MULTI_POSITION = 0x92
    MOTOR_GET_SINGLE_POSITION = 0x94
    MOTOR_GET_STATUS1 = 0x9A
    MOTOR_CLEAR_ERROR = 0x9B
    MOTOR_GET_STATUS2 = 0x9C
    MOTOR_GET_STATUS3 = 0x9D
    MOTOR_TORQUE_FEEDBACK_CONTROL = 0xA1
    MOTOR_SPEED_FEEDBACK_CONTROL = 0xA2
    MOTOR_MULTI_POSITION_FEEDBACK_CONTROL1 = 0xA3
    MOTOR_MULTI_POSITION_FEEDBACK_CONTROL2 = 0xA4
    MOTOR_SINGLE_POSITION_FEEDBACK_CONTROL1 = 0xA5
    MOTOR_SINGLE_POSITION_FEEDBACK_CONTROL2 = 0xA6
    MOTOR_INCREMENTAL_POSITION_FEEDBACK_CONTROL1 = 0xA7
    MOTOR_INCREMENTAL_POSITION_FEEDBACK_CONTROL2 = 0xA8


class MotorState(enum.IntEnum):
    """Motor on/off state reported in status 1."""

    ON = 0x00
    OFF = 0x10


class BrakeCommand(enum.IntEnum):
    """Sub-commands of the synchronous brake command."""

    BRAKE_ON = 0x00
    BRAKE_OFF = 0x01
    BRAKE_GET_STATUS = 0x10


@dataclass
class Status1:
    """Temperature (1 °C/LSB), bus voltage (0.01 V/LSB), bus current (0.01 A/LSB), state, error flags."""

    temperature: int = 0
    voltage: int = 0
    current: int = 0
    motor_state: Union[MotorState, int] = MotorState.ON
    error_state: int = 0


@dataclass
class Status2:
    """Temperature, torque current (66/4096 A/LSB), speed (1 dps/LSB) and encoder position."""

    temperature: int = 0
    current: int = 0
    speed: int = 0
    encoder: int = 0


@dataclass
class Status3:
    """Temperature and the three phase currents (66/4096 A/LSB)."""

    temperature: int = 0
    current_a: int = 0
    current_b: int = 0
    current_c: int = 0


def _int(payload: bytes, start: int, end: int, signed: bool) -> int:
    return int.from_bytes(payload[start:end], "little", signed=signed)


class CANDevice(Device):
    """A motor on a CAN bus addressed by the number in its ``<name>_<number>`` id."""

    def __init__(
        self,
        device_id: str,
        heartbeat_interval_ms: int = 5000,
        handle_responses: bool = CAN_DEVICE_HANDLE_RESPONSE_ENABLE,
    ) -> None:
        super().__init__(device_id, "CAN")
        logger.info(f" 创建 CAN 设备: [{device_id}]")
        self._interface: Optional[CANInterface] = None
        self._heartbeat_interval_ms = heartbeat_interval_ms
        self._heartbeat: Optional[DeviceHeartbeat] = DeviceHeartbeat(self, heartbeat_interval_ms)
        self._handle_responses = handle_responses
        self._status1 = Status1()
        self._status2 = Status2()
        self._status3 = Status3()
        self._multi_position = 0
        self._single_position = 0

    @property
    def status1(self) -> Status1:
        return self._status1

    @property
    def status2(self) -> Status2:
        return self._status2

    @property
    def status3(self) -> Status3:
        return self._status3

    @property
    def multi_position(self) -> int:
        """Accumulated angle, 0.01°/LSB."""
        return self._multi_position

    @property
    def single_position(self) -> int:
        """Angle within one turn from the encoder zero, 0.01°/LSB."""
        return self._single_position

    @property
    def can_id(self) -> int:
        """Standard frame identifier used for this motor."""
        return CAN_ID_BASE + get_device_id_from_string(self.id)

    def set_interface(self, interface: Interface) -> None:
        """Attach a CAN interface; other interface types are rejected."""
        if not isinstance(interface, CANInterface):
            message = f"设备 {self.id} 接口类型不匹配，需要CANInterface类型"
            logger.error(message)
            raise TypeError(message)
        self._interface = interface

    def connect(self) -> bool:
        """Start the motor, record the outcome as the status and start the heartbeat."""
        logger.info(f"正在连接 CAN 设备: [{self.id}]")
        if self.motor_ctrl(MotorCommand.MOTOR_RUN):
            self.update_status(DeviceStatus.CONNECTED)
        else:
            self.update_status(DeviceStatus.DISCONNECTED)
        if self._heartbeat is None:
            self._heartbeat = DeviceHeartbeat(self, self._heartbeat_interval_ms)
        self._heartbeat.start()
        return True

    def disconnect(self) -> bool:
        """Stop the heartbeat and mark the device disconnected."""
        logger.info(f"正在断开 CAN 设备: [{self.id}]")
        if self._heartbeat is not None:
            self._heartbeat.stop()
            self._heartbeat = None
        self.update_status(DeviceStatus.DISCONNECTED)
        return True

    def send_command(
        self,
        command: int,
        data: Optional[bytes] = None,
        response_cmd: int = 0,
        timeout_ms: int = 50,
    ) -> bool:
        """Send ``command`` and wait for the matching reply.

        Bytes 1..7 of the frame come from the same positions of ``data``
        (byte 0 is always the command). The reply must carry this motor's
        identifier and ``response_cmd`` (the command itself when 0).
        """
        if not 0 <= command <= 0xFF:
            raise ValueError(f"command byte out of range: {command}")
        extra = bytes(data) if data is not None else b""
        payload = bytes([command]) + bytes(
            extra[i] if i < len(extra) else 0 for i in range(1, FRAME_LENGTH)
        )
        expected_id = self.can_id
        frame = CanFrame(expected_id, payload, FRAME_LENGTH)

        interface = self._interface
        if interface is None or not interface.send_frame(frame):
            return False
        logger.debug(f"命令 0x{command:02X} 发送成功。")

        if response_cmd == 0:
            response_cmd = command
        start = time.monotonic()
        while True:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            if elapsed_ms >= timeout_ms:
                logger.error(f"等待命令响应超时: 0x{response_cmd:02X} after {elapsed_ms} ms")
                return False
            reply = interface.receive_frame(RECEIVE_POLL_MS)
            if reply is None:
                continue
            elapsed_ms = int((time.monotonic() - start) * 1000)
            if reply.can_id == expected_id and reply.data[:1] == bytes([response_cmd]):
                logger.debug(
                    f"命令 0x{response_cmd:02X} 接收成功。等待响应时间: {elapsed_ms} ms"
                )
                if self._handle_responses:
                    self.handle_response(reply)
                return True

    def motor_ctrl(self, cmd: int) -> bool:
        """Send a disable, stop or run command."""
        if cmd > MotorCommand.MOTOR_RUN:
            raise ValueError(
                f"无效的电机状态控制命令(此函数仅处理电机 启动/停止/关闭): {int(cmd)}"
            )
        return self.send_command(cmd)

    def motor_get_status(self, cmd: int) -> bool:
        """Request one of the status reports (clear-error is not a status read)."""
        if cmd > MotorCommand.MOTOR_GET_STATUS3 or cmd == MotorCommand.MOTOR_CLEAR_ERROR:
            raise ValueError(f"无效的电机状态读取命令: {int(cmd)}")
        return self.send_command(cmd)

    def motor_sync_brake(self, cmd: int) -> bool:
        """Send a synchronous brake command with ``cmd`` in byte 1."""
        return self.send_command(MotorCommand.MOTOR_SYNC_BRAKE, bytes([0, int(cmd)]))

    def motor_get_position(self, cmd: int) -> bool:
        """Request the multi-turn or single-turn position."""
        if cmd not in (
            MotorCommand.MOTOR_GET_MULTI_POSITION,
            MotorCommand.MOTOR_GET_SINGLE_POSITION,
        ):
            raise ValueError(f"无效的电机位置获取命令: {int(cmd)}")
        return self.send_command(cmd)

    def motor_torque_feedback_control(self, iq_control: int) -> bool:
        """Closed-loop torque control; ``iq_control`` must lie in -2048..2048."""
        if not -TORQUE_LIMIT <= iq_control <= TORQUE_LIMIT:
            message = f"转矩控制值超出范围: {iq_control}"
            logger.error(message)
            raise ValueError(message)
        data = bytearray(FRAME_LENGTH)
        data[4:6] = (iq_control & 0xFFFF).to_bytes(2, "little")
        return self.send_command(MotorCommand.MOTOR_TORQUE_FEEDBACK_CONTROL, bytes(data))

    def motor_speed_feedback_control(self, speed_control: int) -> bool:
        """Closed-loop speed control; ``speed_control`` is in 0.01 dps/LSB."""
        data = bytearray(FRAME_LENGTH)
        data[4:8] = (speed_control & 0xFFFFFFFF).to_bytes(4, "little")
        return self.send_command(MotorCommand.MOTOR_SPEED_FEEDBACK_CONTROL, bytes(data))

    def check_device_alive(self) -> bool:
        """Request all three status reports; alive only if every one is answered."""
        alive = True
        for number, cmd in enumerate(
            (
                MotorCommand.MOTOR_GET_STATUS1,
                MotorCommand.MOTOR_GET_STATUS2,
                MotorCommand.MOTOR_GET_STATUS3,
            ),
            start=1,
        ):
            if self.motor_get_status(cmd):
                logger.debug(f"设备 {self.id} 状态{number}检查通过。")
            else:
                alive = False
                logger.error(f"设备 {self.id} 未响应状态{number}请求，可能已断开连接或故障。")
        return alive

    def handle_response(self, frame: CanFrame) -> None:
        """Decode a reply frame into the matching status or position field."""
        payload = frame.data.ljust(FRAME_LENGTH, b"\x00")
        code = payload[0]
        if code == MotorCommand.MOTOR_GET_STATUS1:
            raw_state = payload[6]
            try:
                state: Union[MotorState, int] = MotorState(raw_state)
            except ValueError:
                state = raw_state
            self._status1 = Status1(
                temperature=_int(payload, 1, 2, True),
                voltage=_int(payload, 2, 4, False),
                current=_int(payload, 4, 6, False),
                motor_state=state,
                error_state=payload[7],
            )
            s = self._status1
            logger.debug(
                f"读取状态1: \n\t电机温度: {s.temperature}℃\n\t母线电压: {s.voltage}V"
                f"\n\t母线电流: {s.current}A"
                f"\n\t电机状态: {'关闭' if s.motor_state == MotorState.OFF else '开启'}"
                f"\n\t错误状态: 0x{s.error_state:04X}"
            )
        elif code == MotorCommand.MOTOR_GET_STATUS2:
            self._status2 = Status2(
                temperature=_int(payload, 1, 2, True),
                current=_int(payload, 2, 4, True),
                speed=_int(payload, 4, 6, True),
                encoder=_int(payload, 6, 8, False),
            )
            s2 = self._status2
            logger.debug(
                f"读取状态2: \n\t电机温度: {s2.temperature}℃\n\t母线电流: {s2.current}A"
                f"\n\t电机速度: {s2.speed}dps\n\t编码器: {s2.encoder}"
            )
        elif code == MotorCommand.MOTOR_GET_STATUS3:
            self._status3 = Status3(
                temperature=_int(payload, 1, 2, True),
                current_a=_int(payload, 2, 4, True),
                current_b=_int(payload, 4, 6, True),
                current_c=_int(payload, 6, 8, True),
            )
            s3 = self._status3
            logger.debug(
                f"读取状态3: \n\t电机温度: {s3.temperature}℃\n\t电流A: {s3.current_a}A"
                f"\n\t电流B: {s3.current_b}A\n\t电流C: {s3.current_c}A"
            )
        elif code == MotorCommand.MOTOR_GET_MULTI_POSITION:
            self._multi_position = _int(payload, 1, 8, False)
            logger.debug(f"读取多圈位置: {self._multi_position} (单位: 0.01°/LSB)")
        elif code == MotorCommand.MOTOR_GET_SINGLE_POSITION:
            self._single_position = _int(payload, 4, 8, False)
            logger.debug(
                f"读取单圈位置: {self._single_position} (单位: 0.01°/LSB, 范围: 0~36000*减速比-1)"
            )
        else:
            logger.warning(f"未解析: {code}")