"""Interactive terminal front end of the controller."""

from __future__ import annotations

import argparse
import sys
from typing import Iterator, List, Optional, TextIO

from k2controller import logger
from k2controller.can_interface import CANInterface
from k2controller.control_center import ControlCenter, ControlMode, NoCommandHandlerError
from k2controller.device_manager import DeviceManager, DeviceNotFoundError
from k2controller.device_protocol import DeviceStatus

_STATUS_LABELS = {
    DeviceStatus.CONNECTED: "已连接",
    DeviceStatus.DISCONNECTED: "未连接",
    DeviceStatus.ACTIVE: "在线",
    DeviceStatus.ERROR: "错误/离线",
}

_MODE_CHOICES = {
    "1": ControlMode.TERMINAL,
    "2": ControlMode.WEBSOCKET,
    "3": ControlMode.MQTT,
}

_MENU = "\nK2 控制器\n1. 设备列表\n2. 发送指令\n3. 切换控制模式\n4. 退出\n选择: "
_MODE_MENU = "控制模式:\n1. 终端\n2. WebSocket\n3. MQTT\n选择模式: "
_INVALID = "无效选择\n"


def _tokens(stream: TextIO) -> Iterator[str]:
    for line in stream:
        yield from line.split()


def _as_choice(token: str) -> Optional[int]:
    try:
        return int(token)
    except ValueError:
        return None


def terminal_control(
    device_manager: DeviceManager,
    control_center: ControlCenter,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
) -> None:
    """Run the menu loop until the user exits or input ends."""
    stdin = stdin if stdin is not None else sys.stdin
    stdout = stdout if stdout is not None else sys.stdout
    tokens = _tokens(stdin)

    while True:
        stdout.write(_MENU)
        stdout.flush()
        token = next(tokens, None)
        if token is None:
            return
        choice = _as_choice(token)

        if choice == 1:
            stdout.write("\n设备:\n")
            for device_id in device_manager.list_devices():
                status = device_manager.get_device_status(device_id)
                stdout.write(f" - {device_id} [{_STATUS_LABELS.get(status, '未知')}]\n")
        elif choice == 2:
            stdout.write("输入设备id: ")
            stdout.flush()
            device_id = next(tokens, None)
            if device_id is None:
                return
            try:
                control_center.send_command(device_id, 0x00)
            except (DeviceNotFoundError, NoCommandHandlerError) as exc:
                stdout.write(f"{exc}\n")
            else:
                stdout.write("命令发送.\n")
        elif choice == 3:
            stdout.write(_MODE_MENU)
            stdout.flush()
            mode_token = next(tokens, None)
            if mode_token is None:
                return
            mode = _MODE_CHOICES.get(mode_token.lstrip("+")) if _as_choice(mode_token) else None
            if mode is None:
                stdout.write(_INVALID)
                continue
            control_center.set_control_mode(mode)
        elif choice == 4:
            return
        else:
            stdout.write(_INVALID)


def main(argv: Optional[List[str]] = None) -> int:
    """Start the controller with one CAN motor and run the terminal menu."""
    parser = argparse.ArgumentParser(prog="k2controller", description="K2 device controller")
    parser.add_argument("--log-file", default="logs/device_control.log", help="log file path")
    parser.add_argument("--interface", default="can0", help="CAN interface name")
    args = parser.parse_args(argv)

    logger.get_logger().set_log_file(args.log_file)
    logger.info("K2 控制器启动...")

    device_manager = DeviceManager()
    can0 = CANInterface(args.interface)
    device_manager.add_device("CAN", "motor_1", can0)
    device_manager.connect_device("motor_1")

    control_center = ControlCenter(device_manager)
    try:
        terminal_control(device_manager, control_center, sys.stdin, sys.stdout)
    finally:
        for device_id in device_manager.list_devices():
            device_manager.disconnect_device(device_id)
        can0.close()

    logger.info("K2 控制器已关闭.")
    return 0


if __name__ == "__main__":
    sys.exit(main())