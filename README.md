# k2controller

Manage CAN bus motors and RS232 devices by id, watch them with a periodic
heartbeat, and route commands according to the active control mode.

## Installation

```
pip install .
```

Talking to motors needs Linux with SocketCAN and a configured interface such
as `can0`. Elsewhere `CANInterface.init()` logs an error and returns `False`.

## Command line

```
k2controller [--log-file PATH] [--interface NAME]
```

`--log-file` defaults to `logs/device_control.log`, `--interface` to `can0`.
The command registers the CAN motor `motor_1` on that interface, connects it
and shows a menu:

1. list devices with their status (已连接, 未连接, 在线, 错误/离线)
2. send command byte `0x00` to a device id you type
3. switch the control mode (terminal, WebSocket, MQTT)
4. quit

On exit every device is disconnected and the interface is closed. Log lines
go to standard output and to the log file.

## Library use

```python
from k2controller.can_interface import CANInterface
from k2controller.device_manager import DeviceManager
from k2controller.control_center import ControlCenter, ControlMode

can0 = CANInterface("can0")
can0.init()

manager = DeviceManager()
manager.add_device("CAN", "motor_1", can0)
manager.connect_device("motor_1")

center = ControlCenter(manager)
center.send_command("motor_1", 0x9A)

for device_id in manager.list_devices():
    print(device_id, manager.get_device_status(device_id))
    manager.disconnect_device(device_id)
can0.close()
```

### Modules

- `k2controller.logger` – `Logger`, `LogLevel`, `get_logger()` and the
  shortcuts `debug`, `info`, `warning`, `error`, `critical`. Entries look like
  `[2025-01-01 12:00:00] [INFO] message`. The shared logger is created on first
  use and writes to `logs/device_control.log`, creating `logs/` if needed;
  `set_log_file()` switches files.
- `k2controller.device_util` – `get_device_id_from_string("motor_3")` returns
  `3`; without an underscore it returns `-1`.
- `k2controller.can_interface` – `CanFrame` (with `to_bytes()`),
  `frame_from_bytes()`, the abstract `Interface`, and `CANInterface`, a raw
  SocketCAN socket with `init()`, `send_frame()`, `receive_frame(timeout_ms)`
  (returns `None` on timeout) and `close()`; it is also a context manager.
- `k2controller.device_protocol` – `DeviceStatus`, the abstract `Device`,
  `DeviceFactory` with `get_device_factory()`, and `DeviceHeartbeat`, which
  calls `check_device_alive()` every interval (5000 ms by default) and marks
  the device `ACTIVE` or `ERROR`.
- `k2controller.can_device` – `CANDevice`, a motor addressed on CAN id
  `0x140 + number`. `send_command()` sends an 8-byte frame and waits (50 ms
  by default) for a reply with the same id and command byte. Motor operations:
  `motor_ctrl`, `motor_get_status`, `motor_get_position`, `motor_sync_brake`,
  `motor_torque_feedback_control` (-2048..2048) and
  `motor_speed_feedback_control`. Replies are decoded into `Status1`,
  `Status2`, `Status3`, `multi_position` and `single_position`. Command enums:
  `MotorCommand`, `MotorState`, `BrakeCommand`.
- `k2controller.rs232_device` – `RS232Device`.
- `k2controller.device_manager` – `DeviceManager`: `add_device`,
  `remove_device`, `connect_device`, `disconnect_device`, `send_command`,
  `list_devices` (in insertion order) and `get_device_status` (unknown ids
  read as `DISCONNECTED`).
- `k2controller.control_center` – `ControlMode` and `ControlCenter`. In
  terminal mode commands go straight to the device manager; in the other modes
  they go to the handler set with `register_command_handler()`.
  `process_incoming_command()` acts only when its source is the active mode.
- `k2controller.cli` – `terminal_control()` and `main()`.

### Errors

Device ids must match `<letters>_<digits>`; otherwise `add_device` raises
`InvalidDeviceIdError`. A duplicate id raises `DeviceExistsError`, an unknown
protocol `UnknownProtocolError`, an unknown id `DeviceNotFoundError`.
`ControlCenter.send_command` raises `NoCommandHandlerError` when the active
mode has no handler. `CANDevice` raises `ValueError` for commands outside a
method's range and `TypeError` when given an interface that is not a
`CANInterface`.

## What this package does not do

- There is no WebSocket or MQTT transport. Those control modes only route
  commands to handlers you register yourself.
- `RS232Device` does not talk to a serial port: its commands are logged and
  reported as successful.
- The `k2controller` command does not call `init()` on the CAN interface, so
  its motor cannot send frames; it shows as not connected and the heartbeat
  marks it as in error.

## Tests

```
pip install .[test]
pytest
```