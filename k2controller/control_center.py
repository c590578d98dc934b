"""Dispatches commands according to the active control mode."""

from __future__ import annotations

import enum
import threading
from typing import Callable, Dict, Protocol

from k2controller import logger

CommandHandler = Callable[[str, int], object]


class ControlMode(enum.Enum):
    """Where commands come from; the value is the display label."""

    TERMINAL = "终端"
    WEBSOCKET = "WEBSOCKET"
    MQTT = "MQTT"

    @property
    def label(self) -> str:
        return self.value


class NoCommandHandlerError(LookupError):
    """Raised when the active mode has no registered command handler."""


class _CommandSink(Protocol):
    def send_command(self, device_id: str, command: int) -> bool: ...


class ControlCenter:
    """Routes commands to the device manager or to a per-mode handler."""

    def __init__(self, device_manager: _CommandSink) -> None:
        self._device_manager = device_manager
        self._mode = ControlMode.TERMINAL
        self._mode_lock = threading.Lock()
        self._handlers: Dict[ControlMode, CommandHandler] = {}
        self._handler_lock = threading.Lock()

    def set_control_mode(self, mode: ControlMode) -> None:
        """Make ``mode`` the active control mode."""
        mode = ControlMode(mode)
        with self._mode_lock:
            self._mode = mode
        logger.info(f"控制模式切换至: {mode.label}")

    def get_control_mode(self) -> ControlMode:
        """Return the active control mode."""
        with self._mode_lock:
            return self._mode

    def register_command_handler(self, mode: ControlMode, handler: CommandHandler) -> None:
        """Register (or replace) the handler used while ``mode`` is active."""
        with self._handler_lock:
            self._handlers[ControlMode(mode)] = handler

    def send_command(self, device_id: str, command: int) -> bool:
        """Send directly in terminal mode, otherwise through the mode's handler."""
        mode = self.get_control_mode()
        if mode is ControlMode.TERMINAL:
            return self._device_manager.send_command(device_id, command)
        with self._handler_lock:
            handler = self._handlers.get(mode)
        if handler is None:
            logger.error("当前模式没有命令处理器")
            raise NoCommandHandlerError(f"no command handler for mode {mode.name}")
        handler(device_id, command)
        return True

    def process_incoming_command(self, source: ControlMode, device_id: str, command: int) -> bool:
        """Execute a command only when ``source`` is the active mode.

        Returns False, with a warning logged, for commands from inactive sources.
        """
        if ControlMode(source) is self.get_control_mode():
            return self._device_manager.send_command(device_id, command)
        logger.warning("接收到来自非激活控制源的命令")
        return False