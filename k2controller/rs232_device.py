"""RS232 device: connection bookkeeping with a heartbeat."""

from __future__ import annotations

from typing import Optional

from k2controller import logger
from k2controller.can_interface import Interface
from k2controller.device_protocol import Device, DeviceHeartbeat, DeviceStatus


class RS232Device(Device):
    """A serial device whose commands are logged and always accepted."""

    def __init__(self, device_id: str, heartbeat_interval_ms: int = 5000) -> None:
        super().__init__(device_id, "RS232")
        self._heartbeat_interval_ms = heartbeat_interval_ms
        self._heartbeat: Optional[DeviceHeartbeat] = None
        logger.info(f"创建 RS232 设备: [{device_id}]")

    def connect(self) -> bool:
        """Mark the device connected and start a fresh heartbeat."""
        logger.info(f"正在连接 RS232 设备: [{self.id}]")
        self.update_status(DeviceStatus.CONNECTED)
        if self._heartbeat is not None:
            self._heartbeat.stop()
        self._heartbeat = DeviceHeartbeat(self, self._heartbeat_interval_ms)
        self._heartbeat.start()
        return True

    def disconnect(self) -> bool:
        """Stop the heartbeat and mark the device disconnected."""
        logger.info(f"正在断开 RS232 设备: [{self.id}]")
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
        """Log the command; the serial link accepts every command."""
        logger.debug(f"发送指令到 RS232 设备: [{self.id}] 命令: {command}")
        return True

    def set_interface(self, interface: Interface) -> None:
        """RS232 devices do not use a frame interface; the call is accepted and ignored."""