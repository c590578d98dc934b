"""Registry of devices: creation by protocol, connection control and commands."""

from __future__ import annotations

import re
import threading
from typing import Dict, List, Optional

from k2controller import logger
from k2controller.can_device import CANDevice
from k2controller.can_interface import Interface
from k2controller.device_protocol import (
    Device,
    DeviceFactory,
    DeviceStatus,
    UnknownProtocolError,
    get_device_factory,
)
from k2controller.rs232_device import RS232Device

_ID_PATTERN = re.compile(r"[a-zA-Z]+_[0-9]+")


class InvalidDeviceIdError(ValueError):
    """Raised when a device id is not of the form ``<name>_<number>``."""


class DeviceExistsError(ValueError):
    """Raised when a device id is already registered."""


class DeviceNotFoundError(LookupError):
    """Raised when no device has the requested id."""


class DeviceManager:
    """Owns the devices and serialises access to them."""

    def __init__(self, factory: Optional[DeviceFactory] = None) -> None:
        self._factory = factory if factory is not None else get_device_factory()
        self._factory.register_protocol("CAN", CANDevice)
        self._factory.register_protocol("RS232", RS232Device)
        self._devices: Dict[str, Device] = {}
        self._lock = threading.RLock()

    def add_device(self, protocol: str, device_id: str, interface: Interface) -> Device:
        """Create a ``protocol`` device named ``device_id`` bound to ``interface``."""
        if not _ID_PATTERN.fullmatch(device_id):
            message = f"设备id [{device_id}] 格式无效，请使用: <device_name>_<number>"
            logger.warning(message)
            raise InvalidDeviceIdError(message)
        with self._lock:
            if device_id in self._devices:
                message = f"设备id [{device_id}] 已存在"
                logger.warning(message)
                raise DeviceExistsError(message)
            try:
                device = self._factory.create_device(protocol, device_id)
            except UnknownProtocolError:
                logger.error(f"创建设备失败: [{device_id}]")
                raise
            device.set_status_callback(self._handle_device_status_change)
            device.set_interface(interface)
            self._devices[device_id] = device
        logger.info(f"已添加设备: [{device_id}] ({protocol})")
        return device

    def remove_device(self, device_id: str) -> None:
        """Disconnect the device and forget it."""
        with self._lock:
            device = self._get(device_id)
            device.disconnect()
            del self._devices[device_id]
        logger.info(f"已移除设备: [{device_id}]")

    def connect_device(self, device_id: str) -> bool:
        """Connect the device; return what the device reports."""
        with self._lock:
            return self._get(device_id).connect()

    def disconnect_device(self, device_id: str) -> bool:
        """Disconnect the device; return what the device reports."""
        with self._lock:
            return self._get(device_id).disconnect()

    def send_command(self, device_id: str, command: int) -> bool:
        """Send a single command byte to the device."""
        with self._lock:
            return self._get(device_id).send_command(command)

    def list_devices(self) -> List[str]:
        """Return the ids of all devices in the order they were added."""
        with self._lock:
            return list(self._devices)

    def get_device_status(self, device_id: str) -> DeviceStatus:
        """Return the device's status; unknown devices count as disconnected."""
        with self._lock:
            device = self._devices.get(device_id)
            return DeviceStatus.DISCONNECTED if device is None else device.status

    def _get(self, device_id: str) -> Device:
        try:
            return self._devices[device_id]
        except KeyError:
            message = f"设备未找到: [{device_id}]"
            logger.warning(message)
            raise DeviceNotFoundError(message) from None

    @staticmethod
    def _handle_device_status_change(device_id: str, status: DeviceStatus) -> None:
        label = "已连接" if status is DeviceStatus.CONNECTED else "未连接"
        logger.info(f"设备状态更新: [{device_id}] -> {label}")