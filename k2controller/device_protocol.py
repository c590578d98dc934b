"""Device base class, device factory and the heartbeat monitor."""

from __future__ import annotations

import abc
import enum
import threading
from typing import Callable, Dict, Optional

from k2controller import logger
from k2controller.can_interface import Interface

StatusCallback = Callable[[str, "DeviceStatus"], None]


class DeviceStatus(enum.Enum):
    """Connection state of a device."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTED = "CONNECTED"
    ACTIVE = "ACTIVE"
    ERROR = "ERROR"


class UnknownProtocolError(LookupError):
    """Raised when no device creator is registered for a protocol."""


class Device(abc.ABC):
    """A controllable device with a status and an optional status callback."""

    def __init__(self, device_id: str, device_type: str) -> None:
        self._id = device_id
        self._type = device_type
        self._status = DeviceStatus.DISCONNECTED
        self._status_callback: Optional[StatusCallback] = None

    @property
    def id(self) -> str:
        return self._id

    @property
    def type(self) -> str:
        return self._type

    @property
    def status(self) -> DeviceStatus:
        return self._status

    @abc.abstractmethod
    def connect(self) -> bool:
        """Connect the device."""

    @abc.abstractmethod
    def disconnect(self) -> bool:
        """Disconnect the device."""

    @abc.abstractmethod
    def send_command(
        self,
        command: int,
        data: Optional[bytes] = None,
        response_cmd: int = 0,
        timeout_ms: int = 50,
    ) -> bool:
        """Send a command byte with optional data; return whether it succeeded."""

    def check_device_alive(self) -> bool:
        """Heartbeat probe; devices without a probe are always alive."""
        return True

    @abc.abstractmethod
    def set_interface(self, interface: Interface) -> None:
        """Attach the transport the device talks through."""

    def set_status_callback(self, callback: Optional[StatusCallback]) -> None:
        """Call ``callback(device_id, status)`` whenever the status changes."""
        self._status_callback = callback

    def update_status(self, new_status: DeviceStatus) -> None:
        """Set the status, notifying the callback only on a real change."""
        if self._status == new_status:
            return
        self._status = new_status
        if self._status_callback is not None:
            self._status_callback(self._id, new_status)
        logger.info(f"Device {self._id} status changed to {new_status.value}")


DeviceCreator = Callable[[str], Device]


class DeviceFactory:
    """Creates devices by protocol name from registered creators."""

    def __init__(self) -> None:
        self._creators: Dict[str, DeviceCreator] = {}

    def register_protocol(self, protocol: str, create_func: DeviceCreator) -> None:
        """Register (or replace) the creator for ``protocol``."""
        self._creators[protocol] = create_func

    def create_device(self, protocol: str, device_id: str) -> Device:
        """Create a device; raise UnknownProtocolError for unregistered protocols."""
        try:
            creator = self._creators[protocol]
        except KeyError:
            logger.error(f"Unknown protocol: {protocol}")
            raise UnknownProtocolError(f"Unknown protocol: {protocol}") from None
        return creator(device_id)


_factory = DeviceFactory()


def get_device_factory() -> DeviceFactory:
    """Return the shared device factory."""
    return _factory


class DeviceHeartbeat:
    """Periodically probes a device and marks it ACTIVE or ERROR."""

    def __init__(self, device: Device, interval_ms: int = 5000) -> None:
        self._device = device
        self._interval = interval_ms / 1000
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stop_event.is_set()

    def start(self) -> None:
        """Start probing in a background thread; does nothing if already running."""
        if self.running:
            return
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stop_event,), daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop probing and wait for the thread to finish."""
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            alive = self._device.check_device_alive()
            self._device.update_status(DeviceStatus.ACTIVE if alive else DeviceStatus.ERROR)
            stop_event.wait(self._interval)

    def __del__(self) -> None:
        self._stop_event.set()