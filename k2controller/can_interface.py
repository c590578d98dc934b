"""Raw CAN frames and a SocketCAN-backed interface."""

from __future__ import annotations

import abc
import select
import socket
import struct
from dataclasses import dataclass
from typing import Optional, Union

from k2controller import logger

CAN_MAX_DLEN = 8
_FRAME_FORMAT = "=IB3x8s"
FRAME_SIZE = struct.calcsize(_FRAME_FORMAT)


@dataclass
class CanFrame:
    """A classic CAN frame: identifier, payload of up to 8 bytes and length code."""

    can_id: int
    data: Union[bytes, bytearray, list, tuple] = b""
    dlc: Optional[int] = None

    def __post_init__(self) -> None:
        self.data = bytes(self.data)
        if len(self.data) > CAN_MAX_DLEN:
            raise ValueError(f"CAN payload longer than {CAN_MAX_DLEN} bytes")
        if not 0 <= self.can_id <= 0xFFFFFFFF:
            raise ValueError(f"CAN id out of range: {self.can_id}")
        if self.dlc is None:
            self.dlc = len(self.data)
        if not 0 <= self.dlc <= 0xFF:
            raise ValueError(f"CAN dlc out of range: {self.dlc}")

    def to_bytes(self) -> bytes:
        """Encode as the kernel's ``struct can_frame`` layout."""
        return struct.pack(_FRAME_FORMAT, self.can_id, self.dlc, self.data.ljust(CAN_MAX_DLEN, b"\x00"))


def frame_from_bytes(raw: bytes) -> CanFrame:
    """Decode a ``struct can_frame`` buffer into a CanFrame."""
    if len(raw) != FRAME_SIZE:
        raise ValueError(f"CAN frame must be {FRAME_SIZE} bytes, got {len(raw)}")
    can_id, dlc, payload = struct.unpack(_FRAME_FORMAT, raw)
    return CanFrame(can_id, payload[: min(dlc, CAN_MAX_DLEN)], dlc)


class Interface(abc.ABC):
    """A transport that can send and receive CAN frames."""

    @abc.abstractmethod
    def init(self) -> bool:
        """Open the transport; return whether it succeeded."""

    @abc.abstractmethod
    def send_frame(self, frame: CanFrame) -> bool:
        """Send one frame; return whether it was written whole."""

    @abc.abstractmethod
    def receive_frame(self, timeout_ms: int = 250) -> Optional[CanFrame]:
        """Wait up to ``timeout_ms`` for a frame; None on timeout or error."""


class CANInterface(Interface):
    """A raw SocketCAN socket bound to a named interface such as ``can0``."""

    def __init__(self, can_interface: str, sock: Optional[socket.socket] = None) -> None:
        self.name = can_interface
        self._sock = sock

    def init(self) -> bool:
        self.close()
        family = getattr(socket, "AF_CAN", None)
        raw = getattr(socket, "CAN_RAW", None)
        if family is None or raw is None:
            logger.error("CAN 套接字创建失败: CAN sockets are not supported on this platform")
            return False
        try:
            sock = socket.socket(family, socket.SOCK_RAW, raw)
        except OSError as exc:
            logger.error(f"CAN 套接字创建失败: {exc.strerror or exc}")
            return False
        try:
            sock.bind((self.name,))
        except OSError as exc:
            logger.error(f"绑定套接字到 CAN 接口失败: {exc.strerror or exc}")
            sock.close()
            return False
        self._sock = sock
        return True

    def send_frame(self, frame: CanFrame) -> bool:
        payload = frame.to_bytes()
        try:
            sent = self._sock.send(payload) if self._sock is not None else -1
        except OSError:
            sent = -1
        if sent != len(payload):
            logger.error("CAN 帧发送失败")
            return False
        return True

    def receive_frame(self, timeout_ms: int = 250) -> Optional[CanFrame]:
        if self._sock is None:
            return None
        try:
            readable, _, _ = select.select([self._sock], [], [], timeout_ms / 1000)
        except (OSError, ValueError):
            return None
        if not readable:
            return None
        try:
            raw = self._sock.recv(FRAME_SIZE)
            return frame_from_bytes(raw)
        except (OSError, ValueError) as exc:
            logger.error(f"CAN 帧接收失败: {exc}")
            return None

    def close(self) -> None:
        """Close the socket, if open."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> "CANInterface":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()