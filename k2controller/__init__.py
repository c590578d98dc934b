"""Manage CAN motors and RS232 devices, with heartbeat monitoring and mode-based command routing."""

__version__ = "0.1.0"