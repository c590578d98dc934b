"""Helpers for device identifiers of the form ``<name>_<number>``."""

from __future__ import annotations

import re

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1


def get_device_id_from_string(device_id: str) -> int:
    """Return the number after the first underscore, or -1 without an underscore.

    Like a C integer parse, leading whitespace is skipped and trailing
    non-digits are ignored. Raises ValueError when no number follows the
    underscore and OverflowError when it does not fit in 32 bits.
    """
    _, sep, rest = device_id.partition("_")
    if not sep:
        return -1
    match = _LEADING_INT.match(rest)
    if match is None:
        raise ValueError(f"no number after '_' in device id {device_id!r}")
    number = int(match.group(1))
    if not _INT_MIN <= number <= _INT_MAX:
        raise OverflowError(f"device number out of range in {device_id!r}")
    return number