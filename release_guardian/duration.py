"""
Minimum age expressions.

``parse_min_age`` is the only place that turns a user-entered age such as
``"30"``, ``"2w"`` or ``"24hs"`` into a day count. Numbers are treated as
already-normalised day counts and returned unchanged, so running a loaded
configuration value through it twice is harmless.
"""

from __future__ import annotations

import re
from typing import Union

from .exceptions import InvalidDurationError


_PLAIN_DAYS = re.compile(r"^\d+$")
_WITH_UNIT = re.compile(r"^(\d+)(d|w|m|h|hs)$", re.IGNORECASE)

# Months are approximated as 30 days.
_UNIT_FACTORS = {
    "d": 1,
    "w": 7,
    "m": 30,
}
_HOUR_UNITS = ("h", "hs")


def parse_min_age(value: Union[str, int, float]) -> Union[int, float]:
    """Convert a minimum age expression to a number of days.

    Args:
        value: Day count, or a string of digits with an optional
            ``d``, ``w``, ``m``, ``h`` or ``hs`` suffix (case-insensitive)

    Returns:
        Number of days; fractional for hour units

    Raises:
        InvalidDurationError: If the value cannot be parsed
    """
    if isinstance(value, bool):
        raise InvalidDurationError(value)
    if isinstance(value, (int, float)):
        if value < 0:
            raise InvalidDurationError(value)
        return value
    if not isinstance(value, str):
        raise InvalidDurationError(value)

    text = value.strip()
    if _PLAIN_DAYS.match(text):
        return int(text)

    match = _WITH_UNIT.match(text)
    if not match:
        raise InvalidDurationError(value)

    amount = int(match.group(1))
    unit = match.group(2).lower()
    if unit in _HOUR_UNITS:
        return amount / 24
    return amount * _UNIT_FACTORS[unit]
