"""Parsing of booked collection slots such as "7:00-8:00" or "8:00-10:00 AM"."""

import re
from datetime import time

_SLOT_SEPARATOR = re.compile(r"\s*[-–]\s*")
_CLOCK = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?\s*([AaPp][Mm])?\s*$")


def _parse_clock(text: str):
    match = _CLOCK.match(text)
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = (match.group(3) or "").upper() or None
    if hour > 23 or minute > 59:
        return None
    return hour, minute, meridiem


def _apply_meridiem(hour: int, meridiem: str) -> int:
    if meridiem == "PM" and hour < 12:
        return hour + 12
    if meridiem == "AM" and hour == 12:
        return 0
    return hour


def slot_start_time(slot: str):
    """
    Return the start of a slot as a datetime.time, or None if it can't be read.

    A trailing AM/PM on the end of the range applies to the start as well,
    unless the start hour is later than the end hour ("11:00-1:00 PM").
    """
    if not slot:
        return None

    parts = _SLOT_SEPARATOR.split(slot.strip(), maxsplit=1)
    start = _parse_clock(parts[0])
    if start is None:
        return None
    hour, minute, meridiem = start

    if meridiem is None and len(parts) > 1:
        end = _parse_clock(parts[1])
        if end is not None and end[2] is not None and hour <= end[0]:
            meridiem = end[2]

    if meridiem is not None:
        if hour > 12:
            return None
        hour = _apply_meridiem(hour, meridiem)

    return time(hour, minute)


def normalize_slot_start(slot: str):
    """Zero-padded "HH:MM" for the slot start; None for unreadable slots."""
    start = slot_start_time(slot)
    if start is None:
        return None
    return start.strftime("%H:%M")
