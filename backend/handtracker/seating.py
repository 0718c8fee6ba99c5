"""Seat rotation and position classification.

Seats are numbered 1-9 clockwise around the table.  Positions are named
relative to the button on a full nine-handed table.
"""

from __future__ import annotations

from enum import Enum
from typing import Collection, Optional

TABLE_SIZE = 9


class Position(str, Enum):
    EARLY = "early"
    MIDDLE = "middle"
    LATE = "late"
    BLINDS = "blinds"


POSITION_NAMES = [
    "Button",
    "Small Blind",
    "Big Blind",
    "UTG",
    "UTG+1",
    "UTG+2",
    "MP",
    "Hijack",
    "Cutoff",
]

POSITION_SHORT_NAMES = ["BTN", "SB", "BB", "UTG", "UTG+1", "UTG+2", "MP", "HJ", "CO"]


def next_active_seat(
    current: int,
    occupied_seats: Collection[int],
    folded_seats: Collection[int],
) -> Optional[int]:
    """Next occupied, non-folded seat clockwise from ``current``.

    Scans at most one lap.  Returns None when the scan comes back around to
    ``current`` without finding anyone else.
    """
    seat = current
    for _ in range(TABLE_SIZE + 1):
        seat = (seat % TABLE_SIZE) + 1
        if seat in occupied_seats and seat not in folded_seats:
            return seat
        if seat == current:
            break
    return None


def _offset_from_button(seat: int, button: int, total_seats: int) -> int:
    return ((seat - button) % total_seats + total_seats) % total_seats


def calculate_position(seat: int, button: int, total_seats: int = TABLE_SIZE) -> Position:
    """Position category for ``seat`` given the button seat."""
    offset = _offset_from_button(seat, button, total_seats)
    if offset == 0:
        return Position.LATE  # button
    if offset <= 2:
        return Position.BLINDS
    if offset <= 5:
        return Position.EARLY
    if offset <= 7:
        return Position.MIDDLE
    return Position.LATE  # cutoff


def position_name(seat: int, button: int, total_seats: int = TABLE_SIZE) -> str:
    offset = _offset_from_button(seat, button, total_seats)
    if offset < len(POSITION_NAMES):
        return POSITION_NAMES[offset]
    return "Unknown"


def position_short_name(seat: int, button: int, total_seats: int = TABLE_SIZE) -> str:
    offset = _offset_from_button(seat, button, total_seats)
    if offset < len(POSITION_SHORT_NAMES):
        return POSITION_SHORT_NAMES[offset]
    return "?"


def seats_for_position(
    button: int, position: Position, total_seats: int = TABLE_SIZE
) -> list[int]:
    """All seat numbers that fall into ``position`` for this button."""
    return [
        seat
        for seat in range(1, total_seats + 1)
        if calculate_position(seat, button, total_seats) == position
    ]
