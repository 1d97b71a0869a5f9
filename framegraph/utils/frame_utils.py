"""
Frame/second/millisecond conversions.

Every number that ends up in a filter graph goes through these helpers so
that recompiling the same configuration is byte-identical. Rounding is
always half-up on exact rationals, never on binary floats.
"""

from __future__ import annotations

import math
from decimal import Decimal
from fractions import Fraction

Number = int | float | Fraction


def to_fraction(value: Number) -> Fraction:
    """Exact rational for a value; floats are read through their decimal repr."""
    if isinstance(value, float):
        return Fraction(repr(value))
    return Fraction(value)


def round_half_up(value: Number) -> int:
    """Round to the nearest integer, ties toward positive infinity."""
    return math.floor(to_fraction(value) + Fraction(1, 2))


def frames_to_seconds(frames: int, fps: int) -> float:
    return frames / fps


def frames_to_ms(frames: int, fps: int) -> int:
    """Milliseconds for a frame count, rounded half-up."""
    return round_half_up(Fraction(frames * 1000, fps))


def seconds_to_frames(seconds: Number, fps: int) -> int:
    return round_half_up(to_fraction(seconds) * fps)


def ms_to_frames(ms: Number, fps: int) -> int:
    return round_half_up(to_fraction(ms) * fps / 1000)


def format_decimal(value: Number, places: int = 3) -> str:
    """
    Format a number for filter arguments.

    The value is rounded half-up to ``places`` decimals and trailing zeros
    are dropped, so 3 -> "3", 1.5 -> "1.5" and 1/30 -> "0.033".
    """
    scale = 10**places
    units = round_half_up(to_fraction(value) * scale)
    return format(Decimal(units) / Decimal(scale), "f")


def format_seconds(seconds: Number) -> str:
    """Seconds rounded half-up to the millisecond."""
    return format_decimal(seconds, 3)


def format_frames_as_seconds(frames: int, fps: int) -> str:
    return format_seconds(Fraction(frames, fps))
