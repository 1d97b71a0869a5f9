"""
Easing curves used to shape transition progress.

Curves are addressed by a serializable identifier so transitions can be
persisted as plain data. Cubic curves use the usual CSS-style control
points and are evaluated with a bisection solver.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum


class EasingCurve(str, Enum):
    """Named easing curves."""

    LINEAR = "linear"
    EASE_IN = "ease_in"
    EASE_OUT = "ease_out"
    EASE_IN_OUT = "ease_in_out"
    EASE_IN_SINE = "ease_in_sine"
    EASE_OUT_SINE = "ease_out_sine"
    EASE_IN_OUT_SINE = "ease_in_out_sine"
    EASE_IN_CUBIC = "ease_in_cubic"
    EASE_OUT_CUBIC = "ease_out_cubic"
    EASE_IN_OUT_CUBIC = "ease_in_out_cubic"
    EASE_OUT_QUART = "ease_out_quart"
    EASE_IN_EXPO = "ease_in_expo"
    EASE_OUT_EXPO = "ease_out_expo"
    EASE_IN_OUT_EXPO = "ease_in_out_expo"
    EASE_IN_BACK = "ease_in_back"  # Overshoots below 0
    EASE_OUT_BACK = "ease_out_back"  # Overshoots above 1
    EASE_IN_OUT_BACK = "ease_in_out_back"
    BOUNCE_OUT = "bounce_out"


_CUBIC_TOLERANCE = 0.001


def _evaluate_cubic(a: float, b: float, m: float) -> float:
    return 3 * a * (1 - m) * (1 - m) * m + 3 * b * (1 - m) * m * m + m * m * m


def cubic_bezier(a: float, b: float, c: float, d: float) -> Callable[[float], float]:
    """Build a curve from control points (a, b) and (c, d)."""

    def transform(t: float) -> float:
        if t <= 0.0 or t >= 1.0:
            return t
        start = 0.0
        end = 1.0
        while True:
            midpoint = (start + end) / 2
            estimate = _evaluate_cubic(a, c, midpoint)
            if abs(t - estimate) < _CUBIC_TOLERANCE:
                return _evaluate_cubic(b, d, midpoint)
            if estimate < t:
                start = midpoint
            else:
                end = midpoint

    return transform


def _bounce_out(t: float) -> float:
    if t < 1 / 2.75:
        return 7.5625 * t * t
    if t < 2 / 2.75:
        t -= 1.5 / 2.75
        return 7.5625 * t * t + 0.75
    if t < 2.5 / 2.75:
        t -= 2.25 / 2.75
        return 7.5625 * t * t + 0.9375
    t -= 2.625 / 2.75
    return 7.5625 * t * t + 0.984375


_CURVES: dict[EasingCurve, Callable[[float], float]] = {
    EasingCurve.LINEAR: lambda t: t,
    EasingCurve.EASE_IN: cubic_bezier(0.42, 0.0, 1.0, 1.0),
    EasingCurve.EASE_OUT: cubic_bezier(0.0, 0.0, 0.58, 1.0),
    EasingCurve.EASE_IN_OUT: cubic_bezier(0.42, 0.0, 0.58, 1.0),
    EasingCurve.EASE_IN_SINE: cubic_bezier(0.12, 0.0, 0.39, 0.0),
    EasingCurve.EASE_OUT_SINE: cubic_bezier(0.61, 1.0, 0.88, 1.0),
    EasingCurve.EASE_IN_OUT_SINE: cubic_bezier(0.37, 0.0, 0.63, 1.0),
    EasingCurve.EASE_IN_CUBIC: cubic_bezier(0.32, 0.0, 0.67, 0.0),
    EasingCurve.EASE_OUT_CUBIC: cubic_bezier(0.33, 1.0, 0.68, 1.0),
    EasingCurve.EASE_IN_OUT_CUBIC: cubic_bezier(0.65, 0.0, 0.35, 1.0),
    EasingCurve.EASE_OUT_QUART: cubic_bezier(0.25, 1.0, 0.5, 1.0),
    EasingCurve.EASE_IN_EXPO: cubic_bezier(0.7, 0.0, 0.84, 0.0),
    EasingCurve.EASE_OUT_EXPO: cubic_bezier(0.16, 1.0, 0.3, 1.0),
    EasingCurve.EASE_IN_OUT_EXPO: cubic_bezier(0.87, 0.0, 0.13, 1.0),
    EasingCurve.EASE_IN_BACK: cubic_bezier(0.36, 0.0, 0.66, -0.56),
    EasingCurve.EASE_OUT_BACK: cubic_bezier(0.34, 1.56, 0.64, 1.0),
    EasingCurve.EASE_IN_OUT_BACK: cubic_bezier(0.68, -0.6, 0.32, 1.6),
    EasingCurve.BOUNCE_OUT: _bounce_out,
}


def apply_curve(curve: EasingCurve | str, t: float) -> float:
    """Clamp ``t`` to [0, 1] and pass it through the named curve."""
    clamped = max(0.0, min(1.0, t))
    return _CURVES[EasingCurve(curve)](clamped)
