"""Outlet decision policy for heated fermentation vessels.

The outlet is wanted on exactly when the vessel is more than
``HEAT_THRESHOLD_C`` below its target. The threshold is single-sided: there
is no separate switch-off point, so a vessel hovering around
``target - HEAT_THRESHOLD_C`` can toggle the outlet on consecutive cycles.
"""

from __future__ import annotations

HEAT_THRESHOLD_C = 0.2


def decide(current: float, target: float, previous_active: bool) -> bool:
    """Return whether the outlet should be active.

    ``previous_active`` is accepted so callers can pass the full controller
    state, but it does not influence the result.
    """
    del previous_active
    return target - current > HEAT_THRESHOLD_C


def needs_actuation(desired: bool, previous_active: bool) -> bool:
    """Only a change of commanded state produces a switch call and an event."""
    return desired != previous_active


__all__ = ["HEAT_THRESHOLD_C", "decide", "needs_actuation"]
