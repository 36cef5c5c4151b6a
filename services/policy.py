"""Rule table mapping pH and soil moisture to a valve position."""

from __future__ import annotations

PH_LOW = 4.4
PH_HIGH = 5.5
SOIL_DRY = 30.0
SOIL_WET = 70.0
SOIL_LOW_BAND = 40.0
SOIL_MID_BAND = 50.0

POSITION_OPEN = 180
POSITION_HALF = 90
POSITION_QUARTER = 45
POSITION_CLOSED = 0


def decide(ph: float, soil: float) -> int:
    """Return the target valve position in degrees.

    Rules are evaluated top to bottom and the first match wins:

    1. ``ph < 4.4`` or ``soil < 30``: fully open (180).
    2. ``ph > 5.5`` or ``soil > 70``: closed (0).
    3. Otherwise pH and moisture are both in band, and the opening steps
       down with moisture: below 40 gives 90, up to and including 50
       gives 45, wetter soil gives 0.

    Boundary values are not "too low" or "too high": ``decide(4.4, 50)``
    reaches rule 3 and returns 45.
    """
    if ph < PH_LOW or soil < SOIL_DRY:
        return POSITION_OPEN
    if ph > PH_HIGH or soil > SOIL_WET:
        return POSITION_CLOSED
    if soil < SOIL_LOW_BAND:
        return POSITION_HALF
    if soil <= SOIL_MID_BAND:
        return POSITION_QUARTER
    return POSITION_CLOSED


def describe_ph(ph: float) -> str:
    if ph < PH_LOW:
        return "Too Low"
    if ph > PH_HIGH:
        return "Too High"
    return "Optimal"


def describe_soil(soil: float) -> str:
    if soil < SOIL_DRY:
        return "Too Dry"
    if soil > SOIL_WET:
        return "Too Wet"
    return "Good"
