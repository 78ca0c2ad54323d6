"""Label categories, display text and the safety status dispatcher.

Classifier labels are free text (whatever the model was trained with, e.g.
``"Clap"``, ``"Loud Scream"``, ``"Background Noise"``).  This module turns
them into:

* a :class:`SoundCategory` via :func:`categorize` (total: every label maps
  to exactly one category, ``OTHER`` included),
* the emoji + text shown on the dashboard (:func:`display_for`),
* the binary bus :class:`SafetyStatus` (:func:`safety_status`).

All matching is case-insensitive substring matching.  There is no debounce
or hysteresis: the status follows the latest label only.
"""

from __future__ import annotations

import enum
from typing import NamedTuple


class SoundCategory(enum.Enum):
    """Sound classes the demo knows how to present."""

    CLAP = "clap"
    WHISTLE = "whistle"
    KNOCK = "knock"
    SCREAM = "scream"
    BACKGROUND = "background"
    OTHER = "other"


class SafetyStatus(enum.Enum):
    """State of the bus panel."""

    SAFE = "safe"
    ALERT = "alert"


class LabelDisplay(NamedTuple):
    text: str
    emoji: str


# Matched in this order; the first hit wins.
_CATEGORY_ORDER: tuple[SoundCategory, ...] = (
    SoundCategory.CLAP,
    SoundCategory.WHISTLE,
    SoundCategory.KNOCK,
    SoundCategory.SCREAM,
    SoundCategory.BACKGROUND,
)

_DISPLAY: dict[SoundCategory, LabelDisplay] = {
    SoundCategory.CLAP: LabelDisplay("Clap", "👏"),
    SoundCategory.WHISTLE: LabelDisplay("Whistle", "😗"),
    SoundCategory.KNOCK: LabelDisplay("Knock", "👊"),
    SoundCategory.SCREAM: LabelDisplay("Scream", "😱"),
    SoundCategory.BACKGROUND: LabelDisplay("Background Noise", "🤫"),
}

DEFAULT_EMOJI: str = "🎧"

TRIGGER_TERM: str = "scream"
"""A label containing this term puts the panel into ALERT."""

CHIP_TEXT: dict[SafetyStatus, str] = {
    SafetyStatus.SAFE: "SAFE RIDE",
    SafetyStatus.ALERT: "ALERT MODE",
}


def categorize(label: str) -> SoundCategory:
    """Map *label* to its :class:`SoundCategory`."""
    lower = label.lower()
    for category in _CATEGORY_ORDER:
        if category.value in lower:
            return category
    return SoundCategory.OTHER


def display_for(label: str) -> LabelDisplay:
    """Return the dashboard text and emoji for *label*.

    Unknown labels pass through unchanged with the default emoji.
    """
    category = categorize(label)
    if category is SoundCategory.OTHER:
        return LabelDisplay(label, DEFAULT_EMOJI)
    return _DISPLAY[category]


def is_background(label: str) -> bool:
    return SoundCategory.BACKGROUND.value in label.lower()


def safety_status(label: str) -> SafetyStatus:
    """ALERT iff *label* contains the trigger term, otherwise SAFE."""
    if TRIGGER_TERM in label.lower():
        return SafetyStatus.ALERT
    return SafetyStatus.SAFE


def panel_view(status: SafetyStatus) -> dict[str, object]:
    """CSS class flags and chip text for the bus panel."""
    return {
        "classes": {
            "alert": status is SafetyStatus.ALERT,
            "safe": status is SafetyStatus.SAFE,
        },
        "chip": CHIP_TEXT[status],
    }
