"""Application state for the sound demo.

Everything the render loop needs lives on one :class:`AppState` object that
is passed explicitly to the update and render functions.  Only the render
loop mutates it; the classifier reaches it through the message bus.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np

from src.core.labels import SafetyStatus, safety_status

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

INITIAL_LABEL: str = "Waiting…"
UNKNOWN_LABEL: str = "Unknown"
INITIAL_STATUS_TEXT: str = "Press start to begin listening."

NUM_BARS: int = 40
CANVAS_WIDTH: int = 900
CANVAS_HEIGHT: int = 130


@dataclass(frozen=True)
class PredictionState:
    """Latest classifier output as shown on the dashboard.

    Attributes
    ----------
    label:
        Top-ranked label of the latest accepted result.
    confidence:
        Its confidence, always within [0, 1].
    last_change_frame:
        Frame index at which ``label`` last changed value.
    """

    label: str = INITIAL_LABEL
    confidence: float = 0.0
    last_change_frame: int = 0


def apply_results(
    state: PredictionState,
    results: Sequence[dict[str, Any]] | None,
    frame: int,
) -> PredictionState | None:
    """Build the next :class:`PredictionState` from a classifier callback.

    Only the first (highest-ranked) result is used.  Returns ``None`` when
    *results* is empty, in which case nothing changes.
    """
    if not results:
        return None

    top = results[0]
    label: str = str(top.get("label") or UNKNOWN_LABEL)
    confidence: float = float(top.get("confidence") or 0.0)
    if not math.isfinite(confidence):
        confidence = 0.0
    confidence = min(max(confidence, 0.0), 1.0)

    last_change = state.last_change_frame
    if label != state.label:
        last_change = frame

    return PredictionState(
        label=label,
        confidence=confidence,
        last_change_frame=last_change,
    )


@dataclass
class AppState:
    """Mutable per-session state owned by the render loop."""

    num_bars: int = NUM_BARS
    canvas_width: int = CANVAS_WIDTH
    canvas_height: int = CANVAS_HEIGHT
    prediction: PredictionState = field(default_factory=PredictionState)
    safety: SafetyStatus = SafetyStatus.SAFE
    status_text: str = INITIAL_STATUS_TEXT
    frame_count: int = 0
    bars: np.ndarray = field(init=False)

    def __post_init__(self) -> None:
        self.bars = np.zeros(self.num_bars, dtype=np.float64)

    def update(self, results: Sequence[dict[str, Any]] | None) -> bool:
        """Apply a classifier result list at the current frame.

        Returns ``True`` if the prediction was replaced.
        """
        nxt = apply_results(self.prediction, results, self.frame_count)
        if nxt is None:
            return False

        if nxt.label != self.prediction.label:
            logger.info(
                "Label changed at frame %d: %r -> %r (%.2f)",
                self.frame_count,
                self.prediction.label,
                nxt.label,
                nxt.confidence,
            )
        safety = safety_status(nxt.label)
        self.prediction = nxt
        self.safety = safety
        return True

    def resize(self, width: int) -> None:
        """Follow the width of the canvas holder element."""
        if width > 0:
            self.canvas_width = int(width)

