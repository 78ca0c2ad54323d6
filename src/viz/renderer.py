"""Frame and DOM payloads for the dashboard page.

The browser is a dumb painter: :meth:`Renderer.render` produces a complete,
JSON-serialisable description of one canvas frame (background gradient,
rounded bars with colours, label overlay) and :func:`prediction_view`
produces the text fields and panel state for the page elements.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from src.core.app_state import AppState
from src.core.labels import display_for, panel_view

# ---------------------------------------------------------------------------
# Palette
# ---------------------------------------------------------------------------

BACKGROUND_TOP: tuple[int, int, int] = (255, 224, 250)
BACKGROUND_BOTTOM: tuple[int, int, int] = (244, 214, 255)

BAR_COLOR_START: tuple[float, float, float, float] = (236, 64, 122, 235)
BAR_COLOR_END: tuple[float, float, float, float] = (123, 31, 162, 235)
CONFIDENCE_TINT: float = 40.0
"""Added to the green channel of the first colour and the blue channel of
the second at full confidence."""

LABEL_COLOR: tuple[int, int, int, int] = (60, 20, 70, 230)
LABEL_SIZE: int = 20
LABEL_MARGIN: int = 8

BAR_RADIUS: int = 12
BAR_FILL: float = 0.9
"""Share of each slot's width occupied by its bar."""
BAR_BOTTOM_RATIO: float = 0.9
BAR_MIN_HEIGHT: float = 4.0


def lerp_color(
    start: tuple[float, ...],
    end: tuple[float, ...],
    t: float,
) -> list[int]:
    """Channel-wise linear interpolation, clamped to 0–255."""
    a = np.asarray(start, dtype=np.float64)
    b = np.asarray(end, dtype=np.float64)
    mixed = np.clip(a + (b - a) * t, 0, 255)
    return [int(round(v)) for v in mixed]


def bar_color(index: int, num_bars: int, confidence: float) -> list[int]:
    tint = confidence * CONFIDENCE_TINT
    r0, g0, b0, a0 = BAR_COLOR_START
    r1, g1, b1, a1 = BAR_COLOR_END
    return lerp_color(
        (r0, g0 + tint, b0, a0),
        (r1, g1, b1 + tint, a1),
        index / num_bars,
    )


class Renderer:
    """Turns an :class:`AppState` into a frame description."""

    def render(self, state: AppState) -> dict[str, Any]:
        width = float(state.canvas_width)
        height = float(state.canvas_height)
        return {
            "frame": state.frame_count,
            "width": int(width),
            "height": int(height),
            "background": {
                "top": list(BACKGROUND_TOP),
                "bottom": list(BACKGROUND_BOTTOM),
            },
            "bars": self.bars(state),
            "label": {
                "text": state.prediction.label,
                "x": width / 2,
                "y": height - LABEL_MARGIN,
                "size": LABEL_SIZE,
                "color": list(LABEL_COLOR),
            },
        }

    def bars(self, state: AppState) -> list[dict[str, Any]]:
        num_bars = len(state.bars)
        if num_bars == 0:
            return []

        height = float(state.canvas_height)
        slot = state.canvas_width / num_bars
        bottom = height * BAR_BOTTOM_RATIO
        heights = np.clip(state.bars, BAR_MIN_HEIGHT, height * 0.7)
        half = slot * BAR_FILL / 2

        rects: list[dict[str, Any]] = []
        for i, h in enumerate(heights):
            centre = i * slot + slot / 2
            rects.append({
                "x0": round(centre - half, 2),
                "y0": round(bottom - float(h), 2),
                "x1": round(centre + half, 2),
                "y1": round(bottom, 2),
                "radius": BAR_RADIUS,
                "color": bar_color(i, num_bars, state.prediction.confidence),
            })
        return rects


def prediction_view(state: AppState) -> dict[str, Any]:
    """Text and panel payload for the page's label, emoji and bus elements."""
    display = display_for(state.prediction.label)
    panel = panel_view(state.safety)
    return {
        "label": state.prediction.label,
        "label_text": display.text,
        "emoji": display.emoji,
        "confidence": f"{state.prediction.confidence * 100:.1f}%",
        "bus_status": state.safety.value,
        "panel": panel["classes"],
        "chip": panel["chip"],
    }
