"""Equalizer bar animation driven by classifier confidence.

The bars are not a spectrum analyser.  Each frame a target height is drawn
from a smooth noise field scaled by an *energy* level derived from the
current prediction, and every bar eases a fixed fraction of the way toward
its target.

Energy
------
::

    base   = 0.2 + 0.3·c   if background or c < 0.2
             0.6 + 0.6·c   otherwise
    boost  = 0.6 → 0 linearly over the 30 frames after a label change
    total  = clip(base + boost, 0.1, 1.4)

Target for bar *i* at frame *f*::

    factor = 0.5 + 0.5·noise(0.3·i, 0.03·f)
    target = map(total·factor, 0 … 1.5, minH … maxH)
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from src.core.app_state import PredictionState
from src.core.labels import is_background
from src.viz.noise import PerlinNoise

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

LOW_CONFIDENCE: float = 0.2
CHANGE_BOOST_PEAK: float = 0.6
CHANGE_BOOST_FRAMES: int = 30
MIN_ENERGY: float = 0.1
MAX_ENERGY: float = 1.4
ENERGY_SCALE: float = 1.5
"""Upper end of the energy×noise domain mapped onto ``[minH, maxH]``."""


@dataclass
class AnimatorConfig:
    """Tuning knobs for :class:`BarAnimator`.

    Attributes
    ----------
    min_height_ratio / max_height_ratio:
        Target range as a fraction of canvas height.
    easing:
        Fraction of the remaining distance covered per frame.
    noise_x_step / noise_t_step:
        Noise-space step per bar index and per frame.
    seed:
        Noise lattice seed.
    """

    min_height_ratio: float = 0.06
    max_height_ratio: float = 0.7
    easing: float = 0.25
    noise_x_step: float = 0.3
    noise_t_step: float = 0.03
    seed: int | None = 0


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def base_energy(label: str, confidence: float) -> float:
    if is_background(label) or confidence < LOW_CONFIDENCE:
        return 0.2 + 0.3 * confidence
    return 0.6 + 0.6 * confidence


def change_boost(frames_since_change: int) -> float:
    """Transient energy after a label change; 0 once 30 frames have passed."""
    if frames_since_change < 0 or frames_since_change >= CHANGE_BOOST_FRAMES:
        return 0.0
    return CHANGE_BOOST_PEAK * (1.0 - frames_since_change / CHANGE_BOOST_FRAMES)


def total_energy(base: float, boost: float) -> float:
    return float(np.clip(base + boost, MIN_ENERGY, MAX_ENERGY))


def ease(current: np.ndarray, target: np.ndarray, amount: float) -> np.ndarray:
    """Move *current* toward *target* by *amount* of the remaining distance."""
    return current + (target - current) * amount


# ---------------------------------------------------------------------------
# BarAnimator
# ---------------------------------------------------------------------------


class BarAnimator:
    """Computes per-frame bar heights for a canvas of a given height."""

    def __init__(
        self,
        canvas_height: float,
        config: AnimatorConfig | None = None,
        noise: PerlinNoise | None = None,
    ) -> None:
        self.config: AnimatorConfig = config or AnimatorConfig()
        self.canvas_height: float = float(canvas_height)
        self.noise: PerlinNoise = noise or PerlinNoise(seed=self.config.seed)

    @property
    def min_height(self) -> float:
        return self.canvas_height * self.config.min_height_ratio

    @property
    def max_height(self) -> float:
        return self.canvas_height * self.config.max_height_ratio

    def energy(self, prediction: PredictionState, frame: int) -> float:
        base = base_energy(prediction.label, prediction.confidence)
        boost = change_boost(frame - prediction.last_change_frame)
        return total_energy(base, boost)

    def targets(self, prediction: PredictionState, frame: int, num_bars: int) -> np.ndarray:
        """Target height of every bar for *frame*."""
        energy = self.energy(prediction, frame)
        xs = np.arange(num_bars, dtype=np.float64) * self.config.noise_x_step
        factor = 0.5 + 0.5 * self.noise(xs, frame * self.config.noise_t_step)
        span = self.max_height - self.min_height
        return self.min_height + (energy * factor / ENERGY_SCALE) * span

    def step(
        self,
        prediction: PredictionState,
        frame: int,
        heights: np.ndarray,
    ) -> np.ndarray:
        """Return the next bar heights; *heights* is not modified."""
        target = self.targets(prediction, frame, len(heights))
        return ease(np.asarray(heights, dtype=np.float64), target, self.config.easing)
