"""Smooth pseudo-random noise for the equalizer animation.

Classic Processing-style Perlin value noise: a 4096-entry random lattice,
cosine interpolation between lattice points and several octaves summed with
halving amplitude.  With the default 4 octaves the output lies in
``[0, 0.9375]``, i.e. always inside ``[0, 1)``.

Only the 2-D field is needed (bar index × time), and the evaluation is
vectorised so one call samples every bar of a frame.
"""

from __future__ import annotations

import numpy as np

_YWRAPB: int = 4
_YWRAP: int = 1 << _YWRAPB
_SIZE: int = 4095


def _scaled_cosine(t: np.ndarray) -> np.ndarray:
    return 0.5 * (1.0 - np.cos(t * np.pi))


class PerlinNoise:
    """Deterministic 2-D noise field.

    Parameters
    ----------
    seed:
        Seed for the lattice.  Two instances with the same seed produce the
        same field.
    octaves:
        Number of summed layers.
    falloff:
        Amplitude multiplier applied per octave.
    """

    def __init__(self, seed: int | None = 0, octaves: int = 4, falloff: float = 0.5) -> None:
        rng = np.random.default_rng(seed)
        self._lattice: np.ndarray = rng.random(_SIZE + 1)
        self.octaves: int = octaves
        self.falloff: float = falloff

    def __call__(self, x: np.ndarray | float, y: float = 0.0) -> np.ndarray:
        """Sample the field at ``(x, y)``; *x* may be an array."""
        x = np.abs(np.asarray(x, dtype=np.float64))
        y_arr = np.full_like(x, abs(float(y)))

        xi = np.floor(x).astype(np.int64)
        yi = np.floor(y_arr).astype(np.int64)
        xf = x - xi
        yf = y_arr - yi

        lattice = self._lattice
        result = np.zeros_like(x)
        amplitude = 0.5

        for _ in range(self.octaves):
            offset = xi + (yi << _YWRAPB)
            rxf = _scaled_cosine(xf)
            ryf = _scaled_cosine(yf)

            n1 = lattice[offset & _SIZE]
            n1 = n1 + rxf * (lattice[(offset + 1) & _SIZE] - n1)
            n2 = lattice[(offset + _YWRAP) & _SIZE]
            n2 = n2 + rxf * (lattice[(offset + _YWRAP + 1) & _SIZE] - n2)
            n1 = n1 + ryf * (n2 - n1)

            result += n1 * amplitude
            amplitude *= self.falloff

            xi = xi << 1
            xf = xf * 2
            yi = yi << 1
            yf = yf * 2

            carry_x = xf >= 1.0
            xi = xi + carry_x
            xf = xf - carry_x
            carry_y = yf >= 1.0
            yi = yi + carry_y
            yf = yf - carry_y

        return result
