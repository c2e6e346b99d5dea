"""Simulated wave input: band levels with presets, nudges and uniform noise."""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

import numpy as np

from evaluation import WaveSample
from profiles import BAND_COUNT, BAND_NAMES, clamp01, fit_bands

logger = logging.getLogger(__name__)

PRESETS: Dict[str, Tuple[float, ...]] = {
    "ordinary": (0.1, 0.2, 0.6, 0.6, 0.2),
    "artist": (0.05, 0.4, 0.7, 0.5, 0.3),
    "rebel": (0.05, 0.15, 0.3, 0.8, 0.9),
}


class WaveInputSimulator:
    def __init__(
        self,
        bands: Sequence[float] | None = None,
        noise_level: float = 0.1,
        rng: np.random.Generator | None = None,
        seed: int | None = None,
    ):
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.bands: List[float] = list(fit_bands(bands, 0.2, 0.0, 1.0))
        self.noise_level = clamp01(noise_level)

    def set_preset(self, name: str) -> None:
        key = name.strip().lower()
        if key == "random":
            self.bands = [float(v) for v in self.rng.uniform(0.0, 1.0, BAND_COUNT)]
        elif key in PRESETS:
            self.bands = list(PRESETS[key])
        else:
            logger.warning("unknown preset %r, bands unchanged", name)
            return
        logger.debug("preset %s -> %s", key, self.describe())

    def set_band(self, index: int, value: float) -> None:
        self.bands[index] = clamp01(value)

    def adjust_band(self, index: int, delta: float) -> float:
        self.bands[index] = clamp01(self.bands[index] + delta)
        return self.bands[index]

    def sample(self, timestamp: float = 0.0) -> WaveSample:
        if self.noise_level > 0:
            noise = self.rng.uniform(-self.noise_level, self.noise_level, BAND_COUNT)
        else:
            noise = np.zeros(BAND_COUNT)
        values = np.clip(np.asarray(self.bands) + noise, 0.0, 1.0)
        return WaveSample(float(timestamp), tuple(float(v) for v in values))

    def __call__(self, timestamp: float = 0.0) -> WaveSample:
        return self.sample(timestamp)

    def describe(self) -> str:
        return ", ".join(f"{name}={value:.2f}" for name, value in zip(BAND_NAMES, self.bands))
