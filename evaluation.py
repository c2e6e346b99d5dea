"""Band similarity evaluation and EMA smoothing for wave samples."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from profiles import BAND_COUNT, NeuralProfile


@dataclass(frozen=True)
class WaveSample:
    timestamp: float
    bands: Tuple[float, ...]

    @classmethod
    def zero(cls, timestamp: float = 0.0) -> "WaveSample":
        return cls(timestamp, (0.0,) * BAND_COUNT)

    def validated(self) -> "WaveSample":
        """Copy with non-finite values set to 0 and the rest clamped to [0, 1]."""
        values = list(self.bands[:BAND_COUNT]) + [0.0] * max(0, BAND_COUNT - len(self.bands))
        clean = []
        for v in values:
            try:
                v = float(v)
            except (TypeError, ValueError):
                v = 0.0
            clean.append(min(1.0, max(0.0, v)) if math.isfinite(v) else 0.0)
        return WaveSample(self.timestamp, tuple(clean))


def _band_similarity(value: object, target: float, tolerance: float) -> float:
    try:
        v = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(v):
        return 0.0
    v = min(1.0, max(0.0, v))
    d = 1.0 - abs(v - target) / tolerance
    return min(1.0, max(0.0, d))


def _bands_of(sample: WaveSample | Sequence[float] | None) -> Sequence[float] | None:
    if sample is None:
        return None
    if isinstance(sample, WaveSample):
        return sample.bands
    return sample


def compute_similarity(sample: WaveSample | Sequence[float] | None, profile: NeuralProfile) -> float:
    """
    Raw similarity score in [0, 1] between a sample and the profile targets.

    Per band: d_i = clamp(1 - |s_i - t_i| / tol_i, 0, 1), aggregated as a
    weighted mean. Non-finite or missing bands count as d_i = 0. Zero total
    weight falls back to the plain mean; no sample at all scores 0.
    """
    bands = _bands_of(sample)
    if bands is None:
        return 0.0
    n = len(bands)
    weighted_sum = 0.0
    total_weight = 0.0
    plain_sum = 0.0
    for i in range(BAND_COUNT):
        d = _band_similarity(bands[i], profile.band_targets[i], profile.band_tolerances[i]) if i < n else 0.0
        w = profile.band_weights[i]
        weighted_sum += w * d
        total_weight += w
        plain_sum += d
    if total_weight > 0.0:
        score = weighted_sum / total_weight
    else:
        score = plain_sum / BAND_COUNT
    return min(1.0, max(0.0, score))


def band_scores(sample: WaveSample | Sequence[float] | None, profile: NeuralProfile) -> List[float]:
    bands = _bands_of(sample)
    if bands is None:
        return [0.0] * BAND_COUNT
    return [
        _band_similarity(bands[i], profile.band_targets[i], profile.band_tolerances[i]) if i < len(bands) else 0.0
        for i in range(BAND_COUNT)
    ]


def smoothing_alpha(dt: float, tau: float) -> float:
    if not math.isfinite(dt) or dt <= 0.0:
        return 0.0
    if not math.isfinite(tau) or tau <= 0.0:
        return 1.0
    return 1.0 - math.exp(-dt / tau)


class ScoreSmoother:
    """Exponential moving average with alpha recomputed from the actual dt."""

    def __init__(self, tau: float = 0.3):
        self.tau = tau

    def update(self, raw: float, previous: float, dt: float, first: bool = False) -> float:
        if not math.isfinite(raw):
            raw = 0.0
        raw = min(1.0, max(0.0, raw))
        if first:
            return raw
        alpha = smoothing_alpha(dt, self.tau)
        ema = alpha * raw + (1.0 - alpha) * previous
        return min(1.0, max(0.0, ema))
