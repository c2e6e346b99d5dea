"""
Obedience and instability dynamics.

Two coupled first-order loops, recomputed once per tick:
- obedience (0..100) follows the smoothed score with a fast rise and a slow
  fall, and maps to an instability multiplier (rebellious -> compliant);
- instability (0..1) grows below the overload threshold, scaled by that
  multiplier, drains above the success threshold and holds in between.

Obedience is always computed first and consumed by instability in the same
tick.
"""

from __future__ import annotations

import math
from typing import Tuple

from profiles import AISettings

OBEDIENCE_LABELS = (
    (90.0, "COMPLIANT"),
    (75.0, "COOPERATIVE"),
    (60.0, "STABLE"),
    (40.0, "NEUTRAL"),
    (25.0, "RESISTANT"),
    (10.0, "DEFIANT"),
)


def obedience_label(obedience: float) -> str:
    for floor, label in OBEDIENCE_LABELS:
        if obedience >= floor:
            return label
    return "REBELLIOUS"


def move_towards(current: float, target: float, max_delta: float) -> float:
    if abs(target - current) <= max_delta:
        return target
    return current + math.copysign(max_delta, target - current)


class ComplianceController:
    def __init__(
        self,
        rise_rate: float = 25.0,
        fall_rate: float = 5.0,
        overshoot: float = 1.1,
        rebellious_multiplier: float = 2.0,
        compliant_multiplier: float = 0.3,
    ):
        self.rise_rate = rise_rate
        self.fall_rate = fall_rate
        self.overshoot = overshoot
        self.rebellious_multiplier = rebellious_multiplier
        self.compliant_multiplier = compliant_multiplier

    @classmethod
    def from_settings(cls, settings: AISettings) -> "ComplianceController":
        return cls(
            rise_rate=settings.obedience_rise_rate,
            fall_rate=settings.obedience_fall_rate,
            overshoot=settings.obedience_overshoot,
            rebellious_multiplier=settings.rebellious_multiplier,
            compliant_multiplier=settings.compliant_multiplier,
        )

    def target_for(self, score: float) -> float:
        if not math.isfinite(score):
            return 0.0
        return min(100.0, max(0.0, score * self.overshoot * 100.0))

    def multiplier_for(self, obedience: float) -> float:
        t = min(1.0, max(0.0, obedience / 100.0))
        return self.rebellious_multiplier + (self.compliant_multiplier - self.rebellious_multiplier) * t

    def update(self, score: float, dt: float, current: float) -> Tuple[float, float]:
        """Return (new obedience, instability multiplier)."""
        current = min(100.0, max(0.0, current)) if math.isfinite(current) else 0.0
        if math.isfinite(dt) and dt > 0.0:
            target = self.target_for(score)
            rate = self.rise_rate if target > current else self.fall_rate
            current = move_towards(current, target, rate * dt)
        obedience = min(100.0, max(0.0, current))
        return obedience, self.multiplier_for(obedience)


class InstabilityTracker:
    def __init__(self, overload_threshold: float = 0.25, success_threshold: float = 0.75, recovery_rate: float = 0.2):
        self.overload_threshold = overload_threshold
        self.success_threshold = success_threshold
        self.recovery_rate = recovery_rate

    @classmethod
    def from_settings(cls, settings: AISettings) -> "InstabilityTracker":
        return cls(
            overload_threshold=settings.overload_threshold,
            success_threshold=settings.success_threshold,
            recovery_rate=settings.instability_recovery_rate,
        )

    def update(self, score: float, dt: float, current: float, base_rate: float, multiplier: float) -> float:
        value = current if math.isfinite(current) else 0.0
        if math.isfinite(score) and math.isfinite(dt) and dt > 0.0:
            if score <= self.overload_threshold:
                growth = (self.overload_threshold - score) * base_rate * multiplier * dt
                if math.isfinite(growth):
                    value += growth
            elif score >= self.success_threshold:
                value -= self.recovery_rate * dt
            # dead zone: hold
        return min(1.0, max(0.0, value))
