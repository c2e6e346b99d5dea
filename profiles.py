"""Perfiles neuronales y ajustes globales del Bureau (valores inmutables, reparados al cargar)."""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Dict, Iterable, List, Tuple

import numpy as np

logger = logging.getLogger(__name__)

BAND_NAMES: Tuple[str, ...] = ("Delta", "Theta", "Alpha", "Beta", "Gamma")
BAND_COUNT = len(BAND_NAMES)
MIN_TOLERANCE = 0.01
MAX_WEIGHT = 1000.0

DEFAULT_TARGET = 0.2
DEFAULT_TOLERANCE = 0.15
DEFAULT_WEIGHT = 1.0

PROFILES_PATH = os.getenv("BUREAU_PROFILES", "profiles.json")
SETTINGS_PATH = os.getenv("BUREAU_SETTINGS", "settings.json")


def clamp01(value: float) -> float:
    return float(np.clip(value, 0.0, 1.0))


def finite_or(value: object, default: float) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return float(default)
    if not math.isfinite(number):
        return float(default)
    return number


def fit_bands(values: Iterable[object] | None, default: float, lo: float, hi: float) -> Tuple[float, ...]:
    """Trunca o rellena a BAND_COUNT valores y los recorta a [lo, hi]."""
    raw: List[object] = list(values) if values is not None else []
    raw = raw[:BAND_COUNT] + [default] * max(0, BAND_COUNT - len(raw))
    return tuple(float(np.clip(finite_or(v, default), lo, hi)) for v in raw)


@dataclass(frozen=True)
class NeuralProfile:
    profile_id: str = "default"
    display_name: str = "Citizen"
    band_targets: Tuple[float, ...] = (DEFAULT_TARGET,) * BAND_COUNT
    band_tolerances: Tuple[float, ...] = (DEFAULT_TOLERANCE,) * BAND_COUNT
    band_weights: Tuple[float, ...] = (DEFAULT_WEIGHT,) * BAND_COUNT
    instability_rate: float = 0.5
    min_stimulation_time: float = 2.0
    recovery_time: float = 5.0
    starting_obedience: float = 50.0

    def __post_init__(self):
        # repair instead of reject: the runtime never sees an invalid profile
        set_ = object.__setattr__
        set_(self, "profile_id", str(self.profile_id).strip() or "default")
        set_(self, "display_name", str(self.display_name))
        set_(self, "band_targets", fit_bands(self.band_targets, DEFAULT_TARGET, 0.0, 1.0))
        set_(self, "band_tolerances", fit_bands(self.band_tolerances, DEFAULT_TOLERANCE, MIN_TOLERANCE, 1.0))
        set_(self, "band_weights", fit_bands(self.band_weights, DEFAULT_WEIGHT, 0.0, MAX_WEIGHT))
        set_(self, "instability_rate", max(0.0, finite_or(self.instability_rate, 0.5)))
        set_(self, "min_stimulation_time", max(0.0, finite_or(self.min_stimulation_time, 2.0)))
        set_(self, "recovery_time", max(0.0, finite_or(self.recovery_time, 5.0)))
        set_(self, "starting_obedience", float(np.clip(finite_or(self.starting_obedience, 50.0), 0.0, 100.0)))

    # original asset keys -> field names
    _ALIASES = {
        "id": "profile_id",
        "profileId": "profile_id",
        "name": "display_name",
        "displayName": "display_name",
        "bandTargets": "band_targets",
        "targets": "band_targets",
        "bandTolerance": "band_tolerances",
        "band_tolerance": "band_tolerances",
        "tolerances": "band_tolerances",
        "bandWeights": "band_weights",
        "weights": "band_weights",
        "instabilityRate": "instability_rate",
        "minStimulationTime": "min_stimulation_time",
        "recoveryTime": "recovery_time",
        "startingObedience": "starting_obedience",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "NeuralProfile":
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, object] = {}
        for key, value in data.items():
            name = cls._ALIASES.get(key, key)
            if name in known:
                kwargs[name] = value
        return cls(**kwargs)  # type: ignore[arg-type]

    def to_dict(self) -> Dict[str, object]:
        payload = asdict(self)
        for key in ("band_targets", "band_tolerances", "band_weights"):
            payload[key] = list(payload[key])
        return payload


@dataclass(frozen=True)
class AISettings:
    success_threshold: float = 0.75
    overload_threshold: float = 0.25
    instability_fail_threshold: float = 0.8
    sample_rate: float = 30.0
    smoothing_tau: float = 0.3
    instability_recovery_rate: float = 0.2
    verbose_logging: bool = False
    max_active_citizens: int = 2
    # obedience tuning (units per second on the 0..100 scale)
    obedience_rise_rate: float = 25.0
    obedience_fall_rate: float = 5.0
    obedience_overshoot: float = 1.1
    rebellious_multiplier: float = 2.0
    compliant_multiplier: float = 0.3
    extra: Dict[str, object] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self):
        set_ = object.__setattr__
        success = clamp01(finite_or(self.success_threshold, 0.75))
        overload = clamp01(finite_or(self.overload_threshold, 0.25))
        if overload >= success:
            logger.warning(
                "overload_threshold %.3f >= success_threshold %.3f, corrected to %.3f",
                overload, success, success * 0.5,
            )
            overload = success * 0.5
        set_(self, "success_threshold", success)
        set_(self, "overload_threshold", overload)
        set_(self, "instability_fail_threshold", clamp01(finite_or(self.instability_fail_threshold, 0.8)))
        set_(self, "sample_rate", max(1e-3, finite_or(self.sample_rate, 30.0)))
        set_(self, "smoothing_tau", max(1e-3, finite_or(self.smoothing_tau, 0.3)))
        set_(self, "instability_recovery_rate", max(0.0, finite_or(self.instability_recovery_rate, 0.2)))
        set_(self, "verbose_logging", bool(self.verbose_logging))
        set_(self, "max_active_citizens", max(1, int(finite_or(self.max_active_citizens, 2))))
        set_(self, "obedience_rise_rate", max(0.0, finite_or(self.obedience_rise_rate, 25.0)))
        set_(self, "obedience_fall_rate", max(0.0, finite_or(self.obedience_fall_rate, 5.0)))
        set_(self, "obedience_overshoot", max(0.0, finite_or(self.obedience_overshoot, 1.1)))
        set_(self, "rebellious_multiplier", max(0.0, finite_or(self.rebellious_multiplier, 2.0)))
        set_(self, "compliant_multiplier", max(0.0, finite_or(self.compliant_multiplier, 0.3)))

    def sample_interval(self) -> float:
        return 1.0 / self.sample_rate

    def smoothing_alpha(self) -> float:
        """Alpha del EMA para un intervalo nominal de muestreo."""
        return 1.0 - math.exp(-self.sample_interval() / self.smoothing_tau)

    def with_overrides(self, **changes) -> "AISettings":
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "AISettings":
        known = {f.name for f in fields(cls)} - {"extra"}
        kwargs = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        return cls(extra=extra, **kwargs)  # type: ignore[arg-type]

    def to_dict(self) -> Dict[str, object]:
        payload = asdict(self)
        payload.pop("extra", None)
        return payload


def _read_json(path: str) -> object:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except ValueError:
        # files saved with a BOM
        with open(path, "r", encoding="utf-8-sig") as f:
            return json.load(f)


def load_profiles(path: str = PROFILES_PATH) -> Dict[str, NeuralProfile]:
    if not os.path.exists(path):
        return {}
    try:
        data = _read_json(path)
    except (OSError, ValueError) as exc:
        logger.warning("could not read profiles from %s: %s", path, exc)
        return {}
    entries = data.get("profiles", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        logger.warning("profiles file %s has no 'profiles' list", path)
        return {}
    result: Dict[str, NeuralProfile] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        pid = str(entry.get("profile_id") or entry.get("profileId") or entry.get("id") or "").strip()
        if not pid:
            continue
        profile = NeuralProfile.from_dict({**entry, "profile_id": pid})
        result[profile.profile_id] = profile
    return result


def load_settings(path: str = SETTINGS_PATH) -> AISettings:
    if not os.path.exists(path):
        return AISettings()
    try:
        data = _read_json(path)
    except (OSError, ValueError) as exc:
        logger.warning("could not read settings from %s: %s", path, exc)
        return AISettings()
    if not isinstance(data, dict):
        logger.warning("settings file %s is not a JSON object", path)
        return AISettings()
    return AISettings.from_dict(data)


def save_profiles(profiles: Iterable[NeuralProfile], path: str = PROFILES_PATH) -> None:
    payload = {"profiles": [p.to_dict() for p in profiles]}
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def save_settings(settings: AISettings, path: str = SETTINGS_PATH) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, ensure_ascii=False, indent=2)
