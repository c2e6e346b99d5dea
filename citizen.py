"""
Citizen pipeline and life-cycle state machine.

One CitizenStateMachine owns one CitizenRuntime. A tick runs, in order:
evaluate -> smooth -> obedience -> instability -> transitions, synchronously
and without raising. Terminal states freeze every runtime field until reset().
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Sequence

from dynamics import ComplianceController, InstabilityTracker, obedience_label
from evaluation import ScoreSmoother, WaveSample, band_scores, compute_similarity
from profiles import AISettings, NeuralProfile

logger = logging.getLogger(__name__)

# float accumulation of 1/30 s steps lands a hair below whole seconds
TIME_EPSILON = 1e-6

EVENTS = ("state_changed", "stabilized", "critical_failure", "recovering")


class CitizenState(str, Enum):
    IDLE = "Idle"
    BEING_STIMULATED = "BeingStimulated"
    STABILIZED = "Stabilized"
    AGITATED = "Agitated"
    RECOVERING = "Recovering"
    CRITICAL_FAILURE = "CriticalFailure"

    @property
    def is_terminal(self) -> bool:
        return self in (CitizenState.STABILIZED, CitizenState.CRITICAL_FAILURE)


ALLOWED_TRANSITIONS = {
    CitizenState.IDLE: {CitizenState.BEING_STIMULATED},
    CitizenState.BEING_STIMULATED: {CitizenState.STABILIZED, CitizenState.AGITATED},
    CitizenState.AGITATED: {CitizenState.CRITICAL_FAILURE, CitizenState.RECOVERING},
    CitizenState.RECOVERING: {CitizenState.STABILIZED, CitizenState.IDLE},
    CitizenState.STABILIZED: set(),
    CitizenState.CRITICAL_FAILURE: set(),
}


@dataclass
class CitizenRuntime:
    state: CitizenState = CitizenState.IDLE
    raw_score: float = 0.0
    smoothed_score: float = 0.0
    instability: float = 0.0
    obedience: float = 50.0
    state_time: float = 0.0
    success_hold_time: float = 0.0
    instability_multiplier: float = 1.0
    has_smoothed: bool = False
    paused: bool = False


@dataclass(frozen=True)
class CitizenSnapshot:
    citizen_id: str
    profile_id: str
    state: CitizenState
    raw_score: float
    smoothed_score: float
    instability: float
    obedience: float
    instability_multiplier: float
    state_time: float
    paused: bool

    @property
    def obedience_label(self) -> str:
        return obedience_label(self.obedience)


Listener = Callable[..., None]


class CitizenStateMachine:
    def __init__(self, profile: NeuralProfile, settings: AISettings | None = None, citizen_id: str | None = None):
        self.profile = profile
        self.settings = settings or AISettings()
        self.citizen_id = citizen_id or profile.profile_id
        self._build_components()
        self.runtime = CitizenRuntime(obedience=profile.starting_obedience)
        self.runtime.instability_multiplier = self._compliance.multiplier_for(self.runtime.obedience)
        self.last_sample: WaveSample | None = None
        self._listeners: Dict[str, List[Listener]] = {name: [] for name in EVENTS}

    # --- wiring -------------------------------------------------------------

    def _build_components(self) -> None:
        self._smoother = ScoreSmoother(self.settings.smoothing_tau)
        self._compliance = ComplianceController.from_settings(self.settings)
        self._tracker = InstabilityTracker.from_settings(self.settings)

    def use_settings(self, settings: AISettings) -> None:
        """Swap the settings snapshot; callers do this between ticks only."""
        self.settings = settings
        self._build_components()

    def add_listener(self, event: str, callback: Listener) -> None:
        if event not in self._listeners:
            raise ValueError(f"unknown event {event!r}, expected one of {EVENTS}")
        self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Listener) -> None:
        if callback in self._listeners.get(event, []):
            self._listeners[event].remove(callback)

    def _notify(self, event: str, *args) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(self, *args)
            except Exception:
                logger.exception("listener for %r failed on citizen %s", event, self.citizen_id)

    # --- read side ----------------------------------------------------------

    @property
    def state(self) -> CitizenState:
        return self.runtime.state

    @property
    def is_active(self) -> bool:
        r = self.runtime
        return r.state is not CitizenState.IDLE and not r.state.is_terminal and not r.paused

    @property
    def is_resolved(self) -> bool:
        return self.runtime.state.is_terminal

    def snapshot(self) -> CitizenSnapshot:
        r = self.runtime
        return CitizenSnapshot(
            citizen_id=self.citizen_id,
            profile_id=self.profile.profile_id,
            state=r.state,
            raw_score=r.raw_score,
            smoothed_score=r.smoothed_score,
            instability=r.instability,
            obedience=r.obedience,
            instability_multiplier=r.instability_multiplier,
            state_time=r.state_time,
            paused=r.paused,
        )

    def band_scores(self, sample: WaveSample | Sequence[float] | None = None) -> List[float]:
        return band_scores(sample if sample is not None else self.last_sample, self.profile)

    def agitation_level(self) -> float:
        r = self.runtime
        if r.state is CitizenState.BEING_STIMULATED:
            return r.instability * 0.5
        if r.state is CitizenState.AGITATED:
            return min(1.0, max(0.0, r.instability))
        if r.state is CitizenState.CRITICAL_FAILURE:
            return 1.0
        if r.state is CitizenState.RECOVERING:
            if self.profile.recovery_time <= 0.0:
                return 0.0
            progress = min(1.0, r.state_time / self.profile.recovery_time)
            return 0.5 * (1.0 - progress)
        return 0.0

    def composure_level(self) -> float:
        return 1.0 - self.agitation_level()

    # --- commands -----------------------------------------------------------

    def _reset_numeric(self) -> None:
        r = self.runtime
        r.raw_score = 0.0
        r.smoothed_score = 0.0
        r.instability = 0.0
        r.obedience = self.profile.starting_obedience
        r.state_time = 0.0
        r.success_hold_time = 0.0
        r.instability_multiplier = self._compliance.multiplier_for(r.obedience)
        r.has_smoothed = False
        r.paused = False

    def start_stimulation(self, profile: NeuralProfile | None = None) -> bool:
        r = self.runtime
        if r.paused and not r.state.is_terminal and r.state is not CitizenState.IDLE:
            r.paused = False
            logger.debug("%s resumed in %s", self.citizen_id, r.state.value)
            return True
        if r.state is not CitizenState.IDLE:
            return False
        if profile is not None:
            self.profile = profile
        self._reset_numeric()
        self._transition(CitizenState.BEING_STIMULATED)
        return True

    def stop_stimulation(self) -> None:
        # pause only: accumulated instability and obedience stay as they are
        r = self.runtime
        if r.state is CitizenState.IDLE or r.state.is_terminal:
            return
        r.paused = True
        logger.debug("%s paused in %s (instability %.2f)", self.citizen_id, r.state.value, r.instability)

    def reset(self) -> None:
        old = self.runtime.state
        self._reset_numeric()
        self.runtime.state = CitizenState.IDLE
        self.last_sample = None
        if old is not CitizenState.IDLE:
            self._log_transition(old, CitizenState.IDLE)
            self._notify("state_changed", old, CitizenState.IDLE)

    # --- tick ---------------------------------------------------------------

    def tick(self, sample: WaveSample | Sequence[float] | None, dt: float) -> CitizenSnapshot:
        if not self.is_active or not math.isfinite(dt) or dt <= 0.0:
            return self.snapshot()
        if isinstance(sample, WaveSample) or sample is None:
            self.last_sample = sample
        else:
            self.last_sample = WaveSample(0.0, tuple(sample))

        r = self.runtime
        r.raw_score = compute_similarity(sample, self.profile)
        r.smoothed_score = self._smoother.update(r.raw_score, r.smoothed_score, dt, first=not r.has_smoothed)
        r.has_smoothed = True

        r.obedience, r.instability_multiplier = self._compliance.update(r.smoothed_score, dt, r.obedience)
        r.instability = self._tracker.update(
            r.smoothed_score, dt, r.instability, self.profile.instability_rate, r.instability_multiplier
        )

        r.state_time += dt
        self._process_transitions(dt)
        return self.snapshot()

    def _process_transitions(self, dt: float) -> None:
        r = self.runtime
        s = self.settings
        score = r.smoothed_score

        if r.state is CitizenState.BEING_STIMULATED:
            if score >= s.success_threshold:
                r.success_hold_time += dt
            else:
                r.success_hold_time = 0.0
            if score >= s.success_threshold and r.success_hold_time + TIME_EPSILON >= self.profile.min_stimulation_time:
                self._transition(CitizenState.STABILIZED)
            elif r.instability > 0.0 and score <= s.overload_threshold:
                self._transition(CitizenState.AGITATED)

        elif r.state is CitizenState.AGITATED:
            if r.instability >= s.instability_fail_threshold:
                self._transition(CitizenState.CRITICAL_FAILURE)
            elif score > s.overload_threshold:
                self._transition(CitizenState.RECOVERING)

        elif r.state is CitizenState.RECOVERING:
            if r.state_time + TIME_EPSILON >= self.profile.recovery_time:
                if score >= s.success_threshold:
                    self._transition(CitizenState.STABILIZED)
                else:
                    self._transition(CitizenState.IDLE)

    def _transition(self, new_state: CitizenState) -> None:
        r = self.runtime
        old = r.state
        if old is new_state:
            return
        if new_state not in ALLOWED_TRANSITIONS[old]:
            logger.error("illegal transition %s -> %s ignored for %s", old.value, new_state.value, self.citizen_id)
            return
        r.state = new_state
        r.state_time = 0.0
        r.success_hold_time = 0.0
        self._log_transition(old, new_state)
        self._notify("state_changed", old, new_state)
        if new_state is CitizenState.STABILIZED:
            self._notify("stabilized")
        elif new_state is CitizenState.CRITICAL_FAILURE:
            self._notify("critical_failure")
        elif new_state is CitizenState.RECOVERING:
            self._notify("recovering")

    def _log_transition(self, old: CitizenState, new: CitizenState) -> None:
        level = logging.INFO if self.settings.verbose_logging else logging.DEBUG
        logger.log(
            level,
            "%s: %s -> %s (score %.2f, instability %.2f, obedience %.0f)",
            self.citizen_id, old.value, new.value,
            self.runtime.smoothed_score, self.runtime.instability, self.runtime.obedience,
        )
