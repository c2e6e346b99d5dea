"""Modelo Neural Wave Bureau: ciudadanos monitorizados por una estación de estimulación (Mesa 3.3+)."""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import Callable, Deque, Dict, List, Sequence

import numpy as np
from mesa import Agent, DataCollector, Model

from citizen import CitizenSnapshot, CitizenState, CitizenStateMachine
from evaluation import WaveSample
from profiles import AISettings, NeuralProfile

logger = logging.getLogger(__name__)

# a signal returns one sample for every active citizen, or a {citizen_id: sample} mapping
SignalSource = Callable[[float], "WaveSample | Sequence[float] | Dict[str, WaveSample] | None"]


class Citizen(Agent):
    def __init__(self, model: "BureauModel", profile: NeuralProfile, citizen_id: str | None = None):
        super().__init__(model)
        self.citizen_id = citizen_id or f"{profile.profile_id}_{self.unique_id:02d}"
        self.machine = CitizenStateMachine(profile, model.settings, self.citizen_id)
        self.machine.add_listener("state_changed", self._on_state_changed)
        self.current_sample: WaveSample | None = None
        self.outcome: str | None = None
        self.exit_obedience: float | None = None
        self.resolved_at: float | None = None
        self.stimulated_time = 0.0

    @property
    def profile(self) -> NeuralProfile:
        return self.machine.profile

    @property
    def state(self) -> CitizenState:
        return self.machine.state

    @property
    def score(self) -> float:
        return self.machine.runtime.smoothed_score

    @property
    def instability(self) -> float:
        return self.machine.runtime.instability

    @property
    def obedience(self) -> float:
        return self.machine.runtime.obedience

    @property
    def is_active(self) -> bool:
        return self.machine.is_active

    def update_wave_sample(self, sample: WaveSample | None):
        self.current_sample = sample

    def snapshot(self) -> CitizenSnapshot:
        return self.machine.snapshot()

    def step(self):
        if not self.machine.is_active:
            return
        dt = self.model.last_dt
        self.machine.tick(self.current_sample, dt)
        self.stimulated_time += dt

    def _on_state_changed(self, machine: CitizenStateMachine, old: CitizenState, new: CitizenState):
        self.model.handle_transition(self, old, new)


class BureauModel(Model):
    """
    Explicit context for a monitoring shift.

    Holds the settings snapshot, the citizens and their waiting queue, the
    current wave sample and a DataCollector. Settings handed to
    apply_settings() are swapped in at the next tick boundary, never mid-tick.
    """

    def __init__(
        self,
        settings: AISettings | None = None,
        profiles: Sequence[NeuralProfile] | None = None,
        signal: SignalSource | None = None,
        seed: int | None = None,
        auto_advance: bool = True,
        retry_on_idle: bool = True,
    ):
        super().__init__(seed=seed)
        self.rng = np.random.default_rng(seed)
        self.settings = settings or AISettings()
        self._pending_settings: AISettings | None = None
        self.signal = signal
        self.auto_advance = auto_advance
        self.retry_on_idle = retry_on_idle
        self.clock = 0.0
        self.last_dt = 0.0
        self.step_count = 0
        self.current_sample: WaveSample | None = None
        self.active_ids: List[str] = []
        self.queue: Deque[str] = deque()
        self._by_id: Dict[str, Citizen] = {}
        self.event_log: List[tuple] = []
        self.run_metadata = {
            "seed": seed,
            "settings": self.settings.to_dict(),
            "auto_advance": auto_advance,
        }
        for profile in profiles or []:
            self.add_citizen(profile)
        self.datacollector = DataCollector(
            model_reporters={
                "time": lambda m: m.clock,
                "active": lambda m: len(m.active_ids),
                "queued": lambda m: len(m.queue),
                "stabilized": lambda m: m.count_outcome("stabilized"),
                "failures": lambda m: m.count_outcome("critical_failure"),
                "mean_obedience": lambda m: float(np.mean([c.obedience for c in m.active_citizens()])) if m.active_ids else 0.0,
                "mean_instability": lambda m: float(np.mean([c.instability for c in m.active_citizens()])) if m.active_ids else 0.0,
            },
            agent_reporters={
                "citizen_id": "citizen_id",
                "state": lambda a: a.state.value,
                "score": "score",
                "instability": "instability",
                "obedience": "obedience",
            },
        )
        self.datacollector.collect(self)

    # --- citizens -----------------------------------------------------------

    def add_citizen(self, profile: NeuralProfile, citizen_id: str | None = None, enqueue: bool = True) -> Citizen:
        if citizen_id is not None and citizen_id in self._by_id:
            raise ValueError(f"citizen id {citizen_id!r} already registered")
        citizen = Citizen(self, profile, citizen_id)
        self._by_id[citizen.citizen_id] = citizen
        if enqueue:
            self.queue.append(citizen.citizen_id)
        self.log_event("registered", citizen.citizen_id)
        return citizen

    def get_citizen(self, citizen_id: str) -> Citizen | None:
        return self._by_id.get(citizen_id)

    def remove_citizen(self, citizen_id: str) -> bool:
        citizen = self._by_id.pop(citizen_id, None)
        if citizen is None:
            logger.warning("remove_citizen: unknown citizen %s", citizen_id)
            return False
        self._release(citizen_id)
        citizen.remove()
        self.log_event("removed", citizen_id)
        return True

    def citizens(self) -> List[Citizen]:
        return list(self._by_id.values())

    def active_citizens(self) -> List[Citizen]:
        return [self._by_id[cid] for cid in self.active_ids if cid in self._by_id]

    def resolved_citizens(self) -> List[Citizen]:
        return [c for c in self._by_id.values() if c.outcome is not None]

    def count_outcome(self, outcome: str) -> int:
        return sum(1 for c in self._by_id.values() if c.outcome == outcome)

    def average_exit_obedience(self) -> float:
        values = [c.exit_obedience for c in self._by_id.values() if c.exit_obedience is not None]
        return float(np.mean(values)) if values else 0.0

    # --- commands -----------------------------------------------------------

    def start_stimulation(self, citizen_id: str) -> bool:
        citizen = self._by_id.get(citizen_id)
        if citizen is None:
            logger.warning("start_stimulation: unknown citizen %s", citizen_id)
            return False
        if citizen_id in self.active_ids:
            return True
        if len(self.active_ids) >= self.settings.max_active_citizens:
            logger.warning(
                "start_stimulation: %d/%d citizens already active, %s not started",
                len(self.active_ids), self.settings.max_active_citizens, citizen_id,
            )
            return False
        if not citizen.machine.start_stimulation():
            return False
        if citizen_id in self.queue:
            self.queue.remove(citizen_id)
        self.active_ids.append(citizen_id)
        citizen.update_wave_sample(self.current_sample)
        self.log_event("stimulation_started", citizen_id)
        return True

    def stop_stimulation(self, citizen_id: str | None = None) -> None:
        targets = [citizen_id] if citizen_id is not None else list(self.active_ids)
        for cid in targets:
            citizen = self._by_id.get(cid)
            if citizen is None:
                logger.warning("stop_stimulation: unknown citizen %s", cid)
                continue
            citizen.machine.stop_stimulation()
            self._release(cid)
            self.log_event("stimulation_stopped", cid)

    def reset_citizen(self, citizen_id: str) -> bool:
        citizen = self._by_id.get(citizen_id)
        if citizen is None:
            logger.warning("reset_citizen: unknown citizen %s", citizen_id)
            return False
        citizen.machine.reset()
        self._release(citizen_id)
        citizen.outcome = None
        citizen.exit_obedience = None
        citizen.resolved_at = None
        citizen.current_sample = None
        self.log_event("reset", citizen_id)
        return True

    def set_wave_sample(self, bands: WaveSample | Sequence[float] | None, citizen_id: str | None = None) -> None:
        """Feed one citizen's headset, or every active citizen when no id is given."""
        if bands is None or isinstance(bands, WaveSample):
            sample = bands
        else:
            sample = WaveSample(self.clock, tuple(bands))
        if citizen_id is None:
            self.current_sample = sample
            for citizen in self.active_citizens():
                citizen.update_wave_sample(sample)
            return
        citizen = self._by_id.get(citizen_id)
        if citizen is None:
            logger.warning("set_wave_sample: unknown citizen %s", citizen_id)
            return
        citizen.update_wave_sample(sample)

    def apply_settings(self, settings: AISettings) -> None:
        self._pending_settings = settings

    # --- internals ----------------------------------------------------------

    def _release(self, citizen_id: str) -> None:
        if citizen_id in self.active_ids:
            self.active_ids.remove(citizen_id)
        if citizen_id in self.queue:
            self.queue.remove(citizen_id)

    def _swap_settings(self) -> None:
        if self._pending_settings is None:
            return
        self.settings = self._pending_settings
        self._pending_settings = None
        for citizen in self._by_id.values():
            citizen.machine.use_settings(self.settings)
        self.log_event("settings_applied", self.settings.to_dict())

    def _advance_queue(self) -> None:
        while self.queue and len(self.active_ids) < self.settings.max_active_citizens:
            cid = self.queue[0]
            if not self.start_stimulation(cid):
                # not startable (e.g. already resolved): drop it from the line
                if cid in self.queue:
                    self.queue.remove(cid)

    def handle_transition(self, citizen: Citizen, old: CitizenState, new: CitizenState) -> None:
        self.log_event("transition", (citizen.citizen_id, old.value, new.value))
        if new is CitizenState.STABILIZED or new is CitizenState.CRITICAL_FAILURE:
            citizen.outcome = "stabilized" if new is CitizenState.STABILIZED else "critical_failure"
            citizen.exit_obedience = citizen.obedience
            citizen.resolved_at = self.clock
            self._release(citizen.citizen_id)
            self.log_event(citizen.outcome, citizen.citizen_id)
        elif new is CitizenState.IDLE and old is CitizenState.RECOVERING:
            self._release(citizen.citizen_id)
            self.log_event("another_chance", citizen.citizen_id)
            if self.retry_on_idle:
                self.queue.append(citizen.citizen_id)

    def log_event(self, tag: str, payload: object):
        self.event_log.append((self.clock, tag, payload))

    # --- scheduling ---------------------------------------------------------

    def step(self, dt: float | None = None):
        self._swap_settings()
        if dt is None or not math.isfinite(dt) or dt < 0.0:
            dt = self.settings.sample_interval()
        self.last_dt = dt
        if self.auto_advance:
            self._advance_queue()
        if self.signal is not None:
            supplied = self.signal(self.clock)
            if isinstance(supplied, dict):
                for cid, bands in supplied.items():
                    self.set_wave_sample(bands, cid)
            else:
                self.set_wave_sample(supplied)
        self.agents.do("step")
        self.clock += dt
        self.step_count += 1
        if self.auto_advance:
            self._advance_queue()
        self.datacollector.collect(self)
        self.running = bool(self.active_ids or self.queue)

    def run_for(self, seconds: float, dt: float | None = None) -> int:
        """Step until `seconds` of simulated time pass or nothing is left to monitor."""
        steps = 0
        while self.clock + 1e-9 < seconds and self.running:
            self.step(dt)
            steps += 1
        return steps
