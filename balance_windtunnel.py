from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence

import pandas as pd

from model import BureauModel
from profiles import AISettings, NeuralProfile
from signals import WaveInputSimulator


@dataclass
class OperatorConfig:
    name: str
    preset: str | None = None
    noise: float = 0.05
    # blend between the preset bands and the citizen's own targets (1.0 = perfect operator)
    accuracy: float = 0.0


def operator_bands(profile: NeuralProfile, op: OperatorConfig, simulator: WaveInputSimulator) -> List[float]:
    base = list(simulator.bands)
    return [op.accuracy * t + (1.0 - op.accuracy) * b for t, b in zip(profile.band_targets, base)]


def evaluate_balance(
    profiles: Sequence[NeuralProfile],
    operators: List[OperatorConfig],
    seeds: List[int],
    seconds: float,
    settings: AISettings | None = None,
) -> pd.DataFrame:
    """Corre cada perfil contra cada operador y semilla y devuelve el resultado por ciudadano."""
    settings = settings or AISettings()
    rows: List[Dict[str, object]] = []
    for profile in profiles:
        for op in operators:
            for seed in seeds:
                simulator = WaveInputSimulator(noise_level=op.noise, seed=seed)
                if op.preset:
                    simulator.set_preset(op.preset)
                bands = operator_bands(profile, op, simulator)
                simulator.bands = bands
                model = BureauModel(settings=settings, profiles=[profile], signal=simulator, seed=seed)
                model.run_for(seconds)
                citizen = model.citizens()[0]
                rows.append(
                    dict(
                        profile=profile.profile_id,
                        operator=op.name,
                        seed=seed,
                        outcome=citizen.outcome or "unresolved",
                        resolved_at=citizen.resolved_at,
                        final_state=citizen.state.value,
                        final_instability=citizen.instability,
                        final_obedience=citizen.obedience,
                        final_score=citizen.score,
                    )
                )
    return pd.DataFrame(rows)


def summarize_balance(results: pd.DataFrame) -> pd.DataFrame:
    if results.empty:
        return results
    results = results.assign(
        stabilized=(results["outcome"] == "stabilized").astype(float),
        failed=(results["outcome"] == "critical_failure").astype(float),
        resolved_at=pd.to_numeric(results["resolved_at"], errors="coerce"),
    )
    return (
        results.groupby(["profile", "operator"])
        .agg(
            stabilized_rate=("stabilized", "mean"),
            failure_rate=("failed", "mean"),
            mean_resolved_at=("resolved_at", "mean"),
            mean_final_obedience=("final_obedience", "mean"),
        )
        .reset_index()
    )
