import argparse
import json
import logging
import os
from dataclasses import replace
from typing import List

import numpy as np
import pandas as pd

from make_profiles import sample_cast
from model import BureauModel
from profiles import PROFILES_PATH, SETTINGS_PATH, load_profiles, load_settings
from signals import PRESETS, WaveInputSimulator


parser = argparse.ArgumentParser(description="Run one monitoring shift of the Neural Wave Bureau.")
parser.add_argument("--profiles", type=str, default=PROFILES_PATH)
parser.add_argument("--settings", type=str, default=SETTINGS_PATH)
parser.add_argument("--citizens", type=str, default=None,
                    help="comma separated profile ids, in processing order (default: all)")
parser.add_argument("--preset", type=str, default="match",
                    choices=sorted(PRESETS) + ["random", "match"])
parser.add_argument("--noise", type=float, default=0.05)
parser.add_argument("--seconds", type=float, default=60.0)
parser.add_argument("--seed", type=int, default=42)
parser.add_argument("--startobedience", type=float, default=None)
parser.add_argument("--outdir", type=str, default="results")
parser.add_argument("--verbose", action="store_true", default=False)


def matching_signal(model: BureauModel, simulator: WaveInputSimulator):
    """Operator that dials each active citizen's own targets, plus simulator noise."""

    def supply(timestamp: float):
        samples = {}
        for citizen in model.active_citizens():
            simulator.bands = list(citizen.profile.band_targets)
            samples[citizen.citizen_id] = simulator.sample(timestamp)
        return samples

    return supply


def build_model(args) -> BureauModel:
    settings = load_settings(args.settings)
    profiles = load_profiles(args.profiles)
    if not profiles:
        print(f"Sin perfiles en {args.profiles}, usando el reparto de muestra.")
        profiles = {p.profile_id: p for p in sample_cast()}

    if args.citizens:
        wanted = [pid.strip() for pid in args.citizens.split(",") if pid.strip()]
        missing = [pid for pid in wanted if pid not in profiles]
        if missing:
            raise SystemExit(f"Perfiles desconocidos: {', '.join(missing)}")
        selected = [profiles[pid] for pid in wanted]
    else:
        selected = list(profiles.values())

    if args.startobedience is not None:
        selected = [replace(p, starting_obedience=args.startobedience) for p in selected]

    simulator = WaveInputSimulator(noise_level=args.noise, seed=args.seed)
    if args.preset != "match":
        simulator.set_preset(args.preset)
    model = BureauModel(settings=settings, profiles=selected, seed=args.seed)
    model.signal = matching_signal(model, simulator) if args.preset == "match" else simulator
    model.run_metadata.update(preset=args.preset, noise=args.noise, citizens=[p.profile_id for p in selected])
    return model


def main(argv: List[str] | None = None) -> int:
    args, unknown = parser.parse_known_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    model = build_model(args)
    if args.verbose:
        model.apply_settings(model.settings.with_overrides(verbose_logging=True))

    print("Iniciando turno de monitorización...")
    report_every = max(1, int(round(5.0 * model.settings.sample_rate)))
    while model.clock < args.seconds and model.running:
        model.step()
        if model.step_count % report_every == 0:
            active = ", ".join(
                f"{c.citizen_id}:{c.state.value}({c.score:.2f}/{c.instability:.2f}/{c.obedience:.0f})"
                for c in model.active_citizens()
            ) or "-"
            print(f"t={model.clock:6.1f}s | activos={active} | en cola={len(model.queue)}")

    citizens = model.citizens()
    print("\n" + "=" * 30 + " REPORTE DEL TURNO " + "=" * 30)
    print(f"{'Ciudadano':22} {'Estado':16} {'Score':>7} {'Inest.':>7} {'Obed.':>7} {'Resultado':>18}")
    print("-" * 82)
    for c in citizens:
        print(
            f"{c.citizen_id:22} {c.state.value:16} {c.score:7.2f} {c.instability:7.2f} "
            f"{c.obedience:7.1f} {c.outcome or 'sin resolver':>18}"
        )
    print(f"\nEstabilizados={model.count_outcome('stabilized')} "
          f"Fallos críticos={model.count_outcome('critical_failure')} "
          f"Obediencia media de salida={model.average_exit_obedience():.1f}")

    os.makedirs(args.outdir, exist_ok=True)
    summary = model.datacollector.get_model_vars_dataframe()
    timeline = model.datacollector.get_agent_vars_dataframe()
    try:
        summary.to_csv(os.path.join(args.outdir, "summary_timeline.csv"))
    except PermissionError:
        alt = os.path.join(args.outdir, f"summary_timeline_{int(np.random.randint(1e9))}.csv")
        summary.to_csv(alt)
    timeline.to_csv(os.path.join(args.outdir, "citizen_timeline.csv"))

    outcomes = pd.DataFrame(
        [
            dict(
                citizen=c.citizen_id,
                profile=c.profile.profile_id,
                outcome=c.outcome,
                resolved_at=c.resolved_at,
                exit_obedience=c.exit_obedience,
                stimulated_time=c.stimulated_time,
            )
            for c in citizens
        ]
    )
    with open(os.path.join(args.outdir, "outcomes.json"), "w", encoding="utf-8") as f:
        payload = {
            "metadata": model.run_metadata,
            "outcomes": outcomes.to_dict(orient="records"),
            "average_exit_obedience": model.average_exit_obedience(),
        }
        json.dump(payload, f, ensure_ascii=False, indent=2, default=str)

    print(f"Datos guardados en {args.outdir}/summary_timeline.csv, citizen_timeline.csv y outcomes.json")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
