"""Genera el reparto de ciudadanos de muestra y los ajustes por defecto en JSON."""

from __future__ import annotations

import argparse
import os
from typing import List

from profiles import AISettings, NeuralProfile, save_profiles, save_settings

ORDINARY = (0.1, 0.2, 0.6, 0.6, 0.2)
ARTIST = (0.05, 0.4, 0.7, 0.5, 0.3)
REBEL = (0.05, 0.15, 0.3, 0.8, 0.9)

# id, name, targets, tolerance, instability_rate, min_stimulation_time, recovery_time, starting_obedience
CAST = [
    ("ordinary", "Joe Average", ORDINARY, 0.15, 0.5, 2.0, 5.0, 50.0),
    ("artist", "Vincent Canvas", ARTIST, 0.15, 0.6, 5.0, 6.0, 45.0),
    ("rebel", "Roxie Rage", REBEL, 0.12, 0.7, 5.0, 7.0, 25.0),
    ("biker", "Axel Thorne", (0.1, 0.15, 0.35, 0.75, 0.7), 0.12, 0.8, 4.0, 8.0, 30.0),
    ("fastfoodguy", "Todd Frier", (0.2, 0.3, 0.5, 0.5, 0.2), 0.18, 0.4, 3.0, 4.0, 60.0),
    ("firefighter", "Captain Blaze", (0.05, 0.15, 0.55, 0.7, 0.4), 0.15, 0.3, 6.0, 5.0, 70.0),
    ("gamergirl", "Luna Vane", (0.05, 0.25, 0.45, 0.7, 0.6), 0.14, 0.6, 5.0, 6.0, 40.0),
    ("gangster", "Rocco Moretti", (0.1, 0.1, 0.3, 0.85, 0.8), 0.1, 0.9, 4.0, 9.0, 15.0),
    ("grandma", "Edith Witherbottom", (0.4, 0.5, 0.6, 0.2, 0.1), 0.2, 0.5, 3.0, 10.0, 65.0),
    ("grandpa", "Arthur McGinty", (0.45, 0.45, 0.55, 0.25, 0.1), 0.2, 0.5, 3.0, 10.0, 60.0),
    ("hobo", "Rusty Shackleford", (0.3, 0.6, 0.4, 0.3, 0.2), 0.14, 0.6, 4.0, 7.0, 35.0),
    ("jock", "Brad Sterling", (0.1, 0.15, 0.4, 0.8, 0.5), 0.15, 0.5, 5.0, 5.0, 50.0),
    ("paramedic", "Holly Cross", (0.05, 0.2, 0.6, 0.65, 0.35), 0.16, 0.3, 6.0, 4.0, 75.0),
    ("punkgirl", "Sidney Vicious", (0.05, 0.2, 0.25, 0.75, 0.85), 0.12, 0.75, 4.0, 7.0, 20.0),
    ("punkguy", "Joey Spikes", (0.1, 0.2, 0.2, 0.8, 0.85), 0.12, 0.75, 4.0, 7.0, 20.0),
    ("roadworker", "Hank Asphalt", (0.15, 0.25, 0.5, 0.55, 0.25), 0.16, 0.4, 5.0, 5.0, 55.0),
    ("shopkeeper", "Samir Patel", (0.1, 0.25, 0.65, 0.55, 0.2), 0.16, 0.3, 4.0, 5.0, 65.0),
    ("summergirl", "Daisy Summers", (0.1, 0.35, 0.75, 0.4, 0.25), 0.16, 0.4, 4.0, 5.0, 55.0),
    ("tourist", "Roland Globe", (0.15, 0.3, 0.6, 0.5, 0.3), 0.15, 0.5, 3.0, 6.0, 50.0),
]


def sample_cast() -> List[NeuralProfile]:
    return [
        NeuralProfile(
            profile_id=pid,
            display_name=name,
            band_targets=targets,
            band_tolerances=(tol,) * 5,
            instability_rate=rate,
            min_stimulation_time=min_time,
            recovery_time=recovery,
            starting_obedience=obedience,
        )
        for pid, name, targets, tol, rate, min_time, recovery, obedience in CAST
    ]


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Write sample citizen profiles and default settings.")
    parser.add_argument("--outdir", type=str, default=".")
    parser.add_argument("--force", action="store_true", default=False)
    args = parser.parse_args(argv)

    os.makedirs(args.outdir, exist_ok=True)
    profiles_path = os.path.join(args.outdir, "profiles.json")
    settings_path = os.path.join(args.outdir, "settings.json")
    for path in (profiles_path, settings_path):
        if os.path.exists(path) and not args.force:
            print(f"{path} already exists (use --force to overwrite)")
            return 1

    cast = sample_cast()
    save_profiles(cast, profiles_path)
    save_settings(AISettings(), settings_path)
    print(f"Wrote {len(cast)} profiles to {profiles_path} and default settings to {settings_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
