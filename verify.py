#!/usr/bin/env python3
"""Setup check for the Neural Wave Bureau: libraries, data files and a short shift."""
from __future__ import annotations

import argparse
import importlib.util
import json
import math
import os
import sys
from typing import Dict, List, Optional

PROFILES_PATH = os.getenv("BUREAU_PROFILES", "profiles.json")
SETTINGS_PATH = os.getenv("BUREAU_SETTINGS", "settings.json")

LIBRARIES = ["mesa", "numpy", "pandas"]


def _same(raw: object, fixed: object) -> bool:
    if isinstance(fixed, list):
        if not isinstance(raw, (list, tuple)) or len(raw) != len(fixed):
            return False
        return all(_same(r, f) for r, f in zip(raw, fixed))
    if isinstance(fixed, bool):
        return raw is fixed
    if isinstance(fixed, (int, float)):
        try:
            value = float(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False
        return math.isfinite(value) and value == float(fixed)
    return raw == fixed


def profile_repairs(raw: Dict[str, object], profile: "NeuralProfile") -> List[str]:
    """Keys of a raw profile entry whose value was changed or dropped on load."""
    from profiles import NeuralProfile

    fixed = profile.to_dict()
    notes = []
    for key, value in raw.items():
        name = NeuralProfile._ALIASES.get(key, key)
        if name == "profile_id":
            continue
        if name not in fixed:
            notes.append(f"{key}: ignored")
        elif not _same(value, fixed[name]):
            notes.append(f"{key}: {value!r} -> {fixed[name]!r}")
    return notes


def settings_repairs(raw: Dict[str, object], settings: "AISettings") -> List[str]:
    fixed = settings.to_dict()
    notes = []
    for key, value in raw.items():
        if key not in fixed:
            notes.append(f"{key}: kept as extra")
        elif not _same(value, fixed[key]):
            notes.append(f"{key}: {value!r} -> {fixed[key]!r}")
    return notes


def _raw_entries(path: str) -> Dict[str, Dict[str, object]]:
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return {}
    entries = data.get("profiles", []) if isinstance(data, dict) else data
    result = {}
    for entry in entries if isinstance(entries, list) else []:
        if isinstance(entry, dict):
            pid = str(entry.get("profile_id") or entry.get("profileId") or entry.get("id") or "").strip()
            if pid:
                result[pid] = entry
    return result


def check_libraries() -> bool:
    print("Checking libraries...")
    missing = [name for name in LIBRARIES if importlib.util.find_spec(name) is None]
    for name in LIBRARIES:
        print(f"  {'✗' if name in missing else '✓'} {name}")
    if missing:
        print(f"  Install with: pip install -e .  (missing: {', '.join(missing)})")
    return not missing


def check_profiles(path: str) -> Optional[Dict[str, List[str]]]:
    """Load the profiles the way the model does and report what was repaired."""
    from profiles import load_profiles

    print(f"\nChecking profiles in {path}...")
    profiles = load_profiles(path)
    if not profiles:
        print("  ✗ no usable profiles (run: python make_profiles.py)")
        return None
    raw = _raw_entries(path)
    repairs = {}
    for pid, profile in profiles.items():
        notes = profile_repairs(raw.get(pid, {}), profile)
        if notes:
            repairs[pid] = notes
            print(f"  ! {pid}: " + "; ".join(notes))
    print(f"  ✓ {len(profiles)} profiles, {len(repairs)} repaired")
    return repairs


def check_settings(path: str) -> List[str]:
    from profiles import load_settings

    print(f"\nChecking settings in {path}...")
    settings = load_settings(path)
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            raw = json.load(f)
    except (OSError, ValueError):
        print("  ! unreadable or missing, defaults in use")
        return ["defaults in use"]
    notes = settings_repairs(raw if isinstance(raw, dict) else {}, settings)
    for note in notes:
        print(f"  ! {note}")
    print(f"  ✓ success={settings.success_threshold:.2f} overload={settings.overload_threshold:.2f} "
          f"fail={settings.instability_fail_threshold:.2f} rate={settings.sample_rate:.0f} Hz")
    return notes


def check_shift(profiles_path: str, settings_path: str, count: int = 2) -> bool:
    """Citizens fed their own targets without noise must all stabilize."""
    print("\nRunning a short matched shift...")
    from model import BureauModel
    from profiles import load_profiles, load_settings
    from run import matching_signal
    from signals import WaveInputSimulator

    profiles = list(load_profiles(profiles_path).values())[:count]
    if not profiles:
        print("  ✗ nothing to run")
        return False
    model = BureauModel(settings=load_settings(settings_path), profiles=profiles, seed=0)
    model.signal = matching_signal(model, WaveInputSimulator(noise_level=0.0))
    limit = max(p.min_stimulation_time for p in profiles) * len(profiles) + 5.0
    model.run_for(limit)
    failed = [c.citizen_id for c in model.citizens() if c.outcome != "stabilized"]
    for c in model.citizens():
        print(f"  {'✓' if c.outcome == 'stabilized' else '✗'} {c.citizen_id}: {c.outcome or c.state.value}")
    return not failed


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Check the Neural Wave Bureau setup.")
    parser.add_argument("--profiles", type=str, default=PROFILES_PATH)
    parser.add_argument("--settings", type=str, default=SETTINGS_PATH)
    parser.add_argument("--citizens", type=int, default=2)
    args = parser.parse_args(argv)

    print("="*60)
    print("NEURAL WAVE BUREAU SETUP CHECK")
    print("="*60)
    results = {"Libraries": check_libraries()}
    if results["Libraries"]:
        results["Profiles"] = check_profiles(args.profiles) is not None
        check_settings(args.settings)
    if all(results.values()):
        results["Matched shift"] = check_shift(args.profiles, args.settings, args.citizens)

    print("\n" + "="*60)
    for name, passed in results.items():
        print(f"{'✓ PASS' if passed else '✗ FAIL'}: {name}")
    if all(results.values()):
        print("\nReady: python run.py --seconds 30")
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
