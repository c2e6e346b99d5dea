#!/usr/bin/env python3
"""Tests for profile/settings repair and the JSON loaders."""
import json
import math
import os
import sys
import tempfile

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, ROOT)

from make_profiles import sample_cast
from make_profiles import main as make_profiles_main
from profiles import (
    MAX_WEIGHT,
    AISettings,
    NeuralProfile,
    load_profiles,
    load_settings,
    save_profiles,
    save_settings,
)


def test_profile_defaults():
    print("Test: profile defaults...")
    profile = NeuralProfile()
    assert profile.band_targets == (0.2,) * 5
    assert profile.band_tolerances == (0.15,) * 5
    assert profile.band_weights == (1.0,) * 5
    assert profile.starting_obedience == 50.0
    print("  ✓ defaults")


def test_profile_repair():
    """Short arrays are padded, long ones truncated and every value clamped."""
    print("Test: profile repair...")
    profile = NeuralProfile(
        profile_id="  x ",
        band_targets=[0.5, 1.7],
        band_tolerances=[0.0, 5.0, float("nan")],
        band_weights=[1, 2, 3, 4, 5e6, 6, 7],
        instability_rate=-1.0,
        min_stimulation_time=float("inf"),
        starting_obedience=150.0,
    )
    assert profile.profile_id == "x"
    assert profile.band_targets == (0.5, 1.0, 0.2, 0.2, 0.2)
    assert profile.band_tolerances == (0.01, 1.0, 0.15, 0.15, 0.15)
    assert profile.band_weights == (1.0, 2.0, 3.0, 4.0, MAX_WEIGHT)
    assert profile.instability_rate == 0.0
    assert profile.min_stimulation_time == 2.0
    assert profile.starting_obedience == 100.0
    print("  ✓ repaired")


def test_profile_from_camel_case():
    print("Test: camelCase keys...")
    profile = NeuralProfile.from_dict({
        "profileId": "grandma",
        "displayName": "Edith Witherbottom",
        "bandTargets": [0.4, 0.5, 0.6, 0.2, 0.1],
        "bandTolerance": [0.2] * 5,
        "startingObedience": 65,
        "unused": True,
    })
    assert profile.profile_id == "grandma"
    assert profile.band_targets == (0.4, 0.5, 0.6, 0.2, 0.1)
    assert profile.band_tolerances == (0.2,) * 5
    assert profile.starting_obedience == 65.0
    assert NeuralProfile.from_dict(profile.to_dict()) == profile
    print("  ✓ aliases mapped")


def test_settings_repair():
    print("Test: settings repair...")
    settings = AISettings(success_threshold=0.6, overload_threshold=0.9)
    assert settings.overload_threshold == 0.3
    assert settings.success_threshold == 0.6
    odd = AISettings(sample_rate=0.0, smoothing_tau=-1.0, max_active_citizens=0, instability_fail_threshold=3.0)
    assert odd.sample_rate > 0.0
    assert odd.smoothing_tau > 0.0
    assert odd.max_active_citizens == 1
    assert odd.instability_fail_threshold == 1.0
    defaults = AISettings()
    assert math.isclose(defaults.sample_interval(), 1.0 / 30.0)
    assert 0.0 < defaults.smoothing_alpha() < 1.0
    assert defaults.with_overrides(success_threshold=0.9).success_threshold == 0.9
    print("  ✓ overload corrected to half the success threshold")


def test_settings_from_dict_keeps_extras():
    settings = AISettings.from_dict({"success_threshold": 0.8, "debugOverlay": True})
    assert settings.success_threshold == 0.8
    assert settings.extra == {"debugOverlay": True}
    assert "extra" not in settings.to_dict()
    assert AISettings.from_dict(settings.to_dict()) == settings


def test_loaders_fall_back():
    """Missing or broken files yield empty profiles and default settings."""
    print("Test: loader fallbacks...")
    with tempfile.TemporaryDirectory() as tmp:
        missing = os.path.join(tmp, "missing.json")
        assert load_profiles(missing) == {}
        assert load_settings(missing) == AISettings()

        broken = os.path.join(tmp, "broken.json")
        with open(broken, "w", encoding="utf-8") as f:
            f.write("{ not json")
        assert load_profiles(broken) == {}
        assert load_settings(broken) == AISettings()

        listing = os.path.join(tmp, "list.json")
        with open(listing, "w", encoding="utf-8") as f:
            json.dump([1, 2, 3], f)
        assert load_settings(listing) == AISettings()
        assert load_profiles(listing) == {}
    print("  ✓ fallbacks")


def test_load_profiles_formats():
    print("Test: profile file formats...")
    with tempfile.TemporaryDirectory() as tmp:
        bare = os.path.join(tmp, "bare.json")
        with open(bare, "w", encoding="utf-8") as f:
            json.dump([{"id": "a"}, {"name": "no id"}, {"profileId": "b", "startingObedience": 10}], f)
        profiles = load_profiles(bare)
        assert sorted(profiles) == ["a", "b"]
        assert profiles["b"].starting_obedience == 10.0

        bom = os.path.join(tmp, "bom.json")
        with open(bom, "w", encoding="utf-8-sig") as f:
            json.dump({"profiles": [{"profile_id": "c"}]}, f)
        assert list(load_profiles(bom)) == ["c"]
    print("  ✓ bare list, wrapped and BOM files load")


def test_save_and_load():
    with tempfile.TemporaryDirectory() as tmp:
        profiles_path = os.path.join(tmp, "profiles.json")
        settings_path = os.path.join(tmp, "settings.json")
        cast = sample_cast()[:3]
        save_profiles(cast, profiles_path)
        save_settings(AISettings(max_active_citizens=3), settings_path)
        loaded = load_profiles(profiles_path)
        assert list(loaded.values()) == cast
        assert load_settings(settings_path).max_active_citizens == 3


def test_shipped_profiles_match_cast():
    print("Test: shipped profiles.json...")
    shipped = load_profiles(os.path.join(ROOT, "profiles.json"))
    cast = {p.profile_id: p for p in sample_cast()}
    assert len(shipped) == 19
    assert shipped == cast
    assert load_settings(os.path.join(ROOT, "settings.json")) == AISettings()
    print(f"  ✓ {len(shipped)} profiles")


def test_make_profiles_script():
    with tempfile.TemporaryDirectory() as tmp:
        assert make_profiles_main(["--outdir", tmp]) == 0
        assert make_profiles_main(["--outdir", tmp]) == 1
        assert make_profiles_main(["--outdir", tmp, "--force"]) == 0
        assert len(load_profiles(os.path.join(tmp, "profiles.json"))) == 19


def main():
    """Run all tests."""
    print("="*60)
    print("PROFILES TEST SUITE")
    print("="*60)
    tests = [
        test_profile_defaults,
        test_profile_repair,
        test_profile_from_camel_case,
        test_settings_repair,
        test_settings_from_dict_keeps_extras,
        test_loaders_fall_back,
        test_load_profiles_formats,
        test_save_and_load,
        test_shipped_profiles_match_cast,
        test_make_profiles_script,
    ]
    failed = 0
    for test_func in tests:
        try:
            test_func()
        except Exception as e:
            print(f"  ✗ Failed: {e!r}")
            failed += 1
        print()
    print(f"Passed: {len(tests) - failed}/{len(tests)}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
