#!/usr/bin/env python3
"""Tests for band similarity scoring and EMA smoothing."""
import math
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from evaluation import ScoreSmoother, WaveSample, band_scores, compute_similarity, smoothing_alpha
from profiles import NeuralProfile

ORDINARY = (0.1, 0.2, 0.6, 0.6, 0.2)


def ordinary_profile(**kwargs):
    return NeuralProfile(profile_id="ordinary", band_targets=ORDINARY, band_tolerances=(0.15,) * 5, **kwargs)


def test_score_at_targets():
    """A sample sitting exactly on the targets scores 1.0."""
    print("Test: score at targets...")
    profile = ordinary_profile()
    score = compute_similarity(WaveSample(0.0, ORDINARY), profile)
    assert math.isclose(score, 1.0), score
    print(f"  ✓ score={score:.3f}")


def test_half_tolerance_offset():
    print("Test: half tolerance offset...")
    profile = ordinary_profile()
    shifted = [v + 0.075 for v in ORDINARY]
    score = compute_similarity(shifted, profile)
    assert abs(score - 0.5) < 1e-9, score
    print(f"  ✓ score={score:.3f}")


def test_score_decreases_with_distance():
    """Moving one band away from its target never raises the score."""
    print("Test: monotonic in distance...")
    profile = ordinary_profile()
    previous = 1.0
    for offset in (0.02, 0.05, 0.1, 0.14, 0.2, 0.4):
        bands = list(ORDINARY)
        bands[2] = ORDINARY[2] + offset
        score = compute_similarity(bands, profile)
        assert score <= previous + 1e-12, (offset, score, previous)
        previous = score
    # beyond the tolerance the band contributes nothing: 4 of 5 bands match
    assert math.isclose(previous, 0.8), previous
    print("  ✓ score monotonic")


def test_far_sample_scores_zero():
    print("Test: far sample...")
    profile = ordinary_profile()
    assert compute_similarity([1.0, 1.0, 0.0, 0.0, 1.0], profile) == 0.0
    print("  ✓ score=0")


def test_missing_and_invalid_bands():
    """NaN, missing and None inputs contribute 0 instead of raising."""
    print("Test: invalid input...")
    profile = ordinary_profile()
    assert compute_similarity(None, profile) == 0.0
    nan_first = [float("nan")] + list(ORDINARY[1:])
    assert math.isclose(compute_similarity(nan_first, profile), 0.8)
    inf_band = list(ORDINARY[:4]) + [float("inf")]
    assert math.isclose(compute_similarity(inf_band, profile), 0.8)
    # only three bands given
    assert math.isclose(compute_similarity(ORDINARY[:3], profile), 0.6)
    # out-of-range values are clamped before scoring
    profile_high = NeuralProfile(band_targets=(1.0,) * 5, band_tolerances=(0.15,) * 5)
    assert math.isclose(compute_similarity([3.0] * 5, profile_high), 1.0)
    print("  ✓ invalid bands handled")


def test_weights():
    print("Test: band weights...")
    bands = list(ORDINARY)
    bands[0] = 1.0  # delta completely off
    weighted = ordinary_profile(band_weights=(0.0, 1.0, 1.0, 1.0, 1.0))
    assert math.isclose(compute_similarity(bands, weighted), 1.0)
    heavy = ordinary_profile(band_weights=(4.0, 1.0, 1.0, 1.0, 1.0))
    assert math.isclose(compute_similarity(bands, heavy), 0.5)
    # all-zero weights fall back to the plain mean
    zero = ordinary_profile(band_weights=(0.0,) * 5)
    assert math.isclose(compute_similarity(bands, zero), 0.8)
    print("  ✓ weights applied")


def test_huge_weights_do_not_overflow():
    print("Test: huge band weights...")
    profile = ordinary_profile(band_weights=(1e308,) * 5)
    assert math.isclose(compute_similarity(ORDINARY, profile), 1.0)
    bands = list(ORDINARY)
    bands[0] = 1.0
    capped = ordinary_profile(band_weights=(1e308,) * 5)
    assert math.isclose(compute_similarity(bands, capped), 0.8)
    print("  ✓ score stays finite")


def test_band_scores():
    print("Test: per-band scores...")
    profile = ordinary_profile()
    bands = list(ORDINARY)
    bands[4] = 1.0
    scores = band_scores(bands, profile)
    assert len(scores) == 5
    assert scores[:4] == [1.0, 1.0, 1.0, 1.0]
    assert scores[4] == 0.0
    assert band_scores(None, profile) == [0.0] * 5
    print(f"  ✓ {scores}")


def test_wave_sample_validated():
    print("Test: WaveSample.validated...")
    sample = WaveSample(1.5, (float("nan"), -0.5, 0.3, 2.0))
    clean = sample.validated()
    assert clean.timestamp == 1.5
    assert clean.bands == (0.0, 0.0, 0.3, 1.0, 0.0)
    assert WaveSample.zero().bands == (0.0,) * 5
    print("  ✓ sample repaired")


def test_smoothing_alpha_edges():
    print("Test: smoothing alpha...")
    assert smoothing_alpha(0.0, 0.3) == 0.0
    assert smoothing_alpha(float("nan"), 0.3) == 0.0
    assert smoothing_alpha(-1.0, 0.3) == 0.0
    assert smoothing_alpha(0.1, 0.0) == 1.0
    assert math.isclose(smoothing_alpha(0.3, 0.3), 1.0 - math.exp(-1.0))
    print("  ✓ alpha edges")


def test_smoother_first_sample_and_convergence():
    """First update adopts the raw score; a constant input is reached within 1% after 5 tau."""
    print("Test: EMA convergence...")
    tau = 0.3
    dt = 1.0 / 30.0
    smoother = ScoreSmoother(tau)
    value = smoother.update(0.0, 0.7, dt, first=True)
    assert value == 0.0

    steps = int(round(5 * tau / dt))
    for _ in range(steps):
        value = smoother.update(1.0, value, dt)
        assert 0.0 <= value <= 1.0
    assert abs(1.0 - value) < 0.01, value
    print(f"  ✓ {steps} steps -> {value:.4f}")


def test_smoother_zero_dt_holds():
    print("Test: EMA with dt=0...")
    smoother = ScoreSmoother(0.3)
    assert smoother.update(1.0, 0.4, 0.0) == 0.4
    assert smoother.update(float("nan"), 0.4, 1.0 / 30.0) < 0.4
    print("  ✓ value held")


def main():
    """Run all tests."""
    print("="*60)
    print("EVALUATION TEST SUITE")
    print("="*60)
    tests = [
        test_score_at_targets,
        test_half_tolerance_offset,
        test_score_decreases_with_distance,
        test_far_sample_scores_zero,
        test_missing_and_invalid_bands,
        test_weights,
        test_huge_weights_do_not_overflow,
        test_band_scores,
        test_wave_sample_validated,
        test_smoothing_alpha_edges,
        test_smoother_first_sample_and_convergence,
        test_smoother_zero_dt_holds,
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
