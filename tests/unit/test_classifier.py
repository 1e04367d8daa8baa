"""Unit tests for running, leg-shake and normal step classification."""

import pytest

from step_engine.classifier import (
    classify_window,
    count_normal_steps,
    detect_running,
    population_variance,
    remove_leg_shaking,
    round_half_up,
)
from step_engine.params import DEFAULT_PARAMS, StepCounterParams
from step_engine.signal_filter import Peak, PeakStatus, Valley


def make_peaks(values, indices=None):
    indices = indices or [10 + 29 * i for i in range(len(values))]
    return [Peak(value=v, sample_index=i) for v, i in zip(values, indices)]


def make_valleys(values):
    return [Valley(value=v, sample_index=20 + 29 * i) for i, v in enumerate(values)]


@pytest.mark.parametrize(
    ("value", "expected"),
    [(0.5, 1), (1.5, 2), (2.4, 2), (8.4, 8), (0.0, 0)],
)
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_population_variance():
    assert population_variance([0.0, 10.0] * 5) == pytest.approx(25.0)
    assert population_variance([3.0]) == 0.0


class TestRunning:
    """Test running bout detection."""

    def test_confirmed_bout(self):
        peaks = make_peaks([35.0, 36.0, 34.0, 35.0, 15.0], indices=[10, 39, 68, 97, 126])
        valleys = make_valleys([25.0, 24.0, 26.0, 25.0])

        run_steps = detect_running(peaks, valleys, DEFAULT_PARAMS)

        # round(116 * 2.1 / 29) = round(8.4)
        assert run_steps == 8
        assert all(p.status is PeakStatus.RUN for p in peaks)

    def test_wide_swing_rejects_bout(self):
        peaks = make_peaks([35.0, 36.0, 15.0])
        valleys = make_valleys([25.0, 10.0])

        assert detect_running(peaks, valleys, DEFAULT_PARAMS) == 0
        assert all(p.status is PeakStatus.PENDING for p in peaks)

    def test_bout_without_end_is_ignored(self):
        peaks = make_peaks([35.0, 36.0, 34.0])

        assert detect_running(peaks, make_valleys([25.0, 25.0]), DEFAULT_PARAMS) == 0

    def test_running_window_has_no_normal_steps(self):
        peaks = make_peaks([35.0, 36.0, 34.0, 35.0, 15.0], indices=[10, 39, 68, 97, 126])
        valleys = make_valleys([25.0, 24.0, 26.0, 25.0])

        result = classify_window(peaks, valleys, [0.0] * 50, DEFAULT_PARAMS)

        assert result.running_steps == 8
        assert result.normal_steps == 0
        assert result.shake_removed == 0


class TestLegShake:
    """Test leg-shake removal."""

    params = StepCounterParams(shake_start_threshold=20.0)

    def test_low_rotation_span_is_removed(self):
        peaks = make_peaks([25.0, 26.0, 24.0, 15.0])
        valleys = make_valleys([18.0, 17.0, 19.0])

        result = classify_window(peaks, valleys, [0.1] * 50, self.params)

        assert result.shake_removed == 3
        assert result.normal_steps == 1
        assert [p.status for p in peaks] == [
            PeakStatus.SHAKE,
            PeakStatus.SHAKE,
            PeakStatus.SHAKE,
            PeakStatus.STEP,
        ]

    def test_high_gyro_variance_keeps_steps(self):
        peaks = make_peaks([25.0, 26.0, 24.0, 15.0])
        valleys = make_valleys([18.0, 17.0, 19.0])

        result = classify_window(peaks, valleys, [0.0, 10.0] * 25, self.params)

        assert result.shake_removed == 0
        assert result.normal_steps == 4

    def test_short_gyro_history_skips_variance_check(self):
        peaks = make_peaks([25.0, 15.0])
        valleys = make_valleys([18.0])

        assert remove_leg_shaking(peaks, valleys, [0.0, 100.0], self.params) == 1

    def test_regional_peak_above_max_is_not_shake(self):
        peaks = make_peaks([25.0, 40.0, 15.0])
        valleys = make_valleys([30.0, 30.0])

        assert remove_leg_shaking(peaks, valleys, [0.1] * 50, self.params) == 0

    def test_running_peaks_are_not_rescanned(self):
        peaks = make_peaks([25.0, 15.0])
        peaks[0].status = PeakStatus.RUN

        assert remove_leg_shaking(peaks, make_valleys([18.0]), [0.1] * 50, self.params) == 0


class TestNormalSteps:
    """Test the normal step tally."""

    def test_pending_peaks_above_threshold(self):
        peaks = make_peaks([13.0, 12.0, 20.0])
        peaks[2].status = PeakStatus.SHAKE

        assert count_normal_steps(peaks, DEFAULT_PARAMS) == 1
        assert peaks[0].status is PeakStatus.STEP
        assert peaks[1].status is PeakStatus.PENDING

    def test_empty_window(self):
        result = classify_window([], [], [], DEFAULT_PARAMS)

        assert result.normal_steps == 0
        assert result.running_steps == 0
        assert result.shake_removed == 0
