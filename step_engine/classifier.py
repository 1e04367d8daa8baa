"""Running and leg-shake classification over one processing window.

Peaks are matched with valleys by ordinal position within the window, the way
the collar firmware's reference algorithm pairs them.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import structlog

from .params import StepCounterParams
from .signal_filter import Peak, PeakStatus, Valley

logger = structlog.get_logger(__name__)

MIN_GYRO_SAMPLES_FOR_VARIANCE = 10


@dataclass(frozen=True, slots=True)
class WindowClassification:
    """Counts produced by classifying one window of peaks."""

    normal_steps: int = 0
    running_steps: int = 0
    shake_removed: int = 0


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def population_variance(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    return float(np.var(np.asarray(values, dtype=float)))


def _swing_within(peak: Peak, valley: Valley, peak_valley_diff: float) -> bool:
    return (peak.value - valley.value) < (peak.value - peak_valley_diff)


def detect_running(
    peaks: list[Peak],
    valleys: Sequence[Valley],
    params: StepCounterParams,
) -> int:
    """Find one running bout, mark its peaks and return its step estimate."""
    run_start = None
    run_end = None

    for i, peak in enumerate(peaks):
        if run_start is None:
            if peak.value > params.run_start_threshold:
                run_start = i
            continue
        if peak.value < params.run_end_threshold_high or peak.value < params.run_end_threshold_low:
            run_end = i
            break

    if run_start is None or run_end is None:
        return 0

    for i in range(run_start, min(run_end, len(valleys))):
        if not _swing_within(peaks[i], valleys[i], params.run_peak_valley_diff):
            return 0

    span = peaks[run_end].sample_index - peaks[run_start].sample_index
    run_steps = round_half_up(span * params.run_scaling_factor / params.baseline_step_samples)

    for peak in peaks[run_start : run_end + 1]:
        peak.status = PeakStatus.RUN

    logger.debug(
        "Running bout detected",
        start_index=peaks[run_start].sample_index,
        end_index=peaks[run_end].sample_index,
        run_steps=run_steps,
    )
    return run_steps


def _is_shaking(
    peaks: list[Peak],
    valleys: Sequence[Valley],
    gyro: Sequence[float],
    start: int,
    end: int,
    params: StepCounterParams,
) -> bool:
    span = [i for i in range(start, end) if peaks[i].status is PeakStatus.PENDING]

    if any(peaks[i].value > params.shake_regional_peak_max for i in span):
        return False

    for i in span:
        if i < len(valleys) and not _swing_within(peaks[i], valleys[i], params.shake_peak_valley_diff):
            return False

    if len(gyro) >= MIN_GYRO_SAMPLES_FOR_VARIANCE:
        if population_variance(gyro) > params.shake_variance_threshold:
            return False

    return True


def remove_leg_shaking(
    peaks: list[Peak],
    valleys: Sequence[Valley],
    gyro: Sequence[float],
    params: StepCounterParams,
) -> int:
    """Mark leg-shake spans and return how many peaks they removed."""
    removed = 0
    shake_start = None

    for i, peak in enumerate(peaks):
        if peak.status is not PeakStatus.PENDING:
            continue

        if shake_start is None:
            if peak.value > params.shake_start_threshold:
                shake_start = i
            continue

        if peak.value < params.shake_start_threshold:
            if _is_shaking(peaks, valleys, gyro, shake_start, i, params):
                for candidate in peaks[shake_start:i]:
                    if candidate.status is PeakStatus.PENDING:
                        candidate.status = PeakStatus.SHAKE
                        removed += 1
            shake_start = None

    return removed


def count_normal_steps(peaks: list[Peak], params: StepCounterParams) -> int:
    steps = 0
    for peak in peaks:
        if peak.status is PeakStatus.PENDING and peak.value > params.peak_threshold:
            peak.status = PeakStatus.STEP
            steps += 1
    return steps


def classify_window(
    peaks: list[Peak],
    valleys: Sequence[Valley],
    gyro: Sequence[float],
    params: StepCounterParams,
) -> WindowClassification:
    """Run the running, leg-shake and normal-step passes in order."""
    if not peaks:
        return WindowClassification()

    running_steps = detect_running(peaks, valleys, params)
    shake_removed = remove_leg_shaking(peaks, valleys, gyro, params)
    normal_steps = count_normal_steps(peaks, params)

    return WindowClassification(
        normal_steps=normal_steps,
        running_steps=running_steps,
        shake_removed=shake_removed,
    )
