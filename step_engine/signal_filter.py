"""Moving-average smoothing and sliding-window peak/valley detection."""

import math
from collections import deque
from dataclasses import dataclass
from enum import Enum

from .decoder import MotionSample
from .params import StepCounterParams


class PeakStatus(str, Enum):
    """How a detected peak has been accounted for."""

    PENDING = "pending"
    RUN = "counted_as_run"
    SHAKE = "counted_as_shake"
    STEP = "counted_as_step"


@dataclass(slots=True)
class Peak:
    value: float
    sample_index: int
    status: PeakStatus = PeakStatus.PENDING


@dataclass(frozen=True, slots=True)
class Valley:
    value: float
    sample_index: int


def combined_acceleration(ax: float, ay: float, az: float) -> float:
    """Magnitude of the acceleration vector."""
    return math.sqrt(ax * ax + ay * ay + az * az)


class MovingAverageFilter:
    """Mean of the last ``window_size`` inputs (fewer until the window fills).

    The mean is summed from the buffer on every sample rather than kept as a
    running total, so a run of identical inputs yields exactly that value and
    threshold comparisons do not drift over long sessions.
    """

    def __init__(self, window_size: int):
        self.window_size = window_size
        self._buffer: deque[float] = deque(maxlen=window_size)

    def process(self, value: float) -> float:
        self._buffer.append(value)
        return sum(self._buffer) / len(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)


def _is_strict_extreme(history: list[float], center: int, half_width: int, maximum: bool) -> bool:
    value = history[center]
    lo = max(0, center - half_width)
    hi = min(len(history), center + half_width + 1)
    for j in range(lo, hi):
        if j == center:
            continue
        if maximum and history[j] >= value:
            return False
        if not maximum and history[j] <= value:
            return False
    return True


class FeatureExtractor:
    """Turns IMU samples into filtered acceleration and peak/valley candidates.

    A candidate is evaluated once ``peak_window_n`` newer samples exist, so
    the window around it is complete on both sides. When the history reaches
    ``process_window_samples`` the caller drains the open peaks and valleys.
    Draining keeps the trailing ``2 * peak_window_n`` history entries: the
    candidates not yet evaluated plus the left half of their window.
    """

    def __init__(self, params: StepCounterParams):
        self.params = params
        self.filter = MovingAverageFilter(params.filter_window_size)
        self.acc_history: list[float] = []
        self.gyro_history: list[float] = []
        self.peaks: list[Peak] = []
        self.valleys: list[Valley] = []
        self.sample_index = 0

    def add_sample(self, sample: MotionSample) -> bool:
        """Consume one sample; True when a processing window is ready."""
        magnitude = combined_acceleration(sample.ax, sample.ay, sample.az)
        filtered = self.filter.process(magnitude)

        self.acc_history.append(filtered)
        self.gyro_history.append(sample.gx or 0.0)

        self._detect_peaks_and_valleys()
        self.sample_index += 1

        return len(self.acc_history) >= self.params.process_window_samples

    def _detect_peaks_and_valleys(self) -> None:
        half = self.params.peak_window_n
        if len(self.acc_history) < 2 * half + 1:
            return

        center = len(self.acc_history) - 1 - half
        value = self.acc_history[center]
        index = self.sample_index - half

        if value > self.params.peak_threshold and _is_strict_extreme(
            self.acc_history, center, half, maximum=True
        ):
            self.peaks.append(Peak(value=value, sample_index=index))

        if _is_strict_extreme(self.acc_history, center, self.params.valley_window_n, maximum=False):
            self.valleys.append(Valley(value=value, sample_index=index))

    def drain(self) -> tuple[list[Peak], list[Valley], list[float]]:
        """Hand over the open window and trim the histories."""
        peaks, valleys = self.peaks, self.valleys
        gyro = list(self.gyro_history)

        self.peaks = []
        self.valleys = []
        keep = 2 * self.params.peak_window_n
        self.acc_history = self.acc_history[-keep:]
        self.gyro_history = self.gyro_history[-keep:]

        return peaks, valleys, gyro
