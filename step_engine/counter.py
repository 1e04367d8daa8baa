"""Per-session step counter state."""

import copy
from collections.abc import Iterable, Sequence

from .classifier import classify_window
from .decoder import MotionSample
from .params import DEFAULT_PARAMS, StepCounterParams
from .signal_filter import FeatureExtractor
from .timestamps import MappedSample


class StepCounter:
    """Step counting state for one (device, session) pair.

    ``step_count`` is seeded from persisted totals when a session is rebuilt;
    filter and peak state always start empty. ``previous_samples`` holds the
    last successfully processed chunk and is replaced, never extended.
    """

    def __init__(
        self,
        params: StepCounterParams = DEFAULT_PARAMS,
        step_count: int = 0,
        last_sample_number: int = -1,
    ):
        self.params = params
        self.extractor = FeatureExtractor(params)

        self.step_count = step_count
        self.running_steps = 0
        self.leg_shake_removed = 0

        self.last_sample_number = last_sample_number
        self.previous_samples: list[MappedSample] = []

    def process_samples(self, samples: Iterable[MotionSample]) -> int:
        """Feed samples through the pipeline and return the cumulative count."""
        for sample in samples:
            if self.extractor.add_sample(sample):
                self._process_window()
        return self.step_count

    def _process_window(self) -> None:
        peaks, valleys, gyro = self.extractor.drain()
        result = classify_window(peaks, valleys, gyro, self.params)

        self.step_count += result.normal_steps
        self.running_steps += result.running_steps
        self.leg_shake_removed += result.shake_removed

    def ingest(self, samples: Sequence[MappedSample]) -> int:
        """Process samples above the high-water mark; return how many were new."""
        mark = self.last_sample_number
        accepted: list[MotionSample] = []
        for mapped in samples:
            if mapped.sample_number > mark:
                accepted.append(mapped.sample)
                mark = mapped.sample_number

        self.process_samples(accepted)
        self.last_sample_number = mark
        return len(accepted)

    def snapshot(self) -> "StepCounter":
        """Independent working copy; the buffered chunk is shared since it is never mutated."""
        memo = {id(self.previous_samples): self.previous_samples, id(self.params): self.params}
        return copy.deepcopy(self, memo)
