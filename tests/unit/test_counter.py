"""Unit tests for the per-session step counter."""

import math

from step_engine.counter import StepCounter
from step_engine.params import StepCounterParams
from step_engine.timestamps import map_samples
from tests.test_helpers import bump_signal, four_step_chunk, make_samples


class TestProcessSamples:
    """Test the streaming pipeline."""

    def test_four_bumps_count_four_steps(self):
        counter = StepCounter()

        assert counter.process_samples(four_step_chunk()) == 4

    def test_nothing_counted_before_window_fills(self):
        counter = StepCounter()

        assert counter.process_samples(four_step_chunk()[:99]) == 0
        assert len(counter.extractor.peaks) == 4

    def test_sinusoid_counts_one_step_per_cycle(self):
        params = StepCounterParams()
        period = params.baseline_step_samples
        cycles = params.process_window_samples
        values = [
            params.peak_threshold + 5.0 * math.sin(2 * math.pi * i / period)
            for i in range(cycles * period)
        ]
        # Flat tail pushes the last cycles through a processing window.
        values += [10.0] * 200
        counter = StepCounter(params)

        steps = counter.process_samples(make_samples(values))

        assert abs(steps - cycles) <= 1

    def test_split_stream_matches_whole_stream(self):
        """Test cuts through bumps and through a processing window change nothing."""
        samples = make_samples(bump_signal(length=300, bump_starts=(20, 60, 95, 150, 197, 250)))

        whole = StepCounter()
        whole.process_samples(samples)

        split = StepCounter()
        for start, end in ((0, 97), (97, 99), (99, 199), (199, 300)):
            split.process_samples(samples[start:end])

        assert split.step_count == whole.step_count == 6


class TestIngest:
    """Test de-duplication against the high-water mark."""

    def test_accepts_new_samples_and_advances_mark(self):
        counter = StepCounter()

        accepted = counter.ingest(map_samples(four_step_chunk(), None))

        assert accepted == 100
        assert counter.last_sample_number == 99
        assert counter.step_count == 4

    def test_replayed_samples_are_skipped(self):
        counter = StepCounter()
        mapped = map_samples(four_step_chunk(), None)
        counter.ingest(mapped)

        assert counter.ingest(mapped) == 0
        assert counter.step_count == 4
        assert counter.last_sample_number == 99

    def test_overlap_keeps_only_newer_samples(self):
        counter = StepCounter()
        counter.ingest(map_samples(make_samples([10.0] * 50), None))

        accepted = counter.ingest(map_samples(make_samples([10.0] * 50, start=25), None))

        assert accepted == 25
        assert counter.last_sample_number == 74

    def test_out_of_order_sample_within_chunk_is_skipped(self):
        counter = StepCounter()
        samples = make_samples([10.0] * 3, start=10) + make_samples([10.0], start=5)

        assert counter.ingest(map_samples(samples, None)) == 3
        assert counter.last_sample_number == 12

    def test_seeded_counter_resumes_from_persisted_totals(self):
        counter = StepCounter(step_count=180, last_sample_number=999)

        counter.ingest(map_samples(four_step_chunk(start=1000), None))

        assert counter.step_count == 184
        assert counter.last_sample_number == 1099


class TestSnapshot:
    """Test working copies used for atomic chunk processing."""

    def test_snapshot_is_independent(self):
        counter = StepCounter()
        counter.ingest(map_samples(make_samples(bump_signal(length=60, bump_starts=(10, 30))), None))

        working = counter.snapshot()
        working.ingest(map_samples(make_samples([10.0] * 60, start=60), None))

        assert working.step_count == 2
        assert counter.step_count == 0
        assert counter.last_sample_number == 59
        assert len(counter.extractor.acc_history) == 60
        assert working.params is counter.params
