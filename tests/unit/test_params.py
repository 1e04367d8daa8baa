"""Unit tests for step counter parameters."""

import pytest
from pydantic import ValidationError

from step_engine.params import (
    DEFAULT_PARAMS,
    StepCounterParams,
    StepCounterParamsUpdate,
    params_from_record,
)


class TestDefaults:
    """Test the calibrated default values."""

    def test_default_values(self):
        params = StepCounterParams()

        assert params.sample_rate == 32
        assert params.peak_threshold == 12.0
        assert params.peak_window_n == 4
        assert params.valley_window_n == 2
        assert params.filter_window_size == 5
        assert params.process_window_samples == 100
        assert params.run_start_threshold == 30.0
        assert params.run_end_threshold_high == 20.0
        assert params.run_end_threshold_low == 12.0
        assert params.run_peak_valley_diff == 20.0
        assert params.run_scaling_factor == 2.1
        assert params.baseline_step_samples == 29
        assert params.shake_start_threshold == 12.0
        assert params.shake_peak_valley_diff == 12.0
        assert params.shake_regional_peak_max == 39.0
        assert params.shake_variance_threshold == 10.0


class TestValidation:
    """Test parameter validation rules."""

    @pytest.mark.parametrize(
        "field",
        ["peak_window_n", "valley_window_n", "filter_window_size", "baseline_step_samples"],
    )
    def test_window_sizes_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            StepCounterParams(**{field: 0})

    def test_process_window_must_exceed_peak_window(self):
        with pytest.raises(ValidationError, match="process_window_samples"):
            StepCounterParams(process_window_samples=8, peak_window_n=4)

        assert StepCounterParams(process_window_samples=9, peak_window_n=4).process_window_samples == 9

    def test_params_are_immutable(self):
        with pytest.raises(ValidationError):
            DEFAULT_PARAMS.peak_threshold = 1.0


class TestMerge:
    """Test partial updates."""

    def test_only_set_fields_change(self):
        merged = DEFAULT_PARAMS.merged(StepCounterParamsUpdate(peak_threshold=14.0, baseline_step_samples=25))

        assert merged.peak_threshold == 14.0
        assert merged.baseline_step_samples == 25
        assert merged.run_start_threshold == DEFAULT_PARAMS.run_start_threshold
        assert DEFAULT_PARAMS.peak_threshold == 12.0

    def test_merge_is_validated(self):
        with pytest.raises(ValidationError):
            DEFAULT_PARAMS.merged(StepCounterParamsUpdate(peak_window_n=60))

    def test_update_rejects_non_positive_window(self):
        with pytest.raises(ValidationError):
            StepCounterParamsUpdate(filter_window_size=0)


class TestParamsFromRecord:
    """Test building parameters from stored rows."""

    def test_empty_record_gives_defaults(self):
        assert params_from_record(None) is DEFAULT_PARAMS
        assert params_from_record({}) is DEFAULT_PARAMS

    def test_unknown_and_null_fields_are_ignored(self):
        params = params_from_record({"peak_threshold": 15.0, "run_scaling_factor": None, "legacy": 1})

        assert params.peak_threshold == 15.0
        assert params.run_scaling_factor == 2.1
