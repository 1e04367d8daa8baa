"""Tunable parameters of the collar step-counting algorithm.

Defaults follow the sheep gait study the collar firmware was calibrated
against (Jiang et al. 2023). Thresholds are in m/s² of filtered acceleration
magnitude; window sizes are in samples.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StepCounterParams(BaseModel):
    """The full parameter record used to build a session's step counter."""

    model_config = ConfigDict(frozen=True)

    sample_rate: int = Field(default=32, gt=0, description="Algorithm sample rate in Hz")
    peak_threshold: float = Field(default=12.0, description="Minimum filtered value of a peak")
    peak_window_n: int = Field(default=4, gt=0, description="Half-width of the peak window")
    valley_window_n: int = Field(default=2, gt=0, description="Half-width of the valley window")
    filter_window_size: int = Field(default=5, gt=0, description="Moving-average length")
    process_window_samples: int = Field(
        default=100,
        gt=0,
        description="History length that triggers classification",
    )

    # Running behavior
    run_start_threshold: float = 30.0
    run_end_threshold_high: float = 20.0
    run_end_threshold_low: float = 12.0
    run_peak_valley_diff: float = 20.0
    run_scaling_factor: float = 2.1
    baseline_step_samples: int = Field(
        default=29,
        gt=0,
        description="Samples per step at baseline walking cadence",
    )

    # Leg shaking
    shake_start_threshold: float = 12.0
    shake_peak_valley_diff: float = 12.0
    shake_regional_peak_max: float = 39.0
    shake_variance_threshold: float = 10.0

    @model_validator(mode="after")
    def _check_process_window(self) -> "StepCounterParams":
        if self.process_window_samples <= 2 * self.peak_window_n:
            raise ValueError(
                "process_window_samples must be greater than 2 * peak_window_n"
            )
        return self

    def merged(self, update: "StepCounterParamsUpdate") -> "StepCounterParams":
        """Return a new record with the update's set fields applied."""
        changes = update.model_dump(exclude_none=True)
        return StepCounterParams.model_validate({**self.model_dump(), **changes})


class StepCounterParamsUpdate(BaseModel):
    """Partial parameter update; unset fields keep their stored value."""

    sample_rate: int | None = Field(default=None, gt=0)
    peak_threshold: float | None = None
    peak_window_n: int | None = Field(default=None, gt=0)
    valley_window_n: int | None = Field(default=None, gt=0)
    filter_window_size: int | None = Field(default=None, gt=0)
    process_window_samples: int | None = Field(default=None, gt=0)
    run_start_threshold: float | None = None
    run_end_threshold_high: float | None = None
    run_end_threshold_low: float | None = None
    run_peak_valley_diff: float | None = None
    run_scaling_factor: float | None = None
    baseline_step_samples: int | None = Field(default=None, gt=0)
    shake_start_threshold: float | None = None
    shake_peak_valley_diff: float | None = None
    shake_regional_peak_max: float | None = None
    shake_variance_threshold: float | None = None


DEFAULT_PARAMS = StepCounterParams()


def params_from_record(record: dict[str, Any] | None) -> StepCounterParams:
    """Build parameters from a stored row, falling back to defaults per field."""
    if not record:
        return DEFAULT_PARAMS
    known = {k: v for k, v in record.items() if k in StepCounterParams.model_fields and v is not None}
    return StepCounterParams.model_validate(known)
