# estimators/pll/controller.py
# ---------------------------------------------------------------------
# Loop filters for the SOGI-PLL. The estimator only needs
# `step(error) -> correction` and `reset()`, so any object honouring
# FrequencyController can be plugged in.
#
# Sign convention: the phase error q is fed in as-is (no setpoint
# subtraction), the output is added to the nominal angular frequency.
# ---------------------------------------------------------------------
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from estimators.pll.core import PllConfig

logger = logging.getLogger(__name__)


class FrequencyController(Protocol):
    """Loop filter interface the estimator relies on."""

    def step(self, error: float) -> float:
        ...

    def reset(self) -> None:
        ...


def _clamp(value: float, limit: float | None) -> tuple[float, bool]:
    """Symmetric saturation; returns (clamped, saturated)."""
    if limit is None:
        return value, False
    if value > limit:
        return limit, True
    if value < -limit:
        return -limit, True
    return value, False


def _integrate(
    integral: float,
    increment: float,
    output: float,
    saturated: bool,
    ki: float,
    limit: float | None,
) -> float:
    """
    Conditional integration: an increment that would push a saturated
    output further out is dropped. The integral is also bounded so that
    |ki * integral| <= limit, so an opposite-sign error always pulls the
    output back inside.
    """
    if saturated and increment * output > 0.0:
        return integral
    integral += increment
    if limit is not None and ki != 0.0:
        bound = limit / abs(ki)
        integral = min(max(integral, -bound), bound)
    return integral


class PIController:
    """
    PI loop filter in the accumulate-the-output form:

        integral += previous_output * sample_time
        output    = kp * error + ki * integral

    The integral advances at most once per call. Anti-windup: see _integrate.
    """

    def __init__(
        self,
        kp: float,
        ki: float,
        sample_time: float,
        limit: float | None = None,
    ) -> None:
        self.kp = float(kp)
        self.ki = float(ki)
        self.sample_time = float(sample_time)
        self.limit = None if limit is None else float(limit)

        self.integral = 0.0
        self.output = 0.0
        self.saturated = False

    def reset(self) -> None:
        self.integral = 0.0
        self.output = 0.0
        self.saturated = False

    def step(self, error: float) -> float:
        self.integral = _integrate(
            self.integral, self.output * self.sample_time, self.output,
            self.saturated, self.ki, self.limit,
        )

        raw = error * self.kp + self.integral * self.ki
        output, saturated = _clamp(raw, self.limit)
        if saturated != self.saturated:
            logger.debug("PI output %s saturation (raw=%.4g, limit=%s)",
                         "entered" if saturated else "left", raw, self.limit)

        self.output = output
        self.saturated = saturated
        return output


class PIDController:
    """
    Textbook PID on the error signal: the integral accumulates
    error * sample_time, the derivative is the backward difference of the
    error (zero on the first call). Same saturation/anti-windup policy as
    PIController.
    """

    def __init__(
        self,
        kp: float,
        ki: float,
        kd: float,
        sample_time: float,
        limit: float | None = None,
    ) -> None:
        self.kp = float(kp)
        self.ki = float(ki)
        self.kd = float(kd)
        self.sample_time = float(sample_time)
        self.limit = None if limit is None else float(limit)

        self.integral = 0.0
        self.prev_error: float | None = None
        self.output = 0.0
        self.saturated = False

    def reset(self) -> None:
        self.integral = 0.0
        self.prev_error = None
        self.output = 0.0
        self.saturated = False

    def step(self, error: float) -> float:
        self.integral = _integrate(
            self.integral, error * self.sample_time, self.output,
            self.saturated, self.ki, self.limit,
        )

        if self.prev_error is None:
            derivative = 0.0
        else:
            derivative = (error - self.prev_error) / self.sample_time
        self.prev_error = error

        raw = error * self.kp + self.integral * self.ki + derivative * self.kd
        output, saturated = _clamp(raw, self.limit)
        if saturated != self.saturated:
            logger.debug("PID output %s saturation (raw=%.4g, limit=%s)",
                         "entered" if saturated else "left", raw, self.limit)

        self.output = output
        self.saturated = saturated
        return output


def make_controller(config: PllConfig) -> FrequencyController:
    """PI when derivative_gain is zero, PID otherwise."""
    if config.derivative_gain == 0.0:
        return PIController(
            kp=config.proportional_gain,
            ki=config.integral_gain,
            sample_time=config.sample_time,
            limit=config.frequency_correction_limit,
        )
    return PIDController(
        kp=config.proportional_gain,
        ki=config.integral_gain,
        kd=config.derivative_gain,
        sample_time=config.sample_time,
        limit=config.frequency_correction_limit,
    )
