from __future__ import annotations

import cmath
import logging
from typing import Any, Literal, cast

from estimators.base import EstimatorBase
from utils.pmu.pmu_input import PMU_Input
from utils.pmu.pmu_output import PMU_Output, PMUStatus, PhasorName

from .core import PllConfig, PllEstimator, _cfg_get

logger = logging.getLogger(__name__)

_CHANNELS: tuple[PhasorName, ...] = ("V1", "V2", "V3", "I1", "I2", "I3")


def _normalize_channel(value: Any, default: PhasorName = "V1") -> PhasorName:
    """Coerce arbitrary config value to a valid channel literal."""
    s = str(value) if value is not None else ""
    if s not in _CHANNELS:
        logger.warning("Unknown channel %r, falling back to %s", value, default)
        return default
    return cast(PhasorName, s)


class SogiPllSingle(EstimatorBase):
    """
    SOGI-PLL on one channel of the PMU stream.

    Config keys (dict or attributes), all optional except the sample rate:
      - sample_time: float [s]  or  fs: float [Hz]
      - nominal_angular_frequency: float [rad/s]  or  nominal_hz: float (default 50.0)
      - sogi_k, proportional_gain, integral_gain, derivative_gain
      - frequency_correction_limit: float [rad/s] | None
      - lock_threshold, lock_smoothing, check_finite
      - channel: str (default "V1")

    Phasor magnitude is the RMS estimate, its angle the tracked phase.
    """

    def __init__(
        self, config: Any, name: str = "sogi_pll", profile: Literal["P", "M"] = "M"
    ) -> None:
        super().__init__(config=config, name=name, profile=profile)

        self.pll = PllEstimator(PllConfig.from_mapping(config))
        self.channel: PhasorName = _normalize_channel(_cfg_get(config, "channel", "V1"))

    def reset(self) -> None:
        self.pll.reset()
        super().reset()  # drops the rocof history kept in self.memory

    def update(self, measures: PMU_Input) -> PMU_Output:
        if not isinstance(measures, PMU_Input):
            raise TypeError("update() requires a PMU_Input, a single snapshot.")

        status = PMUStatus.OK
        try:
            measures.validate()
        except ValueError as exc:
            logger.debug("%s: %s (t=%r)", self.name, exc, measures.timestamp)
            status |= PMUStatus.DATA_ERROR

        ts: float = float(measures.timestamp)
        x: float = measures.channel(self.channel)

        r = self.pll.update(x)
        f_hat = r.frequency_hz

        # rocof (finite difference when we have a previous estimate with dt > 0)
        last_freq: float | None = self.memory.get("last_freq")
        last_ts: float | None = self.memory.get("last_ts")
        if last_freq is not None and last_ts is not None:
            dt = ts - last_ts
            r_hat = float((f_hat - last_freq) / dt) if dt > 0.0 else 0.0
        else:
            r_hat = 0.0

        self.memory["last_freq"] = f_hat
        self.memory["last_ts"] = ts

        if not r.locked:
            status |= PMUStatus.PLL_UNLOCKED

        return PMU_Output(
            phasors={self.channel: cmath.rect(r.v_rms, r.theta)},
            frequency_hz=f_hat,
            rocof_hz_s=r_hat,
            timestamp_utc=ts,
            status_word=status,
        )
