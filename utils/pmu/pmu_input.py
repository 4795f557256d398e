# utils/pmu/pmu_input.py
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

ChannelName = str


# ---- Data carriers ----------------------------------------------------------
@dataclass(slots=True)
class PMU_Input:
    """One time-tagged snapshot. Single-phase estimators read one channel."""

    V1: float
    V2: float
    V3: float
    I1: float
    I2: float
    I3: float
    timestamp: float  # seconds

    @classmethod
    def from_scalar(cls, value: float, timestamp: float, channel: ChannelName = "V1") -> PMU_Input:
        """Build a snapshot with `value` on `channel` and 0.0 everywhere else."""
        kwargs = {"V1": 0.0, "V2": 0.0, "V3": 0.0, "I1": 0.0, "I2": 0.0, "I3": 0.0}
        if channel not in kwargs:
            raise ValueError(f"Unknown channel {channel!r}")
        kwargs[channel] = float(value)
        return cls(timestamp=float(timestamp), **kwargs)

    def channel(self, name: ChannelName) -> float:
        if name not in ("V1", "V2", "V3", "I1", "I2", "I3"):
            raise ValueError(f"Unknown channel {name!r}")
        return float(getattr(self, name))

    def validate(self) -> None:
        if not np.isfinite(
            [self.V1, self.V2, self.V3, self.I1, self.I2, self.I3, self.timestamp]
        ).all():
            raise ValueError("Non-finite value in input sample.")
