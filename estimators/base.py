from typing import Any, Dict, Literal

from utils.pmu.pmu_input import PMU_Input
from utils.pmu.pmu_output import PMU_Output


class EstimatorBase:
    """Base class for streaming phase/frequency estimators, enforcing the PMU data contract."""

    def __init__(self, config: Any, name: str = "", profile: Literal["P", "M"] = "M") -> None:
        """
        Stores the raw configuration; subclasses parse what they need.
        :param config: mapping or attribute object with estimator settings.
        :param name: label used in logs and result tables.
        :param profile: PMU class, "P" (protection) or "M" (measurement).
        """
        self.name: str = name
        self.profile: Literal["P", "M"] = profile
        self.memory: Dict[str, Any] = {}
        self.config: Any = config

    def reset(self) -> None:
        """Drop all internal state, back to cold start."""
        self.memory.clear()

    def update(self, measures: PMU_Input) -> PMU_Output:
        """
        Processes a single, time-tagged sample. Must be called once per
        sample period, in chronological order.
        """
        if not isinstance(measures, PMU_Input):
            raise TypeError("update() requires a PMU_Input, a single snapshot.")

        raise NotImplementedError
