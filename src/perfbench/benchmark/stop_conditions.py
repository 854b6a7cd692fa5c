"""Run termination conditions.

Each run gets its own :class:`TestStopConditions` copied from the test's
template.  The runner reports observed signals as they change and asks
:meth:`TestStopConditions.fulfilled` whether the run should stop.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from perfbench.config.schema import StopConditionsConfig, StopConditionsSetConfig

# Signals whose threshold is crossed by the observed value going *down*
_DECREASING = frozenset({"min_time_ms"})


@dataclass
class StopCondition:
    threshold: int
    fulfilled: bool = False


@dataclass
class StopConditionsSet:
    """A group of thresholds with a running count of crossed ones."""

    conditions: dict[str, StopCondition] = field(default_factory=dict)
    fulfilled_count: int = 0

    @classmethod
    def from_config(cls, config: StopConditionsSetConfig) -> StopConditionsSet:
        return cls(conditions={k: StopCondition(v) for k, v in config.configured().items()})

    @property
    def initialized_count(self) -> int:
        return len(self.conditions)

    def report(self, signal: str, value: float) -> None:
        condition = self.conditions.get(signal)
        if condition is None or condition.fulfilled:
            return
        if signal in _DECREASING:
            crossed = value <= condition.threshold
        else:
            crossed = value >= condition.threshold
        if crossed:
            condition.fulfilled = True
            self.fulfilled_count += 1

    def reset(self) -> None:
        for condition in self.conditions.values():
            condition.fulfilled = False
        self.fulfilled_count = 0


class TestStopConditions:
    """``all_of`` and ``any_of`` groups evaluated together.

    Fulfilled when every ``all_of`` threshold was crossed, or when any
    ``any_of`` threshold was.  Groups without thresholds never fulfil.
    """

    __test__ = False  # keep pytest from collecting this class

    def __init__(self, all_of: StopConditionsSet | None = None, any_of: StopConditionsSet | None = None):
        self.all_of = all_of or StopConditionsSet()
        self.any_of = any_of or StopConditionsSet()

    @classmethod
    def from_config(cls, config: StopConditionsConfig) -> TestStopConditions:
        return cls(
            all_of=StopConditionsSet.from_config(config.all_of),
            any_of=StopConditionsSet.from_config(config.any_of),
        )

    def copy(self) -> TestStopConditions:
        return copy.deepcopy(self)

    def is_empty(self) -> bool:
        return not self.all_of.initialized_count and not self.any_of.initialized_count

    def fulfilled(self) -> bool:
        return bool(
            (
                self.all_of.initialized_count
                and self.all_of.fulfilled_count >= self.all_of.initialized_count
            )
            or (self.any_of.initialized_count and self.any_of.fulfilled_count)
        )

    def reset(self) -> None:
        self.all_of.reset()
        self.any_of.reset()

    def _report(self, signal: str, value: float) -> None:
        self.all_of.report(signal, value)
        self.any_of.report(signal, value)

    def report_rows_read(self, value: int) -> None:
        self._report("max_rows_to_read", value)

    def report_bytes_read(self, value: int) -> None:
        self._report("max_bytes_to_read", value)

    def report_total_time(self, ms: float) -> None:
        self._report("total_time_ms", ms)

    def report_iterations(self, value: int) -> None:
        self._report("iteration_count", value)

    def report_min_time(self, ms: float) -> None:
        self._report("min_time_ms", ms)

    def report_min_time_not_changing_for(self, ms: float) -> None:
        self._report("min_time_not_changing_for_ms", ms)

    def report_max_speed_not_changing_for(self, ms: float) -> None:
        self._report("max_speed_not_changing_for_ms", ms)

    def report_average_speed_not_changing_for(self, ms: float) -> None:
        self._report("average_speed_not_changing_for_ms", ms)
