"""Data carried between the runner and the report builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from perfbench.config.schema import ExecutionType, TestSpec

from .stats import RunGrid
from .stop_conditions import TestStopConditions


@dataclass
class ResolvedTest:
    """A test descriptor after settings, queries and metrics were resolved."""

    spec: TestSpec
    queries: list[str]
    parameters: list[dict[str, str]]  # substitution values, parallel to ``queries``
    settings: dict[str, str]
    metrics: list[str]
    main_metric: str
    stop_conditions: TestStopConditions
    rows_speed_precision: float
    bytes_speed_precision: float

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def exec_type(self) -> ExecutionType:
        return self.spec.type

    @property
    def times_to_run(self) -> int:
        return self.spec.times_to_run


@dataclass
class EnvironmentInfo:
    """Host and server facts stamped on every verbose report."""

    hostname: str
    num_cores: int
    num_threads: int
    ram: int
    server_version: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "hostname": self.hostname,
            "num_cores": self.num_cores,
            "num_threads": self.num_threads,
            "ram": self.ram,
            "server_version": self.server_version,
        }


@dataclass
class TestReport:
    """Everything needed to render one test's report fragment."""

    __test__ = False  # keep pytest from collecting this class

    test: ResolvedTest
    grid: RunGrid
    started_at: datetime = field(default_factory=datetime.now)
    interrupted: bool = False
