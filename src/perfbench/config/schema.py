"""Pydantic models for perfbench test descriptors.

A descriptor is a YAML document describing one performance test: which
queries to run, how often, under which server settings, when to stop and
which metrics to report.  Only the document *shape* is validated here;
checks that need the whole descriptor (query source exclusivity, metric
and execution type compatibility) happen when the runner resolves a test.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

# =============================================================================
# Enums
# =============================================================================


class ExecutionType(str, Enum):
    """How each query of a test is executed.

    - loop: repeat the query until the stop conditions are fulfilled
    - once: execute the query a single time per run
    """

    LOOP = "loop"
    ONCE = "once"


# Metrics that only make sense for one execution type
LOOP_METRICS = (
    "min_time",
    "quantiles",
    "total_time",
    "queries_per_second",
    "rows_per_second",
    "bytes_per_second",
)

ONCE_METRICS = (
    "max_rows_per_second",
    "max_bytes_per_second",
    "avg_rows_per_second",
    "avg_bytes_per_second",
)

# Settings consumed by the statistics collector, never sent to the server
SPEED_PRECISION_SETTINGS = ("average_rows_speed_precision", "average_bytes_speed_precision")


def _stringify(value: Any) -> str:
    """Render a YAML scalar the way the server expects setting values."""
    if value is None:
        return "true"
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


# =============================================================================
# Stop Conditions
# =============================================================================


class StopConditionsSetConfig(BaseModel):
    """Thresholds of one stop-condition group.

    Unset (``None``) thresholds are ignored.  Names from older descriptors
    (``rows_read``, ``bytes_read_uncompressed``, ``iterations``) are
    accepted as aliases.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    min_time_ms: int | None = Field(default=None, ge=0)
    max_rows_to_read: int | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("max_rows_to_read", "rows_read")
    )
    max_bytes_to_read: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("max_bytes_to_read", "bytes_read_uncompressed"),
    )
    total_time_ms: int | None = Field(default=None, ge=0)
    iteration_count: int | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("iteration_count", "iterations")
    )
    min_time_not_changing_for_ms: int | None = Field(default=None, ge=0)
    max_speed_not_changing_for_ms: int | None = Field(default=None, ge=0)
    average_speed_not_changing_for_ms: int | None = Field(default=None, ge=0)

    def configured(self) -> dict[str, int]:
        """Return the thresholds that are actually set."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


class StopConditionsConfig(BaseModel):
    """Stop conditions of a test.

    ``all_of`` is fulfilled once every threshold in it was crossed,
    ``any_of`` once a single one was.  A flat mapping without either key
    is shorthand for ``any_of``.
    """

    model_config = ConfigDict(extra="forbid")

    all_of: StopConditionsSetConfig = Field(default_factory=StopConditionsSetConfig)
    any_of: StopConditionsSetConfig = Field(default_factory=StopConditionsSetConfig)

    @model_validator(mode="before")
    @classmethod
    def flat_mapping_means_any_of(cls, data: object) -> object:
        if isinstance(data, dict) and data and "all_of" not in data and "any_of" not in data:
            return {"any_of": data}
        return data

    def is_empty(self) -> bool:
        return not self.all_of.configured() and not self.any_of.configured()


# =============================================================================
# Substitutions
# =============================================================================


class SubstitutionConfig(BaseModel):
    """One substitution dimension: a ``{name}`` placeholder and its values."""

    name: str = Field(min_length=1)
    values: list[str] = Field(default_factory=list)

    @field_validator("values", mode="before")
    @classmethod
    def stringify_values(cls, v: object) -> object:
        if isinstance(v, list):
            return [_stringify(x) if not isinstance(x, str) else x for x in v]
        return v


# =============================================================================
# Preconditions
# =============================================================================


class FlushDiskCache(BaseModel):
    """Drop the OS page cache before the test runs."""

    model_config = ConfigDict(frozen=True)


class RamSize(BaseModel):
    """Require at least ``bytes`` of physical memory."""

    model_config = ConfigDict(frozen=True)

    bytes: int = Field(ge=0)


class TableExists(BaseModel):
    """Require a table to exist on the server."""

    model_config = ConfigDict(frozen=True)

    table: str = Field(min_length=1)


Precondition = Union[FlushDiskCache, RamSize, TableExists]


def _parse_precondition(item: object) -> Precondition:
    """Turn one descriptor list item into a precondition variant."""
    if item == "flush_disk_cache":
        return FlushDiskCache()
    if isinstance(item, dict) and len(item) == 1:
        ((kind, value),) = item.items()
        if kind == "flush_disk_cache":
            return FlushDiskCache()
        if kind == "ram_size":
            return RamSize(bytes=value)
        if kind == "table_exists":
            return TableExists(table=value)
    raise ValueError(
        f"Unknown precondition {item!r}; expected flush_disk_cache, "
        "ram_size: <bytes> or table_exists: <table>"
    )


# =============================================================================
# Test Descriptor
# =============================================================================


class TestSpec(BaseModel):
    """One parsed test descriptor."""

    __test__ = False  # keep pytest from collecting this class

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    tags: list[str] = Field(default_factory=list)
    type: ExecutionType
    times_to_run: int = Field(default=1, ge=1)
    query: list[str] | None = None
    query_file: str | None = None
    settings: dict[str, str] = Field(default_factory=dict)
    substitutions: list[SubstitutionConfig] = Field(default_factory=list)
    preconditions: list[Precondition] = Field(default_factory=list)
    stop_conditions: StopConditionsConfig = Field(default_factory=StopConditionsConfig)
    metrics: list[str] = Field(default_factory=list)
    main_metric: str | None = None

    # Where the descriptor was loaded from; relative query files resolve against it
    source_path: Path | None = Field(default=None, exclude=True)

    @field_validator("query", mode="before")
    @classmethod
    def single_query_as_list(cls, v: object) -> object:
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("tags", "metrics", mode="before")
    @classmethod
    def none_as_empty_list(cls, v: object) -> object:
        return [] if v is None else v

    @field_validator("settings", mode="before")
    @classmethod
    def stringify_settings(cls, v: object) -> object:
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(k): _stringify(val) for k, val in v.items()}
        return v

    @field_validator("substitutions", mode="before")
    @classmethod
    def mapping_as_substitution_list(cls, v: object) -> object:
        """Accept ``{name: [values]}`` as well as ``[{name:, values:}]``."""
        if v is None:
            return []
        if isinstance(v, dict):
            return [{"name": k, "values": vals} for k, vals in v.items()]
        return v

    @field_validator("preconditions", mode="before")
    @classmethod
    def parse_preconditions(cls, v: object) -> object:
        if v is None:
            return []
        if isinstance(v, dict):
            v = [{k: val} for k, val in v.items()]
        if not isinstance(v, list):
            raise ValueError("preconditions must be a list")
        return [
            item if isinstance(item, (FlushDiskCache, RamSize, TableExists)) else _parse_precondition(item)
            for item in v
        ]

    @field_validator("stop_conditions", mode="before")
    @classmethod
    def none_as_empty_conditions(cls, v: object) -> object:
        return {} if v is None else v

    @property
    def profile(self) -> str | None:
        """Settings profile this test inherits from, if any."""
        return self.settings.get("profile")

    @property
    def substitution_table(self) -> list[tuple[str, list[str]]]:
        """Substitution dimensions in declaration order."""
        return [(s.name, list(s.values)) for s in self.substitutions]
