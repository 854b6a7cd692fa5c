"""Per-run statistics and the flat run grid.

A test with ``Q`` resolved queries and ``times_to_run = R`` owns ``R * Q``
run records, stored flat: the record for repetition ``r`` of query ``q``
lives at ``r * Q + q``.  Reports walk the grid query-major so that all
repetitions of one query are listed together.
"""

from __future__ import annotations

import math
import random
import time
from collections.abc import Iterator

from perfbench._constants import DEFAULT_SPEED_PRECISION, SAMPLER_CAPACITY

from .stop_conditions import TestStopConditions

# Quantile levels reported for loop-mode tests
QUANTILE_LEVELS = (0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 0.95, 0.99, 0.999, 0.9999)


def quantile_key(level: float) -> str:
    """Report key for a quantile level: 0.1 -> "0.1", 0.999 -> "0.999"."""
    return f"{level:g}"


class Stopwatch:
    """Monotonic stopwatch started on creation."""

    def __init__(self) -> None:
        self._start = time.monotonic()

    def restart(self) -> None:
        self._start = time.monotonic()

    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._start

    def elapsed_ms(self) -> float:
        return self.elapsed_seconds() * 1000


class ReservoirSampler:
    """Fixed-size uniform sample of an unbounded stream of values."""

    def __init__(self, capacity: int = SAMPLER_CAPACITY, rng: random.Random | None = None):
        self.capacity = capacity
        self._rng = rng or random.Random()
        self._samples: list[float] = []
        self._seen = 0
        self._sorted = True

    def __len__(self) -> int:
        return len(self._samples)

    def insert(self, value: float) -> None:
        self._seen += 1
        if len(self._samples) < self.capacity:
            self._samples.append(value)
        else:
            j = self._rng.randrange(self._seen)
            if j >= self.capacity:
                return
            self._samples[j] = value
        self._sorted = False

    def clear(self) -> None:
        self._samples.clear()
        self._seen = 0
        self._sorted = True

    def quantile(self, level: float) -> float | None:
        """Linearly interpolated quantile, or None when nothing was sampled."""
        if not self._samples:
            return None
        if not self._sorted:
            self._samples.sort()
            self._sorted = True

        position = level * (len(self._samples) - 1)
        lower = math.floor(position)
        upper = min(lower + 1, len(self._samples) - 1)
        fraction = position - lower
        return self._samples[lower] + (self._samples[upper] - self._samples[lower]) * fraction


class RunStats:
    """Bookkeeping for one (query, repetition) run."""

    def __init__(
        self,
        stop_conditions: TestStopConditions | None = None,
        rows_speed_precision: float = DEFAULT_SPEED_PRECISION,
        bytes_speed_precision: float = DEFAULT_SPEED_PRECISION,
    ):
        self.stop_conditions = stop_conditions or TestStopConditions()
        self.rows_speed_precision = rows_speed_precision
        self.bytes_speed_precision = bytes_speed_precision
        self.sampler = ReservoirSampler()
        self.clear()

    def clear(self) -> None:
        """Forget everything observed so far and restart all stopwatches."""
        self.watch = Stopwatch()
        self.watch_per_query = Stopwatch()
        self.min_time_watch = Stopwatch()
        self.max_rows_speed_watch = Stopwatch()
        self.max_bytes_speed_watch = Stopwatch()
        self.avg_rows_speed_watch = Stopwatch()
        self.avg_bytes_speed_watch = Stopwatch()

        self.last_query_was_cancelled = False
        self.last_query_rows_read = 0
        self.last_query_bytes_read = 0

        self.ready = False
        self.exception: str | None = None

        self.queries = 0
        self.total_rows_read = 0
        self.total_bytes_read = 0
        self.total_time = 0.0
        self.min_time: float | None = None  # ms

        self.max_rows_speed = 0.0
        self.max_bytes_speed = 0.0
        self.avg_rows_speed_value = 0.0
        self.avg_rows_speed_first = 0.0
        self.avg_bytes_speed_value = 0.0
        self.avg_bytes_speed_first = 0.0
        self._rows_speed_batches = 0
        self._bytes_speed_batches = 0

        self.sampler.clear()

    # -- per-query lifecycle -------------------------------------------------

    def start_query(self) -> None:
        self.watch_per_query.restart()
        self.last_query_was_cancelled = False
        self.last_query_rows_read = 0
        self.last_query_bytes_read = 0

    def add(self, rows: int, bytes_read: int) -> None:
        """Account for a progress delta of the query in flight."""
        self.total_rows_read += rows
        self.total_bytes_read += bytes_read
        self.last_query_rows_read += rows
        self.last_query_bytes_read += bytes_read

        elapsed = self.watch_per_query.elapsed_seconds()
        if elapsed <= 0:
            return
        rows_speed = self.last_query_rows_read / elapsed
        bytes_speed = self.last_query_bytes_read / elapsed

        if rows_speed > self.max_rows_speed:
            self.max_rows_speed = rows_speed
            self.max_rows_speed_watch.restart()
        if bytes_speed > self.max_bytes_speed:
            self.max_bytes_speed = bytes_speed
            self.max_bytes_speed_watch.restart()

        self.avg_rows_speed_value, self.avg_rows_speed_first, self._rows_speed_batches = (
            self._update_average(
                rows_speed,
                self.avg_rows_speed_value,
                self.avg_rows_speed_first,
                self._rows_speed_batches,
                self.rows_speed_precision,
                self.avg_rows_speed_watch,
            )
        )
        self.avg_bytes_speed_value, self.avg_bytes_speed_first, self._bytes_speed_batches = (
            self._update_average(
                bytes_speed,
                self.avg_bytes_speed_value,
                self.avg_bytes_speed_first,
                self._bytes_speed_batches,
                self.bytes_speed_precision,
                self.avg_bytes_speed_watch,
            )
        )

    @staticmethod
    def _update_average(
        speed: float,
        value: float,
        first: float,
        batches: int,
        precision: float,
        watch: Stopwatch,
    ) -> tuple[float, float, int]:
        value = (value * batches + speed) / (batches + 1)
        batches += 1
        if first == 0:
            first = value
        # The watch measures how long the average has been stable
        if abs(value - first) >= precision:
            first = value
            watch.restart()
        return value, first, batches

    def update_query_info(self) -> None:
        """Record a query that ran to completion."""
        self.queries += 1
        elapsed = self.watch_per_query.elapsed_seconds()
        self.sampler.insert(elapsed)
        elapsed_ms = elapsed * 1000
        if self.min_time is None or elapsed_ms < self.min_time:
            self.min_time = elapsed_ms
            self.min_time_watch.restart()

    def set_total_time(self) -> None:
        self.total_time = self.watch.elapsed_seconds()

    # -- derived metrics -----------------------------------------------------

    def _per_second(self, amount: float) -> float:
        return amount / self.total_time if self.total_time > 0 else 0.0

    def min_time_seconds(self) -> float | None:
        return None if self.min_time is None else self.min_time / 1000

    def queries_per_second(self) -> float:
        return self._per_second(self.queries)

    def rows_per_second(self) -> float:
        return self._per_second(self.total_rows_read)

    def bytes_per_second(self) -> float:
        return self._per_second(self.total_bytes_read)

    def quantiles(self) -> dict[str, float | None]:
        return {quantile_key(level): self.sampler.quantile(level) for level in QUANTILE_LEVELS}

    def metric_value(self, metric: str) -> object:
        """Value of a named metric as it appears in the verbose report."""
        getters = {
            "min_time": self.min_time_seconds,
            "quantiles": self.quantiles,
            "total_time": lambda: self.total_time,
            "queries_per_second": self.queries_per_second,
            "rows_per_second": self.rows_per_second,
            "bytes_per_second": self.bytes_per_second,
            "max_rows_per_second": lambda: self.max_rows_speed,
            "max_bytes_per_second": lambda: self.max_bytes_speed,
            "avg_rows_per_second": lambda: self.avg_rows_speed_value,
            "avg_bytes_per_second": lambda: self.avg_bytes_speed_value,
        }
        getter = getters.get(metric)
        if getter is None:
            raise KeyError(metric)
        return getter()

    def statistic_by_name(self, metric: str) -> str:
        """Textual value of a metric for the lite output; "" if unknown."""
        try:
            value = self.metric_value(metric)
        except KeyError:
            return ""
        if isinstance(value, dict):
            return ", ".join(f"{k}: {v}" for k, v in value.items())
        return str(value)


class RunGrid:
    """Flat arena of run records addressed by ``repetition * query_count + query``."""

    def __init__(
        self,
        times_to_run: int,
        query_count: int,
        stop_conditions_template: TestStopConditions | None = None,
        rows_speed_precision: float = DEFAULT_SPEED_PRECISION,
        bytes_speed_precision: float = DEFAULT_SPEED_PRECISION,
    ):
        if times_to_run < 1:
            raise ValueError(f"times_to_run must be positive, got {times_to_run}")
        self.times_to_run = times_to_run
        self.query_count = query_count
        template = stop_conditions_template or TestStopConditions()
        self.records = [
            RunStats(template.copy(), rows_speed_precision, bytes_speed_precision)
            for _ in range(times_to_run * query_count)
        ]

    def __len__(self) -> int:
        return len(self.records)

    def __getitem__(self, i: int) -> RunStats:
        return self.records[i]

    def index(self, repetition: int, query_index: int) -> int:
        if not (0 <= repetition < self.times_to_run and 0 <= query_index < self.query_count):
            raise IndexError(f"run ({repetition}, {query_index}) outside the grid")
        return repetition * self.query_count + query_index

    def position(self, i: int) -> tuple[int, int]:
        """Inverse of :meth:`index`: ``(repetition, query_index)``."""
        if not 0 <= i < len(self.records):
            raise IndexError(f"run index {i} outside the grid")
        return divmod(i, self.query_count)

    def record(self, repetition: int, query_index: int) -> RunStats:
        return self.records[self.index(repetition, query_index)]

    def reset(self, i: int) -> None:
        record = self.records[i]
        record.clear()
        record.stop_conditions.reset()

    def iter_by_query(self) -> Iterator[tuple[int, int, RunStats]]:
        """Yield ``(query_index, repetition, record)`` grouped by query."""
        for query_index in range(self.query_count):
            for repetition in range(self.times_to_run):
                yield query_index, repetition, self.records[self.index(repetition, query_index)]
