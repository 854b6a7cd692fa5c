"""Shared fixtures for the perfbench test suite."""

from __future__ import annotations

from collections.abc import Mapping
from unittest.mock import patch

import pytest

from perfbench.benchmark.models import EnvironmentInfo
from perfbench.config import TestSpec


def make_spec(**overrides) -> TestSpec:
    """Create a TestSpec with sensible defaults for testing.

    This is the canonical descriptor factory for tests. Prefer this over
    hand-building dicts so that new required fields are handled in one place.
    """
    base: dict = {
        "name": "test-fixture",
        "type": "once",
        "query": ["SELECT 1"],
        "stop_conditions": {"any_of": {"total_time_ms": 1000}},
        "metrics": ["max_rows_per_second"],
    }
    base.update(overrides)
    return TestSpec.model_validate(base)


class FakeStream:
    """Scripted query stream delivering a fixed list of progress packets."""

    def __init__(
        self,
        steps,
        error: Exception | None = None,
        packets_after_cancel: int = 0,
        on_read=None,
    ):
        self.steps = list(steps)
        self.on_read = on_read
        self.error = error
        self.packets_after_cancel = packets_after_cancel
        self.callback = None
        self.cancelled = False
        self.delivered = 0

    def set_progress_callback(self, callback) -> None:
        self.callback = callback

    def cancel(self) -> None:
        self.cancelled = True

    def read(self) -> None:
        if self.on_read is not None:
            self.on_read()
        extra = self.packets_after_cancel
        for rows, bytes_read in self.steps:
            if self.cancelled:
                if extra <= 0:
                    break
                extra -= 1
            self.delivered += 1
            if self.callback is not None:
                self.callback(rows, bytes_read)
        if self.error is not None:
            raise self.error


class FakeClient:
    """In-memory stand-in for the database client."""

    def __init__(
        self,
        steps: list[tuple[int, int]] | None = None,
        per_query: Mapping[str, list[tuple[int, int]]] | None = None,
        errors: Mapping[str, Exception] | None = None,
        tables: set[str] | None = None,
        version: str = "24.3.1",
        packets_after_cancel: int = 0,
        on_read=None,
    ):
        self.steps = steps if steps is not None else [(100, 800), (100, 800)]
        self.per_query = dict(per_query or {})
        self.errors = dict(errors or {})
        self.tables = tables or set()
        self.version = version
        self.packets_after_cancel = packets_after_cancel
        self.on_read = on_read
        self.executed: list[tuple[str, dict[str, str]]] = []
        self.streams: list[FakeStream] = []
        self.exists_checks: list[str] = []

    def server_version(self) -> str:
        return self.version

    def execute_streaming(self, query: str, settings) -> FakeStream:
        self.executed.append((query, dict(settings)))
        stream = FakeStream(
            self.per_query.get(query, self.steps),
            error=self.errors.get(query),
            packets_after_cancel=self.packets_after_cancel,
            on_read=self.on_read,
        )
        self.streams.append(stream)
        return stream

    def exists_table(self, name: str) -> bool:
        self.exists_checks.append(name)
        return name in self.tables

    def disconnect(self) -> None:
        pass


class FakeClock:
    """Replacement for time.monotonic driven by the test."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Freeze the stopwatch clock; tests move it with ``clock.advance``."""
    fake = FakeClock()
    with patch("perfbench.benchmark.stats.time.monotonic", fake):
        yield fake


@pytest.fixture
def fake_client() -> FakeClient:
    """A fake client returning two progress packets per query."""
    return FakeClient()


@pytest.fixture
def environment() -> EnvironmentInfo:
    """Fixed host metadata for report tests."""
    return EnvironmentInfo(
        hostname="bench-host",
        num_cores=8,
        num_threads=16,
        ram=64 * 1024**3,
        server_version="24.3.1",
    )


@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run for tests that exercise the cache flush command."""
    with patch("subprocess.run") as m:
        m.return_value.returncode = 0
        yield m
