"""perfbench -- declarative query performance tests for ClickHouse-compatible servers."""

__version__ = "0.3.0"
