"""Query performance test engine.

Selects test descriptors, expands query templates, runs each query
against the server under per-run stop conditions and collects the
statistics the reports are built from.
"""

from .cancellation import CancellationToken, install_sigint_handler
from .executor import ClickHouseClient, DatabaseClient, QueryStream, connect
from .filters import FilterType, filter_tests, remove_tests_if
from .models import EnvironmentInfo, ResolvedTest, TestReport
from .preconditions import PreconditionChecker
from .runner import PerformanceTestRunner, resolve_test
from .stats import RunGrid, RunStats
from .stop_conditions import TestStopConditions
from .substitutions import expand, expand_queries, expand_with_parameters

__all__ = [
    "CancellationToken",
    "ClickHouseClient",
    "DatabaseClient",
    "EnvironmentInfo",
    "FilterType",
    "PerformanceTestRunner",
    "PreconditionChecker",
    "QueryStream",
    "ResolvedTest",
    "RunGrid",
    "RunStats",
    "TestReport",
    "TestStopConditions",
    "connect",
    "expand",
    "expand_queries",
    "expand_with_parameters",
    "filter_tests",
    "install_sigint_handler",
    "remove_tests_if",
    "resolve_test",
]
