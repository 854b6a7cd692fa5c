"""Performance test runner.

For every selected test descriptor the runner:

1. resolves settings, queries, substitutions and metrics (no network)
2. allocates a run grid of ``times_to_run * len(queries)`` records
3. runs repetitions in order, each repetition running every query; a
   ``once`` test executes each query a single time, a ``loop`` test
   repeats it until the run's stop conditions are fulfilled
4. hands the finished grid to the report builder

Progress packets of the query in flight feed the run statistics and the
stop conditions.  When the stop conditions fire, or the batch is
interrupted, the query is cancelled through the stream; this is not an
error.  Errors raised while a query runs are recorded on that run only.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path

from perfbench._constants import DEFAULT_SPEED_PRECISION
from perfbench.config.loader import load_profiles
from perfbench.config.schema import (
    LOOP_METRICS,
    ONCE_METRICS,
    SPEED_PRECISION_SETTINGS,
    ExecutionType,
    TestSpec,
)
from perfbench.errors import TestConfigError

from .cancellation import CancellationToken
from .executor import DatabaseClient, QueryStream
from .models import ResolvedTest, TestReport
from .preconditions import PreconditionChecker
from .queries import resolve_queries
from .stats import RunGrid, RunStats
from .stop_conditions import TestStopConditions
from .substitutions import expand_queries

logger = logging.getLogger(__name__)


# =============================================================================
# Resolution
# =============================================================================


def resolve_settings(
    spec: TestSpec, profiles: Mapping[str, Mapping[str, str]] | None = None
) -> dict[str, str]:
    """Merge the inherited profile (if any) with the test's own settings.

    Settings declared by the test win over the profile's.
    """
    merged: dict[str, str] = {}
    profile_name = spec.profile
    if profile_name and profiles is not None:
        profile = profiles.get(profile_name)
        if profile is None:
            logger.warning("Profile '%s' used by %s is not defined", profile_name, spec.name)
        else:
            merged.update(profile)

    merged.update({k: v for k, v in spec.settings.items() if k != "profile"})
    return merged


def _pop_precision(settings: dict[str, str], key: str, test_name: str) -> float:
    raw = settings.pop(key, None)
    if raw is None:
        return DEFAULT_SPEED_PRECISION
    try:
        return float(raw)
    except ValueError:
        raise TestConfigError(f"Setting {key} in {test_name} must be a number, got {raw!r}")  # noqa: B904


def check_metrics(metrics: Iterable[str], exec_type: ExecutionType) -> None:
    """Reject metrics that the execution type cannot produce."""
    for metric in metrics:
        if metric not in LOOP_METRICS and metric not in ONCE_METRICS:
            raise TestConfigError(f"Unknown metric ({metric})")
        if exec_type == ExecutionType.LOOP and metric in ONCE_METRICS:
            raise TestConfigError(f"Wrong type of metric for loop execution type ({metric})")
        if exec_type == ExecutionType.ONCE and metric in LOOP_METRICS:
            raise TestConfigError(f"Wrong type of metric for non-loop execution type ({metric})")


def resolve_metrics(spec: TestSpec, lite_output: bool = False) -> tuple[list[str], str]:
    """Return the declared metrics and the main metric.

    An explicit main metric is added to the metric list when missing;
    otherwise the first declared metric is used, which lite output does
    not allow.
    """
    metrics = list(spec.metrics)
    if spec.main_metric:
        main_metric = spec.main_metric
        if main_metric not in metrics:
            metrics.append(main_metric)
    else:
        if not metrics:
            raise TestConfigError(f"You should specify at least one metric in {spec.name}")
        main_metric = metrics[0]
        if lite_output:
            raise TestConfigError(f"Specify main_metric for lite output in {spec.name}")

    check_metrics(metrics, spec.type)
    return metrics, main_metric


def resolve_test(
    spec: TestSpec,
    profiles: Mapping[str, Mapping[str, str]] | None = None,
    lite_output: bool = False,
) -> ResolvedTest:
    """Resolve a descriptor into something the runner can execute.

    Raises:
        TestConfigError: The descriptor is incomplete or contradictory.
    """
    settings = resolve_settings(spec, profiles)
    rows_precision = _pop_precision(settings, SPEED_PRECISION_SETTINGS[0], spec.name)
    bytes_precision = _pop_precision(settings, SPEED_PRECISION_SETTINGS[1], spec.name)

    templates = resolve_queries(spec)
    if spec.substitutions:
        expanded = expand_queries(templates, spec.substitution_table)
        if not expanded:
            logger.warning(
                "Substitutions of %s produced no queries; check for dimensions without values",
                spec.name,
            )
        queries = [q for q, _ in expanded]
        parameters = [p for _, p in expanded]
    else:
        queries = templates
        parameters = [{} for _ in templates]

    stop_conditions = TestStopConditions.from_config(spec.stop_conditions)
    if stop_conditions.is_empty():
        raise TestConfigError(f"No termination conditions were found in config of {spec.name}")

    metrics, main_metric = resolve_metrics(spec, lite_output)

    return ResolvedTest(
        spec=spec,
        queries=queries,
        parameters=parameters,
        settings=settings,
        metrics=metrics,
        main_metric=main_metric,
        stop_conditions=stop_conditions,
        rows_speed_precision=rows_precision,
        bytes_speed_precision=bytes_precision,
    )


# =============================================================================
# Execution
# =============================================================================


class PerformanceTestRunner:
    """Runs test descriptors against a database client."""

    def __init__(
        self,
        client: DatabaseClient,
        lite_output: bool = False,
        profiles_file: Path | str | None = None,
        cancellation: CancellationToken | None = None,
        preconditions: PreconditionChecker | None = None,
    ):
        """Initialize the runner.

        Args:
            client: Server connection used for queries and table checks
            lite_output: Lite output needs an explicit main metric per test
            profiles_file: YAML file with shared settings profiles
            cancellation: Interrupt flag shared with the signal handler
            preconditions: Precondition checker (default: built on ``client``)
        """
        self.client = client
        self.lite_output = lite_output
        self.profiles_file = Path(profiles_file) if profiles_file else None
        self.cancellation = cancellation or CancellationToken()
        self.preconditions = preconditions or PreconditionChecker(client)
        self._profiles: dict[str, dict[str, str]] | None = None

    @property
    def profiles(self) -> dict[str, dict[str, str]] | None:
        if self.profiles_file is None:
            return None
        if self._profiles is None:
            self._profiles = load_profiles(self.profiles_file)
        return self._profiles

    def resolve(self, spec: TestSpec) -> ResolvedTest:
        return resolve_test(spec, self.profiles, self.lite_output)

    def run_tests(
        self,
        specs: Iterable[TestSpec],
        on_report: Callable[[TestReport], None] | None = None,
    ) -> list[TestReport]:
        """Run every test whose preconditions hold.

        Args:
            specs: Tests in execution order (already filtered)
            on_report: Called with each test's report as soon as it is done

        Returns:
            Reports of the tests that ran
        """
        reports: list[TestReport] = []
        for spec in specs:
            if not self.preconditions.check(spec):
                logger.warning("Preconditions are not fulfilled for test '%s'", spec.name)
                continue

            report = self.run_test(spec)
            reports.append(report)
            if on_report is not None:
                on_report(report)
        return reports

    def run_test(self, spec: TestSpec) -> TestReport:
        """Resolve and run one test.

        Raises:
            TestConfigError: The descriptor is incomplete or contradictory.
        """
        logger.info("Running: %s", spec.name)
        test = self.resolve(spec)

        grid = RunGrid(
            test.times_to_run,
            len(test.queries),
            test.stop_conditions,
            rows_speed_precision=test.rows_speed_precision,
            bytes_speed_precision=test.bytes_speed_precision,
        )
        report = TestReport(test=test, grid=grid)

        for repetition in range(test.times_to_run):
            if self.cancellation.cancelled:
                break
            run_indexes = [grid.index(repetition, q) for q in range(len(test.queries))]
            self._run_queries(test, grid, run_indexes)

        report.interrupted = self.cancellation.cancelled
        if report.interrupted:
            logger.warning("Test '%s' was interrupted", test.name)
        return report

    def _run_queries(self, test: ResolvedTest, grid: RunGrid, run_indexes: list[int]) -> None:
        for run_index in run_indexes:
            _, query_index = grid.position(run_index)
            query = test.queries[query_index]
            stats = grid[run_index]

            # Stopwatches of a run start when its first query does
            grid.reset(run_index)
            try:
                self._execute(query, test.settings, stats)

                if test.exec_type == ExecutionType.LOOP:
                    iteration = 1
                    while not self.cancellation.cancelled:
                        stats.stop_conditions.report_iterations(iteration)
                        if stats.stop_conditions.fulfilled():
                            break
                        self._execute(query, test.settings, stats)
                        iteration += 1
            except Exception as e:
                stats.exception = f"{type(e).__name__}: {e}"
                logger.warning("Query of %s failed: %s", test.name, stats.exception)

            stats.ready = True

    def _execute(self, query: str, settings: Mapping[str, str], stats: RunStats) -> None:
        stats.start_query()
        try:
            stream = self.client.execute_streaming(query, settings)
            stream.set_progress_callback(
                lambda rows, bytes_read: self._on_progress(rows, bytes_read, stream, stats)
            )
            stream.read()

            if not stats.last_query_was_cancelled:
                stats.update_query_info()
                if stats.min_time is not None:
                    stats.stop_conditions.report_min_time(stats.min_time)
        finally:
            stats.set_total_time()
        self._report_signals(stats)

    def _on_progress(self, rows: int, bytes_read: int, stream: QueryStream, stats: RunStats) -> None:
        # After cancellation the stream may still flush packets; they are not counted
        if stats.last_query_was_cancelled:
            return

        stats.add(rows, bytes_read)
        self._report_signals(stats)

        if stats.stop_conditions.fulfilled() or self.cancellation.cancelled:
            stats.last_query_was_cancelled = True
            stream.cancel()

    @staticmethod
    def _report_signals(stats: RunStats) -> None:
        conditions = stats.stop_conditions
        conditions.report_rows_read(stats.total_rows_read)
        conditions.report_bytes_read(stats.total_bytes_read)
        conditions.report_total_time(stats.watch.elapsed_ms())
        conditions.report_min_time_not_changing_for(stats.min_time_watch.elapsed_ms())
        conditions.report_max_speed_not_changing_for(stats.max_rows_speed_watch.elapsed_ms())
        conditions.report_average_speed_not_changing_for(stats.avg_rows_speed_watch.elapsed_ms())
