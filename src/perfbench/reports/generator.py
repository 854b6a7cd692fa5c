"""Report rendering for perfbench.

Two formats are produced on standard output:

- verbose (default): a JSON array with one object per test, holding host
  and server metadata plus one entry per completed run
- lite (``--lite``): one text line per (query, repetition) with the
  test's main metric
"""

from __future__ import annotations

import json
import logging
import os
import socket
from typing import Any

import psutil

from perfbench.benchmark.executor import DatabaseClient
from perfbench.benchmark.models import EnvironmentInfo, TestReport
from perfbench.benchmark.preconditions import detect_memory
from perfbench.config.schema import LOOP_METRICS, ONCE_METRICS, ExecutionType

logger = logging.getLogger(__name__)

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def collect_environment(client: DatabaseClient) -> EnvironmentInfo:
    """Gather host facts and the server version."""
    return EnvironmentInfo(
        hostname=socket.getfqdn(),
        num_cores=psutil.cpu_count(logical=False) or 0,
        num_threads=os.cpu_count() or 0,
        ram=detect_memory(),
        server_version=client.server_version(),
    )


class ReportBuilder:
    """Builds per-test report fragments from a finished run grid."""

    def __init__(self, environment: EnvironmentInfo):
        self.environment = environment

    def build(self, report: TestReport) -> dict[str, Any]:
        """Verbose report object for one test."""
        test = report.test
        doc: dict[str, Any] = self.environment.to_dict()
        doc["time"] = report.started_at.strftime(_TIME_FORMAT)
        doc["test_name"] = test.name
        doc["main_metric"] = test.main_metric

        if test.spec.substitutions:
            doc["parameters"] = {name: values for name, values in test.spec.substitution_table}

        allowed = LOOP_METRICS if test.exec_type == ExecutionType.LOOP else ONCE_METRICS
        reported = [m for m in allowed if m in test.metrics]

        runs: list[dict[str, Any]] = []
        for query_index, _repetition, stats in report.grid.iter_by_query():
            if not stats.ready:
                continue

            run: dict[str, Any] = {"query": test.queries[query_index]}
            if stats.exception is not None:
                run["exception"] = stats.exception
            if test.parameters[query_index]:
                run["parameters"] = dict(test.parameters[query_index])
            for metric in reported:
                run[metric] = stats.metric_value(metric)
            runs.append(run)

        doc["runs"] = runs
        return doc

    def lite_lines(self, report: TestReport) -> str:
        """Lite output for one test, one line per (query, repetition).

        Runs that never started (after an interrupt) are listed too, with
        the metric value of an empty record.
        """
        test = report.test
        multiple_queries = len(test.queries) > 1
        lines = []
        for query_index, repetition, stats in report.grid.iter_by_query():
            line = ""
            if multiple_queries:
                line += f'query "{test.queries[query_index]}", '
            for name, value in test.parameters[query_index].items():
                line += f"{name} = {value}, "
            line += f"run {repetition + 1}: "
            line += f"{test.main_metric} = {stats.statistic_by_name(test.main_metric)}"
            lines.append(line + "\n")
        return "".join(lines)

    def render(self, reports: list[TestReport], lite: bool = False) -> str:
        """Render the whole invocation's output."""
        if lite:
            return "".join(self.lite_lines(r) for r in reports)
        if not reports:
            return ""
        return json.dumps([self.build(r) for r in reports], indent=4, ensure_ascii=False) + "\n"
