"""perfbench CLI."""

from __future__ import annotations

import logging
import signal
import sys
from pathlib import Path
from typing import Annotated

import typer
from clickhouse_driver.errors import Error as ClickHouseError
from rich.console import Console
from rich.table import Table

from perfbench import __version__
from perfbench._constants import DEFAULT_DATABASE, DEFAULT_HOST, DEFAULT_PORT, DEFAULT_USER
from perfbench.benchmark import (
    CancellationToken,
    PerformanceTestRunner,
    TestReport,
    connect,
    filter_tests,
    install_sigint_handler,
    resolve_test,
)
from perfbench.config import (
    ConfigError,
    ConfigValidationError,
    TestSpec,
    collect_test_files,
    load_profiles,
    load_test_specs,
)
from perfbench.errors import PerfTestError, exit_code_for
from perfbench.reports import ReportBuilder, collect_environment

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="perfbench",
    help="Run declarative query performance tests against a ClickHouse server",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Standard output carries the report; everything else goes to stderr
console = Console(stderr=True)


# =============================================================================
# Helper Functions
# =============================================================================


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]OK[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]ERROR[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]WARN[/yellow] {message}")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _fail(e: BaseException) -> typer.Exit:
    """Print a fatal error and build the matching exit."""
    if isinstance(e, ConfigValidationError):
        print_error(str(e).splitlines()[0])
        for err in e.errors:
            loc = ".".join(str(x) for x in err["loc"])
            console.print(f"  [red]•[/red] {loc}: {err['msg']}")
    else:
        print_error(str(e))
    return typer.Exit(exit_code_for(e))


def load_selected_tests(
    paths: list[Path] | None,
    recursive: bool,
    tags: list[str] | None,
    skip_tags: list[str] | None,
    names: list[str] | None,
    skip_names: list[str] | None,
    names_regexp: list[str] | None,
    skip_names_regexp: list[str] | None,
) -> list[TestSpec]:
    """Discover, load and filter test descriptors.

    Raises:
        typer.Exit: A descriptor could not be found, parsed or validated,
            or a name pattern is invalid.
    """
    try:
        files = collect_test_files(list(paths or []), recursive=recursive)
        specs = load_test_specs(files)
        return filter_tests(
            specs,
            tags=tags or [],
            names=names or [],
            names_regexp=names_regexp or [],
            skip_tags=skip_tags or [],
            skip_names=skip_names or [],
            skip_names_regexp=skip_names_regexp or [],
        )
    except (ConfigError, PerfTestError) as e:
        raise _fail(e)  # noqa: B904


# Filter options shared by run and validate
PathsArg = Annotated[
    list[Path] | None,
    typer.Argument(help="Test descriptor files or folders (default: current folder)"),
]
RecursiveOpt = Annotated[
    bool, typer.Option("--recursive", "-r", help="Recurse into folders to find all descriptors")
]
TagsOpt = Annotated[list[str] | None, typer.Option("--tags", help="Run only tests with tag")]
SkipTagsOpt = Annotated[
    list[str] | None, typer.Option("--skip-tags", help="Do not run tests with tag")
]
NamesOpt = Annotated[
    list[str] | None, typer.Option("--names", help="Run tests with specific name")
]
SkipNamesOpt = Annotated[
    list[str] | None, typer.Option("--skip-names", help="Do not run tests with name")
]
NamesRegexpOpt = Annotated[
    list[str] | None,
    typer.Option("--names-regexp", help="Run tests with names matching regexp"),
]
SkipNamesRegexpOpt = Annotated[
    list[str] | None,
    typer.Option("--skip-names-regexp", help="Do not run tests with names matching regexp"),
]
LiteOpt = Annotated[bool, typer.Option("--lite", help="Use lite version of output")]
ProfilesOpt = Annotated[
    Path | None, typer.Option("--profiles-file", help="File with global settings profiles")
]
VerboseOpt = Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")]


# =============================================================================
# CLI Commands
# =============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"perfbench version {__version__}")


@app.command()
def validate(
    paths: PathsArg = None,
    recursive: RecursiveOpt = False,
    tags: TagsOpt = None,
    skip_tags: SkipTagsOpt = None,
    names: NamesOpt = None,
    skip_names: SkipNamesOpt = None,
    names_regexp: NamesRegexpOpt = None,
    skip_names_regexp: SkipNamesRegexpOpt = None,
    lite: LiteOpt = False,
    profiles_file: ProfilesOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Check descriptors without connecting to a server.

    Loads and filters the selected tests, reads query files, expands
    substitutions and checks metrics exactly as [bold]run[/bold] would.
    """
    configure_logging(verbose)
    specs = load_selected_tests(
        paths, recursive, tags, skip_tags, names, skip_names, names_regexp, skip_names_regexp
    )

    try:
        profiles = load_profiles(profiles_file) if profiles_file else None
        resolved = [resolve_test(spec, profiles, lite_output=lite) for spec in specs]
    except (ConfigError, PerfTestError) as e:
        raise _fail(e)  # noqa: B904

    table = Table(title="Selected tests")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Queries", justify="right")
    table.add_column("Runs", justify="right")
    table.add_column("Main metric")
    table.add_column("Preconditions", justify="right")
    for test in resolved:
        table.add_row(
            test.name,
            test.exec_type.value,
            str(len(test.queries)),
            str(test.times_to_run * len(test.queries)),
            test.main_metric,
            str(len(test.spec.preconditions)),
        )
    console.print(table)
    print_success(f"{len(resolved)} test(s) valid")


@app.command()
def run(
    paths: PathsArg = None,
    host: Annotated[str, typer.Option("--host", "-h", help="Server host")] = DEFAULT_HOST,
    port: Annotated[int, typer.Option("--port", help="Native protocol port")] = DEFAULT_PORT,
    secure: Annotated[bool, typer.Option("--secure", "-s", help="Use TLS connection")] = False,
    database: Annotated[str, typer.Option("--database", help="Default database")] = DEFAULT_DATABASE,
    user: Annotated[str, typer.Option("--user", help="User name")] = DEFAULT_USER,
    password: Annotated[str, typer.Option("--password", help="Password")] = "",
    recursive: RecursiveOpt = False,
    tags: TagsOpt = None,
    skip_tags: SkipTagsOpt = None,
    names: NamesOpt = None,
    skip_names: SkipNamesOpt = None,
    names_regexp: NamesRegexpOpt = None,
    skip_names_regexp: SkipNamesRegexpOpt = None,
    lite: LiteOpt = False,
    profiles_file: ProfilesOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Run performance tests and print the report.

    The verbose report is a JSON array written once all tests finished;
    lite output is printed test by test.  Ctrl-C stops after the current
    query and still prints what was collected.

    Examples:

        perfbench run tests/ -r --tags aggregation

        perfbench run uniq.yaml --lite --host ch-bench-1
    """
    configure_logging(verbose)
    specs = load_selected_tests(
        paths, recursive, tags, skip_tags, names, skip_names, names_regexp, skip_names_regexp
    )
    if not specs:
        print_warning("No tests left after filtering")
        return

    client = connect(
        host=host, port=port, database=database, user=user, password=password, secure=secure
    )
    token = CancellationToken()
    previous_handler = install_sigint_handler(token)
    runner = PerformanceTestRunner(
        client, lite_output=lite, profiles_file=profiles_file, cancellation=token
    )

    try:
        builder = ReportBuilder(collect_environment(client))

        def on_report(report: TestReport) -> None:
            if lite:
                typer.echo(builder.lite_lines(report), nl=False)

        reports = runner.run_tests(specs, on_report=on_report)
    except (ConfigError, PerfTestError, ClickHouseError) as e:
        raise _fail(e)  # noqa: B904
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)
        client.disconnect()

    if not lite:
        typer.echo(builder.render(reports), nl=False)

    interrupted = [r.test.name for r in reports if r.interrupted]
    if interrupted:
        print_warning(
            f"Interrupted; {len(interrupted)} test(s) report completed runs only: "
            + ", ".join(interrupted)
        )


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
