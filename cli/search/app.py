from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import numpy as np
import typer
from typing_extensions import Annotated

from ndrangex import config as nx_config
from ndrangex.core.results import SENTINEL
from ndrangex.errors import PHASE_CONFIG, ConfigError, NdRangeError
from ndrangex.pipeline import PipelineResult, run_pipeline
from ndrangex.telemetry import RunLogWriter, generate_run_id

from cli.runtime import runtime_from_args

EXIT_FAILURE = 1
EXIT_USAGE = 2


@dataclass
class SearchCLIOptions:
    file: Path
    radius: float = 2.0
    knn: int = 50
    combine: str | None = None
    split: str | None = None
    engine: str | None = None
    sort: bool | None = None
    early_exit: bool | None = None
    precision: str | None = None
    delimiter: str | None = None
    max_dimension: int | None = None
    diagnostics: bool | None = None
    log_level: str | None = None
    log_file: str | None = None
    run_id: str | None = None
    dump: bool = False
    audit: bool = False


app = typer.Typer(
    add_completion=False,
    pretty_exceptions_enable=False,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
    help="Bounded-radius, fixed-capacity self range search over a D-dimensional point file.",
)

_INPUT_PANEL = "Input & query"
_RUNTIME_PANEL = "Runtime controls"
_OUTPUT_PANEL = "Output & telemetry"


@app.callback(invoke_without_command=True)
def cli(
    ctx: typer.Context,
    file: Annotated[
        Path,
        typer.Option(
            "--file",
            "-f",
            help="Text file with one comma-separated point per line.",
            rich_help_panel=_INPUT_PANEL,
        ),
    ],
    radius: Annotated[
        float,
        typer.Option(
            "--radius",
            "-r",
            help="Search radius (must be positive).",
            rich_help_panel=_INPUT_PANEL,
        ),
    ] = 2.0,
    knn: Annotated[
        int,
        typer.Option(
            "--knn",
            "-k",
            help="Result capacity per query.",
            rich_help_panel=_INPUT_PANEL,
        ),
    ] = 50,
    combine: Annotated[
        Optional[str],
        typer.Option(
            "--combine",
            help="Batch combination rule: sum, and, or, first.",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = None,
    split: Annotated[
        Optional[str],
        typer.Option(
            "--split",
            help="BVH split policy: median or midpoint.",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = None,
    engine: Annotated[
        Optional[str],
        typer.Option(
            "--engine",
            help="Traversal engine: numba or python.",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = None,
    sort: Annotated[
        Optional[bool],
        typer.Option(
            "--sort/--no-sort",
            help="Sort each result row by neighbour index.",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = None,
    early_exit: Annotated[
        Optional[bool],
        typer.Option(
            "--early-exit/--no-early-exit",
            help="Stop a query's traversal once its row is full.",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = None,
    precision: Annotated[
        Optional[str],
        typer.Option(
            "--precision",
            help="Coordinate precision (float32 or float64).",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = None,
    delimiter: Annotated[
        Optional[str],
        typer.Option(
            "--delimiter",
            help="Field delimiter of the input file (use '\\t' for tabs).",
            rich_help_panel=_INPUT_PANEL,
        ),
    ] = None,
    max_dimension: Annotated[
        Optional[int],
        typer.Option(
            "--max-dimension",
            help="Reject inputs with more coordinates than this (0 disables).",
            rich_help_panel=_INPUT_PANEL,
        ),
    ] = None,
    diagnostics: Annotated[
        Optional[bool],
        typer.Option(
            "--enable-diagnostics/--disable-diagnostics",
            help="Control resource polling + diagnostic logging.",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option(
            "--log-level",
            help="Override runtime log level.",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = None,
    log_file: Annotated[
        Optional[str],
        typer.Option(
            "--log-file",
            help="Append per-phase telemetry JSONL to this path.",
            rich_help_panel=_OUTPUT_PANEL,
        ),
    ] = None,
    run_id: Annotated[
        Optional[str],
        typer.Option(
            "--run-id",
            help="Optional run identifier propagated to telemetry records.",
            rich_help_panel=_OUTPUT_PANEL,
        ),
    ] = None,
    dump: Annotated[
        bool,
        typer.Option(
            "--dump",
            help="Print each query's neighbours to stdout, one row per line.",
            rich_help_panel=_OUTPUT_PANEL,
        ),
    ] = False,
    audit: Annotated[
        bool,
        typer.Option(
            "--audit",
            help="Brute-force check that unsaturated rows missed no neighbour.",
            rich_help_panel=_OUTPUT_PANEL,
        ),
    ] = False,
) -> None:
    options = SearchCLIOptions(
        file=file,
        radius=radius,
        knn=knn,
        combine=combine,
        split=split,
        engine=engine,
        sort=sort,
        early_exit=early_exit,
        precision=precision,
        delimiter=delimiter,
        max_dimension=max_dimension,
        diagnostics=diagnostics,
        log_level=log_level,
        log_file=log_file,
        run_id=run_id,
        dump=dump,
        audit=audit,
    )
    ctx.obj = options
    if ctx.invoked_subcommand is None:
        code = run_search(options)
        if code:
            raise typer.Exit(code=code)


def _dump_rows(rows: np.ndarray) -> None:
    for row in rows:
        filled = row[row != SENTINEL]
        typer.echo(" ".join(str(int(value)) for value in filled))


def _report(result: PipelineResult) -> None:
    for line in result.report.render_lines():
        typer.echo(line, err=True)
    if result.audit is not None:
        typer.echo(
            f"Recall audit: rows checked {result.audit.rows_checked}, "
            f"missed pairs {result.audit.missed_pairs}",
            err=True,
        )
    timings = " ".join(f"{phase}={seconds * 1e3:.3f}ms" for phase, seconds in result.timings.items())
    typer.echo(f"Timings: {timings}", err=True)


def _fail(exc: NdRangeError) -> int:
    phase = exc.phase or "unknown"
    typer.echo(f"error[{phase}]: {exc}", err=True)
    if isinstance(exc, ConfigError) and phase == PHASE_CONFIG:
        return EXIT_USAGE
    return EXIT_FAILURE


def run_search(options: SearchCLIOptions) -> int:
    """Run the range-search pipeline for parsed CLI options; returns the exit code."""

    log_writer: RunLogWriter | None = None
    try:
        runtime = runtime_from_args(options)
        runtime.activate()
        if options.log_file:
            try:
                log_writer = RunLogWriter(options.log_file, run_id=options.run_id or generate_run_id())
            except OSError as exc:
                raise ConfigError(f"cannot open telemetry log '{options.log_file}': {exc}") from exc
        result = run_pipeline(
            options.file,
            radius=options.radius,
            k=options.knn,
            audit=options.audit,
            log_writer=log_writer,
        )
        if options.dump:
            _dump_rows(result.search.rows)
        _report(result)
        if result.audit is not None and not result.audit.ok:
            return EXIT_FAILURE
        return 0
    except NdRangeError as exc:
        return _fail(exc)
    finally:
        if log_writer is not None:
            log_writer.close()
        nx_config.reset_runtime_context()


def main(argv: Any = None) -> None:
    app(args=argv)


__all__ = ["SearchCLIOptions", "app", "main", "run_search"]
