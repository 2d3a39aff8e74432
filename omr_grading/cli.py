"""
Typer command-line interface exposing the OMR grading engine.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Annotated, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.traceback import install as install_rich_traceback

from .batch import IngestBatch
from .grading import (
    GROUP_KEYS,
    GradingAggregator,
    GradingResult,
    GradingSummary,
    MissingMarkingPolicy,
    StudentAverageRanking,
    apply_reduction,
    summarise_batch,
)
from .ingest import IngestFailure, LoadFailureItem, count_failures
from .report import build_markdown_report, write_results_csv, write_results_xlsx
from .review import sort_for_review
from .roster import RosterError, load_students
from .scoring import ScoringTable, load_scoring_table, save_scoring_table
from .structure import ConfigurationError, StructureConfig, load_structure
from .utils import ensure_directory
from .verdicts import VerdictError, load_verdicts

app = typer.Typer(
    help="CLI tools to ingest OMR verdicts, detect duplicates and grade sheets.",
    no_args_is_help=True,
)
console = Console()

install_rich_traceback(show_locals=False)


class OutputFormat(str, Enum):
    csv = "csv"
    xlsx = "xlsx"
    md = "md"


class RankBy(str, Enum):
    none = "none"
    batch = "batch"
    group = "group"
    session = "session"
    room = "room"


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("-v", "--verbose", help="Show debug logging."),
    ] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_structure_or_exit(path: Optional[Path]) -> StructureConfig:
    try:
        return load_structure(path)
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error:[/] {exc}")
        raise typer.Exit(code=2) from exc


@app.command()
def validate(
    structure_file: Annotated[
        Optional[Path],
        typer.Option("--structure", "-s", help="Sheet structure YAML (defaults to the built-in layout).", dir_okay=False),
    ] = None,
) -> None:
    """
    Validate the sheet structure and print it.
    """
    structure = _load_structure_or_exit(structure_file)

    table = Table(title="Sheet structure", box=box.SIMPLE_HEAVY)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Questions", str(structure.question_count))
    table.add_row("Options per question", str(structure.options_per_question))
    table.add_row("Scoring areas", str(structure.total_scoring_areas))
    table.add_row("Timing marks", str(structure.timing_mark_count))
    table.add_row("Barcode slots", str(structure.barcode_slot_count))
    for slot in range(structure.barcode_slot_count):
        table.add_row(f"  slot {slot}", structure.barcode_semantic(slot) or "[dim]unmapped[/]")
    console.print(table)
    console.print("[bold green]Structure is valid.[/]")


@app.command("scoring-template")
def scoring_template(
    output: Annotated[
        Path,
        typer.Option("-o", "--output", help="Scoring YAML file to create.", dir_okay=False),
    ],
    structure_file: Annotated[
        Optional[Path],
        typer.Option("--structure", "-s", help="Sheet structure YAML.", dir_okay=False),
    ] = None,
) -> None:
    """
    Write a zero-filled scoring table sized to the sheet structure.
    """
    structure = _load_structure_or_exit(structure_file)
    if output.parent != Path("."):
        ensure_directory(output.parent)
    save_scoring_table(output, ScoringTable(structure))
    console.print(f"[bold green]Scoring template[/bold green] : {output.resolve()}")


@app.command()
def grade(
    verdicts_file: Annotated[
        Path,
        typer.Argument(help="JSON file with per-document pipeline verdicts.", exists=True, dir_okay=False, readable=True),
    ],
    roster_file: Annotated[
        Path,
        typer.Option("--roster", "-r", help="Student roster (CSV or XLSX).", exists=True, dir_okay=False, readable=True),
    ],
    scoring_file: Annotated[
        Path,
        typer.Option("--scoring", help="Scoring table YAML.", exists=True, dir_okay=False, readable=True),
    ],
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Output file (defaults to results.<format>)."),
    ] = None,
    output_format: Annotated[
        OutputFormat,
        typer.Option("-f", "--format", help="Output format.", show_choices=True),
    ] = OutputFormat.csv,
    structure_file: Annotated[
        Optional[Path],
        typer.Option("--structure", "-s", help="Sheet structure YAML.", dir_okay=False),
    ] = None,
    rank_by: Annotated[
        RankBy,
        typer.Option("--rank-by", help="Population used to average and rank students."),
    ] = RankBy.none,
    flag_unmarked: Annotated[
        bool,
        typer.Option("--flag-unmarked/--ignore-unmarked", help="Flag sheets with unanswered questions as errors."),
    ] = False,
    min_sheets: Annotated[
        Optional[int],
        typer.Option("--min-sheets", min=1, help="With --rank-by, flag students with fewer interviewer sheets than this."),
    ] = None,
    include_quarantined: Annotated[
        bool,
        typer.Option("--include-quarantined", help="Also grade documents that failed ingest checks."),
    ] = False,
) -> None:
    """
    Ingest verdicts, detect duplicates, grade every sheet and export the results.
    """
    structure = _load_structure_or_exit(structure_file)
    try:
        scoring = load_scoring_table(scoring_file, structure)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc), param_hint="--scoring") from exc
    try:
        roster = load_students(roster_file)
    except RosterError as exc:
        console.print(f"[bold red]Roster error:[/] {exc}")
        raise typer.Exit(code=2) from exc
    try:
        documents = load_verdicts(verdicts_file)
    except VerdictError as exc:
        raise typer.BadParameter(str(exc), param_hint="VERDICTS_FILE") from exc

    batch = IngestBatch(structure)
    batch.ingest_all(documents)
    failures = batch.load_failures()
    records = batch.records() if include_quarantined else batch.accepted_records()

    policy = MissingMarkingPolicy.FLAG_ERROR if flag_unmarked else MissingMarkingPolicy.IGNORE
    aggregator = GradingAggregator(structure, scoring, missing_marking=policy)
    results = aggregator.aggregate(records, roster)
    if rank_by is not RankBy.none:
        apply_reduction(results, StudentAverageRanking(GROUP_KEYS[rank_by.value], min_sheets=min_sheets))
    results = sort_for_review(results)
    summary = summarise_batch(records, roster)

    target = output or Path(f"results.{output_format.value}")
    if target.parent != Path("."):
        ensure_directory(target.parent)
    if output_format is OutputFormat.csv:
        write_results_csv(results, target, structure.question_count)
    elif output_format is OutputFormat.xlsx:
        write_results_xlsx(results, target, structure.question_count, failures=failures)
    else:
        build_markdown_report(results, summary, target, failures=failures)

    _print_summary(summary, results)
    _print_failures(failures)
    console.print(f"[bold green]Results[/bold green] : {target.resolve()}")


def _print_summary(summary: GradingSummary, results: Sequence[GradingResult]) -> None:
    table = Table(title="Batch summary", box=box.SIMPLE_HEAVY)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Sheets graded", str(summary.total_sheets))
    table.add_row("Sheets with errors", str(summary.error_sheets))
    table.add_row("Duplicate sheets", str(summary.duplicate_sheets))
    table.add_row("Without combined id", str(summary.missing_combined_id))
    table.add_row("Scored", str(sum(1 for result in results if result.total_score is not None)))
    table.add_row("Roster ids not graded", str(len(summary.missing_in_grading)))
    table.add_row("Graded ids not in roster", str(len(summary.missing_in_roster)))
    console.print(table)


def _print_failures(failures: Sequence[LoadFailureItem]) -> None:
    if not failures:
        return
    counts = count_failures(failures)
    table = Table(title=f"Quarantined documents ({len(failures)})", box=box.SIMPLE_HEAVY)
    table.add_column("File", style="yellow")
    table.add_column("Reasons")
    for item in failures:
        table.add_row(item.file_name, item.failure_reason_summary)
    console.print(table)
    console.print(
        ", ".join(f"{reason.label}: {counts[reason]}" for reason in IngestFailure if counts[reason])
    )
