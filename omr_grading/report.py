"""
Utility helpers to export graded results as CSV, XLSX or a Markdown summary.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl import Workbook

from .grading import GradingResult, GradingSummary
from .ingest import LoadFailureItem
from .utils import write_text

BASE_COLUMNS = [
    "image_id",
    "file",
    "student_id",
    "interview_id",
    "combined_id",
    "session",
    "room",
    "order",
    "name",
    "group",
    "registration_number",
    "middle_school",
]

TAIL_COLUMNS = [
    "total_score",
    "average_score",
    "rank",
    "duplicate",
    "duplicate_count",
    "errors",
]


def result_columns(question_count: int) -> List[str]:
    return BASE_COLUMNS + [f"q{number}" for number in range(1, question_count + 1)] + TAIL_COLUMNS


def _format_score(value: Optional[float]) -> str:
    return "" if value is None else f"{value:.2f}"


def result_row(result: GradingResult) -> Dict[str, Any]:
    """
    Flatten a graded result into a row keyed by :func:`result_columns`.
    """
    row: Dict[str, Any] = {
        "image_id": result.image_id,
        "file": result.image_file_name,
        "student_id": result.student_id or "",
        "interview_id": result.interview_id or "",
        "combined_id": result.combined_id or "",
        "session": result.session.value if result.session else "",
        "room": result.room_number or "",
        "order": result.order_number or "",
        "name": result.student_name or "",
        "group": result.group or "",
        "registration_number": result.registration_number or "",
        "middle_school": result.middle_school or "",
        "total_score": _format_score(result.total_score),
        "average_score": _format_score(result.average_score),
        "rank": "" if result.rank is None else result.rank,
        "duplicate": "yes" if result.is_duplicate else "",
        "duplicate_count": result.duplicate_count,
        "errors": result.error_message or "",
    }
    for number, marking in enumerate(result.question_markings, start=1):
        row[f"q{number}"] = "" if marking is None else marking
    return row


def write_results_csv(
    results: Sequence[GradingResult],
    out_csv: Path,
    question_count: int,
) -> None:
    fieldnames = result_columns(question_count)
    with out_csv.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fieldnames, extrasaction="ignore")
        writer.writeheader()
        for result in results:
            writer.writerow(result_row(result))


def write_results_xlsx(
    results: Sequence[GradingResult],
    out_xlsx: Path,
    question_count: int,
    *,
    failures: Optional[Sequence[LoadFailureItem]] = None,
) -> None:
    """
    Write the results sheet and, when given, a second sheet listing quarantined documents.
    """
    fieldnames = result_columns(question_count)
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "results"
    sheet.append(fieldnames)
    for result in results:
        row = result_row(result)
        sheet.append([row.get(name, "") for name in fieldnames])

    if failures:
        failure_sheet = workbook.create_sheet("load_failures")
        failure_sheet.append(["image_id", "file", "reasons"])
        for item in failures:
            failure_sheet.append([item.image_id, item.file_name, item.failure_reason_summary])

    workbook.save(out_xlsx)


def build_markdown_report(
    results: Iterable[GradingResult],
    summary: GradingSummary,
    out_markdown: Path,
    *,
    failures: Sequence[LoadFailureItem] = (),
) -> None:
    """
    Produce a Markdown report: batch counts, quarantined documents, then one line per sheet.
    """
    lines = [
        "# Grading report",
        "",
        f"- Sheets: {summary.total_sheets}",
        f"- Sheets with errors: {summary.error_sheets}",
        f"- Duplicate sheets: {summary.duplicate_sheets}",
        f"- Sheets without combined id: {summary.missing_combined_id}",
    ]
    if summary.missing_in_grading:
        lines.append(f"- In roster but not graded: {', '.join(summary.missing_in_grading)}")
    if summary.missing_in_roster:
        lines.append(f"- Graded but not in roster: {', '.join(summary.missing_in_roster)}")
    lines.append("")

    if failures:
        lines.extend(["## Quarantined documents", ""])
        for item in failures:
            lines.append(f"- `{item.file_name}`: {item.failure_reason_summary}")
        lines.append("")

    lines.extend(
        [
            "## Results",
            "",
            "| File | Student | Name | Total | Average | Rank | Notes |",
            "|---|---|---|---|---|---|---|",
        ]
    )
    for result in results:
        notes = result.error_message or ""
        if result.is_duplicate:
            notes = f"duplicate x{result.duplicate_count}" + (f"; {notes}" if notes else "")
        lines.append(
            "| {file} | {student} | {name} | {total} | {average} | {rank} | {notes} |".format(
                file=result.image_file_name,
                student=result.student_id or "",
                name=result.student_name or "",
                total=_format_score(result.total_score) or "N/A",
                average=_format_score(result.average_score),
                rank="" if result.rank is None else result.rank,
                notes=notes.replace("|", "/"),
            )
        )

    write_text(out_markdown, "\n".join(lines).strip() + "\n")
