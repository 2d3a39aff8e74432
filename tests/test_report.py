from __future__ import annotations

import csv

from openpyxl import load_workbook

from omr_grading.grading import GradingResult, GradingSummary
from omr_grading.ingest import IngestFailure, LoadFailureItem
from omr_grading.report import (
    build_markdown_report,
    result_columns,
    write_results_csv,
    write_results_xlsx,
)


def sample_results():
    first = GradingResult(
        image_id="a",
        image_file_name="a.png",
        student_id="9101010101",
        interview_id="01",
        question_markings=[3, None, 3, 3],
        student_name="Kim Minji",
        total_score=15,
        average_score=17.5,
        rank=1,
        is_duplicate=True,
        duplicate_count=2,
    )
    second = GradingResult(image_id="b", image_file_name="b.png", question_markings=[None] * 4)
    second.add_error("combined id missing")
    return [first, second]


def sample_failures():
    return [
        LoadFailureItem(
            image_id="z",
            file_name="z.png",
            failure_reasons=frozenset({IngestFailure.MISSING_FILE}),
            failure_reason_summary="file missing",
        )
    ]


def test_result_columns_place_questions_before_totals():
    columns = result_columns(2)
    assert columns[columns.index("middle_school") + 1 : columns.index("total_score")] == ["q1", "q2"]


def test_write_results_csv(tmp_path):
    out = tmp_path / "results.csv"
    write_results_csv(sample_results(), out, 4)
    with out.open(encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert rows[0]["combined_id"] == "910101010101"
    assert rows[0]["session"] == "morning"
    assert rows[0]["room"] == "01"
    assert rows[0]["q2"] == ""
    assert rows[0]["q3"] == "3"
    assert rows[0]["total_score"] == "15.00"
    assert rows[0]["duplicate"] == "yes"
    assert rows[1]["total_score"] == ""
    assert rows[1]["errors"] == "combined id missing"


def test_write_results_xlsx_with_failures(tmp_path):
    out = tmp_path / "results.xlsx"
    write_results_xlsx(sample_results(), out, 4, failures=sample_failures())
    workbook = load_workbook(out)
    assert workbook.sheetnames == ["results", "load_failures"]
    header = [cell.value for cell in workbook["results"][1]]
    assert header == result_columns(4)
    assert workbook["load_failures"]["C2"].value == "file missing"


def test_markdown_report(tmp_path):
    out = tmp_path / "report.md"
    summary = GradingSummary(
        total_sheets=2,
        error_sheets=1,
        duplicate_sheets=1,
        missing_combined_id=1,
        missing_in_grading=["9102020202"],
        missing_in_roster=[],
    )
    build_markdown_report(sample_results(), summary, out, failures=sample_failures())
    text = out.read_text(encoding="utf-8")
    assert text.startswith("# Grading report")
    assert "- In roster but not graded: 9102020202" in text
    assert "- `z.png`: file missing" in text
    assert "| a.png | 9101010101 | Kim Minji | 15.00 | 17.50 | 1 | duplicate x2 |" in text
    assert "| b.png |  |  | N/A |  |  | combined id missing |" in text
