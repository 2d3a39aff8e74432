"""
Utility helpers to load student and interviewer rosters from CSV or XLSX files.
"""

from __future__ import annotations

import csv
import logging
import re
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, TypeVar

from openpyxl import load_workbook

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StudentInfo:
    """One roster line, keyed by the student id printed on the barcode."""

    student_id: str
    name: Optional[str] = None
    group: Optional[str] = None
    interview_room: Optional[str] = None
    time: Optional[str] = None
    number: Optional[str] = None
    registration_number: Optional[str] = None
    middle_school: Optional[str] = None


@dataclass(frozen=True)
class InterviewerInfo:
    interviewer_id: str
    name: Optional[str] = None


class RosterError(RuntimeError):
    """Raised when the roster cannot be parsed."""


_STUDENT_COLUMNS: Dict[str, set[str]] = {
    "student_id": {"student id", "studentid", "exam number", "수험번호"},
    "name": {"name", "student name", "full name", "성명", "이름"},
    "group": {"group", "exam type", "track", "전형명", "전형"},
    "interview_room": {"interview room", "room", "면접실"},
    "time": {"time", "slot", "시간"},
    "number": {"number", "order", "순번", "번호"},
    "registration_number": {"registration number", "registration", "접수번호"},
    "middle_school": {"middle school", "school", "출신교명", "출신교"},
}

_INTERVIEWER_COLUMNS: Dict[str, set[str]] = {
    "interviewer_id": {"interviewer id", "interviewerid", "id", "면접위원번호"},
    "name": {"name", "interviewer name", "성명", "이름"},
}

T = TypeVar("T")


def load_students(path: Path) -> Dict[str, StudentInfo]:
    """
    Load a student roster and index it by student id.

    Raises
    ------
    RosterError
        If the file cannot be read, has no student id column, or holds no entries.
    """
    records = _load_entries(path, _STUDENT_COLUMNS, "student_id", StudentInfo)
    roster: Dict[str, StudentInfo] = {}
    for record in records:
        if record.student_id in roster:
            logger.warning("Duplicate student id %s in roster %s; keeping the first", record.student_id, path)
            continue
        roster[record.student_id] = record
    return roster


def load_interviewers(path: Path) -> Dict[str, InterviewerInfo]:
    records = _load_entries(path, _INTERVIEWER_COLUMNS, "interviewer_id", InterviewerInfo)
    return {record.interviewer_id: record for record in records}


def _load_entries(
    path: Path,
    columns: Dict[str, set[str]],
    key_field: str,
    factory: Callable[..., T],
) -> List[T]:
    if not path.exists():
        raise RosterError(f"Roster file not found: {path}")

    suffix = path.suffix.lower()
    if suffix in {".csv", ".tsv"}:
        rows = _read_csv_rows(path)
    elif suffix in {".xlsx", ".xlsm", ".xltx", ".xltm"}:
        rows = _read_xlsx_rows(path)
    else:
        raise RosterError(f"Unsupported roster format (expected CSV or XLSX): {path}")

    if rows and not any(_normalize_header(column) in columns[key_field] for column in rows[0]):
        raise RosterError(f"Roster has no '{key_field}' column: {path}")

    records: List[T] = []
    for row in rows:
        values = _map_row(row, columns)
        if not values.get(key_field):
            continue
        records.append(factory(**values))

    if not records:
        raise RosterError(f"No entries found in roster: {path}")
    logger.info("Loaded %d roster entr%s from %s", len(records), "y" if len(records) == 1 else "ies", path)
    return records


def _map_row(row: Dict[str, str], columns: Dict[str, set[str]]) -> Dict[str, Optional[str]]:
    values: Dict[str, Optional[str]] = {}
    for column, value in row.items():
        header = _normalize_header(column)
        for field_name, aliases in columns.items():
            if header in aliases and field_name not in values:
                values[field_name] = value.strip() or None
    return values


def _normalize_header(value: Optional[str]) -> str:
    if not value:
        return ""
    normalized = unicodedata.normalize("NFKC", value)
    cleaned = re.sub(r"[_\-]+", " ", normalized)
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned.strip().lower()


def _read_csv_rows(path: Path) -> List[Dict[str, str]]:
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        sample = handle.read(2048)
        handle.seek(0)
        delimiter = _detect_delimiter(sample)
        reader = csv.DictReader(handle, delimiter=delimiter)
        return [_clean_row(row) for row in reader if any(isinstance(value, str) and value.strip() for value in row.values())]


def _detect_delimiter(sample: str) -> str:
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=";,\t")
        return dialect.delimiter
    except csv.Error:
        return ";" if sample.count(";") > sample.count(",") else ","


def _read_xlsx_rows(path: Path) -> List[Dict[str, str]]:
    workbook = load_workbook(path, read_only=True, data_only=True)
    try:
        sheet = workbook.active
        headers: List[str] = []
        rows: List[Dict[str, str]] = []
        for index, row in enumerate(sheet.iter_rows(values_only=True)):
            values = [("" if cell is None else str(cell)).strip() for cell in row]
            if index == 0:
                headers = values
                continue
            if not headers:
                continue
            row_dict = {headers[i]: values[i] for i in range(min(len(headers), len(values)))}
            if any(value for value in row_dict.values()):
                rows.append(_clean_row(row_dict))
        return rows
    finally:
        workbook.close()


def _clean_row(row: Dict[str, Optional[str]]) -> Dict[str, str]:
    return {key: (value or "").strip() for key, value in row.items() if key}
