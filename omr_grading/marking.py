"""
Turn raw barcode and mark-detection verdicts into a :class:`SheetRecord`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .barcode import BarcodeFieldMapper, SemanticBarcodeFieldMapper
from .sheet import SheetRecord
from .structure import StructureConfig
from .verdicts import BarcodeVerdict, MarkVerdict

logger = logging.getLogger(__name__)

COMBINED_ID_MISSING_MESSAGE = "combined id missing"


@dataclass(frozen=True)
class QuestionMarking:
    """Resolved answer for one question and, if it is ambiguous, why."""

    question: int
    option: Optional[int]
    marked_options: Tuple[int, ...]
    error: Optional[str] = None


def resolve_question(question: int, marks: Sequence[MarkVerdict]) -> QuestionMarking:
    """
    Apply the single-mark rule: exactly one marked option yields that option,
    zero or several marked options yield no answer.
    """
    if not marks:
        return QuestionMarking(question, None, (), f"question {question}: no mark results")
    marked = tuple(sorted({mark.option for mark in marks if mark.is_marked}))
    if not marked:
        return QuestionMarking(question, None, marked, f"question {question}: no mark")
    if len(marked) > 1:
        listed = ", ".join(str(option) for option in marked)
        return QuestionMarking(
            question, None, marked, f"question {question}: multiple marks ({listed})"
        )
    return QuestionMarking(question, marked[0], marked)


def resolve_markings(
    marks: Sequence[MarkVerdict],
    structure: StructureConfig,
) -> List[QuestionMarking]:
    """Resolve every question of the structure; out-of-range verdicts are ignored."""
    grouped: Dict[int, List[MarkVerdict]] = {
        question: [] for question in structure.question_numbers()
    }
    for mark in marks:
        if mark.question in grouped and structure.is_valid_option(mark.option):
            grouped[mark.question].append(mark)
    return [resolve_question(question, grouped[question]) for question in grouped]


def apply_markings(
    record: SheetRecord,
    marks: Sequence[MarkVerdict],
    structure: StructureConfig,
) -> None:
    expected = structure.total_scoring_areas
    if len(marks) < expected:
        record.add_error(f"scoring areas short: expected {expected}, got {len(marks)}")
        return
    for resolved in resolve_markings(marks, structure):
        record.set_marking(resolved.question, resolved.option)
        if resolved.error:
            record.add_error(resolved.error)


def analyze_sheet(
    image_id: str,
    file_name: str,
    structure: StructureConfig,
    *,
    barcodes: Optional[Sequence[BarcodeVerdict]] = None,
    marks: Optional[Sequence[MarkVerdict]] = None,
    mapper: Optional[BarcodeFieldMapper] = None,
    record: Optional[SheetRecord] = None,
) -> SheetRecord:
    """
    Build a sheet record from whatever verdicts are available so far.

    When ``record`` is given it is reset and filled in place, so holders of that
    object see the new identity and markings.

    Missing ``barcodes`` or ``marks`` mean that stage has not reported yet and
    leave the corresponding fields empty. Once barcodes are known, a sheet with
    neither identity is flagged with ``combined id missing``.
    """
    mapper = mapper or SemanticBarcodeFieldMapper(structure)
    if record is None:
        record = SheetRecord(
            image_id=image_id,
            image_file_name=file_name,
            question_count=structure.question_count,
        )
    else:
        record.reset()

    if barcodes is not None:
        for slot, barcode in enumerate(barcodes[: structure.barcode_slot_count]):
            mapper.apply_barcode_result(record, barcode, slot)

    if marks is not None:
        apply_markings(record, marks, structure)

    if barcodes is not None and not record.combined_id:
        record.add_error(COMBINED_ID_MISSING_MESSAGE)

    if record.has_errors:
        logger.debug("Sheet %s analysed with errors: %s", image_id, record.error_message)
    return record
