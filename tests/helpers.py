from __future__ import annotations

from typing import Dict, List, Optional

from omr_grading.structure import StructureConfig
from omr_grading.verdicts import BarcodeVerdict, MarkVerdict


def make_marks(
    structure: StructureConfig,
    answers: Dict[int, List[int]],
) -> List[MarkVerdict]:
    """One verdict per scoring area; ``answers`` lists the marked options per question."""
    marks: List[MarkVerdict] = []
    for question in structure.question_numbers():
        chosen = set(answers.get(question, []))
        for option in structure.option_numbers():
            marked = option in chosen
            marks.append(
                MarkVerdict(
                    question=question,
                    option=option,
                    is_marked=marked,
                    average_brightness=60.0 if marked else 220.0,
                )
            )
    return marks


def ok_barcode(text: Optional[str]) -> BarcodeVerdict:
    return BarcodeVerdict(success=True, decoded_text=text, format="CODE_128")


def failed_barcode() -> BarcodeVerdict:
    return BarcodeVerdict(success=False, error_message="no barcode found")
