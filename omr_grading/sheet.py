"""
Per-sheet aggregate built while a scanned document is ingested.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

ERROR_SEPARATOR = "; "

ROOM_NUMBER_RANGE = (1, 12)


class Session(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"


_SESSION_CODES = {
    "91": Session.MORNING,
    "92": Session.AFTERNOON,
}


def combine_ids(student_id: Optional[str], interview_id: Optional[str]) -> Optional[str]:
    """
    Concatenate both identities without a separator; fall back to whichever one exists.
    """
    if not student_id and not interview_id:
        return None
    if not student_id:
        return interview_id
    if not interview_id:
        return student_id
    return f"{student_id}{interview_id}"


def session_from_student_id(student_id: Optional[str]) -> Optional[Session]:
    if not student_id or len(student_id) < 2:
        return None
    return _SESSION_CODES.get(student_id[:2])


def room_from_student_id(student_id: Optional[str]) -> Optional[str]:
    if not student_id or len(student_id) < 4:
        return None
    code = student_id[2:4]
    if not (code.isascii() and code.isdigit()):
        return None
    low, high = ROOM_NUMBER_RANGE
    return code if low <= int(code) <= high else None


def order_from_student_id(student_id: Optional[str]) -> Optional[str]:
    if not student_id or len(student_id) < 6:
        return None
    return student_id[4:6]


@dataclass
class SheetRecord:
    """Decoded identity, per-question marking and error text for one sheet."""

    image_id: str
    image_file_name: str
    question_count: int = 4
    student_id: Optional[str] = None
    interview_id: Optional[str] = None
    question_markings: List[Optional[int]] = field(default_factory=list)
    has_errors: bool = False
    error_message: Optional[str] = None
    is_duplicate: bool = False
    duplicate_count: int = 1
    # Identity fields decoded from barcode slots other than student/interview id.
    extra_fields: Dict[str, Optional[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        markings = list(self.question_markings)[: self.question_count]
        markings.extend([None] * (self.question_count - len(markings)))
        self.question_markings = markings

    def reset(self) -> None:
        """Clear everything decoded so far; the document identity is kept."""
        self.student_id = None
        self.interview_id = None
        self.question_markings = [None] * self.question_count
        self.has_errors = False
        self.error_message = None
        self.is_duplicate = False
        self.duplicate_count = 1
        self.extra_fields.clear()

    def marking(self, question: int) -> Optional[int]:
        if not 1 <= question <= self.question_count:
            return None
        return self.question_markings[question - 1]

    def set_marking(self, question: int, option: Optional[int]) -> None:
        if not 1 <= question <= self.question_count:
            raise ValueError(f"Question {question} outside [1, {self.question_count}]")
        self.question_markings[question - 1] = option

    def add_error(self, message: str) -> None:
        """
        Flag the sheet and append ``message``; previous text is never overwritten.

        A message already present is not appended twice, so replaying the same
        stage verdict leaves the text unchanged.
        """
        self.has_errors = True
        if message in self.error_messages():
            return
        if self.error_message:
            self.error_message = f"{self.error_message}{ERROR_SEPARATOR}{message}"
        else:
            self.error_message = message

    def error_messages(self) -> List[str]:
        if not self.error_message:
            return []
        return self.error_message.split(ERROR_SEPARATOR)

    def identity_field(self, name: str) -> Optional[str]:
        return self.extra_fields.get(name)

    @property
    def combined_id(self) -> Optional[str]:
        return combine_ids(self.student_id, self.interview_id)

    @property
    def session(self) -> Optional[Session]:
        return session_from_student_id(self.student_id)

    @property
    def room_number(self) -> Optional[str]:
        return room_from_student_id(self.student_id)

    @property
    def order_number(self) -> Optional[str]:
        return order_from_student_id(self.student_id)

    @property
    def is_error_only(self) -> bool:
        return self.has_errors and not self.is_duplicate

    @property
    def marked_question_count(self) -> int:
        return sum(1 for value in self.question_markings if value is not None)
