"""
Ordering and filtering helpers for the operator review lists.

Both :class:`~omr_grading.sheet.SheetRecord` and
:class:`~omr_grading.grading.GradingResult` expose the attributes used here.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Optional, Protocol, Tuple, TypeVar

ALL = "all"


class Reviewable(Protocol):
    student_id: Optional[str]
    image_file_name: str
    is_duplicate: bool

    @property
    def is_error_only(self) -> bool: ...


R = TypeVar("R", bound=Reviewable)


class FilterMode(str, Enum):
    ALL = "all"
    ERRORS = "errors"
    DUPLICATES = "duplicates"


def review_sort_key(item: Reviewable) -> Tuple[int, str, str]:
    """Duplicates first, then sheets with plain errors, then clean sheets."""
    if item.is_duplicate:
        bucket = 0
    elif item.is_error_only:
        bucket = 1
    else:
        bucket = 2
    return bucket, item.student_id or "", item.image_file_name


def sort_for_review(items: Iterable[R]) -> List[R]:
    return sorted(items, key=review_sort_key)


def passes_mode(item: Reviewable, mode: FilterMode) -> bool:
    if mode is FilterMode.ERRORS:
        return item.is_error_only
    if mode is FilterMode.DUPLICATES:
        return item.is_duplicate
    return True


def filter_by_mode(items: Iterable[R], mode: FilterMode) -> List[R]:
    return [item for item in items if passes_mode(item, mode)]


def selection_options(values: Iterable[Optional[str]]) -> List[str]:
    """
    Distinct non-empty values sorted numerically (non-numeric last), prefixed by ``ALL``.
    """
    distinct = {value for value in values if value and value.strip()}

    def _numeric(value: str) -> Tuple[int, str]:
        return (int(value), value) if value.isascii() and value.isdigit() else (2**31 - 1, value)

    return [ALL, *sorted(distinct, key=_numeric)]


def passes_selection(selected: Optional[str], actual: Optional[str]) -> bool:
    if not selected or selected == ALL:
        return True
    return actual == selected
