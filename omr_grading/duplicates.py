"""
Combined-id duplicate detection over a whole batch of sheet records.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from .sheet import SheetRecord

logger = logging.getLogger(__name__)


def group_by_combined_id(records: Iterable[SheetRecord]) -> Dict[str, List[SheetRecord]]:
    groups: Dict[str, List[SheetRecord]] = {}
    for record in records:
        key = record.combined_id
        if key:
            groups.setdefault(key, []).append(record)
    return groups


def find_duplicates(records: Iterable[SheetRecord]) -> Dict[str, List[SheetRecord]]:
    """Return only the combined-id groups holding more than one sheet."""
    return {
        key: members
        for key, members in group_by_combined_id(records).items()
        if len(members) > 1
    }


def detect_duplicates(records: Iterable[SheetRecord]) -> Dict[str, List[SheetRecord]]:
    """
    Recompute ``is_duplicate`` / ``duplicate_count`` on every record of the batch.

    Every record is reset first, so the outcome depends only on the current
    membership, never on call order or on earlier runs. Identity fields and
    error text are left alone. Returns the duplicate groups.
    """
    records = list(records)
    for record in records:
        record.is_duplicate = False
        record.duplicate_count = 1

    duplicates = find_duplicates(records)
    for members in duplicates.values():
        for record in members:
            record.is_duplicate = True
            record.duplicate_count = len(members)

    if duplicates:
        logger.info(
            "%d combined id(s) duplicated across %d sheet(s)",
            len(duplicates),
            sum(len(members) for members in duplicates.values()),
        )
    return duplicates


class DuplicateDetector:
    """Callable wrapper so the batch owner can swap detection strategies."""

    def __call__(self, records: Iterable[SheetRecord]) -> Dict[str, List[SheetRecord]]:
        return detect_duplicates(records)
