"""
Per-document ingest tracking.

Each scanned document goes through independent checks (alignment, barcode
decoding, combined id, file presence). Their verdicts arrive in any order and
may be repeated; :class:`IngestState` folds them into a set of failure reasons
and a single quarantine decision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set

logger = logging.getLogger(__name__)


class IngestFailure(str, Enum):
    ALIGN_FAILED = "align_failed"
    BARCODE_FAILED = "barcode_failed"
    COMBINED_ID_MISSING = "combined_id_missing"
    MISSING_FILE = "missing_file"

    @property
    def label(self) -> str:
        return _FAILURE_LABELS[self]


_FAILURE_LABELS = {
    IngestFailure.ALIGN_FAILED: "alignment failed",
    IngestFailure.BARCODE_FAILED: "barcode failed",
    IngestFailure.COMBINED_ID_MISSING: "combined id missing",
    IngestFailure.MISSING_FILE: "file missing",
}


@dataclass
class IngestState:
    """
    Tri-state verdicts for one document plus the accumulated failure reasons.

    Each setter accepts ``True`` (check passed, clears the matching reason),
    ``False`` (check failed, records the reason) or ``None`` (no verdict yet,
    reasons untouched). Repeating the same verdict is a no-op.
    """

    aligned_ok: Optional[bool] = None
    barcode_ok: Optional[bool] = None
    combined_id_ok: Optional[bool] = None
    missing_file: Optional[bool] = None
    failure_reasons: Set[IngestFailure] = field(default_factory=set)
    quarantine_override: Optional[bool] = None
    evaluated: bool = field(default=False, init=False, repr=False)

    def set_aligned_ok(self, value: Optional[bool]) -> None:
        self.aligned_ok = value
        self._update_reason(value, IngestFailure.ALIGN_FAILED)

    def set_barcode_ok(self, value: Optional[bool]) -> None:
        self.barcode_ok = value
        self._update_reason(value, IngestFailure.BARCODE_FAILED)

    def set_combined_id_ok(self, value: Optional[bool]) -> None:
        self.combined_id_ok = value
        self._update_reason(value, IngestFailure.COMBINED_ID_MISSING)

    def set_missing_file(self, value: Optional[bool]) -> None:
        """``True`` means the file-presence check passed."""
        self.missing_file = value
        self._update_reason(value, IngestFailure.MISSING_FILE)

    def _update_reason(self, value: Optional[bool], reason: IngestFailure) -> None:
        if value is not None:
            self.evaluated = True
        if value is True:
            self.failure_reasons.discard(reason)
        elif value is False:
            self.failure_reasons.add(reason)

    @property
    def reasons(self) -> FrozenSet[IngestFailure]:
        return frozenset(self.failure_reasons)

    def has_reason(self, reason: IngestFailure) -> bool:
        return reason in self.failure_reasons

    @property
    def is_quarantined(self) -> bool:
        if self.quarantine_override is not None:
            return self.quarantine_override
        return bool(self.failure_reasons)

    @property
    def is_unknown(self) -> bool:
        return (
            not self.evaluated
            and self.aligned_ok is None
            and self.barcode_ok is None
            and self.combined_id_ok is None
            and self.missing_file is None
            and not self.failure_reasons
            and self.quarantine_override is None
        )


def summarise_failures(reasons: Iterable[IngestFailure]) -> str:
    """Human-readable, stable-ordered summary of failure reasons."""
    present = set(reasons)
    labels = [reason.label for reason in IngestFailure if reason in present]
    return ", ".join(labels) if labels else "none"


@dataclass(frozen=True)
class LoadFailureItem:
    """A quarantined document as presented to the operator."""

    image_id: str
    file_name: str
    failure_reasons: FrozenSet[IngestFailure]
    failure_reason_summary: str


def collect_load_failures(
    states: Mapping[str, IngestState],
    file_names: Mapping[str, str],
) -> List[LoadFailureItem]:
    """
    Build the load-failure listing for every quarantined document, ordered by file name.
    """
    items: List[LoadFailureItem] = []
    for image_id, state in states.items():
        if not state.is_quarantined:
            continue
        reasons = state.reasons
        items.append(
            LoadFailureItem(
                image_id=image_id,
                file_name=file_names.get(image_id, image_id),
                failure_reasons=reasons,
                failure_reason_summary=summarise_failures(reasons),
            )
        )
    items.sort(key=lambda item: (item.file_name, item.image_id))
    logger.debug("%d document(s) quarantined out of %d", len(items), len(states))
    return items


def count_failures(items: Iterable[LoadFailureItem]) -> Dict[IngestFailure, int]:
    counts = {reason: 0 for reason in IngestFailure}
    for item in items:
        for reason in item.failure_reasons:
            counts[reason] += 1
    return counts
