"""
In-memory owner of a scanning session.

Stage verdicts arrive per document and in any order. The batch keeps the raw
verdicts, rebuilds the document's sheet record from them, updates its ingest
state, and reruns duplicate detection whenever identities or membership change.
Callers on several threads must serialise access to a batch themselves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .barcode import BarcodeFieldMapper, SemanticBarcodeFieldMapper
from .duplicates import DuplicateDetector
from .ingest import IngestState, LoadFailureItem, collect_load_failures
from .marking import analyze_sheet
from .sheet import SheetRecord
from .structure import StructureConfig
from .verdicts import AlignmentVerdict, BarcodeVerdict, DocumentVerdicts, MarkVerdict

logger = logging.getLogger(__name__)


@dataclass
class _Document:
    image_id: str
    file_name: str
    barcodes: Optional[List[BarcodeVerdict]] = None
    marks: Optional[List[MarkVerdict]] = None


class IngestBatch:
    def __init__(
        self,
        structure: StructureConfig,
        *,
        mapper: Optional[BarcodeFieldMapper] = None,
        duplicate_detector: Optional[Callable[[Iterable[SheetRecord]], object]] = None,
    ) -> None:
        self.structure = structure
        self.mapper = mapper or SemanticBarcodeFieldMapper(structure)
        self._detect_duplicates = duplicate_detector or DuplicateDetector()
        self._documents: Dict[str, _Document] = {}
        self._states: Dict[str, IngestState] = {}
        self._records: Dict[str, SheetRecord] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, image_id: object) -> bool:
        return image_id in self._documents

    # Membership -----------------------------------------------------------------------

    def add_document(self, image_id: str, file_name: str) -> SheetRecord:
        """Register a document (no-op if already known) and return its record."""
        if image_id not in self._documents:
            self._documents[image_id] = _Document(image_id, file_name)
            self._states[image_id] = IngestState()
            self._rebuild(image_id)
            self.refresh_duplicates()
            logger.debug("Document %s (%s) added", image_id, file_name)
        return self._records[image_id]

    def remove(self, image_id: str) -> None:
        if self._documents.pop(image_id, None) is None:
            raise KeyError(image_id)
        self._states.pop(image_id, None)
        self._records.pop(image_id, None)
        self.refresh_duplicates()
        logger.debug("Document %s removed", image_id)

    # Stage verdicts -------------------------------------------------------------------

    def record_file_presence(self, image_id: str, exists: Optional[bool]) -> None:
        self._state(image_id).set_missing_file(exists)

    def record_alignment(self, image_id: str, alignment: Optional[AlignmentVerdict]) -> None:
        value = None if alignment is None else alignment.success
        self._state(image_id).set_aligned_ok(value)

    def record_barcodes(
        self,
        image_id: str,
        barcodes: Optional[Sequence[BarcodeVerdict]],
    ) -> SheetRecord:
        """
        Store a barcode decode run and update the barcode and combined-id stages.

        ``None`` means the barcodes could not be attempted (for example the sheet
        did not align): both stages go back to unknown.
        """
        document = self._document(image_id)
        document.barcodes = None if barcodes is None else list(barcodes)
        record = self._rebuild(image_id)

        state = self._states[image_id]
        if barcodes is None:
            state.set_barcode_ok(None)
            state.set_combined_id_ok(None)
        else:
            configured = list(barcodes)[: self.structure.barcode_slot_count]
            barcode_ok = len(configured) > 0 and all(barcode.success for barcode in configured)
            state.set_barcode_ok(barcode_ok)
            if barcode_ok:
                combined = record.combined_id
                state.set_combined_id_ok(bool(combined and combined.strip()))
            else:
                state.set_combined_id_ok(None)

        self.refresh_duplicates()
        return record

    def record_marks(self, image_id: str, marks: Optional[Sequence[MarkVerdict]]) -> SheetRecord:
        self._document(image_id).marks = None if marks is None else list(marks)
        record = self._rebuild(image_id)
        self.refresh_duplicates()
        return record

    def set_quarantine_override(self, image_id: str, value: Optional[bool]) -> None:
        self._state(image_id).quarantine_override = value

    def ingest(self, verdicts: DocumentVerdicts) -> SheetRecord:
        """Feed every stage present in ``verdicts`` for one document."""
        self.add_document(verdicts.image_id, verdicts.file_name)
        if verdicts.file_exists is not None:
            self.record_file_presence(verdicts.image_id, verdicts.file_exists)
        if verdicts.alignment is not None:
            self.record_alignment(verdicts.image_id, verdicts.alignment)
        if verdicts.barcodes is not None:
            self.record_barcodes(verdicts.image_id, verdicts.barcodes)
        if verdicts.marks is not None:
            self.record_marks(verdicts.image_id, verdicts.marks)
        return self._records[verdicts.image_id]

    def ingest_all(self, documents: Iterable[DocumentVerdicts]) -> None:
        for verdicts in documents:
            self.ingest(verdicts)
        logger.info("Ingested %d document(s)", len(self))

    # Views ------------------------------------------------------------------------------

    def record(self, image_id: str) -> SheetRecord:
        return self._records[image_id]

    def state(self, image_id: str) -> IngestState:
        return self._states[image_id]

    def records(self) -> List[SheetRecord]:
        return list(self._records.values())

    def states(self) -> Dict[str, IngestState]:
        return dict(self._states)

    def quarantined(self) -> List[SheetRecord]:
        return [self._records[key] for key, state in self._states.items() if state.is_quarantined]

    def accepted_records(self) -> List[SheetRecord]:
        return [self._records[key] for key, state in self._states.items() if not state.is_quarantined]

    def load_failures(self) -> List[LoadFailureItem]:
        file_names = {key: document.file_name for key, document in self._documents.items()}
        return collect_load_failures(self._states, file_names)

    def refresh_duplicates(self) -> None:
        self._detect_duplicates(self._records.values())

    # Internals ------------------------------------------------------------------------

    def _document(self, image_id: str) -> _Document:
        try:
            return self._documents[image_id]
        except KeyError:
            raise KeyError(f"Unknown document: {image_id}") from None

    def _state(self, image_id: str) -> IngestState:
        self._document(image_id)
        return self._states[image_id]

    def _rebuild(self, image_id: str) -> SheetRecord:
        # Records are rebuilt in place from the stored verdicts, so a re-decoded
        # barcode replaces the previous identity and its error text.
        document = self._documents[image_id]
        record = analyze_sheet(
            document.image_id,
            document.file_name,
            self.structure,
            barcodes=document.barcodes,
            marks=document.marks,
            mapper=self.mapper,
            record=self._records.get(image_id),
        )
        self._records[image_id] = record
        return record
