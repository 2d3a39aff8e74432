"""
Strategies mapping a decoded barcode slot onto a field of a :class:`SheetRecord`.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

from .sheet import SheetRecord
from .structure import INTERVIEW_ID, STUDENT_ID, StructureConfig
from .verdicts import BarcodeVerdict

logger = logging.getLogger(__name__)


def semantic_label(semantic: str) -> str:
    """``"StudentId"`` -> ``"student-id"``."""
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "-", semantic).lower()


def empty_value_message(semantic: str) -> str:
    return f"{semantic_label(semantic)} barcode value empty"


def decode_failed_message(semantic: Optional[str], slot: int) -> str:
    name = semantic if semantic else f"barcode {slot + 1}"
    return f"{name} decode failed"


class BarcodeFieldMapper(ABC):
    """Applies one slot's decode result to a sheet record."""

    @abstractmethod
    def semantic_for(self, slot: int) -> Optional[str]:
        """Return the field name carried by ``slot``, or ``None`` if unmapped."""

    @abstractmethod
    def apply_barcode_result(
        self,
        record: SheetRecord,
        barcode: BarcodeVerdict,
        slot: int,
    ) -> None:
        """Populate ``record`` from ``barcode`` decoded in ``slot``."""


class SemanticBarcodeFieldMapper(BarcodeFieldMapper):
    """
    Default mapper driven by ``StructureConfig.barcode_semantics``.

    ``StudentId`` and ``InterviewId`` land on the matching record attributes;
    any other semantic is stored in ``record.extra_fields`` under its name, so a
    layout with more identity barcodes needs configuration only.
    """

    _ATTRIBUTES = {
        STUDENT_ID: "student_id",
        INTERVIEW_ID: "interview_id",
    }

    def __init__(self, structure: StructureConfig) -> None:
        self.structure = structure

    def semantic_for(self, slot: int) -> Optional[str]:
        return self.structure.barcode_semantic(slot)

    def apply_barcode_result(
        self,
        record: SheetRecord,
        barcode: BarcodeVerdict,
        slot: int,
    ) -> None:
        if record is None:
            raise TypeError("record is required")
        if barcode is None:
            raise TypeError("barcode result is required")
        if slot < 0:
            raise ValueError(f"Barcode slot index must be >= 0, got {slot}")

        semantic = self.semantic_for(slot)
        if semantic is not None:
            value = barcode.decoded_text if barcode.success else None
            self._assign(record, semantic, value)
            if barcode.success and (value is None or not value.strip()):
                record.add_error(empty_value_message(semantic))

        if not barcode.success:
            record.add_error(decode_failed_message(semantic, slot))
            logger.debug(
                "Barcode slot %d failed for %s: %s",
                slot,
                record.image_id,
                barcode.error_message or "no detail",
            )

    def _assign(self, record: SheetRecord, semantic: str, value: Optional[str]) -> None:
        attribute = self._ATTRIBUTES.get(semantic)
        if attribute:
            setattr(record, attribute, value)
        else:
            record.extra_fields[semantic] = value
