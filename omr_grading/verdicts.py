"""
Verdicts reported by the image pipeline (alignment, barcode decoding and mark
detection). The engine only consumes these; producing them is someone else's job.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .utils import read_json


class VerdictError(ValueError):
    """Raised when a verdict file cannot be decoded."""


@dataclass(frozen=True)
class AlignmentVerdict:
    success: bool
    confidence: float = 0.0
    aligned_image_path: Optional[str] = None


@dataclass(frozen=True)
class BarcodeVerdict:
    success: bool
    decoded_text: Optional[str] = None
    format: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class MarkVerdict:
    """Detection outcome for a single scoring area."""

    question: int
    option: int
    is_marked: bool
    average_brightness: float = 0.0


@dataclass
class DocumentVerdicts:
    """Everything the pipeline reported about one scanned document."""

    image_id: str
    file_name: str
    file_exists: Optional[bool] = None
    alignment: Optional[AlignmentVerdict] = None
    barcodes: Optional[List[BarcodeVerdict]] = None
    marks: Optional[List[MarkVerdict]] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)


def _coerce_bool(value: Any, *, where: str) -> bool:
    if isinstance(value, bool):
        return value
    raise VerdictError(f"{where}: expected a boolean, got {value!r}")


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def alignment_from_dict(data: Mapping[str, Any], *, where: str = "alignment") -> AlignmentVerdict:
    try:
        confidence = float(data.get("confidence", 0.0) or 0.0)
    except (TypeError, ValueError) as exc:
        raise VerdictError(f"{where}: invalid confidence {data.get('confidence')!r}") from exc
    return AlignmentVerdict(
        success=_coerce_bool(data.get("success"), where=f"{where}.success"),
        confidence=confidence,
        aligned_image_path=_optional_str(data.get("aligned_image_path")),
    )


def barcode_from_dict(data: Mapping[str, Any], *, where: str = "barcode") -> BarcodeVerdict:
    return BarcodeVerdict(
        success=_coerce_bool(data.get("success"), where=f"{where}.success"),
        decoded_text=_optional_str(data.get("decoded_text")),
        format=_optional_str(data.get("format")),
        error_message=_optional_str(data.get("error_message")),
    )


def mark_from_dict(data: Mapping[str, Any], *, where: str = "mark") -> MarkVerdict:
    try:
        question = int(data["question"])
        option = int(data["option"])
        brightness = float(data.get("average_brightness", 0.0) or 0.0)
    except (KeyError, TypeError, ValueError) as exc:
        raise VerdictError(f"{where}: question/option/brightness missing or invalid") from exc
    return MarkVerdict(
        question=question,
        option=option,
        is_marked=_coerce_bool(data.get("is_marked"), where=f"{where}.is_marked"),
        average_brightness=brightness,
    )


def document_from_dict(data: Mapping[str, Any], *, index: int = 0) -> DocumentVerdicts:
    """
    Decode one document entry of a verdict file.

    Missing sections stay ``None``, which the ingest layer treats as "no verdict yet".
    """
    if not isinstance(data, Mapping):
        raise VerdictError(f"document #{index}: expected a mapping")
    image_id = data.get("image_id")
    if not image_id:
        raise VerdictError(f"document #{index}: 'image_id' is required")
    where = f"document {image_id}"

    alignment = None
    if data.get("alignment") is not None:
        alignment = alignment_from_dict(data["alignment"], where=f"{where}.alignment")

    barcodes = None
    if data.get("barcodes") is not None:
        barcodes = [
            barcode_from_dict(item, where=f"{where}.barcodes[{slot}]")
            for slot, item in enumerate(data["barcodes"])
        ]

    marks = None
    if data.get("marks") is not None:
        marks = [
            mark_from_dict(item, where=f"{where}.marks[{pos}]")
            for pos, item in enumerate(data["marks"])
        ]

    file_exists = data.get("file_exists")
    if file_exists is not None:
        file_exists = _coerce_bool(file_exists, where=f"{where}.file_exists")

    known = {"image_id", "file_name", "file_exists", "alignment", "barcodes", "marks"}
    return DocumentVerdicts(
        image_id=str(image_id),
        file_name=str(data.get("file_name") or image_id),
        file_exists=file_exists,
        alignment=alignment,
        barcodes=barcodes,
        marks=marks,
        extra={key: value for key, value in data.items() if key not in known},
    )


def load_verdicts(path: Path) -> List[DocumentVerdicts]:
    """
    Load a JSON verdict file: either a list of documents or ``{"documents": [...]}``.
    """
    if not path.exists():
        raise VerdictError(f"Verdict file not found: {path}")
    try:
        data = read_json(path)
    except json.JSONDecodeError as exc:
        raise VerdictError(f"Verdict file is not valid JSON: {path} ({exc})") from exc
    if isinstance(data, Mapping):
        data = data.get("documents")
    if not isinstance(data, list):
        raise VerdictError("Verdict file should contain a list of documents.")
    return [document_from_dict(item, index=index) for index, item in enumerate(data)]
