"""
Sheet geometry constants and their validation.

A :class:`StructureConfig` is built once at startup, validated, and then passed
to every component that needs to know how many questions, options or barcode
slots a sheet carries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from .utils import read_yaml

logger = logging.getLogger(__name__)

STUDENT_ID = "StudentId"
INTERVIEW_ID = "InterviewId"

QUESTION_COUNT_RANGE = (1, 20)
OPTIONS_PER_QUESTION_RANGE = (2, 26)
TIMING_MARK_COUNT_RANGE = (3, 10)
BARCODE_SLOT_COUNT_RANGE = (1, 5)

_YAML_KEYS = {
    "question_count",
    "options_per_question",
    "timing_mark_count",
    "barcode_slot_count",
    "barcode_semantics",
}


class ConfigurationError(RuntimeError):
    """Raised when the sheet structure (or a file describing it) is unusable."""


@dataclass(frozen=True)
class StructureConfig:
    """Immutable description of the sheet layout."""

    question_count: int = 4
    options_per_question: int = 12
    timing_mark_count: int = 5
    barcode_slot_count: int = 2
    barcode_semantics: Mapping[int, str] = field(
        default_factory=lambda: {0: STUDENT_ID, 1: INTERVIEW_ID},
        hash=False,
    )

    def __post_init__(self) -> None:
        # Read-only after construction.
        object.__setattr__(
            self,
            "barcode_semantics",
            MappingProxyType(dict(self.barcode_semantics)),
        )

    @classmethod
    def default(cls) -> "StructureConfig":
        return cls().validate()

    @property
    def total_scoring_areas(self) -> int:
        return self.question_count * self.options_per_question

    def question_numbers(self) -> range:
        return range(1, self.question_count + 1)

    def option_numbers(self) -> range:
        return range(1, self.options_per_question + 1)

    def is_valid_question(self, number: int) -> bool:
        return 1 <= number <= self.question_count

    def is_valid_option(self, number: int) -> bool:
        return 1 <= number <= self.options_per_question

    def barcode_semantic(self, slot: int) -> Optional[str]:
        """Return the field name decoded from ``slot``, or ``None`` when unmapped."""
        return self.barcode_semantics.get(slot)

    def validation_errors(self) -> List[str]:
        errors: List[str] = []
        checks = (
            ("question_count", self.question_count, QUESTION_COUNT_RANGE),
            ("options_per_question", self.options_per_question, OPTIONS_PER_QUESTION_RANGE),
            ("timing_mark_count", self.timing_mark_count, TIMING_MARK_COUNT_RANGE),
            ("barcode_slot_count", self.barcode_slot_count, BARCODE_SLOT_COUNT_RANGE),
        )
        for name, value, (low, high) in checks:
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append(f"{name} must be an integer, got {value!r}")
            elif not low <= value <= high:
                errors.append(f"{name} must be within [{low}, {high}], got {value}")

        slot_count = self.barcode_slot_count
        slot_count_ok = isinstance(slot_count, int) and not isinstance(slot_count, bool)
        if slot_count_ok and len(self.barcode_semantics) > slot_count:
            errors.append(
                f"barcode_semantics defines {len(self.barcode_semantics)} slot(s) "
                f"but only {self.barcode_slot_count} barcode slot(s) exist"
            )
        for slot, semantic in self.barcode_semantics.items():
            if isinstance(slot, bool) or not isinstance(slot, int) or slot < 0:
                errors.append(f"barcode slot index must be a non-negative integer, got {slot!r}")
            elif slot_count_ok and slot >= slot_count:
                errors.append(
                    f"barcode slot {slot} is outside [0, {self.barcode_slot_count})"
                )
            if not isinstance(semantic, str) or not semantic.strip():
                errors.append(f"barcode slot {slot!r} has an empty semantic name")
        return errors

    def validate(self) -> "StructureConfig":
        """
        Check every structural constraint and return ``self``.

        Raises
        ------
        ConfigurationError
            If any constraint is violated. All violations are reported at once.
        """
        errors = self.validation_errors()
        if errors:
            raise ConfigurationError("Invalid sheet structure: " + "; ".join(errors))
        logger.debug(
            "Structure validated: %d question(s) x %d option(s), %d barcode slot(s)",
            self.question_count,
            self.options_per_question,
            self.barcode_slot_count,
        )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_count": self.question_count,
            "options_per_question": self.options_per_question,
            "timing_mark_count": self.timing_mark_count,
            "barcode_slot_count": self.barcode_slot_count,
            "barcode_semantics": dict(self.barcode_semantics),
        }


def structure_from_mapping(data: Mapping[str, Any]) -> StructureConfig:
    """
    Build and validate a structure from a plain mapping (typically parsed YAML).
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError("Structure definition should be a mapping.")
    unknown = sorted(set(data) - _YAML_KEYS)
    if unknown:
        raise ConfigurationError(f"Unknown structure key(s): {', '.join(map(str, unknown))}")

    kwargs: Dict[str, Any] = {key: data[key] for key in _YAML_KEYS if key in data}
    if "barcode_semantics" in kwargs:
        raw = kwargs["barcode_semantics"] or {}
        if not isinstance(raw, Mapping):
            raise ConfigurationError("barcode_semantics should map slot indices to field names.")
        semantics: Dict[int, str] = {}
        for slot, semantic in raw.items():
            try:
                semantics[int(slot)] = str(semantic)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"Invalid barcode slot index: {slot!r}") from exc
        kwargs["barcode_semantics"] = semantics
    return StructureConfig(**kwargs).validate()


def load_structure(path: Optional[Path] = None) -> StructureConfig:
    """
    Load the sheet structure from a YAML file, or return the validated default.
    """
    if path is None:
        return StructureConfig.default()
    if not path.exists():
        raise ConfigurationError(f"Structure file not found: {path}")
    data = read_yaml(path)
    if data is None:
        return StructureConfig.default()
    structure = structure_from_mapping(data)
    logger.info("Loaded sheet structure from %s", path)
    return structure
