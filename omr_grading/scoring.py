"""
Per-question, per-option score lookup.

Lookups never fail: an unknown question or an out-of-range option scores 0, since
detection data coming from upstream is not guaranteed to be in range.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .structure import ConfigurationError, StructureConfig
from .utils import read_yaml, write_yaml

logger = logging.getLogger(__name__)


class QuestionScores:
    """Scores for the options of a single question."""

    def __init__(self, question: int, options_per_question: int) -> None:
        self.question = question
        self._options_per_question = options_per_question
        self._scores: List[float] = [0.0] * options_per_question

    @property
    def scores(self) -> Sequence[float]:
        return tuple(self._scores)

    def get(self, option: int) -> float:
        if not 1 <= option <= self._options_per_question:
            return 0.0
        index = option - 1
        if index < len(self._scores):
            return self._scores[index]
        return 0.0

    def set(self, option: int, value: float) -> None:
        if not 1 <= option <= self._options_per_question:
            return
        index = option - 1
        # Rows only ever grow.
        while len(self._scores) <= index:
            self._scores.append(0.0)
        self._scores[index] = float(value)


class ScoringTable:
    """
    Ordered score rows (one per question) and option labels shared by all questions.
    """

    def __init__(self, structure: StructureConfig) -> None:
        self.structure = structure
        self._rows: List[QuestionScores] = [
            QuestionScores(question, structure.options_per_question)
            for question in structure.question_numbers()
        ]
        self._labels: List[str] = [""] * structure.options_per_question

    @property
    def rows(self) -> Sequence[QuestionScores]:
        return tuple(self._rows)

    @property
    def option_labels(self) -> Sequence[str]:
        return tuple(self._labels)

    def row(self, question: int) -> Optional[QuestionScores]:
        for row in self._rows:
            if row.question == question:
                return row
        return None

    def get_score(self, question: int, option: int) -> float:
        row = self.row(question)
        if row is None:
            return 0.0
        return row.get(option)

    def set_score(self, question: int, option: int, value: float) -> None:
        row = self.row(question)
        if row is None:
            return
        row.set(option, value)

    def option_label(self, option: int) -> str:
        if not self.structure.is_valid_option(option):
            return ""
        return self._labels[option - 1]

    def set_option_label(self, option: int, label: str) -> None:
        if not self.structure.is_valid_option(option):
            return
        self._labels[option - 1] = label

    def to_dict(self) -> Dict[str, Any]:
        return {
            "option_labels": list(self._labels),
            "questions": [
                {"question": row.question, "scores": list(row.scores)}
                for row in self._rows
            ],
        }


def scoring_table_from_mapping(
    data: Mapping[str, Any],
    structure: StructureConfig,
) -> ScoringTable:
    """
    Build a table from parsed YAML. Values outside the structure are ignored, the
    same way ``set_score`` ignores them; a malformed document is a configuration error.
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError("Scoring table should be a mapping.")
    table = ScoringTable(structure)

    labels = data.get("option_labels") or []
    if not isinstance(labels, list):
        raise ConfigurationError("'option_labels' should be a list.")
    for option, label in enumerate(labels, start=1):
        table.set_option_label(option, "" if label is None else str(label))

    questions = data.get("questions") or []
    if not isinstance(questions, list):
        raise ConfigurationError("'questions' should be a list.")
    for position, entry in enumerate(questions, start=1):
        if not isinstance(entry, Mapping):
            raise ConfigurationError(f"Scoring entry #{position} should be a mapping.")
        question = entry.get("question", position)
        scores = entry.get("scores") or []
        if not isinstance(scores, list):
            raise ConfigurationError(f"Scores of question {question} should be a list.")
        for option, value in enumerate(scores, start=1):
            try:
                table.set_score(int(question), option, float(value or 0))
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"Invalid score for question {question}, option {option}: {value!r}"
                ) from exc
    return table


def load_scoring_table(path: Path, structure: StructureConfig) -> ScoringTable:
    if not path.exists():
        raise ConfigurationError(f"Scoring file not found: {path}")
    data = read_yaml(path)
    table = scoring_table_from_mapping(data or {}, structure)
    logger.info("Loaded scoring table from %s", path)
    return table


def save_scoring_table(path: Path, table: ScoringTable) -> None:
    write_yaml(path, table.to_dict())
