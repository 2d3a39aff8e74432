"""
Join scanned sheets with the roster and the scoring table to produce graded records.

The aggregator stops at a per-sheet ``total_score``. Anything that needs the
whole population (averages, ranks) is a separate reduction stage whose policy
is chosen explicitly by the caller, see :class:`PopulationReduction`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from statistics import mean
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .roster import StudentInfo
from .scoring import ScoringTable
from .sheet import (
    ERROR_SEPARATOR,
    Session,
    SheetRecord,
    combine_ids,
    order_from_student_id,
    room_from_student_id,
    session_from_student_id,
)
from .structure import StructureConfig

logger = logging.getLogger(__name__)

NOT_IN_ROSTER_MESSAGE = "not in roster"


class MissingMarkingPolicy(str, Enum):
    """What an unanswered (or ambiguous) question does to a graded sheet."""

    IGNORE = "ignore"
    FLAG_ERROR = "flag_error"


@dataclass
class GradingResult:
    image_id: str
    image_file_name: str
    student_id: Optional[str] = None
    interview_id: Optional[str] = None
    question_markings: List[Optional[int]] = field(default_factory=list)
    question_scores: List[Optional[float]] = field(default_factory=list)
    has_errors: bool = False
    error_message: Optional[str] = None
    is_duplicate: bool = False
    duplicate_count: int = 1
    student_name: Optional[str] = None
    group: Optional[str] = None
    interview_room: Optional[str] = None
    time: Optional[str] = None
    number: Optional[str] = None
    registration_number: Optional[str] = None
    middle_school: Optional[str] = None
    roster_missing: bool = False
    total_score: Optional[float] = None
    average_score: Optional[float] = None
    rank: Optional[int] = None

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

    def add_error(self, message: str) -> None:
        self.has_errors = True
        if self.error_message and message in self.error_message.split(ERROR_SEPARATOR):
            return
        if self.error_message:
            self.error_message = f"{self.error_message}{ERROR_SEPARATOR}{message}"
        else:
            self.error_message = message


class GradingAggregator:
    """
    Produce one :class:`GradingResult` per sheet record.

    Parameters
    ----------
    structure:
        Validated sheet structure; defines which questions are scored.
    scoring_table:
        Score lookup used for every marked question.
    missing_marking:
        ``IGNORE`` silently skips unanswered questions; ``FLAG_ERROR`` also
        marks the result as erroneous. The score is summed over answered
        questions either way.
    """

    def __init__(
        self,
        structure: StructureConfig,
        scoring_table: ScoringTable,
        *,
        missing_marking: MissingMarkingPolicy = MissingMarkingPolicy.IGNORE,
    ) -> None:
        self.structure = structure
        self.scoring_table = scoring_table
        self.missing_marking = missing_marking

    def grade_sheet(
        self,
        record: SheetRecord,
        roster: Mapping[str, StudentInfo],
    ) -> GradingResult:
        result = GradingResult(
            image_id=record.image_id,
            image_file_name=record.image_file_name,
            student_id=record.student_id,
            interview_id=record.interview_id,
            question_markings=list(record.question_markings),
            has_errors=record.has_errors,
            error_message=record.error_message,
            is_duplicate=record.is_duplicate,
            duplicate_count=record.duplicate_count,
        )

        if record.student_id:
            student = roster.get(record.student_id)
            if student is None:
                result.roster_missing = True
                result.add_error(NOT_IN_ROSTER_MESSAGE)
            else:
                _copy_roster_fields(result, student)

        scores: List[Optional[float]] = []
        for question in self.structure.question_numbers():
            marking = record.marking(question)
            if marking is None:
                scores.append(None)
                if self.missing_marking is MissingMarkingPolicy.FLAG_ERROR:
                    result.add_error(f"question {question} unmarked")
                continue
            scores.append(self.scoring_table.get_score(question, marking))
        result.question_scores = scores

        present = [score for score in scores if score is not None]
        result.total_score = sum(present) if present else None
        return result

    def aggregate(
        self,
        records: Iterable[SheetRecord],
        roster: Mapping[str, StudentInfo],
    ) -> List[GradingResult]:
        results = [self.grade_sheet(record, roster) for record in records]
        logger.info(
            "Graded %d sheet(s); %d without any marked question",
            len(results),
            sum(1 for result in results if result.total_score is None),
        )
        return results


def _copy_roster_fields(result: GradingResult, student: StudentInfo) -> None:
    result.student_name = student.name
    result.group = student.group
    result.interview_room = student.interview_room
    result.time = student.time
    result.number = student.number
    result.registration_number = student.registration_number
    result.middle_school = student.middle_school


# Population reductions ----------------------------------------------------------------


class PopulationReduction(ABC):
    """A policy filling ``average_score`` / ``rank`` from the whole result set."""

    @abstractmethod
    def reduce(self, results: Sequence[GradingResult]) -> None:
        """Mutate ``average_score`` and ``rank`` of ``results`` in place."""


GroupKey = Callable[[GradingResult], Optional[str]]

GROUP_KEYS: Dict[str, GroupKey] = {
    "batch": lambda result: "batch",
    "group": lambda result: result.group,
    "session": lambda result: result.session.value if result.session else None,
    "room": lambda result: result.room_number,
}


class StudentAverageRanking(PopulationReduction):
    """
    Average each student's totals across their sheets, then rank students.

    A student usually has one sheet per interviewer; ``average_score`` is the mean
    ``total_score`` over those sheets. Students are ranked by that average,
    highest first, within the population returned by ``group_by`` (roster group
    by default). Ties share a rank and the next rank skips ahead ("1224").
    Sheets without a student id, a score or a group key get no rank.

    With ``min_sheets`` set, every sheet of a student holding fewer sheets than
    that is flagged with an interviewer-count error. The student is still ranked.
    """

    def __init__(
        self,
        group_by: GroupKey = GROUP_KEYS["group"],
        *,
        min_sheets: Optional[int] = None,
    ) -> None:
        self.group_by = group_by
        self.min_sheets = min_sheets

    @classmethod
    def named(cls, name: str, *, min_sheets: Optional[int] = None) -> "StudentAverageRanking":
        try:
            return cls(GROUP_KEYS[name], min_sheets=min_sheets)
        except KeyError as exc:
            raise ValueError(
                f"Unknown ranking group {name!r}; expected one of {', '.join(GROUP_KEYS)}"
            ) from exc

    def reduce(self, results: Sequence[GradingResult]) -> None:
        by_student: Dict[str, List[GradingResult]] = {}
        for result in results:
            result.average_score = None
            result.rank = None
            if result.student_id:
                by_student.setdefault(result.student_id, []).append(result)

        populations: Dict[str, Dict[str, float]] = {}
        for student_id, sheets in by_student.items():
            if self.min_sheets is not None and len(sheets) < self.min_sheets:
                for sheet in sheets:
                    sheet.add_error(interviewer_count_message(len(sheets), self.min_sheets))
            totals = [sheet.total_score for sheet in sheets if sheet.total_score is not None]
            if not totals:
                continue
            average = mean(totals)
            for sheet in sheets:
                sheet.average_score = average
            key = self.group_by(sheets[0])
            if key is None:
                continue
            populations.setdefault(key, {})[student_id] = average

        for key, averages in populations.items():
            for student_id, rank in _competition_ranks(averages).items():
                for sheet in by_student[student_id]:
                    sheet.rank = rank
            logger.debug("Ranked %d student(s) in population %r", len(averages), key)


def interviewer_count_message(count: int, expected: int) -> str:
    return f"interviewer sheets: {count} of {expected}"


def _competition_ranks(scores: Mapping[str, float]) -> Dict[str, int]:
    ordered = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    ranks: Dict[str, int] = {}
    previous: Optional[float] = None
    current_rank = 0
    for position, (student_id, score) in enumerate(ordered, start=1):
        if previous is None or score != previous:
            current_rank = position
            previous = score
        ranks[student_id] = current_rank
    return ranks


def apply_reduction(
    results: Sequence[GradingResult],
    reduction: Optional[PopulationReduction],
) -> Sequence[GradingResult]:
    """Run ``reduction`` over ``results`` (no-op when ``None``) and return them."""
    if reduction is not None:
        reduction.reduce(results)
    return results


# Batch summary -------------------------------------------------------------------------


@dataclass(frozen=True)
class GradingSummary:
    total_sheets: int
    error_sheets: int
    duplicate_sheets: int
    missing_combined_id: int
    missing_in_grading: Sequence[str]
    missing_in_roster: Sequence[str]

    @property
    def has_mismatch(self) -> bool:
        return bool(self.missing_in_grading or self.missing_in_roster)


def summarise_batch(
    records: Sequence[SheetRecord],
    roster: Mapping[str, StudentInfo],
) -> GradingSummary:
    """
    Count problem sheets and compare graded student ids with the roster.
    """
    graded_ids = {record.student_id for record in records if record.student_id}
    roster_ids = set(roster)
    summary = GradingSummary(
        total_sheets=len(records),
        error_sheets=sum(1 for record in records if record.has_errors),
        duplicate_sheets=sum(1 for record in records if record.is_duplicate),
        missing_combined_id=sum(1 for record in records if not record.combined_id),
        missing_in_grading=sorted(roster_ids - graded_ids),
        missing_in_roster=sorted(graded_ids - roster_ids),
    )
    if summary.has_mismatch:
        logger.warning(
            "Roster mismatch: %d roster id(s) without sheets, %d graded id(s) not in roster",
            len(summary.missing_in_grading),
            len(summary.missing_in_roster),
        )
    return summary
