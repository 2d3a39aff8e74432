from __future__ import annotations

from typing import Dict

import pytest

from omr_grading.roster import StudentInfo
from omr_grading.scoring import ScoringTable
from omr_grading.structure import StructureConfig


@pytest.fixture
def structure() -> StructureConfig:
    return StructureConfig.default()


@pytest.fixture
def five_points_table(structure: StructureConfig) -> ScoringTable:
    table = ScoringTable(structure)
    for question in structure.question_numbers():
        table.set_score(question, 3, 5)
    return table


@pytest.fixture
def roster() -> Dict[str, StudentInfo]:
    return {
        "9101010101": StudentInfo(
            student_id="9101010101",
            name="Kim Minji",
            group="General",
            interview_room="01",
            time="09:00",
            number="1",
            registration_number="R-001",
            middle_school="Hanbit Middle School",
        ),
        "9102020202": StudentInfo(student_id="9102020202", name="Lee Jun", group="General"),
    }
