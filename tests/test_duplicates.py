from __future__ import annotations

import itertools

from omr_grading.duplicates import DuplicateDetector, detect_duplicates, find_duplicates
from omr_grading.sheet import SheetRecord


def sheet(image_id: str, student_id=None, interview_id=None) -> SheetRecord:
    return SheetRecord(
        image_id=image_id,
        image_file_name=f"{image_id}.png",
        student_id=student_id,
        interview_id=interview_id,
    )


def flags(records):
    return {record.image_id: (record.is_duplicate, record.duplicate_count) for record in records}


def test_shared_combined_id_is_flagged():
    records = [sheet("a", "A"), sheet("b", "A"), sheet("c", "B")]
    groups = detect_duplicates(records)
    assert list(groups) == ["A"]
    assert flags(records) == {"a": (True, 2), "b": (True, 2), "c": (False, 1)}


def test_records_without_combined_id_are_never_duplicates():
    records = [sheet("a"), sheet("b"), sheet("c", interview_id="7")]
    detect_duplicates(records)
    assert flags(records) == {"a": (False, 1), "b": (False, 1), "c": (False, 1)}


def test_interview_id_alone_can_collide():
    records = [sheet("a", interview_id="7"), sheet("b", interview_id="7")]
    assert set(find_duplicates(records)) == {"7"}


def test_detection_is_idempotent_and_order_independent():
    base = [("a", "A"), ("b", "A"), ("c", "B"), ("d", "A"), ("e", None)]
    expected = None
    for permutation in itertools.permutations(base):
        records = [sheet(image_id, student) for image_id, student in permutation]
        detect_duplicates(records)
        detect_duplicates(records)
        outcome = flags(records)
        expected = expected or outcome
        assert outcome == expected
    assert expected["a"] == (True, 3)
    assert expected["c"] == (False, 1)


def test_rerun_after_membership_change_clears_stale_flags():
    records = [sheet("a", "A"), sheet("b", "A")]
    detect_duplicates(records)
    remaining = records[:1]
    detect_duplicates(remaining)
    assert flags(remaining) == {"a": (False, 1)}


def test_identity_and_error_text_untouched():
    records = [sheet("a", "A"), sheet("b", "A")]
    records[0].add_error("question 1: no mark")
    detect_duplicates(records)
    assert records[0].error_message == "question 1: no mark"
    assert records[1].error_message is None
    assert records[1].student_id == "A"


def test_detector_object_matches_function():
    records = [sheet("a", "A", "1"), sheet("b", "A", "1"), sheet("c", "A", "2")]
    groups = DuplicateDetector()(records)
    assert list(groups) == ["A1"]
    assert flags(records)["c"] == (False, 1)
