from __future__ import annotations

import pytest

from omr_grading.sheet import Session, SheetRecord, combine_ids


def make_record(student_id=None, interview_id=None) -> SheetRecord:
    return SheetRecord(
        image_id="img-1",
        image_file_name="scan_001.png",
        student_id=student_id,
        interview_id=interview_id,
    )


def test_combined_id_variants():
    assert combine_ids("12345678", "99") == "1234567899"
    assert combine_ids(None, "99") == "99"
    assert combine_ids("12345678", None) == "12345678"
    assert combine_ids(None, None) is None
    assert combine_ids("", "") is None


@pytest.mark.parametrize(
    "student_id, expected",
    [
        ("9101010203", Session.MORNING),
        ("9201010203", Session.AFTERNOON),
        ("1234", None),
        ("9", None),
        (None, None),
    ],
)
def test_session(student_id, expected):
    assert make_record(student_id).session is expected


@pytest.mark.parametrize(
    "student_id, expected",
    [
        ("910013", None),
        ("910513", "05"),
        ("911213", "12"),
        ("911313", None),
        ("91a113", None),
        ("910", None),
    ],
)
def test_room_number(student_id, expected):
    assert make_record(student_id).room_number == expected


def test_order_number_is_kept_verbatim():
    assert make_record("9105xy").order_number == "xy"
    assert make_record("91051").order_number is None


def test_markings_are_sized_to_question_count():
    record = SheetRecord(image_id="a", image_file_name="a.png", question_count=3)
    assert record.question_markings == [None, None, None]
    record.set_marking(2, 7)
    assert record.marking(2) == 7
    assert record.marking(4) is None
    assert record.marked_question_count == 1
    with pytest.raises(ValueError):
        record.set_marking(4, 1)


def test_errors_are_appended_never_overwritten():
    record = make_record()
    record.add_error("first")
    record.add_error("second")
    assert record.has_errors
    assert record.error_message == "first; second"
    record.add_error("first")
    assert record.error_message == "first; second"


def test_error_only_excludes_duplicates():
    record = make_record("9101010101")
    assert not record.is_error_only
    record.add_error("question 1: no mark")
    assert record.is_error_only
    record.is_duplicate = True
    assert not record.is_error_only


@pytest.mark.parametrize("student_id", ["91²05", "91٠٣05", "91a105"])
def test_room_needs_ascii_digits(student_id):
    record = make_record(student_id=student_id)
    assert record.room_number is None
    assert record.session is Session.MORNING


def test_reset_clears_decoded_fields_only():
    record = make_record(student_id="9101010101", interview_id="01")
    record.set_marking(2, 5)
    record.add_error("question 1: no mark")
    record.is_duplicate = True
    record.duplicate_count = 3
    record.extra_fields["SeatId"] = "A7"
    record.reset()
    assert record.image_id == "img-1"
    assert record.combined_id is None
    assert record.question_markings == [None] * 4
    assert not record.has_errors and record.error_message is None
    assert not record.is_duplicate and record.duplicate_count == 1
    assert record.extra_fields == {}
