from __future__ import annotations

import pytest

from omr_grading.batch import IngestBatch
from omr_grading.grading import GradingAggregator
from omr_grading.ingest import IngestFailure
from omr_grading.verdicts import AlignmentVerdict, DocumentVerdicts

from .helpers import failed_barcode, make_marks, ok_barcode


def all_threes(structure):
    return make_marks(structure, {question: [3] for question in structure.question_numbers()})


def test_new_document_is_unknown_and_accepted(structure):
    batch = IngestBatch(structure)
    record = batch.add_document("a", "a.png")
    assert "a" in batch and len(batch) == 1
    assert batch.state("a").is_unknown
    assert not batch.state("a").is_quarantined
    assert batch.accepted_records() == [record]


def test_add_document_twice_keeps_existing_record(structure):
    batch = IngestBatch(structure)
    batch.add_document("a", "a.png")
    batch.record_marks("a", all_threes(structure))
    record = batch.add_document("a", "renamed.png")
    assert record.question_markings == [3, 3, 3, 3]


def test_end_to_end_duplicates_and_total(structure, five_points_table, roster):
    batch = IngestBatch(structure)
    for image_id in ("a", "b"):
        batch.add_document(image_id, f"{image_id}.png")
        batch.record_file_presence(image_id, True)
        batch.record_alignment(image_id, AlignmentVerdict(success=True, confidence=0.98))
        batch.record_barcodes(image_id, [ok_barcode("9101010101"), ok_barcode("01")])
        batch.record_marks(image_id, all_threes(structure))

    records = batch.records()
    assert all(record.is_duplicate and record.duplicate_count == 2 for record in records)
    assert batch.quarantined() == []

    results = GradingAggregator(structure, five_points_table).aggregate(records, roster)
    assert [result.total_score for result in results] == [20, 20]
    assert all(result.is_duplicate for result in results)


def test_failed_barcode_quarantines_and_resets_combined_stage(structure):
    batch = IngestBatch(structure)
    batch.add_document("a", "a.png")
    batch.record_barcodes("a", [ok_barcode("9101010101"), failed_barcode()])
    state = batch.state("a")
    assert state.barcode_ok is False
    assert state.combined_id_ok is None
    assert state.is_quarantined
    assert state.reasons == {IngestFailure.BARCODE_FAILED}


def test_empty_barcode_list_is_a_failure(structure):
    batch = IngestBatch(structure)
    batch.add_document("a", "a.png")
    batch.record_barcodes("a", [])
    assert batch.state("a").barcode_ok is False


def test_successful_decode_with_blank_text_misses_combined_id(structure):
    batch = IngestBatch(structure)
    batch.add_document("a", "a.png")
    record = batch.record_barcodes("a", [ok_barcode(""), ok_barcode("")])
    state = batch.state("a")
    assert state.barcode_ok is True
    assert state.combined_id_ok is False
    assert state.has_reason(IngestFailure.COMBINED_ID_MISSING)
    assert "combined id missing" in record.error_messages()


def test_redecode_replaces_identity_and_clears_reason(structure):
    batch = IngestBatch(structure)
    batch.add_document("a", "a.png")
    batch.record_barcodes("a", [failed_barcode(), failed_barcode()])
    assert batch.state("a").is_quarantined

    record = batch.record_barcodes("a", [ok_barcode("9101010101"), ok_barcode("02")])
    assert record.combined_id == "910101010102"
    assert not record.has_errors
    assert not batch.state("a").is_quarantined
    assert batch.record("a") is record


def test_unattempted_barcodes_return_to_unknown(structure):
    batch = IngestBatch(structure)
    batch.add_document("a", "a.png")
    batch.record_barcodes("a", [ok_barcode("9101010101"), ok_barcode("01")])
    batch.record_barcodes("a", None)
    state = batch.state("a")
    assert state.barcode_ok is None and state.combined_id_ok is None
    assert batch.record("a").combined_id is None


def test_remove_reruns_duplicate_detection(structure):
    batch = IngestBatch(structure)
    for image_id in ("a", "b"):
        batch.add_document(image_id, f"{image_id}.png")
        batch.record_barcodes(image_id, [ok_barcode("9101010101"), ok_barcode("01")])
    batch.remove("b")
    assert not batch.record("a").is_duplicate
    assert batch.record("a").duplicate_count == 1
    with pytest.raises(KeyError):
        batch.remove("b")


def test_unknown_document_is_rejected(structure):
    batch = IngestBatch(structure)
    with pytest.raises(KeyError):
        batch.record_alignment("ghost", AlignmentVerdict(success=True))


def test_quarantine_override_wins(structure):
    batch = IngestBatch(structure)
    batch.add_document("a", "a.png")
    batch.record_alignment("a", AlignmentVerdict(success=False))
    batch.set_quarantine_override("a", False)
    assert not batch.state("a").is_quarantined
    assert batch.state("a").has_reason(IngestFailure.ALIGN_FAILED)
    batch.set_quarantine_override("a", None)
    assert batch.state("a").is_quarantined


def test_load_failures_listing(structure):
    batch = IngestBatch(structure)
    batch.ingest_all(
        [
            DocumentVerdicts("z", "z.png", file_exists=False),
            DocumentVerdicts(
                "m",
                "m.png",
                alignment=AlignmentVerdict(success=False),
                barcodes=[failed_barcode(), failed_barcode()],
            ),
            DocumentVerdicts("ok", "ok.png", file_exists=True, alignment=AlignmentVerdict(success=True)),
        ]
    )
    failures = batch.load_failures()
    assert [item.file_name for item in failures] == ["m.png", "z.png"]
    assert failures[0].failure_reason_summary == "alignment failed, barcode failed"
    assert failures[1].failure_reason_summary == "file missing"
    assert [record.image_id for record in batch.accepted_records()] == ["ok"]


def test_custom_duplicate_detector_is_used(structure):
    calls = []
    batch = IngestBatch(structure, duplicate_detector=lambda records: calls.append(list(records)))
    batch.add_document("a", "a.png")
    batch.record_marks("a", all_threes(structure))
    assert len(calls) == 2


def test_returned_record_follows_later_stages(structure):
    batch = IngestBatch(structure)
    record = batch.add_document("a", "a.png")
    batch.record_barcodes("a", [ok_barcode("9101010101"), ok_barcode("01")])
    batch.record_marks("a", all_threes(structure))
    assert batch.record("a") is record
    assert record.student_id == "9101010101"
    assert record.question_markings == [3, 3, 3, 3]

    batch.add_document("b", "b.png")
    batch.record_barcodes("b", [ok_barcode("9101010101"), ok_barcode("01")])
    assert record.is_duplicate and record.duplicate_count == 2


def test_verdicts_beyond_configured_slots_are_ignored(structure):
    batch = IngestBatch(structure)
    batch.add_document("a", "a.png")
    record = batch.record_barcodes(
        "a", [ok_barcode("9101010101"), ok_barcode("01"), failed_barcode()]
    )
    state = batch.state("a")
    assert state.barcode_ok is True
    assert state.combined_id_ok is True
    assert not state.is_quarantined
    assert not record.has_errors
