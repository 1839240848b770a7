"""Tests for multi-image field fusion."""

from pipeline.fusion import FieldFusion, fuse_extractions
from pipeline.models import CanonicalField, CheckResult
from tests.conftest import make_extraction

SURNAME = CanonicalField.SURNAME
GIVEN = CanonicalField.GIVEN_NAMES
NUMBER = CanonicalField.DOCUMENT_NUMBER


def _check(check_id: str, passed: bool = True) -> CheckResult:
    return CheckResult(id=check_id, description=check_id, passed=passed, severity="advisory")


def test_highest_confidence_wins():
    record = fuse_extractions([
        make_extraction({NUMBER: "AAA111"}, confidence=0.6),
        make_extraction({NUMBER: "BBB222"}, confidence=0.8),
    ])
    assert record.get(NUMBER) == "BBB222"
    assert record.confidences[NUMBER] == 0.8


def test_tie_goes_to_earlier_source():
    record = fuse_extractions([
        make_extraction({NUMBER: "AAA111"}, confidence=0.7),
        make_extraction({NUMBER: "BBB222"}, confidence=0.7),
        make_extraction({NUMBER: "CCC333"}, confidence=0.7),
    ])
    assert record.get(NUMBER) == "AAA111"


def test_pick_best_prefers_lower_index_regardless_of_order():
    fusion = FieldFusion()
    assert fusion.pick_best([("B", 0.5, 3), ("A", 0.5, 1)]) == ("A", 0.5, 1)
    assert fusion.pick_best([]) is None


def test_fusion_is_deterministic():
    extractions = [
        make_extraction({SURNAME: "ERIKSSON", NUMBER: "L898902C3"}, confidence=0.7, barcodes=["x"]),
        make_extraction({SURNAME: "ERIKSON", NUMBER: "L898902C8"}, confidence=0.7, text=["line"]),
    ]
    first = fuse_extractions(extractions)
    second = fuse_extractions(extractions)
    assert first == second
    assert first.model_dump_json() == second.model_dump_json()


def test_absent_fields_are_null():
    record = fuse_extractions([make_extraction({SURNAME: "ERIKSSON"})])
    assert record.get(CanonicalField.DATE_OF_EXPIRY) is None
    assert record.get(CanonicalField.NATIONALITY) is None
    assert CanonicalField.NATIONALITY not in record.confidences
    assert set(record.values) == set(CanonicalField)


def test_mrz_block_kept_when_later_image_has_none():
    record = fuse_extractions([
        make_extraction({NUMBER: "AAA111"}, raw_block="FIRST", checks=[_check("compositeCheck")]),
        make_extraction({}, raw_block=None),
    ])
    assert record.mrz.raw_block == "FIRST"
    assert [c.id for c in record.mrz.checks] == ["compositeCheck"]


def test_last_mrz_block_wins_even_with_lower_confidence():
    record = fuse_extractions([
        make_extraction({NUMBER: "AAA111"}, confidence=0.95, raw_block="FIRST",
                        checks=[_check("compositeCheck", True)]),
        make_extraction({NUMBER: "BBB222"}, confidence=0.40, raw_block="SECOND",
                        checks=[_check("compositeCheck", False)]),
    ])
    assert record.mrz.raw_block == "SECOND"
    assert record.mrz.checks[0].passed is False
    # Field values still compete on confidence
    assert record.get(NUMBER) == "AAA111"


def test_no_mrz_anywhere():
    record = fuse_extractions([make_extraction({}, raw_block=None)])
    assert record.mrz is None
    assert all(value is None for value in record.values.values())


def test_barcodes_and_text_concatenated_without_dedup():
    record = fuse_extractions([
        make_extraction({}, barcodes=["A", "B"], text=["PASSPORT", "UTOPIA"]),
        make_extraction({}, raw_block=None, barcodes=["A"], text=["PASSPORT"]),
    ])
    assert record.barcodes == ["A", "B", "A"]
    assert [line.text for line in record.text_lines] == ["PASSPORT", "UTOPIA", "PASSPORT"]


def test_full_name_synthesized_from_parts():
    record = fuse_extractions([
        make_extraction({SURNAME: "ERIKSSON"}, confidence=0.9),
        make_extraction({GIVEN: "ANNA MARIA"}, confidence=0.7),
    ])
    assert record.get(CanonicalField.FULL_NAME) == "ERIKSSON ANNA MARIA"
    assert record.confidences[CanonicalField.FULL_NAME] == 0.7


def test_full_name_from_surname_only():
    record = fuse_extractions([make_extraction({SURNAME: "ERIKSSON"})])
    assert record.get(CanonicalField.FULL_NAME) == "ERIKSSON"


def test_full_name_null_without_parts():
    record = fuse_extractions([make_extraction({NUMBER: "AAA111"})])
    assert record.get(CanonicalField.FULL_NAME) is None


def test_supplied_full_name_is_not_overwritten():
    record = fuse_extractions([
        make_extraction({CanonicalField.FULL_NAME: "ANNA MARIA ERIKSSON", SURNAME: "ERIKSSON", GIVEN: "ANNA"}),
    ])
    assert record.get(CanonicalField.FULL_NAME) == "ANNA MARIA ERIKSSON"
