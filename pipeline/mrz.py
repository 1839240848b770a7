"""
MRZ detection, fixed-width parsing and check digit validation.

Supports the two-line travel document layout (TD3, 2 x 44) and the three-line
identity card layout (TD1, 3 x 30).
"""
import logging
import re
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from config import MRZ_FORMATS, MRZ_LINE_REGEX
from .models import CanonicalField, CheckResult, MRZField, MRZResult, OCRLine

logger = logging.getLogger(__name__)

CHECK_WEIGHTS = (7, 3, 1)
VALID_SEX_VALUES = {"M", "F", "X"}


class MRZFormatError(ValueError):
    """A matched MRZ grouping whose fixed-width content cannot be parsed"""


def char_value(ch: str) -> int:
    """Numeric value of one MRZ character: digits as-is, A-Z -> 10-35, filler -> 0"""
    if "0" <= ch <= "9":
        return ord(ch) - 48
    if "A" <= ch <= "Z":
        return ord(ch) - 55
    if ch == "<":
        return 0
    raise MRZFormatError(f"Character outside MRZ alphabet: {ch!r}")


def compute_check_digit(data: str) -> int:
    total = 0
    for i, ch in enumerate(data):
        total += char_value(ch) * CHECK_WEIGHTS[i % 3]
    return total % 10


def mrz_date_to_iso(value: str, kind: str, today: Optional[date] = None) -> str:
    """
    Convert an MRZ YYMMDD date to YYYY-MM-DD.

    Birth dates later than the current two-digit year fall in the 1900s.
    Expiry dates fall in the 2000s unless YY >= 70.
    """
    if len(value) != 6 or not value.isdigit():
        raise MRZFormatError(f"Unparseable {kind} date: {value!r}")

    yy, mm, dd = int(value[0:2]), int(value[2:4]), int(value[4:6])
    if kind == "birth":
        today = today or date.today()
        century = 1900 if yy > today.year % 100 else 2000
    else:
        century = 1900 if yy >= 70 else 2000

    try:
        return date(century + yy, mm, dd).isoformat()
    except ValueError as e:
        raise MRZFormatError(f"Invalid {kind} date: {value!r}") from e


class MRZParser:
    """
    Finds an MRZ block in OCR text and turns it into typed fields plus one
    CheckResult per check digit.
    """

    def __init__(self, today: Optional[date] = None):
        self.line_regex = re.compile(MRZ_LINE_REGEX)
        self.today = today

    def normalize_line(self, line: str) -> str:
        return re.sub(r"\s+", "", line).upper()

    def find_grouping(self, raw_text: str) -> Optional[Tuple[str, List[str]]]:
        """Return (format, lines) of the last contiguous MRZ grouping, TD3 before TD1"""
        lines = [self.normalize_line(line) for line in raw_text.splitlines()]

        for fmt, layout in MRZ_FORMATS.items():
            count, length = layout["line_count"], layout["line_length"]
            found = None
            for start in range(len(lines) - count + 1):
                window = lines[start:start + count]
                if all(len(l) == length and self.line_regex.fullmatch(l) for l in window):
                    found = window
            if found:
                return fmt, found

        return None

    def parse(self, raw_text: str, lines: Sequence[OCRLine] = ()) -> Optional[MRZResult]:
        """Parse the MRZ in raw_text; None when absent or malformed"""
        grouping = self.find_grouping(raw_text or "")
        if grouping is None:
            logger.debug("No MRZ grouping found in OCR text")
            return None

        fmt, block = grouping
        confidences = self._line_confidences(block, lines)

        try:
            if fmt == "TD3":
                return self._parse_td3(block, confidences)
            return self._parse_td1(block, confidences)
        except MRZFormatError as e:
            logger.debug("Discarding malformed %s MRZ block: %s", fmt, e)
            return None

    # ------------------------
    # Layouts
    # ------------------------
    def _parse_td3(self, block: List[str], confidences: List[float]) -> MRZResult:
        line1, line2 = block
        conf1, conf2 = confidences

        fields: Dict[CanonicalField, MRZField] = {}
        self._put(fields, CanonicalField.DOCUMENT_TYPE, self._document_type(line1[0:2]), conf1)
        self._put(fields, CanonicalField.ISSUING_COUNTRY, self._country(line1[2:5]), conf1)
        surname, given_names = self._split_names(line1[5:44])
        self._put(fields, CanonicalField.SURNAME, surname, conf1)
        self._put(fields, CanonicalField.GIVEN_NAMES, given_names, conf1)

        self._put(fields, CanonicalField.DOCUMENT_NUMBER, self._strip_filler(line2[0:9]), conf2)
        self._put(fields, CanonicalField.NATIONALITY, self._country(line2[10:13]), conf2)
        self._put(fields, CanonicalField.DATE_OF_BIRTH, mrz_date_to_iso(line2[13:19], "birth", self.today), conf2)
        self._put(fields, CanonicalField.SEX, self._sex(line2[20]), conf2)
        self._put(fields, CanonicalField.DATE_OF_EXPIRY, mrz_date_to_iso(line2[21:27], "expiry"), conf2)

        personal_number = self._strip_filler(line2[28:42])

        checks = [
            self._check("documentNumberCheck", "Document number check digit", line2[0:9], line2[9]),
            self._check("dateOfBirthCheck", "Date of birth check digit", line2[13:19], line2[19]),
            self._check("dateOfExpiryCheck", "Date of expiry check digit", line2[21:27], line2[27]),
        ]
        if personal_number:
            checks.append(
                self._check("personalNumberCheck", "Personal number check digit", line2[28:42], line2[42])
            )
        composite = "".join(
            self._with_check_digit(data)
            for data in (line2[0:9], line2[13:19], line2[21:27], line2[28:42])
        )
        checks.append(self._check("compositeCheck", "Composite check digit", composite, line2[43]))

        return MRZResult(
            format="TD3",
            raw_block="\n".join(block),
            fields=fields,
            checks=checks,
            personal_number=personal_number,
        )

    def _parse_td1(self, block: List[str], confidences: List[float]) -> MRZResult:
        line1, line2, line3 = block
        conf1, conf2, conf3 = confidences

        # Document numbers longer than 9 characters spill into the optional data
        doc_number, doc_check, doc_check_index = line1[5:14], line1[14], 14
        if doc_check == "<":
            overflow = line1[15:30].split("<", 1)[0]
            if not overflow:
                raise MRZFormatError("Document number overflow marker without data")
            doc_number, doc_check = doc_number + overflow[:-1], overflow[-1]
            doc_check_index = 14 + len(overflow)

        fields: Dict[CanonicalField, MRZField] = {}
        self._put(fields, CanonicalField.DOCUMENT_TYPE, self._document_type(line1[0:2]), conf1)
        self._put(fields, CanonicalField.ISSUING_COUNTRY, self._country(line1[2:5]), conf1)
        self._put(fields, CanonicalField.DOCUMENT_NUMBER, self._strip_filler(doc_number), conf1)

        self._put(fields, CanonicalField.DATE_OF_BIRTH, mrz_date_to_iso(line2[0:6], "birth", self.today), conf2)
        self._put(fields, CanonicalField.SEX, self._sex(line2[7]), conf2)
        self._put(fields, CanonicalField.DATE_OF_EXPIRY, mrz_date_to_iso(line2[8:14], "expiry"), conf2)
        self._put(fields, CanonicalField.NATIONALITY, self._country(line2[15:18]), conf2)

        surname, given_names = self._split_names(line3)
        self._put(fields, CanonicalField.SURNAME, surname, conf3)
        self._put(fields, CanonicalField.GIVEN_NAMES, given_names, conf3)

        checks = [
            self._check("documentNumberCheck", "Document number check digit", doc_number, doc_check),
            self._check("dateOfBirthCheck", "Date of birth check digit", line2[0:6], line2[6]),
            self._check("dateOfExpiryCheck", "Date of expiry check digit", line2[8:14], line2[14]),
        ]
        upper = (
            line1[5:doc_check_index]
            + str(compute_check_digit(doc_number))
            + line1[doc_check_index + 1:30]
        )
        composite = (
            upper
            + self._with_check_digit(line2[0:6])
            + self._with_check_digit(line2[8:14])
            + line2[18:29]
        )
        checks.append(self._check("compositeCheck", "Composite check digit", composite, line2[29]))

        return MRZResult(
            format="TD1",
            raw_block="\n".join(block),
            fields=fields,
            checks=checks,
        )

    # ------------------------
    # Subfields
    # ------------------------
    def _check(self, check_id: str, description: str, data: str, declared: str) -> CheckResult:
        expected = compute_check_digit(data)
        passed = declared.isdigit() and int(declared) == expected
        return CheckResult(
            id=check_id,
            description=description,
            passed=passed,
            severity="advisory",
            details={"declared": declared, "computed": str(expected)},
        )

    def _with_check_digit(self, data: str) -> str:
        # Composite input uses computed field digits, so a bad declared digit
        # fails only its own check
        return data + str(compute_check_digit(data))

    def _put(self, fields: Dict[CanonicalField, MRZField], name: CanonicalField,
             value: Optional[str], confidence: float) -> None:
        if value:
            fields[name] = MRZField(name=name, value=value, confidence=confidence)

    def _strip_filler(self, value: str) -> Optional[str]:
        return value.replace("<", "") or None

    def _document_type(self, value: str) -> Optional[str]:
        if not value[0].isalpha():
            raise MRZFormatError(f"Invalid document type: {value!r}")
        return self._strip_filler(value)

    def _country(self, value: str) -> Optional[str]:
        code = self._strip_filler(value)
        if code and not code.isalpha():
            raise MRZFormatError(f"Invalid country code: {value!r}")
        return code

    def _sex(self, value: str) -> Optional[str]:
        if value == "<":
            return None
        if value not in VALID_SEX_VALUES:
            raise MRZFormatError(f"Invalid sex marker: {value!r}")
        return value

    def _split_names(self, block: str) -> Tuple[Optional[str], Optional[str]]:
        surname, _, given = block.partition("<<")

        def clean(part: str) -> Optional[str]:
            return re.sub(r"\s+", " ", part.replace("<", " ")).strip() or None

        return clean(surname), clean(given)

    def _line_confidences(self, block: List[str], lines: Sequence[OCRLine]) -> List[float]:
        """OCR confidence of each MRZ line, matched on normalized text"""
        by_text: Dict[str, float] = {}
        for line in lines:
            by_text.setdefault(self.normalize_line(line.text), line.confidence)

        fallback = sum(l.confidence for l in lines) / len(lines) if lines else 0.0
        return [by_text.get(mrz_line, fallback) for mrz_line in block]


def parse_mrz(raw_text: str, lines: Sequence[OCRLine] = (), today: Optional[date] = None) -> Optional[MRZResult]:
    return MRZParser(today=today).parse(raw_text, lines)
