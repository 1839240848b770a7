"""Pytest fixtures and shared fakes."""

import base64
from datetime import date
from typing import Dict, List, Union

import pytest

from pipeline.models import (
    CanonicalField, CheckResult, MRZField, MRZResult, OCRLine, OCRResult, RawExtraction
)

# ICAO 9303 specimen documents
TD3_LINE1 = "P<UTOERIKSSON<<ANNA<MARIA<<<<<<<<<<<<<<<<<<<"
TD3_LINE2 = "L898902C36UTO7408122F1204159ZE184226B<<<<<10"
TD1_LINES = [
    "I<UTOD231458907<<<<<<<<<<<<<<<",
    "7408122F1204159UTO<<<<<<<<<<<6",
    "ERIKSSON<<ANNA<MARIA<<<<<<<<<<",
]

# Inside the specimen's validity window, so it can pass every rule
SPECIMEN_TODAY = date(2010, 1, 1)


def ocr_result(lines: List[str], confidence: float = 0.9) -> OCRResult:
    ocr_lines = [OCRLine(text=text, confidence=confidence) for text in lines]
    return OCRResult(lines=ocr_lines, raw_text="\n".join(lines))


def image_ref(data: bytes) -> Dict[str, str]:
    return {"base64": base64.b64encode(data).decode("ascii")}


def mutate_digit(line: str, index: int) -> str:
    digit = (int(line[index]) + 1) % 10
    return line[:index] + str(digit) + line[index + 1:]


def make_extraction(values: Dict[CanonicalField, str],
                    confidence: float = 0.9,
                    raw_block: Union[str, None] = "BLOCK",
                    checks: List[CheckResult] = (),
                    barcodes: List[str] = (),
                    text: List[str] = ()) -> RawExtraction:
    """Build a RawExtraction directly; raw_block=None means no MRZ was found"""
    mrz = None
    if raw_block is not None:
        mrz = MRZResult(
            format="TD3",
            raw_block=raw_block,
            fields={
                name: MRZField(name=name, value=value, confidence=confidence)
                for name, value in values.items()
            },
            checks=list(checks),
        )
    return RawExtraction(
        ocr=ocr_result(list(text), confidence),
        mrz=mrz,
        barcodes=list(barcodes),
    )


class FakeOCR:
    """OCR backend keyed by image bytes; records call order"""

    def __init__(self, results: Dict[bytes, Union[OCRResult, Exception]], delay: float = 0.0):
        self.results = results
        self.delay = delay
        self.calls: List[bytes] = []

    def extract(self, data: bytes) -> OCRResult:
        import time

        self.calls.append(data)
        if self.delay:
            time.sleep(self.delay)
        result = self.results[data]
        if isinstance(result, Exception):
            raise result
        return result


class FakeDecoder:
    def __init__(self, payloads: Union[List[str], Exception] = ()):
        self.payloads = payloads

    def decode(self, data: bytes) -> List[str]:
        if isinstance(self.payloads, Exception):
            raise self.payloads
        return list(self.payloads)


@pytest.fixture
def td3_text() -> str:
    return "\n".join(["PASSPORT", "UTOPIA", TD3_LINE1, TD3_LINE2])


@pytest.fixture
def td1_text() -> str:
    return "\n".join(["IDENTITY CARD"] + TD1_LINES)


@pytest.fixture
def applicant() -> Dict[str, str]:
    return {
        "name": "Anna Maria Eriksson",
        "dob": "1974-08-12",
        "passportNumber": "L898902C3",
        "nationality": "UTO",
    }
