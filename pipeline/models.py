"""
Typed records flowing through the verification pipeline.

Wire names are camelCase; Python attributes are snake_case. Every record is
frozen once built.
"""
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, model_validator
from pydantic.alias_generators import to_camel


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class CanonicalField(str, Enum):
    """Closed set of identity fields the fusion engine knows about"""
    DOCUMENT_TYPE = "documentType"
    ISSUING_COUNTRY = "issuingCountry"
    SURNAME = "surname"
    GIVEN_NAMES = "givenNames"
    FULL_NAME = "fullName"
    DOCUMENT_NUMBER = "documentNumber"
    NATIONALITY = "nationality"
    DATE_OF_BIRTH = "dateOfBirth"
    SEX = "sex"
    DATE_OF_EXPIRY = "dateOfExpiry"


Severity = Literal["blocking", "advisory"]


class CheckResult(_Record):
    id: str
    description: str
    passed: bool
    severity: Severity
    details: Dict[str, Any] = Field(default_factory=dict)


# ------------------------
# Extraction
# ------------------------
class OCRLine(_Record):
    text: str
    confidence: float = Field(ge=0.0, le=1.0)


class OCRResult(_Record):
    lines: List[OCRLine] = Field(default_factory=list)
    raw_text: str = ""


class MRZField(_Record):
    name: CanonicalField
    value: str
    confidence: float = Field(ge=0.0, le=1.0)


class MRZResult(_Record):
    format: Literal["TD3", "TD1"]
    raw_block: str
    fields: Dict[CanonicalField, MRZField]
    checks: List[CheckResult]
    personal_number: Optional[str] = None


class RawExtraction(_Record):
    ocr: OCRResult
    mrz: Optional[MRZResult] = None
    barcodes: List[str] = Field(default_factory=list)


# ------------------------
# Fusion
# ------------------------
class MRZBlock(_Record):
    raw_block: str
    checks: List[CheckResult]


class CanonicalRecord(_Record):
    values: Dict[CanonicalField, Optional[str]]
    confidences: Dict[CanonicalField, float] = Field(default_factory=dict)
    mrz: Optional[MRZBlock] = None
    barcodes: List[str] = Field(default_factory=list)
    text_lines: List[OCRLine] = Field(default_factory=list)

    def get(self, field: CanonicalField) -> Optional[str]:
        return self.values.get(field)


# ------------------------
# Request
# ------------------------
class ImageRef(_Record):
    url: Optional[HttpUrl] = None
    base64: Optional[str] = None

    @model_validator(mode="after")
    def _require_source(self):
        if not self.url and not self.base64:
            raise ValueError("each image needs either 'url' or 'base64'")
        return self


class Applicant(_Record):
    name: str = Field(min_length=1)
    dob: str = Field(min_length=4)
    passport_number: Optional[str] = Field(None, min_length=3)
    nationality: Optional[str] = Field(None, min_length=2)
    intended_visa_type: Optional[str] = Field(None, min_length=2)


class Policy(_Record):
    min_passport_validity_months: int = Field(6, ge=0)
    min_applicant_age_years: int = Field(18, ge=0)
    allowed_nationalities: FrozenSet[str] = frozenset()
    disallowed_nationalities: FrozenSet[str] = frozenset()
    allowed_visa_types: FrozenSet[str] = frozenset()
    disallowed_visa_types: FrozenSet[str] = frozenset()
    require_mrz_checksum_pass: bool = Field(True, alias="requireMRZChecksumPass")


class VerifyRequest(_Record):
    images: List[ImageRef] = Field(min_length=1)
    applicant: Applicant
    policy: Optional[Policy] = None


# ------------------------
# Decision
# ------------------------
class EligibilityResult(_Record):
    eligible: bool
    reasons: List[str] = Field(default_factory=list)
    next_actions: List[str] = Field(default_factory=list)


class Summary(_Record):
    name_match: bool
    top_concerns: List[str]
    verdict: str
    checks_passed: int
    checks_failed: int
    confidence_tier: Literal["low", "medium", "high"]
    headline: str


# ------------------------
# Response
# ------------------------
class ExtractedView(_Record):
    document_type: Optional[str] = None
    issuing_country: Optional[str] = None
    surname: Optional[str] = None
    given_names: Optional[str] = None
    full_name: Optional[str] = None
    document_number: Optional[str] = None
    nationality: Optional[str] = None
    date_of_birth: Optional[str] = None
    sex: Optional[str] = None
    date_of_expiry: Optional[str] = None
    mrz: Optional[str] = None
    barcodes: List[str] = Field(default_factory=list)
    text: List[OCRLine] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: CanonicalRecord) -> "ExtractedView":
        return cls(
            **{field.value: record.get(field) for field in CanonicalField},
            mrz=record.mrz.raw_block if record.mrz else None,
            barcodes=record.barcodes,
            text=record.text_lines,
        )


class EligibilityView(_Record):
    eligible: bool
    reasons: List[str]
    recommended_next_actions: List[str]


class VerificationResult(_Record):
    ok: Literal[True] = True
    overall_confidence: float
    extracted: ExtractedView
    validations: List[CheckResult]
    eligibility: EligibilityView
    summary: Summary


class ErrorResponse(_Record):
    ok: Literal[False] = False
    error: str
    issues: Optional[List[Dict[str, Any]]] = None
