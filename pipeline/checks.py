import calendar
import logging
import re
from datetime import date, datetime
from typing import Any, FrozenSet, List, Optional, Tuple

from config import APPLICANT_DATE_FORMATS, NEXT_ACTIONS
from .models import (
    Applicant, CanonicalField, CanonicalRecord, CheckResult, EligibilityResult, Policy
)

logger = logging.getLogger(__name__)


def add_months(start: date, months: int) -> date:
    """Calendar month arithmetic, clamped to the last day of the target month"""
    month_index = start.month - 1 + months
    year, month = start.year + month_index // 12, month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def age_on(birth: date, today: date) -> int:
    return today.year - birth.year - ((today.month, today.day) < (birth.month, birth.day))


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse an ISO or applicant-style date; None when unparseable"""
    if not value:
        return None
    for fmt in APPLICANT_DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


class EligibilityChecks:
    """
    Applies an eligibility policy to a canonical record and the
    applicant-declared data.

    Blocking rules decide eligibility; advisory rules only record
    discrepancies between declared and extracted values.
    """

    def __init__(self, policy: Optional[Policy] = None, today: Optional[date] = None):
        self.policy = policy or Policy()
        self.today = today or date.today()

    def normalize_text(self, text: Optional[str]) -> str:
        """Normalize text for comparison"""
        if not text:
            return ""
        return re.sub(r"\s+", " ", text.strip().upper())

    def normalize_document_number(self, number: Optional[str]) -> str:
        """Uppercase and drop everything but letters and digits"""
        if not number:
            return ""
        return re.sub(r"[^A-Z0-9]", "", number.upper())

    def _result(self, check_id: str, description: str, passed: bool,
                severity: str = "blocking", **details: Any) -> CheckResult:
        return CheckResult(
            id=check_id, description=description, passed=passed, severity=severity, details=details
        )

    # ------------------------
    # Blocking rules
    # ------------------------
    def check_validity_window(self, record: CanonicalRecord) -> CheckResult:
        months = self.policy.min_passport_validity_months
        description = f"Document must remain valid for at least {months} month(s)"
        required_until = add_months(self.today, months)

        expiry = parse_date(record.get(CanonicalField.DATE_OF_EXPIRY))
        if expiry is None:
            return self._result("passportValidity", description, False,
                                reason="Date of expiry not extracted",
                                requiredUntil=required_until.isoformat())

        return self._result("passportValidity", description, expiry >= required_until,
                            dateOfExpiry=expiry.isoformat(),
                            requiredUntil=required_until.isoformat())

    def check_minimum_age(self, record: CanonicalRecord, applicant: Applicant) -> CheckResult:
        minimum = self.policy.min_applicant_age_years
        description = f"Applicant must be at least {minimum} year(s) old"

        source = "document"
        raw_dob = record.get(CanonicalField.DATE_OF_BIRTH)
        if raw_dob is None:
            source, raw_dob = "applicant", applicant.dob

        birth = parse_date(raw_dob)
        if birth is None:
            return self._result("minimumAge", description, False,
                                reason="Date of birth not available", source=source)

        age = age_on(birth, self.today)
        return self._result("minimumAge", description, age >= minimum, age=age, source=source)

    def check_allow_deny(self, check_id: str, description: str, value: Optional[str],
                         allowed: FrozenSet[str], disallowed: FrozenSet[str]) -> CheckResult:
        """The deny-list is authoritative over the allow-list"""
        normalized = self.normalize_text(value) or None
        allowed = {self.normalize_text(v) for v in allowed}
        disallowed = {self.normalize_text(v) for v in disallowed}

        if disallowed and normalized in disallowed:
            return self._result(check_id, description, False, value=normalized, reason="Listed as disallowed")
        if allowed and normalized not in allowed:
            reason = "Not listed as allowed" if normalized else "Value not available for allow-list"
            return self._result(check_id, description, False, value=normalized, reason=reason)
        return self._result(check_id, description, True, value=normalized)

    def check_nationality(self, record: CanonicalRecord) -> CheckResult:
        return self.check_allow_deny(
            "nationalityPolicy",
            "Nationality must be permitted by policy",
            record.get(CanonicalField.NATIONALITY),
            self.policy.allowed_nationalities,
            self.policy.disallowed_nationalities,
        )

    def check_visa_type(self, applicant: Applicant) -> CheckResult:
        return self.check_allow_deny(
            "visaTypePolicy",
            "Intended visa type must be permitted by policy",
            applicant.intended_visa_type,
            self.policy.allowed_visa_types,
            self.policy.disallowed_visa_types,
        )

    def check_mrz_checksums(self, record: CanonicalRecord) -> CheckResult:
        description = "MRZ check digits must all be valid"
        if not self.policy.require_mrz_checksum_pass:
            return self._result("mrzChecksum", description, True, reason="Not required by policy")
        if record.mrz is None:
            return self._result("mrzChecksum", description, False, reason="No MRZ detected")

        failed = [c.id for c in record.mrz.checks if not c.passed]
        return self._result("mrzChecksum", description, not failed, failedChecks=failed)

    # ------------------------
    # Advisory rules
    # ------------------------
    def declared_vs_extracted(self, record: CanonicalRecord, applicant: Applicant) -> List[CheckResult]:
        """Compare applicant-declared values against the document, when declared"""
        comparisons: List[Tuple[str, str, Optional[str], Optional[str], Any]] = []

        if applicant.passport_number:
            comparisons.append((
                "applicantPassportNumberMatch",
                "Declared passport number matches document",
                applicant.passport_number,
                record.get(CanonicalField.DOCUMENT_NUMBER),
                self.normalize_document_number,
            ))
        if applicant.nationality:
            comparisons.append((
                "applicantNationalityMatch",
                "Declared nationality matches document",
                applicant.nationality,
                record.get(CanonicalField.NATIONALITY),
                self.normalize_text,
            ))
        if applicant.dob:
            comparisons.append((
                "applicantDobMatch",
                "Declared date of birth matches document",
                applicant.dob,
                record.get(CanonicalField.DATE_OF_BIRTH),
                self._normalize_dob,
            ))

        results = []
        for check_id, description, declared, extracted, normalize in comparisons:
            if extracted is None:
                results.append(self._result(check_id, description, False, "advisory",
                                            reason="Value not extracted from document"))
                continue
            results.append(self._result(check_id, description,
                                        normalize(declared) == normalize(extracted), "advisory"))
        return results

    def _normalize_dob(self, value: str) -> str:
        parsed = parse_date(value)
        return parsed.isoformat() if parsed else value.strip()

    # ------------------------
    # Entry point
    # ------------------------
    def evaluate(self, record: CanonicalRecord,
                 applicant: Applicant) -> Tuple[List[CheckResult], EligibilityResult]:
        blocking = [
            self.check_validity_window(record),
            self.check_minimum_age(record, applicant),
            self.check_nationality(record),
            self.check_visa_type(applicant),
            self.check_mrz_checksums(record),
        ]
        advisory = self.declared_vs_extracted(record, applicant)

        failed = [check for check in blocking if not check.passed]
        result = EligibilityResult(
            eligible=not failed,
            reasons=[check.description for check in failed],
            next_actions=[NEXT_ACTIONS[check.id] for check in failed],
        )

        logger.debug("Eligibility evaluated: %d blocking failure(s)", len(failed))
        return blocking + advisory, result


def evaluate_eligibility(record: CanonicalRecord, applicant: Applicant,
                         policy: Optional[Policy] = None,
                         today: Optional[date] = None) -> Tuple[List[CheckResult], EligibilityResult]:
    return EligibilityChecks(policy=policy, today=today).evaluate(record, applicant)
