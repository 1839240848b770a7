import re
from typing import List, Optional

from config import settings
from .models import (
    Applicant, CanonicalField, CanonicalRecord, CheckResult, EligibilityResult, Summary
)


class DecisionEngine:
    """
    Aggregates field confidence and renders the verification summary.
    Pure: identical inputs always yield identical outputs.
    """

    def __init__(self):
        self.no_mrz_ceiling = settings.NO_MRZ_CONFIDENCE_CEILING
        self.tier_low = settings.CONFIDENCE_TIER_LOW
        self.tier_medium = settings.CONFIDENCE_TIER_MEDIUM
        self.max_concerns = settings.SUMMARY_MAX_CONCERNS

    def calculate_confidence(self, record: CanonicalRecord) -> float:
        """Mean confidence of the resolved fields, capped when no MRZ backs them"""
        values = [
            record.confidences.get(field, 0.0)
            for field in CanonicalField
            if record.get(field) is not None
        ]
        confidence = sum(values) / len(values) if values else 0.0

        # Identity fields without a validated MRZ are categorically less trusted
        if record.mrz is None:
            confidence = min(confidence, self.no_mrz_ceiling)

        return round(max(0.0, min(1.0, confidence)), 2)

    def confidence_tier(self, confidence: float) -> str:
        if confidence < self.tier_low:
            return "low"
        if confidence < self.tier_medium:
            return "medium"
        return "high"

    def normalize_name(self, name: Optional[str]) -> List[str]:
        """Uppercase letter tokens in sorted order, so word order does not matter"""
        if not name:
            return []
        return sorted(re.sub(r"[^A-Z]+", " ", name.upper()).split())

    def name_matches(self, applicant: Applicant, record: CanonicalRecord) -> bool:
        full_name = record.get(CanonicalField.FULL_NAME)
        if not full_name:
            return False
        declared = self.normalize_name(applicant.name)
        return bool(declared) and declared == self.normalize_name(full_name)

    def top_concerns(self, checks: List[CheckResult]) -> List[str]:
        failed = [c for c in checks if not c.passed]
        ordered = [c for c in failed if c.severity == "blocking"] + \
                  [c for c in failed if c.severity == "advisory"]
        return [c.description for c in ordered[:self.max_concerns]]

    def build_summary(self,
                      record: CanonicalRecord,
                      applicant: Applicant,
                      eligibility: EligibilityResult,
                      checks: List[CheckResult],
                      overall_confidence: float) -> Summary:
        name_match = self.name_matches(applicant, record)
        passed = sum(1 for c in checks if c.passed)
        failed = len(checks) - passed
        tier = self.confidence_tier(overall_confidence)
        verdict = "Eligible" if eligibility.eligible else "Not eligible"

        headline = (
            f"{verdict}: {passed}/{len(checks)} checks passed, "
            f"{tier} confidence ({overall_confidence:.2f}), "
            f"name {'matches' if name_match else 'does not match'} the document."
        )

        return Summary(
            name_match=name_match,
            top_concerns=self.top_concerns(checks),
            verdict=verdict,
            checks_passed=passed,
            checks_failed=failed,
            confidence_tier=tier,
            headline=headline,
        )


def compute_overall_confidence(record: CanonicalRecord) -> float:
    return DecisionEngine().calculate_confidence(record)


def build_summary(record: CanonicalRecord, applicant: Applicant, eligibility: EligibilityResult,
                  checks: List[CheckResult], overall_confidence: float) -> Summary:
    return DecisionEngine().build_summary(record, applicant, eligibility, checks, overall_confidence)
