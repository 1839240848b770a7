from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # OpenAI Configuration (vision OCR backend)
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4.1-mini"

    # OCR backend: "openai" or "tesseract"
    OCR_BACKEND: str = "openai"
    TESSERACT_CMD: Optional[str] = None
    TESSERACT_LANG: str = "eng"

    # Image intake
    DOWNLOAD_TIMEOUT: int = 30
    MAX_IMAGE_BYTES: int = 10 * 1024 * 1024

    # Upper wall-clock bound for a whole verification run
    VERIFY_TIMEOUT_SECONDS: float = 60.0

    # Confidence scoring
    NO_MRZ_CONFIDENCE_CEILING: float = 0.3
    CONFIDENCE_TIER_LOW: float = 0.4
    CONFIDENCE_TIER_MEDIUM: float = 0.75

    # Summary
    SUMMARY_MAX_CONCERNS: int = 5

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()

# MRZ alphabet and supported line groupings (line length -> line count)
MRZ_LINE_REGEX = r"^[A-Z0-9<]+$"
TD3_LINE_LENGTH = 44
TD1_LINE_LENGTH = 30
MRZ_FORMATS = {
    "TD3": {"line_length": TD3_LINE_LENGTH, "line_count": 2},
    "TD1": {"line_length": TD1_LINE_LENGTH, "line_count": 3},
}

# Applicant-declared dates are accepted in any of these formats
APPLICANT_DATE_FORMATS = ["%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y"]

# One fixed remediation per blocking rule
NEXT_ACTIONS = {
    "passportValidity": "Resubmit a document with more remaining validity",
    "minimumAge": "Confirm the applicant's date of birth; the minimum age requirement is not met",
    "nationalityPolicy": "Route to manual review for nationality eligibility",
    "visaTypePolicy": "Select a visa type permitted by the policy",
    "mrzChecksum": "Request a clearer capture or manual review",
}
