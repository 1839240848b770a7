import asyncio
import logging
from datetime import date
from typing import Any, List, Optional, Sequence

from config import settings
from .barcode import BarcodeDecoder
from .checks import evaluate_eligibility
from .decision import DecisionEngine
from .errors import VerificationTimeout
from .extractor import get_ocr_engine
from .fusion import fuse_extractions
from .models import (
    EligibilityView, ExtractedView, ImageRef, Policy, RawExtraction,
    VerificationResult, VerifyRequest
)
from .mrz import MRZParser
from .utils import load_image_bytes

logger = logging.getLogger(__name__)


async def _decode_barcodes(decoder: Any, data: bytes) -> List[str]:
    """Barcodes are supplementary evidence: any failure degrades to no barcodes"""
    try:
        return await asyncio.to_thread(decoder.decode, data)
    except Exception as e:
        logger.warning("Barcode decoding failed, continuing without barcodes: %s", e)
        return []


async def extract_image(image: ImageRef, ocr_engine: Any, barcode_decoder: Any,
                        parser: MRZParser) -> RawExtraction:
    """OCR and barcode decoding run concurrently over the same bytes"""
    data = await asyncio.to_thread(load_image_bytes, image)

    ocr, barcodes = await asyncio.gather(
        asyncio.to_thread(ocr_engine.extract, data),
        _decode_barcodes(barcode_decoder, data),
    )
    mrz = parser.parse(ocr.raw_text, ocr.lines)

    logger.debug(
        "Image processed: %d OCR line(s), MRZ %s, %d barcode(s)",
        len(ocr.lines), mrz.format if mrz else "not found", len(barcodes),
    )
    return RawExtraction(ocr=ocr, mrz=mrz, barcodes=barcodes)


async def _run(request: VerifyRequest, ocr_engine: Any, barcode_decoder: Any,
               today: Optional[date]) -> VerificationResult:
    parser = MRZParser(today=today)

    # Step 1: Extract each image in submission order, one at a time
    extractions = []
    for image in request.images:
        extractions.append(await extract_image(image, ocr_engine, barcode_decoder, parser))

    # Step 2: Fuse into one canonical record
    record = fuse_extractions(extractions)

    # Step 3: MRZ check digits first, then policy rules
    checks = list(record.mrz.checks) if record.mrz else []
    eligibility_checks, eligibility = evaluate_eligibility(
        record, request.applicant, request.policy, today=today
    )
    checks.extend(eligibility_checks)

    # Step 4: Confidence and summary
    engine = DecisionEngine()
    overall_confidence = engine.calculate_confidence(record)
    summary = engine.build_summary(record, request.applicant, eligibility, checks, overall_confidence)

    return VerificationResult(
        overall_confidence=overall_confidence,
        extracted=ExtractedView.from_record(record),
        validations=checks,
        eligibility=EligibilityView(
            eligible=eligibility.eligible,
            reasons=eligibility.reasons,
            recommended_next_actions=eligibility.next_actions,
        ),
        summary=summary,
    )


async def verify(images: Sequence[Any],
                 applicant: Any,
                 policy: Optional[Any] = None,
                 *,
                 ocr_engine: Any = None,
                 barcode_decoder: Any = None,
                 timeout: Optional[float] = None,
                 today: Optional[date] = None) -> VerificationResult:
    """
    Verify one identity document from one or more images.

    Args:
        images: Image references (ImageRef or dicts with 'url' / 'base64'), in submission order
        applicant: Applicant-declared data
        policy: Eligibility policy; omitted fields take their defaults
        ocr_engine: Object with extract(bytes) -> OCRResult; defaults to the configured backend
        barcode_decoder: Object with decode(bytes) -> list of payloads
        timeout: Wall-clock bound in seconds for the whole run
        today: Reference date for age and validity rules

    Returns:
        VerificationResult

    Raises:
        pydantic.ValidationError: malformed input, raised before any extraction
        VerificationError: an extraction-fatal failure or timeout
    """
    request = VerifyRequest(images=list(images), applicant=applicant, policy=policy or Policy())
    timeout = timeout if timeout is not None else settings.VERIFY_TIMEOUT_SECONDS

    ocr_engine = ocr_engine or get_ocr_engine()
    barcode_decoder = barcode_decoder or BarcodeDecoder()

    logger.info("Verification started for %d image(s)", len(request.images))
    # Cancelling does not stop a running OCR thread; the engines bound their own calls
    try:
        result = await asyncio.wait_for(_run(request, ocr_engine, barcode_decoder, today), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise VerificationTimeout(f"Verification exceeded {timeout:g}s") from e

    logger.info(
        "Verification finished: eligible=%s confidence=%.2f",
        result.eligibility.eligible, result.overall_confidence,
    )
    return result
