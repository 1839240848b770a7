from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import logging

from pipeline.barcode import BarcodeDecoder
from pipeline.errors import VerificationError, VerificationTimeout
from pipeline.extractor import get_ocr_engine
from pipeline.models import ErrorResponse, VerificationResult, VerifyRequest
from pipeline.run_pipeline import verify
from config import settings


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Identity Document Eligibility Service",
    description="MRZ parsing, multi-image field fusion and policy-driven eligibility decisions",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, error: str, issues=None) -> JSONResponse:
    body = ErrorResponse(error=error, issues=issues)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body, by_alias=True, exclude_none=True),
    )


@app.exception_handler(RequestValidationError)
async def invalid_request_handler(request: Request, exc: RequestValidationError):
    issues = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return _error(400, "Invalid request", issues)


@app.exception_handler(VerificationError)
async def verification_error_handler(request: Request, exc: VerificationError):
    logger.error("Verification could not start: %s", exc)
    return _error(500, f"Verification failed: {str(exc)}")


# ------------------------
# Collaborators
# ------------------------
def get_ocr_engine_dep():
    return get_ocr_engine()


def get_barcode_decoder_dep():
    return BarcodeDecoder()


# ------------------------
# Verification API
# ------------------------
@app.post("/verify", response_model=VerificationResult)
async def verify_document(
    request: VerifyRequest,
    ocr_engine=Depends(get_ocr_engine_dep),
    barcode_decoder=Depends(get_barcode_decoder_dep),
):
    """
    Verify an identity document from one or more images of it and evaluate
    the applicant against the eligibility policy.
    """
    try:
        return await verify(
            request.images,
            request.applicant,
            request.policy,
            ocr_engine=ocr_engine,
            barcode_decoder=barcode_decoder,
        )
    except VerificationTimeout as e:
        logger.error("Verification timed out: %s", e)
        return _error(504, str(e))
    except Exception as e:
        logger.exception("Verification failed")
        return _error(500, f"Verification failed: {str(e)}")


# ------------------------
# Health Check
# ------------------------
@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "document-eligibility"
    }


# ------------------------
# Local Dev Entry
# ------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
