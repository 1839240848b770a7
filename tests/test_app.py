"""Tests for the HTTP surface (FastAPI app)."""

import pytest
from fastapi.testclient import TestClient

from app import app, get_barcode_decoder_dep, get_ocr_engine_dep
from config import settings
from pipeline.errors import OCRError
from tests.conftest import TD3_LINE1, TD3_LINE2, FakeDecoder, FakeOCR, image_ref, ocr_result

FRONT = b"front-image"


@pytest.fixture
def fake_ocr():
    return FakeOCR({FRONT: ocr_result([TD3_LINE1, TD3_LINE2], 0.9)})


@pytest.fixture
def client(fake_ocr):
    app.dependency_overrides[get_ocr_engine_dep] = lambda: fake_ocr
    app.dependency_overrides[get_barcode_decoder_dep] = lambda: FakeDecoder(["QR-PAYLOAD"])
    yield TestClient(app)
    app.dependency_overrides.clear()


def _body(applicant, **extra):
    body = {"images": [image_ref(FRONT)], "applicant": applicant}
    body.update(extra)
    return body


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy", "service": "document-eligibility"}


def test_verify_success_payload(client, applicant):
    r = client.post("/verify", json=_body(applicant))
    assert r.status_code == 200

    data = r.json()
    assert data["ok"] is True
    assert 0.0 <= data["overallConfidence"] <= 1.0
    assert data["extracted"]["documentNumber"] == "L898902C3"
    assert data["extracted"]["dateOfBirth"] == "1974-08-12"
    assert data["extracted"]["barcodes"] == ["QR-PAYLOAD"]
    assert data["extracted"]["text"][0] == {"text": TD3_LINE1, "confidence": 0.9}
    # The specimen expired in 2012
    assert data["eligibility"]["eligible"] is False
    assert data["eligibility"]["recommendedNextActions"] == [
        "Resubmit a document with more remaining validity"
    ]
    assert data["summary"]["nameMatch"] is True
    assert data["summary"]["confidenceTier"] == "high"
    assert {"id", "description", "passed", "severity", "details"} <= set(data["validations"][0])


def test_zero_images_is_invalid_request(client, applicant, fake_ocr):
    r = client.post("/verify", json={"images": [], "applicant": applicant})
    assert r.status_code == 400

    data = r.json()
    assert data["ok"] is False
    assert data["error"] == "Invalid request"
    assert any("images" in issue["loc"] for issue in data["issues"])
    assert fake_ocr.calls == []


def test_missing_applicant_fields_are_reported(client):
    r = client.post("/verify", json={"images": [image_ref(FRONT)], "applicant": {"name": ""}})
    assert r.status_code == 400

    locs = [issue["loc"] for issue in r.json()["issues"]]
    assert ["body", "applicant", "name"] in locs
    assert ["body", "applicant", "dob"] in locs


def test_image_without_source_is_invalid(client, applicant):
    r = client.post("/verify", json={"images": [{}], "applicant": applicant})
    assert r.status_code == 400


def test_policy_accepts_camel_case_fields(client, applicant):
    policy = {"minPassportValidityMonths": 0, "requireMRZChecksumPass": False, "disallowedNationalities": ["UTO"]}
    r = client.post("/verify", json=_body(applicant, policy=policy))
    assert r.status_code == 200

    failed = [v["id"] for v in r.json()["validations"] if not v["passed"]]
    assert "nationalityPolicy" in failed
    assert "mrzChecksum" not in failed


def test_negative_policy_values_rejected(client, applicant):
    r = client.post("/verify", json=_body(applicant, policy={"minApplicantAgeYears": -1}))
    assert r.status_code == 400


def test_ocr_failure_returns_error_payload(applicant):
    app.dependency_overrides[get_ocr_engine_dep] = lambda: FakeOCR({FRONT: OCRError("backend down")})
    app.dependency_overrides[get_barcode_decoder_dep] = lambda: FakeDecoder()
    try:
        r = TestClient(app).post("/verify", json=_body(applicant))
    finally:
        app.dependency_overrides.clear()

    assert r.status_code == 500
    data = r.json()
    assert data["ok"] is False
    assert "backend down" in data["error"]
    assert "issues" not in data


def test_unconfigured_ocr_backend_returns_error_payload(applicant, monkeypatch):
    monkeypatch.setattr(settings, "OCR_BACKEND", "openai")
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
    app.dependency_overrides[get_barcode_decoder_dep] = lambda: FakeDecoder()
    try:
        r = TestClient(app).post("/verify", json=_body(applicant))
    finally:
        app.dependency_overrides.clear()

    assert r.status_code == 500
    assert "OPENAI_API_KEY" in r.json()["error"]


def test_timeout_returns_504(applicant, monkeypatch):
    monkeypatch.setattr(settings, "VERIFY_TIMEOUT_SECONDS", 0.05)
    slow = FakeOCR({FRONT: ocr_result([TD3_LINE1, TD3_LINE2])}, delay=0.5)
    app.dependency_overrides[get_ocr_engine_dep] = lambda: slow
    app.dependency_overrides[get_barcode_decoder_dep] = lambda: FakeDecoder()
    try:
        r = TestClient(app).post("/verify", json=_body(applicant))
    finally:
        app.dependency_overrides.clear()

    assert r.status_code == 504
    assert r.json()["ok"] is False
