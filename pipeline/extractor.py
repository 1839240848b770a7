import base64
import json
import logging
import re
from typing import Any, Dict, List, Optional

import pytesseract
from openai import OpenAI

from config import settings
from .errors import OCRError
from .file_converter import open_image, to_jpeg
from .models import OCRLine, OCRResult

logger = logging.getLogger(__name__)

OCR_PROMPT = """
You are an identity document OCR system.

Transcribe EVERY line of text visible on this document, top to bottom,
exactly as printed. This includes the Machine-Readable Zone at the bottom:
copy MRZ lines character for character, keeping every '<' filler and
without inserting spaces.

Return STRICT JSON only.

Expected format:
{
  "lines": [
    {"text": "string", "confidence": 0.0-1.0}
  ]
}

Rules:
- One entry per printed line, in reading order
- Confidence values between 0 and 1
- DO NOT guess or hallucinate text that is not visible
"""


def to_confidence(val: Any) -> float:
    """Coerce a model- or engine-reported confidence into [0, 1]"""
    if val is None:
        return 0.0
    try:
        v = float(str(val).strip().replace('%', ''))
    except ValueError:
        return 0.0
    # Percentages like 95 become 0.95
    if v > 1:
        v = v / 100.0
    return max(0.0, min(1.0, v))


class OpenAIVisionOCR:
    """
    OCR backend that asks an OpenAI vision model for a line-by-line
    transcription with per-line confidence
    """

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None):
        if client is None:
            if not settings.OPENAI_API_KEY:
                raise OCRError("OPENAI_API_KEY is not configured")
            client = OpenAI(api_key=settings.OPENAI_API_KEY)
        self.client = client
        self.model = model or settings.OPENAI_MODEL
        self.timeout = settings.VERIFY_TIMEOUT_SECONDS

    def encode_image(self, data: bytes) -> str:
        """Encode image as base64 data URL"""
        b64 = base64.b64encode(to_jpeg(data)).decode("utf-8")
        return f"data:image/jpeg;base64,{b64}"

    def safe_json_parse(self, text: str) -> Dict[str, Any]:
        """Safely parse JSON from LLM response"""
        match = re.search(r"\{.*\}", text or "", re.DOTALL)
        if not match:
            raise OCRError("No JSON found in model output")
        try:
            return json.loads(match.group())
        except json.JSONDecodeError as e:
            raise OCRError(f"Malformed JSON in model output: {e}") from e

    def extract(self, data: bytes) -> OCRResult:
        try:
            image_url = self.encode_image(data)
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": OCR_PROMPT},
                            {
                                "type": "image_url",
                                "image_url": {
                                    "url": image_url
                                }
                            }
                        ]
                    }
                ],
                max_tokens=1200,
                temperature=0,
                timeout=self.timeout,
            )
            content = response.choices[0].message.content
        except OCRError:
            raise
        except Exception as e:
            raise OCRError(f"OCR request failed: {str(e)}") from e

        parsed = self.safe_json_parse(content)
        raw_lines = parsed.get("lines")
        if not isinstance(raw_lines, list):
            raise OCRError("Model output has no 'lines' list")

        lines = []
        for item in raw_lines:
            if not isinstance(item, dict) or not str(item.get("text") or "").strip():
                continue
            lines.append(OCRLine(text=str(item["text"]).strip(), confidence=to_confidence(item.get("confidence"))))

        return OCRResult(lines=lines, raw_text="\n".join(line.text for line in lines))


class TesseractOCR:
    """OCR backend on pytesseract; line confidence is the mean word confidence"""

    def __init__(self, lang: Optional[str] = None):
        self.lang = lang or settings.TESSERACT_LANG
        self.timeout = settings.VERIFY_TIMEOUT_SECONDS
        if settings.TESSERACT_CMD:
            pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD

    def group_lines(self, data: Dict[str, List[Any]]) -> List[OCRLine]:
        grouped: Dict[tuple, Dict[str, list]] = {}
        for i, word in enumerate(data["text"]):
            word = (word or "").strip()
            conf = float(data["conf"][i])
            if not word or conf < 0:
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            entry = grouped.setdefault(key, {"words": [], "confs": []})
            entry["words"].append(word)
            entry["confs"].append(conf)

        return [
            OCRLine(
                text=" ".join(entry["words"]),
                confidence=to_confidence(sum(entry["confs"]) / len(entry["confs"])),
            )
            for _, entry in sorted(grouped.items())
        ]

    def extract(self, data: bytes) -> OCRResult:
        try:
            img = open_image(data)
            output = pytesseract.image_to_data(
                img, lang=self.lang, output_type=pytesseract.Output.DICT, timeout=self.timeout
            )
        except Exception as e:
            raise OCRError(f"Tesseract OCR failed: {str(e)}") from e

        lines = self.group_lines(output)
        return OCRResult(lines=lines, raw_text="\n".join(line.text for line in lines))


OCR_BACKENDS = {
    "openai": OpenAIVisionOCR,
    "tesseract": TesseractOCR,
}


def get_ocr_engine(backend: Optional[str] = None):
    """Build the OCR backend named in settings"""
    name = (backend or settings.OCR_BACKEND).lower()
    if name not in OCR_BACKENDS:
        raise OCRError(f"Unknown OCR backend: {name}")
    logger.debug("Using %s OCR backend", name)
    return OCR_BACKENDS[name]()
