import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .models import CanonicalField, CanonicalRecord, MRZBlock, OCRLine, RawExtraction

logger = logging.getLogger(__name__)

# (value, confidence, source index)
Candidate = Tuple[str, float, int]


class FieldFusion:
    """
    Merges per-image extraction results into one canonical record.

    Field values compete on confidence; the earlier image wins an exact tie.
    The MRZ block itself is taken from the last image that produced one.
    """

    def pick_best(self, candidates: Sequence[Candidate]) -> Optional[Candidate]:
        best = None
        for candidate in candidates:
            if best is None or candidate[1] > best[1]:
                best = candidate
            elif candidate[1] == best[1] and candidate[2] < best[2]:
                best = candidate
        return best

    def fuse(self, extractions: Sequence[RawExtraction]) -> CanonicalRecord:
        candidates: Dict[CanonicalField, List[Candidate]] = {field: [] for field in CanonicalField}
        text_lines: List[OCRLine] = []
        barcodes: List[str] = []
        mrz_block = None

        for index, extraction in enumerate(extractions):
            text_lines.extend(extraction.ocr.lines)
            barcodes.extend(extraction.barcodes)

            if extraction.mrz is None:
                continue

            mrz_block = MRZBlock(raw_block=extraction.mrz.raw_block, checks=extraction.mrz.checks)
            for name, mrz_field in extraction.mrz.fields.items():
                if mrz_field.value is not None:
                    candidates[name].append((mrz_field.value, mrz_field.confidence, index))

        values: Dict[CanonicalField, Optional[str]] = {}
        confidences: Dict[CanonicalField, float] = {}
        for field, field_candidates in candidates.items():
            best = self.pick_best(field_candidates)
            values[field] = best[0] if best else None
            if best:
                confidences[field] = best[1]

        if values[CanonicalField.FULL_NAME] is None:
            self._synthesize_full_name(values, confidences)

        logger.debug(
            "Fused %d extraction(s); %d field(s) resolved",
            len(extractions), sum(1 for v in values.values() if v is not None),
        )

        return CanonicalRecord(
            values=values,
            confidences=confidences,
            mrz=mrz_block,
            barcodes=barcodes,
            text_lines=text_lines,
        )

    def _synthesize_full_name(self, values: Dict[CanonicalField, Optional[str]],
                              confidences: Dict[CanonicalField, float]) -> None:
        parts = [CanonicalField.SURNAME, CanonicalField.GIVEN_NAMES]
        present = [field for field in parts if values[field]]
        full_name = " ".join(values[field] for field in present).strip()
        if not full_name:
            return
        values[CanonicalField.FULL_NAME] = full_name
        confidences[CanonicalField.FULL_NAME] = min(confidences[field] for field in present)


def fuse_extractions(extractions: Sequence[RawExtraction]) -> CanonicalRecord:
    return FieldFusion().fuse(extractions)
