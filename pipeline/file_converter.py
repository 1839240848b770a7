import io
from PIL import Image
import pillow_heif
from pdf2image import convert_from_bytes

pillow_heif.register_heif_opener()

PDF_MAGIC = b"%PDF"


def is_pdf(data: bytes) -> bool:
    return data[:4] == PDF_MAGIC


def open_image(data: bytes) -> Image.Image:
    """
    Open image bytes (JPEG / PNG / WebP / HEIC / PDF) as an RGB PIL image.
    For PDFs only the first page is used.
    """
    # -------- Case 1: PDF --------
    if is_pdf(data):
        pages = convert_from_bytes(data, dpi=300, first_page=1, last_page=1)
        if not pages:
            raise ValueError("PDF has no pages")
        return pages[0].convert("RGB")

    # -------- Case 2: Normal image or HEIC --------
    return Image.open(io.BytesIO(data)).convert("RGB")


def to_jpeg(data: bytes) -> bytes:
    """Re-encode any supported input as JPEG bytes"""
    buffer = io.BytesIO()
    open_image(data).save(buffer, "JPEG", quality=95)
    return buffer.getvalue()
