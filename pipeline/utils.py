import base64
import binascii
import requests
from urllib.parse import urlparse

from config import settings
from .errors import ImageLoadError
from .models import ImageRef


def download_image_from_url(url: str) -> bytes:
    """
    Download an image from URL

    Args:
        url: Image URL to download

    Returns:
        Raw image bytes
    """
    try:
        response = requests.get(url, timeout=settings.DOWNLOAD_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise ImageLoadError(f"Failed to download image from {url}: {str(e)}") from e

    return response.content


def decode_base64_image(data: str) -> bytes:
    """Decode a base64 payload, with or without a data: URI prefix"""
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageLoadError(f"Invalid base64 image data: {str(e)}") from e


def is_valid_url(url: str) -> bool:
    """Check if string is a valid URL"""
    result = urlparse(url)
    return all([result.scheme, result.netloc])


def load_image_bytes(image: ImageRef) -> bytes:
    """Resolve an image reference to bytes; base64 takes precedence over url"""
    if image.base64:
        content = decode_base64_image(image.base64)
    elif image.url and is_valid_url(str(image.url)):
        content = download_image_from_url(str(image.url))
    else:
        raise ImageLoadError("Image reference has no usable source")

    if not content:
        raise ImageLoadError("Image payload is empty")
    if len(content) > settings.MAX_IMAGE_BYTES:
        raise ImageLoadError(f"Image too large: {len(content)} bytes")
    return content
