class VerificationError(Exception):
    """Base class for failures that abort a verification run"""


class ImageLoadError(VerificationError):
    """An image reference could not be resolved to bytes"""


class OCRError(VerificationError):
    """The OCR backend failed or returned unusable output"""


class VerificationTimeout(VerificationError):
    """The run exceeded its wall-clock bound"""
