import cv2
import numpy as np
from typing import List


class BarcodeDecoder:
    """
    Decodes QR codes and 1D barcodes with OpenCV's graphical code detectors.
    Payloads are returned in detector order, QR first.
    """

    def __init__(self):
        self.detectors = [cv2.QRCodeDetector(), cv2.barcode.BarcodeDetector()]

    def load_image(self, data: bytes) -> np.ndarray:
        img = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        if img is None:
            raise ValueError("Image could not be decoded")
        return img

    def decode(self, data: bytes) -> List[str]:
        img = self.load_image(data)

        payloads = []
        for detector in self.detectors:
            ok, decoded_info, _, _ = detector.detectAndDecodeMulti(img)
            if not ok:
                continue
            payloads.extend(text for text in decoded_info if text)
        return payloads
