"""
QR extraction from uploaded document images (Aadhaar carries a QR code).
"""
from typing import Optional

import cv2
import numpy as np


def decode_qr(image_bytes: bytes) -> Optional[str]:
    """Return the decoded QR payload, or None when no code is readable."""
    if not image_bytes:
        return None
    buffer = np.frombuffer(image_bytes, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None:
        return None
    detector = cv2.QRCodeDetector()
    data, points, _ = detector.detectAndDecode(image)
    if points is None or not data:
        # small codes on phone photos often only decode in grayscale
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        data, points, _ = detector.detectAndDecode(gray)
    return data or None
