"""
Face Encoder — turns frames and stored photos into normalized descriptors.
Uses FaceDetector internally to find the face, then L2-normalizes its
embedding so distances are comparable across lighting and pose.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from engines.facial_recognition.descriptors import normalize
from engines.facial_recognition.detector import FaceDetector

logger = logging.getLogger(__name__)


def decode_image(image_bytes: bytes) -> Optional[np.ndarray]:
    """Decode JPEG/PNG bytes into a BGR frame, or None if undecodable."""
    if not image_bytes:
        return None
    nparr = np.frombuffer(image_bytes, np.uint8)
    return cv2.imdecode(nparr, cv2.IMREAD_COLOR)


class FaceEncoder:
    """
    Produces normalized face descriptors.

    Responsibilities:
        - Single-frame encoding (largest face)
        - Encoding of stored enrollment photos from raw bytes
        - Descriptor length check against the configured dimensionality
    """

    def __init__(self, detector: FaceDetector, descriptor_dim: Optional[int] = None):
        self.detector = detector
        self.descriptor_dim = descriptor_dim

    @property
    def available(self) -> bool:
        return self.detector.available

    def ensure_available(self) -> None:
        self.detector.ensure_available()

    def encode_frame(self, frame: np.ndarray) -> Optional[np.ndarray]:
        """
        Normalized descriptor of the largest face in a BGR frame.

        Returns:
            float32 vector, or None if no face was found
        """
        if frame is None:
            return None

        face = self.detector.detect_largest(frame)
        if face is None:
            return None

        embedding = np.asarray(face.embedding, dtype=np.float32)
        if self.descriptor_dim is not None and embedding.shape != (self.descriptor_dim,):
            logger.warning(
                f"FaceEncoder: expected {self.descriptor_dim}-d descriptor, "
                f"got shape {embedding.shape}"
            )
            return None
        return normalize(embedding)

    def encode_image(self, image_bytes: bytes) -> Optional[np.ndarray]:
        """Normalized descriptor of the largest face in an encoded image."""
        frame = decode_image(image_bytes)
        if frame is None:
            logger.warning("FaceEncoder: could not decode image bytes")
            return None
        return self.encode_frame(frame)
