"""
Tests for FaceEncoder engine module.
"""

import cv2
import numpy as np
import pytest
from unittest.mock import MagicMock

from engines.facial_recognition.detector import DetectedFace, BoundingBox
from engines.facial_recognition.encoder import FaceEncoder, decode_image


def _face(embedding):
    return DetectedFace(bbox=BoundingBox(0, 0, 100, 100), embedding=embedding)


class TestFaceEncoder:
    def _make_encoder(self, face=None, descriptor_dim=None):
        """Create encoder with mocked detector."""
        detector = MagicMock()
        detector.available = True
        detector.detect_largest.return_value = face
        return FaceEncoder(detector, descriptor_dim=descriptor_dim)

    def test_encode_frame_no_face(self):
        encoder = self._make_encoder(face=None)
        assert encoder.encode_frame(np.zeros((100, 100, 3), dtype=np.uint8)) is None

    def test_encode_frame_none(self):
        encoder = self._make_encoder(face=_face(np.ones(512, dtype=np.float32)))
        assert encoder.encode_frame(None) is None

    def test_encode_frame_normalizes(self):
        emb = np.random.randn(512).astype(np.float32) * 30
        encoder = self._make_encoder(face=_face(emb), descriptor_dim=512)
        result = encoder.encode_frame(np.zeros((100, 100, 3), dtype=np.uint8))
        assert result.shape == (512,)
        assert np.linalg.norm(result) == pytest.approx(1.0, abs=1e-5)

    def test_encode_frame_wrong_dimension(self):
        encoder = self._make_encoder(face=_face(np.ones(128, dtype=np.float32)), descriptor_dim=512)
        assert encoder.encode_frame(np.zeros((100, 100, 3), dtype=np.uint8)) is None

    def test_encode_image_undecodable(self):
        encoder = self._make_encoder(face=_face(np.ones(512, dtype=np.float32)))
        assert encoder.encode_image(b'not an image') is None
        encoder.detector.detect_largest.assert_not_called()

    def test_encode_image_success(self):
        ok, buf = cv2.imencode('.png', np.full((32, 32, 3), 128, dtype=np.uint8))
        assert ok
        encoder = self._make_encoder(face=_face(np.ones(512, dtype=np.float32)))
        result = encoder.encode_image(buf.tobytes())
        assert result is not None
        assert np.linalg.norm(result) == pytest.approx(1.0, abs=1e-5)

    def test_availability_follows_detector(self):
        detector = MagicMock()
        detector.available = False
        assert FaceEncoder(detector).available is False


class TestDecodeImage:
    def test_empty_bytes(self):
        assert decode_image(b'') is None

    def test_png_roundtrip_shape(self):
        ok, buf = cv2.imencode('.png', np.zeros((20, 30, 3), dtype=np.uint8))
        assert decode_image(buf.tobytes()).shape == (20, 30, 3)
