"""
Tests for FaceDetector engine module.
"""

import numpy as np
import pytest
from unittest.mock import MagicMock

from engines.facial_recognition.detector import FaceDetector, BoundingBox
from engines.facial_recognition.errors import ModelLoadError


def _bare_detector(app=None):
    """Detector without model loading."""
    detector = FaceDetector.__new__(FaceDetector)
    detector.app = app
    detector.model_name = 'buffalo_l'
    detector.gpu_id = -1
    detector.det_size = (640, 640)
    return detector


def _raw_face(bbox, value):
    face = MagicMock()
    face.bbox = np.array(bbox, dtype=np.float32)
    face.embedding = np.full(512, value, dtype=np.float32)
    face.det_score = 0.9
    return face


class TestBoundingBox:
    def test_properties(self):
        bbox = BoundingBox(left=10, top=20, right=110, bottom=120)
        assert bbox.width == 100
        assert bbox.height == 100
        assert bbox.area == 10000


class TestFaceDetector:
    def test_unavailable_returns_empty(self):
        detector = _bare_detector()
        assert detector.detect(np.zeros((100, 100, 3), dtype=np.uint8)) == []
        assert detector.detect_largest(np.zeros((100, 100, 3), dtype=np.uint8)) is None

    def test_ensure_available_raises(self):
        with pytest.raises(ModelLoadError, match='buffalo_l'):
            _bare_detector().ensure_available()

    def test_detect_largest_picks_biggest_box(self, monkeypatch):
        monkeypatch.setattr('engines.facial_recognition.detector.INSIGHTFACE_AVAILABLE', True)
        app = MagicMock()
        app.get.return_value = [
            _raw_face([0, 0, 50, 50], 1.0),
            _raw_face([0, 0, 200, 200], 2.0),
        ]
        detector = _bare_detector(app)

        faces = detector.detect(np.zeros((200, 200, 3), dtype=np.uint8))
        assert len(faces) == 2
        largest = detector.detect_largest(np.zeros((200, 200, 3), dtype=np.uint8))
        assert largest.bbox.area == 40000
        assert largest.embedding[0] == 2.0

    def test_detection_error_returns_empty(self, monkeypatch):
        monkeypatch.setattr('engines.facial_recognition.detector.INSIGHTFACE_AVAILABLE', True)
        app = MagicMock()
        app.get.side_effect = RuntimeError('onnx failure')
        detector = _bare_detector(app)
        assert detector.detect(np.zeros((10, 10, 3), dtype=np.uint8)) == []

    def test_stats(self):
        stats = _bare_detector().get_stats()
        assert stats['available'] is False
        assert stats['model'] == 'buffalo_l'
