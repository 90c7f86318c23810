"""
Face Detector — InsightFace wrapper.
Finds faces in a frame and returns them with their embeddings.
GPU-accelerated via ONNX Runtime CUDA provider with CPU fallback.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from engines.facial_recognition.errors import ModelLoadError

logger = logging.getLogger(__name__)

# Lazy import — InsightFace may not be installed in all environments
try:
    from insightface.app import FaceAnalysis
    INSIGHTFACE_AVAILABLE = True
except ImportError:
    INSIGHTFACE_AVAILABLE = False
    logger.warning("InsightFace not installed — face detection unavailable")


@dataclass
class BoundingBox:
    """Axis-aligned bounding box in pixel coordinates."""
    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass
class DetectedFace:
    """A face detected in a frame."""
    bbox: BoundingBox
    embedding: np.ndarray        # raw descriptor, normalized downstream
    det_score: float = 0.0       # Detection confidence


class FaceDetector:
    """
    Detects faces using an InsightFace model pack (buffalo_l by default).

    Responsibilities:
        - Initialize InsightFace with GPU/CPU fallback
        - Detect faces and extract their descriptors
        - Pick the most prominent face in a frame

    Does NOT normalize, aggregate or match — see FaceEncoder and FaceMatcher.
    """

    def __init__(self, model_name: str = 'buffalo_l', gpu_id: int = 0,
                 det_size: tuple = (640, 640)):
        self.model_name = model_name
        self.gpu_id = gpu_id
        self.det_size = det_size
        self.app = None

        if INSIGHTFACE_AVAILABLE:
            self._init_model()

    @property
    def available(self) -> bool:
        return INSIGHTFACE_AVAILABLE and self.app is not None

    def ensure_available(self) -> None:
        """Raise ModelLoadError if the model never loaded."""
        if not self.available:
            raise ModelLoadError(f"Face model '{self.model_name}' is not loaded")

    def _init_model(self):
        """Initialize InsightFace — tries GPU first, falls back to CPU."""
        provider_options = [
            ['CUDAExecutionProvider', 'CPUExecutionProvider'],
            ['CPUExecutionProvider'],
        ]
        if self.gpu_id < 0:
            provider_options = provider_options[1:]

        for providers in provider_options:
            try:
                self.app = FaceAnalysis(name=self.model_name, providers=providers)
                self.app.prepare(ctx_id=self.gpu_id, det_size=self.det_size)
                logger.info(f"FaceDetector: {self.model_name} loaded with {providers}")
                return
            except Exception as e:
                logger.warning(f"FaceDetector init failed with {providers}: {e}")
                self.app = None
        logger.error("FaceDetector: could not initialize with any provider")

    def detect(self, frame: np.ndarray) -> List[DetectedFace]:
        """
        Detect all faces in a BGR frame.

        Returns:
            List of DetectedFace; empty if the model is unavailable or detection failed
        """
        if not self.available:
            return []

        try:
            raw_faces = self.app.get(frame)
        except Exception as e:
            logger.error(f"Face detection error: {e}")
            return []

        results = []
        for face in raw_faces:
            bbox = face.bbox.astype(int)
            results.append(DetectedFace(
                bbox=BoundingBox(
                    left=int(bbox[0]),
                    top=int(bbox[1]),
                    right=int(bbox[2]),
                    bottom=int(bbox[3]),
                ),
                embedding=np.asarray(face.embedding, dtype=np.float32),
                det_score=float(getattr(face, 'det_score', 0.0)),
            ))
        return results

    def detect_largest(self, frame: np.ndarray) -> Optional[DetectedFace]:
        """Return the face with the largest bounding box, or None."""
        faces = self.detect(frame)
        if not faces:
            return None
        return max(faces, key=lambda f: f.bbox.area)

    def get_stats(self) -> dict:
        return {
            'available': self.available,
            'model': self.model_name,
            'gpu_id': self.gpu_id,
            'det_size': self.det_size,
        }
