"""
Facial Recognition Engine
Provides face detection, descriptor encoding, live capture, and the
face-login match decision using InsightFace.

Usage:
    from engines.facial_recognition import FaceDetector, FaceEncoder, FaceMatcher

    detector = FaceDetector(gpu_id=-1)
    encoder  = FaceEncoder(detector)
    matcher  = FaceMatcher(accept_threshold=1.0, ambiguity_delta=0.1)
"""

from engines.facial_recognition.capture import (
    CameraFrameSource, CaptureResult, FrameListSource, FrameSource, capture_descriptors,
)
from engines.facial_recognition.descriptors import average_profile, euclidean_distance, normalize
from engines.facial_recognition.detector import FaceDetector, DetectedFace
from engines.facial_recognition.encoder import FaceEncoder
from engines.facial_recognition.errors import (
    CameraError, CaptureCancelled, DimensionMismatchError, FaceEngineError,
    ModelLoadError, NoFaceDetectedError,
)
from engines.facial_recognition.matcher import (
    EnrolledPool, EnrollmentRecord, FaceMatcher, MatchCandidate, MatchDecision, MatchOutcome,
)
from engines.facial_recognition.settings import FaceMatchSettings

__all__ = [
    'FaceDetector', 'DetectedFace',
    'FaceEncoder',
    'FaceMatcher', 'MatchCandidate', 'MatchDecision', 'MatchOutcome',
    'EnrolledPool', 'EnrollmentRecord',
    'FaceMatchSettings',
    'FrameSource', 'CameraFrameSource', 'FrameListSource', 'CaptureResult',
    'capture_descriptors',
    'normalize', 'euclidean_distance', 'average_profile',
    'FaceEngineError', 'ModelLoadError', 'CameraError', 'NoFaceDetectedError',
    'CaptureCancelled', 'DimensionMismatchError',
]
