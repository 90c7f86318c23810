"""
Face engine exceptions.

Biometric outcomes (not recognized, ambiguous, ...) are NOT exceptions —
see MatchOutcome in matcher.py. These cover environment and programming errors.
"""


class FaceEngineError(Exception):
    """Base class for face engine errors."""


class ModelLoadError(FaceEngineError):
    """Face model could not be loaded."""


class CameraError(FaceEngineError):
    """Camera could not be opened or stopped delivering frames."""


class NoFaceDetectedError(FaceEngineError):
    """Too few captured frames contained a detectable face."""

    def __init__(self, valid_count: int, required: int):
        self.valid_count = valid_count
        self.required = required
        super().__init__(f"Need at least {required} frames with a face, got {valid_count}")


class CaptureCancelled(FaceEngineError):
    """Capture loop was abandoned because the login surface closed."""


class DimensionMismatchError(FaceEngineError, ValueError):
    """Two descriptors of different length were compared."""
