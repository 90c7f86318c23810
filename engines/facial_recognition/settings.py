"""
Face Match Settings — tunable thresholds for the face-login decision.
All operating-point knobs live here for easy adjustment.

IMPORTANT: Distances are Euclidean on L2-normalized descriptors, so they lie
in [0, 2]. For ArcFace-style models (buffalo_l) distance = sqrt(2 - 2*cos),
i.e. 1.0 ≈ cosine 0.5. Re-tune if you switch model packs or enrollment photo
quality changes. Lower thresholds = fewer false accepts, more false rejects.
"""

from dataclasses import dataclass


@dataclass
class FaceMatchSettings:
    """Thresholds and capture policy for one login session."""

    # ── Decision ──
    accept_threshold: float = 1.0    # best candidate must be at or below this
    ambiguity_delta: float = 0.1     # required gap between best and runner-up
    final_threshold: float = 0.95    # re-verification against fresh enrollment image

    # ── Capture ──
    capture_frames: int = 5          # frames read per attempt
    capture_delay: float = 0.2       # seconds between frames
    min_valid_frames: int = 2        # frames that must contain a face

    # ── Model ──
    descriptor_dim: int = 512

    def __post_init__(self):
        if self.accept_threshold <= 0:
            raise ValueError("accept_threshold must be positive")
        if self.ambiguity_delta < 0:
            raise ValueError("ambiguity_delta must not be negative")
        if self.final_threshold > self.accept_threshold:
            raise ValueError("final_threshold must not be looser than accept_threshold")
        if self.capture_frames < 1:
            raise ValueError("capture_frames must be at least 1")
        if not 1 <= self.min_valid_frames <= self.capture_frames:
            raise ValueError("min_valid_frames must be between 1 and capture_frames")
        if self.capture_delay < 0:
            raise ValueError("capture_delay must not be negative")

    @classmethod
    def from_config(cls, config) -> 'FaceMatchSettings':
        """Build settings from a Config-like object."""
        return cls(
            accept_threshold=config.FACE_ACCEPT_THRESHOLD,
            ambiguity_delta=config.FACE_AMBIGUITY_DELTA,
            final_threshold=config.FACE_FINAL_THRESHOLD,
            capture_frames=config.FACE_CAPTURE_FRAMES,
            capture_delay=config.FACE_CAPTURE_DELAY_MS / 1000.0,
            min_valid_frames=config.FACE_MIN_VALID_FRAMES,
            descriptor_dim=config.FACE_DESCRIPTOR_DIM,
        )
