"""
Live Capture — reads several frames from a source and aggregates them.

A single frame is sensitive to blur, pose and motion; capturing a short burst
and averaging the per-frame descriptors into one live profile smooths that out.
Frame reads and face detection are blocking, so they run in a worker thread
and the event loop stays free between frames.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import cv2
import numpy as np

from engines.facial_recognition.descriptors import average_profile
from engines.facial_recognition.encoder import FaceEncoder
from engines.facial_recognition.errors import CameraError, CaptureCancelled, NoFaceDetectedError

logger = logging.getLogger(__name__)


class FrameSource:
    """Something that yields BGR frames. Subclasses override open/read/release."""

    def open(self) -> None:
        pass

    def read(self) -> Optional[np.ndarray]:
        raise NotImplementedError

    def release(self) -> None:
        pass


class CameraFrameSource(FrameSource):
    """Local camera via OpenCV VideoCapture."""

    def __init__(self, index: int = 0, width: int = 640, height: int = 480):
        self.index = index
        self.width = width
        self.height = height
        self._cap = None

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def open(self) -> None:
        if self.is_open:
            return
        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            cap.release()
            raise CameraError(f"Cannot open camera {self.index}")
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._cap = cap
        logger.info(f"Camera {self.index} opened")

    def read(self) -> Optional[np.ndarray]:
        if not self.is_open:
            raise CameraError(f"Camera {self.index} is not open")
        ret, frame = self._cap.read()
        return frame if ret else None

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info(f"Camera {self.index} released")


class FrameListSource(FrameSource):
    """Pre-captured frames, e.g. decoded from an HTTP request."""

    def __init__(self, frames: Sequence[np.ndarray]):
        self._frames = list(frames)
        self._pos = 0

    def read(self) -> Optional[np.ndarray]:
        if self._pos >= len(self._frames):
            return None
        frame = self._frames[self._pos]
        self._pos += 1
        return frame

    def release(self) -> None:
        self._frames = []
        self._pos = 0


@dataclass
class CaptureResult:
    """Normalized descriptors that survived a capture burst."""
    descriptors: List[np.ndarray] = field(default_factory=list)
    total_count: int = 0

    @property
    def valid_count(self) -> int:
        return len(self.descriptors)

    def profile(self) -> np.ndarray:
        """Averaged, re-normalized live profile."""
        return average_profile(self.descriptors)


async def capture_descriptors(source: FrameSource, encoder: FaceEncoder,
                              frame_count: int = 5, delay: float = 0.2,
                              min_valid: int = 2,
                              cancel_event: Optional[asyncio.Event] = None) -> CaptureResult:
    """
    Capture frame_count frames and encode one descriptor per frame.

    Frames without a face are dropped. The caller owns the source lifecycle.

    Raises:
        CaptureCancelled: cancel_event was set between frames
        NoFaceDetectedError: fewer than min_valid frames contained a face
    """
    result = CaptureResult()

    for i in range(frame_count):
        if cancel_event is not None and cancel_event.is_set():
            raise CaptureCancelled("Capture cancelled")

        frame = await asyncio.to_thread(source.read)
        result.total_count += 1

        if frame is not None:
            descriptor = await asyncio.to_thread(encoder.encode_frame, frame)
            if descriptor is not None:
                result.descriptors.append(descriptor)
            else:
                logger.debug(f"Capture frame {i + 1}: no face detected")
        else:
            logger.debug(f"Capture frame {i + 1}: no frame")

        if delay > 0 and i < frame_count - 1:
            await asyncio.sleep(delay)

    if cancel_event is not None and cancel_event.is_set():
        raise CaptureCancelled("Capture cancelled")

    if result.valid_count < min_valid:
        raise NoFaceDetectedError(result.valid_count, min_valid)

    logger.info(f"Captured face in {result.valid_count}/{result.total_count} frames")
    return result
