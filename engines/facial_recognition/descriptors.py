"""
Descriptor math — normalization, distance, and live-profile averaging.
All functions are pure and operate on float32 numpy vectors.
"""

import json
from typing import Optional, Sequence

import numpy as np

from engines.facial_recognition.errors import DimensionMismatchError


def as_descriptor(value, dim: Optional[int] = None) -> np.ndarray:
    """
    Coerce a descriptor to a 1-d float32 array.

    Args:
        value: list of floats, JSON string, or numpy array
        dim: expected length; None skips the check

    Raises:
        ValueError on unsupported types or wrong shape
    """
    if isinstance(value, str):
        value = np.array(json.loads(value), dtype=np.float32)
    elif isinstance(value, (list, tuple)):
        value = np.array(value, dtype=np.float32)
    elif not isinstance(value, np.ndarray):
        raise ValueError(f"Unsupported descriptor type: {type(value)}")

    if value.ndim != 1:
        raise ValueError(f"Expected 1-d descriptor, got shape {value.shape}")
    if dim is not None and value.shape != (dim,):
        raise ValueError(f"Expected {dim}-d descriptor, got shape {value.shape}")
    return value.astype(np.float32)


def normalize(descriptor: np.ndarray) -> np.ndarray:
    """Return descriptor / ||descriptor||. The zero vector maps to itself."""
    vec = np.asarray(descriptor, dtype=np.float32)
    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        norm = 1.0
    return vec / norm


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean distance between two equal-length descriptors."""
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    if a.shape != b.shape:
        raise DimensionMismatchError(f"Descriptor shapes differ: {a.shape} vs {b.shape}")
    return float(np.linalg.norm(a - b))


def average_profile(descriptors: Sequence[np.ndarray]) -> np.ndarray:
    """
    Collapse several normalized live descriptors into one live profile.

    The mean is re-normalized so the profile sits on the same unit sphere
    as the enrolled descriptors it is compared against.
    """
    if not descriptors:
        raise ValueError("Cannot build a profile from zero descriptors")
    first = np.asarray(descriptors[0])
    for d in descriptors[1:]:
        if np.asarray(d).shape != first.shape:
            raise DimensionMismatchError(
                f"Descriptor shapes differ: {first.shape} vs {np.asarray(d).shape}"
            )
    avg = np.mean(np.stack(descriptors), axis=0).astype(np.float32)
    return normalize(avg)
