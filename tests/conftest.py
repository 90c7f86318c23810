"""
Shared fakes for service and API tests.

Descriptors are tiny 4-d vectors and "frames" are the descriptors themselves,
so tests control exact distances without a face model.
"""

from dataclasses import replace

import numpy as np
import pytest

from engines.facial_recognition import FaceMatchSettings, ModelLoadError, normalize
from services.directory import DirectoryError, UserRecord
from services.login_service import LoginSession

DIM = 4


def vec(*values):
    return normalize(np.array(values, dtype=np.float32))


E1 = vec(1, 0, 0, 0)
E2 = vec(0, 1, 0, 0)
E3 = vec(0, 0, 1, 0)


def user(key, blocked=False, password='secret', image=None):
    return UserRecord(
        identity_key=key,
        email=key,
        password_hash=password,
        blocked=blocked,
        face_image_file=image if image is not None else f"{key}.jpg",
    )


class FakeDirectory:
    """
    Directory with separate cached and fresh views.

    `users` is what a cached read returns; `fresh_users` (if set) is what a
    forced read returns, simulating admin changes after the pool was built.
    """

    def __init__(self, users, fresh_users=None):
        self.users = {u.identity_key: u for u in users}
        self.fresh_users = {u.identity_key: u for u in fresh_users} if fresh_users is not None else None
        self.list_calls = []
        self.get_calls = []
        self.last_login_updates = []
        self.fail_reads = False
        self.fail_updates = False
        self.invalidated = False

    def _view(self, force_refresh):
        if self.fail_reads:
            raise DirectoryError("sheet unreachable")
        if force_refresh and self.fresh_users is not None:
            return self.fresh_users
        return self.users

    def list_users(self, force_refresh=False):
        self.list_calls.append(force_refresh)
        return list(self._view(force_refresh).values())

    def get_user(self, identity_key, force_refresh=False):
        self.get_calls.append((identity_key, force_refresh))
        return self._view(force_refresh).get(identity_key)

    def update_last_login(self, identity_key, timestamp):
        if self.fail_updates:
            raise DirectoryError("write failed")
        self.last_login_updates.append((identity_key, timestamp))
        return True

    def invalidate(self):
        self.invalidated = True


class FakeImageStore:
    """file name → image bytes; bytes are looked up by FakeEncoder."""

    def __init__(self, images=None):
        self.images = dict(images or {})
        self.fetches = []

    def fetch(self, file_ref, fresh=False):
        self.fetches.append((file_ref, fresh))
        return self.images.get(file_ref)


class FakeEncoder:
    """Frames are descriptors; image bytes map to descriptors via a table."""

    def __init__(self, image_descriptors=None, available=True):
        self.image_descriptors = dict(image_descriptors or {})
        self.available = available
        self.frames_encoded = 0

    def ensure_available(self):
        if not self.available:
            raise ModelLoadError("model missing")

    def encode_frame(self, frame):
        self.frames_encoded += 1
        if frame is None:
            return None
        return normalize(np.asarray(frame, dtype=np.float32))

    def encode_image(self, image_bytes):
        return self.image_descriptors.get(image_bytes)


def enrolled(*entries):
    """
    Build a matching (image store, encoder) pair.

    entries: (file_name, descriptor) — descriptor None means "no face in image"
    """
    images = {name: name.encode() for name, _ in entries}
    descriptors = {name.encode(): d for name, d in entries if d is not None}
    return FakeImageStore(images), FakeEncoder(descriptors)


@pytest.fixture
def settings():
    return FaceMatchSettings(
        accept_threshold=0.5,
        ambiguity_delta=0.12,
        final_threshold=0.45,
        capture_frames=3,
        capture_delay=0,
        min_valid_frames=2,
        descriptor_dim=DIM,
    )


@pytest.fixture
def make_session(settings):
    def _make(directory, image_store=None, encoder=None, session_store=None, **overrides):
        if image_store is None or encoder is None:
            image_store, encoder = enrolled()
        merged = settings
        if overrides:
            merged = replace(settings, **overrides)
        return LoginSession(
            directory=directory,
            image_store=image_store,
            encoder=encoder,
            settings=merged,
            session_store=session_store,
            clock=lambda: '2026-01-01T00:00:00+00:00',
        )
    return _make
