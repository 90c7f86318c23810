"""
Login Service — password and face login for one login session.

A LoginSession owns its enrolled pool, directory cache, capture guard and
cancel flag. Nothing is shared between sessions, so two open login pages
cannot corrupt each other's state.

Face login sequence:
    capture → live profile → score/decide → re-verify against the fresh
    enrollment image → fresh blocked check → grant
Any failure along the way ends the attempt without a session.
"""

import asyncio
import enum
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import bcrypt

from engines.facial_recognition import (
    CameraError, CaptureCancelled, EnrolledPool, FaceEncoder, FaceMatcher, FaceMatchSettings,
    FrameSource, MatchOutcome, ModelLoadError, NoFaceDetectedError, capture_descriptors,
    euclidean_distance,
)
from services.directory import DirectoryError, UserDirectory, UserRecord
from services.image_store import EnrollmentImageStore, ImageStoreError
from services.session_store import SessionStore

logger = logging.getLogger(__name__)


class LoginReason(enum.Enum):
    """Why a login attempt failed."""
    MISSING_CREDENTIALS = 'missing-credentials'
    USER_NOT_FOUND = 'user-not-found'
    WRONG_PASSWORD = 'wrong-password'
    BLOCKED = 'blocked'
    NO_FACE_DETECTED = 'no-face-detected'
    NOT_RECOGNIZED = 'not-recognized'
    AMBIGUOUS = 'ambiguous'
    VERIFICATION_FAILED = 'verification-failed'
    NO_ENROLLED_FACES = 'no-enrolled-faces'
    CAMERA_ERROR = 'camera-error'
    MODEL_LOAD_ERROR = 'model-load-error'
    SERVICE_UNAVAILABLE = 'service-unavailable'
    BUSY = 'busy'
    CANCELLED = 'cancelled'


_DECISION_REASONS = {
    MatchOutcome.NO_ENROLLED_FACES: LoginReason.NO_ENROLLED_FACES,
    MatchOutcome.NOT_RECOGNIZED: LoginReason.NOT_RECOGNIZED,
    MatchOutcome.AMBIGUOUS: LoginReason.AMBIGUOUS,
}


@dataclass
class LoginResult:
    """Outcome of a login attempt."""
    ok: bool
    user: Optional[UserRecord] = None
    reason: Optional[LoginReason] = None
    method: str = ''

    @classmethod
    def success(cls, user: UserRecord, method: str) -> 'LoginResult':
        return cls(ok=True, user=user, method=method)

    @classmethod
    def fail(cls, reason: LoginReason, method: str) -> 'LoginResult':
        return cls(ok=False, reason=reason, method=method)

    def to_dict(self) -> dict:
        return {
            'ok': self.ok,
            'user': self.user.to_dict() if self.user else None,
            'reason': self.reason.value if self.reason else None,
            'method': self.method,
        }


def verify_password(password: str, stored: str) -> bool:
    """
    Check a password against the directory credential.

    bcrypt hashes are verified with bcrypt; anything else is a legacy
    plain-text cell and is compared in constant time.
    """
    if not stored:
        return False
    if stored.startswith(('$2a$', '$2b$', '$2y$')):
        try:
            return bcrypt.checkpw(password.encode('utf-8'), stored.encode('utf-8'))
        except ValueError:
            logger.warning("Malformed bcrypt hash in directory")
            return False
    return hmac.compare_digest(password.encode('utf-8'), stored.encode('utf-8'))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LoginSession:
    """
    One login surface's worth of state: construct → initialize → use → close.

    Responsibilities:
        - Build the enrolled pool from the directory and image store
        - Password login (existence → blocked → credential)
        - Face login with re-verification and a fresh blocked gate
        - Single in-flight face attempt; cancellation releases the camera
    """

    def __init__(self, directory: UserDirectory, image_store: EnrollmentImageStore,
                 encoder: FaceEncoder, settings: Optional[FaceMatchSettings] = None,
                 session_store: Optional[SessionStore] = None,
                 frame_source: Optional[FrameSource] = None, clock=_now_iso):
        self.directory = directory
        self.image_store = image_store
        self.encoder = encoder
        self.settings = settings or FaceMatchSettings()
        self.session_store = session_store
        self.frame_source = frame_source
        self.clock = clock
        self.matcher = FaceMatcher(
            accept_threshold=self.settings.accept_threshold,
            ambiguity_delta=self.settings.ambiguity_delta,
        )

        self._pool: Optional[EnrolledPool] = None
        self._guard = asyncio.Lock()
        self._cancel = asyncio.Event()
        self._active_source: Optional[FrameSource] = None
        self._closed = False

    async def __aenter__(self) -> 'LoginSession':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def pool_size(self) -> int:
        return len(self._pool) if self._pool is not None else 0

    @property
    def busy(self) -> bool:
        return self._guard.locked()

    # ==================== POOL ====================

    async def initialize(self) -> int:
        """
        Build the enrolled pool.

        The pool is published only once fully built, so no attempt ever
        scores against a partial pool. Blocked users are included; blocking
        is enforced by the fresh gate at decision time.

        Returns:
            Number of enrolled descriptors
        Raises:
            ModelLoadError, DirectoryError
            CaptureCancelled if the session was closed while loading
        """
        self.encoder.ensure_available()
        users = await asyncio.to_thread(self.directory.list_users)

        pool = EnrolledPool(descriptor_dim=self.settings.descriptor_dim)
        for user in users:
            if not user.face_image_file:
                continue
            descriptor = await self._enrollment_descriptor(user, fresh=False)
            if descriptor is None:
                logger.warning(f"No enrollment descriptor for {user.identity_key}")
                continue
            pool.add(user.identity_key, descriptor, blocked=user.blocked)

        if self._closed:
            logger.info("Session closed while loading the enrolled pool — discarded")
            raise CaptureCancelled("Session closed")

        self._pool = pool
        logger.info(f"Enrolled pool loaded: {len(pool)}/{len(users)} users")
        return len(pool)

    async def _enrollment_descriptor(self, user: UserRecord, fresh: bool):
        try:
            image = await asyncio.to_thread(self.image_store.fetch, user.face_image_file, fresh)
        except ImageStoreError as e:
            logger.warning(f"Enrollment image fetch failed for {user.identity_key}: {e}")
            return None
        if image is None:
            return None
        return await asyncio.to_thread(self.encoder.encode_image, image)

    # ==================== PASSWORD LOGIN ====================

    async def login_with_password(self, identity_key: str, password: str) -> LoginResult:
        """Existence, then blocked, then credential — in that order."""
        method = 'password'
        if not isinstance(identity_key, str) or not isinstance(password, str):
            return LoginResult.fail(LoginReason.MISSING_CREDENTIALS, method)
        identity_key = identity_key.strip()
        if not identity_key or not password:
            return LoginResult.fail(LoginReason.MISSING_CREDENTIALS, method)

        try:
            user = await asyncio.to_thread(self.directory.get_user, identity_key, True)
        except DirectoryError as e:
            logger.error(f"Password login for {identity_key}: directory error: {e}")
            return LoginResult.fail(LoginReason.SERVICE_UNAVAILABLE, method)

        if user is None:
            logger.info(f"Password login: unknown identity {identity_key}")
            return LoginResult.fail(LoginReason.USER_NOT_FOUND, method)
        if user.blocked:
            logger.info(f"Password login: {identity_key} is blocked")
            return LoginResult.fail(LoginReason.BLOCKED, method)
        if not verify_password(password, user.password_hash):
            logger.info(f"Password login: wrong password for {identity_key}")
            return LoginResult.fail(LoginReason.WRONG_PASSWORD, method)

        return await self._grant(user, method)

    # ==================== FACE LOGIN ====================

    async def login_with_face(self, source: Optional[FrameSource] = None) -> LoginResult:
        """
        Run one capture/match cycle.

        Re-entrant calls while a cycle is in flight fail with BUSY. A cancel()
        issued before the cycle starts still cancels it; the flag is reset once
        the cycle ends. The frame source is released on every exit path.
        """
        method = 'face'
        if self._closed:
            return LoginResult.fail(LoginReason.CANCELLED, method)
        if self._guard.locked():
            return LoginResult.fail(LoginReason.BUSY, method)

        async with self._guard:
            source = source or self.frame_source
            if source is None:
                logger.error("Face login: no frame source configured")
                return LoginResult.fail(LoginReason.CAMERA_ERROR, method)

            self._active_source = source
            try:
                return await self._face_cycle(source)
            except ModelLoadError as e:
                logger.error(f"Face login: model unavailable: {e}")
                return LoginResult.fail(LoginReason.MODEL_LOAD_ERROR, method)
            except CameraError as e:
                logger.error(f"Face login: camera error: {e}")
                return LoginResult.fail(LoginReason.CAMERA_ERROR, method)
            except NoFaceDetectedError as e:
                logger.info(f"Face login: {e}")
                return LoginResult.fail(LoginReason.NO_FACE_DETECTED, method)
            except CaptureCancelled:
                logger.info("Face login: cancelled")
                return LoginResult.fail(LoginReason.CANCELLED, method)
            except DirectoryError as e:
                logger.error(f"Face login: directory error: {e}")
                return LoginResult.fail(LoginReason.SERVICE_UNAVAILABLE, method)
            finally:
                self._active_source = None
                source.release()
                if not self._closed:
                    self._cancel.clear()

    async def _face_cycle(self, source: FrameSource) -> LoginResult:
        method = 'face'
        if self._pool is None:
            await self.initialize()
        if self._cancel.is_set():
            raise CaptureCancelled("Cancelled before capture")
        pool = self._pool

        await asyncio.to_thread(source.open)
        capture = await capture_descriptors(
            source, self.encoder,
            frame_count=self.settings.capture_frames,
            delay=self.settings.capture_delay,
            min_valid=self.settings.min_valid_frames,
            cancel_event=self._cancel,
        )
        profile = capture.profile()

        decision = self.matcher.match(profile, pool)
        if not decision.accepted:
            return LoginResult.fail(_DECISION_REASONS[decision.outcome], method)

        identity_key = decision.candidate.identity_key

        if not await self._reverify(profile, identity_key):
            return LoginResult.fail(LoginReason.VERIFICATION_FAILED, method)

        # Last gate before the session: fresh blocked flag from the directory.
        user = await asyncio.to_thread(self.directory.get_user, identity_key, True)
        if user is None:
            logger.warning(f"Face login: {identity_key} no longer in directory")
            return LoginResult.fail(LoginReason.NOT_RECOGNIZED, method)
        if user.blocked:
            logger.info(f"Face login: {identity_key} matched but is blocked")
            return LoginResult.fail(LoginReason.BLOCKED, method)

        return await self._grant(user, method)

    async def _reverify(self, profile, identity_key: str) -> bool:
        """Compare the live profile with a freshly fetched enrollment image."""
        user = await asyncio.to_thread(self.directory.get_user, identity_key, True)
        if user is None or not user.face_image_file:
            logger.info(f"Re-verification: no current enrollment image for {identity_key}")
            return False

        descriptor = await self._enrollment_descriptor(user, fresh=True)
        if descriptor is None:
            logger.info(f"Re-verification: no face in current image for {identity_key}")
            return False

        distance = euclidean_distance(profile, descriptor)
        passed = distance <= self.settings.final_threshold
        logger.info(
            f"Re-verification for {identity_key}: distance={distance:.4f} "
            f"threshold={self.settings.final_threshold} passed={passed}"
        )
        return passed

    # ==================== SESSION ====================

    async def _grant(self, user: UserRecord, method: str) -> LoginResult:
        timestamp = self.clock()
        user = user.with_last_login(timestamp)

        # No LastLogin update unless the session record is written
        if self.session_store is not None:
            try:
                await asyncio.to_thread(self.session_store.save, user, method)
            except OSError as e:
                logger.error(f"Session write failed for {user.identity_key}: {e}")
                return LoginResult.fail(LoginReason.SERVICE_UNAVAILABLE, method)

        try:
            updated = await asyncio.to_thread(
                self.directory.update_last_login, user.identity_key, timestamp
            )
            if not updated:
                logger.warning(f"LastLogin not recorded for {user.identity_key}")
        except DirectoryError as e:
            logger.warning(f"LastLogin update failed for {user.identity_key}: {e}")

        logger.info(f"Authenticated {user.identity_key} via {method}")
        return LoginResult.success(user, method)

    def cancel(self) -> None:
        """Abandon any in-flight capture and release the camera."""
        self._cancel.set()
        if not self._guard.locked() and self.frame_source is not None:
            self.frame_source.release()

    async def close(self) -> None:
        """Dispose of the session: cancel, drop the pool and directory cache."""
        self._closed = True
        self.cancel()
        self._pool = None
        self.directory.invalidate()
