"""
Tests for the authentication API (password + face login over HTTP).
"""

import base64
import cv2
import numpy as np
import pytest

from conftest import E1, E2, E3, FakeDirectory, enrolled, user
from app import create_app
from config import Config

ALICE = 'alice@example.com'
BOB = 'bob@example.com'


class ColorEncoder:
    """Maps a frame's pixel value to a descriptor: 10 → Alice, 20 → Bob, 40 → nobody."""

    available = True

    def __init__(self, image_descriptors):
        self.image_descriptors = image_descriptors
        self.frames = {10: E1, 20: E2, 40: E3}
        self.detector = None

    def ensure_available(self):
        pass

    def encode_frame(self, frame):
        return self.frames.get(int(frame[0, 0, 0]))

    def encode_image(self, image_bytes):
        return self.image_descriptors.get(image_bytes)


def _data_url(value):
    ok, buf = cv2.imencode('.png', np.full((8, 8, 3), value, dtype=np.uint8))
    assert ok
    return 'data:image/png;base64,' + base64.b64encode(buf.tobytes()).decode()


@pytest.fixture
def directory():
    return FakeDirectory([user(ALICE), user(BOB, blocked=True)])


@pytest.fixture
def client(directory, tmp_path):
    class TestConfig(Config):
        TESTING = True
        JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
        SESSION_FILE = str(tmp_path / 'sessions.json')
        FACE_ACCEPT_THRESHOLD = 0.5
        FACE_AMBIGUITY_DELTA = 0.12
        FACE_FINAL_THRESHOLD = 0.45
        FACE_CAPTURE_FRAMES = 3
        FACE_CAPTURE_DELAY_MS = 0
        FACE_MIN_VALID_FRAMES = 2
        FACE_DESCRIPTOR_DIM = 4

    store, fake = enrolled((f'{ALICE}.jpg', E1), (f'{BOB}.jpg', E2))
    app = create_app(
        TestConfig,
        encoder=ColorEncoder(fake.image_descriptors),
        image_store=store,
        directory_factory=lambda: directory,
    )
    return app.test_client()


class TestPasswordLogin:
    def test_success_returns_token(self, client, directory):
        resp = client.post('/api/auth/login', json={'identity': ALICE, 'password': 'secret'})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['token']
        assert body['user']['identity_key'] == ALICE
        assert 'password_hash' not in body['user']
        assert directory.last_login_updates[0][0] == ALICE

    def test_email_field_accepted(self, client):
        resp = client.post('/api/auth/login', json={'email': ALICE, 'password': 'secret'})
        assert resp.status_code == 200

    def test_blocked_looks_like_wrong_password(self, client):
        blocked = client.post('/api/auth/login', json={'identity': BOB, 'password': 'secret'})
        wrong = client.post('/api/auth/login', json={'identity': ALICE, 'password': 'x'})
        assert blocked.status_code == wrong.status_code == 401
        assert blocked.get_json() == wrong.get_json() == {'error': 'Access denied'}

    def test_wrong_password_and_unknown_user_look_alike(self, client):
        wrong = client.post('/api/auth/login', json={'identity': ALICE, 'password': 'x'})
        unknown = client.post('/api/auth/login', json={'identity': 'z@example.com', 'password': 'x'})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.get_json() == unknown.get_json()

    def test_missing_fields(self, client):
        assert client.post('/api/auth/login', json={}).status_code == 400

    def test_non_string_fields(self, client):
        assert client.post('/api/auth/login', json={'identity': 5, 'password': 'secret'}).status_code == 400
        assert client.post('/api/auth/login', json={'identity': ALICE, 'password': 123}).status_code == 400
        assert client.post('/api/auth/login', json={'identity': [ALICE], 'password': 'secret'}).status_code == 400

    def test_directory_down(self, client, directory):
        directory.fail_reads = True
        resp = client.post('/api/auth/login', json={'identity': ALICE, 'password': 'secret'})
        assert resp.status_code == 503


class TestFaceLogin:
    def test_success_and_me(self, client):
        resp = client.post('/api/auth/face-login', json={'frames': [_data_url(10), _data_url(10)]})
        assert resp.status_code == 200
        token = resp.get_json()['token']

        me = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert me.status_code == 200
        assert me.get_json()['user']['identity_key'] == ALICE
        assert me.get_json()['method'] == 'face'

    def test_blocked_face_looks_like_unknown_face(self, client, directory):
        blocked = client.post('/api/auth/face-login', json={'frames': [_data_url(20), _data_url(20)]})
        unknown = client.post('/api/auth/face-login', json={'frames': [_data_url(40), _data_url(40)]})
        assert blocked.status_code == unknown.status_code == 401
        assert blocked.get_json() == unknown.get_json() == {'error': 'Access denied'}
        assert directory.last_login_updates == []

    def test_frames_without_face_are_dropped(self, client):
        resp = client.post('/api/auth/face-login', json={'frames': [_data_url(30), _data_url(10), _data_url(10)]})
        assert resp.status_code == 200

    def test_biometric_rejections_share_one_message(self, client, directory):
        unknown = client.post('/api/auth/face-login', json={'frames': [_data_url(40), _data_url(40)]})
        # Enrollment photo replaced after the pool was built → re-verification fails
        directory.fresh_users = {ALICE: user(ALICE, image='missing.jpg'), BOB: user(BOB, blocked=True)}
        unverified = client.post('/api/auth/face-login', json={'frames': [_data_url(10), _data_url(10)]})
        assert unknown.status_code == unverified.status_code == 401
        assert unknown.get_json() == unverified.get_json()

    def test_no_face_detected(self, client):
        resp = client.post('/api/auth/face-login', json={'frames': [_data_url(30), _data_url(30)]})
        assert resp.status_code == 400
        assert 'No face' in resp.get_json()['error']

    def test_single_frame_below_minimum(self, client):
        resp = client.post('/api/auth/face-login', json={'frames': [_data_url(10)]})
        assert resp.status_code == 400

    def test_garbage_frames(self, client):
        resp = client.post('/api/auth/face-login', json={'frames': ['not-base64!!', 42]})
        assert resp.status_code == 400

    def test_frames_required(self, client):
        assert client.post('/api/auth/face-login', json={}).status_code == 400
        assert client.post('/api/auth/face-login', json={'frames': []}).status_code == 400

    def test_too_many_frames(self, client):
        resp = client.post('/api/auth/face-login', json={'frames': [_data_url(10)] * 11})
        assert resp.status_code == 400


class TestMisc:
    def test_me_requires_token(self, client):
        assert client.get('/api/auth/me').status_code == 401

    def test_health_reports_model(self, client):
        body = client.get('/health').get_json()
        assert body['status'] == 'healthy'
        assert body['face_model'] is None

    def test_api_info(self, client):
        assert client.get('/api').get_json()['status'] == 'online'

    def test_not_found(self, client):
        assert client.get('/nope').status_code == 404
