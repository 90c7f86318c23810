"""Authentication API — password and face login"""
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
import base64
import binascii
import logging

from engines.facial_recognition import FrameListSource
from engines.facial_recognition.encoder import decode_image
from services.login_service import LoginReason

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

MAX_FACE_FRAMES = 10

# Caller-facing messages. Every authorization and biometric denial shares one
# status and body so the response never tells which stage rejected the
# attempt, or that a face matched a blocked account.
_DENIED = (401, "Access denied")

_STATUS = {
    LoginReason.MISSING_CREDENTIALS: (400, "Identity and password required"),
    LoginReason.USER_NOT_FOUND: _DENIED,
    LoginReason.WRONG_PASSWORD: _DENIED,
    LoginReason.BLOCKED: _DENIED,
    LoginReason.NO_FACE_DETECTED: (400, "No face detected. Face the camera and try again."),
    LoginReason.NOT_RECOGNIZED: _DENIED,
    LoginReason.AMBIGUOUS: _DENIED,
    LoginReason.VERIFICATION_FAILED: _DENIED,
    LoginReason.NO_ENROLLED_FACES: _DENIED,
    LoginReason.CAMERA_ERROR: (400, "Could not read camera frames. Check the camera and try again."),
    LoginReason.MODEL_LOAD_ERROR: (503, "Face login is temporarily unavailable"),
    LoginReason.SERVICE_UNAVAILABLE: (503, "Service unavailable"),
    LoginReason.BUSY: (409, "A face scan is already in progress"),
    LoginReason.CANCELLED: (409, "Face scan cancelled"),
}


def _decode_frame(item):
    """
    Decode one submitted frame.
    Accepts a data URL ("data:image/jpeg;base64,...") or plain base64.
    Returns: BGR numpy array or None
    """
    if not isinstance(item, str):
        return None
    raw = item.split(',', 1)[1] if ',' in item else item
    try:
        img_bytes = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        return None
    return decode_image(img_bytes)


def _respond(result):
    """Turn a LoginResult into an HTTP response."""
    if result.ok:
        user = result.user
        token = create_access_token(
            identity=user.identity_key,
            additional_claims={'role': user.role, 'method': result.method},
        )
        return jsonify({"token": token, "user": user.to_dict()})

    status, message = _STATUS[result.reason]
    logger.info(f"Login denied ({result.method}): {result.reason.value}")
    return jsonify({"error": message}), status


@auth_bp.route('/login', methods=['POST'])
async def login():
    data = request.get_json(silent=True) or {}
    identity = data.get('identity') or data.get('email') or data.get('username')
    password = data.get('password')
    if not isinstance(identity, str) or not isinstance(password, str):
        status, message = _STATUS[LoginReason.MISSING_CREDENTIALS]
        return jsonify({"error": message}), status

    async with current_app.login_session_factory() as session:
        result = await session.login_with_password(identity, password)
    return _respond(result)


@auth_bp.route('/face-login', methods=['POST'])
async def face_login():
    data = request.get_json(silent=True) or {}
    items = data.get('frames')
    if not isinstance(items, list) or not items:
        return jsonify({"error": "At least one frame required"}), 400
    if len(items) > MAX_FACE_FRAMES:
        return jsonify({"error": f"At most {MAX_FACE_FRAMES} frames allowed"}), 400

    # Undecodable frames become empty reads and count as frames without a face
    frames = [_decode_frame(item) for item in items]
    source = FrameListSource(frames)

    # Frames are already captured: read them back-to-back
    async with current_app.login_session_factory(capture_frames=len(frames), capture_delay=0) as session:
        result = await session.login_with_face(source)
    return _respond(result)


@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def me():
    identity = get_jwt_identity()
    store = current_app.session_store
    record = store.get(identity) if store else None
    if not record:
        return jsonify({"error": "No active session"}), 404
    return jsonify(record)
