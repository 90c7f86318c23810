"""
StaffGate Backend - Main Application
Staff login portal with password and face-scan login
"""

import os
import logging
from dataclasses import replace
from flask import Flask, jsonify, redirect
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from config import Config
from engines.facial_recognition import FaceDetector, FaceEncoder, FaceMatchSettings
from services.directory import UserDirectory
from services.image_store import EnrollmentImageStore
from services.login_service import LoginSession
from services.session_store import SessionStore

logger = logging.getLogger(__name__)


def configure_logging(config=Config):
    """Stream + file logging in the shared format."""
    log_dir = os.path.dirname(config.LOG_FILE)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(config.LOG_FILE),
            logging.StreamHandler()
        ]
    )


def build_encoder(config=Config):
    """Load the face model once per process."""
    detector = FaceDetector(
        model_name=config.FACE_MODEL_NAME,
        gpu_id=config.FACE_GPU_ID,
        det_size=config.FACE_DET_SIZE,
    )
    logger.info(f"Face detector: {detector.get_stats()}")
    return FaceEncoder(detector, descriptor_dim=config.FACE_DESCRIPTOR_DIM)


class LoginSessionFactory:
    """
    Builds a fresh LoginSession per request.

    The encoder and image store are stateless and shared; every session gets
    its own directory client so its cache dies with the session.
    """

    def __init__(self, config, encoder, image_store, session_store, directory_factory=None):
        self.settings = FaceMatchSettings.from_config(config)
        self.encoder = encoder
        self.image_store = image_store
        self.session_store = session_store
        self.directory_factory = directory_factory or (lambda: UserDirectory.from_config(config))

    def __call__(self, capture_frames=None, capture_delay=None):
        settings = self.settings
        if capture_frames is not None:
            settings = replace(settings, capture_frames=max(capture_frames, settings.min_valid_frames))
        if capture_delay is not None:
            settings = replace(settings, capture_delay=capture_delay)
        return LoginSession(
            directory=self.directory_factory(),
            image_store=self.image_store,
            encoder=self.encoder,
            settings=settings,
            session_store=self.session_store,
        )


def create_app(config=Config, encoder=None, image_store=None, session_store=None,
               directory_factory=None):
    """Application factory. Collaborators can be injected for tests."""
    app = Flask(__name__)
    app.config.from_object(config)
    app.url_map.strict_slashes = False

    # Initialize extensions
    CORS(app, resources={r"/api/*": {"origins": "*"}})
    JWTManager(app)

    app.session_store = session_store or SessionStore(config.SESSION_FILE)
    app.login_session_factory = LoginSessionFactory(
        config,
        encoder=encoder or build_encoder(config),
        image_store=image_store or EnrollmentImageStore.from_config(config),
        session_store=app.session_store,
        directory_factory=directory_factory,
    )

    # Register blueprints
    from api.auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')

    @app.route('/')
    def root():
        return redirect('/api')

    # API root
    @app.route('/api')
    def api_info():
        return jsonify({
            "message": "StaffGate Backend API",
            "version": "1.0.0",
            "status": "online"
        })

    # Health check
    @app.route('/health')
    def health():
        encoder = app.login_session_factory.encoder
        detector = getattr(encoder, 'detector', None)
        return jsonify({
            "status": "healthy" if encoder.available else "degraded",
            "face_model": detector.get_stats() if detector else None,
        })

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal error: {error}")
        return jsonify({"error": "Internal server error"}), 500

    return app


if __name__ == '__main__':
    configure_logging(Config)
    logger.info("Starting StaffGate Backend...")
    logger.info(f"Server running on {Config.HOST}:{Config.PORT}")

    app = create_app(Config)
    app.run(
        host=Config.HOST,
        port=Config.PORT,
        debug=(Config.FLASK_ENV == 'development'),
    )
