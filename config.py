"""
Configuration Management for StaffGate
Loads environment variables and provides configuration settings
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _det_size(value):
    """Parse '640x640' / '640,640' into a (w, h) tuple."""
    parts = value.replace('x', ',').split(',')
    return int(parts[0]), int(parts[-1])


class Config:
    """Application configuration"""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')

    # JWT
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'jwt-secret-key-change-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES', 28800))  # 8 hours

    # Server
    HOST = os.getenv('HOST', '0.0.0.0')
    PORT = int(os.getenv('PORT', 5000))

    # User Directory (spreadsheet backend)
    SHEETDB_BASE_URL = os.getenv('SHEETDB_BASE_URL', 'https://sheetdb.io/api/v1/your-sheet-id')
    SHEET_USERS = os.getenv('SHEET_USERS', 'Users')
    IDENTITY_FIELD = os.getenv('IDENTITY_FIELD', 'Email')  # 'Email' or 'Name'
    DIRECTORY_TIMEOUT = float(os.getenv('DIRECTORY_TIMEOUT', 10))
    SHEET_SKIP_ROWS = int(os.getenv('SHEET_SKIP_ROWS', 1))  # first data row holds column notes

    # Enrollment Image Store
    FACES_BASE_URL = os.getenv('FACES_BASE_URL', 'https://raw.githubusercontent.com/your-org/your-repo/main/faces/')

    # Face model
    FACE_MODEL_NAME = os.getenv('FACE_MODEL_NAME', 'buffalo_l')
    FACE_GPU_ID = int(os.getenv('FACE_GPU_ID', -1))  # -1 = CPU
    FACE_DET_SIZE = _det_size(os.getenv('FACE_DET_SIZE', '640x640'))
    FACE_DESCRIPTOR_DIM = int(os.getenv('FACE_DESCRIPTOR_DIM', 512))

    # Face match decision (Euclidean distance on L2-normalized descriptors)
    FACE_ACCEPT_THRESHOLD = float(os.getenv('FACE_ACCEPT_THRESHOLD', 1.0))
    FACE_AMBIGUITY_DELTA = float(os.getenv('FACE_AMBIGUITY_DELTA', 0.1))
    FACE_FINAL_THRESHOLD = float(os.getenv('FACE_FINAL_THRESHOLD', 0.95))

    # Live capture
    FACE_CAPTURE_FRAMES = int(os.getenv('FACE_CAPTURE_FRAMES', 5))
    FACE_CAPTURE_DELAY_MS = int(os.getenv('FACE_CAPTURE_DELAY_MS', 200))
    FACE_MIN_VALID_FRAMES = int(os.getenv('FACE_MIN_VALID_FRAMES', 2))
    CAMERA_INDEX = int(os.getenv('CAMERA_INDEX', 0))

    # Sessions
    SESSION_FILE = os.getenv('SESSION_FILE', 'sessions.json')

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', 'logs/app.log')
