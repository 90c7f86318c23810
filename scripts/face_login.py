#!/usr/bin/env python3
"""
Kiosk login from the local camera (or password).

Usage:
    python scripts/face_login.py                  # face scan on camera 0
    python scripts/face_login.py --camera 1       # another camera
    python scripts/face_login.py --password --identity jane@example.com

Ctrl-C abandons the scan and releases the camera.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import argparse
import asyncio
import getpass
import logging
from dataclasses import replace

from app import build_encoder, configure_logging
from config import Config
from engines.facial_recognition import CameraFrameSource, FaceMatchSettings, ModelLoadError
from services.directory import DirectoryError, UserDirectory
from services.image_store import EnrollmentImageStore
from services.login_service import LoginReason, LoginSession
from services.session_store import SessionStore

logger = logging.getLogger(__name__)

# Outcomes a retry will not fix
FINAL_REASONS = {
    LoginReason.BLOCKED,
    LoginReason.CAMERA_ERROR,
    LoginReason.MODEL_LOAD_ERROR,
    LoginReason.SERVICE_UNAVAILABLE,
    LoginReason.NO_ENROLLED_FACES,
    LoginReason.CANCELLED,
}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="StaffGate kiosk login")
    parser.add_argument('--camera', type=int, default=Config.CAMERA_INDEX, help="camera index")
    parser.add_argument('--frames', type=int, default=Config.FACE_CAPTURE_FRAMES,
                        help="frames captured per attempt")
    parser.add_argument('--attempts', type=int, default=3, help="face attempts before giving up")
    parser.add_argument('--password', action='store_true', help="use password login instead")
    parser.add_argument('--identity', help="identity key for password login")
    args = parser.parse_args(argv)
    if args.attempts < 1:
        parser.error("--attempts must be at least 1")
    return args


async def run(args) -> int:
    settings = FaceMatchSettings.from_config(Config)
    if args.frames != settings.capture_frames:
        settings = replace(settings, capture_frames=args.frames)

    session = LoginSession(
        directory=UserDirectory.from_config(Config),
        image_store=EnrollmentImageStore.from_config(Config),
        encoder=build_encoder(Config),
        settings=settings,
        session_store=SessionStore(Config.SESSION_FILE),
        frame_source=CameraFrameSource(index=args.camera),
    )

    async with session:
        if args.password:
            identity = args.identity or input("Identity: ")
            result = await session.login_with_password(identity, getpass.getpass("Password: "))
        else:
            try:
                enrolled = await session.initialize()
            except (ModelLoadError, DirectoryError) as e:
                logger.error(f"Face login unavailable: {e}")
                print("❌ Face login unavailable — see log for details")
                return 1
            print(f"Enrolled faces: {enrolled}. Please face the camera.")

            for attempt in range(1, args.attempts + 1):
                result = await session.login_with_face()
                if result.ok or result.reason in FINAL_REASONS:
                    break
                print(f"Attempt {attempt}: {result.reason.value} — retrying")

    if result.ok:
        print(f"✅ Logged in as {result.user.identity_key}")
        return 0
    print(f"❌ Login failed: {result.reason.value}")
    return 1


def main(argv=None):
    configure_logging(Config)
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nCancelled")
        return 130


if __name__ == '__main__':
    sys.exit(main())
