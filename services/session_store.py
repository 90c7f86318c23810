"""
Session Store
Persists the signed-in user record to a local JSON file so the dashboard
can read who is logged in.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


class SessionStore:
    """JSON-file session records keyed by identity."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _load(self) -> dict:
        try:
            with open(self.path) as f:
                return json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            logger.warning(f"Session file {self.path} is corrupt, starting fresh: {e}")
            return {}

    def _save(self, sessions: dict) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w') as f:
            json.dump(sessions, f, indent=2)
        os.replace(tmp_path, self.path)

    def save(self, user, method: str) -> dict:
        """Record a successful login. Returns the stored record."""
        record = {
            'user': user.to_dict(),
            'method': method,
            'signed_in_at': datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            sessions = self._load()
            sessions[user.identity_key] = record
            self._save(sessions)
        logger.info(f"Session stored for {user.identity_key} ({method})")
        return record

    def get(self, identity_key: str) -> Optional[dict]:
        with self._lock:
            return self._load().get(identity_key)
