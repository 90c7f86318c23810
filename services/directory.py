"""
User Directory for StaffGate
Reads and updates staff records in the SheetDB spreadsheet backend using requests.

Rows are cached per directory instance (one instance per login session).
Security-relevant reads pass force_refresh=True to bypass the cache.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

# Spreadsheet column names
COL_EMAIL = 'Email'
COL_NAME = 'Name'
COL_PASSWORD = 'PasswordHash'
COL_ROLE = 'Role'
COL_BLOCKED = 'IsBlocked'
COL_LAST_LOGIN = 'LastLogin'
COL_FACE_IMAGE = 'FaceImageFile'

TRUTHY = {'true', 'yes', 'y', '1', 'on'}
FALSY = {'false', 'no', 'n', '0', 'off', ''}


class DirectoryError(Exception):
    """Directory unreachable or returned malformed data."""


def coerce_blocked(value) -> bool:
    """
    Turn the sheet's blocked cell into a bool.

    Accepts booleans, numbers, and the string spellings seen in the sheet
    ("TRUE", "yes", "1", ...). Unknown strings are treated as blocked.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in TRUTHY:
        return True
    if text in FALSY:
        return False
    logger.warning(f"Unrecognized blocked value {value!r} — treating as blocked")
    return True


@dataclass
class UserRecord:
    """One staff member as stored in the directory."""
    identity_key: str
    email: str = ''
    name: str = ''
    password_hash: str = ''
    role: str = 'Staff'
    blocked: bool = False
    last_login: str = ''
    face_image_file: str = ''
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_row(cls, row: dict, identity_field: str = COL_EMAIL) -> 'UserRecord':
        key = str(row.get(identity_field) or '').strip()
        if not key:
            raise ValueError(f"Row has no {identity_field}")
        return cls(
            identity_key=key,
            email=str(row.get(COL_EMAIL) or '').strip(),
            name=str(row.get(COL_NAME) or '').strip(),
            password_hash=str(row.get(COL_PASSWORD) or ''),
            role=str(row.get(COL_ROLE) or 'Staff'),
            blocked=coerce_blocked(row.get(COL_BLOCKED)),
            last_login=str(row.get(COL_LAST_LOGIN) or ''),
            face_image_file=str(row.get(COL_FACE_IMAGE) or '').strip(),
            raw=dict(row),
        )

    def with_last_login(self, timestamp: str) -> 'UserRecord':
        return replace(self, last_login=timestamp)

    def to_dict(self) -> dict:
        """Public view — never includes the credential."""
        return {
            'identity_key': self.identity_key,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'blocked': self.blocked,
            'last_login': self.last_login,
            'face_image_file': self.face_image_file,
        }


class UserDirectory:
    """
    SheetDB-backed user directory.

    Responsibilities:
        - Fetch all users (cached until force_refresh)
        - Look up one user by identity key
        - Update a user's LastLogin cell
    """

    def __init__(self, base_url: str, sheet: str = 'Users', identity_field: str = COL_EMAIL,
                 timeout: float = 10.0, skip_rows: int = 0, http=None):
        self.base_url = base_url.rstrip('/')
        self.sheet = sheet
        self.identity_field = identity_field
        self.timeout = timeout
        self.skip_rows = skip_rows
        self.http = http or requests.Session()
        self._cache: Optional[List[UserRecord]] = None

    @classmethod
    def from_config(cls, config, http=None) -> 'UserDirectory':
        return cls(
            base_url=config.SHEETDB_BASE_URL,
            sheet=config.SHEET_USERS,
            identity_field=config.IDENTITY_FIELD,
            timeout=config.DIRECTORY_TIMEOUT,
            skip_rows=config.SHEET_SKIP_ROWS,
            http=http,
        )

    def invalidate(self) -> None:
        """Drop cached rows."""
        self._cache = None

    def _fetch_rows(self) -> list:
        try:
            resp = self.http.get(self.base_url, params={'sheet': self.sheet}, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Directory fetch failed: {e}")
            raise DirectoryError(f"Directory unreachable: {e}") from e
        except ValueError as e:
            logger.error(f"Directory returned invalid JSON: {e}")
            raise DirectoryError("Directory returned invalid JSON") from e

        if not isinstance(data, list):
            logger.error(f"Directory returned {type(data).__name__}, expected list")
            raise DirectoryError("Directory returned malformed data")
        return data[self.skip_rows:]

    def list_users(self, force_refresh: bool = False) -> List[UserRecord]:
        """All users. Cached per instance unless force_refresh is set."""
        if self._cache is not None and not force_refresh:
            return list(self._cache)

        users = []
        seen: Dict[str, int] = {}
        for i, row in enumerate(self._fetch_rows()):
            if not isinstance(row, dict):
                logger.warning(f"Directory row {i} is not an object — skipped")
                continue
            try:
                user = UserRecord.from_row(row, self.identity_field)
            except ValueError as e:
                logger.warning(f"Directory row {i} skipped: {e}")
                continue
            if user.identity_key in seen:
                logger.warning(f"Duplicate identity {user.identity_key} in directory — first row wins")
                continue
            seen[user.identity_key] = i
            users.append(user)

        self._cache = users
        logger.debug(f"Directory loaded {len(users)} users")
        return list(users)

    def get_user(self, identity_key: str, force_refresh: bool = False) -> Optional[UserRecord]:
        """Look up one user by identity key."""
        for user in self.list_users(force_refresh=force_refresh):
            if user.identity_key == identity_key:
                return user
        return None

    def update_last_login(self, identity_key: str, timestamp: str) -> bool:
        """
        Set LastLogin for one user.

        Returns:
            True on success, False if the backend rejected the update
        Raises:
            DirectoryError if the backend is unreachable
        """
        url = f"{self.base_url}/{quote(self.identity_field)}/{quote(identity_key, safe='')}"
        try:
            resp = self.http.put(
                url,
                params={'sheet': self.sheet},
                json={'data': [{COL_LAST_LOGIN: timestamp}]},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise DirectoryError(f"Directory unreachable: {e}") from e

        if not resp.ok:
            logger.warning(f"LastLogin update for {identity_key} rejected: HTTP {resp.status_code}")
            return False

        if self._cache is not None:
            self._cache = [
                u.with_last_login(timestamp) if u.identity_key == identity_key else u
                for u in self._cache
            ]
        return True
