"""
Enrollment Image Store
Fetches enrolled staff photos (faces/<file>) over HTTP using requests.
"""

import logging
from typing import Optional
from urllib.parse import quote, urljoin

import requests

logger = logging.getLogger(__name__)


class ImageStoreError(Exception):
    """Image store unreachable or returned an unexpected status."""


class EnrollmentImageStore:
    """Reads enrollment photos by file reference relative to a base URL."""

    def __init__(self, base_url: str, timeout: float = 10.0, http=None):
        self.base_url = base_url if base_url.endswith('/') else base_url + '/'
        self.timeout = timeout
        self.http = http or requests.Session()

    @classmethod
    def from_config(cls, config, http=None) -> 'EnrollmentImageStore':
        return cls(config.FACES_BASE_URL, timeout=config.DIRECTORY_TIMEOUT, http=http)

    def url_for(self, file_ref: str) -> str:
        return urljoin(self.base_url, quote(file_ref.lstrip('/')))

    def fetch(self, file_ref: str, fresh: bool = False) -> Optional[bytes]:
        """
        Fetch image bytes.

        Args:
            file_ref: file name as stored in the directory (e.g. 'jane_example_com.jpg')
            fresh: bypass intermediate HTTP caches

        Returns:
            Image bytes, or None if the image does not exist
        Raises:
            ImageStoreError on network failures or unexpected status codes
        """
        if not file_ref:
            return None

        headers = {'Cache-Control': 'no-cache', 'Pragma': 'no-cache'} if fresh else {}
        url = self.url_for(file_ref)
        try:
            resp = self.http.get(url, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise ImageStoreError(f"Image store unreachable: {e}") from e

        if resp.status_code == 404:
            logger.warning(f"Enrollment image not found: {file_ref}")
            return None
        if not resp.ok:
            raise ImageStoreError(f"Image store returned HTTP {resp.status_code} for {file_ref}")
        return resp.content
