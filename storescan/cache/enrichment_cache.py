"""On-disk cache for store API responses and downloaded artwork.

Layout: <cache root>/<store>/responses/<file> and <cache root>/<store>/assets/<file>.
Files are keyed by app id (and asset kind), so a second enrichment pass finds
everything it needs locally and makes no network calls.
"""

import logging
import os
import re
import tempfile
from typing import Optional
from urllib.parse import urlparse

from ..utils.paths import store_cache_dir

logger = logging.getLogger(__name__)


def filename_from_url(url: str) -> str:
    """Last path segment of a URL, without query string or fragment."""
    name = os.path.basename(urlparse(url).path)
    return name or "asset"


def sanitize_filename(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return cleaned or "asset"


def _write_atomic(path: str, data: bytes):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(path), prefix=".tmp-")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class EnrichmentCache:
    """Response and asset cache for one store."""

    def __init__(self, store_key: str, cache_root: Optional[str] = None):
        self.store_key = store_key
        self.root = store_cache_dir(store_key, cache_root)
        self.responses_dir = os.path.join(self.root, "responses")
        self.assets_dir = os.path.join(self.root, "assets")

    def response_path(self, name: str) -> str:
        return os.path.join(self.responses_dir, sanitize_filename(name))

    def read_response(self, name: str) -> Optional[str]:
        """Cached response body, or None on a miss or unreadable file."""
        path = self.response_path(name)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except Exception as e:
            logger.warning(f"[Cache] Ignoring unreadable cache file {path}: {e}")
            return None

    def write_response(self, name: str, body: str) -> bool:
        """Store a response body. A failed write only costs a refetch later."""
        path = self.response_path(name)
        try:
            _write_atomic(path, body.encode("utf-8"))
            return True
        except Exception as e:
            logger.warning(f"[Cache] Failed to write {path}: {e}")
            return False

    def asset_path(self, app_id: str, kind: str, url: str) -> str:
        name = f"{app_id}_{kind.lower()}_{filename_from_url(url)}"
        return os.path.join(self.assets_dir, sanitize_filename(name))

    def write_asset(self, path: str, data: bytes):
        """Store downloaded asset bytes; raises OSError on failure."""
        _write_atomic(path, data)
