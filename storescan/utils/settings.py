"""
Optional user settings for storescan (settings.json in the data directory).

Every key is optional. A missing or unreadable file simply yields defaults.
"""
import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

from .paths import SETTINGS_PATH

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; storescan/0.1)"


@dataclass
class ScanSettings:
    cache_dir: Optional[str] = None
    enrich_concurrency: int = 6
    request_timeout: float = 15.0
    user_agent: str = DEFAULT_USER_AGENT


def load_settings(path: str = SETTINGS_PATH) -> ScanSettings:
    """Load settings.json, ignoring unknown keys and invalid values."""
    settings = ScanSettings()
    if not os.path.exists(path):
        return settings

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except Exception as e:
        logger.error(f"[Settings] Error reading {path}: {e}")
        return settings

    if not isinstance(data, dict):
        logger.warning(f"[Settings] Ignoring {path}: top level is not an object")
        return settings

    cache_dir = data.get("cache_dir")
    if isinstance(cache_dir, str) and cache_dir.strip():
        settings.cache_dir = cache_dir.strip()

    concurrency = data.get("enrich_concurrency")
    if isinstance(concurrency, int) and not isinstance(concurrency, bool) and concurrency > 0:
        settings.enrich_concurrency = concurrency

    timeout = data.get("request_timeout")
    if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and timeout > 0:
        settings.request_timeout = float(timeout)

    user_agent = data.get("user_agent")
    if isinstance(user_agent, str) and user_agent.strip():
        settings.user_agent = user_agent.strip()

    return settings
