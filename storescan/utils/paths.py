"""Storescan file path constants and utilities."""

import os
import sys
from typing import Optional


def _default_data_dir() -> str:
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA") or os.path.expanduser("~\\AppData\\Local")
        return os.path.join(base, "storescan")
    return os.path.expanduser("~/.local/share/storescan")


# Storescan data directory
STORESCAN_DATA_DIR = _default_data_dir()

SETTINGS_PATH = os.path.join(STORESCAN_DATA_DIR, "settings.json")
LOG_PATH = os.path.join(STORESCAN_DATA_DIR, "storescan.log")
DEFAULT_CACHE_DIR = os.path.join(STORESCAN_DATA_DIR, "cache", "gamestore")

# Overrides the cache root (settings.json cache_dir still wins over the default)
CACHE_DIR_ENV = "STORESCAN_CACHE_DIR"

# Executable suffixes recognised in launcher descriptors
EXECUTABLE_SUFFIXES = (".exe", ".bat", ".cmd", ".sh")


def program_data_dir() -> str:
    """%ProgramData% (machine-wide launcher data), with the stock default."""
    return os.environ.get("ProgramData") or "C:\\ProgramData"


def program_files_x86_dir() -> str:
    return os.environ.get("ProgramFiles(x86)") or "C:\\Program Files (x86)"


def resolve_cache_root(configured: Optional[str] = None) -> str:
    """Cache root: env override, then configured value, then the default."""
    override = os.environ.get(CACHE_DIR_ENV)
    if override:
        return os.path.expanduser(override)
    if configured:
        return os.path.expanduser(configured)
    return DEFAULT_CACHE_DIR


def store_cache_dir(store_key: str, cache_root: Optional[str] = None) -> str:
    """Per-store cache folder, e.g. <cache root>/steam."""
    return os.path.join(cache_root or resolve_cache_root(), store_key.lower())


def normalize_path(path: Optional[str]) -> Optional[str]:
    """Expand ~, collapse separators and dots. Blank input gives None."""
    if not path or not path.strip():
        return None
    return os.path.normpath(os.path.expanduser(path.strip().strip('"')))


def path_key(path: str) -> str:
    """Case-insensitive comparison key for paths written by Windows launchers."""
    return os.path.normpath(path).replace("\\", "/").rstrip("/").lower()


def is_executable_name(value: str) -> bool:
    return value.lower().endswith(EXECUTABLE_SUFFIXES)


def file_name(path: str) -> str:
    """Basename that also understands Windows separators on POSIX hosts."""
    return path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
