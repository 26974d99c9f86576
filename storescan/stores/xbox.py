"""
Xbox app (Microsoft Store / Game Pass) install scanner.

Every fixed drive the Xbox app installs to carries a hidden ``.GamingRoot``
file naming the games folder on that drive. Each game folder under it holds a
``MicrosoftGame.config`` (at its root or in ``Content``) describing the
package identity, title and executable.
"""
import logging
import ntpath
import os
import re
import string
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import List, Optional

from ..models import (
    AppInstallSnapshot,
    AppVisualAssetsSnapshot,
    FolderRef,
    InstallFoldersSnapshot,
    ScanIssue,
    StoreInstallId,
    StoreKeys,
    StoreScanContext,
    VisualAssetRef,
)
from ..utils.paths import file_name, normalize_path, path_key
from .base import StoreInstallScanner

logger = logging.getLogger(__name__)

GAMING_ROOT_FILE = ".GamingRoot"
# 'R' 'G' 'B' 'X' followed by format version 1
GAMING_ROOT_HEADER = b"RGBX\x01\x00\x00\x00"
GAME_CONFIG_FILE = "MicrosoftGame.config"


@dataclass(frozen=True)
class XboxGameEntry:
    app_id: str  # package identity name
    display_name: str
    config_path: str
    install_root: str
    content_path: Optional[str] = None
    store_id: Optional[str] = None
    title_id: Optional[str] = None
    executable: Optional[str] = None
    icon_path: Optional[str] = None
    logo_path: Optional[str] = None
    splash_path: Optional[str] = None


def _split_windows(path: str) -> List[str]:
    return [part for part in re.split(r"[\\/]+", path) if part]


def parse_gaming_root(data: bytes, drive_root: str) -> Optional[str]:
    """
    Games folder named by a ``.GamingRoot`` file.

    Layout: 8-byte header, then a NUL-terminated UTF-16LE path that is either
    drive-relative (``\\XboxGames``) or absolute (``G:\\Games``).

    Returns:
        Absolute folder path, or None when the data is not a valid file.
    """
    start = len(GAMING_ROOT_HEADER)
    if len(data) < start + 2 or not data.startswith(GAMING_ROOT_HEADER):
        return None

    end = None
    for i in range(start, len(data) - 1, 2):
        if data[i] == 0 and data[i + 1] == 0:
            end = i
            break
    if end is None or end == start:
        return None

    try:
        raw = data[start:end].decode("utf-16-le").strip()
    except UnicodeDecodeError:
        return None
    if not raw:
        return None

    if raw[0] in "\\/":
        return os.path.join(drive_root, *_split_windows(raw))
    if ntpath.isabs(raw) or os.path.isabs(raw):
        return raw.rstrip("\\/") or raw
    return os.path.join(drive_root, *_split_windows(raw))


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _find(root: ET.Element, name: str) -> Optional[ET.Element]:
    """First element with the given local name, ignoring XML namespaces."""
    for element in root.iter():
        if _local_name(element.tag) == name:
            return element
    return None


def _attr(element: Optional[ET.Element], name: str) -> Optional[str]:
    if element is None:
        return None
    value = (element.get(name) or "").strip()
    return value or None


def _text(element: Optional[ET.Element]) -> Optional[str]:
    if element is None or element.text is None:
        return None
    return element.text.strip() or None


def parse_game_config(config_path: str, game_dir: str) -> Optional[XboxGameEntry]:
    """
    Read one MicrosoftGame.config.

    Returns:
        The entry, or None when the config has no identity name.

    Raises:
        ET.ParseError: if the file is not XML.
        OSError: if the file cannot be read.
    """
    root = ET.parse(config_path).getroot()

    identity = _attr(_find(root, "Identity"), "Name")
    if not identity:
        return None

    visuals = _find(root, "ShellVisuals")

    def asset(attribute: str) -> Optional[str]:
        relative = _attr(visuals, attribute)
        return os.path.join(game_dir, *_split_windows(relative)) if relative else None

    config_dir = os.path.dirname(config_path)
    if os.path.basename(config_dir).lower() == "content":
        install_root, content_path = os.path.dirname(config_dir), config_dir
    else:
        install_root = game_dir
        candidate = os.path.join(game_dir, "Content")
        content_path = candidate if os.path.isdir(candidate) else None

    return XboxGameEntry(
        app_id=identity,
        display_name=_attr(visuals, "DefaultDisplayName") or os.path.basename(game_dir),
        config_path=config_path,
        install_root=install_root,
        content_path=content_path,
        store_id=_text(_find(root, "StoreId")),
        title_id=_text(_find(root, "TitleId")),
        executable=_attr(_find(root, "Executable"), "Name"),
        icon_path=asset("Square44x44Logo"),
        logo_path=asset("Square150x150Logo"),
        splash_path=asset("SplashScreenImage"),
    )


def _fixed_drive_roots() -> List[str]:
    return [f"{letter}:\\" for letter in string.ascii_uppercase if os.path.isdir(f"{letter}:\\")]


class XboxCatalog:
    """Finds Xbox games folders and the games installed in them."""

    def __init__(self, drive_roots: Optional[List[str]] = None):
        # None means every drive letter present on this machine
        self.drive_roots = drive_roots

    def find_gaming_roots(self, issues: List[ScanIssue]) -> List[str]:
        """Games folders named by the ``.GamingRoot`` file of each drive."""
        drives = self.drive_roots if self.drive_roots is not None else _fixed_drive_roots()
        roots: List[str] = []
        seen = set()

        for drive_root in drives:
            marker = os.path.join(drive_root, GAMING_ROOT_FILE)
            if not os.path.isfile(marker):
                continue
            try:
                with open(marker, "rb") as f:
                    data = f.read()
            except OSError as e:
                logger.warning(f"[Xbox] Cannot read {marker}: {e}")
                issues.append(ScanIssue.from_exception(
                    "XBOX_GAMING_ROOT_UNREADABLE", "Failed to read .GamingRoot",
                    StoreKeys.XBOX, e, path=marker))
                continue

            games_root = parse_gaming_root(data, drive_root)
            if games_root is None:
                issues.append(ScanIssue(
                    code="XBOX_GAMING_ROOT_INVALID", message=".GamingRoot has no valid games folder",
                    store_key=StoreKeys.XBOX, path=marker))
                continue
            if not os.path.isdir(games_root):
                logger.debug(f"[Xbox] Games folder {games_root} from {marker} does not exist")
                continue
            if path_key(games_root) not in seen:
                seen.add(path_key(games_root))
                roots.append(games_root)

        logger.info(f"[Xbox] Found {len(roots)} games folders")
        return roots

    @staticmethod
    def config_paths(game_dir: str) -> List[str]:
        candidates = [
            os.path.join(game_dir, GAME_CONFIG_FILE),
            os.path.join(game_dir, "Content", GAME_CONFIG_FILE),
        ]
        return [path for path in candidates if os.path.isfile(path)]

    def build(self, roots: List[str], context: StoreScanContext,
              issues: List[ScanIssue]) -> List[XboxGameEntry]:
        entries: List[XboxGameEntry] = []
        seen = set()

        for root in roots:
            try:
                game_dirs = sorted(e.path for e in os.scandir(root) if e.is_dir())
            except OSError as e:
                logger.warning(f"[Xbox] Cannot list {root}: {e}")
                continue

            for game_dir in game_dirs:
                if context.is_cancelled:
                    logger.info(f"[Xbox] Catalog build cancelled after {len(entries)} entries")
                    return entries
                for config_path in self.config_paths(game_dir):
                    try:
                        entry = parse_game_config(config_path, game_dir)
                    except (ET.ParseError, OSError) as e:
                        logger.warning(f"[Xbox] Invalid {config_path}: {e}")
                        issues.append(ScanIssue.from_exception(
                            "XBOX_CONFIG_INVALID", "MicrosoftGame.config could not be parsed",
                            StoreKeys.XBOX, e, path=config_path))
                        continue
                    if entry is None:
                        issues.append(ScanIssue(
                            code="XBOX_CONFIG_MISSING_IDENTITY", message="MicrosoftGame.config has no Identity Name",
                            store_key=StoreKeys.XBOX, path=config_path))
                        continue

                    key = (entry.app_id.lower(), path_key(entry.install_root))
                    if key not in seen:
                        seen.add(key)
                        entries.append(entry)

        logger.info(f"[Xbox] Catalog: {len(entries)} games in {len(roots)} folders")
        return entries


class XboxScanner(StoreInstallScanner):
    """Xbox app install scanner."""

    supported_platforms = ("win32",)

    def __init__(self, catalog: Optional[XboxCatalog] = None, enrichment=None):
        super().__init__(enrichment)
        self.catalog = catalog or XboxCatalog()

    @property
    def store_key(self) -> str:
        return StoreKeys.XBOX

    def discover_roots(self, context: StoreScanContext, issues: List[ScanIssue]) -> List[str]:
        if context.roots:
            roots = []
            for root in context.roots:
                path = normalize_path(root)
                if path and os.path.isdir(path):
                    roots.append(path)
                else:
                    issues.append(self.issue("ROOT_NOT_FOUND", "Xbox games folder does not exist", path=root))
            return roots

        roots = self.catalog.find_gaming_roots(issues)
        if not roots and not issues:
            issues.append(self.issue("GAMING_ROOT_NOT_FOUND", "No drive has an Xbox games folder"))
        return roots

    def build_catalog(self, roots: List[str], context: StoreScanContext,
                      issues: List[ScanIssue]) -> List[XboxGameEntry]:
        return self.catalog.build(roots, context, issues)

    def map_entry(self, entry: XboxGameEntry, context: StoreScanContext) -> List[AppInstallSnapshot]:
        folders = InstallFoldersSnapshot(
            install_folder=FolderRef(entry.install_root),
            content_folder=FolderRef(entry.content_path) if entry.content_path else None,
        )
        snapshot = AppInstallSnapshot(
            id=StoreInstallId(StoreKeys.XBOX, entry.app_id),
            display_name=entry.display_name,
            install_folders=folders,
            executable_name=file_name(entry.executable) if entry.executable else None,
            tags={"xbox", "game"},
        )

        if context.include_visual_assets:
            visuals = AppVisualAssetsSnapshot(
                icon=self._local_asset(entry.icon_path),
                logo=self._local_asset(entry.logo_path),
                splash=self._local_asset(entry.splash_path),
            )
            snapshot.visual_assets = None if visuals.is_empty else visuals

        metadata = {
            "ConfigPath": entry.config_path,
            "StoreId": entry.store_id,
            "TitleId": entry.title_id,
            "ContentPath": entry.content_path,
            "Executable": entry.executable,
        }
        snapshot.store_metadata.update({k: v for k, v in metadata.items() if v})

        self.confirm_install_folder(snapshot)
        return [snapshot]

    @staticmethod
    def _local_asset(path: Optional[str]) -> Optional[VisualAssetRef]:
        if path and os.path.isfile(path):
            return VisualAssetRef(file_path=path)
        return None
