"""
Epic Games Launcher install scanner.

The launcher writes one JSON manifest (*.item) per installed app into its
Manifests folder. Older launchers only kept LauncherInstalled.dat, which is
read as a fallback when no manifest files exist.
"""
import glob
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..formats.json_values import get_bool, get_str, get_str_list
from ..models import (
    AppInstallSnapshot,
    InstallFoldersSnapshot,
    ScanIssue,
    StoreInstallId,
    StoreKeys,
    StoreScanContext,
)
from ..utils.paths import file_name, normalize_path, program_data_dir
from ..utils.registry import HKCU, HKLM, PlatformLocator, RegistryValue, default_locator
from .base import StoreInstallScanner

logger = logging.getLogger(__name__)

EPIC_LAUNCHER_KEY = r"SOFTWARE\Epic Games\EpicGamesLauncher"

APP_DATA_VALUES = [
    RegistryValue(HKLM, EPIC_LAUNCHER_KEY, "AppDataPath", view=32),
    RegistryValue(HKLM, EPIC_LAUNCHER_KEY, "AppDataPath", view=64),
    RegistryValue(HKCU, EPIC_LAUNCHER_KEY, "AppDataPath"),
]
INSTALL_LOCATION_VALUES = [
    RegistryValue(HKLM, EPIC_LAUNCHER_KEY, "InstallLocation", view=32),
    RegistryValue(HKLM, EPIC_LAUNCHER_KEY, "InstallLocation", view=64),
    RegistryValue(HKCU, EPIC_LAUNCHER_KEY, "InstallLocation"),
]

SOURCE_MANIFEST = "manifest-item"
SOURCE_LAUNCHER_INSTALLED = "launcherinstalled"


@dataclass
class EpicCatalogEntry:
    app_id: str
    display_name: str
    install_location: str
    source_kind: str
    source_path: str
    launch_executable: Optional[str] = None
    version: Optional[str] = None
    catalog_namespace: Optional[str] = None
    catalog_item_id: Optional[str] = None
    main_game_app_name: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    is_application: Optional[bool] = None
    is_incomplete: Optional[bool] = None
    extra: Dict[str, str] = field(default_factory=dict)


def entry_from_item(data: Dict[str, Any], path: str) -> Optional[EpicCatalogEntry]:
    """Catalog entry from a parsed *.item manifest, None when AppName/InstallLocation are missing."""
    app_name = get_str(data, "AppName")
    install_location = get_str(data, "InstallLocation")
    if not app_name or not install_location:
        return None

    extra = {}
    for key in ("FormatVersion", "ManifestLocation", "StagingLocation"):
        value = get_str(data, key)
        if value:
            extra[key] = value

    return EpicCatalogEntry(
        app_id=app_name,
        display_name=get_str(data, "DisplayName") or app_name,
        install_location=install_location,
        source_kind=SOURCE_MANIFEST,
        source_path=path,
        launch_executable=get_str(data, "LaunchExecutable"),
        version=get_str(data, "AppVersionString"),
        catalog_namespace=get_str(data, "CatalogNamespace"),
        catalog_item_id=get_str(data, "CatalogItemId"),
        main_game_app_name=get_str(data, "MainGameAppName"),
        categories=get_str_list(data, "AppCategories"),
        is_application=get_bool(data, "bIsApplication"),
        is_incomplete=get_bool(data, "bIsIncompleteInstall"),
        extra=extra,
    )


def entries_from_launcher_installed(data: Any, path: str) -> Optional[List[EpicCatalogEntry]]:
    """Entries of LauncherInstalled.dat's InstallationList, None when the list is absent."""
    installations = data.get("InstallationList") if isinstance(data, dict) else None
    if not isinstance(installations, list):
        return None

    entries = []
    for item in installations:
        app_name = get_str(item, "AppName")
        install_location = get_str(item, "InstallLocation")
        if not app_name or not install_location:
            continue
        entries.append(EpicCatalogEntry(
            app_id=app_name,
            display_name=get_str(item, "ArtifactId") or app_name,
            install_location=install_location,
            source_kind=SOURCE_LAUNCHER_INSTALLED,
            source_path=path,
            version=get_str(item, "AppVersion"),
            catalog_namespace=get_str(item, "NamespaceId"),
            catalog_item_id=get_str(item, "ItemId"),
        ))
    return entries


def merge_entries(manifest_entries: List[EpicCatalogEntry],
                  fallback_entries: List[EpicCatalogEntry]) -> List[EpicCatalogEntry]:
    """Union by app name (case-insensitive); manifest entries win."""
    merged: Dict[str, EpicCatalogEntry] = {}
    for entry in manifest_entries + fallback_entries:
        merged.setdefault(entry.app_id.lower(), entry)
    return list(merged.values())


class EpicCatalog:
    """Builds Epic catalog entries from launcher manifests."""

    def __init__(self, locator: Optional[PlatformLocator] = None, program_data: Optional[str] = None):
        self.locator = locator or default_locator()
        self.program_data = program_data or program_data_dir()

    @property
    def default_manifests_dir(self) -> str:
        return os.path.join(self.program_data, "Epic", "EpicGamesLauncher", "Data", "Manifests")

    @property
    def launcher_installed_path(self) -> str:
        return os.path.join(self.program_data, "Epic", "UnrealEngineLauncher", "LauncherInstalled.dat")

    def manifest_dir_candidates(self) -> List[str]:
        """Registry AppDataPath, the ProgramData default, then install-location layouts."""
        candidates = []
        app_data, _ = self.locator.first_string(APP_DATA_VALUES)
        if app_data:
            candidates.append(os.path.join(app_data, "Manifests"))

        candidates.append(self.default_manifests_dir)

        install_location, _ = self.locator.first_string(INSTALL_LOCATION_VALUES)
        if install_location:
            candidates.append(os.path.join(install_location, "Epic", "EpicGamesLauncher", "Data", "Manifests"))
            candidates.append(os.path.join(install_location, "EpicGamesLauncher", "Data", "Manifests"))
        return candidates

    def find_manifests_dir(self) -> Optional[str]:
        for candidate in self.manifest_dir_candidates():
            if os.path.isdir(candidate):
                logger.info(f"[EPIC] Manifests folder: {candidate}")
                return candidate
        return None

    def read_manifests(self, manifests_dir: str, context: StoreScanContext,
                       issues: List[ScanIssue]) -> Tuple[List[EpicCatalogEntry], int]:
        """Entries from every *.item file. Also returns how many files were found."""
        paths = sorted(glob.glob(os.path.join(glob.escape(manifests_dir), "*.item")))
        entries = []
        for path in paths:
            if context.is_cancelled:
                break
            try:
                with open(path, "r", encoding="utf-8-sig") as f:
                    data = json.load(f)
            except ValueError as e:
                logger.warning(f"[EPIC] Invalid JSON in {path}: {e}")
                issues.append(ScanIssue.from_exception(
                    "EPIC_ITEM_JSON_INVALID", "Manifest is not valid JSON", StoreKeys.EPIC, e, path=path))
                continue
            except Exception as e:
                logger.warning(f"[EPIC] Failed to read {path}: {e}")
                issues.append(ScanIssue.from_exception(
                    "EPIC_ITEM_PARSE_FAILED", "Failed to read manifest", StoreKeys.EPIC, e, path=path))
                continue

            entry = entry_from_item(data, path) if isinstance(data, dict) else None
            if entry is None:
                issues.append(ScanIssue(
                    code="EPIC_ITEM_MISSING_REQUIRED_FIELDS",
                    message="Manifest is missing AppName or InstallLocation",
                    store_key=StoreKeys.EPIC, path=path))
                continue
            entries.append(entry)
        return entries, len(paths)

    def read_launcher_installed(self, path: str, issues: List[ScanIssue]) -> List[EpicCatalogEntry]:
        try:
            with open(path, "r", encoding="utf-8-sig") as f:
                data = json.load(f)
        except Exception as e:
            logger.warning(f"[EPIC] Failed to read {path}: {e}")
            issues.append(ScanIssue.from_exception(
                "EPIC_LAUNCHERINSTALLED_PARSE_FAILED", "Failed to parse LauncherInstalled.dat",
                StoreKeys.EPIC, e, path=path))
            return []

        entries = entries_from_launcher_installed(data, path)
        if entries is None:
            issues.append(ScanIssue(
                code="EPIC_LAUNCHERINSTALLED_NO_LIST", message="LauncherInstalled.dat has no InstallationList",
                store_key=StoreKeys.EPIC, path=path))
            return []
        logger.info(f"[EPIC] {len(entries)} installs from {path}")
        return entries

    def build(self, roots: List[str], context: StoreScanContext,
              issues: List[ScanIssue]) -> List[EpicCatalogEntry]:
        """
        Read manifests from every manifests folder in ``roots``.

        Roots that are files are treated as LauncherInstalled.dat and always
        read. The default LauncherInstalled.dat is only read when no manifest
        file exists at all.
        """
        manifest_entries: List[EpicCatalogEntry] = []
        fallback_paths = []
        manifest_files = 0

        for root in roots:
            path = normalize_path(root)
            if path and os.path.isfile(path):
                fallback_paths.append(path)
                continue
            if not path or not os.path.isdir(path):
                issues.append(ScanIssue(
                    code="EPIC_MANIFEST_DIR_NOT_FOUND", message="Epic manifests folder not found",
                    store_key=StoreKeys.EPIC, path=root))
                continue
            entries, count = self.read_manifests(path, context, issues)
            manifest_entries.extend(entries)
            manifest_files += count

        if manifest_files == 0 and not fallback_paths and os.path.isfile(self.launcher_installed_path):
            fallback_paths.append(self.launcher_installed_path)

        fallback_entries: List[EpicCatalogEntry] = []
        for path in fallback_paths:
            if context.is_cancelled:
                break
            fallback_entries.extend(self.read_launcher_installed(path, issues))

        entries = merge_entries(manifest_entries, fallback_entries)
        logger.info(f"[EPIC] Catalog: {len(entries)} apps")
        return entries


class EpicScanner(StoreInstallScanner):
    """Epic Games Launcher install scanner."""

    supported_platforms = ("win32",)

    def __init__(self, catalog: Optional[EpicCatalog] = None, enrichment=None):
        super().__init__(enrichment)
        self.catalog = catalog or EpicCatalog()

    @property
    def store_key(self) -> str:
        return StoreKeys.EPIC

    @property
    def log_tag(self) -> str:
        return "[EPIC]"

    def discover_roots(self, context: StoreScanContext, issues: List[ScanIssue]) -> List[str]:
        if context.roots:
            return list(context.roots)
        manifests_dir = self.catalog.find_manifests_dir()
        if manifests_dir:
            return [manifests_dir]
        if not os.path.isfile(self.catalog.launcher_installed_path):
            issues.append(self.issue("MANIFEST_DIR_NOT_FOUND", "Epic manifests folder not found",
                                     path=self.catalog.default_manifests_dir))
        return []

    def build_catalog(self, roots: List[str], context: StoreScanContext,
                      issues: List[ScanIssue]) -> List[EpicCatalogEntry]:
        return self.catalog.build(roots, context, issues)

    def map_entry(self, entry: EpicCatalogEntry, context: StoreScanContext) -> List[AppInstallSnapshot]:
        install_folder = normalize_path(entry.install_location)
        snapshot = AppInstallSnapshot(
            id=StoreInstallId(StoreKeys.EPIC, entry.app_id),
            display_name=entry.display_name,
            install_folders=InstallFoldersSnapshot.for_path(install_folder),
            executable_name=file_name(entry.launch_executable) if entry.launch_executable else None,
            version=entry.version,
            tags={"epic"},
        )

        metadata = {
            "AppName": entry.app_id,
            "SourceKind": entry.source_kind,
            "SourcePath": entry.source_path,
            "CatalogNamespace": entry.catalog_namespace,
            "CatalogItemId": entry.catalog_item_id,
            "LaunchExecutable": entry.launch_executable,
            "AppVersion": entry.version,
            "MainGameAppName": entry.main_game_app_name,
        }
        if entry.launch_executable and install_folder:
            metadata["LaunchExecutableFullPath"] = os.path.normpath(
                os.path.join(install_folder, *entry.launch_executable.replace("\\", "/").split("/")))
        metadata.update(entry.extra)
        snapshot.store_metadata.update({k: v for k, v in metadata.items() if v})

        if entry.is_application:
            snapshot.tags.add("application")
        if entry.is_incomplete:
            snapshot.tags.add("incomplete")
        if entry.main_game_app_name and entry.main_game_app_name.lower() != entry.app_id.lower():
            snapshot.tags.add("dlc")
        for category in entry.categories:
            snapshot.tags.add(category.lower())

        self.confirm_install_folder(snapshot)
        return [snapshot]
