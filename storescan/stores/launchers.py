"""
Launcher presence scanners (EA app, Origin, Rockstar Games Launcher).

These stores keep their game lists in encrypted or online-only databases, so
only the launcher itself is reported: one snapshot per launcher found through
its Windows uninstall entry.
"""
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..models import (
    AppInstallSnapshot,
    InstallFoldersSnapshot,
    ScanIssue,
    StoreInstallId,
    StoreKeys,
    StoreScanContext,
)
from ..utils.paths import normalize_path
from ..utils.registry import HKCU, HKLM, PlatformLocator, RegistryValue, default_locator
from .base import StoreInstallScanner

logger = logging.getLogger(__name__)

UNINSTALL_KEYS = (
    r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall",
    r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall",
)

REGISTRY_DISCOVERY = "Windows uninstall registry"


@dataclass(frozen=True)
class LauncherInfo:
    store_key: str
    name_contains: str  # matched against the uninstall entry's DisplayName
    app_id: str
    display_name: str
    executable_name: str


EA_APP = LauncherInfo(StoreKeys.EA, "EA app", "ea-app-launcher", "EA app", "EADesktop.exe")
ORIGIN = LauncherInfo(StoreKeys.ORIGIN, "Origin", "origin-launcher", "Origin", "Origin.exe")
ROCKSTAR = LauncherInfo(StoreKeys.ROCKSTAR, "Rockstar Games Launcher", "rockstar-launcher",
                        "Rockstar Games Launcher", "Launcher.exe")

LAUNCHERS = (EA_APP, ORIGIN, ROCKSTAR)


@dataclass(frozen=True)
class LauncherInstall:
    app_id: str
    install_folder: str
    discovery: str
    uninstall_key: Optional[str] = None


def folder_from_path(value: Optional[str]) -> Optional[str]:
    """
    Folder named by an uninstall value such as DisplayIcon.

    Strips quotes and a trailing ``,<icon index>``. A file path yields its
    parent folder.
    """
    if not value:
        return None
    path = value.strip().strip('"')
    if "," in path:
        path = path.split(",", 1)[0].strip().strip('"')
    path = normalize_path(path)
    if not path:
        return None
    if os.path.isdir(path):
        return path
    if os.path.isfile(path):
        return os.path.dirname(path)
    return None


def find_uninstall_entry(locator: PlatformLocator, name_contains: str) -> Optional[Tuple[str, str]]:
    """
    First uninstall entry whose DisplayName contains ``name_contains``.

    Per-user entries are searched before machine-wide ones.

    Returns:
        (install folder, uninstall key path) or None.
    """
    needle = name_contains.lower()
    for hive in (HKCU, HKLM):
        for uninstall_key in UNINSTALL_KEYS:
            for subkey in locator.list_subkeys(hive, uninstall_key):
                key_path = f"{uninstall_key}\\{subkey}"
                display_name = locator.try_get_string(RegistryValue(hive, key_path, "DisplayName"))
                if not display_name or needle not in display_name.lower():
                    continue

                for value_name in ("InstallLocation", "InstallSource"):
                    folder = normalize_path(locator.try_get_string(RegistryValue(hive, key_path, value_name)))
                    if folder and os.path.isdir(folder):
                        return folder, f"{hive}\\{key_path}"

                folder = folder_from_path(locator.try_get_string(RegistryValue(hive, key_path, "DisplayIcon")))
                if folder:
                    return folder, f"{hive}\\{key_path}"
                logger.debug(f"[Launchers] {display_name} has no usable install folder")
    return None


class LauncherPresenceScanner(StoreInstallScanner):
    """Reports whether one store's launcher is installed."""

    supported_platforms = ("win32",)

    def __init__(self, launcher: LauncherInfo, locator: Optional[PlatformLocator] = None):
        super().__init__()
        self.launcher = launcher
        self.locator = locator or default_locator()
        self._uninstall_keys = {}

    @property
    def store_key(self) -> str:
        return self.launcher.store_key

    def discover_roots(self, context: StoreScanContext, issues: List[ScanIssue]) -> List[str]:
        if context.roots:
            roots = []
            for root in context.roots:
                path = normalize_path(root)
                if path and os.path.isdir(path):
                    roots.append(path)
                else:
                    issues.append(self.issue("ROOT_NOT_FOUND", "Launcher folder does not exist", path=root))
            return roots

        found = find_uninstall_entry(self.locator, self.launcher.name_contains)
        if found is None:
            logger.info(f"{self.log_tag} {self.launcher.display_name} not installed")
            issues.append(self.issue("LAUNCHER_NOT_FOUND", f"No uninstall entry for {self.launcher.display_name}"))
            return []

        folder, uninstall_key = found
        self._uninstall_keys[folder] = uninstall_key
        return [folder]

    def build_catalog(self, roots: List[str], context: StoreScanContext,
                      issues: List[ScanIssue]) -> List[LauncherInstall]:
        discovery = "Explicit root" if context.roots else REGISTRY_DISCOVERY
        return [
            LauncherInstall(self.launcher.app_id, root, discovery, self._uninstall_keys.get(root))
            for root in roots
        ]

    def map_entry(self, entry: LauncherInstall, context: StoreScanContext) -> List[AppInstallSnapshot]:
        snapshot = AppInstallSnapshot(
            id=StoreInstallId(self.store_key, entry.app_id),
            display_name=self.launcher.display_name,
            install_folders=InstallFoldersSnapshot.for_path(entry.install_folder),
            executable_name=self.launcher.executable_name,
            tags={self.store_key, "launcher"},
        )
        snapshot.store_metadata["Discovery"] = entry.discovery
        if entry.uninstall_key:
            snapshot.store_metadata["UninstallKey"] = entry.uninstall_key
        executable = os.path.join(entry.install_folder, self.launcher.executable_name)
        if os.path.isfile(executable):
            snapshot.store_metadata["ExecutablePath"] = executable

        self.confirm_install_folder(snapshot)
        return [snapshot]


def create_launcher_scanners(locator: Optional[PlatformLocator] = None) -> List[LauncherPresenceScanner]:
    return [LauncherPresenceScanner(launcher, locator) for launcher in LAUNCHERS]
