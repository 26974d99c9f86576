"""
Steam install scanner.

Finds the Steam client, every Steam library folder, and reads each
appmanifest_<appid>.acf into a catalog entry. Art is picked up from the
client's local library cache; nothing here touches the network.
"""
import glob
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from ..formats.keyvalues import KeyValueNode, parse_file
from ..models import (
    AppInstallSnapshot,
    AppVisualAssetsSnapshot,
    DepotSnapshot,
    FolderRef,
    InstallFoldersSnapshot,
    NamedFolderRef,
    NamedVisualAssetRef,
    ScanIssue,
    StoreInstallId,
    StoreKeys,
    StoreScanContext,
    VisualAssetRef,
)
from ..utils.paths import normalize_path, path_key
from ..utils.registry import HKCU, HKLM, PlatformLocator, RegistryValue, default_locator
from .base import StoreInstallScanner

logger = logging.getLogger(__name__)

STEAM_REGISTRY_VALUES = [
    RegistryValue(HKCU, r"Software\Valve\Steam", "SteamPath"),
    RegistryValue(HKLM, r"SOFTWARE\Valve\Steam", "InstallPath", view=32),
    RegistryValue(HKLM, r"SOFTWARE\Valve\Steam", "InstallPath", view=64),
]

# Per-user client locations on Linux, probed when the registry has nothing
DEFAULT_STEAM_PATHS = [
    os.path.expanduser("~/.steam/steam"),
    os.path.expanduser("~/.local/share/Steam"),
]

SMALL_INSTALL_BYTES = 200 * 1024 * 1024
LARGE_INSTALL_BYTES = 20 * 1024 * 1024 * 1024

# librarycache file names, flat layout first then the per-app folder layout
SLOT_CANDIDATES = {
    "icon": ["{id}_icon.jpg", "{id}_icon.png"],
    "logo": ["{id}_logo.png", "{id}_logo.jpg", "{id}/logo.png"],
    "splash": ["{id}_library_hero.jpg", "{id}_library_hero.png", "{id}/library_hero.jpg"],
}
EXTRA_CANDIDATES = {
    "header": ["{id}_header.jpg", "{id}/header.jpg"],
    "library_600x900": ["{id}_library_600x900.jpg", "{id}/library_600x900.jpg"],
    "library_hero_blur": ["{id}_library_hero_blur.jpg", "{id}/library_hero_blur.jpg"],
}


@dataclass
class SteamCatalogEntry:
    app_id: str
    name: str
    install_dir: str
    steamapps_root: str
    manifest_path: str
    installdir: str
    build_id: Optional[str] = None
    state_flags: Optional[str] = None
    size_on_disk: Optional[int] = None
    app_type: Optional[str] = None
    last_updated: Optional[datetime] = None
    depots: List[DepotSnapshot] = field(default_factory=list)
    tags: Set[str] = field(default_factory=set)
    visuals: Optional[AppVisualAssetsSnapshot] = None
    instance_id: Optional[str] = None


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _epoch_to_utc(value: Optional[str]) -> Optional[datetime]:
    seconds = _to_int(value)
    if not seconds or seconds <= 0:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def normalize_steamapps_root(path: Optional[str]) -> Optional[str]:
    """Accept a steamapps folder or a library root that contains one."""
    path = normalize_path(path)
    if not path or not os.path.isdir(path):
        return None
    if os.path.basename(path).lower() == "steamapps":
        return path
    for name in ("steamapps", "SteamApps"):
        candidate = os.path.join(path, name)
        if os.path.isdir(candidate):
            return candidate
    return None


def build_tags(build_id: Optional[str], depot_count: int, size_on_disk: Optional[int],
               app_type: Optional[str]) -> Set[str]:
    tags = {"installed", "steam"}
    if build_id:
        tags.add("has-buildid")
    if depot_count >= 1:
        tags.add("has-depots")
    if depot_count >= 2:
        tags.add("multi-depot")
    if size_on_disk is not None and size_on_disk > 0:
        if size_on_disk < SMALL_INSTALL_BYTES:
            tags.add("small-install")
        elif size_on_disk > LARGE_INSTALL_BYTES:
            tags.add("large-install")
    if app_type:
        tags.add(f"type:{app_type.strip().lower()}")
    return tags


def read_depots(app_state: KeyValueNode, build_id: Optional[str]) -> List[DepotSnapshot]:
    """InstalledDepots sections, or the flat MountedDepots map of older manifests."""
    branch = None
    user_config = app_state.get_section("UserConfig")
    if user_config is not None:
        branch = user_config.get_string("BetaKey") or None

    depots = []
    installed = app_state.get_section("InstalledDepots")
    if installed:
        for depot_id, node in installed.children():
            depot = DepotSnapshot(
                depot_id=depot_id,
                manifest_id=node.get_string("manifest"),
                branch=branch,
                build_id=build_id,
            )
            size = node.get_string("size")
            if size:
                depot.metadata["SizeBytes"] = size
            dlc_app_id = node.get_string("dlcappid")
            if dlc_app_id:
                depot.metadata["DlcAppId"] = dlc_app_id
                depot.tags.add("dlc")
            depots.append(depot)
        return depots

    mounted = app_state.get_section("MountedDepots")
    if mounted:
        for depot_id, manifest_id in mounted.strings():
            depots.append(DepotSnapshot(depot_id=depot_id, manifest_id=manifest_id,
                                        branch=branch, build_id=build_id))
    return depots


def find_library_visuals(client_roots: List[str], app_id: str) -> Optional[AppVisualAssetsSnapshot]:
    """Look up cached art for an app in <client>/appcache/librarycache."""
    for client_root in client_roots:
        cache_dir = os.path.join(client_root, "appcache", "librarycache")
        if not os.path.isdir(cache_dir):
            continue

        def first_existing(candidates: List[str]) -> Optional[str]:
            for pattern in candidates:
                candidate = os.path.join(cache_dir, *pattern.format(id=app_id).split("/"))
                if os.path.isfile(candidate):
                    return candidate
            return None

        visuals = AppVisualAssetsSnapshot()
        for slot, candidates in SLOT_CANDIDATES.items():
            found = first_existing(candidates)
            if found:
                setattr(visuals, slot, VisualAssetRef(file_path=found))
        for kind, candidates in EXTRA_CANDIDATES.items():
            found = first_existing(candidates)
            if found:
                visuals.additional.append(NamedVisualAssetRef(kind, VisualAssetRef(file_path=found)))

        if not visuals.is_empty:
            return visuals
    return None


class SteamCatalog:
    """Builds Steam catalog entries from client discovery and app manifests."""

    def __init__(self, locator: Optional[PlatformLocator] = None,
                 default_paths: Optional[List[str]] = None):
        self.locator = locator or default_locator()
        self.default_paths = DEFAULT_STEAM_PATHS if default_paths is None else default_paths

    def find_install_path(self, issues: List[ScanIssue]) -> Optional[str]:
        """Steam client folder from the registry, then the usual per-user folders."""
        path, source = self.locator.first_string(STEAM_REGISTRY_VALUES)
        if path:
            path = normalize_path(path)
            logger.info(f"[Steam] Client path from {source.hive}\\{source.key_path}: {path}")
            return path

        for candidate in self.default_paths:
            if os.path.isdir(os.path.join(candidate, "steamapps")):
                logger.info(f"[Steam] Client path from default location: {candidate}")
                return candidate

        issues.append(ScanIssue(
            code="STEAM_INSTALL_PATH_NOT_FOUND",
            message="Steam install path not found in the registry or default locations",
            store_key=StoreKeys.STEAM,
        ))
        return None

    def read_library_folders(self, vdf_path: str, issues: List[ScanIssue]) -> List[str]:
        """
        Library paths listed in libraryfolders.vdf.

        Handles the current nested shape ("0" { "path" "..." }) and the older
        flat shape ("1" "D:\\SteamLibrary").
        """
        if not os.path.isfile(vdf_path):
            return []

        try:
            root = parse_file(vdf_path)
        except Exception as e:
            logger.warning(f"[Steam] Failed to parse {vdf_path}: {e}")
            issues.append(ScanIssue.from_exception(
                "STEAM_LIBRARYFOLDERS_PARSE_FAILED", "Failed to parse libraryfolders.vdf",
                StoreKeys.STEAM, e, path=vdf_path))
            return []

        section = root.get_section("libraryfolders") or root
        paths = []
        for _, node in section.children():
            path = node.get_string("path")
            if path:
                paths.append(path)
        if not paths:
            for key, value in section.strings():
                if key.isdigit() and value:
                    paths.append(value)
        return paths

    def discover_roots(self, issues: List[ScanIssue]) -> List[str]:
        """Primary steamapps folder plus every library listed by the client."""
        install_path = self.find_install_path(issues)
        if not install_path:
            return []

        candidates = [install_path]
        primary = normalize_steamapps_root(install_path)
        if primary:
            candidates.extend(self.read_library_folders(os.path.join(primary, "libraryfolders.vdf"), issues))
        else:
            logger.warning(f"[Steam] No steamapps folder under {install_path}")

        roots = self.dedupe_roots(candidates)
        if not roots:
            issues.append(ScanIssue(
                code="STEAM_STEAMAPPS_NOT_FOUND",
                message=f"No steamapps folder under the Steam client at {install_path}",
                store_key=StoreKeys.STEAM, path=install_path,
            ))
        return roots

    @staticmethod
    def dedupe_roots(candidates: List[str]) -> List[str]:
        roots = []
        seen = set()
        for candidate in candidates:
            root = normalize_steamapps_root(candidate)
            if root and path_key(root) not in seen:
                seen.add(path_key(root))
                roots.append(root)
        return roots

    def read_manifest(self, manifest_path: str, steamapps_root: str, client_roots: List[str],
                      include_visuals: bool, issues: List[ScanIssue]) -> Optional[SteamCatalogEntry]:
        """Parse one appmanifest. Returns None (after recording an issue if needed) when unusable."""
        root = parse_file(manifest_path)

        app_state = root.get_section("AppState")
        if app_state is None:
            issues.append(ScanIssue(
                code="STEAM_MANIFEST_INVALID", message="Manifest has no AppState section",
                store_key=StoreKeys.STEAM, path=manifest_path))
            return None

        app_id = (app_state.get_string("appid") or "").strip()
        if not app_id:
            issues.append(ScanIssue(
                code="STEAM_MANIFEST_INVALID", message="Manifest has no appid",
                store_key=StoreKeys.STEAM, path=manifest_path))
            return None

        installdir = (app_state.get_string("installdir") or "").strip()
        if not installdir:
            issues.append(ScanIssue(
                code="STEAM_MANIFEST_MISSING_INSTALLDIR", message="Manifest has no installdir",
                store_key=StoreKeys.STEAM, app_key=app_id, path=manifest_path))
            return None

        install_dir = os.path.join(steamapps_root, "common", installdir)
        if not os.path.isdir(install_dir):
            logger.debug(f"[Steam] Skipping {app_id}: {install_dir} does not exist")
            return None

        build_id = (app_state.get_string("buildid") or "").strip() or None
        size_on_disk = _to_int(app_state.get_string("SizeOnDisk"))
        app_type = (app_state.get_string("Type") or "").strip() or None
        depots = read_depots(app_state, build_id)

        return SteamCatalogEntry(
            app_id=app_id,
            name=(app_state.get_string("name") or "").strip() or f"steam:{app_id}",
            install_dir=install_dir,
            steamapps_root=steamapps_root,
            manifest_path=manifest_path,
            installdir=installdir,
            build_id=build_id,
            state_flags=app_state.get_string("StateFlags"),
            size_on_disk=size_on_disk,
            app_type=app_type,
            last_updated=_epoch_to_utc(app_state.get_string("LastUpdated")),
            depots=depots,
            tags=build_tags(build_id, len(depots), size_on_disk, app_type),
            visuals=find_library_visuals(client_roots, app_id) if include_visuals else None,
        )

    def build(self, roots: List[str], context: StoreScanContext,
              issues: List[ScanIssue]) -> List[SteamCatalogEntry]:
        """Read every app manifest under the given steamapps roots."""
        # Library roots are <client>/steamapps, so their parents are candidate client roots
        client_roots = []
        for root in roots:
            parent = os.path.dirname(root)
            if os.path.isdir(os.path.join(parent, "appcache")) and parent not in client_roots:
                client_roots.append(parent)

        entries: List[SteamCatalogEntry] = []
        seen = set()
        for steamapps_root in roots:
            for manifest_path in sorted(glob.glob(os.path.join(glob.escape(steamapps_root), "appmanifest_*.acf"))):
                if context.is_cancelled:
                    logger.info(f"[Steam] Catalog build cancelled after {len(entries)} entries")
                    return entries
                try:
                    entry = self.read_manifest(manifest_path, steamapps_root, client_roots,
                                               context.include_visual_assets, issues)
                except Exception as e:
                    logger.warning(f"[Steam] Failed to read {manifest_path}: {e}")
                    issues.append(ScanIssue.from_exception(
                        "STEAM_MANIFEST_PARSE_FAILED", "Failed to parse app manifest",
                        StoreKeys.STEAM, e, path=manifest_path))
                    continue
                if entry is None:
                    continue

                key = (entry.app_id, path_key(entry.install_dir))
                if key in seen:
                    continue
                seen.add(key)
                entries.append(entry)

        self._flag_duplicate_app_ids(entries, issues)
        logger.info(f"[Steam] Catalog: {len(entries)} apps in {len(roots)} libraries")
        return entries

    @staticmethod
    def _flag_duplicate_app_ids(entries: List[SteamCatalogEntry], issues: List[ScanIssue]):
        """Same app id installed in more than one library: keep all, tell them apart, report it."""
        by_app: Dict[str, List[SteamCatalogEntry]] = {}
        for entry in entries:
            by_app.setdefault(entry.app_id, []).append(entry)

        for app_id, duplicates in by_app.items():
            if len(duplicates) < 2:
                continue
            for entry in duplicates:
                entry.instance_id = entry.steamapps_root
            issues.append(ScanIssue(
                code="STEAM_DUPLICATE_APP_ID",
                message=f"App {app_id} is installed in {len(duplicates)} libraries: "
                        + ", ".join(entry.install_dir for entry in duplicates),
                store_key=StoreKeys.STEAM,
                app_key=app_id,
            ))


class SteamScanner(StoreInstallScanner):
    """Steam install scanner: app manifests in every library folder."""

    def __init__(self, catalog: Optional[SteamCatalog] = None, enrichment=None):
        super().__init__(enrichment)
        self.catalog = catalog or SteamCatalog()

    @property
    def store_key(self) -> str:
        return StoreKeys.STEAM

    def discover_roots(self, context: StoreScanContext, issues: List[ScanIssue]) -> List[str]:
        if not context.roots:
            return self.catalog.discover_roots(issues)

        roots = []
        for root in context.roots:
            normalized = normalize_steamapps_root(root)
            if normalized is None:
                issues.append(self.issue("LIBRARY_ROOT_INVALID",
                                         "Not a steamapps folder or Steam library root", path=root))
                continue
            if path_key(normalized) not in {path_key(r) for r in roots}:
                roots.append(normalized)
        return roots

    def build_catalog(self, roots: List[str], context: StoreScanContext,
                      issues: List[ScanIssue]) -> List[SteamCatalogEntry]:
        return self.catalog.build(roots, context, issues)

    def map_entry(self, entry: SteamCatalogEntry, context: StoreScanContext) -> List[AppInstallSnapshot]:
        install_ref = FolderRef(entry.install_dir)
        snapshot = AppInstallSnapshot(
            id=StoreInstallId(StoreKeys.STEAM, entry.app_id, entry.instance_id),
            display_name=entry.name,
            install_folders=InstallFoldersSnapshot(
                install_folder=install_ref,
                content_folder=install_ref,
                additional_folders=[NamedFolderRef("library", FolderRef(entry.steamapps_root))],
            ),
            visual_assets=entry.visuals if entry.visuals and not entry.visuals.is_empty else None,
            version=entry.build_id,
            last_updated_utc=entry.last_updated,
            depots=list(entry.depots),
            tags=set(entry.tags),
        )

        metadata = {
            "ManifestPath": entry.manifest_path,
            "SteamAppsRoot": entry.steamapps_root,
            "Installdir": entry.installdir,
            "BuildId": entry.build_id,
            "StateFlags": entry.state_flags,
            "SizeOnDisk": str(entry.size_on_disk) if entry.size_on_disk is not None else None,
            "Type": entry.app_type,
            "LastUpdatedUtc": entry.last_updated.isoformat() if entry.last_updated else None,
        }
        snapshot.store_metadata.update({k: v for k, v in metadata.items() if v})

        self.confirm_install_folder(snapshot)
        return [snapshot]
