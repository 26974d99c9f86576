"""
GOG install scanner.

Two sources describe GOG installs: the Galaxy client database and the
goggame-<productId>.info descriptor every GOG game ships in its folder.
Both are read and merged per product id, so games installed without Galaxy
(offline installers) are found as well.
"""
import json
import logging
import ntpath
import os
import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote_plus

from ..formats.galaxy_db import GalaxySchemaError, read_installed_products
from ..formats.json_values import get_str, iter_strings
from ..models import (
    AppInstallSnapshot,
    InstallFoldersSnapshot,
    InstallState,
    ScanIssue,
    StoreInstallId,
    StoreKeys,
    StoreScanContext,
)
from ..utils.paths import (
    file_name,
    is_executable_name,
    normalize_path,
    path_key,
    program_data_dir,
    program_files_x86_dir,
)
from .base import StoreInstallScanner

logger = logging.getLogger(__name__)

GALAXY_DB_NAMES = ("galaxy-2.0.db", "galaxy.db")
DESCRIPTOR_PATTERN = re.compile(r"^goggame-(\d+)\.info$", re.IGNORECASE)
DESCRIPTOR_TITLE_KEYS = ("name", "title", "gameTitle", "displayName", "productName")
MAX_DESCRIPTOR_DEPTH = 4

SOURCE_DATABASE = "galaxy-db"
SOURCE_DESCRIPTOR = "descriptor"
SOURCE_MERGED = "merged"

GOG_GAME_URL = "https://www.gog.com/en/game/{slug}"
GOG_SEARCH_URL = "https://www.gog.com/en/games?search={query}"


@dataclass(frozen=True)
class GogToolEntry:
    tool_key: str
    display_name: str
    exe_full_path: str

    @property
    def exe_name(self) -> str:
        return file_name(self.exe_full_path)


@dataclass(frozen=True)
class GogGameEntry:
    app_id: str
    display_name: str
    source_kind: str
    source_path: str
    install_folder: Optional[str] = None
    primary_exe: Optional[str] = None
    tools: Tuple[GogToolEntry, ...] = ()
    title_is_fallback: bool = False
    db_path: Optional[str] = None
    descriptor_path: Optional[str] = None


def gog_slug(title: str) -> str:
    """Lowercase title with every run of non-alphanumerics collapsed to one underscore."""
    return re.sub(r"[\W_]+", "_", title.lower()).strip("_")


def gog_store_url(title: str) -> str:
    slug = gog_slug(title or "")
    if slug:
        return GOG_GAME_URL.format(slug=slug)
    return GOG_SEARCH_URL.format(query=quote_plus(title or ""))


def _parent_dir(path: str) -> str:
    # Galaxy stores Windows paths; keep them intact on other hosts
    if "\\" in path and "/" not in path:
        return ntpath.dirname(path)
    return os.path.dirname(path)


def _resolve_candidate(folder: str, value: str) -> str:
    value = value.strip()
    if os.path.isabs(value) or re.match(r"^[A-Za-z]:[\\/]", value):
        return value
    return os.path.normpath(os.path.join(folder, *re.split(r"[\\/]+", value)))


def _tool_entry(product_id: str, title: str, exe_path: str, hint: Optional[str]) -> GogToolEntry:
    exe_name = file_name(exe_path)
    stem = os.path.splitext(exe_name)[0]
    display_name = hint if hint and hint != title else f"{title} ({stem})"
    return GogToolEntry(
        tool_key=f"{product_id}:tool:{exe_name.lower()}",
        display_name=display_name,
        exe_full_path=exe_path,
    )


def parse_descriptor(path: str) -> GogGameEntry:
    """
    Read a goggame-<id>.info descriptor.

    Every string in the document ending in an executable suffix is an
    executable candidate, resolved against the descriptor's folder. The first
    candidate present on disk (else simply the first) is the primary
    executable; the others become tools.

    Raises:
        ValueError: if the file is not a JSON object or has no product id.
        OSError: if the file cannot be read.
    """
    with open(path, "r", encoding="utf-8-sig") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("descriptor is not a JSON object")

    match = DESCRIPTOR_PATTERN.match(os.path.basename(path))
    product_id = match.group(1) if match else get_str(data, "gameId", "rootGameId")
    if not product_id:
        raise ValueError("descriptor has no product id")

    title = get_str(data, *DESCRIPTOR_TITLE_KEYS)
    folder = os.path.dirname(os.path.abspath(path))

    candidates: List[Tuple[str, Optional[str]]] = []
    seen = set()
    for value, parent in iter_strings(data):
        if not is_executable_name(value.strip()):
            continue
        full_path = _resolve_candidate(folder, value)
        if path_key(full_path) in seen:
            continue
        seen.add(path_key(full_path))
        candidates.append((full_path, get_str(parent, "name") if parent else None))

    primary = next((c for c in candidates if os.path.isfile(c[0])), candidates[0] if candidates else None)

    tools = []
    tool_keys = set()
    display_title = title or product_id
    for full_path, hint in candidates:
        if primary is not None and full_path == primary[0]:
            continue
        tool = _tool_entry(product_id, display_title, full_path, hint)
        if tool.tool_key not in tool_keys:
            tool_keys.add(tool.tool_key)
            tools.append(tool)

    return GogGameEntry(
        app_id=product_id,
        display_name=display_title,
        source_kind=SOURCE_DESCRIPTOR,
        source_path=path,
        install_folder=folder,
        primary_exe=primary[0] if primary else None,
        tools=tuple(tools),
        title_is_fallback=title is None,
        descriptor_path=path,
    )


def find_descriptors(root: str, max_depth: int = MAX_DESCRIPTOR_DEPTH) -> List[str]:
    """Descriptor files under root, depth-limited, in sorted order."""
    found = []

    def walk(folder: str, depth: int):
        try:
            entries = sorted(os.scandir(folder), key=lambda e: e.name.lower())
        except OSError as e:
            logger.debug(f"[GOG] Cannot list {folder}: {e}")
            return
        for entry in entries:
            if DESCRIPTOR_PATTERN.match(entry.name) and entry.is_file():
                found.append(entry.path)
        if depth >= max_depth:
            return
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                walk(entry.path, depth + 1)

    walk(root, 0)
    return found


def merge_entries(db_entry: Optional[GogGameEntry],
                  scanned: Optional[GogGameEntry]) -> Optional[GogGameEntry]:
    """
    Combine the database and descriptor views of one product.

    The database's install folder and primary executable win when present.
    The database title wins unless it is only the product id. Tools are the
    union of both sides by tool key.
    """
    if db_entry is None:
        return scanned
    if scanned is None:
        return db_entry

    primary = db_entry.primary_exe or scanned.primary_exe
    tools: List[GogToolEntry] = list(db_entry.tools)
    if db_entry.primary_exe and scanned.primary_exe and \
            path_key(db_entry.primary_exe) != path_key(scanned.primary_exe):
        tools.append(_tool_entry(scanned.app_id, scanned.display_name, scanned.primary_exe, None))
    tools.extend(scanned.tools)

    merged_tools = []
    keys = set()
    for tool in tools:
        if tool.tool_key in keys or (primary and path_key(tool.exe_full_path) == path_key(primary)):
            continue
        keys.add(tool.tool_key)
        merged_tools.append(tool)

    use_scanned_title = db_entry.title_is_fallback and not scanned.title_is_fallback
    return replace(
        db_entry,
        display_name=scanned.display_name if use_scanned_title else db_entry.display_name,
        title_is_fallback=db_entry.title_is_fallback and scanned.title_is_fallback,
        source_kind=SOURCE_MERGED,
        install_folder=db_entry.install_folder or scanned.install_folder,
        primary_exe=primary,
        tools=tuple(merged_tools),
        descriptor_path=scanned.descriptor_path,
    )


class GogCatalog:
    """Builds GOG catalog entries from the Galaxy database and game descriptors."""

    def __init__(self, program_data: Optional[str] = None,
                 default_library_roots: Optional[List[str]] = None):
        self.program_data = program_data or program_data_dir()
        if default_library_roots is None:
            default_library_roots = [
                os.path.expanduser("~/GOG Games"),
                os.path.join(program_files_x86_dir(), "GOG Galaxy", "Games"),
            ]
        self.default_library_roots = default_library_roots

    @property
    def storage_dir(self) -> str:
        return os.path.join(self.program_data, "GOG.com", "Galaxy", "storage")

    @staticmethod
    def database_in(folder: str) -> Optional[str]:
        for name in GALAXY_DB_NAMES:
            candidate = os.path.join(folder, name)
            if os.path.isfile(candidate):
                return candidate
        return None

    def default_roots(self) -> List[str]:
        roots = []
        db_path = self.database_in(self.storage_dir)
        if db_path:
            roots.append(db_path)
        roots.extend(r for r in self.default_library_roots if os.path.isdir(r))
        return roots

    def split_roots(self, roots: List[str], issues: List[ScanIssue]) -> Tuple[List[str], List[str]]:
        """Separate database files (or Galaxy storage folders) from library folders."""
        db_paths, library_roots = [], []
        for root in roots:
            path = normalize_path(root)
            if path and os.path.isfile(path):
                db_paths.append(path)
            elif path and os.path.isdir(path):
                db_path = self.database_in(path)
                if db_path:
                    db_paths.append(db_path)
                else:
                    library_roots.append(path)
            else:
                issues.append(ScanIssue(
                    code="GOG_ROOT_NOT_FOUND", message="GOG root does not exist",
                    store_key=StoreKeys.GOG, path=root))
        return db_paths, library_roots

    def read_database(self, db_paths: List[str], issues: List[ScanIssue]) -> List[GogGameEntry]:
        """Entries from the first database that lists any installed product."""
        for db_path in db_paths:
            try:
                rows = read_installed_products(db_path)
            except GalaxySchemaError as e:
                logger.warning(f"[GOG] Unexpected database schema in {db_path}: {e}")
                issues.append(ScanIssue.from_exception(
                    "GOG_DB_SCHEMA_UNEXPECTED", "Galaxy database has no installed-products table",
                    StoreKeys.GOG, e, path=db_path))
                continue
            except Exception as e:
                logger.error(f"[GOG] Failed to read {db_path}: {e}")
                issues.append(ScanIssue.from_exception(
                    "GOG_DB_READ_FAILED", "Failed to read Galaxy database",
                    StoreKeys.GOG, e, path=db_path))
                continue

            entries = []
            for row in rows:
                install_folder, primary_exe = row.install_path, None
                if install_folder and is_executable_name(install_folder):
                    primary_exe = install_folder
                    install_folder = _parent_dir(install_folder)
                entries.append(GogGameEntry(
                    app_id=row.product_id,
                    display_name=row.title or row.product_id,
                    source_kind=SOURCE_DATABASE,
                    source_path=db_path,
                    install_folder=install_folder,
                    primary_exe=primary_exe,
                    title_is_fallback=row.title is None,
                    db_path=db_path,
                ))
            if entries:
                logger.info(f"[GOG] {len(entries)} products from {db_path}")
                return entries
        return []

    def _read_descriptor(self, path: str, issues: List[ScanIssue]) -> Optional[GogGameEntry]:
        try:
            return parse_descriptor(path)
        except Exception as e:
            logger.warning(f"[GOG] Invalid descriptor {path}: {e}")
            issues.append(ScanIssue.from_exception(
                "GOG_DESCRIPTOR_INVALID", "Failed to parse game descriptor",
                StoreKeys.GOG, e, path=path))
            return None

    def scan_directories(self, library_roots: List[str], context: StoreScanContext,
                         issues: List[ScanIssue]) -> Dict[str, GogGameEntry]:
        """Descriptor entries keyed by product id, first found wins."""
        scanned: Dict[str, GogGameEntry] = {}
        for root in library_roots:
            for path in find_descriptors(root):
                if context.is_cancelled:
                    return scanned
                entry = self._read_descriptor(path, issues)
                if entry is None:
                    continue
                if entry.app_id in scanned:
                    issues.append(ScanIssue(
                        code="GOG_DUPLICATE_PRODUCT",
                        message=f"Product {entry.app_id} also found at {scanned[entry.app_id].source_path}",
                        store_key=StoreKeys.GOG, app_key=entry.app_id, path=path))
                    continue
                scanned[entry.app_id] = entry
        return scanned

    def build(self, roots: List[str], context: StoreScanContext,
              issues: List[ScanIssue]) -> List[GogGameEntry]:
        db_paths, library_roots = self.split_roots(roots, issues)
        db_entries = self.read_database(db_paths, issues)
        scanned = self.scan_directories(library_roots, context, issues)

        # Galaxy knows the folder but it was outside the scanned roots: read its descriptor directly
        for entry in db_entries:
            if context.is_cancelled:
                break
            if entry.app_id in scanned or not entry.install_folder:
                continue
            descriptor = os.path.join(entry.install_folder, f"goggame-{entry.app_id}.info")
            if os.path.isfile(descriptor):
                probed = self._read_descriptor(descriptor, issues)
                if probed is not None:
                    scanned[entry.app_id] = probed

        entries = [merge_entries(entry, scanned.pop(entry.app_id, None)) for entry in db_entries]
        entries.extend(scanned.values())
        logger.info(f"[GOG] Catalog: {len(entries)} games ({len(db_entries)} from Galaxy database)")
        return entries


class GogScanner(StoreInstallScanner):
    """GOG install scanner: Galaxy database plus on-disk game descriptors."""

    def __init__(self, catalog: Optional[GogCatalog] = None, enrichment=None):
        super().__init__(enrichment)
        self.catalog = catalog or GogCatalog()

    @property
    def store_key(self) -> str:
        return StoreKeys.GOG

    @property
    def log_tag(self) -> str:
        return "[GOG]"

    def discover_roots(self, context: StoreScanContext, issues: List[ScanIssue]) -> List[str]:
        if context.roots:
            return list(context.roots)
        roots = self.catalog.default_roots()
        if not roots:
            issues.append(self.issue("ROOTS_NOT_FOUND",
                                     "No Galaxy database or GOG library folder found",
                                     path=self.catalog.storage_dir))
        return roots

    def build_catalog(self, roots: List[str], context: StoreScanContext,
                      issues: List[ScanIssue]) -> List[GogGameEntry]:
        return self.catalog.build(roots, context, issues)

    def map_entry(self, entry: GogGameEntry, context: StoreScanContext) -> List[AppInstallSnapshot]:
        snapshot = AppInstallSnapshot(
            id=StoreInstallId(StoreKeys.GOG, entry.app_id),
            display_name=entry.display_name,
            install_folders=InstallFoldersSnapshot.for_path(entry.install_folder),
            executable_name=file_name(entry.primary_exe) if entry.primary_exe else None,
            tags={"gog", "game"},
        )

        metadata = {
            "ProductId": entry.app_id,
            "SourceKind": entry.source_kind,
            "SourcePath": entry.source_path,
            "WebsiteUrl": gog_store_url(entry.display_name),
            "PrimaryExeFullPath": entry.primary_exe,
            "GalaxyDbPath": entry.db_path,
            "DescriptorPath": entry.descriptor_path,
        }
        snapshot.store_metadata.update({k: v for k, v in metadata.items() if v})

        if entry.primary_exe:
            snapshot.tags.add("has-exe")
        if self.confirm_install_folder(snapshot):
            snapshot.tags.add("install-folder-exists")

        snapshots = [snapshot]
        for tool in entry.tools:
            snapshots.append(self._map_tool(entry, tool))
        return snapshots

    def _map_tool(self, entry: GogGameEntry, tool: GogToolEntry) -> AppInstallSnapshot:
        snapshot = AppInstallSnapshot(
            id=StoreInstallId(StoreKeys.GOG, tool.tool_key),
            display_name=tool.display_name,
            install_folders=InstallFoldersSnapshot.for_path(_parent_dir(tool.exe_full_path)),
            executable_name=tool.exe_name,
            store_metadata={
                "ParentProductId": entry.app_id,
                "ExeFullPath": tool.exe_full_path,
            },
            tags={"gog", "tool"},
        )
        if os.path.isfile(tool.exe_full_path):
            snapshot.install_state = InstallState.INSTALLED
        else:
            snapshot.install_state = InstallState.UNKNOWN
            snapshot.issues.append(self.issue(
                "TOOL_EXECUTABLE_MISSING", f"Tool executable not found: {tool.exe_full_path}",
                app_key=tool.tool_key, path=tool.exe_full_path))
        return snapshot
