"""
Normalized install snapshot model shared by every store scanner.

Snapshots are created fresh for each scan. The only mutation after mapping
is enrichment, which fills fields that are still empty and never overwrites.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from .issues import ScanIssue


class InstallState(str, Enum):
    INSTALLED = "Installed"
    NOT_INSTALLED = "NotInstalled"
    UNKNOWN = "Unknown"


class ScanScope(str, Enum):
    STORE_SINGLE = "store_single"
    STORES_ALL = "stores_all"


@dataclass(frozen=True)
class StoreInstallId:
    """Identity of one install: store key, store-native app id, optional instance."""
    store_key: str
    store_app_id: str
    install_instance_id: Optional[str] = None

    @property
    def key(self) -> str:
        base = f"{self.store_key}:{self.store_app_id}"
        if self.install_instance_id:
            return f"{base}@{self.install_instance_id}"
        return base


@dataclass(frozen=True)
class FolderRef:
    path: str


@dataclass(frozen=True)
class NamedFolderRef:
    role: str
    folder: FolderRef


@dataclass
class InstallFoldersSnapshot:
    install_folder: Optional[FolderRef] = None
    content_folder: Optional[FolderRef] = None
    data_folder: Optional[FolderRef] = None
    additional_folders: List[NamedFolderRef] = field(default_factory=list)

    @classmethod
    def for_path(cls, path: Optional[str]) -> "InstallFoldersSnapshot":
        """Folders snapshot where the install folder doubles as the content folder."""
        if not path:
            return cls()
        ref = FolderRef(path)
        return cls(install_folder=ref, content_folder=ref)


@dataclass(frozen=True)
class VisualAssetRef:
    """Either a remote uri, a local file, or both (downloaded copy of a uri)."""
    uri: Optional[str] = None
    file_path: Optional[str] = None


@dataclass(frozen=True)
class NamedVisualAssetRef:
    kind: str
    asset: VisualAssetRef


@dataclass
class AppVisualAssetsSnapshot:
    icon: Optional[VisualAssetRef] = None
    logo: Optional[VisualAssetRef] = None
    splash: Optional[VisualAssetRef] = None
    additional: List[NamedVisualAssetRef] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.icon or self.logo or self.splash or self.additional)

    def has_kind(self, kind: str) -> bool:
        kind = kind.lower()
        return any(item.kind.lower() == kind for item in self.additional)


@dataclass
class DepotSnapshot:
    depot_id: str
    manifest_id: Optional[str] = None
    branch: Optional[str] = None
    build_id: Optional[str] = None
    tags: Set[str] = field(default_factory=set)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class AppInstallSnapshot:
    """One installed application, normalized across stores."""
    id: StoreInstallId
    display_name: str
    install_folders: InstallFoldersSnapshot = field(default_factory=InstallFoldersSnapshot)
    executable_name: Optional[str] = None
    visual_assets: Optional[AppVisualAssetsSnapshot] = None
    version: Optional[str] = None
    install_state: InstallState = InstallState.UNKNOWN
    last_updated_utc: Optional[datetime] = None
    depots: List[DepotSnapshot] = field(default_factory=list)
    store_metadata: Dict[str, str] = field(default_factory=dict)
    issues: List[ScanIssue] = field(default_factory=list)
    tags: Set[str] = field(default_factory=set)

    @property
    def install_folder(self) -> Optional[str]:
        folder = self.install_folders.install_folder
        return folder.path if folder else None

    def to_dict(self) -> Dict[str, Any]:
        return _plain(self)


@dataclass
class StoreScanContext:
    """Per-scan options handed to every scanner.

    roots: explicit install/library roots; when non-empty they replace
        auto-discovery for the store being scanned.
    include_visual_assets: collect local art and download remote art.
    enrich: run the optional network enrichment phase.
    """
    roots: List[str] = field(default_factory=list)
    include_visual_assets: bool = True
    enrich: bool = False
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self):
        self.cancel_event.set()


@dataclass
class StoreScanResult:
    store_key: str
    apps: List[AppInstallSnapshot] = field(default_factory=list)
    issues: List[ScanIssue] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return _plain(self)


@dataclass
class InstallSnapshot:
    """Aggregate of one or more store scans."""
    captured_at_utc: datetime
    scope: ScanScope
    results: List[StoreScanResult] = field(default_factory=list)

    @classmethod
    def capture(cls, scope: ScanScope, results: List[StoreScanResult]) -> "InstallSnapshot":
        return cls(captured_at_utc=datetime.now(timezone.utc), scope=scope, results=list(results))

    @property
    def apps(self) -> List[AppInstallSnapshot]:
        return [app for result in self.results for app in result.apps]

    @property
    def issues(self) -> List[ScanIssue]:
        """Store-level issues only."""
        return [issue for result in self.results for issue in result.issues]

    def all_issues(self) -> List[ScanIssue]:
        """Store-level issues followed by every per-app issue."""
        per_app = [issue for app in self.apps for issue in app.issues]
        return self.issues + per_app

    def to_dict(self) -> Dict[str, Any]:
        return _plain(self)


def _plain(value: Any) -> Any:
    """Convert model objects into JSON-friendly builtins with stable ordering."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, StoreInstallId):
        return {
            "store_key": value.store_key,
            "store_app_id": value.store_app_id,
            "install_instance_id": value.install_instance_id,
            "key": value.key,
        }
    if isinstance(value, ScanIssue):
        return value.to_dict()
    if hasattr(value, "__dataclass_fields__"):
        return {name: _plain(getattr(value, name)) for name in value.__dataclass_fields__
                if name != "cancel_event"}
    if isinstance(value, (set, frozenset)):
        return sorted(_plain(item) for item in value)
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in sorted(value.items())}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value
