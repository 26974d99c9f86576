from .issues import ExceptionInfo, ScanCancelledError, ScanIssue, StoreKeys
from .snapshot import (
    AppInstallSnapshot,
    AppVisualAssetsSnapshot,
    DepotSnapshot,
    FolderRef,
    InstallFoldersSnapshot,
    InstallSnapshot,
    InstallState,
    NamedFolderRef,
    NamedVisualAssetRef,
    ScanScope,
    StoreInstallId,
    StoreScanContext,
    StoreScanResult,
    VisualAssetRef,
)

__all__ = [
    "AppInstallSnapshot",
    "AppVisualAssetsSnapshot",
    "DepotSnapshot",
    "ExceptionInfo",
    "FolderRef",
    "InstallFoldersSnapshot",
    "InstallSnapshot",
    "InstallState",
    "NamedFolderRef",
    "NamedVisualAssetRef",
    "ScanCancelledError",
    "ScanIssue",
    "ScanScope",
    "StoreInstallId",
    "StoreKeys",
    "StoreScanContext",
    "StoreScanResult",
    "VisualAssetRef",
]
