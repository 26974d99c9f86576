"""
storescan - discovers games installed by PC storefront launchers.

Scans Steam, GOG Galaxy and the Epic Games Launcher, normalizes what it
finds into InstallSnapshot objects and can optionally enrich them with
store metadata and artwork.
"""
from .models import (
    AppInstallSnapshot,
    InstallSnapshot,
    InstallState,
    ScanCancelledError,
    ScanIssue,
    StoreKeys,
    StoreScanContext,
    StoreScanResult,
)
from .stores import StoreScanOrchestrator, create_default_orchestrator, run_scan

__version__ = "0.1.0"

__all__ = [
    "AppInstallSnapshot",
    "InstallSnapshot",
    "InstallState",
    "ScanCancelledError",
    "ScanIssue",
    "StoreKeys",
    "StoreScanContext",
    "StoreScanOrchestrator",
    "StoreScanResult",
    "create_default_orchestrator",
    "run_scan",
]
