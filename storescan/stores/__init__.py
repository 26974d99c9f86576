from .base import StoreInstallScanner
from .epic import EpicCatalog, EpicScanner
from .gog import GogCatalog, GogScanner
from .launchers import LAUNCHERS, LauncherInfo, LauncherPresenceScanner, create_launcher_scanners
from .manager import StoreScanOrchestrator, create_default_orchestrator, run_scan
from .steam import SteamCatalog, SteamScanner
from .xbox import XboxCatalog, XboxScanner

__all__ = [
    "EpicCatalog",
    "EpicScanner",
    "GogCatalog",
    "GogScanner",
    "LAUNCHERS",
    "LauncherInfo",
    "LauncherPresenceScanner",
    "SteamCatalog",
    "SteamScanner",
    "StoreInstallScanner",
    "StoreScanOrchestrator",
    "XboxCatalog",
    "XboxScanner",
    "create_default_orchestrator",
    "create_launcher_scanners",
    "run_scan",
]
