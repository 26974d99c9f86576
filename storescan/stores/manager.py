"""
Store Scan Orchestrator - runs every registered store scanner.

Provides a unified entry point for scanning one store or all of them and
aggregating the results into a single InstallSnapshot.
"""
import asyncio
import logging
import sys
from typing import Dict, List, Optional

from ..enrichment import GogEnrichment, SteamEnrichment, StoreHttpClient
from ..models import (
    InstallSnapshot,
    ScanCancelledError,
    ScanIssue,
    ScanScope,
    StoreScanContext,
    StoreScanResult,
)
from ..utils.paths import resolve_cache_root
from ..utils.registry import PlatformLocator, default_locator
from ..utils.settings import ScanSettings, load_settings
from .base import StoreInstallScanner
from .epic import EpicCatalog, EpicScanner
from .gog import GogCatalog, GogScanner
from .launchers import create_launcher_scanners
from .steam import SteamCatalog, SteamScanner
from .xbox import XboxCatalog, XboxScanner

logger = logging.getLogger(__name__)


class StoreScanOrchestrator:
    """
    Manages multiple store scanners.

    Every registered scanner is attempted; one store failing never stops the
    others. Cancellation is the only thing that ends a multi-store scan early.
    """

    def __init__(self, scanners: Optional[List[StoreInstallScanner]] = None, http_client=None):
        self._scanners: Dict[str, StoreInstallScanner] = {}
        self.http_client = http_client
        for scanner in scanners or []:
            self.register_scanner(scanner)

    def register_scanner(self, scanner: StoreInstallScanner):
        """Register a store scanner."""
        self._scanners[scanner.store_key] = scanner
        logger.info(f"Registered scanner: {scanner.store_key}")

    def get_scanner(self, store_key: str) -> Optional[StoreInstallScanner]:
        """Get a specific scanner by store key."""
        return self._scanners.get(store_key.lower())

    @property
    def scanners(self) -> Dict[str, StoreInstallScanner]:
        """Get all registered scanners."""
        return self._scanners

    async def close(self):
        """Close the shared HTTP client, if any."""
        if self.http_client is not None:
            await self.http_client.close()

    async def _run_scanner(self, scanner: StoreInstallScanner, context: StoreScanContext) -> StoreScanResult:
        try:
            return await scanner.scan(context)
        except (ScanCancelledError, asyncio.CancelledError):
            raise
        except Exception as e:
            logger.error(f"Scanner {scanner.store_key} failed: {e}")
            issue = ScanIssue.from_exception(
                f"{scanner.store_key.upper()}_SCAN_FAILED", "Store scan failed",
                scanner.store_key, e)
            return StoreScanResult(store_key=scanner.store_key, issues=[issue])

    async def scan_store(self, store_key: str, context: Optional[StoreScanContext] = None) -> InstallSnapshot:
        """
        Scan a single store.

        Raises:
            KeyError: if no scanner is registered for ``store_key``.
            ScanCancelledError: if cancelled before the store produced a catalog.
        """
        scanner = self.get_scanner(store_key)
        if scanner is None:
            raise KeyError(f"No scanner registered for store '{store_key}'")

        result = await self._run_scanner(scanner, context or StoreScanContext())
        return InstallSnapshot.capture(ScanScope.STORE_SINGLE, [result])

    async def scan_stores(self, context: Optional[StoreScanContext] = None,
                          stores: Optional[List[str]] = None) -> InstallSnapshot:
        """
        Scan all registered stores (or the given subset) one after another.

        Raises:
            ScanCancelledError: on cancellation; ``partial`` holds the stores
                completed so far.
        """
        context = context or StoreScanContext()
        target_keys = [key.lower() for key in stores] if stores else list(self._scanners.keys())

        results: List[StoreScanResult] = []
        for store_key in target_keys:
            scanner = self._scanners.get(store_key)
            if scanner is None:
                logger.warning(f"Skipping unknown store: {store_key}")
                continue
            try:
                result = await self._run_scanner(scanner, context)
            except ScanCancelledError as e:
                e.partial = InstallSnapshot.capture(ScanScope.STORES_ALL, results)
                raise
            results.append(result)
            logger.info(f"Scanned {store_key}: {len(result.apps)} apps, {len(result.issues)} issues")
            if result.cancelled:
                break

        snapshot = InstallSnapshot.capture(ScanScope.STORES_ALL, results)
        logger.info(f"Scan complete: {len(snapshot.apps)} apps, {len(snapshot.all_issues())} issues")
        return snapshot


def create_default_orchestrator(
    platform: Optional[str] = None,
    locator: Optional[PlatformLocator] = None,
    http_client: Optional[StoreHttpClient] = None,
    settings: Optional[ScanSettings] = None,
) -> StoreScanOrchestrator:
    """
    Orchestrator with every scanner the platform supports, wired to enrichers.

    Args:
        platform: sys.platform value to gate scanners on (defaults to the host).
        locator: Registry access; defaults to the host's locator.
        http_client: Shared HTTP client for enrichment; created when omitted.
        settings: Cache and HTTP settings; read from settings.json when omitted.
    """
    platform = platform or sys.platform
    settings = settings or load_settings()
    locator = locator or default_locator(platform)
    http_client = http_client or StoreHttpClient(timeout=settings.request_timeout,
                                                 user_agent=settings.user_agent)
    cache_root = resolve_cache_root(settings.cache_dir)

    scanners = [
        SteamScanner(SteamCatalog(locator), SteamEnrichment(
            http_client, max_concurrency=settings.enrich_concurrency, cache_root=cache_root)),
        GogScanner(GogCatalog(), GogEnrichment(
            http_client, max_concurrency=settings.enrich_concurrency, cache_root=cache_root)),
        EpicScanner(EpicCatalog(locator)),
        XboxScanner(XboxCatalog()),
        *create_launcher_scanners(locator),
    ]

    orchestrator = StoreScanOrchestrator(http_client=http_client)
    for scanner in scanners:
        if scanner.supported_platforms is None or platform in scanner.supported_platforms:
            orchestrator.register_scanner(scanner)
        else:
            logger.info(f"Scanner {scanner.store_key} not supported on {platform}")
    return orchestrator


def run_scan(context: Optional[StoreScanContext] = None, **kwargs) -> InstallSnapshot:
    """Scan every supported store synchronously (for scripts and tools)."""

    async def _run() -> InstallSnapshot:
        orchestrator = create_default_orchestrator(**kwargs)
        try:
            return await orchestrator.scan_stores(context)
        finally:
            await orchestrator.close()

    return asyncio.run(_run())
