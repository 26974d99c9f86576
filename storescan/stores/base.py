"""
Base scanner class defining the interface for all store install scanners.

All store implementations (Steam, GOG, Epic) inherit from this and implement
root discovery, catalog building and entry mapping. The scan pipeline itself
(issue collection, isolation, cancellation, enrichment) lives here.
"""
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

from ..models import (
    AppInstallSnapshot,
    InstallState,
    ScanCancelledError,
    ScanIssue,
    StoreScanContext,
    StoreScanResult,
)

logger = logging.getLogger(__name__)


class StoreInstallScanner(ABC):
    """
    Abstract base class for store install scanners.

    Each store (Steam, GOG, Epic) implements this interface so the orchestrator
    can run every store the same way and get back a StoreScanResult.
    """

    # sys.platform values the scanner can run on; None means everywhere
    supported_platforms: Optional[Tuple[str, ...]] = None

    def __init__(self, enrichment=None):
        self.enrichment = enrichment

    @property
    @abstractmethod
    def store_key(self) -> str:
        """Return the store identifier (e.g., 'steam', 'gog', 'epic')"""
        pass

    @property
    def log_tag(self) -> str:
        return f"[{self.store_key.capitalize()}]"

    @property
    def issue_prefix(self) -> str:
        return self.store_key.upper()

    @abstractmethod
    def discover_roots(self, context: StoreScanContext, issues: List[ScanIssue]) -> List[str]:
        """
        Resolve the roots to scan. Explicit context roots win over discovery.

        Returns:
            List of store-specific roots (may be empty).
        """
        pass

    @abstractmethod
    def build_catalog(self, roots: List[str], context: StoreScanContext,
                      issues: List[ScanIssue]) -> List[Any]:
        """
        Read the store's on-disk artifacts into catalog entries.

        Implementations stop early (returning what they have) when the
        context is cancelled.
        """
        pass

    @abstractmethod
    def map_entry(self, entry: Any, context: StoreScanContext) -> List[AppInstallSnapshot]:
        """Map one catalog entry to one or more normalized snapshots."""
        pass

    def entry_key(self, entry: Any) -> Optional[str]:
        """Store app id of a catalog entry, used to tag mapping failures."""
        return getattr(entry, "app_id", None)

    def issue(self, suffix: str, message: str, **kwargs) -> ScanIssue:
        return ScanIssue(code=f"{self.issue_prefix}_{suffix}", message=message,
                         store_key=self.store_key, **kwargs)

    def confirm_install_folder(self, snapshot: AppInstallSnapshot) -> bool:
        """Set the install state from the install folder's existence.

        A folder that is unset or missing makes the state Unknown and adds
        one folder-missing issue to the snapshot.
        """
        folder = snapshot.install_folder
        if folder and os.path.isdir(folder):
            snapshot.install_state = InstallState.INSTALLED
            return True

        snapshot.install_state = InstallState.UNKNOWN
        snapshot.issues.append(self.issue(
            "INSTALL_FOLDER_MISSING",
            f"Install folder not found: {folder}" if folder else "No install folder recorded",
            app_key=snapshot.id.store_app_id,
            path=folder,
        ))
        return False

    async def scan(self, context: Optional[StoreScanContext] = None) -> StoreScanResult:
        """
        Run discovery, catalog building, mapping and optional enrichment.

        Returns:
            StoreScanResult; ``cancelled`` is set when cancellation cut the
            scan short after some catalog entries were produced.

        Raises:
            ScanCancelledError: if cancelled before any catalog entry existed.
        """
        context = context or StoreScanContext()
        issues: List[ScanIssue] = []

        if context.is_cancelled:
            raise ScanCancelledError(self.store_key)

        try:
            roots = self.discover_roots(context, issues)
        except Exception as e:
            logger.error(f"{self.log_tag} Root discovery failed: {e}")
            issues.append(ScanIssue.from_exception(
                f"{self.issue_prefix}_ROOT_DISCOVERY_FAILED", "Failed to discover store roots",
                self.store_key, e))
            roots = []

        try:
            catalog = self.build_catalog(roots, context, issues)
        except ScanCancelledError:
            raise
        except Exception as e:
            logger.error(f"{self.log_tag} Catalog build failed: {e}")
            issues.append(ScanIssue.from_exception(
                f"{self.issue_prefix}_CATALOG_BUILD_FAILED", "Failed to build store catalog",
                self.store_key, e))
            catalog = []

        # Entries already read before a cancellation are still mapped
        cancelled_in_build = context.is_cancelled
        if cancelled_in_build and not catalog:
            raise ScanCancelledError(self.store_key)

        apps: List[AppInstallSnapshot] = []
        for entry in catalog:
            if context.is_cancelled and not cancelled_in_build:
                break
            try:
                apps.extend(self.map_entry(entry, context))
            except Exception as e:
                app_key = self.entry_key(entry)
                logger.warning(f"{self.log_tag} Failed to map {app_key}: {e}")
                issues.append(ScanIssue.from_exception(
                    f"{self.issue_prefix}_ENTRY_MAP_FAILED", "Failed to map catalog entry",
                    self.store_key, e, app_key=app_key))

        cancelled = context.is_cancelled

        if roots and not catalog and not issues:
            issues.append(self.issue("NO_APPS_FOUND", f"No installed apps found in {len(roots)} root(s)"))

        if cancelled:
            logger.info(f"{self.log_tag} Scan cancelled after {len(apps)} apps")
        elif self.enrichment is not None and context.enrich and apps:
            issues.extend(await self.enrichment.enrich(context, apps))

        logger.info(f"{self.log_tag} Scan finished: {len(apps)} apps, {len(issues)} issues")
        return StoreScanResult(store_key=self.store_key, apps=apps, issues=issues, cancelled=cancelled)
