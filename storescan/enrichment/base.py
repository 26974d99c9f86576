"""
Base class for store enrichers.

Enrichment is the only networked phase of a scan. It fills in store links,
catalog metadata and artwork for apps a scanner already found, and only
ever fills fields that are still empty. Responses and images are cached on
disk, so running it again against the same cache is free.
"""
import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from ..cache.enrichment_cache import EnrichmentCache
from ..models import (
    AppInstallSnapshot,
    AppVisualAssetsSnapshot,
    NamedVisualAssetRef,
    ScanIssue,
    StoreScanContext,
    VisualAssetRef,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 6

# Asset kinds that have a dedicated slot; everything else goes to "additional"
SLOT_FOR_KIND = {
    "icon": "icon",
    "logo": "logo",
    "background": "splash",
    "splash": "splash",
    "hero": "splash",
}


class ResponseInvalidError(ValueError):
    """A store API response could not be understood."""


def set_if_missing(metadata: Dict[str, str], key: str, value: Any) -> bool:
    """Set ``metadata[key]`` only when it is absent or blank and ``value`` is not blank."""
    if value is None:
        return False
    value = str(value).strip()
    if not value:
        return False
    existing = metadata.get(key)
    if existing is not None and existing.strip():
        return False
    metadata[key] = value
    return True


class StoreEnrichment(ABC):
    """
    Fills metadata and artwork for one store's snapshots.

    Apps are processed by a bounded pool of tasks. Each task returns its own
    issue list; the lists are concatenated once all tasks finish.
    """

    def __init__(self, http_client, cache: Optional[EnrichmentCache] = None,
                 max_concurrency: int = DEFAULT_MAX_CONCURRENCY, cache_root: Optional[str] = None):
        self.http = http_client
        self.cache = cache or EnrichmentCache(self.store_key, cache_root)
        self.max_concurrency = max(1, max_concurrency)

    @property
    @abstractmethod
    def store_key(self) -> str:
        pass

    @property
    def log_tag(self) -> str:
        return f"[Enrich:{self.store_key}]"

    @property
    def issue_prefix(self) -> str:
        return self.store_key.upper()

    @property
    @abstractmethod
    def visual_url_key_prefix(self) -> str:
        """Metadata key prefix recording remote art URLs, e.g. 'SteamVisualUrl'."""
        pass

    def is_target(self, snapshot: AppInstallSnapshot) -> bool:
        """Only this store's apps with numeric ids are known to the store APIs."""
        return snapshot.id.store_key == self.store_key and snapshot.id.store_app_id.isdigit()

    @abstractmethod
    def apply_links(self, snapshot: AppInstallSnapshot):
        """Set the URLs that follow from the app id alone."""
        pass

    @abstractmethod
    def api_url(self, app_id: str) -> str:
        pass

    @abstractmethod
    def response_cache_name(self, app_id: str) -> str:
        pass

    @abstractmethod
    def parse_response(self, app_id: str, body: str) -> Optional[Dict[str, Any]]:
        """
        Decode a response body.

        Returns:
            The app's data, or None when the store has nothing for it.

        Raises:
            ResponseInvalidError: if the body is not what the API returns.
        """
        pass

    @abstractmethod
    def extract_metadata(self, data: Dict[str, Any]) -> Dict[str, str]:
        pass

    @abstractmethod
    def extract_visuals(self, data: Dict[str, Any]) -> List[Tuple[str, str]]:
        """(kind, url) pairs in preference order."""
        pass

    async def enrich(self, context: StoreScanContext, apps: List[AppInstallSnapshot]) -> List[ScanIssue]:
        """
        Enrich every targeted app.

        Args:
            context: Scan context (cancellation, visual-assets switch).
            apps: Snapshots from this store's scan; updated in place.

        Returns:
            Issues from all apps, at most one per app.
        """
        targets = [app for app in apps if self.is_target(app)]
        if not targets:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(snapshot: AppInstallSnapshot) -> List[ScanIssue]:
            async with semaphore:
                if context.is_cancelled:
                    return []
                return await self.enrich_app(context, snapshot)

        logger.info(f"{self.log_tag} Enriching {len(targets)} apps")
        results = await asyncio.gather(*(run(app) for app in targets), return_exceptions=True)

        issues: List[ScanIssue] = []
        for snapshot, result in zip(targets, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                issues.append(ScanIssue.from_exception(
                    f"{self.issue_prefix}_ENRICH_FAILED", "Enrichment failed",
                    self.store_key, result, app_key=snapshot.id.store_app_id))
            else:
                issues.extend(result)

        logger.info(f"{self.log_tag} Done, {len(issues)} issues")
        return issues

    async def load_response(self, app_id: str) -> Tuple[str, bool]:
        """Response body and whether it came from the cache."""
        cached = self.cache.read_response(self.response_cache_name(app_id))
        if cached is not None:
            return cached, True
        body = await self.http.get_text(self.api_url(app_id))
        return body, False

    async def enrich_app(self, context: StoreScanContext, snapshot: AppInstallSnapshot) -> List[ScanIssue]:
        app_id = snapshot.id.store_app_id
        self.apply_links(snapshot)

        try:
            body, from_cache = await self.load_response(app_id)
            data = self.parse_response(app_id, body)
            if not from_cache:
                self.cache.write_response(self.response_cache_name(app_id), body)
            metadata = self.extract_metadata(data) if data else {}
            visuals = self.extract_visuals(data) if data else []
        except asyncio.CancelledError:
            raise
        except ResponseInvalidError as e:
            logger.warning(f"{self.log_tag} Invalid response for {app_id}: {e}")
            return [ScanIssue.from_exception(
                f"{self.issue_prefix}_RESPONSE_INVALID", "Store API response is invalid",
                self.store_key, e, app_key=app_id)]
        except Exception as e:
            logger.warning(f"{self.log_tag} Failed to enrich {app_id}: {e}")
            return [ScanIssue.from_exception(
                f"{self.issue_prefix}_ENRICH_FAILED", "Enrichment failed",
                self.store_key, e, app_key=app_id)]

        if data is None:
            logger.debug(f"{self.log_tag} No store data for {app_id}")
            return []

        for key, value in metadata.items():
            set_if_missing(snapshot.store_metadata, key, value)
        for kind, url in visuals:
            set_if_missing(snapshot.store_metadata, f"{self.visual_url_key_prefix}:{kind}", url)

        if context.include_visual_assets and visuals:
            issue = await self.attach_visuals(snapshot, visuals)
            if issue is not None:
                return [issue]
        return []

    async def attach_visuals(self, snapshot: AppInstallSnapshot,
                             visuals: List[Tuple[str, str]]) -> Optional[ScanIssue]:
        """Download (or reuse cached) art and place it; one issue covers all failed kinds."""
        app_id = snapshot.id.store_app_id
        failures: List[Tuple[str, Exception]] = []

        for kind, url in visuals:
            if self.has_visual(snapshot, kind, url):
                continue
            path = self.cache.asset_path(app_id, kind, url)
            if not os.path.isfile(path):
                try:
                    data = await self.http.get_bytes(url)
                    self.cache.write_asset(path, data)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.debug(f"{self.log_tag} Failed to download {kind} for {app_id}: {e}")
                    failures.append((kind, e))
                    continue
            self.place_visual(snapshot, kind, VisualAssetRef(uri=url, file_path=path))

        if not failures:
            return None
        kinds = ", ".join(kind for kind, _ in failures)
        return ScanIssue.from_exception(
            f"{self.issue_prefix}_VISUAL_DOWNLOAD_FAILED", f"Failed to download: {kinds}",
            self.store_key, failures[0][1], app_key=app_id)

    @staticmethod
    def has_visual(snapshot: AppInstallSnapshot, kind: str, url: str) -> bool:
        visuals = snapshot.visual_assets
        if visuals is None:
            return False
        slot = SLOT_FOR_KIND.get(kind.lower())
        if slot:
            current = getattr(visuals, slot)
            if current is not None and current.uri == url:
                return True
        return visuals.has_kind(kind)

    @staticmethod
    def place_visual(snapshot: AppInstallSnapshot, kind: str, asset: VisualAssetRef):
        """Fill the kind's slot if it is empty, otherwise append to ``additional``."""
        if snapshot.visual_assets is None:
            snapshot.visual_assets = AppVisualAssetsSnapshot()
        visuals = snapshot.visual_assets
        slot = SLOT_FOR_KIND.get(kind.lower())
        if slot and getattr(visuals, slot) is None:
            setattr(visuals, slot, asset)
        else:
            visuals.additional.append(NamedVisualAssetRef(kind, asset))
