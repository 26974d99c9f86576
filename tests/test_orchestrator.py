from __future__ import annotations

import json
from typing import Any, List

import pytest

from storescan.models import (
    AppInstallSnapshot,
    InstallState,
    ScanCancelledError,
    ScanScope,
    StoreInstallId,
    StoreScanContext,
    StoreScanResult,
)
from storescan.stores.base import StoreInstallScanner
from storescan.stores.manager import StoreScanOrchestrator, create_default_orchestrator
from storescan.utils.registry import NullLocator
from storescan.utils.settings import ScanSettings


class FakeScanner(StoreInstallScanner):
    """Scanner over an in-memory list of app ids."""

    def __init__(self, key: str, entries: List[str], fail_on: str = None, cancel_on: str = None,
                 enrichment=None):
        super().__init__(enrichment)
        self._key = key
        self.entries = entries
        self.fail_on = fail_on
        self.cancel_on = cancel_on

    @property
    def store_key(self) -> str:
        return self._key

    def discover_roots(self, context, issues) -> List[str]:
        return ["memory"]

    def build_catalog(self, roots, context, issues) -> List[Any]:
        return list(self.entries)

    def entry_key(self, entry):
        return entry

    def map_entry(self, entry, context) -> List[AppInstallSnapshot]:
        if entry == self.fail_on:
            raise ValueError(f"cannot map {entry}")
        if entry == self.cancel_on:
            context.cancel()
        return [AppInstallSnapshot(id=StoreInstallId(self._key, entry), display_name=entry,
                                   install_state=InstallState.INSTALLED)]


class ExplodingScanner(FakeScanner):
    async def scan(self, context=None) -> StoreScanResult:
        raise RuntimeError("boom")


class CancelledScanner(FakeScanner):
    async def scan(self, context=None) -> StoreScanResult:
        raise ScanCancelledError(self.store_key)


@pytest.mark.asyncio
async def test_entry_mapping_failure_is_isolated():
    scanner = FakeScanner("steam", ["1", "2", "3"], fail_on="2")

    result = await scanner.scan(StoreScanContext())

    assert [app.id.store_app_id for app in result.apps] == ["1", "3"]
    assert len(result.issues) == 1
    assert result.issues[0].code == "STEAM_ENTRY_MAP_FAILED"
    assert result.issues[0].app_key == "2"
    assert result.issues[0].exception.type == "ValueError"


@pytest.mark.asyncio
async def test_no_apps_found_issue():
    result = await FakeScanner("steam", []).scan(StoreScanContext())
    assert [issue.code for issue in result.issues] == ["STEAM_NO_APPS_FOUND"]


@pytest.mark.asyncio
async def test_cancellation_mid_scan_returns_partial_result():
    scanner = FakeScanner("gog", ["1", "2", "3"], cancel_on="1")

    result = await scanner.scan(StoreScanContext())

    assert result.cancelled is True
    assert [app.id.store_app_id for app in result.apps] == ["1"]


@pytest.mark.asyncio
async def test_cancelled_scan_does_not_enrich():
    class Enrichment:
        called = False

        async def enrich(self, context, apps):
            Enrichment.called = True
            return []

    scanner = FakeScanner("steam", ["1", "2"], cancel_on="2", enrichment=Enrichment())
    result = await scanner.scan(StoreScanContext(enrich=True))

    assert result.cancelled is True
    assert Enrichment.called is False


@pytest.mark.asyncio
async def test_scan_stores_isolates_failing_scanner():
    orchestrator = StoreScanOrchestrator([
        ExplodingScanner("steam", []),
        FakeScanner("gog", ["1"]),
    ])

    snapshot = await orchestrator.scan_stores()

    assert snapshot.scope == ScanScope.STORES_ALL
    assert [app.id.key for app in snapshot.apps] == ["gog:1"]
    assert [issue.code for issue in snapshot.issues] == ["STEAM_SCAN_FAILED"]


@pytest.mark.asyncio
async def test_cancellation_propagates_with_partial_snapshot():
    orchestrator = StoreScanOrchestrator([
        FakeScanner("steam", ["480"]),
        CancelledScanner("gog", []),
        FakeScanner("epic", ["Fortnite"]),
    ])

    with pytest.raises(ScanCancelledError) as excinfo:
        await orchestrator.scan_stores()

    assert excinfo.value.store_key == "gog"
    assert [app.id.key for app in excinfo.value.partial.apps] == ["steam:480"]


@pytest.mark.asyncio
async def test_scan_store_single_and_unknown():
    orchestrator = StoreScanOrchestrator([FakeScanner("steam", ["480"])])

    snapshot = await orchestrator.scan_store("STEAM")
    assert snapshot.scope == ScanScope.STORE_SINGLE
    assert len(snapshot.apps) == 1

    with pytest.raises(KeyError):
        await orchestrator.scan_store("battlenet")


def test_default_orchestrator_is_platform_gated():
    settings = ScanSettings(cache_dir="/tmp/storescan-test-cache")
    linux = create_default_orchestrator(platform="linux", locator=NullLocator(), settings=settings)
    windows = create_default_orchestrator(platform="win32", locator=NullLocator(), settings=settings)

    assert set(linux.scanners) == {"steam", "gog"}
    assert set(windows.scanners) == {"steam", "gog", "epic", "xbox", "ea", "origin", "rockstar"}
    assert linux.get_scanner("steam").enrichment is not None
    assert windows.get_scanner("epic").enrichment is None


@pytest.mark.asyncio
async def test_snapshot_to_dict_is_json_friendly():
    orchestrator = StoreScanOrchestrator([FakeScanner("steam", ["480"], fail_on="x")])
    snapshot = await orchestrator.scan_stores()
    snapshot.apps[0].tags.update({"steam", "installed"})

    data = snapshot.to_dict()
    json.dumps(data)

    app = data["results"][0]["apps"][0]
    assert app["id"]["key"] == "steam:480"
    assert app["install_state"] == "Installed"
    assert app["tags"] == ["installed", "steam"]
    assert data["scope"] == "stores_all"


class FolderMissingScanner(FakeScanner):
    def map_entry(self, entry, context) -> List[AppInstallSnapshot]:
        snapshot = AppInstallSnapshot(id=StoreInstallId(self._key, entry), display_name=entry)
        self.confirm_install_folder(snapshot)
        return [snapshot]


@pytest.mark.asyncio
async def test_all_issues_includes_app_issues():
    orchestrator = StoreScanOrchestrator([
        FakeScanner("steam", ["1", "2"], fail_on="2"),
        FolderMissingScanner("gog", ["7"]),
    ])

    snapshot = await orchestrator.scan_stores()

    assert [issue.code for issue in snapshot.issues] == ["STEAM_ENTRY_MAP_FAILED"]
    assert [issue.code for issue in snapshot.all_issues()] == [
        "STEAM_ENTRY_MAP_FAILED",
        "GOG_INSTALL_FOLDER_MISSING",
    ]
