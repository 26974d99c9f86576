from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest

from storescan.cache.enrichment_cache import EnrichmentCache, filename_from_url, sanitize_filename
from storescan.enrichment import GogEnrichment, SteamEnrichment, set_if_missing
from storescan.models import (
    AppInstallSnapshot,
    AppVisualAssetsSnapshot,
    StoreInstallId,
    StoreScanContext,
    VisualAssetRef,
)

APPDETAILS = {
    "480": {
        "success": True,
        "data": {
            "type": "game",
            "name": "Spacewar",
            "website": "https://example.com",
            "developers": ["Valve", "Other"],
            "publishers": ["Valve"],
            "dlc": [481, 482],
            "release_date": {"coming_soon": False, "date": "1 Jan, 2005"},
            "header_image": "https://cdn.example.com/steam/apps/480/header.jpg?t=1",
            "capsule_image": "https://cdn.example.com/steam/apps/480/capsule_231x87.jpg",
            "background_raw": "https://cdn.example.com/steam/apps/480/page_bg_raw.jpg",
        },
    }
}


def steam_app(app_id: str = "480") -> AppInstallSnapshot:
    return AppInstallSnapshot(id=StoreInstallId("steam", app_id), display_name="Spacewar")


@pytest.fixture
def http():
    return Mock(
        get_text=AsyncMock(return_value=json.dumps(APPDETAILS)),
        get_bytes=AsyncMock(return_value=b"image-bytes"),
    )


@pytest.fixture
def steam_enrichment(http, tmp_path):
    return SteamEnrichment(http, cache=EnrichmentCache("steam", str(tmp_path)))


@pytest.mark.asyncio
async def test_steam_enrichment_fills_metadata_and_visuals(steam_enrichment, http):
    app = steam_app()

    issues = await steam_enrichment.enrich(StoreScanContext(enrich=True), [app])

    assert issues == []
    meta = app.store_metadata
    assert meta["SteamStoreUri"] == "https://store.steampowered.com/app/480/"
    assert meta["SteamCommunityUri"] == "https://steamcommunity.com/app/480/"
    assert meta["SteamDevelopers"] == "Valve | Other"
    assert meta["SteamDlcAppIds"] == "481,482"
    assert meta["SteamReleaseDate"] == "1 Jan, 2005"
    assert meta["SteamVisualUrl:Header"] == APPDETAILS["480"]["data"]["header_image"]

    visuals = app.visual_assets
    assert visuals.splash.uri == APPDETAILS["480"]["data"]["background_raw"]
    assert [item.kind for item in visuals.additional] == ["Header", "Capsule"]
    assert visuals.additional[0].asset.file_path.endswith("480_header_header.jpg")
    http.get_text.assert_called_once_with(
        "https://store.steampowered.com/api/appdetails?appids=480&cc=US&l=english")
    assert http.get_bytes.call_count == 3


@pytest.mark.asyncio
async def test_second_run_is_identical_and_offline(steam_enrichment, http):
    app = steam_app()
    context = StoreScanContext(enrich=True)
    await steam_enrichment.enrich(context, [app])
    first = json.dumps(app.to_dict(), sort_keys=True)
    calls = (http.get_text.call_count, http.get_bytes.call_count)

    issues = await steam_enrichment.enrich(context, [app])

    assert issues == []
    assert json.dumps(app.to_dict(), sort_keys=True) == first
    assert (http.get_text.call_count, http.get_bytes.call_count) == calls


@pytest.mark.asyncio
async def test_fresh_snapshot_uses_cache(steam_enrichment, http):
    context = StoreScanContext(enrich=True)
    first = steam_app()
    await steam_enrichment.enrich(context, [first])
    calls = (http.get_text.call_count, http.get_bytes.call_count)

    second = steam_app()
    await steam_enrichment.enrich(context, [second])

    assert (http.get_text.call_count, http.get_bytes.call_count) == calls
    assert second.to_dict() == first.to_dict()


@pytest.mark.asyncio
async def test_failure_is_one_issue_and_keeps_existing_fields(steam_enrichment, http):
    http.get_text.side_effect = Exception("network down")
    app = steam_app()
    app.store_metadata["SteamStoreUri"] = "https://mirror.example/app/480"

    issues = await steam_enrichment.enrich(StoreScanContext(enrich=True), [app])

    assert len(issues) == 1
    assert issues[0].code == "STEAM_ENRICH_FAILED"
    assert issues[0].app_key == "480"
    assert app.store_metadata["SteamStoreUri"] == "https://mirror.example/app/480"
    assert app.store_metadata["SteamCommunityUri"] == "https://steamcommunity.com/app/480/"
    assert app.visual_assets is None


@pytest.mark.asyncio
async def test_invalid_json_is_reported(steam_enrichment, http):
    http.get_text.return_value = "<html>"

    issues = await steam_enrichment.enrich(StoreScanContext(enrich=True), [steam_app()])

    assert [issue.code for issue in issues] == ["STEAM_RESPONSE_INVALID"]


@pytest.mark.asyncio
async def test_unsuccessful_appdetails(steam_enrichment, http):
    http.get_text.return_value = json.dumps({"480": {"success": False}})
    app = steam_app()

    issues = await steam_enrichment.enrich(StoreScanContext(enrich=True), [app])

    assert issues == []
    assert "SteamType" not in app.store_metadata
    assert "SteamStoreUri" in app.store_metadata


@pytest.mark.asyncio
async def test_visual_assets_disabled(steam_enrichment, http):
    app = steam_app()

    await steam_enrichment.enrich(StoreScanContext(enrich=True, include_visual_assets=False), [app])

    http.get_bytes.assert_not_called()
    assert app.visual_assets is None
    assert "SteamVisualUrl:Capsule" in app.store_metadata


@pytest.mark.asyncio
async def test_download_failures_are_one_issue(steam_enrichment, http):
    http.get_bytes.side_effect = Exception("404")
    app = steam_app()

    issues = await steam_enrichment.enrich(StoreScanContext(enrich=True), [app])

    assert [issue.code for issue in issues] == ["STEAM_VISUAL_DOWNLOAD_FAILED"]
    assert "Header" in issues[0].message and "Background" in issues[0].message
    assert app.store_metadata["SteamType"] == "game"


@pytest.mark.asyncio
async def test_existing_slot_is_not_replaced(steam_enrichment):
    app = steam_app()
    local = VisualAssetRef(file_path="/steam/appcache/librarycache/480_library_hero.jpg")
    app.visual_assets = AppVisualAssetsSnapshot(splash=local)

    await steam_enrichment.enrich(StoreScanContext(enrich=True), [app])

    assert app.visual_assets.splash == local
    assert [item.kind for item in app.visual_assets.additional] == ["Header", "Capsule", "Background"]


@pytest.mark.asyncio
async def test_only_numeric_ids_of_own_store(steam_enrichment, http):
    apps = [
        AppInstallSnapshot(id=StoreInstallId("steam", "abc"), display_name="x"),
        AppInstallSnapshot(id=StoreInstallId("gog", "480"), display_name="y"),
    ]

    assert await steam_enrichment.enrich(StoreScanContext(enrich=True), apps) == []
    http.get_text.assert_not_called()


@pytest.mark.asyncio
async def test_concurrency_is_bounded(tmp_path):
    active = 0
    peak = 0

    async def fake_get_text(url):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        app_id = url.split("appids=")[1].split("&")[0]
        return json.dumps({app_id: {"success": False}})

    http = Mock(get_text=AsyncMock(side_effect=fake_get_text), get_bytes=AsyncMock())
    enrichment = SteamEnrichment(http, cache=EnrichmentCache("steam", str(tmp_path)), max_concurrency=2)
    apps = [steam_app(str(i)) for i in range(8)]

    issues = await enrichment.enrich(StoreScanContext(enrich=True), apps)

    assert issues == []
    assert http.get_text.call_count == 8
    assert peak <= 2


@pytest.mark.asyncio
async def test_cancelled_context_launches_nothing(steam_enrichment, http):
    context = StoreScanContext(enrich=True)
    context.cancel()

    assert await steam_enrichment.enrich(context, [steam_app()]) == []
    http.get_text.assert_not_called()


GOG_GAME = {
    "_links": {
        "store": {"href": "https://www.gog.com/en/game/my_game"},
        "icon": {"href": "https://images.gog.com/icon.png"},
        "logo": {"href": "https://images.gog.com/logo.png"},
        "backgroundImage": {"href": "https://images.gog.com/bg.jpg"},
        "boxArtImage": {"href": "https://images.gog.com/boxart.jpg"},
    },
    "_embedded": {
        "product": {
            "title": "My Game",
            "_links": {"image": {"href": "https://images.gog.com/abc_{formatter}.png", "templated": True}},
        },
        "productType": "GAME",
        "publisher": {"name": "Pub"},
        "developers": [{"name": "Dev A"}, {"name": "Dev B"}],
    },
}


@pytest.mark.asyncio
async def test_gog_enrichment(tmp_path):
    http = Mock(get_text=AsyncMock(return_value=json.dumps(GOG_GAME)), get_bytes=AsyncMock(return_value=b"x"))
    enrichment = GogEnrichment(http, cache=EnrichmentCache("gog", str(tmp_path)))
    app = AppInstallSnapshot(id=StoreInstallId("gog", "1207662443"), display_name="My Game")

    issues = await enrichment.enrich(StoreScanContext(enrich=True), [app])

    assert issues == []
    meta = app.store_metadata
    assert meta["GogApiUrl"] == "https://api.gog.com/v2/games/1207662443"
    assert meta["WebsiteGogDbUrl"] == "https://www.gogdb.org/product/1207662443#details"
    assert meta["GogApiName"] == "My Game"
    assert meta["GogDevelopers"] == "Dev A | Dev B"
    assert meta["GogVisualUrl:ProductImage"] == "https://images.gog.com/abc_product_630.png"
    assert app.visual_assets.icon.uri == "https://images.gog.com/icon.png"
    assert app.visual_assets.logo.uri == "https://images.gog.com/logo.png"
    assert app.visual_assets.splash.uri == "https://images.gog.com/bg.jpg"
    assert [item.kind for item in app.visual_assets.additional] == ["BoxArt", "ProductImage"]
    assert (tmp_path / "gog" / "responses" / "1207662443_game.json").is_file()


def test_gog_tools_are_not_targets(tmp_path):
    enrichment = GogEnrichment(Mock(), cache=EnrichmentCache("gog", str(tmp_path)))
    tool = AppInstallSnapshot(id=StoreInstallId("gog", "1:tool:editor.exe"), display_name="Editor")
    assert enrichment.is_target(tool) is False


def test_set_if_missing():
    metadata = {"A": "keep", "B": "  "}
    assert set_if_missing(metadata, "A", "new") is False
    assert set_if_missing(metadata, "B", " filled ") is True
    assert set_if_missing(metadata, "C", "") is False
    assert set_if_missing(metadata, "D", None) is False
    assert metadata == {"A": "keep", "B": "filled"}


def test_cache_file_names():
    assert filename_from_url("https://cdn.example.com/a/b/header.jpg?t=123") == "header.jpg"
    assert filename_from_url("https://cdn.example.com/") == "asset"
    assert sanitize_filename("480_header_we?ird:name.jpg") == "480_header_we_ird_name.jpg"
