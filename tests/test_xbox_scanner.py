from __future__ import annotations

from pathlib import Path

import pytest

from storescan.models import InstallState, StoreScanContext
from storescan.stores.xbox import GAMING_ROOT_HEADER, XboxCatalog, XboxScanner, parse_gaming_root

CONFIG = """<?xml version="1.0" encoding="utf-8"?>
<Game configVersion="1">
  <Identity Name="Contoso.Halo" Publisher="CN=Contoso" Version="1.0.0.0"/>
  <StoreId>9NBLGGH4R315</StoreId>
  <TitleId>5D41402A</TitleId>
  <ExecutableList>
    <Executable Name="bin\\Halo.exe" Id="Game"/>
  </ExecutableList>
  <ShellVisuals DefaultDisplayName="Halo Infinite"
                Square44x44Logo="Assets\\Small.png"
                Square150x150Logo="Assets\\Logo.png"
                SplashScreenImage="Assets\\Splash.png"/>
</Game>
"""


def gaming_root_bytes(path: str) -> bytes:
    return GAMING_ROOT_HEADER + path.encode("utf-16-le") + b"\x00\x00"


def make_drive(tmp_path: Path, games_folder: str = "XboxGames") -> Path:
    drive = tmp_path / "drive"
    (drive / games_folder).mkdir(parents=True)
    (drive / ".GamingRoot").write_bytes(gaming_root_bytes("\\" + games_folder))
    return drive


def test_gaming_root_resolves_against_drive(tmp_path):
    assert parse_gaming_root(gaming_root_bytes("\\XboxGames"), str(tmp_path)) == str(tmp_path / "XboxGames")
    assert parse_gaming_root(gaming_root_bytes("G:\\Games"), str(tmp_path)) == "G:\\Games"


def test_gaming_root_rejects_bad_data(tmp_path):
    assert parse_gaming_root(b"RGBX", str(tmp_path)) is None
    assert parse_gaming_root(b"XXXX\x01\x00\x00\x00" + "\\A".encode("utf-16-le") + b"\x00\x00", str(tmp_path)) is None
    # no terminator
    assert parse_gaming_root(GAMING_ROOT_HEADER + "\\A".encode("utf-16-le"), str(tmp_path)) is None
    # empty path
    assert parse_gaming_root(GAMING_ROOT_HEADER + b"\x00\x00", str(tmp_path)) is None


@pytest.mark.asyncio
async def test_game_found_through_gaming_root(tmp_path):
    drive = make_drive(tmp_path)
    game = drive / "XboxGames" / "Halo"
    (game / "Content").mkdir(parents=True)
    (game / "Assets").mkdir()
    (game / "Assets" / "Logo.png").write_bytes(b"png")
    (game / "MicrosoftGame.config").write_text(CONFIG, encoding="utf-8")

    scanner = XboxScanner(XboxCatalog(drive_roots=[str(drive)]))
    result = await scanner.scan(StoreScanContext(include_visual_assets=True))

    assert result.issues == []
    app = result.apps[0]
    assert app.id.key == "xbox:Contoso.Halo"
    assert app.display_name == "Halo Infinite"
    assert app.install_folder == str(game)
    assert app.install_folders.content_folder.path == str(game / "Content")
    assert app.executable_name == "Halo.exe"
    assert app.install_state == InstallState.INSTALLED
    assert app.store_metadata["StoreId"] == "9NBLGGH4R315"
    assert app.store_metadata["TitleId"] == "5D41402A"
    assert app.tags == {"xbox", "game"}
    # only assets present on disk are reported
    assert app.visual_assets.logo.file_path == str(game / "Assets" / "Logo.png")
    assert app.visual_assets.icon is None


@pytest.mark.asyncio
async def test_config_inside_content_folder(tmp_path):
    games = tmp_path / "XboxGames"
    content = games / "Forza" / "Content"
    content.mkdir(parents=True)
    (content / "MicrosoftGame.config").write_text(
        '<Game><Identity Name="Contoso.Forza"/></Game>', encoding="utf-8")

    result = await XboxScanner(XboxCatalog(drive_roots=[])).scan(StoreScanContext(roots=[str(games)]))

    app = result.apps[0]
    assert app.display_name == "Forza"
    assert app.install_folder == str(games / "Forza")
    assert app.install_folders.content_folder.path == str(content)


@pytest.mark.asyncio
async def test_broken_configs_are_reported(tmp_path):
    games = tmp_path / "XboxGames"
    (games / "Broken").mkdir(parents=True)
    (games / "Broken" / "MicrosoftGame.config").write_text("<Game><Identity", encoding="utf-8")
    (games / "Anonymous").mkdir()
    (games / "Anonymous" / "MicrosoftGame.config").write_text("<Game/>", encoding="utf-8")

    result = await XboxScanner(XboxCatalog(drive_roots=[])).scan(StoreScanContext(roots=[str(games)]))

    assert result.apps == []
    assert sorted(issue.code for issue in result.issues) == [
        "XBOX_CONFIG_INVALID", "XBOX_CONFIG_MISSING_IDENTITY"]


@pytest.mark.asyncio
async def test_invalid_gaming_root_file(tmp_path):
    drive = tmp_path / "drive"
    drive.mkdir()
    (drive / ".GamingRoot").write_bytes(b"not a gaming root")

    result = await XboxScanner(XboxCatalog(drive_roots=[str(drive)])).scan(StoreScanContext())

    assert [issue.code for issue in result.issues] == ["XBOX_GAMING_ROOT_INVALID"]
    assert result.issues[0].path == str(drive / ".GamingRoot")


@pytest.mark.asyncio
async def test_no_gaming_root_on_any_drive(tmp_path):
    result = await XboxScanner(XboxCatalog(drive_roots=[str(tmp_path)])).scan(StoreScanContext())

    assert result.apps == []
    assert [issue.code for issue in result.issues] == ["XBOX_GAMING_ROOT_NOT_FOUND"]


@pytest.mark.asyncio
async def test_missing_explicit_root(tmp_path):
    result = await XboxScanner(XboxCatalog(drive_roots=[])).scan(
        StoreScanContext(roots=[str(tmp_path / "nope")]))

    assert [issue.code for issue in result.issues] == ["XBOX_ROOT_NOT_FOUND"]
