from __future__ import annotations

import pytest

from storescan.models import InstallState, StoreScanContext
from storescan.stores.launchers import (
    EA_APP,
    ORIGIN,
    ROCKSTAR,
    LauncherPresenceScanner,
    find_uninstall_entry,
    folder_from_path,
)
from storescan.utils.registry import HKCU, HKLM, DictLocator

UNINSTALL = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"
UNINSTALL_WOW = r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall"


def add_entry(locator: DictLocator, hive: str, root: str, subkey: str, **values):
    for name, data in values.items():
        locator.set(hive, f"{root}\\{subkey}", name, data)


@pytest.mark.asyncio
async def test_launcher_found_by_install_location(tmp_path):
    folder = tmp_path / "Electronic Arts" / "EA Desktop"
    folder.mkdir(parents=True)
    (folder / "EADesktop.exe").write_bytes(b"MZ")
    locator = DictLocator()
    add_entry(locator, HKLM, UNINSTALL, "{EA-DESKTOP}", DisplayName="EA app", InstallLocation=str(folder))

    result = await LauncherPresenceScanner(EA_APP, locator).scan(StoreScanContext())

    assert result.issues == []
    app = result.apps[0]
    assert app.id.key == "ea:ea-app-launcher"
    assert app.display_name == "EA app"
    assert app.install_folder == str(folder)
    assert app.executable_name == "EADesktop.exe"
    assert app.install_state == InstallState.INSTALLED
    assert app.tags == {"ea", "launcher"}
    assert app.store_metadata["Discovery"] == "Windows uninstall registry"
    assert app.store_metadata["ExecutablePath"] == str(folder / "EADesktop.exe")
    assert app.store_metadata["UninstallKey"].startswith("HKLM\\")


@pytest.mark.asyncio
async def test_display_icon_used_when_locations_are_missing(tmp_path):
    folder = tmp_path / "Rockstar Games" / "Launcher"
    folder.mkdir(parents=True)
    (folder / "Launcher.exe").write_bytes(b"MZ")
    locator = DictLocator()
    add_entry(locator, HKLM, UNINSTALL_WOW, "Rockstar Games Launcher",
              DisplayName="Rockstar Games Launcher",
              InstallLocation=str(tmp_path / "gone"),
              DisplayIcon=f'"{folder / "Launcher.exe"}",0')

    result = await LauncherPresenceScanner(ROCKSTAR, locator).scan(StoreScanContext())

    assert [app.install_folder for app in result.apps] == [str(folder)]


def test_user_entries_win_over_machine_entries(tmp_path):
    user_folder = tmp_path / "user"
    machine_folder = tmp_path / "machine"
    user_folder.mkdir()
    machine_folder.mkdir()
    locator = DictLocator()
    add_entry(locator, HKLM, UNINSTALL, "Origin", DisplayName="Origin", InstallLocation=str(machine_folder))
    add_entry(locator, HKCU, UNINSTALL, "Origin", DisplayName="Origin", InstallLocation=str(user_folder))

    folder, key = find_uninstall_entry(locator, ORIGIN.name_contains)

    assert folder == str(user_folder)
    assert key.startswith("HKCU\\")


def test_display_name_match_ignores_case(tmp_path):
    locator = DictLocator()
    add_entry(locator, HKLM, UNINSTALL, "Other", DisplayName="Some Tool", InstallLocation=str(tmp_path))
    add_entry(locator, HKLM, UNINSTALL, "EA", DisplayName="ea APP", InstallLocation=str(tmp_path))

    assert find_uninstall_entry(locator, "EA app") == (str(tmp_path), f"HKLM\\{UNINSTALL}\\ea")


def test_folder_from_path(tmp_path):
    exe = tmp_path / "Origin.exe"
    exe.write_bytes(b"MZ")

    assert folder_from_path(f'"{exe}",0') == str(tmp_path)
    assert folder_from_path(str(tmp_path)) == str(tmp_path)
    assert folder_from_path(str(tmp_path / "missing.exe")) is None
    assert folder_from_path("") is None


@pytest.mark.asyncio
async def test_launcher_not_installed():
    result = await LauncherPresenceScanner(ORIGIN, DictLocator()).scan(StoreScanContext())

    assert result.apps == []
    assert [issue.code for issue in result.issues] == ["ORIGIN_LAUNCHER_NOT_FOUND"]


@pytest.mark.asyncio
async def test_explicit_root_is_the_launcher_folder(tmp_path):
    result = await LauncherPresenceScanner(ORIGIN, DictLocator()).scan(
        StoreScanContext(roots=[str(tmp_path), str(tmp_path / "missing")]))

    assert [app.install_folder for app in result.apps] == [str(tmp_path)]
    assert result.apps[0].store_metadata["Discovery"] == "Explicit root"
    assert [issue.code for issue in result.issues] == ["ORIGIN_ROOT_NOT_FOUND"]
