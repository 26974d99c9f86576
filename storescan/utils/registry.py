"""
Platform locator: read-only access to the Windows registry.

Catalog builders only ever need "give me this string value, if it exists".
That contract is kept behind PlatformLocator so the builders run unchanged on
Linux (NullLocator) and in tests (DictLocator).
"""
import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

HKCU = "HKCU"
HKLM = "HKLM"


@dataclass(frozen=True)
class RegistryValue:
    """Address of one registry value.

    view: 32 or 64 to force a registry view on 64-bit Windows, None for the default.
    """
    hive: str
    key_path: str
    value_name: str
    view: Optional[int] = None


class PlatformLocator(ABC):

    @abstractmethod
    def try_get_string(self, value: RegistryValue) -> Optional[str]:
        """Return the value as a non-blank string, or None. Never raises."""
        pass

    def first_string(self, values: Iterable[RegistryValue]) -> Tuple[Optional[str], Optional[RegistryValue]]:
        """Probe values in order and stop at the first hit."""
        for value in values:
            result = self.try_get_string(value)
            if result:
                return result, value
        return None, None

    def list_subkeys(self, hive: str, key_path: str, view: Optional[int] = None) -> List[str]:
        """Names of the direct subkeys of a key; empty when the key is missing."""
        return []


class NullLocator(PlatformLocator):
    """Locator for platforms without a registry."""

    def try_get_string(self, value: RegistryValue) -> Optional[str]:
        return None


class DictLocator(PlatformLocator):
    """In-memory locator keyed by (hive, key path, value name).

    Key path matching is case-insensitive like the real registry. Views are
    ignored unless an entry was registered with an explicit view.
    """

    def __init__(self, values: Optional[Dict[Tuple[str, str, str], str]] = None):
        self._values: Dict[Tuple, str] = {}
        for (hive, key_path, value_name), data in (values or {}).items():
            self.set(hive, key_path, value_name, data)

    def set(self, hive: str, key_path: str, value_name: str, data: str, view: Optional[int] = None):
        self._values[(hive.upper(), key_path.lower(), value_name.lower(), view)] = data

    def try_get_string(self, value: RegistryValue) -> Optional[str]:
        base = (value.hive.upper(), value.key_path.lower(), value.value_name.lower())
        data = self._values.get(base + (value.view,))
        if data is None:
            data = self._values.get(base + (None,))
        if isinstance(data, str) and data.strip():
            return data.strip()
        return None

    def list_subkeys(self, hive: str, key_path: str, view: Optional[int] = None) -> List[str]:
        prefix = key_path.lower().rstrip("\\") + "\\"
        names: List[str] = []
        for stored_hive, stored_path, _, stored_view in self._values:
            if stored_hive != hive.upper() or not stored_path.startswith(prefix):
                continue
            if view is not None and stored_view not in (None, view):
                continue
            name = stored_path[len(prefix):].split("\\", 1)[0]
            if name and name not in names:
                names.append(name)
        return names


class WindowsRegistryLocator(PlatformLocator):
    """Locator backed by ``winreg``. Keys are opened per call and closed immediately."""

    def __init__(self):
        import winreg
        self._winreg = winreg
        self._hives = {
            HKCU: winreg.HKEY_CURRENT_USER,
            HKLM: winreg.HKEY_LOCAL_MACHINE,
        }

    def try_get_string(self, value: RegistryValue) -> Optional[str]:
        winreg = self._winreg
        hive = self._hives.get(value.hive.upper())
        if hive is None:
            return None

        try:
            with winreg.OpenKey(hive, value.key_path, 0, self._access(value.view)) as key:
                data, value_type = winreg.QueryValueEx(key, value.value_name)
        except OSError:
            return None

        if value_type not in (winreg.REG_SZ, winreg.REG_EXPAND_SZ) or not isinstance(data, str):
            return None
        if value_type == winreg.REG_EXPAND_SZ:
            data = winreg.ExpandEnvironmentStrings(data)
        return data.strip() or None

    def list_subkeys(self, hive: str, key_path: str, view: Optional[int] = None) -> List[str]:
        winreg = self._winreg
        root = self._hives.get(hive.upper())
        if root is None:
            return []

        names: List[str] = []
        try:
            with winreg.OpenKey(root, key_path, 0, self._access(view)) as key:
                index = 0
                while True:
                    try:
                        names.append(winreg.EnumKey(key, index))
                    except OSError:
                        break
                    index += 1
        except OSError:
            return []
        return names

    def _access(self, view: Optional[int]) -> int:
        winreg = self._winreg
        access = winreg.KEY_READ
        if view == 32:
            access |= winreg.KEY_WOW64_32KEY
        elif view == 64:
            access |= winreg.KEY_WOW64_64KEY
        return access


def default_locator(platform: Optional[str] = None) -> PlatformLocator:
    """Registry-backed locator on Windows, NullLocator elsewhere."""
    if (platform or sys.platform) == "win32":
        return WindowsRegistryLocator()
    logger.debug("No registry on this platform, using NullLocator")
    return NullLocator()
