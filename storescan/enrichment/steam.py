"""Steam enrichment from the public store appdetails API."""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..formats.json_values import get_path, get_str
from ..models import AppInstallSnapshot, StoreKeys
from .base import ResponseInvalidError, StoreEnrichment, set_if_missing

logger = logging.getLogger(__name__)

STEAM_STORE_URL = "https://store.steampowered.com/app/{app_id}/"
STEAM_COMMUNITY_URL = "https://steamcommunity.com/app/{app_id}/"
STEAM_APPDETAILS_URL = "https://store.steampowered.com/api/appdetails?appids={app_id}&cc=US&l=english"


def _names(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    return [v.strip() for v in values if isinstance(v, str) and v.strip()]


class SteamEnrichment(StoreEnrichment):
    """Store page links, appdetails metadata, header/capsule/background art."""

    @property
    def store_key(self) -> str:
        return StoreKeys.STEAM

    @property
    def visual_url_key_prefix(self) -> str:
        return "SteamVisualUrl"

    def apply_links(self, snapshot: AppInstallSnapshot):
        app_id = snapshot.id.store_app_id
        set_if_missing(snapshot.store_metadata, "SteamStoreUri", STEAM_STORE_URL.format(app_id=app_id))
        set_if_missing(snapshot.store_metadata, "SteamCommunityUri", STEAM_COMMUNITY_URL.format(app_id=app_id))
        set_if_missing(snapshot.store_metadata, "SteamAppDetailsUrl", self.api_url(app_id))

    def api_url(self, app_id: str) -> str:
        return STEAM_APPDETAILS_URL.format(app_id=app_id)

    def response_cache_name(self, app_id: str) -> str:
        return f"{app_id}_appdetails_cc-US_l-english.json"

    def parse_response(self, app_id: str, body: str) -> Optional[Dict[str, Any]]:
        """appdetails answers {"<appid>": {"success": bool, "data": {...}}}."""
        try:
            payload = json.loads(body)
        except ValueError as e:
            raise ResponseInvalidError(f"appdetails is not JSON: {e}")

        node = payload.get(app_id) if isinstance(payload, dict) else None
        if not isinstance(node, dict):
            raise ResponseInvalidError(f"appdetails has no entry for {app_id}")
        if node.get("success") is not True:
            return None
        data = node.get("data")
        return data if isinstance(data, dict) else None

    def extract_metadata(self, data: Dict[str, Any]) -> Dict[str, str]:
        dlc = data.get("dlc")
        metadata = {
            "SteamName": get_str(data, "name"),
            "SteamType": get_str(data, "type"),
            "SteamWebsite": get_str(data, "website"),
            "SteamSupportedLanguages": get_str(data, "supported_languages"),
            "SteamReleaseDate": get_str(data.get("release_date"), "date"),
            "SteamDevelopers": " | ".join(_names(data.get("developers"))),
            "SteamPublishers": " | ".join(_names(data.get("publishers"))),
            "SteamDlcAppIds": ",".join(str(d) for d in dlc) if isinstance(dlc, list) else None,
            "SteamMetacriticScore": get_str(get_path(data, "metacritic"), "score"),
        }
        return {k: v for k, v in metadata.items() if v}

    def extract_visuals(self, data: Dict[str, Any]) -> List[Tuple[str, str]]:
        visuals = [
            ("Header", get_str(data, "header_image")),
            ("Capsule", get_str(data, "capsule_imagev5", "capsule_image")),
            ("Background", get_str(data, "background_raw", "background")),
        ]
        return [(kind, url) for kind, url in visuals if url]
