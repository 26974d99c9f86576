"""GOG enrichment from the public api.gog.com v2 games endpoint."""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..formats.json_values import get_dict, get_path, get_str
from ..models import AppInstallSnapshot, StoreKeys
from .base import ResponseInvalidError, StoreEnrichment, set_if_missing

logger = logging.getLogger(__name__)

GOG_API_URL = "https://api.gog.com/v2/games/{app_id}"
GOGDB_URL = "https://www.gogdb.org/product/{app_id}#details"

# Templated product image size
PRODUCT_IMAGE_FORMATTER = "product_630"

# _links key -> visual kind
LINK_KINDS = [
    ("icon", "Icon"),
    ("logo", "Logo"),
    ("backgroundImage", "Background"),
    ("galaxyBackgroundImage", "Background"),
    ("boxArtImage", "BoxArt"),
]

# Legacy "images" map key -> visual kind
IMAGE_KINDS = [
    ("icon", "Icon"),
    ("logo", "Logo"),
    ("logo2x", "Logo"),
    ("background", "Background"),
]


def _absolute_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    if url.startswith("//"):
        return "https:" + url
    return url


class GogEnrichment(StoreEnrichment):
    """api.gog.com product metadata and artwork."""

    @property
    def store_key(self) -> str:
        return StoreKeys.GOG

    @property
    def log_tag(self) -> str:
        return "[Enrich:GOG]"

    @property
    def visual_url_key_prefix(self) -> str:
        return "GogVisualUrl"

    def apply_links(self, snapshot: AppInstallSnapshot):
        app_id = snapshot.id.store_app_id
        set_if_missing(snapshot.store_metadata, "GogApiUrl", self.api_url(app_id))
        set_if_missing(snapshot.store_metadata, "WebsiteGogDbUrl", GOGDB_URL.format(app_id=app_id))

    def api_url(self, app_id: str) -> str:
        return GOG_API_URL.format(app_id=app_id)

    def response_cache_name(self, app_id: str) -> str:
        return f"{app_id}_game.json"

    def parse_response(self, app_id: str, body: str) -> Optional[Dict[str, Any]]:
        try:
            payload = json.loads(body)
        except ValueError as e:
            raise ResponseInvalidError(f"games response is not JSON: {e}")
        if not isinstance(payload, dict):
            raise ResponseInvalidError("games response is not a JSON object")
        return payload

    @staticmethod
    def _attributes(data: Dict[str, Any]) -> Dict[str, Any]:
        """Older responses nest fields under data.attributes."""
        attrs = get_path(data, "data", "attributes")
        return attrs if isinstance(attrs, dict) else data

    def extract_metadata(self, data: Dict[str, Any]) -> Dict[str, str]:
        embedded = get_dict(data, "_embedded")
        product = get_dict(embedded, "product")
        attrs = self._attributes(data)

        developers = embedded.get("developers")
        if not isinstance(developers, list):
            developers = []
        developers = [get_str(d, "name") for d in developers if isinstance(d, dict)]

        primary_task = None
        play_tasks = attrs.get("playTasks")
        if isinstance(play_tasks, list):
            tasks = [t for t in play_tasks if isinstance(t, dict)]
            primary = next((t for t in tasks if t.get("isPrimary") is True), tasks[0] if tasks else None)
            primary_task = get_str(primary, "path")

        metadata = {
            "GogApiName": get_str(product, "title") or get_str(attrs, "title", "name"),
            "GogApiVersion": get_str(attrs, "version"),
            "GogApiPlayTask:PrimaryPath": primary_task,
            "GogProductType": get_str(embedded, "productType"),
            "GogPublisher": get_str(get_dict(embedded, "publisher"), "name"),
            "GogDevelopers": " | ".join(d for d in developers if d),
            "GogReleaseDate": get_str(product, "globalReleaseDate"),
            "GogStoreUrl": get_str(get_path(data, "_links", "store"), "href"),
            "GogSupportUrl": get_str(get_path(data, "_links", "support"), "href"),
        }
        return {k: v for k, v in metadata.items() if v}

    def extract_visuals(self, data: Dict[str, Any]) -> List[Tuple[str, str]]:
        found: List[Tuple[str, str]] = []
        kinds = set()

        def add(kind: str, url: Optional[str]):
            url = _absolute_url(url)
            if url and kind not in kinds:
                kinds.add(kind)
                found.append((kind, url))

        links = get_dict(data, "_links")
        for key, kind in LINK_KINDS:
            add(kind, get_str(get_dict(links, key), "href"))

        image = get_path(data, "_embedded", "product", "_links", "image")
        href = get_str(image, "href")
        if href:
            add("ProductImage", href.replace("{formatter}", PRODUCT_IMAGE_FORMATTER))

        for images in (get_dict(get_dict(data, "product"), "images"), get_dict(self._attributes(data), "images")):
            for key, kind in IMAGE_KINDS:
                add(kind, get_str(images, key))

        return found
