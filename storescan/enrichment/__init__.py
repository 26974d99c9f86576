"""Optional network enrichment of scanned apps."""
from .base import StoreEnrichment, set_if_missing
from .gog import GogEnrichment
from .http_client import StoreHttpClient, StoreHttpError
from .steam import SteamEnrichment

__all__ = [
    "GogEnrichment",
    "SteamEnrichment",
    "StoreEnrichment",
    "StoreHttpClient",
    "StoreHttpError",
    "set_if_missing",
]
