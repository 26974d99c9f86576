"""
Scan issue model.

Issues are the only error channel of a scan: every unit of work that fails
(a file, a database row, a catalog entry, an enrichment task) records a
ScanIssue and the scan carries on. Nothing here is ever raised.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional


class StoreKeys:
    """Canonical lowercase store identifiers."""
    STEAM = "steam"
    GOG = "gog"
    EPIC = "epic"
    XBOX = "xbox"
    EA = "ea"
    ORIGIN = "origin"
    ROCKSTAR = "rockstar"

    ALL = (STEAM, GOG, EPIC, XBOX, EA, ORIGIN, ROCKSTAR)


@dataclass(frozen=True)
class ExceptionInfo:
    """Serializable summary of a caught exception."""
    type: str
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ExceptionInfo":
        return cls(type=type(exc).__name__, message=str(exc))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message}


@dataclass(frozen=True)
class ScanIssue:
    """A recoverable problem found during discovery, parsing, mapping or enrichment."""
    code: str
    message: str
    store_key: str
    app_key: Optional[str] = None
    path: Optional[str] = None
    exception: Optional[ExceptionInfo] = None

    @classmethod
    def from_exception(
        cls,
        code: str,
        message: str,
        store_key: str,
        exc: BaseException,
        app_key: Optional[str] = None,
        path: Optional[str] = None,
    ) -> "ScanIssue":
        return cls(
            code=code,
            message=message,
            store_key=store_key,
            app_key=app_key,
            path=path,
            exception=ExceptionInfo.from_exception(exc),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "store_key": self.store_key,
            "app_key": self.app_key,
            "path": self.path,
            "exception": self.exception.to_dict() if self.exception else None,
        }


class ScanCancelledError(Exception):
    """Raised when a scan is cancelled before any catalog entry was produced.

    The orchestrator attaches whatever it had already collected from other
    stores as ``partial`` before re-raising.
    """

    def __init__(self, store_key: Optional[str] = None, message: str = "Scan cancelled"):
        super().__init__(message if store_key is None else f"{message} ({store_key})")
        self.store_key = store_key
        self.partial = None
