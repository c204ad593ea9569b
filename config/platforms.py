"""
PlatformCatalog — loads config/platforms.yaml and exposes the static list of
supported platforms to the status page, the connect flows and the API-key
validator.

The catalog is built once and treated as immutable for the process lifetime;
components receive it by injection (see ``get_platform_catalog``).
"""

import pathlib
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field


class ApiKeyField(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str
    type: str = "text"   # "text" | "password" | "select"
    placeholder: Optional[str] = None
    required: bool = True
    options: Tuple[str, ...] = ()

    @property
    def is_secret(self) -> bool:
        return self.type == "password"


class PlatformCatalogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    icon: str = ""
    category: str = ""
    requires_oauth: bool = False
    requires_api_key: bool = False
    api_key_fields: Tuple[ApiKeyField, ...] = Field(default_factory=tuple)
    setup_instructions: Optional[str] = None


class PlatformCatalog:
    """Ordered, read-only collection of ``PlatformCatalogEntry``."""

    __slots__ = ("_entries", "_by_id")

    def __init__(self, entries: List[PlatformCatalogEntry]):
        by_id: Dict[str, PlatformCatalogEntry] = {}
        for entry in entries:
            if entry.id in by_id:
                raise ValueError(f"Duplicate platform id in catalog: {entry.id}")
            by_id[entry.id] = entry
        self._entries: Tuple[PlatformCatalogEntry, ...] = tuple(entries)
        self._by_id = by_id

    @classmethod
    def from_yaml(cls, path: str | pathlib.Path) -> "PlatformCatalog":
        with open(path, "r", encoding="utf-8") as fh:
            raw: Dict[str, Any] = yaml.safe_load(fh)
        return cls([PlatformCatalogEntry(**item) for item in raw["platforms"]])

    def __iter__(self) -> Iterator[PlatformCatalogEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, platform_id: object) -> bool:
        return platform_id in self._by_id

    def get(self, platform_id: str) -> Optional[PlatformCatalogEntry]:
        return self._by_id.get(platform_id)

    def ids(self) -> List[str]:
        return [e.id for e in self._entries]


_DEFAULT_CATALOG_PATH = pathlib.Path(__file__).parent / "platforms.yaml"


@lru_cache(maxsize=1)
def get_platform_catalog() -> PlatformCatalog:
    """Process-wide catalog, loaded on first use. Also a FastAPI dependency."""
    return PlatformCatalog.from_yaml(_DEFAULT_CATALOG_PATH)
