"""
Pydantic models for data returned by the Steam store and app-list APIs.

Store responses are loosely typed; they are mapped to `TitleMetadata` at the
ingestion boundary. Fields the application relies on are declared explicitly,
everything else is kept verbatim in `passthrough` for display purposes.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class ReleaseDate(BaseModel):
    coming_soon: bool = False
    date: str = ""


class TitleMetadata(BaseModel):
    """Store details for a single title."""

    steam_appid: int
    name: str
    header_image: str = ""
    short_description: str = ""
    publishers: list[str] = Field(default_factory=list)
    developers: list[str] = Field(default_factory=list)
    release_date: ReleaseDate = Field(default_factory=ReleaseDate)
    drm_notice: str | None = None
    dlc: list[int] = Field(default_factory=list)
    passthrough: dict[str, Any] = Field(default_factory=dict, repr=False)

    @field_validator("publishers", "developers", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return v or []

    @field_validator("release_date", mode="before")
    @classmethod
    def default_release_date(cls, v: Any) -> Any:
        return v or {}

    @field_validator("dlc", mode="before")
    @classmethod
    def parse_dlc_robustly(cls, v: Any) -> list[int]:
        """
        The store returns DLC ids as a list, an index-keyed object, numbers or
        digit strings, or null. Anything unparseable is dropped.
        """
        if v is None:
            return []
        if isinstance(v, dict):
            v = list(v.values())
        if not isinstance(v, list):
            return []
        ids = []
        for item in v:
            if isinstance(item, bool):
                continue
            if isinstance(item, int):
                ids.append(item)
            elif isinstance(item, str):
                text = item.strip()
                if text.isascii() and text.isdigit():
                    ids.append(int(text))
        return ids

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TitleMetadata":
        """Splits a raw `appdetails` data object into known and passthrough fields."""
        known = set(cls.model_fields) - {"passthrough"}
        fields = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        return cls(**fields, passthrough=extra)


class CatalogApp(BaseModel):
    """One row of the Steam app list."""

    appid: int
    name: str

    @property
    def header_image(self) -> str:
        return f"https://cdn.akamai.steamstatic.com/steam/apps/{self.appid}/header.jpg"


class SearchResults(BaseModel):
    games: list[CatalogApp] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    total_pages: int = 1
    query: str = ""
